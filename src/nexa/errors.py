"""Exception taxonomy for the response and speech pipeline."""

from __future__ import annotations

from typing import Any


class NexaError(Exception):
    """Base class for failures raised by the voice core."""


class MissingCredential(NexaError):
    """No usable API key is configured for the current identity."""


class EmptyInput(NexaError):
    """Synthesis was requested for text that normalizes to nothing."""


class UpstreamFailure(NexaError):
    """Wrap transport or API failures when talking to the speech upstream."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class QuotaExceeded(UpstreamFailure):
    """The upstream signalled rate limiting (HTTP 429)."""


class DecodeCorruption(NexaError):
    """Encoded audio could not be turned back into PCM samples."""


class GenerationFailure(NexaError):
    """The text generation collaborator could not produce a completion."""

    def __init__(self, detail: Any, status_code: int | None = None):
        super().__init__(str(detail))
        self.detail = detail
        self.status_code = status_code


__all__ = [
    "DecodeCorruption",
    "EmptyInput",
    "GenerationFailure",
    "MissingCredential",
    "NexaError",
    "QuotaExceeded",
    "UpstreamFailure",
]
