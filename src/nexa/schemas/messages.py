"""Conversation message models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(BaseModel):
    """A single transcript entry. Immutable once created."""

    role: Literal["user", "assistant"]
    text: str
    created_at: datetime = Field(default_factory=_utcnow)
    is_flagged: bool = False

    model_config = ConfigDict(frozen=True)


__all__ = ["ConversationMessage"]
