"""Incident records surfaced to the administrator."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IncidentRecord(BaseModel):
    """Persisted form of an incident raised during a conversation."""

    user: str
    mobile: str
    kind: str
    detail: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def summary(self) -> str:
        text = f"[{self.kind}] {self.user} ({self.mobile})"
        if self.detail:
            text = f"{text}: {self.detail}"
        return text


__all__ = ["IncidentRecord"]
