"""Request and response bodies for the administrator API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class CredentialPayload(BaseModel):
    api_key: str = Field(min_length=1)

    @field_validator("api_key")
    @classmethod
    def _reject_placeholder(cls, value: str) -> str:
        value = value.strip()
        if not value or value == "undefined":
            raise ValueError("api_key must be a real key")
        return value


class ClearResult(BaseModel):
    removed: int


__all__ = ["ClearResult", "CredentialPayload"]
