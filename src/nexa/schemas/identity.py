"""Pydantic models describing the signed-in identity."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    """Privilege level of a signed-in identity."""

    ADMIN = "ADMIN"
    USER = "USER"


class UserProfile(BaseModel):
    """Profile the client sends when a session is opened."""

    name: str = Field(min_length=1)
    mobile: str = Field(min_length=1)
    role: UserRole = UserRole.USER
    gender: Literal["male", "female", "other"] = "other"

    model_config = ConfigDict(frozen=True)

    @property
    def is_privileged(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def memory_key(self) -> str:
        """Storage suffix for per-identity data such as message history."""

        if self.is_privileged:
            return "admin"
        return f"user_{self.mobile}"

    @property
    def display_name(self) -> str:
        if self.is_privileged:
            return f"{self.name} sir"
        return self.name


__all__ = ["UserProfile", "UserRole"]
