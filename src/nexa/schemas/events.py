"""Inbound WebSocket messages accepted by the voice endpoint."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .identity import UserProfile


class LoginMessage(BaseModel):
    type: Literal["login"]
    identity: UserProfile
    # Required when the identity claims the ADMIN role
    passcode: Optional[str] = None


class SubmitMessage(BaseModel):
    type: Literal["submit"]
    text: str = Field(min_length=1)


class MicMessage(BaseModel):
    type: Literal["mic"]
    active: bool


class InterruptMessage(BaseModel):
    type: Literal["interrupt"]


class StudyHubMessage(BaseModel):
    type: Literal["study_hub"]
    open: bool


class LateNightMessage(BaseModel):
    type: Literal["late_night"]
    enabled: bool


class LogoutMessage(BaseModel):
    type: Literal["logout"]


class HeartbeatMessage(BaseModel):
    type: Literal["heartbeat"]


ClientMessage = Annotated[
    Union[
        LoginMessage,
        SubmitMessage,
        MicMessage,
        InterruptMessage,
        StudyHubMessage,
        LateNightMessage,
        LogoutMessage,
        HeartbeatMessage,
    ],
    Field(discriminator="type"),
]

_CLIENT_MESSAGE_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: Any) -> ClientMessage:
    """Validate a decoded JSON frame; raises ``pydantic.ValidationError``."""

    return _CLIENT_MESSAGE_ADAPTER.validate_python(data)


__all__ = [
    "ClientMessage",
    "HeartbeatMessage",
    "InterruptMessage",
    "LateNightMessage",
    "LoginMessage",
    "LogoutMessage",
    "MicMessage",
    "StudyHubMessage",
    "SubmitMessage",
    "parse_client_message",
]
