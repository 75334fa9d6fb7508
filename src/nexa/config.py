"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class ScheduledReminder(BaseModel):
    """A spoken reminder for the privileged identity at a fixed local time."""

    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    text: str


_DEFAULT_REMINDERS = [
    ScheduledReminder(
        time="23:00",
        text="Sir, it is eleven o'clock. You have the cafe shift tomorrow, please get some rest. I am right here.",
    ),
    ScheduledReminder(
        time="08:00",
        text="Sir, today is a cafe duty day. Please get ready on time.",
    ),
]


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credential for the privileged identity; regular users bring their own key
    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "gemini_api_key"),
    )
    # Shared secret for administrator sign-in and the admin REST routes;
    # unset disables both
    admin_passcode: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("NEXA_ADMIN_PASSCODE", "admin_passcode"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )

    text_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("NEXA_TEXT_MODEL", "text_model"),
    )
    thinking_model: str = Field(
        default="gemini-3-pro-preview",
        validation_alias=AliasChoices("NEXA_THINKING_MODEL", "thinking_model"),
    )
    thinking_budget: int = Field(
        default=16384,
        ge=0,
        validation_alias=AliasChoices("NEXA_THINKING_BUDGET", "thinking_budget"),
    )
    generation_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices(
            "NEXA_GENERATION_TEMPERATURE", "generation_temperature"
        ),
    )
    generation_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("NEXA_GENERATION_TIMEOUT", "generation_timeout"),
    )

    tts_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        validation_alias=AliasChoices("NEXA_TTS_MODEL", "tts_model"),
    )
    tts_voice: str = Field(
        default="Kore",
        validation_alias=AliasChoices("NEXA_TTS_VOICE", "tts_voice"),
    )
    tts_timeout: float = Field(
        default=8.0,
        gt=0,
        validation_alias=AliasChoices("NEXA_TTS_TIMEOUT", "tts_timeout"),
    )
    tts_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        validation_alias=AliasChoices("NEXA_TTS_RETRIES", "tts_retries"),
    )
    tts_retry_delay: float = Field(
        default=0.8,
        ge=0,
        validation_alias=AliasChoices("NEXA_TTS_RETRY_DELAY", "tts_retry_delay"),
    )

    # Bumping the version invalidates every cached utterance at once
    speech_cache_version: str = Field(
        default="v1",
        validation_alias=AliasChoices("NEXA_SPEECH_CACHE_VERSION", "speech_cache_version"),
    )
    speech_cache_max_chars: int = Field(
        default=250 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "NEXA_SPEECH_CACHE_MAX_CHARS", "speech_cache_max_chars"
        ),
    )

    store_path: Path = Field(
        default_factory=lambda: Path("data/nexa_store.db"),
        validation_alias=AliasChoices("NEXA_STORE_PATH", "store_path"),
    )
    history_limit: int = Field(
        default=50,
        ge=1,
        validation_alias=AliasChoices("NEXA_HISTORY_LIMIT", "history_limit"),
    )
    prompt_history_turns: int = Field(
        default=30,
        ge=0,
        validation_alias=AliasChoices(
            "NEXA_PROMPT_HISTORY_TURNS", "prompt_history_turns"
        ),
    )

    late_night_hour: int = Field(
        default=23,
        ge=0,
        le=23,
        validation_alias=AliasChoices("NEXA_LATE_NIGHT_HOUR", "late_night_hour"),
    )
    alert_hold_seconds: float = Field(
        default=2.5,
        ge=0,
        validation_alias=AliasChoices("NEXA_ALERT_HOLD_SECONDS", "alert_hold_seconds"),
    )
    visual_fallback_min_seconds: float = Field(
        default=2.0,
        ge=0,
        validation_alias=AliasChoices(
            "NEXA_VISUAL_FALLBACK_MIN_SECONDS", "visual_fallback_min_seconds"
        ),
    )
    visual_fallback_max_seconds: float = Field(
        default=10.0,
        ge=0,
        validation_alias=AliasChoices(
            "NEXA_VISUAL_FALLBACK_MAX_SECONDS", "visual_fallback_max_seconds"
        ),
    )
    timer_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices(
            "NEXA_TIMER_INTERVAL_SECONDS", "timer_interval_seconds"
        ),
    )
    reminders: list[ScheduledReminder] = Field(
        default_factory=lambda: list(_DEFAULT_REMINDERS),
        validation_alias=AliasChoices("NEXA_REMINDERS", "reminders"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["ScheduledReminder", "Settings", "get_settings"]
