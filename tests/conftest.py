import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from nexa.config import Settings  # noqa: E402
from nexa.schemas.identity import UserProfile, UserRole  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Settings with timings shrunk so session tests run instantly."""

    return Settings(
        gemini_api_key=None,
        admin_passcode="test-passcode",
        alert_hold_seconds=0,
        visual_fallback_min_seconds=0,
        visual_fallback_max_seconds=0,
        tts_retry_delay=0,
        timer_interval_seconds=0.01,
        reminders=[],
    )


@pytest.fixture
def admin() -> UserProfile:
    return UserProfile(name="Chandan", mobile="9000000001", role=UserRole.ADMIN, gender="male")


@pytest.fixture
def user() -> UserProfile:
    return UserProfile(name="Priya", mobile="9000000002", gender="female")
