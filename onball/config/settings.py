"""
onball/config/settings.py
Environment-driven settings. `.env` is loaded once, before any value is read.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

load_dotenv(dotenv_path=ENV_FILE)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name} env var (expected an integer): {raw!r}") from None


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./onball.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# Set document used when a caller does not name one
DEFAULT_SET_ID = os.getenv("DEFAULT_SET_ID", "default").strip() or "default"

# External team-balancing service (optional; local partitioner is used when unset)
TEAM_SERVICE_URL = os.getenv("TEAM_SERVICE_URL", "").strip()
TEAM_SERVICE_TIMEOUT = float(_get_int("TEAM_SERVICE_TIMEOUT", 10))

# Votes needed before a vacant belt is awarded
BELT_MIN_VOTES = _get_int("BELT_MIN_VOTES", 5)
