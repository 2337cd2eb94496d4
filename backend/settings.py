"""
Runtime configuration, read from the environment (and backend/.env if present).
"""
import os
from datetime import timezone
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name) or default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///wellness.db")

# Next.js frontend by default
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Calendar days (streaks) are counted in this timezone.
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
TIMEZONE = timezone.utc if APP_TIMEZONE.upper() == "UTC" else ZoneInfo(APP_TIMEZONE)

TICK_SECONDS = float(os.getenv("TICK_SECONDS", "1"))

REQUIRE_EMAIL_CONFIRMATION = _flag("REQUIRE_EMAIL_CONFIRMATION", "true")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
