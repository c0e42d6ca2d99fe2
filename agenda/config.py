"""Application settings.

Values come from the environment (a local ``.env`` file is honored).
Business defaults below are only used to seed the initial clinic setup.
"""
import os
from dataclasses import dataclass, field
from datetime import time
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

from agenda.dateutils import WEEKDAYS

load_dotenv()

DEFAULT_WORKING_DAYS = list(WEEKDAYS)
DEFAULT_OPENING_TIME = time(8, 0)
DEFAULT_CLOSING_TIME = time(18, 0)
DEFAULT_APPOINTMENT_DURATION = 30
DEFAULT_CONSULTATION_PRICE = 0.0

MIN_APPOINTMENT_DURATION = 15
MAX_APPOINTMENT_DURATION = 120

DASHBOARD_UPCOMING_LIMIT = 5
NO_SHOW_WINDOW_DAYS = 30


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///agenda.db"
    log_level: str = "INFO"
    require_api_key: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings from the environment (cached)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///agenda.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        require_api_key=_env_bool("AGENDA_REQUIRE_API_KEY", True),
        cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:3000"]),
    )
