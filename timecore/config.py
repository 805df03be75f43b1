"""
TimeCore — Centralized configuration.

Loads all settings from .env and validates them.
Every key has a default: the core needs no secrets to run.

The core never installs log handlers itself. An embedding application
(a CLI or a worker) calls ``configure_logging()`` once at
startup to get the standard format at ``TIMECORE_LOG_LEVEL``.
"""

from __future__ import annotations

import logging
import os
from datetime import time
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from timecore/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Zone applied to event records that carry no timezone
    DEFAULT_TIMEZONE: str = "UTC"

    # Default working-hours policy
    WORKDAY_START: time = time(9, 0)
    WORKDAY_END: time = time(17, 0)
    WORKDAYS: list[str] = ["MO", "TU", "WE", "TH", "FR"]

    # RRULE WKST when a rule does not say
    WEEK_START: str = "MO"

    # Attempts made by the async booking helper before giving up
    BOOKING_ATTEMPTS: int = 3

    LOG_LEVEL: str = "INFO"

    @field_validator("WORKDAY_START", "WORKDAY_END", mode="before")
    @classmethod
    def parse_time(cls, v: str | time) -> time:
        if isinstance(v, time):
            return v
        return time.fromisoformat(v.strip())

    @field_validator("WORKDAYS", mode="before")
    @classmethod
    def parse_workdays(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            v = [code.strip() for code in v.split(",") if code.strip()]
        codes = [code.upper() for code in v]
        unknown = [code for code in codes if code not in _WEEKDAY_CODES]
        if unknown:
            raise ValueError(f"Unknown weekday codes: {unknown}")
        return codes

    @field_validator("WEEK_START", mode="before")
    @classmethod
    def parse_week_start(cls, v: str) -> str:
        code = v.strip().upper()
        if code not in _WEEKDAY_CODES:
            raise ValueError(f"Unknown weekday code: {v!r}")
        return code

    @field_validator("BOOKING_ATTEMPTS", mode="before")
    @classmethod
    def parse_attempts(cls, v: str | int) -> int:
        attempts = int(v)
        if attempts < 1:
            raise ValueError("BOOKING_ATTEMPTS must be at least 1")
        return attempts

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v!r}")
        return level


def _load_settings() -> Settings:
    """Load settings from environment, validating every key."""
    return Settings(
        DEFAULT_TIMEZONE=os.getenv("TIMECORE_DEFAULT_TIMEZONE", "UTC"),
        WORKDAY_START=os.getenv("TIMECORE_WORKDAY_START", "09:00"),
        WORKDAY_END=os.getenv("TIMECORE_WORKDAY_END", "17:00"),
        WORKDAYS=os.getenv("TIMECORE_WORKDAYS", "MO,TU,WE,TH,FR"),
        WEEK_START=os.getenv("TIMECORE_WEEK_START", "MO"),
        BOOKING_ATTEMPTS=os.getenv("TIMECORE_BOOKING_ATTEMPTS", "3"),
        LOG_LEVEL=os.getenv("TIMECORE_LOG_LEVEL", "INFO"),
    )


def configure_logging(level: int | str | None = None) -> None:
    """Configure root logging for an embedding application."""
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# Singleton — imported by all other modules as:
#   from timecore.config import settings
settings = _load_settings()
