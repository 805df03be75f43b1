"""Shared test fixtures and configuration.

Sets deterministic environment variables before any timecore import so
settings never depend on a developer's .env, and provides shared engines.
"""

import os

# Patch env vars BEFORE any timecore imports
os.environ.setdefault("TIMECORE_DEFAULT_TIMEZONE", "UTC")
os.environ.setdefault("TIMECORE_WORKDAY_START", "09:00")
os.environ.setdefault("TIMECORE_WORKDAY_END", "17:00")
os.environ.setdefault("TIMECORE_WORKDAYS", "MO,TU,WE,TH,FR")
os.environ.setdefault("TIMECORE_WEEK_START", "MO")
os.environ.setdefault("TIMECORE_BOOKING_ATTEMPTS", "3")

import pytest


@pytest.fixture
def tz_resolver():
    """Return a fresh TimezoneResolver."""
    from timecore.core.timezone_resolver import TimezoneResolver
    return TimezoneResolver()


@pytest.fixture
def recurrence_engine(tz_resolver):
    """Return a RecurrenceEngine bound to the test resolver."""
    from timecore.core.recurrence import RecurrenceEngine
    return RecurrenceEngine(tz_resolver)


@pytest.fixture
def availability(tz_resolver):
    """Return an AvailabilityEngine bound to the test resolver."""
    from timecore.core.availability import AvailabilityEngine
    return AvailabilityEngine(tz_resolver)
