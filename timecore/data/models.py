"""
TimeCore — Data Models.

Value objects handed into and out of every engine call. None of them is
mutated after construction; engines return new values instead.
Persistence and identity generation belong to the caller's object store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from timecore.core.errors import InvalidTimeRange


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Weekday(str, Enum):
    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def index(self) -> int:
        """Monday=0 ... Sunday=6, matching date.weekday()."""
        return list(Weekday).index(self)

    @classmethod
    def from_date(cls, d: date) -> Weekday:
        return list(cls)[d.weekday()]


class ConflictKind(str, Enum):
    HARD = "hard"   # identical interval
    SOFT = "soft"   # overlapping, not identical


class AvailabilityStatus(str, Enum):
    FREE = "free"
    BUSY = "busy"
    TENTATIVE = "tentative"
    OUT_OF_OFFICE = "out_of_office"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Allowed booking moves; CANCELLED is terminal.
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True, order=True)
class TimeInterval:
    """A half-open span [start, end) of absolute, UTC-normalized instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        for name in ("start", "end"):
            value = getattr(self, name)
            if value.tzinfo is None or value.utcoffset() is None:
                raise InvalidTimeRange(f"Interval {name} must be timezone-aware: {value!r}")
            object.__setattr__(self, name, value.astimezone(timezone.utc))
        if not self.start < self.end:
            raise InvalidTimeRange(
                f"Interval start must precede end: {self.start.isoformat()} >= {self.end.isoformat()}"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: TimeInterval) -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class WeekdayRule:
    """One BYDAY entry, e.g. MO, 2TU (second Tuesday) or -1FR (last Friday)."""

    weekday: Weekday
    ordinal: int | None = None


@dataclass(frozen=True)
class RuleLayout:
    """How a rule was written, so it can be serialized back verbatim."""

    order: tuple[str, ...]
    # original text of each part, aligned with ``order``
    raw_parts: tuple[str, ...] = ()
    prefix: str = ""


@dataclass(frozen=True)
class RecurrenceRule:
    """Typed form of an RFC 5545 RRULE.

    At most one of ``until`` / ``count`` may be set; neither means the rule
    is unbounded. ``until`` is an inclusive local date. ``exceptions`` are
    local dates removed from the sequence (they never count toward
    ``count``).
    """

    frequency: Frequency
    interval: int = 1
    by_weekday: tuple[WeekdayRule, ...] | None = None
    by_month_day: tuple[int, ...] | None = None
    by_month: tuple[int, ...] | None = None
    week_start: Weekday | None = None
    until: date | None = None
    count: int | None = None
    exceptions: frozenset[date] = frozenset()
    layout: RuleLayout | None = field(default=None, compare=False, repr=False)

    @property
    def is_bounded(self) -> bool:
        return self.until is not None or self.count is not None


@dataclass(frozen=True)
class EventTemplate:
    """First occurrence of an event plus its optional recurrence.

    ``start_local`` / ``end_local`` are naive wall-clock datetimes in
    ``timezone``. ``overrides`` moves single instances: it maps the original
    occurrence date to a replacement (start_local, end_local) on that date.
    """

    id: str
    start_local: datetime
    end_local: datetime
    timezone: str
    recurrence: RecurrenceRule | None = None
    overrides: dict[date, tuple[datetime, datetime]] = field(default_factory=dict, compare=False)
    created_at: datetime | None = None
    priority: int = 0

    @property
    def duration(self) -> timedelta:
        return self.end_local - self.start_local

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


@dataclass(frozen=True)
class Occurrence:
    """A materialized, timezone-resolved instance of an EventTemplate."""

    source_event_id: str
    interval: TimeInterval
    is_exception: bool = False
    created_at: datetime | None = None
    priority: int = 0

    @property
    def occurrence_id(self) -> str:
        return f"{self.source_event_id}@{self.interval.start.isoformat()}"

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


@dataclass(frozen=True)
class ConflictPair:
    """Two directly overlapping occurrences and how they collide."""

    first: str
    second: str
    kind: ConflictKind


@dataclass(frozen=True)
class ConflictGroup:
    """A transitively connected set of overlapping occurrences."""

    members: tuple[str, ...]
    kind: ConflictKind
    pairs: tuple[ConflictPair, ...]
    start: datetime
    end: datetime
    dominant_id: str | None = None


@dataclass(frozen=True)
class AvailabilityWindow:
    interval: TimeInterval
    status: AvailabilityStatus


@dataclass(frozen=True)
class WorkingHoursRule:
    """Daily working window in a zone.

    ``daily_end <= daily_start`` is an overnight shift ending the next day.
    """

    daily_start: time
    daily_end: time
    days_of_week: frozenset[Weekday]
    timezone: str


@dataclass(frozen=True)
class Booking:
    """A reserved slot. Created PENDING by AvailabilityEngine.book_slot."""

    interval: TimeInterval
    owner_id: str
    status: BookingStatus = BookingStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return not BOOKING_TRANSITIONS[self.status]
