"""Error taxonomy for the scheduling core.

Every failure describes exactly one malformed input or one detected race.
Nothing here is fatal; callers catch what they can fix.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from timecore.data.models import TimeInterval


class SchedulingError(Exception):
    """Base class for every error raised by the core."""


class InvalidTimeRange(SchedulingError, ValueError):
    """Raised when an interval is empty, inverted or not timezone-aware."""


# ---------------------------------------------------------------------------
# Recurrence rules
# ---------------------------------------------------------------------------


class RuleError(SchedulingError):
    """Raised when a recurrence rule is malformed. Always caller-fixable."""


class RuleSyntaxError(RuleError):
    """Raised when RRULE text cannot be parsed."""


class ConflictingTerminators(RuleError):
    """Raised when a rule sets both UNTIL and COUNT."""


class InvalidInterval(RuleError):
    """Raised when INTERVAL is below 1."""


class InvalidCount(RuleError):
    """Raised when COUNT is below 1."""


class EmptyByWeekday(RuleError):
    """Raised when BYDAY is present but lists no weekdays."""


class InvalidMonthDay(RuleError):
    """Raised when a BYMONTHDAY value is outside [-31,-1] or [1,31]."""


class InvalidMonth(RuleError):
    """Raised when a BYMONTH value is outside 1..12."""


# ---------------------------------------------------------------------------
# Templates, zones, expansion
# ---------------------------------------------------------------------------


class InvalidTimezone(SchedulingError):
    """Raised when a zone id is not a recognized IANA identifier."""

    def __init__(self, zone_id: str) -> None:
        super().__init__(f"Unknown IANA timezone: {zone_id!r}")
        self.zone_id = zone_id


class InvalidTemplate(SchedulingError):
    """Raised when an event template is structurally inconsistent."""


class UnboundedExpansion(SchedulingError):
    """Raised when expansion has no range end, UNTIL or COUNT to stop it."""


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


class BookingError(SchedulingError):
    """Base class for booking failures."""


class SlotNoLongerFree(BookingError):
    """Raised when a slot collides with busy time at booking time."""

    def __init__(self, slot: TimeInterval, collisions: list[TimeInterval]) -> None:
        super().__init__(
            f"Slot {slot.start.isoformat()}–{slot.end.isoformat()} "
            f"overlaps {len(collisions)} busy interval(s)"
        )
        self.slot = slot
        self.collisions = collisions


class InvalidBookingTransition(BookingError):
    """Raised when a booking is moved to a status its state forbids."""
