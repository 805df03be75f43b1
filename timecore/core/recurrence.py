"""
TimeCore — Recurrence Engine.

Turns an EventTemplate and its RecurrenceRule into concrete, timezone
resolved occurrences.

Generation runs in local wall-clock space (dateutil's rrule over naive
datetimes). Each surviving candidate is then resolved to UTC through the
TimezoneResolver, so a daily 09:00 meeting stays at 09:00 local on both
sides of a DST change.

Rules the engine enforces beyond plain RRULE semantics:
- EXDATE-style exceptions are dropped before COUNT is applied, so they
  never consume a slot.
- COUNT is always cumulative from the rule's first occurrence, whatever
  window the caller asks about.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime, time, timedelta

from dateutil import rrule as du_rrule

from timecore.config import settings
from timecore.core.errors import (
    ConflictingTerminators,
    EmptyByWeekday,
    InvalidCount,
    InvalidInterval,
    InvalidMonth,
    InvalidMonthDay,
    InvalidTemplate,
    InvalidTimeRange,
    RuleError,
    UnboundedExpansion,
)
from timecore.core.rrule_codec import parse_rrule
from timecore.core.timezone_resolver import TimezoneResolver, resolver as default_resolver
from timecore.data.models import (
    EventTemplate,
    Frequency,
    Occurrence,
    RecurrenceRule,
    TimeInterval,
    Weekday,
)

logger = logging.getLogger(__name__)

_FREQUENCIES = {
    Frequency.DAILY: du_rrule.DAILY,
    Frequency.WEEKLY: du_rrule.WEEKLY,
    Frequency.MONTHLY: du_rrule.MONTHLY,
    Frequency.YEARLY: du_rrule.YEARLY,
}

_WEEKDAYS = (
    du_rrule.MO, du_rrule.TU, du_rrule.WE, du_rrule.TH,
    du_rrule.FR, du_rrule.SA, du_rrule.SU,
)

# Largest meaningful |ordinal| in BYDAY per frequency
_MAX_ORDINAL = {Frequency.MONTHLY: 5, Frequency.YEARLY: 53}

# Longest each month can be, leap years included
_MONTH_LENGTHS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


# ---------------------------------------------------------------------------
# Rule validation
# ---------------------------------------------------------------------------


def validate(rule: RecurrenceRule) -> None:
    """Check a rule's semantics.

    Raises:
        ConflictingTerminators: both UNTIL and COUNT are set.
        InvalidInterval: INTERVAL < 1.
        InvalidCount: COUNT < 1.
        EmptyByWeekday: BYDAY given with no weekdays.
        InvalidMonthDay: a BYMONTHDAY outside [-31,-1] or [1,31], or days
            that none of the BYMONTH months has.
        InvalidMonth: a BYMONTH outside 1..12.
        RuleError: BYDAY ordinals that the frequency cannot honour.
    """
    if rule.until is not None and rule.count is not None:
        raise ConflictingTerminators("UNTIL and COUNT cannot both be set")
    if not isinstance(rule.interval, int) or rule.interval < 1:
        raise InvalidInterval(f"INTERVAL must be >= 1, got {rule.interval!r}")
    if rule.count is not None and rule.count < 1:
        raise InvalidCount(f"COUNT must be >= 1, got {rule.count!r}")

    if rule.by_weekday is not None:
        if not rule.by_weekday:
            raise EmptyByWeekday("BYDAY lists no weekdays")
        for entry in rule.by_weekday:
            if entry.ordinal is None:
                continue
            limit = _MAX_ORDINAL.get(rule.frequency)
            if limit is None:
                raise RuleError(
                    f"BYDAY ordinal {entry.ordinal}{entry.weekday.value} needs FREQ=MONTHLY or YEARLY"
                )
            if entry.ordinal == 0 or abs(entry.ordinal) > limit:
                raise RuleError(
                    f"BYDAY ordinal {entry.ordinal} out of range for FREQ={rule.frequency.value}"
                )

    if rule.by_month_day is not None:
        if not rule.by_month_day:
            raise InvalidMonthDay("BYMONTHDAY lists no days")
        for day in rule.by_month_day:
            if day == 0 or not -31 <= day <= 31:
                raise InvalidMonthDay(f"BYMONTHDAY {day} outside [-31,-1] and [1,31]")

    if rule.by_month is not None:
        if not rule.by_month:
            raise InvalidMonth("BYMONTH lists no months")
        for month in rule.by_month:
            if not 1 <= month <= 12:
                raise InvalidMonth(f"BYMONTH {month} outside 1..12")

    if rule.by_month and rule.by_month_day:
        longest = max(_MONTH_LENGTHS[month - 1] for month in rule.by_month)
        if all(abs(day) > longest for day in rule.by_month_day):
            raise InvalidMonthDay(
                f"BYMONTHDAY {list(rule.by_month_day)} never occurs in BYMONTH {list(rule.by_month)}"
            )


def parse_template_rule(text: str) -> RecurrenceRule:
    """Parse RRULE text and validate it in one step."""
    rule = parse_rrule(text)
    validate(rule)
    return rule


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _require_aware(name: str, value: datetime | None) -> None:
    if value is not None and (value.tzinfo is None or value.utcoffset() is None):
        raise InvalidTimeRange(f"{name} must be timezone-aware: {value!r}")


class RecurrenceEngine:
    """Expands event templates into ordered occurrence sequences.

    Stateless: every call is a pure function of its arguments and the
    tz database behind the resolver, so instances can be shared freely.
    """

    def __init__(self, tz_resolver: TimezoneResolver | None = None) -> None:
        self._resolver = tz_resolver or default_resolver

    # -- checks ------------------------------------------------------------

    def check_template(self, template: EventTemplate) -> None:
        """Validate zone, times, overrides and rule of a template.

        Raises:
            InvalidTimezone: unknown zone id (checked first).
            InvalidTemplate: anything else inconsistent; a failing rule is
                chained as ``__cause__``.
        """
        self._resolver.require_zone(template.timezone)

        for name in ("start_local", "end_local"):
            if getattr(template, name).tzinfo is not None:
                raise InvalidTemplate(f"Template {template.id!r}: {name} must be wall-clock (naive)")
        if template.end_local <= template.start_local:
            raise InvalidTemplate(f"Template {template.id!r}: end must be after start")

        for day, (start, end) in template.overrides.items():
            if start.date() != day:
                raise InvalidTemplate(
                    f"Template {template.id!r}: override for {day} starts on {start.date()}"
                )
            if end <= start:
                raise InvalidTemplate(f"Template {template.id!r}: override for {day} ends before it starts")

        if template.recurrence is not None:
            try:
                validate(template.recurrence)
            except RuleError as exc:
                raise InvalidTemplate(f"Template {template.id!r}: {exc}") from exc

    # -- generation --------------------------------------------------------

    def _candidates(self, template: EventTemplate, horizon: datetime | None) -> Iterator[datetime]:
        """Wall-clock starts produced by the rule, before exceptions and COUNT.

        ``horizon`` is a wall-clock cut-off; dateutil stops there instead of
        searching on for dates that may never come.
        """
        rule = template.recurrence
        week_start = rule.week_start or Weekday(settings.WEEK_START)
        kwargs: dict = {
            "dtstart": template.start_local,
            "interval": rule.interval,
            "wkst": _WEEKDAYS[week_start.index],
        }
        if rule.by_weekday:
            kwargs["byweekday"] = [
                _WEEKDAYS[entry.weekday.index](entry.ordinal)
                if entry.ordinal is not None
                else _WEEKDAYS[entry.weekday.index]
                for entry in rule.by_weekday
            ]
        if rule.by_month_day:
            kwargs["bymonthday"] = list(rule.by_month_day)
        if rule.by_month:
            kwargs["bymonth"] = list(rule.by_month)

        # UNTIL is an inclusive local date
        until = datetime.combine(rule.until, time.max) if rule.until is not None else None
        if horizon is not None and (until is None or horizon < until):
            until = horizon
        if until is not None:
            kwargs["until"] = until
        return iter(du_rrule.rrule(_FREQUENCIES[rule.frequency], **kwargs))

    def _horizon(self, template: EventTemplate, range_end: datetime | None) -> datetime | None:
        """Last wall-clock moment that can still start before ``range_end``."""
        if range_end is None:
            return None
        # One spare day absorbs any UTC offset between the zone and range_end.
        last_day = self._resolver.to_local(range_end, template.timezone).date() + timedelta(days=1)
        return datetime.combine(last_day, time.max)

    def _local_slots(
        self, template: EventTemplate, horizon: datetime | None,
    ) -> Iterator[tuple[datetime, datetime, bool]]:
        """Yield (start_local, end_local, is_exception) after exceptions and COUNT.

        COUNT is applied to the full sequence from the rule's first date;
        the horizon only cuts the tail off.
        """
        rule = template.recurrence
        if rule is None:
            yield template.start_local, template.end_local, False
            return

        duration = template.duration
        produced = 0
        for candidate in self._candidates(template, horizon):
            day = candidate.date()
            if day in rule.exceptions:
                continue
            if day in template.overrides:
                start, end = template.overrides[day]
                yield start, end, True
            else:
                yield candidate, candidate + duration, False
            produced += 1
            if rule.count is not None and produced >= rule.count:
                return

    def _occurrences(
        self, template: EventTemplate, horizon: datetime | None = None,
    ) -> Iterator[Occurrence]:
        zone_id = template.timezone
        for start_local, end_local, is_exception in self._local_slots(template, horizon):
            start = self._resolver.to_instant(start_local, zone_id)
            end = self._resolver.to_instant(end_local, zone_id)
            if end <= start:
                # start was pushed past end by a DST gap; keep the wall-clock length
                end = start + (end_local - start_local)
            yield Occurrence(
                source_event_id=template.id,
                interval=TimeInterval(start=start, end=end),
                is_exception=is_exception,
                created_at=template.created_at,
                priority=template.priority,
            )

    def _check_range(self, range_start: datetime | None, range_end: datetime | None) -> None:
        _require_aware("range_start", range_start)
        _require_aware("range_end", range_end)
        if range_start is not None and range_end is not None and range_start >= range_end:
            raise InvalidTimeRange("range_start must precede range_end")

    # -- public operations -------------------------------------------------

    def expand(
        self,
        template: EventTemplate,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> Iterator[Occurrence]:
        """Lazily yield occurrences whose interval overlaps [range_start, range_end).

        An occurrence that started before ``range_start`` but is still
        running at it is included, the same as in ``occurrences_between``.
        Either bound may be omitted, but something must stop generation:
        ``range_end``, UNTIL or COUNT. Validation happens here, before the
        first item is requested. Calling again with the same arguments
        yields the same sequence.

        Raises:
            InvalidTimezone, InvalidTemplate, UnboundedExpansion,
            InvalidTimeRange (naive or inverted range bounds).
        """
        self.check_template(template)
        self._check_range(range_start, range_end)
        rule = template.recurrence
        if rule is not None and range_end is None and not rule.is_bounded:
            raise UnboundedExpansion(
                f"Template {template.id!r} has no UNTIL or COUNT and no range end was given"
            )
        logger.debug(
            "Expanding %s between %s and %s", template.id, range_start, range_end,
        )
        return self._expand(template, range_start, range_end)

    def _expand(
        self,
        template: EventTemplate,
        range_start: datetime | None,
        range_end: datetime | None,
    ) -> Iterator[Occurrence]:
        for occurrence in self._occurrences(template, self._horizon(template, range_end)):
            if range_end is not None and occurrence.start >= range_end:
                return
            if range_start is not None and occurrence.end <= range_start:
                continue
            yield occurrence

    def next_occurrence(self, template: EventTemplate, after: datetime) -> Occurrence | None:
        """First occurrence starting strictly after ``after``, or None."""
        self.check_template(template)
        _require_aware("after", after)
        for occurrence in self._occurrences(template):
            if occurrence.start > after:
                return occurrence
        return None

    def occurrences_between(
        self,
        template: EventTemplate,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Occurrence]:
        """Occurrences of a recurring template whose interval overlaps the window.

        COUNT is counted from the rule's own first occurrence, not from
        ``range_start``.

        Raises:
            InvalidTemplate: the template has no recurrence, or is invalid.
        """
        if template.recurrence is None:
            raise InvalidTemplate(f"Template {template.id!r} has no recurrence rule")
        self.check_template(template)
        if range_start is None or range_end is None:
            raise InvalidTimeRange("occurrences_between needs both range bounds")
        self._check_range(range_start, range_end)

        result = list(self._expand(template, range_start, range_end))
        logger.debug(
            "%d occurrence(s) of %s between %s and %s",
            len(result), template.id, range_start, range_end,
        )
        return result


# Shared engine bound to the process-wide resolver.
engine = RecurrenceEngine()
