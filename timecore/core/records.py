"""
TimeCore — Event records.

The plain record shape exchanged with the external object store and the
iCal adapter. Records are validated here and turned into EventTemplates;
the zone and the RRULE are checked at this boundary so nothing invalid
reaches expansion.

JSON example:
{
    "id": "standup",
    "startTime": "2026-02-02T09:00:00",
    "endTime": "2026-02-02T09:30:00",
    "timezone": "America/New_York",
    "rrule": "FREQ=WEEKLY;BYDAY=MO;COUNT=3",
    "exdates": ["2026-02-09"]
}
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

from pydantic import BaseModel

from timecore.config import settings
from timecore.core.recurrence import parse_template_rule
from timecore.core.rrule_codec import format_rrule
from timecore.core.timezone_resolver import TimezoneResolver, resolver as default_resolver
from timecore.data.models import EventTemplate

logger = logging.getLogger(__name__)


class EventRecord(BaseModel):
    """Store-side event record. Times are wall-clock in ``timezone``."""

    id: str
    startTime: datetime
    endTime: datetime
    timezone: str | None = None
    rrule: str | None = None
    exdates: list[date] = []
    createdAt: datetime | None = None
    priority: int = 0

    def to_template(self, tz_resolver: TimezoneResolver | None = None) -> EventTemplate:
        """Validate and convert to an EventTemplate.

        A startTime/endTime carrying an offset is converted into the
        record's zone first.

        Raises:
            InvalidTimezone: the zone is not a known IANA identifier.
            RuleError: the rrule text is malformed or invalid.
        """
        tz = tz_resolver or default_resolver
        zone_id = self.timezone or settings.DEFAULT_TIMEZONE
        tz.require_zone(zone_id)

        def wall_clock(value: datetime) -> datetime:
            if value.tzinfo is not None:
                return tz.to_local(value, zone_id)
            return value

        rule = None
        if self.rrule:
            rule = replace(parse_template_rule(self.rrule), exceptions=frozenset(self.exdates))
        elif self.exdates:
            logger.warning("Record %s has exdates but no rrule; ignoring them", self.id)

        return EventTemplate(
            id=self.id,
            start_local=wall_clock(self.startTime),
            end_local=wall_clock(self.endTime),
            timezone=zone_id,
            recurrence=rule,
            created_at=self.createdAt,
            priority=self.priority,
        )

    @classmethod
    def from_template(cls, template: EventTemplate) -> EventRecord:
        """Write a template back; the RRULE text is reproduced verbatim."""
        rule = template.recurrence
        return cls(
            id=template.id,
            startTime=template.start_local,
            endTime=template.end_local,
            timezone=template.timezone,
            rrule=format_rrule(rule) if rule is not None else None,
            exdates=sorted(rule.exceptions) if rule is not None else [],
            createdAt=template.created_at,
            priority=template.priority,
        )
