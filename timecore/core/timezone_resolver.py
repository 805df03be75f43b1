"""Timezone resolver — wall-clock time ⇄ absolute instants.

Backed by the IANA database through ``zoneinfo``. The database is
process-wide, read-only data; the resolver only looks zones up.

DST policy (deterministic, never fails):
- A local time inside a spring-forward gap is shifted forward by the gap
  length (02:30 on a US spring-forward day becomes 03:30 local).
- A local time inside a fall-back overlap resolves to the earlier instant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timecore.core.errors import InvalidTimezone

logger = logging.getLogger(__name__)


class LocalTimeKind(str, Enum):
    EXACT = "exact"
    GAP = "gap"              # skipped by a spring-forward transition
    AMBIGUOUS = "ambiguous"  # repeated by a fall-back transition


@dataclass(frozen=True)
class Resolution:
    """An instant plus how its wall-clock input related to DST."""

    instant: datetime
    kind: LocalTimeKind


class TimezoneResolver:
    """Converts between naive wall-clock datetimes and UTC instants."""

    def get_zone(self, zone_id: str) -> ZoneInfo:
        """Return the zone for ``zone_id`` or raise InvalidTimezone."""
        if not isinstance(zone_id, str) or not zone_id.strip():
            raise InvalidTimezone(str(zone_id))
        try:
            return ZoneInfo(zone_id)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise InvalidTimezone(zone_id) from exc

    def validate_zone(self, zone_id: str) -> bool:
        try:
            self.get_zone(zone_id)
        except InvalidTimezone:
            return False
        return True

    def require_zone(self, zone_id: str) -> None:
        """Fail fast at a boundary when ``zone_id`` is unknown."""
        self.get_zone(zone_id)

    def resolve(self, local: datetime, zone_id: str) -> Resolution:
        """Resolve a wall-clock datetime in ``zone_id`` to a UTC instant."""
        zone = self.get_zone(zone_id)
        if local.tzinfo is not None:
            # Already absolute; nothing to interpret.
            return Resolution(local.astimezone(timezone.utc), LocalTimeKind.EXACT)

        # fold=0 applies the offset in force before the transition: in a gap
        # that lands past it by the gap length, in an overlap it is the
        # first (earlier) instant.
        earlier = local.replace(tzinfo=zone, fold=0)
        later = local.replace(tzinfo=zone, fold=1)
        instant = earlier.astimezone(timezone.utc)

        if earlier.utcoffset() == later.utcoffset():
            return Resolution(instant, LocalTimeKind.EXACT)

        round_trip = instant.astimezone(zone).replace(tzinfo=None)
        if round_trip != local:
            logger.warning(
                "Local time %s does not exist in %s; shifted forward to %s",
                local.isoformat(), zone_id, round_trip.isoformat(),
            )
            return Resolution(instant, LocalTimeKind.GAP)

        logger.debug("Local time %s is ambiguous in %s; using earlier instant", local, zone_id)
        return Resolution(instant, LocalTimeKind.AMBIGUOUS)

    def to_instant(self, local: datetime, zone_id: str) -> datetime:
        return self.resolve(local, zone_id).instant

    def to_local(self, instant: datetime, zone_id: str) -> datetime:
        """Return the naive wall-clock datetime of ``instant`` in ``zone_id``."""
        zone = self.get_zone(zone_id)
        if instant.tzinfo is None:
            raise ValueError(f"Instant must be timezone-aware: {instant!r}")
        return instant.astimezone(zone).replace(tzinfo=None)

    def utc_offset(self, local: datetime, zone_id: str) -> timedelta | None:
        """UTC offset applied to ``local`` under the resolver's DST policy."""
        zone = self.get_zone(zone_id)
        return self.to_instant(local, zone_id).astimezone(zone).utcoffset()


# Shared resolver; it holds no state beyond the zoneinfo cache.
resolver = TimezoneResolver()
