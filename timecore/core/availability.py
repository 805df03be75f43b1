"""
TimeCore — Availability Engine.

Computes free/busy windows from busy intervals and a working-hours
policy, finds free slots of a requested length, and books slots with an
explicit re-check against the caller's current busy set.

Booking race: ``book_slot`` only sees the busy intervals it is handed.
Two callers that read availability and then book concurrently can both
succeed unless the caller serializes bookings (single writer, or
re-fetch and retry on SlotNoLongerFree). The engine holds no shared state
and takes no locks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta

from timecore.config import settings
from timecore.core.errors import InvalidBookingTransition, SlotNoLongerFree
from timecore.core.intervals import clip, intersect, merge, subtract
from timecore.core.timezone_resolver import TimezoneResolver, resolver as default_resolver
from timecore.data.models import (
    BOOKING_TRANSITIONS,
    AvailabilityStatus,
    AvailabilityWindow,
    Booking,
    BookingStatus,
    TimeInterval,
    Weekday,
    WorkingHoursRule,
)

logger = logging.getLogger(__name__)

# When explicit windows overlap, the stronger status wins.
_STATUS_PRECEDENCE = {
    AvailabilityStatus.FREE: 0,
    AvailabilityStatus.TENTATIVE: 1,
    AvailabilityStatus.BUSY: 2,
    AvailabilityStatus.OUT_OF_OFFICE: 3,
}


def default_working_hours(timezone: str | None = None) -> WorkingHoursRule:
    """Working hours built from settings (09:00–17:00, Monday–Friday by default)."""
    return WorkingHoursRule(
        daily_start=settings.WORKDAY_START,
        daily_end=settings.WORKDAY_END,
        days_of_week=frozenset(Weekday(code) for code in settings.WORKDAYS),
        timezone=timezone or settings.DEFAULT_TIMEZONE,
    )


class AvailabilityEngine:
    """Free/busy computation and optimistic slot booking."""

    def __init__(self, tz_resolver: TimezoneResolver | None = None) -> None:
        self._resolver = tz_resolver or default_resolver

    def working_hour_windows(
        self,
        working_hours: WorkingHoursRule | None,
        range_: TimeInterval,
    ) -> list[TimeInterval]:
        """Absolute working windows inside ``range_``.

        Each working day is resolved in the rule's own zone, so the windows
        follow local DST changes. ``None`` means the whole range counts.
        """
        if working_hours is None:
            return [range_]

        zone_id = working_hours.timezone
        overnight = working_hours.daily_end <= working_hours.daily_start
        # Start a day early so an overnight shift from the previous day is kept.
        day = self._resolver.to_local(range_.start, zone_id).date() - timedelta(days=1)
        last_day = self._resolver.to_local(range_.end, zone_id).date()

        windows: list[TimeInterval] = []
        while day <= last_day:
            if Weekday.from_date(day) in working_hours.days_of_week:
                end_day = day + timedelta(days=1) if overnight else day
                start = self._resolver.to_instant(
                    datetime.combine(day, working_hours.daily_start), zone_id,
                )
                end = self._resolver.to_instant(
                    datetime.combine(end_day, working_hours.daily_end), zone_id,
                )
                # A window swallowed by a DST gap collapses to nothing.
                if start < end:
                    piece = clip(TimeInterval(start, end), range_)
                    if piece is not None:
                        windows.append(piece)
            day += timedelta(days=1)
        return merge(windows)

    def get_availability(
        self,
        busy_intervals: Iterable[TimeInterval],
        availability_windows: Iterable[AvailabilityWindow],
        working_hours: WorkingHoursRule | None,
        range_: TimeInterval,
    ) -> list[AvailabilityWindow]:
        """Classify ``range_`` into maximal free/busy windows.

        Inside working hours, busy time is BUSY and the rest is FREE.
        Explicit availability windows override that inference over their
        own span, even outside working hours. Time outside working hours
        that no explicit window covers is left out.
        """
        working = self.working_hour_windows(working_hours, range_)
        busy = intersect(busy_intervals, working)
        free = subtract(working, busy)

        explicit: list[AvailabilityWindow] = []
        for window in availability_windows:
            piece = clip(window.interval, range_)
            if piece is not None:
                explicit.append(AvailabilityWindow(piece, window.status))
        overridden = merge(w.interval for w in explicit)

        windows = [
            *(AvailabilityWindow(i, AvailabilityStatus.BUSY) for i in subtract(busy, overridden)),
            *(AvailabilityWindow(i, AvailabilityStatus.FREE) for i in subtract(free, overridden)),
            *_explicit_segments(explicit),
        ]
        windows.sort(key=lambda w: w.interval.start)
        return _coalesce(windows)

    def find_free_slots(
        self,
        busy_intervals: Iterable[TimeInterval],
        working_hours: WorkingHoursRule | None,
        range_: TimeInterval,
        duration: timedelta,
        availability_windows: Iterable[AvailabilityWindow] = (),
    ) -> list[TimeInterval]:
        """One slot of exactly ``duration`` at the start of each free window that fits.

        Earliest first. An empty list means nothing fits; that is not an error.
        """
        if duration <= timedelta(0):
            raise ValueError(f"Slot duration must be positive, got {duration}")

        slots = [
            TimeInterval(window.interval.start, window.interval.start + duration)
            for window in self.get_availability(
                busy_intervals, availability_windows, working_hours, range_,
            )
            if window.status == AvailabilityStatus.FREE and window.interval.duration >= duration
        ]
        logger.debug("Found %d free slot(s) of %s in %s", len(slots), duration, range_)
        return slots

    def book_slot(
        self,
        slot: TimeInterval,
        busy_intervals: Iterable[TimeInterval],
        owner_id: str,
    ) -> Booking:
        """Create a PENDING booking if ``slot`` is still free.

        ``busy_intervals`` must be fetched by the caller right before this
        call; the check is only as fresh as that data.

        Raises:
            SlotNoLongerFree: some busy interval now overlaps the slot.
        """
        collisions = [busy for busy in busy_intervals if slot.overlaps(busy)]
        if collisions:
            logger.info(
                "Booking for %s rejected: slot %s overlaps %d busy interval(s)",
                owner_id, slot.start.isoformat(), len(collisions),
            )
            raise SlotNoLongerFree(slot, collisions)
        logger.info("Booked %s–%s for %s", slot.start.isoformat(), slot.end.isoformat(), owner_id)
        return Booking(interval=slot, owner_id=owner_id, status=BookingStatus.PENDING)

    def confirm_booking(self, booking: Booking) -> Booking:
        return _transition(booking, BookingStatus.CONFIRMED)

    def cancel_booking(self, booking: Booking) -> Booking:
        return _transition(booking, BookingStatus.CANCELLED)


def _transition(booking: Booking, target: BookingStatus) -> Booking:
    if target not in BOOKING_TRANSITIONS[booking.status]:
        raise InvalidBookingTransition(
            f"Cannot move booking from {booking.status.value} to {target.value}"
        )
    return replace(booking, status=target)


def _explicit_segments(explicit: Sequence[AvailabilityWindow]) -> list[AvailabilityWindow]:
    """Flatten overlapping explicit windows; the strongest status wins each span."""
    points = sorted({p for w in explicit for p in (w.interval.start, w.interval.end)})
    segments: list[AvailabilityWindow] = []
    for seg_start, seg_end in zip(points, points[1:]):
        covering = [w.status for w in explicit if w.interval.contains(seg_start)]
        if covering:
            status = max(covering, key=_STATUS_PRECEDENCE.__getitem__)
            segments.append(AvailabilityWindow(TimeInterval(seg_start, seg_end), status))
    return segments


def _coalesce(windows: list[AvailabilityWindow]) -> list[AvailabilityWindow]:
    """Join touching windows that share a status."""
    result: list[AvailabilityWindow] = []
    for window in windows:
        last = result[-1] if result else None
        if last is not None and last.status == window.status and last.interval.end == window.interval.start:
            result[-1] = AvailabilityWindow(
                TimeInterval(last.interval.start, window.interval.end), window.status,
            )
        else:
            result.append(window)
    return result


# Shared engine bound to the process-wide resolver.
availability_engine = AvailabilityEngine()
