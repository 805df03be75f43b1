"""
TimeCore — Schedule service.

Thin async layer on the caller's side of the core: it pulls fresh event
records from an EventStore, expands them, and drives the pure engines.

This is where the booking retry policy lives. The engines never retry;
``book_first_available`` re-reads the store before every booking attempt
and moves on to the next free slot when the chosen one was taken in the
meantime.

This module is store-agnostic: it depends on the EventStore protocol,
not on a specific implementation.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from timecore.config import settings
from timecore.core.availability import AvailabilityEngine, availability_engine
from timecore.core.errors import SlotNoLongerFree
from timecore.core.intervals import merge
from timecore.core.recurrence import RecurrenceEngine, engine as recurrence_engine
from timecore.core.records import EventRecord
from timecore.ports.event_store import EventStoreError

if TYPE_CHECKING:
    from timecore.data.models import Booking, Occurrence, TimeInterval, WorkingHoursRule
    from timecore.ports.event_store import EventStore

logger = logging.getLogger(__name__)


async def _fetch_records(store: EventStore, range_: TimeInterval) -> list[dict]:
    try:
        return await store.list_events(range_)
    except EventStoreError as exc:
        logger.error("Failed to fetch events for %s: %s", range_, exc)
        raise
    except Exception as exc:
        logger.error("Failed to fetch events for %s: %s", range_, exc)
        raise EventStoreError(str(exc)) from exc


async def load_occurrences(
    store: EventStore,
    range_: TimeInterval,
    expander: RecurrenceEngine | None = None,
) -> list[Occurrence]:
    """Fetch records for ``range_`` and materialize every occurrence overlapping it.

    Malformed records are not skipped: a record the core cannot read would
    otherwise hide busy time. Validation errors propagate to the caller.
    """
    expander = expander or recurrence_engine
    records = await _fetch_records(store, range_)

    occurrences: list[Occurrence] = []
    for raw in records:
        template = EventRecord.model_validate(raw).to_template()
        if template.is_recurring:
            occurrences.extend(expander.occurrences_between(template, range_.start, range_.end))
        else:
            occurrences.extend(expander.expand(template, range_.start, range_.end))
    occurrences.sort(key=lambda occ: occ.start)
    logger.debug("Loaded %d occurrence(s) from %d record(s)", len(occurrences), len(records))
    return occurrences


async def load_busy_intervals(store: EventStore, range_: TimeInterval) -> list[TimeInterval]:
    """Merged busy time inside ``range_`` according to the store right now."""
    return merge(occ.interval for occ in await load_occurrences(store, range_))


async def find_open_slots(
    store: EventStore,
    working_hours: WorkingHoursRule | None,
    range_: TimeInterval,
    duration: timedelta,
    engine: AvailabilityEngine | None = None,
) -> list[TimeInterval]:
    """Free slots of ``duration`` in ``range_`` against the store's current events."""
    busy = await load_busy_intervals(store, range_)
    return (engine or availability_engine).find_free_slots(busy, working_hours, range_, duration)


async def book_with_fresh_state(
    store: EventStore,
    slot: TimeInterval,
    owner_id: str,
    engine: AvailabilityEngine | None = None,
) -> Booking:
    """Re-read busy time for ``slot`` and book it.

    Raises:
        SlotNoLongerFree: the store now has something overlapping the slot.
    """
    busy = await load_busy_intervals(store, slot)
    return (engine or availability_engine).book_slot(slot, busy, owner_id)


async def book_first_available(
    store: EventStore,
    owner_id: str,
    working_hours: WorkingHoursRule | None,
    range_: TimeInterval,
    duration: timedelta,
    attempts: int | None = None,
) -> Booking | None:
    """Book the earliest free slot, retrying when it is taken under us.

    Each attempt recomputes free slots, picks the first, and books it
    against a second, fresh read of the store.

    Returns:
        The PENDING booking, or None when no slot fits at all.

    Raises:
        SlotNoLongerFree: every attempt lost its slot to a concurrent writer.
    """
    attempts = attempts or settings.BOOKING_ATTEMPTS
    for attempt in range(1, attempts + 1):
        slots = await find_open_slots(store, working_hours, range_, duration)
        if not slots:
            logger.info("No free slot of %s for %s in %s", duration, owner_id, range_)
            return None
        try:
            return await book_with_fresh_state(store, slots[0], owner_id)
        except SlotNoLongerFree:
            if attempt == attempts:
                raise
            logger.warning(
                "Slot %s taken while booking for %s (attempt %d/%d); retrying",
                slots[0].start.isoformat(), owner_id, attempt, attempts,
            )
    return None
