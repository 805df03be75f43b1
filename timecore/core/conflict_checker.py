"""
TimeCore — Conflict Detector.

Groups overlapping occurrences, classifies each colliding pair as hard
(identical interval) or soft (partial overlap), and suggests nearby free
slots as alternatives.

The detector is advisory: it never drops, moves or edits an occurrence.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

from timecore.core.availability import AvailabilityEngine, availability_engine
from timecore.data.models import (
    AvailabilityWindow,
    ConflictGroup,
    ConflictKind,
    ConflictPair,
    Occurrence,
    TimeInterval,
    WorkingHoursRule,
)

logger = logging.getLogger(__name__)


def has_conflict(a: TimeInterval, b: TimeInterval) -> bool:
    """Half-open overlap test. Abutting intervals (a.end == b.start) do not conflict."""
    return a.start < b.end and b.start < a.end


def classify(a: TimeInterval, b: TimeInterval) -> ConflictKind | None:
    """HARD for identical intervals, SOFT for partial overlap, None otherwise."""
    if not has_conflict(a, b):
        return None
    return ConflictKind.HARD if a == b else ConflictKind.SOFT


def _dominant(
    members: Sequence[tuple[int, Occurrence]],
    priorities: Mapping[str, int] | None,
) -> str:
    """Highest priority wins; ties go to the earlier created_at, then input order."""

    def rank(entry: tuple[int, Occurrence]) -> tuple:
        position, occ = entry
        priority = occ.priority
        if priorities is not None:
            priority = priorities.get(occ.source_event_id, priority)
        created = occ.created_at
        return (
            -priority,
            created is None,
            created.timestamp() if created is not None else 0.0,
            position,
        )

    return min(members, key=rank)[1].occurrence_id


def _build_group(
    members: list[tuple[int, Occurrence]],
    priorities: Mapping[str, int] | None,
) -> ConflictGroup:
    pairs: list[ConflictPair] = []
    for i, (_, first) in enumerate(members):
        for _, second in members[i + 1:]:
            kind = classify(first.interval, second.interval)
            if kind is not None:
                pairs.append(ConflictPair(first.occurrence_id, second.occurrence_id, kind))

    kind = (
        ConflictKind.HARD
        if all(pair.kind == ConflictKind.HARD for pair in pairs)
        else ConflictKind.SOFT
    )
    return ConflictGroup(
        members=tuple(occ.occurrence_id for _, occ in members),
        kind=kind,
        pairs=tuple(pairs),
        start=min(occ.start for _, occ in members),
        end=max(occ.end for _, occ in members),
        dominant_id=_dominant(members, priorities) if priorities is not None else None,
    )


def find_conflicts(
    occurrences: Iterable[Occurrence],
    range_filter: TimeInterval | None = None,
    priorities: Mapping[str, int] | None = None,
) -> list[ConflictGroup]:
    """Partition overlapping occurrences into conflict groups.

    Overlap is merged transitively: if A overlaps B and B overlaps C, all
    three share a group even when A and C do not touch. Occurrences that
    overlap nothing form no group.

    Args:
        occurrences: Materialized occurrences from any number of events.
        range_filter: Only occurrences overlapping this window take part.
        priorities: Optional source-event-id → priority map. When given,
            each group is annotated with its dominant member.

    Returns:
        Groups ordered by earliest member start; members ordered by start,
        ties kept in input order.
    """
    indexed = [
        (position, occ)
        for position, occ in enumerate(occurrences)
        if range_filter is None or has_conflict(occ.interval, range_filter)
    ]
    indexed.sort(key=lambda entry: (entry[1].start, entry[0]))

    groups: list[ConflictGroup] = []
    current: list[tuple[int, Occurrence]] = []
    current_end: datetime | None = None
    for entry in indexed:
        occ = entry[1]
        if current_end is not None and occ.start < current_end:
            current.append(entry)
            current_end = max(current_end, occ.end)
            continue
        if len(current) > 1:
            groups.append(_build_group(current, priorities))
        current = [entry]
        current_end = occ.end
    if len(current) > 1:
        groups.append(_build_group(current, priorities))

    logger.info("Found %d conflict group(s) among %d occurrence(s)", len(groups), len(indexed))
    return groups


def suggest_alternatives(
    occurrence_id: str,
    occurrences: Sequence[Occurrence],
    working_hours: WorkingHoursRule | None,
    search_range: TimeInterval,
    availability_windows: Iterable[AvailabilityWindow] = (),
    limit: int | None = None,
    engine: AvailabilityEngine | None = None,
) -> list[TimeInterval]:
    """Free slots where a conflicting occurrence could move instead.

    Every other occurrence counts as busy. Candidates come from
    ``AvailabilityEngine.find_free_slots`` with the occurrence's own
    duration, the original window is excluded, and the rest are ordered by
    distance from the original start (ties: earlier start first).

    Raises:
        KeyError: no occurrence has ``occurrence_id``.
    """
    target = next((occ for occ in occurrences if occ.occurrence_id == occurrence_id), None)
    if target is None:
        raise KeyError(occurrence_id)

    busy = [occ.interval for occ in occurrences if occ.occurrence_id != occurrence_id]
    candidates = (engine or availability_engine).find_free_slots(
        busy,
        working_hours,
        search_range,
        target.interval.duration,
        availability_windows=availability_windows,
    )
    original = target.interval
    candidates = [slot for slot in candidates if slot != original]
    candidates.sort(key=lambda slot: (abs(slot.start - original.start), slot.start))
    if limit is not None:
        candidates = candidates[:limit]

    logger.info("Suggested %d alternative(s) for %s", len(candidates), occurrence_id)
    return candidates
