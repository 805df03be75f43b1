"""Interval-set algebra over half-open TimeIntervals.

Set operations take plain iterables and return new sorted, disjoint lists.
No I/O: this module only transforms data.
"""

from __future__ import annotations

from collections.abc import Iterable

from timecore.data.models import TimeInterval


def merge(intervals: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Union of intervals as a sorted list of disjoint, non-abutting spans."""
    merged: list[TimeInterval] = []
    for interval in sorted(intervals, key=lambda i: (i.start, i.end)):
        if merged and interval.start <= merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = TimeInterval(merged[-1].start, interval.end)
        else:
            merged.append(interval)
    return merged


def clip(interval: TimeInterval, bounds: TimeInterval) -> TimeInterval | None:
    """Part of ``interval`` inside ``bounds``, or None if they do not overlap."""
    start = max(interval.start, bounds.start)
    end = min(interval.end, bounds.end)
    if start >= end:
        return None
    return TimeInterval(start, end)


def intersect(a: Iterable[TimeInterval], b: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Intersection of two interval sets."""
    left, right = merge(a), merge(b)
    result: list[TimeInterval] = []
    i = j = 0
    while i < len(left) and j < len(right):
        piece = clip(left[i], right[j])
        if piece is not None:
            result.append(piece)
        if left[i].end <= right[j].end:
            i += 1
        else:
            j += 1
    return result


def subtract(base: Iterable[TimeInterval], removed: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Parts of ``base`` not covered by ``removed``."""
    cuts = merge(removed)
    result: list[TimeInterval] = []
    for interval in merge(base):
        cursor = interval.start
        for cut in cuts:
            if cut.end <= cursor:
                continue
            if cut.start >= interval.end:
                break
            if cut.start > cursor:
                result.append(TimeInterval(cursor, cut.start))
            cursor = max(cursor, cut.end)
            if cursor >= interval.end:
                break
        if cursor < interval.end:
            result.append(TimeInterval(cursor, interval.end))
    return result
