"""Tests for timecore.core.conflict_checker — grouping, classification, alternatives."""

from datetime import datetime, time, timedelta, timezone

import pytest

from timecore.core.conflict_checker import (
    classify,
    find_conflicts,
    has_conflict,
    suggest_alternatives,
)
from timecore.data.models import (
    AvailabilityStatus,
    AvailabilityWindow,
    ConflictKind,
    Occurrence,
    TimeInterval,
    Weekday,
    WorkingHoursRule,
)

BASE = datetime(2026, 2, 2, 9, 0, tzinfo=timezone.utc)  # a Monday


def _span(start_min, end_min):
    """Interval in minutes after BASE."""
    return TimeInterval(BASE + timedelta(minutes=start_min), BASE + timedelta(minutes=end_min))


def _occ(event_id, start_min, end_min, **kwargs):
    return Occurrence(source_event_id=event_id, interval=_span(start_min, end_min), **kwargs)


# ---------------------------------------------------------------------------
# Tests for has_conflict / classify
# ---------------------------------------------------------------------------


class TestHasConflict:
    def test_overlap(self):
        assert has_conflict(_span(0, 60), _span(30, 90)) is True

    def test_contained(self):
        assert has_conflict(_span(0, 120), _span(30, 60)) is True

    def test_disjoint(self):
        assert has_conflict(_span(0, 30), _span(60, 90)) is False

    def test_abutting_does_not_conflict(self):
        assert has_conflict(_span(0, 30), _span(30, 60)) is False
        assert has_conflict(_span(30, 60), _span(0, 30)) is False

    @pytest.mark.parametrize("a, b", [
        ((0, 60), (30, 90)),
        ((0, 30), (30, 60)),
        ((0, 30), (60, 90)),
        ((10, 20), (0, 100)),
        ((0, 10), (0, 10)),
    ])
    def test_symmetric(self, a, b):
        assert has_conflict(_span(*a), _span(*b)) == has_conflict(_span(*b), _span(*a))


class TestClassify:
    def test_identical_is_hard(self):
        assert classify(_span(0, 30), _span(0, 30)) == ConflictKind.HARD

    def test_partial_is_soft(self):
        assert classify(_span(0, 30), _span(15, 45)) == ConflictKind.SOFT

    def test_same_start_different_end_is_soft(self):
        assert classify(_span(0, 30), _span(0, 60)) == ConflictKind.SOFT

    def test_no_overlap(self):
        assert classify(_span(0, 30), _span(30, 60)) is None


# ---------------------------------------------------------------------------
# Tests for find_conflicts
# ---------------------------------------------------------------------------


class TestFindConflicts:
    def test_isolated_occurrence_forms_no_group(self):
        a, b, c = _occ("a", 0, 10), _occ("b", 5, 15), _occ("c", 20, 30)
        groups = find_conflicts([a, b, c])
        assert len(groups) == 1
        assert groups[0].members == (a.occurrence_id, b.occurrence_id)
        assert groups[0].kind == ConflictKind.SOFT

    def test_transitive_merge(self):
        a, b, c = _occ("a", 0, 10), _occ("b", 5, 15), _occ("c", 12, 20)
        groups = find_conflicts([c, a, b])
        assert len(groups) == 1
        group = groups[0]
        assert group.members == (a.occurrence_id, b.occurrence_id, c.occurrence_id)
        # a and c never touch directly
        assert {(p.first, p.second) for p in group.pairs} == {
            (a.occurrence_id, b.occurrence_id),
            (b.occurrence_id, c.occurrence_id),
        }
        assert group.start == a.start
        assert group.end == c.end

    def test_hard_group(self):
        a, b = _occ("a", 0, 30), _occ("b", 0, 30)
        groups = find_conflicts([a, b])
        assert groups[0].kind == ConflictKind.HARD
        assert groups[0].pairs[0].kind == ConflictKind.HARD

    def test_mixed_group_is_soft(self):
        groups = find_conflicts([_occ("a", 0, 30), _occ("b", 0, 30), _occ("c", 20, 40)])
        assert groups[0].kind == ConflictKind.SOFT

    def test_abutting_chain_has_no_conflict(self):
        assert find_conflicts([_occ("a", 0, 30), _occ("b", 30, 60), _occ("c", 60, 90)]) == []

    def test_groups_ordered_by_start(self):
        late = [_occ("x", 100, 130), _occ("y", 110, 140)]
        early = [_occ("a", 0, 30), _occ("b", 10, 40)]
        groups = find_conflicts(late + early)
        assert [g.start for g in groups] == [BASE, BASE + timedelta(minutes=100)]

    def test_equal_starts_keep_input_order(self):
        first, second = _occ("zeta", 0, 30), _occ("alpha", 0, 45)
        groups = find_conflicts([first, second])
        assert groups[0].members == (first.occurrence_id, second.occurrence_id)

    def test_deterministic(self):
        occs = [_occ("a", 0, 30), _occ("b", 10, 40), _occ("c", 50, 70), _occ("d", 60, 80)]
        assert find_conflicts(occs) == find_conflicts(occs)

    def test_range_filter(self):
        occs = [_occ("a", 0, 30), _occ("b", 10, 40), _occ("c", 200, 230), _occ("d", 210, 240)]
        groups = find_conflicts(occs, range_filter=_span(180, 300))
        assert len(groups) == 1
        assert groups[0].members == (occs[2].occurrence_id, occs[3].occurrence_id)

    def test_empty_input(self):
        assert find_conflicts([]) == []

    def test_no_dominant_without_priorities(self):
        groups = find_conflicts([_occ("a", 0, 30), _occ("b", 10, 40)])
        assert groups[0].dominant_id is None


class TestDominance:
    def test_highest_priority_wins(self):
        a, b = _occ("a", 0, 30), _occ("b", 10, 40)
        groups = find_conflicts([a, b], priorities={"a": 1, "b": 5})
        assert groups[0].dominant_id == b.occurrence_id

    def test_tie_broken_by_earlier_created_at(self):
        a = _occ("a", 0, 30, created_at=datetime(2026, 1, 10, tzinfo=timezone.utc))
        b = _occ("b", 10, 40, created_at=datetime(2026, 1, 5, tzinfo=timezone.utc))
        groups = find_conflicts([a, b], priorities={})
        assert groups[0].dominant_id == b.occurrence_id

    def test_occurrence_priority_used_when_not_mapped(self):
        a = _occ("a", 0, 30, priority=9)
        b = _occ("b", 10, 40)
        groups = find_conflicts([a, b], priorities={"b": 3})
        assert groups[0].dominant_id == a.occurrence_id

    def test_annotation_never_drops_members(self):
        a, b = _occ("a", 0, 30), _occ("b", 10, 40)
        groups = find_conflicts([a, b], priorities={"a": 10})
        assert len(groups[0].members) == 2


# ---------------------------------------------------------------------------
# Tests for suggest_alternatives
# ---------------------------------------------------------------------------


_WORKDAY = WorkingHoursRule(
    daily_start=time(9, 0),
    daily_end=time(17, 0),
    days_of_week=frozenset({Weekday.MO, Weekday.TU, Weekday.WE, Weekday.TH, Weekday.FR}),
    timezone="UTC",
)
_DAY = TimeInterval(BASE, BASE + timedelta(hours=8))  # 09:00–17:00


class TestSuggestAlternatives:
    def test_ordered_by_proximity(self, availability):
        target = _occ("b", 60, 120)               # 10:00–11:00
        occs = [_occ("a", 60, 120), target, _occ("c", 120, 180)]
        slots = suggest_alternatives(
            target.occurrence_id, occs, _WORKDAY, _DAY, engine=availability,
        )
        assert slots == [_span(0, 60), _span(180, 240)]

    def test_slots_keep_target_duration(self, availability):
        target = _occ("b", 60, 105)
        occs = [_occ("a", 60, 120), target]
        slots = suggest_alternatives(target.occurrence_id, occs, _WORKDAY, _DAY, engine=availability)
        assert all(slot.duration == timedelta(minutes=45) for slot in slots)

    def test_tie_prefers_earlier_start(self, availability):
        target = _occ("t", 120, 180)              # 11:00–12:00
        occs = [target, _occ("busy", 60, 240)]    # busy 10:00–13:00
        slots = suggest_alternatives(target.occurrence_id, occs, _WORKDAY, _DAY, engine=availability)
        # 09:00 is 2h before, 13:00 is 2h after
        assert slots[0] == _span(0, 60)
        assert slots[1] == _span(240, 300)

    def test_respects_out_of_office(self, availability):
        target = _occ("b", 60, 120)
        occs = [_occ("a", 60, 120), target]
        ooo = [AvailabilityWindow(_span(0, 60), AvailabilityStatus.OUT_OF_OFFICE)]
        slots = suggest_alternatives(
            target.occurrence_id, occs, _WORKDAY, _DAY,
            availability_windows=ooo, engine=availability,
        )
        assert slots == [_span(120, 180)]

    def test_limit(self, availability):
        target = _occ("b", 60, 120)
        occs = [_occ("a", 60, 120), target, _occ("c", 120, 180)]
        slots = suggest_alternatives(
            target.occurrence_id, occs, _WORKDAY, _DAY, limit=1, engine=availability,
        )
        assert slots == [_span(0, 60)]

    def test_unknown_occurrence(self, availability):
        with pytest.raises(KeyError):
            suggest_alternatives("missing", [], _WORKDAY, _DAY, engine=availability)
