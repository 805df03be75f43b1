"""Tests for timecore.core.rrule_codec — RRULE text ⇄ RecurrenceRule."""

from dataclasses import replace
from datetime import date

import pytest

from timecore.core.errors import RuleError, RuleSyntaxError
from timecore.core.rrule_codec import format_rrule, parse_rrule
from timecore.data.models import Frequency, RecurrenceRule, Weekday, WeekdayRule


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseRrule:
    def test_weekly_with_count(self):
        rule = parse_rrule("FREQ=WEEKLY;BYDAY=MO;COUNT=3")
        assert rule.frequency == Frequency.WEEKLY
        assert rule.interval == 1
        assert rule.by_weekday == (WeekdayRule(Weekday.MO),)
        assert rule.count == 3
        assert rule.until is None

    def test_ordinal_weekdays(self):
        rule = parse_rrule("FREQ=MONTHLY;BYDAY=2TU,-1FR")
        assert rule.by_weekday == (
            WeekdayRule(Weekday.TU, 2),
            WeekdayRule(Weekday.FR, -1),
        )

    def test_month_days_and_months(self):
        rule = parse_rrule("FREQ=YEARLY;BYMONTH=3,9;BYMONTHDAY=-1,15")
        assert rule.by_month == (3, 9)
        assert rule.by_month_day == (-1, 15)

    def test_until_date_only(self):
        assert parse_rrule("FREQ=DAILY;UNTIL=20260301").until == date(2026, 3, 1)

    def test_until_utc_datetime(self):
        assert parse_rrule("FREQ=DAILY;UNTIL=20260301T235959Z").until == date(2026, 3, 1)

    def test_prefix_accepted(self):
        rule = parse_rrule("RRULE:FREQ=DAILY;INTERVAL=2")
        assert rule.frequency == Frequency.DAILY
        assert rule.interval == 2

    def test_names_are_case_insensitive(self):
        rule = parse_rrule("freq=weekly;byday=mo,we")
        assert rule.frequency == Frequency.WEEKLY
        assert [entry.weekday for entry in rule.by_weekday] == [Weekday.MO, Weekday.WE]

    def test_week_start(self):
        assert parse_rrule("FREQ=WEEKLY;WKST=SU").week_start == Weekday.SU

    def test_empty_byday_parses_for_validation_to_reject(self):
        assert parse_rrule("FREQ=WEEKLY;BYDAY=").by_weekday == ()

    def test_semantics_not_checked_here(self):
        # INTERVAL=0 is a validation error, not a syntax error
        assert parse_rrule("FREQ=DAILY;INTERVAL=0").interval == 0

    @pytest.mark.parametrize("text", [
        "",
        "INTERVAL=2",
        "FREQ=HOURLY",
        "FREQ=DAILY;FREQ=DAILY",
        "FREQ=DAILY;BYSETPOS=1",
        "FREQ=DAILY;COUNT=abc",
        "FREQ=DAILY;BYDAY=XX",
        "FREQ=MONTHLY;BYDAY=0MO",
        "FREQ=DAILY;UNTIL=2026-03-01",
        "FREQ=DAILY;UNTIL=20261340",
        "FREQ=DAILY;;COUNT=2",
        "FREQ=DAILY;BYMONTHDAY=",
    ])
    def test_malformed_text(self, text):
        with pytest.raises(RuleSyntaxError):
            parse_rrule(text)

    def test_syntax_error_is_rule_error(self):
        with pytest.raises(RuleError):
            parse_rrule("FREQ=NEVER")


# ---------------------------------------------------------------------------
# Formatting and round trip
# ---------------------------------------------------------------------------


class TestFormatRrule:
    @pytest.mark.parametrize("text", [
        "FREQ=WEEKLY;BYDAY=MO;COUNT=3",
        "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR",
        "RRULE:FREQ=MONTHLY;INTERVAL=1;BYDAY=-1FR;UNTIL=20261231T235959Z",
        "FREQ=YEARLY;BYMONTH=3;BYMONTHDAY=15;WKST=SU",
        "BYDAY=TU,TH;FREQ=WEEKLY",
        "FREQ=MONTHLY;BYMONTHDAY=-1,15;COUNT=12",
        "FREQ=DAILY;UNTIL=20260301",
    ])
    def test_round_trip_is_byte_identical(self, text):
        assert format_rrule(parse_rrule(text)) == text

    @pytest.mark.parametrize("text", [
        "FREQ=MONTHLY;BYDAY=+2TU",
        "FREQ=WEEKLY;INTERVAL=02",
        "FREQ=MONTHLY;BYMONTHDAY=+5",
        "freq=weekly;byday=mo",
        "rrule:Freq=Daily;Count=003",
    ])
    def test_written_form_survives_round_trip(self, text):
        assert format_rrule(parse_rrule(text)) == text

    def test_changed_value_uses_canonical_form(self):
        rule = parse_rrule("freq=weekly;interval=02;byday=mo")
        changed = replace(rule, interval=3)
        assert format_rrule(changed) == "freq=weekly;INTERVAL=3;byday=mo"

    def test_rule_built_in_code_uses_canonical_order(self):
        rule = RecurrenceRule(
            frequency=Frequency.WEEKLY,
            interval=2,
            by_weekday=(WeekdayRule(Weekday.MO),),
            count=5,
        )
        assert format_rrule(rule) == "FREQ=WEEKLY;INTERVAL=2;COUNT=5;BYDAY=MO"

    def test_default_interval_omitted(self):
        assert format_rrule(RecurrenceRule(frequency=Frequency.DAILY)) == "FREQ=DAILY"

    def test_changed_until_drops_original_token(self):
        rule = parse_rrule("FREQ=DAILY;UNTIL=20260301T120000Z")
        changed = replace(rule, until=date(2027, 1, 1))
        assert format_rrule(changed) == "FREQ=DAILY;UNTIL=20270101"

    def test_added_field_is_appended(self):
        rule = parse_rrule("BYDAY=MO;FREQ=WEEKLY")
        assert format_rrule(replace(rule, count=4)) == "BYDAY=MO;FREQ=WEEKLY;COUNT=4"

    def test_semantic_fields_survive_round_trip(self):
        rule = parse_rrule("FREQ=MONTHLY;BYDAY=2TU;COUNT=6")
        assert parse_rrule(format_rrule(rule)) == rule
