"""
TimeCore — RRULE codec.

Converts RFC 5545 RRULE text into a typed RecurrenceRule and back.
Raw rule text is only handled here; everything else works on the typed
model.

Round trip: ``format_rrule(parse_rrule(text)) == text`` byte for byte. The
rule's layout remembers parameter order, the optional "RRULE:" prefix and
the literal text of every part, so signs, zero padding, letter case and
UNTIL tokens survive as long as the value they spell is unchanged.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

from timecore.core.errors import RuleSyntaxError
from timecore.data.models import Frequency, RecurrenceRule, RuleLayout, Weekday, WeekdayRule

logger = logging.getLogger(__name__)

_PREFIX = "RRULE:"

# Canonical parameter order for fields a layout does not mention.
_PART_ORDER = ("FREQ", "INTERVAL", "COUNT", "UNTIL", "BYDAY", "BYMONTHDAY", "BYMONTH", "WKST")

_INT_RE = re.compile(r"^[+-]?\d+$")
_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")
_UNTIL_RE = re.compile(r"^(\d{8})(T\d{6}Z?)?$")


def _parse_int(name: str, value: str) -> int:
    if not _INT_RE.match(value):
        raise RuleSyntaxError(f"{name} must be an integer, got {value!r}")
    return int(value)


def _parse_int_list(name: str, value: str) -> tuple[int, ...]:
    if not value:
        raise RuleSyntaxError(f"{name} must list at least one value")
    return tuple(_parse_int(name, item) for item in value.split(","))


def _parse_weekday(value: str) -> Weekday:
    try:
        return Weekday(value)
    except ValueError:
        raise RuleSyntaxError(f"Unknown weekday {value!r}") from None


def _parse_byday(value: str) -> tuple[WeekdayRule, ...]:
    # An empty BYDAY parses; validation rejects it with EmptyByWeekday.
    if not value:
        return ()
    rules: list[WeekdayRule] = []
    for item in value.split(","):
        match = _BYDAY_RE.match(item)
        if not match:
            raise RuleSyntaxError(f"Malformed BYDAY entry {item!r}")
        ordinal_text, code = match.groups()
        ordinal = int(ordinal_text) if ordinal_text else None
        if ordinal == 0:
            raise RuleSyntaxError(f"BYDAY ordinal cannot be zero: {item!r}")
        rules.append(WeekdayRule(weekday=Weekday(code), ordinal=ordinal))
    return tuple(rules)


def _parse_until(value: str) -> date:
    match = _UNTIL_RE.match(value)
    if not match:
        raise RuleSyntaxError(f"Malformed UNTIL value {value!r}")
    try:
        return datetime.strptime(match.group(1), "%Y%m%d").date()
    except ValueError:
        raise RuleSyntaxError(f"UNTIL is not a calendar date: {value!r}") from None


def _parse_frequency(value: str) -> Frequency:
    try:
        return Frequency(value)
    except ValueError:
        raise RuleSyntaxError(f"Unsupported FREQ {value!r}") from None


# Part name -> (RecurrenceRule field, parser of the upper-cased value text).
_PARTS = {
    "FREQ": ("frequency", _parse_frequency),
    "INTERVAL": ("interval", lambda v: _parse_int("INTERVAL", v)),
    "COUNT": ("count", lambda v: _parse_int("COUNT", v)),
    "UNTIL": ("until", _parse_until),
    "BYDAY": ("by_weekday", _parse_byday),
    "BYMONTHDAY": ("by_month_day", lambda v: _parse_int_list("BYMONTHDAY", v)),
    "BYMONTH": ("by_month", lambda v: _parse_int_list("BYMONTH", v)),
    "WKST": ("week_start", _parse_weekday),
}


def parse_rrule(text: str) -> RecurrenceRule:
    """Parse RRULE text such as ``FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE``.

    Only syntax is checked here. Semantic checks (INTERVAL >= 1, UNTIL vs
    COUNT, value ranges) belong to ``recurrence.validate``.

    Raises:
        RuleSyntaxError: unknown, duplicate or malformed parameters.
    """
    if not isinstance(text, str) or not text.strip():
        raise RuleSyntaxError("RRULE text is empty")

    body = text.strip()
    prefix = ""
    if body[:len(_PREFIX)].upper() == _PREFIX:
        prefix, body = body[:len(_PREFIX)], body[len(_PREFIX):]

    fields: dict[str, object] = {}
    order: list[str] = []
    raw_parts: list[str] = []
    for part in body.split(";"):
        name, sep, value = part.partition("=")
        name = name.strip().upper()
        if not sep or not name:
            raise RuleSyntaxError(f"Malformed RRULE part {part!r} in {text!r}")
        if name not in _PARTS:
            raise RuleSyntaxError(f"Unsupported RRULE part {name!r}")
        if name in order:
            raise RuleSyntaxError(f"Duplicate RRULE part {name!r}")
        field_name, parser = _PARTS[name]
        fields[field_name] = parser(value.strip().upper())
        order.append(name)
        raw_parts.append(part)

    if "FREQ" not in order:
        raise RuleSyntaxError(f"RRULE has no FREQ: {text!r}")

    rule = RecurrenceRule(
        **fields,
        layout=RuleLayout(order=tuple(order), raw_parts=tuple(raw_parts), prefix=prefix),
    )
    logger.debug("Parsed RRULE %r into %s", text, rule)
    return rule


def _format_byday(rules: tuple[WeekdayRule, ...]) -> str:
    return ",".join(
        f"{r.ordinal}{r.weekday.value}" if r.ordinal is not None else r.weekday.value
        for r in rules
    )


def _raw_part(rule: RecurrenceRule, name: str) -> str | None:
    """The part as originally written, if it still means the rule's current value."""
    layout = rule.layout
    if layout is None or name not in layout.order or len(layout.raw_parts) != len(layout.order):
        return None
    raw = layout.raw_parts[layout.order.index(name)]
    field_name, parser = _PARTS[name]
    try:
        value = parser(raw.partition("=")[2].strip().upper())
    except RuleSyntaxError:
        return None
    return raw if value == getattr(rule, field_name) else None


def format_rrule(rule: RecurrenceRule) -> str:
    """Serialize a rule to RRULE text (without EXDATE; exceptions travel separately).

    Parts whose value is unchanged since parsing are written exactly as they
    were read (case, signs, zero padding); changed or new parts use the
    canonical upper-case form.
    """
    layout = rule.layout
    written = layout.order if layout is not None else ()

    texts: dict[str, str] = {"FREQ": rule.frequency.value}
    if rule.interval != 1 or "INTERVAL" in written:
        texts["INTERVAL"] = str(rule.interval)
    if rule.count is not None:
        texts["COUNT"] = str(rule.count)
    if rule.until is not None:
        texts["UNTIL"] = rule.until.strftime("%Y%m%d")
    if rule.by_weekday is not None:
        texts["BYDAY"] = _format_byday(rule.by_weekday)
    if rule.by_month_day is not None:
        texts["BYMONTHDAY"] = ",".join(str(d) for d in rule.by_month_day)
    if rule.by_month is not None:
        texts["BYMONTH"] = ",".join(str(m) for m in rule.by_month)
    if rule.week_start is not None:
        texts["WKST"] = rule.week_start.value

    order = [name for name in written if name in texts]
    order += [name for name in _PART_ORDER if name in texts and name not in order]

    body = ";".join(_raw_part(rule, name) or f"{name}={texts[name]}" for name in order)
    if layout is not None and layout.prefix:
        return layout.prefix + body
    return body
