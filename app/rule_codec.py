# Recurrence rule text <-> RecurrenceRule

import logging
import calendar
import datetime
import re
from typing import Optional, List, Tuple
import icalendar
from dateutil import parser
import schemas
import utils
from schemas import Frequency, Ends

logger = logging.getLogger(__name__)

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_FREQ_CODES = {
    Frequency.DAILY: "DAILY",
    Frequency.WEEKLY: "WEEKLY",
    Frequency.MONTHLY: "MONTHLY",
    Frequency.YEARLY: "YEARLY",
}
_FREQ_BY_CODE = {code: freq for freq, code in _FREQ_CODES.items()}

_UNITS = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}

_ORDINALS = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", -1: "last"}

_BYDAY_PATTERN = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")

_PREFIX = "RRULE:"


def _split_prefix(text: str) -> Tuple[str, str]:
    """Separate an optional RRULE: prefix from the rule body"""
    stripped = text.strip()
    if stripped.upper().startswith(_PREFIX):
        return stripped[:len(_PREFIX)], stripped[len(_PREFIX):]
    return "", stripped


def format_until(dt: datetime.datetime) -> str:
    """UNTIL value in basic ISO 8601 form; aware instants are written in UTC"""
    if dt.tzinfo is not None:
        return dt.astimezone(utils.UTC).strftime("%Y%m%dT%H%M%SZ")
    return dt.strftime("%Y%m%dT%H%M%S")


def _parse_until(value: str) -> datetime.datetime:
    """Read an UNTIL value; a bare date means the end of that day"""
    value = value.strip()
    parsed = parser.isoparse(value)
    if "T" not in value.upper():
        return datetime.datetime.combine(parsed.date(), datetime.time(23, 59, 59))
    return parsed


def _split_weekday(value) -> Tuple[Optional[int], int]:
    """Split a BYDAY entry like 2TU or -1FR into (ordinal, weekday index)"""
    match = _BYDAY_PATTERN.match(str(value).strip().upper())
    if not match:
        raise ValueError(f"Unknown weekday: {value}")
    ordinal = int(match.group(1)) if match.group(1) else None
    return ordinal, WEEKDAY_CODES.index(match.group(2))


def _first_int(recur, key: str) -> Optional[int]:
    values = recur.get(key)
    if not values:
        return None
    if len(values) > 1:
        logger.debug(f"Only the first {key} value is used, dropping {values[1:]}")
    return int(values[0])


def _in_range(value: Optional[int], low: int, high: int, key: str) -> Optional[int]:
    if value is None or low <= value <= high:
        return value
    logger.debug(f"Dropping unsupported {key}={value}")
    return None


def encode_rule(rule: schemas.RecurrenceRule) -> str:
    """Write a RecurrenceRule in canonical key order"""
    parts = [f"FREQ={_FREQ_CODES[rule.frequency]}", f"INTERVAL={rule.interval}"]
    if rule.days_of_week:
        parts.append("BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in rule.days_of_week))
    if rule.set_pos is not None:
        parts.append(f"BYDAY={WEEKDAY_CODES[rule.set_pos_weekday]}")
    if rule.day_of_month is not None:
        parts.append(f"BYMONTHDAY={rule.day_of_month}")
    if rule.year_day_of_month is not None:
        parts.append(f"BYMONTHDAY={rule.year_day_of_month}")
    if rule.month is not None:
        parts.append(f"BYMONTH={rule.month}")
    if rule.set_pos is not None:
        parts.append(f"BYSETPOS={rule.set_pos}")
    if rule.ends == Ends.ON:
        parts.append(f"UNTIL={format_until(rule.until)}")
    elif rule.ends == Ends.AFTER:
        parts.append(f"COUNT={rule.count}")
    return ";".join(parts)


def generate_rule(options, anchor_start: datetime.datetime) -> str:
    """
    Encode a repeat pattern chosen in a form into rule text.

    Args:
        options: RecurrenceOptions (or a dict of its fields)
        anchor_start: Start of the first occurrence; supplies the weekday,
            day of month and month when the options leave them unset

    Returns:
        str: Rule text such as FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE;COUNT=5

    Raises:
        ValueError: If the options hold out-of-range values
    """
    if isinstance(options, dict):
        options = schemas.RecurrenceOptions(**options)
    rule = schemas.RecurrenceRule(**options.model_dump())
    return encode_rule(rule.with_defaults(anchor_start))


def parse_rule(text: Optional[str], anchor_start: Optional[datetime.datetime] = None) -> Optional[schemas.RecurrenceRule]:
    """
    Decode rule text, tolerating hand-edited input.

    Missing INTERVAL means 1, unknown keys and key order are ignored, and fields
    that do not fit the frequency are dropped. Never raises.

    Args:
        text: Rule text, with or without an RRULE: prefix
        anchor_start: When given, unset weekday/day/month fields are filled from it

    Returns:
        RecurrenceRule, or None if the text is empty or cannot be understood
    """
    if not text or not isinstance(text, str):
        return None
    _, body = _split_prefix(text)

    # UNTIL is read separately so extended ISO forms are accepted as well
    until = None
    kept: List[str] = []
    try:
        for token in body.split(";"):
            key, _, value = token.partition("=")
            if key.strip().upper() == "UNTIL":
                until = _parse_until(value)
            elif token.strip():
                kept.append(token.strip())
        recur = icalendar.prop.vRecur.from_ical(";".join(kept))
        rule = _rule_from_recur(recur, until)
    except (ValueError, TypeError, KeyError) as e:
        logger.debug(f"Unparseable recurrence rule {text!r}: {e}")
        return None

    if rule is not None and anchor_start is not None:
        rule = rule.with_defaults(anchor_start)
    return rule


def _rule_from_recur(recur, until: Optional[datetime.datetime]) -> Optional[schemas.RecurrenceRule]:
    freq_values = recur.get("FREQ")
    if not freq_values:
        return None
    frequency = _FREQ_BY_CODE.get(str(freq_values[0]).upper())
    if frequency is None:
        logger.debug(f"Unsupported frequency {freq_values[0]}")
        return None

    interval = _first_int(recur, "INTERVAL")
    data = {"frequency": frequency, "interval": interval if interval is not None else 1}

    byday = [_split_weekday(v) for v in recur.get("BYDAY") or []]
    bymonthday = _in_range(_first_int(recur, "BYMONTHDAY"), 1, 31, "BYMONTHDAY")
    bymonth = _in_range(_first_int(recur, "BYMONTH"), 1, 12, "BYMONTH")
    bysetpos = _first_int(recur, "BYSETPOS")

    if frequency == Frequency.WEEKLY:
        data["days_of_week"] = [weekday for _, weekday in byday]
    elif frequency in (Frequency.MONTHLY, Frequency.YEARLY):
        if len(byday) == 1:
            ordinal, weekday = byday[0]
            position = ordinal if ordinal is not None else bysetpos
            if position in (-1, 1, 2, 3, 4):
                data["set_pos"] = position
                data["set_pos_weekday"] = weekday
            else:
                logger.debug(f"Dropping unsupported weekday position {position}")
        if frequency == Frequency.MONTHLY:
            data["day_of_month"] = bymonthday
        else:
            data["month"] = bymonth
            data["year_day_of_month"] = bymonthday

    count = _first_int(recur, "COUNT")
    if count is not None:
        if count < 1:
            raise ValueError(f"COUNT must be positive, got {count}")
        data["ends"] = Ends.AFTER
        data["count"] = count
    elif until is not None:
        data["ends"] = Ends.ON
        data["until"] = until
    else:
        data["ends"] = Ends.NEVER

    return schemas.RecurrenceRule(**data)


def clamp_rule_until(text: str, before_instant) -> str:
    """
    End a rule just before a cut-off instant.

    The rule keeps its keys, order and values; COUNT and any previous UNTIL are
    dropped and UNTIL is set one second before the cut-off. A cut-off at or before
    the series anchor yields a rule with no occurrences, which is a valid result.

    Args:
        text: Existing rule text
        before_instant: First instant that must no longer be part of the series

    Returns:
        str: The clamped rule text, or the input unchanged if it is unparseable
    """
    if parse_rule(text) is None:
        logger.warning(f"Not clamping unparseable recurrence rule {text!r}")
        return text
    before_instant = utils.normalize_dt(before_instant)
    until = before_instant - datetime.timedelta(seconds=1)

    prefix, body = _split_prefix(text)
    parts = []
    for token in body.split(";"):
        key = token.partition("=")[0].strip().upper()
        if token.strip() and key not in ("COUNT", "UNTIL"):
            parts.append(token.strip())
    parts.append(f"UNTIL={format_until(until)}")
    return prefix + ";".join(parts)


def with_count(text: str, count: int) -> str:
    """Replace the COUNT of a COUNT-bounded rule, keeping everything else as written"""
    prefix, body = _split_prefix(text)
    parts = []
    for token in body.split(";"):
        key = token.partition("=")[0].strip().upper()
        if key == "COUNT":
            parts.append(f"COUNT={count}")
        elif token.strip():
            parts.append(token.strip())
    return prefix + ";".join(parts)


def _day_name(weekday: int) -> str:
    return calendar.day_name[weekday]


def describe_rule(text: Optional[str], anchor_start: Optional[datetime.datetime]) -> str:
    """
    Human readable summary, e.g. 'every 2 weeks on Monday, Friday, 5 times'.
    Without an anchor, parts the rule leaves to the anchor are left out.
    """
    rule = parse_rule(text, anchor_start)
    if rule is None:
        return "Repeats"

    unit = _UNITS[rule.frequency]
    summary = f"every {unit}" if rule.interval == 1 else f"every {rule.interval} {unit}s"
    month = calendar.month_name[rule.month] if rule.month is not None else None

    if rule.frequency == Frequency.WEEKLY:
        if rule.days_of_week:
            summary += " on " + ", ".join(_day_name(d) for d in rule.days_of_week)
    elif rule.set_pos is not None:
        summary += f" on the {_ORDINALS[rule.set_pos]} {_day_name(rule.set_pos_weekday)}"
        if rule.frequency == Frequency.YEARLY and month:
            summary += f" of {month}"
    elif rule.frequency == Frequency.MONTHLY:
        if rule.day_of_month is not None:
            summary += f" on day {rule.day_of_month}"
    elif rule.frequency == Frequency.YEARLY:
        if month and rule.year_day_of_month is not None:
            summary += f" on {month} {rule.year_day_of_month}"
        elif month:
            summary += f" in {month}"
        elif rule.year_day_of_month is not None:
            summary += f" on day {rule.year_day_of_month}"

    if rule.ends == Ends.ON:
        summary += f", until {rule.until.strftime('%B')} {rule.until.day}, {rule.until.year}"
    elif rule.ends == Ends.AFTER:
        summary += ", once" if rule.count == 1 else f", {rule.count} times"
    return summary
