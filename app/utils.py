# Utility functions for the cadence api

import logging
import json
import datetime
from dateutil import parser

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc


def validate_time_format(time_str):
    """
    Validate time format (ISO 8601) and return as datetime object

    Args:
        time_str: Time string to validate

    Returns:
        datetime: Parsed datetime object if valid, None otherwise
    """
    try:
        return parser.isoparse(time_str)
    except (ValueError, TypeError):
        logger.error(f"Invalid time format: {time_str}")
        return None


def normalize_dt(val):
    """
    Normalize input to a standard datetime object.
    Args:
        val: Input value (datetime, date, ISO 8601 string)
    Returns:
        datetime.datetime: Normalized datetime object
    Raises:
        ValueError: If the value cannot be read as a point in time
    """
    if isinstance(val, datetime.datetime):
        return val
    if isinstance(val, datetime.date):
        return datetime.datetime.combine(val, datetime.time.min)
    if isinstance(val, str):
        dt = validate_time_format(val)
        if dt is None:
            raise ValueError(f"Invalid time format: {val}")
        return dt
    raise ValueError(f"Invalid time argument type: {type(val).__name__}")


def align_to(value, reference):
    """
    Bring value to the same awareness as reference so the two can be compared.

    Naive values are read as UTC. An aware value aligned to a naive reference
    is converted to UTC and stripped of its tzinfo.
    """
    if value is None or reference is None:
        return value
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def to_instant_iso(dt):
    """
    Canonical instant string used as the key for occurrence exceptions,
    e.g. 2024-01-03T09:00:00.000Z. Naive datetimes are read as UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def canonical_instant(value):
    """
    Canonical instant string for a stored exception value, or None when it
    cannot be parsed as a point in time.
    """
    if isinstance(value, datetime.datetime):
        return to_instant_iso(value)
    dt = validate_time_format(value)
    if dt is None:
        return None
    return to_instant_iso(dt)


def list_to_json(lst):
    """
    Convert a list to a JSON string

    Args:
        lst: List to convert

    Returns:
        str: JSON string representation of the list
    """
    return json.dumps(lst) if lst else None


def json_to_list(raw):
    """Read a JSON list column back, tolerating NULL and garbage"""
    if not raw:
        return []
    if isinstance(raw, list):
        return raw
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Discarding unreadable JSON list: {raw!r}")
        return []
    return value if isinstance(value, list) else []
