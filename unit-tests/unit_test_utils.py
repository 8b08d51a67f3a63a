# Shared utility functions for unit tests

import sys
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'app'))
import schemas

UTC = timezone.utc


def utc(*args):
    """Shorthand for an aware UTC datetime"""
    return datetime(*args, tzinfo=UTC)


def make_series(**overrides):
    """Daily 09:00-09:30 UTC standup starting Monday 2024-01-01, overridable per test"""
    fields = {
        "id": 1,
        "title": "Standup",
        "start": utc(2024, 1, 1, 9, 0),
        "end": utc(2024, 1, 1, 9, 30),
        "recurrence": "FREQ=DAILY;INTERVAL=1",
        "exceptions": [],
    }
    fields.update(overrides)
    return schemas.EventSeries(**fields)


def starts(occurrences):
    """Start instants of a list of occurrences"""
    return [occ.start for occ in occurrences]


def mock_database(rows=None, lastrowid=1, rowcount=1):
    """
    MagicMock standing in for the database module: cursors return the given
    rows from fetchone/fetchall and report lastrowid/rowcount.
    """
    cursor = MagicMock()
    cursor.fetchone.return_value = rows[0] if rows else None
    cursor.fetchall.return_value = rows or []
    cursor.lastrowid = lastrowid
    cursor.rowcount = rowcount
    db = MagicMock()
    db.get_cursor.return_value = cursor
    db.MYSQL_DATABASE = "cadence"
    return db, cursor
