"""
Tests for app/occurrences.py: expanding series into occurrences inside a window.
"""

import pytest
from datetime import datetime, date, timedelta
import sys
import os

# Add app and test root directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'app'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import occurrences
from unit_test_utils import utc, make_series, starts


class TestExpandOccurrences:
    """Occurrence generation per frequency"""

    def test_daily_count(self):
        series = make_series(recurrence="FREQ=DAILY;INTERVAL=1;COUNT=5")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))
        assert starts(result) == [utc(2024, 1, d, 9, 0) for d in range(1, 6)]
        assert all(occ.end - occ.start == timedelta(minutes=30) for occ in result)
        assert all(occ.series_id == 1 for occ in result)

    def test_weekly_multiple_days(self):
        series = make_series(recurrence="FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 8))
        assert starts(result) == [utc(2024, 1, 1, 9), utc(2024, 1, 3, 9), utc(2024, 1, 5, 9)]

    def test_daily_count_one_hour(self):
        series = make_series(end=utc(2024, 1, 1, 10), recurrence="FREQ=DAILY;INTERVAL=1;COUNT=5")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))
        assert [(occ.start, occ.end) for occ in result] == [(utc(2024, 1, d, 9), utc(2024, 1, d, 10)) for d in range(1, 6)]

    def test_weekly_two_weeks(self):
        series = make_series(recurrence="FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 15))
        assert [occ.start.day for occ in result] == [1, 3, 5, 8, 10, 12]

    def test_weekly_interval(self):
        series = make_series(recurrence="FREQ=WEEKLY;INTERVAL=2;BYDAY=MO")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))
        assert starts(result) == [utc(2024, 1, 1, 9), utc(2024, 1, 15, 9), utc(2024, 1, 29, 9)]

    def test_anchor_not_matching_pattern_is_skipped(self):
        # Monday anchor, Tuesday-only rule
        series = make_series(recurrence="FREQ=WEEKLY;BYDAY=TU")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 10))
        assert starts(result) == [utc(2024, 1, 2, 9), utc(2024, 1, 9, 9)]

    def test_monthly_31st_skips_short_months(self):
        series = make_series(start=utc(2024, 1, 31, 9), end=utc(2024, 1, 31, 10), recurrence="FREQ=MONTHLY;BYMONTHDAY=31")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 5, 1))
        assert starts(result) == [utc(2024, 1, 31, 9), utc(2024, 3, 31, 9)]

    def test_yearly_feb_29_only_in_leap_years(self):
        series = make_series(start=utc(2024, 2, 29, 9), end=utc(2024, 2, 29, 10), recurrence="FREQ=YEARLY")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2029, 1, 1))
        assert starts(result) == [utc(2024, 2, 29, 9), utc(2028, 2, 29, 9)]

    def test_monthly_nth_weekday(self):
        series = make_series(start=utc(2024, 1, 9, 9), end=utc(2024, 1, 9, 10), recurrence="FREQ=MONTHLY;BYDAY=TU;BYSETPOS=2")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 4, 1))
        assert starts(result) == [utc(2024, 1, 9, 9), utc(2024, 2, 13, 9), utc(2024, 3, 12, 9)]

    def test_monthly_last_weekday(self):
        series = make_series(start=utc(2024, 1, 26, 9), end=utc(2024, 1, 26, 10), recurrence="FREQ=MONTHLY;BYDAY=-1FR")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 3, 1))
        assert starts(result) == [utc(2024, 1, 26, 9), utc(2024, 2, 23, 9)]

    def test_until_is_inclusive(self):
        series = make_series(recurrence="FREQ=DAILY;UNTIL=20240103T090000Z")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))
        assert starts(result) == [utc(2024, 1, 1, 9), utc(2024, 1, 2, 9), utc(2024, 1, 3, 9)]

    def test_naive_until_with_aware_anchor(self):
        series = make_series(recurrence="FREQ=DAILY;UNTIL=20240102T235959")
        result = occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))
        assert len(result) == 2

    def test_naive_series(self):
        series = make_series(start=datetime(2024, 1, 1, 9), end=datetime(2024, 1, 1, 10), recurrence="FREQ=DAILY;COUNT=3")
        result = occurrences.expand_occurrences(series, "2024-01-01", date(2024, 1, 3))
        assert starts(result) == [datetime(2024, 1, 1, 9), datetime(2024, 1, 2, 9)]

    def test_accepts_stored_record(self):
        record = {"id": 4, "start": "2024-01-01T09:00:00Z", "recurrence": "FREQ=DAILY;COUNT=2"}
        result = occurrences.expand_occurrences(record, "2024-01-01T00:00:00Z", "2024-02-01T00:00:00Z")
        assert len(result) == 2
        assert result[0].series_id == 4


class TestWindowEdges:
    """Half-open window semantics"""

    def test_occurrence_overlapping_window_start_is_included(self):
        series = make_series()
        result = occurrences.expand_occurrences(series, utc(2024, 1, 2, 9, 15), utc(2024, 1, 3, 9, 0))
        assert starts(result) == [utc(2024, 1, 2, 9)]

    def test_occurrence_ending_at_window_start_is_excluded(self):
        series = make_series()
        result = occurrences.expand_occurrences(series, utc(2024, 1, 2, 9, 30), utc(2024, 1, 2, 12, 0))
        assert result == []

    def test_occurrence_starting_at_window_end_is_excluded(self):
        series = make_series()
        result = occurrences.expand_occurrences(series, utc(2024, 1, 2), utc(2024, 1, 3, 9, 0))
        assert starts(result) == [utc(2024, 1, 2, 9)]

    def test_zero_length_occurrence_at_window_start(self):
        series = make_series(end=utc(2024, 1, 1, 9, 0))
        result = occurrences.expand_occurrences(series, utc(2024, 1, 2, 9, 0), utc(2024, 1, 2, 10, 0))
        assert starts(result) == [utc(2024, 1, 2, 9)]

    def test_empty_window_raises(self):
        with pytest.raises(ValueError):
            occurrences.expand_occurrences(make_series(), utc(2024, 1, 2), utc(2024, 1, 2))

    def test_unreadable_window_raises(self):
        with pytest.raises(ValueError):
            occurrences.expand_occurrences(make_series(), "soon", utc(2024, 1, 2))


class TestNonRecurring:
    """Series without a usable rule behave as a single event"""

    def test_inside_window(self):
        series = make_series(recurrence=None)
        assert len(occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 2))) == 1

    def test_outside_window(self):
        series = make_series(recurrence=None)
        assert occurrences.expand_occurrences(series, utc(2024, 1, 2), utc(2024, 1, 3)) == []

    def test_unparseable_rule(self):
        series = make_series(recurrence="FREQ=HOURLY")
        assert starts(occurrences.expand_occurrences(series, utc(2024, 1, 1), utc(2024, 2, 1))) == [utc(2024, 1, 1, 9)]


class TestSafetyCap:
    """Unbounded rules stop at the expansion cap"""

    def test_cap(self, monkeypatch):
        monkeypatch.setattr(occurrences, "MAX_EXPANSION", 10)
        result = occurrences.expand_occurrences(make_series(), utc(2024, 1, 1), utc(2025, 1, 1))
        assert len(result) == 10

    def test_far_window_is_not_cut_off(self, monkeypatch):
        monkeypatch.setattr(occurrences, "MAX_EXPANSION", 50)
        result = occurrences.expand_occurrences(make_series(), utc(2030, 1, 1), utc(2030, 1, 3))
        assert starts(result) == [utc(2030, 1, 1, 9), utc(2030, 1, 2, 9)]

    def test_far_window_from_old_anchor(self):
        series = make_series(start=utc(1990, 1, 1, 9), end=utc(1990, 1, 1, 10), recurrence="FREQ=DAILY")
        result = occurrences.expand_occurrences(series, utc(2300, 1, 1), utc(2300, 1, 3))
        assert starts(result) == [utc(2300, 1, 1, 9), utc(2300, 1, 2, 9)]

    def test_occurrence_straddling_far_window_start(self, monkeypatch):
        monkeypatch.setattr(occurrences, "MAX_EXPANSION", 5)
        series = make_series(end=utc(2024, 1, 1, 12))
        result = occurrences.expand_occurrences(series, utc(2030, 1, 1, 10), utc(2030, 1, 1, 11))
        assert starts(result) == [utc(2030, 1, 1, 9)]


class TestVisibleOccurrences:
    """Expansion with exceptions applied"""

    def test_exception_removes_occurrence(self):
        series = make_series(exceptions=["2024-01-03T09:00:00.000Z"])
        result = occurrences.visible_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 6))
        assert utc(2024, 1, 3, 9) not in starts(result)
        assert len(result) == 4

    def test_non_canonical_exception_matches(self):
        series = make_series(exceptions=["2024-01-03T10:00:00+01:00"])
        result = occurrences.visible_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 6))
        assert len(result) == 4

    def test_exception_at_other_time_is_inert(self):
        series = make_series(exceptions=["2024-01-03T10:00:00.000Z"])
        result = occurrences.visible_occurrences(series, utc(2024, 1, 1), utc(2024, 1, 6))
        assert len(result) == 5


class TestHelpers:
    """find_occurrence and count_before"""

    def test_find_occurrence(self):
        series = make_series()
        found = occurrences.find_occurrence(series, utc(2024, 1, 3, 9))
        assert found.start == utc(2024, 1, 3, 9)
        assert found.end == utc(2024, 1, 3, 9, 30)

    def test_find_occurrence_off_pattern(self):
        assert occurrences.find_occurrence(make_series(), utc(2024, 1, 3, 9, 15)) is None

    def test_find_occurrence_excluded(self):
        series = make_series(exceptions=["2024-01-03T09:00:00.000Z"])
        assert occurrences.find_occurrence(series, utc(2024, 1, 3, 9)) is None

    def test_count_before(self):
        assert occurrences.count_before(make_series(), utc(2024, 1, 4, 9)) == 3
        assert occurrences.count_before(make_series(), utc(2024, 1, 1, 9)) == 0
