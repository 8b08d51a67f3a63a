# Expansion of event series into concrete occurrences inside a window

import os
import logging
import datetime
from typing import Optional, List, Iterator
from dateutil import rrule as du_rrule
import schemas
import utils
import rule_codec
import exception_filter
from schemas import Frequency, Ends

logger = logging.getLogger(__name__)

# Upper bound on occurrences produced per expansion call
MAX_EXPANSION = int(os.getenv("CADENCE_MAX_EXPANSION", "100000"))

_DU_FREQ = {
    Frequency.DAILY: du_rrule.DAILY,
    Frequency.WEEKLY: du_rrule.WEEKLY,
    Frequency.MONTHLY: du_rrule.MONTHLY,
    Frequency.YEARLY: du_rrule.YEARLY,
}


def as_series(series) -> schemas.EventSeries:
    """Accept an EventSeries or a series record as stored (dict)"""
    if isinstance(series, schemas.EventSeries):
        return series
    return schemas.EventSeries(**series)


def build_rrule(rule: schemas.RecurrenceRule, anchor_start: datetime.datetime) -> du_rrule.rrule:
    """
    Map a RecurrenceRule onto a dateutil rrule starting at the anchor.

    Weeks start on Monday, so weekly intervals are counted in ISO weeks from the
    week holding the anchor. A BYMONTHDAY a month does not have skips that month,
    and Feb 29 yearly rules only fire in leap years.
    """
    rule = rule.with_defaults(anchor_start)
    kwargs = {
        "dtstart": anchor_start,
        "interval": rule.interval,
        "wkst": du_rrule.MO,
    }

    if rule.frequency == Frequency.WEEKLY:
        kwargs["byweekday"] = rule.days_of_week
    elif rule.frequency == Frequency.MONTHLY:
        if rule.set_pos is not None:
            kwargs["byweekday"] = rule.set_pos_weekday
            kwargs["bysetpos"] = rule.set_pos
        else:
            kwargs["bymonthday"] = rule.day_of_month
    elif rule.frequency == Frequency.YEARLY:
        kwargs["bymonth"] = rule.month
        if rule.set_pos is not None:
            kwargs["byweekday"] = rule.set_pos_weekday
            kwargs["bysetpos"] = rule.set_pos
        else:
            kwargs["bymonthday"] = rule.year_day_of_month

    if rule.ends == Ends.AFTER:
        kwargs["count"] = rule.count
    elif rule.ends == Ends.ON:
        # dateutil wants UNTIL and DTSTART on the same side of the naive/aware divide
        kwargs["until"] = utils.align_to(rule.until, anchor_start)

    return du_rrule.rrule(_DU_FREQ[rule.frequency], **kwargs)


def _intersects(start, end, window_start, window_end) -> bool:
    """Half-open [window_start, window_end); a zero-length occurrence counts at its start"""
    if start >= window_end:
        return False
    return end > window_start or start >= window_start


def _iter_starts(series: schemas.EventSeries) -> Iterator[datetime.datetime]:
    rule = rule_codec.parse_rule(series.recurrence)
    if rule is None:
        if series.recurrence:
            logger.warning(f"Series {series.id} has an unparseable rule {series.recurrence!r}, treating it as a single event")
        yield series.start
        return
    yield from build_rrule(rule, series.start)


def expand_occurrences(series, window_start, window_end) -> List[schemas.Occurrence]:
    """
    Compute the occurrences of a series that overlap a window.

    Exceptions are not applied here; see exception_filter.filter_exceptions.

    Args:
        series: EventSeries or stored series record
        window_start: Inclusive window start (datetime, date or ISO string)
        window_end: Exclusive window end (datetime, date or ISO string)

    Returns:
        List[Occurrence]: Occurrences ordered by start. An occurrence that starts
        before the window but ends inside it is included; one ending exactly at
        window_start is not.

    Raises:
        ValueError: If the window is empty or its bounds cannot be read
    """
    series = as_series(series)
    anchor = series.start
    window_start = utils.align_to(utils.normalize_dt(window_start), anchor)
    window_end = utils.align_to(utils.normalize_dt(window_end), anchor)
    if window_start >= window_end:
        raise ValueError("'window_start' must be before 'window_end'")

    duration = series.end - series.start
    # Candidates starting before this cannot reach the window and do not count towards the cap
    earliest = window_start - duration
    results = []
    examined = 0
    for start in _iter_starts(series):
        if start >= window_end:
            break
        if start < earliest:
            continue
        examined += 1
        if examined > MAX_EXPANSION:
            logger.warning(f"Expansion of series {series.id} stopped after {MAX_EXPANSION} candidates")
            break
        end = start + duration
        if _intersects(start, end, window_start, window_end):
            results.append(schemas.Occurrence(series_id=series.id, start=start, end=end))

    logger.debug(f"Series {series.id}: {len(results)} occurrences from {examined} candidates in [{window_start}, {window_end})")
    return results


def visible_occurrences(series, window_start, window_end) -> List[schemas.Occurrence]:
    """Occurrences of a series in a window with its exceptions removed"""
    series = as_series(series)
    occurrences = expand_occurrences(series, window_start, window_end)
    visible = exception_filter.filter_exceptions(occurrences, series.exceptions)
    if series.exceptions:
        inert = exception_filter.unmatched_exceptions(occurrences, series.exceptions, window_start, window_end)
        if inert:
            logger.debug(f"Series {series.id}: exceptions {inert} match no occurrence in the window")
    return visible


def find_occurrence(series, start) -> Optional[schemas.Occurrence]:
    """
    The occurrence of a series starting exactly at start, after exceptions,
    or None if the series does not produce one there.
    """
    series = as_series(series)
    start = utils.align_to(utils.normalize_dt(start), series.start)
    window_end = start + max(series.end - series.start, datetime.timedelta(seconds=1))
    for occurrence in visible_occurrences(series, start, window_end):
        if occurrence.start == start:
            return occurrence
    return None


def count_before(series, instant) -> int:
    """Number of occurrences a series generates strictly before instant, exceptions included"""
    series = as_series(series)
    rule = rule_codec.parse_rule(series.recurrence)
    if rule is None:
        return 1 if series.start < utils.align_to(instant, series.start) else 0
    instant = utils.align_to(instant, series.start)
    total = 0
    for start in build_rrule(rule, series.start):
        if start >= instant or total >= MAX_EXPANSION:
            break
        total += 1
    return total
