# Turns an edit or delete on one occurrence of a recurring series into the
# concrete changes the series store has to apply.

import logging
import datetime
from typing import Dict, Any, List
import schemas
import utils
import rule_codec
import occurrences
import exception_filter
from schemas import EditScope, EditResolution, EventSeries, Ends

logger = logging.getLogger(__name__)

# Fields copied from the series onto split-off series unless edited
_SERIES_FIELDS = ("title", "description", "location", "all_day")
# Fields that cannot be cleared, an explicit None keeps the current value
_REQUIRED_FIELDS = ("title", "all_day")


class EditConflictError(ValueError):
    """The occurrence being edited is not (or no longer) part of the series"""


class NotRecurringError(ValueError):
    """Scoped edits only apply to series with a repeat rule"""


def _overlay(series: EventSeries, edits: Dict[str, Any]) -> Dict[str, Any]:
    fields = {name: getattr(series, name) for name in _SERIES_FIELDS}
    for name in _SERIES_FIELDS:
        if name not in edits:
            continue
        if edits[name] is None and name in _REQUIRED_FIELDS:
            continue
        fields[name] = edits[name]
    return fields


def _changed_fields(series: EventSeries, edits: Dict[str, Any]) -> Dict[str, Any]:
    fields = _overlay(series, edits)
    return {name: fields[name] for name in _SERIES_FIELDS if name in edits and fields[name] != getattr(series, name)}


def _span(occurrence: schemas.Occurrence, edits: Dict[str, Any]):
    """Edited start/end of an occurrence; a moved start keeps the duration unless end is edited too"""
    start = edits.get("start") or occurrence.start
    end = edits.get("end")
    if end is None:
        end = start + (occurrence.end - occurrence.start)
    if end < start:
        raise ValueError("end must not be before start")
    return start, end


def _shift_keys(keys: List[str], delta: datetime.timedelta) -> List[str]:
    if not delta:
        return list(keys)
    shifted = []
    for key in keys:
        instant = utils.validate_time_format(key) if key.endswith("Z") else None
        shifted.append(utils.to_instant_iso(instant + delta) if instant else key)
    return shifted


def _split_keys(keys: List[str], split_key: str):
    """Partition canonical exception keys around a split instant; the split itself is dropped"""
    before, after = [], []
    for key in keys:
        if not key.endswith("Z") or key < split_key:
            before.append(key)
        elif key > split_key:
            after.append(key)
    return before, after


def _require_rule(series: EventSeries) -> schemas.RecurrenceRule:
    rule = rule_codec.parse_rule(series.recurrence)
    if rule is None:
        raise NotRecurringError(f"Series {series.id} does not repeat")
    return rule


def _find_or_conflict(series: EventSeries, occurrence_start) -> schemas.Occurrence:
    occurrence = occurrences.find_occurrence(series, occurrence_start)
    if occurrence is None:
        logger.warning(f"Rejecting change to series {series.id}: {occurrence_start} is not one of its occurrences")
        raise EditConflictError(f"{occurrence_start} is not an occurrence of series {series.id}")
    return occurrence


def _aligned_edits(edited, anchor: datetime.datetime) -> Dict[str, Any]:
    if isinstance(edited, dict):
        edited = schemas.EditedFields(**edited)
    edits = edited.edits()
    for name in ("start", "end"):
        if edits.get(name) is not None:
            edits[name] = utils.align_to(edits[name], anchor)
    return edits


# Edit resolvers

def _edit_this_event(series: EventSeries, occurrence: schemas.Occurrence, edits: Dict[str, Any]) -> EditResolution:
    key = utils.to_instant_iso(occurrence.start)
    exceptions = exception_filter.normalize_exceptions(series.exceptions + [key])
    start, end = _span(occurrence, edits)
    one_off = EventSeries(start=start, end=end, recurrence=None, exceptions=[], **_overlay(series, edits))
    return EditResolution(mutate={"exceptions": exceptions}, create=one_off)


def _edit_this_and_following(series: EventSeries, occurrence: schemas.Occurrence, edits: Dict[str, Any]) -> EditResolution:
    if occurrence.start <= series.start:
        # Splitting at the anchor leaves nothing behind, so it is an edit of the whole series
        return _edit_all_events(series, occurrence, edits)

    split_key = utils.to_instant_iso(occurrence.start)
    before, after = _split_keys(exception_filter.normalize_exceptions(series.exceptions), split_key)
    start, end = _span(occurrence, edits)

    if "recurrence" in edits:
        recurrence = edits["recurrence"]
    else:
        recurrence = series.recurrence
        rule = _require_rule(series)
        if rule.ends == Ends.AFTER:
            # Keep the total length of a COUNT-bounded series across the split
            remaining = rule.count - occurrences.count_before(series, occurrence.start)
            recurrence = rule_codec.with_count(series.recurrence, max(remaining, 1))

    follow_up = EventSeries(
        start=start,
        end=end,
        recurrence=recurrence,
        exceptions=_shift_keys(after, start - occurrence.start) if recurrence else [],
        **_overlay(series, edits),
    )
    mutate = {
        "recurrence": rule_codec.clamp_rule_until(series.recurrence, occurrence.start),
        "exceptions": before,
    }
    return EditResolution(mutate=mutate, create=follow_up)


def _edit_all_events(series: EventSeries, occurrence: schemas.Occurrence, edits: Dict[str, Any]) -> EditResolution:
    mutate = _changed_fields(series, edits)

    if "start" in edits or "end" in edits:
        new_start, new_end = _span(occurrence, edits)
        delta = new_start - occurrence.start
        anchor = series.start + delta
        mutate["start"] = anchor
        mutate["end"] = anchor + (new_end - new_start)
        if delta:
            mutate["exceptions"] = _shift_keys(exception_filter.normalize_exceptions(series.exceptions), delta)

    if "recurrence" in edits:
        mutate["recurrence"] = edits["recurrence"]
        if not edits["recurrence"]:
            mutate["exceptions"] = []
    if "exceptions" in edits:
        mutate["exceptions"] = exception_filter.normalize_exceptions(edits["exceptions"])

    return EditResolution(mutate=mutate or None)


_EDIT_RESOLVERS = {
    EditScope.THIS_EVENT: _edit_this_event,
    EditScope.THIS_AND_FOLLOWING: _edit_this_and_following,
    EditScope.ALL_EVENTS: _edit_all_events,
}


# Delete resolvers

def _delete_this_event(series: EventSeries, occurrence: schemas.Occurrence) -> EditResolution:
    key = utils.to_instant_iso(occurrence.start)
    return EditResolution(mutate={"exceptions": exception_filter.normalize_exceptions(series.exceptions + [key])})


def _delete_this_and_following(series: EventSeries, occurrence: schemas.Occurrence) -> EditResolution:
    if occurrence.start <= series.start:
        return _delete_all_events(series, occurrence)
    split_key = utils.to_instant_iso(occurrence.start)
    before, _ = _split_keys(exception_filter.normalize_exceptions(series.exceptions), split_key)
    mutate = {
        "recurrence": rule_codec.clamp_rule_until(series.recurrence, occurrence.start),
        "exceptions": before,
    }
    return EditResolution(mutate=mutate)


def _delete_all_events(series: EventSeries, occurrence: schemas.Occurrence) -> EditResolution:
    return EditResolution(delete=True)


_DELETE_RESOLVERS = {
    EditScope.THIS_EVENT: _delete_this_event,
    EditScope.THIS_AND_FOLLOWING: _delete_this_and_following,
    EditScope.ALL_EVENTS: _delete_all_events,
}


def resolve_edit(series, occurrence_start, edited, scope) -> EditResolution:
    """
    Decide what an edit of one occurrence of a recurring series does to the stored data.

    Args:
        series: EventSeries or stored series record, must carry a repeat rule
        occurrence_start: Start of the occurrence the user edited, as expanded
        edited: EditedFields (or dict); only explicitly set fields are edits
        scope: EditScope or its string value

    Returns:
        EditResolution: Changes for the original series and/or a series to create.
        Apply the mutation before the creation.

    Raises:
        NotRecurringError: If the series has no usable rule; use direct_update
        EditConflictError: If occurrence_start is not an occurrence of the series
        ValueError: If the scope is unknown or the edited times run backwards
    """
    series = occurrences.as_series(series)
    scope = EditScope(scope)
    resolver = _EDIT_RESOLVERS.get(scope)
    if resolver is None:
        raise ValueError(f"Unsupported edit scope: {scope}")

    _require_rule(series)
    occurrence = _find_or_conflict(series, occurrence_start)
    resolution = resolver(series, occurrence, _aligned_edits(edited, series.start))
    logger.info(f"Resolved {scope.value} edit of series {series.id} at {utils.to_instant_iso(occurrence.start)}")
    return resolution


def resolve_delete(series, occurrence_start, scope) -> EditResolution:
    """Decide what deleting one occurrence of a recurring series, with a scope, does to the stored data"""
    series = occurrences.as_series(series)
    scope = EditScope(scope)
    resolver = _DELETE_RESOLVERS.get(scope)
    if resolver is None:
        raise ValueError(f"Unsupported delete scope: {scope}")

    _require_rule(series)
    occurrence = _find_or_conflict(series, occurrence_start)
    resolution = resolver(series, occurrence)
    logger.info(f"Resolved {scope.value} delete of series {series.id} at {utils.to_instant_iso(occurrence.start)}")
    return resolution


def direct_update(series, edited) -> EditResolution:
    """Single-record update for a series without a repeat rule"""
    series = occurrences.as_series(series)
    edits = _aligned_edits(edited, series.start)
    mutate = _changed_fields(series, edits)

    if "start" in edits or "end" in edits:
        start = edits.get("start") or series.start
        end = edits.get("end") or start + (series.end - series.start)
        if end < start:
            raise ValueError("end must not be before start")
        mutate["start"] = start
        mutate["end"] = end
    for name in ("recurrence", "exceptions"):
        if name in edits:
            mutate[name] = edits[name] if name == "recurrence" else exception_filter.normalize_exceptions(edits[name])
    return EditResolution(mutate=mutate or None)
