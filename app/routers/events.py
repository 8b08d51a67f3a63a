# Events route of the API: stored series, their occurrences and scoped changes

import logging
from fastapi import APIRouter, HTTPException
from typing import List
import utils
import schemas
import rule_codec
import occurrences
import edit_scope
import series_store

logger = logging.getLogger(__name__)
router = APIRouter()


def _load_series(series_id: int) -> schemas.EventSeries:
    try:
        series = series_store.get_series(series_id)
    except Exception as e:
        logger.error(f"Failed to retrieve series {series_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve series {series_id}: {str(e)}")
    if series is None:
        raise HTTPException(status_code=404, detail="Series not found")
    return series


def _check_rule(text):
    """Rule text written through the API must decode; stored text is still read leniently"""
    if text and rule_codec.parse_rule(text) is None:
        raise HTTPException(status_code=400, detail=f"Invalid recurrence rule: {text}")


def _apply(series_id: int, resolution: schemas.EditResolution):
    try:
        updated, created = series_store.apply_resolution(series_id, resolution)
    except Exception as e:
        logger.error(f"Failed to apply changes to series {series_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to apply changes to series {series_id}: {str(e)}")
    return {"updated": updated, "created": created, "deleted": resolution.delete}


@router.post("/", response_model=schemas.EventSeries)
async def create_event(series: schemas.EventSeries):
    """Create a new event, repeating if it carries a recurrence rule"""
    _check_rule(series.recurrence)
    try:
        return series_store.create_series(series)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create series: {str(e)}")


@router.get("/{series_id}", response_model=schemas.EventSeries)
async def get_event(series_id: int):
    """Get a single stored series"""
    return _load_series(series_id)


@router.delete("/{series_id}", response_model=schemas.MessageResponse)
async def delete_event(series_id: int):
    """Delete a series with all its occurrences"""
    _load_series(series_id)
    try:
        series_store.delete_series(series_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete series: {str(e)}")
    return {"message": f"Series with ID {series_id} deleted successfully"}


@router.get("/{series_id}/occurrences", response_model=List[schemas.Occurrence])
async def list_occurrences(series_id: int, start_after: str, end_before: str):
    """Occurrences of a series inside [start_after, end_before), exceptions removed"""
    start_dt = utils.validate_time_format(start_after)
    if start_dt is None:
        raise HTTPException(status_code=400, detail="Invalid start_after time format")
    end_dt = utils.validate_time_format(end_before)
    if end_dt is None:
        raise HTTPException(status_code=400, detail="Invalid end_before time format")

    series = _load_series(series_id)
    try:
        results = occurrences.visible_occurrences(series, start_dt, end_dt)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Found {len(results)} occurrences of series {series_id}")
    return results


@router.post("/{series_id}/edit", response_model=schemas.EditResponse)
async def edit_event(series_id: int, request: schemas.EditRequest):
    """
    Edit an occurrence. Repeating series honour the scope, anything else is
    updated directly.
    """
    if "recurrence" in request.fields.model_fields_set:
        _check_rule(request.fields.recurrence)

    series = _load_series(series_id)
    try:
        if rule_codec.parse_rule(series.recurrence) is None:
            resolution = edit_scope.direct_update(series, request.fields)
        else:
            resolution = edit_scope.resolve_edit(series, request.occurrence_start, request.fields, request.scope)
    except edit_scope.EditConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _apply(series_id, resolution)


@router.post("/{series_id}/delete-occurrence", response_model=schemas.EditResponse)
async def delete_occurrence(series_id: int, request: schemas.DeleteOccurrenceRequest):
    """Delete an occurrence with a scope; a non-repeating event is deleted outright"""
    series = _load_series(series_id)
    try:
        if rule_codec.parse_rule(series.recurrence) is None:
            resolution = schemas.EditResolution(delete=True)
        else:
            resolution = edit_scope.resolve_delete(series, request.occurrence_start, request.scope)
    except edit_scope.EditConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _apply(series_id, resolution)
