# Recurrence route of the API: rule encoding, decoding and expansion without storage

import logging
from fastapi import APIRouter, HTTPException
from typing import Optional, List
import utils
import schemas
import rule_codec
import occurrences

logger = logging.getLogger(__name__)
router = APIRouter()


def _parse_anchor(anchor_start: Optional[str]):
    if not anchor_start:
        return None
    anchor = utils.validate_time_format(anchor_start)
    if anchor is None:
        raise HTTPException(status_code=400, detail=f"Invalid anchor_start time format: {anchor_start}")
    return anchor


@router.post("/generate", response_model=schemas.RuleResponse)
async def generate_rule(request: schemas.GenerateRuleRequest):
    """Encode a repeat pattern into rule text"""
    try:
        rule = rule_codec.generate_rule(request.options, request.anchor_start)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid recurrence options: {e}")
    return {"rule": rule}


@router.get("/parse", response_model=schemas.RecurrenceRule)
async def parse_rule(text: str, anchor_start: Optional[str] = None):
    """Decode rule text; anchor_start fills in weekday/day/month defaults"""
    rule = rule_codec.parse_rule(text, _parse_anchor(anchor_start))
    if rule is None:
        raise HTTPException(status_code=400, detail="Unparseable recurrence rule")
    return rule


@router.post("/clamp", response_model=schemas.RuleResponse)
async def clamp_rule(request: schemas.ClampRuleRequest):
    """End a rule just before the given instant"""
    if rule_codec.parse_rule(request.rule) is None:
        raise HTTPException(status_code=400, detail="Unparseable recurrence rule")
    return {"rule": rule_codec.clamp_rule_until(request.rule, request.before)}


@router.get("/describe", response_model=schemas.DescriptionResponse)
async def describe_rule(text: str, anchor_start: str):
    """Human readable summary of a rule"""
    anchor = _parse_anchor(anchor_start)
    if anchor is None:
        raise HTTPException(status_code=400, detail="anchor_start is required")
    return {"text": rule_codec.describe_rule(text, anchor)}


@router.post("/expand", response_model=List[schemas.Occurrence])
async def expand(request: schemas.ExpandRequest):
    """Occurrences of a series record inside a window, with exceptions removed unless asked to keep them"""
    try:
        if request.include_exceptions:
            return occurrences.expand_occurrences(request.series, request.window_start, request.window_end)
        return occurrences.visible_occurrences(request.series, request.window_start, request.window_end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
