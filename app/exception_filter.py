# Removal of excluded occurrences from an expansion

import logging
from typing import List, Iterable, Optional
import schemas
import utils

logger = logging.getLogger(__name__)


def normalize_exceptions(exceptions: Optional[Iterable[str]]) -> List[str]:
    """
    Canonical exception keys, de-duplicated with their first-seen order kept.

    Values that are not instants are kept verbatim; they can never match an
    occurrence.
    """
    keys = []
    seen = set()
    for raw in exceptions or []:
        key = utils.canonical_instant(raw)
        if key is None:
            logger.warning(f"Exception {raw!r} is not an instant and will never match")
            key = raw
        if key not in seen:
            seen.add(key)
            keys.append(key)
    return keys


def filter_exceptions(occurrences: List[schemas.Occurrence], exceptions: Optional[Iterable[str]]) -> List[schemas.Occurrence]:
    """
    Drop every occurrence whose start is one of the exception instants.

    Matching is on the exact instant, not the date; an exception recorded
    against a different instant suppresses nothing.
    """
    excluded = set(normalize_exceptions(exceptions))
    if not excluded:
        return list(occurrences)
    return [occ for occ in occurrences if utils.to_instant_iso(occ.start) not in excluded]


def unmatched_exceptions(occurrences, exceptions, window_start, window_end) -> List[str]:
    """Exception keys falling inside the window that match none of the occurrences"""
    starts = {utils.to_instant_iso(occ.start) for occ in occurrences}
    low = utils.to_instant_iso(utils.normalize_dt(window_start))
    high = utils.to_instant_iso(utils.normalize_dt(window_end))
    inert = []
    for key in normalize_exceptions(exceptions):
        # Canonical keys share one fixed-width UTC format, so they sort as instants
        if key.endswith("Z") and low <= key < high and key not in starts:
            inert.append(key)
    return inert
