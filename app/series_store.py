# Reads and writes event series rows. The recurrence engine never calls this
# module; routers hand its results over.

import logging
import datetime
from typing import Optional, Dict, Any, Tuple
import database
import schemas
import utils

logger = logging.getLogger(__name__)

# EventSeries field -> column
COLUMNS = {
    "title": "title",
    "description": "description",
    "location": "location",
    "start": "start_datetime",
    "end": "end_datetime",
    "all_day": "all_day",
    "recurrence": "recurrence",
    "exceptions": "exceptions",
}

# Offset of the anchor, NULL for naive series. Rules expand in the anchor's
# own offset, so it has to survive the UTC DATETIME columns.
OFFSET_COLUMN = "utc_offset_minutes"

_SELECT = "SELECT id, " + ", ".join(COLUMNS.values()) + f", {OFFSET_COLUMN} FROM event_series"


def _to_column(field: str, value):
    """DATETIME columns are naive UTC, exceptions a JSON list"""
    if isinstance(value, datetime.datetime):
        return utils.align_to(value, datetime.datetime(1970, 1, 1))
    if field == "exceptions":
        return utils.list_to_json(value)
    if field == "all_day":
        return bool(value)
    return value


def _offset_minutes(value: datetime.datetime) -> Optional[int]:
    offset = value.utcoffset()
    if offset is None:
        return None
    return int(offset.total_seconds() // 60)


def _from_column(value, offset_minutes: Optional[int]):
    """Naive UTC column value back to the anchor's offset"""
    if value is None or offset_minutes is None:
        return value
    zone = datetime.timezone(datetime.timedelta(minutes=offset_minutes))
    return value.replace(tzinfo=utils.UTC).astimezone(zone)


def row_to_series(row: Dict[str, Any]) -> schemas.EventSeries:
    """Convert a database row (dictionary cursor) into an EventSeries"""
    offset = row.get(OFFSET_COLUMN)
    return schemas.EventSeries(
        id=row["id"],
        title=row.get("title") or "",
        description=row.get("description"),
        location=row.get("location"),
        start=_from_column(row["start_datetime"], offset),
        end=_from_column(row.get("end_datetime"), offset),
        all_day=bool(row.get("all_day")),
        recurrence=row.get("recurrence") or None,
        exceptions=utils.json_to_list(row.get("exceptions")),
    )


def get_series(series_id: int) -> Optional[schemas.EventSeries]:
    """Fetch one series, None if it does not exist"""
    cursor = database.get_cursor(dictionary=True)
    database.use_database(cursor)
    cursor.execute(f"{_SELECT} WHERE id = %s", (series_id,))
    row = cursor.fetchone()
    if not row:
        return None
    return row_to_series(row)


def create_series(series: schemas.EventSeries) -> schemas.EventSeries:
    """Insert a series and return it with its new id"""
    fields = list(COLUMNS)
    columns = [COLUMNS[f] for f in fields] + [OFFSET_COLUMN]
    values = [_to_column(f, getattr(series, f)) for f in fields] + [_offset_minutes(series.start)]
    insert_query = f"""
        INSERT INTO event_series
        ({', '.join(columns)})
        VALUES ({', '.join(['%s'] * len(columns))})
    """
    try:
        cursor = database.get_cursor()
        database.use_database(cursor)
        cursor.execute(insert_query, tuple(values))
        series_id = cursor.lastrowid
        database.commit()
    except Exception as e:
        database.rollback()
        logger.error(f"Failed to create series '{series.title}': {e}")
        raise

    logger.info(f"Created series '{series.title}' with ID {series_id}")
    return series.model_copy(update={"id": series_id})


def update_series(series_id: int, changes: Dict[str, Any]) -> bool:
    """Apply field changes to a series; returns False when nothing was updated"""
    unknown = set(changes) - set(COLUMNS)
    if unknown:
        raise ValueError(f"Unknown series fields: {sorted(unknown)}")
    if not changes:
        return False

    update_fields = [f"{COLUMNS[f]} = %s" for f in changes]
    update_values = [_to_column(f, v) for f, v in changes.items()]
    if isinstance(changes.get("start"), datetime.datetime):
        update_fields.append(f"{OFFSET_COLUMN} = %s")
        update_values.append(_offset_minutes(changes["start"]))
    update_values.append(series_id)
    try:
        cursor = database.get_cursor()
        database.use_database(cursor)
        cursor.execute(f"UPDATE event_series SET {', '.join(update_fields)} WHERE id = %s", tuple(update_values))
        database.commit()
    except Exception as e:
        database.rollback()
        logger.error(f"Failed to update series {series_id}: {e}")
        raise

    logger.info(f"Updated series {series_id}: {', '.join(changes)}")
    return cursor.rowcount > 0


def delete_series(series_id: int) -> bool:
    """Delete a series; returns False when it did not exist"""
    try:
        cursor = database.get_cursor()
        database.use_database(cursor)
        cursor.execute("DELETE FROM event_series WHERE id = %s", (series_id,))
        database.commit()
    except Exception as e:
        database.rollback()
        logger.error(f"Failed to delete series {series_id}: {e}")
        raise

    logger.info(f"Deleted series {series_id}")
    return cursor.rowcount > 0


def apply_resolution(series_id: int, resolution: schemas.EditResolution) -> Tuple[Optional[schemas.EventSeries], Optional[schemas.EventSeries]]:
    """
    Persist an EditResolution: delete or mutate the original series first, then
    create the new one. The two writes are separate transactions; a failure in
    between leaves the first write applied.

    Returns:
        tuple: (original series after the change or None if deleted, created series or None)
    """
    if resolution.delete:
        delete_series(series_id)
    elif resolution.mutate:
        update_series(series_id, resolution.mutate)

    updated = None if resolution.delete else get_series(series_id)

    created = None
    if resolution.create is not None:
        try:
            created = create_series(resolution.create)
        except Exception:
            logger.error(f"Series {series_id} was changed but its replacement could not be created")
            raise
    return updated, created
