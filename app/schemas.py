from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Tuple, Dict, Any
from datetime import date, datetime, time
from enum import Enum


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Ends(str, Enum):
    NEVER = "never"
    ON = "on"
    AFTER = "after"


class EditScope(str, Enum):
    THIS_EVENT = "this-event"
    THIS_AND_FOLLOWING = "this-and-following"
    ALL_EVENTS = "all-events"


def _end_of_day(value):
    """A bare date used as an end condition covers that whole day"""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time(23, 59, 59))
    return value


class RecurrenceOptions(BaseModel):
    """Editable repeat pattern as a form would submit it. Weekdays are 0=Monday .. 6=Sunday."""
    frequency: Frequency
    interval: int = 1
    days_of_week: Optional[List[int]] = None
    day_of_month: Optional[int] = None
    set_pos: Optional[int] = None
    set_pos_weekday: Optional[int] = None
    month: Optional[int] = None
    year_day_of_month: Optional[int] = None
    ends: Ends = Ends.NEVER
    until: Optional[datetime] = None
    count: Optional[int] = None

    @field_validator("until", mode="before")
    @classmethod
    def _until_end_of_day(cls, value):
        return _end_of_day(value)


class RecurrenceRule(BaseModel):
    """
    Decoded repeat pattern, immutable once constructed.

    Fields that make no sense for the frequency are dropped instead of rejected,
    and the ends/until/count triple is made consistent.
    """
    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = 1
    days_of_week: Tuple[int, ...] = ()
    day_of_month: Optional[int] = None
    set_pos: Optional[int] = None
    set_pos_weekday: Optional[int] = None
    month: Optional[int] = None
    year_day_of_month: Optional[int] = None
    ends: Ends = Ends.NEVER
    until: Optional[datetime] = None
    count: Optional[int] = None

    @field_validator("interval", mode="before")
    @classmethod
    def _clamp_interval(cls, value):
        if value is None:
            return 1
        return max(1, int(value))

    @field_validator("days_of_week", mode="before")
    @classmethod
    def _sorted_weekdays(cls, value):
        if not value:
            return ()
        return tuple(sorted({int(d) % 7 for d in value}))

    @field_validator("day_of_month", "year_day_of_month")
    @classmethod
    def _valid_month_day(cls, value):
        if value is not None and not 1 <= value <= 31:
            raise ValueError("day of month must be between 1 and 31")
        return value

    @field_validator("month")
    @classmethod
    def _valid_month(cls, value):
        if value is not None and not 1 <= value <= 12:
            raise ValueError("month must be between 1 and 12")
        return value

    @field_validator("set_pos")
    @classmethod
    def _valid_set_pos(cls, value):
        if value is not None and value not in (-1, 1, 2, 3, 4):
            raise ValueError("set position must be -1 or 1..4")
        return value

    @field_validator("set_pos_weekday")
    @classmethod
    def _valid_set_pos_weekday(cls, value):
        if value is not None and not 0 <= value <= 6:
            raise ValueError("weekday must be between 0 and 6")
        return value

    @field_validator("until", mode="before")
    @classmethod
    def _until_seconds(cls, value):
        value = _end_of_day(value)
        if isinstance(value, datetime):
            return value.replace(microsecond=0)
        return value

    @model_validator(mode="before")
    @classmethod
    def _normalize_fields(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        freq = data.get("frequency")
        freq = freq.value if isinstance(freq, Frequency) else freq
        if freq != Frequency.WEEKLY.value:
            data["days_of_week"] = ()
        if freq != Frequency.MONTHLY.value:
            data["day_of_month"] = None
        if freq != Frequency.YEARLY.value:
            data["month"] = None
            data["year_day_of_month"] = None
        if freq not in (Frequency.MONTHLY.value, Frequency.YEARLY.value):
            data["set_pos"] = None
            data["set_pos_weekday"] = None
        # Nth weekday needs both halves and replaces the plain day of month
        if data.get("set_pos") is None or data.get("set_pos_weekday") is None:
            data["set_pos"] = None
            data["set_pos_weekday"] = None
        else:
            data["day_of_month"] = None
            data["year_day_of_month"] = None

        ends = data.get("ends") or Ends.NEVER
        ends = ends.value if isinstance(ends, Ends) else ends
        if ends == Ends.ON.value and data.get("until") is None:
            ends = Ends.NEVER.value
        if ends == Ends.AFTER.value and (data.get("count") is None or int(data["count"]) < 1):
            ends = Ends.NEVER.value
        data["ends"] = ends
        if ends != Ends.ON.value:
            data["until"] = None
        if ends != Ends.AFTER.value:
            data["count"] = None
        return data

    def with_defaults(self, anchor: datetime) -> "RecurrenceRule":
        """Fill the fields an unset pattern inherits from the anchor (weekday, day, month)."""
        update: Dict[str, Any] = {}
        if self.frequency == Frequency.WEEKLY and not self.days_of_week:
            update["days_of_week"] = (anchor.weekday(),)
        elif self.frequency == Frequency.MONTHLY and self.set_pos is None and self.day_of_month is None:
            update["day_of_month"] = anchor.day
        elif self.frequency == Frequency.YEARLY:
            if self.month is None:
                update["month"] = anchor.month
            if self.set_pos is None and self.year_day_of_month is None:
                update["year_day_of_month"] = anchor.day
        if not update:
            return self
        return self.model_copy(update=update)


class EventSeries(BaseModel):
    """Stored event; all_day is also accepted as allDay, the name the calendar UI sends"""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    start: datetime
    end: Optional[datetime] = None
    all_day: bool = Field(False, alias="allDay")
    recurrence: Optional[str] = None
    exceptions: List[str] = []

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end is None:
            self.end = self.start
            return self
        try:
            backwards = self.end < self.start
        except TypeError:
            raise ValueError("start and end must both carry a timezone or both be naive")
        if backwards:
            raise ValueError("end must not be before start")
        return self


class Occurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    series_id: Optional[int] = None
    start: datetime
    end: datetime


class EditedFields(BaseModel):
    """Only fields the caller explicitly set count as edits."""
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    all_day: Optional[bool] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    recurrence: Optional[str] = None
    exceptions: Optional[List[str]] = None

    def edits(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class EditResolution(BaseModel):
    mutate: Optional[Dict[str, Any]] = None
    create: Optional[EventSeries] = None
    delete: bool = False


class GenerateRuleRequest(BaseModel):
    options: RecurrenceOptions
    anchor_start: datetime


class ClampRuleRequest(BaseModel):
    rule: str
    before: datetime


class RuleResponse(BaseModel):
    rule: str


class DescriptionResponse(BaseModel):
    text: str


class ExpandRequest(BaseModel):
    series: EventSeries
    window_start: datetime
    window_end: datetime
    include_exceptions: bool = False


class EditRequest(BaseModel):
    occurrence_start: datetime
    scope: EditScope
    fields: EditedFields = Field(default_factory=EditedFields)


class DeleteOccurrenceRequest(BaseModel):
    occurrence_start: datetime
    scope: EditScope


class EditResponse(BaseModel):
    updated: Optional[EventSeries] = None
    created: Optional[EventSeries] = None
    deleted: bool = False


class MessageResponse(BaseModel):
    message: str
