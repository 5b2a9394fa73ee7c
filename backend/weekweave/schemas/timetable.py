from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from weekweave.models.timetable_entry import DayOfWeek
from weekweave.schemas.structure import parse_time_to_minutes
from weekweave.services.calendar import parse_day


class EffectiveStatus(str, Enum):
    scheduled = "scheduled"
    substitution_required = "substitution_required"
    free = "free"


class EffectiveSource(str, Enum):
    base = "base"
    weekly_edit = "weekly_edit"
    substitution = "substitution"
    cancellation = "cancellation"
    none = "none"


class EffectiveEntry(BaseModel):
    """The resolved outcome of one slot on one calendar date. Never persisted."""

    status: EffectiveStatus
    source: EffectiveSource
    class_id: str | None = None
    day: DayOfWeek
    period: int
    date: date
    teacher_id: str | None = None
    subject_id: str | None = None
    room: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    original_teacher_id: str | None = None
    base_entry_id: str | None = None
    weekly_edit_id: str | None = None
    applied_change_ids: list[str] = Field(default_factory=list)
    teaching_period: int | None = None
    period_label: str | None = None

    model_config = {"frozen": True}

    @property
    def is_free(self) -> bool:
        return self.status == EffectiveStatus.free


class BaseEntryOut(BaseModel):
    id: str
    class_id: str
    teacher_id: str
    subject_id: str
    day: DayOfWeek
    period: int
    start_time: str
    end_time: str
    room: str | None = None

    model_config = {"from_attributes": True}


class WeeklyEditCreate(BaseModel):
    class_id: str = Field(min_length=1, max_length=36)
    week_start: date | None = None
    on_date: date | None = Field(default=None, alias="date")
    day: DayOfWeek
    period: int = Field(ge=1, le=20)
    teacher_id: str | None = Field(default=None, max_length=36)
    subject_id: str | None = Field(default=None, max_length=36)
    start_time: str | None = None
    end_time: str | None = None
    room: str | None = Field(default=None, max_length=100)
    reason: str = Field(default="", max_length=1000)

    model_config = {"populate_by_name": True}

    @field_validator("day", mode="before")
    @classmethod
    def normalize_day(cls, value):
        return parse_day(value) if isinstance(value, str) else value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None:
            parse_time_to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_anchor(self) -> "WeeklyEditCreate":
        if self.week_start is None and self.on_date is None:
            raise ValueError("Either week_start or date is required")
        return self


class WeeklyEditOut(BaseModel):
    id: str
    class_id: str
    week_start: date
    day: DayOfWeek
    period: int
    teacher_id: str | None = None
    subject_id: str | None = None
    start_time: str
    end_time: str
    room: str | None = None
    reason: str
    modified_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ScopeInvalidation(BaseModel):
    class_id: str
    week_start: date


class WeeklyEditResult(BaseModel):
    edit: WeeklyEditOut
    effective: EffectiveEntry
    invalidates: ScopeInvalidation


class PromotionRequest(BaseModel):
    class_id: str = Field(min_length=1, max_length=36)
    date: date


class PromotionResult(BaseModel):
    class_id: str
    week_start: date
    week_end: date
    entries_updated: int
    weekly_edits_cleared: int
    changes_cleared: int
    invalidates: ScopeInvalidation


class GenerateRequest(BaseModel):
    class_id: str | None = Field(default=None, max_length=36)


class GenerateResult(BaseModel):
    status: Literal["success", "failure"]
    message: str
    class_id: str | None = None


class SubstituteCandidateOut(BaseModel):
    teacher_id: str
    name: str
    periods_that_day: int
