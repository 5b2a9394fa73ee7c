from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from weekweave.models.timetable_change import ChangeSource, ChangeState, ChangeType
from weekweave.schemas.structure import parse_time_to_minutes
from weekweave.schemas.timetable import ScopeInvalidation


class ChangeRecordCreate(BaseModel):
    timetable_entry_id: str = Field(min_length=1, max_length=36)
    change_type: ChangeType
    change_date: date
    original_teacher_id: str | None = Field(default=None, max_length=36)
    new_teacher_id: str | None = Field(default=None, max_length=36)
    original_room: str | None = Field(default=None, max_length=100)
    new_room: str | None = Field(default=None, max_length=100)
    new_start_time: str | None = None
    new_end_time: str | None = None
    reason: str = Field(min_length=1, max_length=1000)
    change_source: ChangeSource = ChangeSource.manual

    @field_validator("new_start_time", "new_end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None:
            parse_time_to_minutes(value)
        return value


class ChangeRecordOut(BaseModel):
    id: str
    timetable_entry_id: str
    change_type: ChangeType
    change_date: date
    original_teacher_id: str | None = None
    new_teacher_id: str | None = None
    original_room: str | None = None
    new_room: str | None = None
    new_start_time: str | None = None
    new_end_time: str | None = None
    reason: str
    change_source: ChangeSource
    state: ChangeState
    approved_by: str | None = None
    approved_at: datetime | None = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ChangeRejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class ChangeTransitionResult(BaseModel):
    change_id: str
    action: str
    state: ChangeState | None = None
    changed: bool
    message: str
    invalidates: ScopeInvalidation | None = None


class ChangeCreateResult(BaseModel):
    change: ChangeRecordOut
    invalidates: ScopeInvalidation


class AutoSubstituteRequest(BaseModel):
    timetable_entry_id: str = Field(min_length=1, max_length=36)
    date: date
    reason: str = Field(default="Teacher absent", max_length=1000)


class AutoSubstituteResult(BaseModel):
    assigned: bool
    message: str
    substitute_teacher_id: str | None = None
    change: ChangeRecordOut | None = None
    invalidates: ScopeInvalidation | None = None
