from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from weekweave.models.attendance import AttendanceStatus
from weekweave.schemas.timetable import BaseEntryOut


class AttendanceMark(BaseModel):
    teacher_id: str = Field(min_length=1, max_length=36)
    date: date
    end_date: date | None = None
    status: AttendanceStatus
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_range(self) -> "AttendanceMark":
        if self.end_date is not None:
            if self.end_date < self.date:
                raise ValueError("end_date must not be before date")
            if (self.end_date - self.date).days > 62:
                raise ValueError("Attendance ranges are limited to 62 days")
        return self


class AttendanceOut(BaseModel):
    id: str
    teacher_id: str
    attendance_date: date
    status: AttendanceStatus
    reason: str | None = None
    leave_start_date: date | None = None
    leave_end_date: date | None = None
    marked_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AbsenceAlertOut(BaseModel):
    teacher_id: str
    teacher_name: str
    status: AttendanceStatus
    affected_entries: list[BaseEntryOut]
    uncovered_entry_ids: list[str]
