from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from weekweave.models.timetable_entry import DayOfWeek
from weekweave.services.calendar import parse_day, sort_days

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class TimeSlot(BaseModel):
    period: int = Field(ge=1, le=20)
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    is_break: bool = Field(default=False, alias="isBreak")

    model_config = {"populate_by_name": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "TimeSlot":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("End time must be after start time")
        return self


class StructureIn(BaseModel):
    working_days: list[DayOfWeek] = Field(min_length=1, max_length=7)
    time_slots: list[TimeSlot] = Field(min_length=1, max_length=20)

    @field_validator("working_days", mode="before")
    @classmethod
    def normalize_days(cls, value):
        if isinstance(value, list):
            return [parse_day(item) for item in value]
        return value

    @model_validator(mode="after")
    def validate_unique_periods(self) -> "StructureIn":
        periods = [slot.period for slot in self.time_slots]
        if len(periods) != len(set(periods)):
            raise ValueError("Duplicate period numbers in time slots")
        self.working_days = sort_days(self.working_days)
        self.time_slots = sorted(self.time_slots, key=lambda slot: slot.period)
        return self


class TimeSlotOut(BaseModel):
    period: int
    start_time: str
    end_time: str
    is_break: bool
    teaching_period: int | None = None
    label: str


class StructureOut(BaseModel):
    school_id: str
    working_days: list[DayOfWeek]
    time_slots: list[TimeSlotOut]
    is_default: bool = False
