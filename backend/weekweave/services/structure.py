from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.models.structure import TimetableStructure
from weekweave.models.timetable_entry import DayOfWeek
from weekweave.schemas.structure import StructureIn, StructureOut, TimeSlot, TimeSlotOut
from weekweave.services.calendar import period_label, sort_days, teaching_period_number

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DAYS: tuple[DayOfWeek, ...] = (
    DayOfWeek.monday,
    DayOfWeek.tuesday,
    DayOfWeek.wednesday,
    DayOfWeek.thursday,
    DayOfWeek.friday,
    DayOfWeek.saturday,
)
DEFAULT_TIME_SLOTS: tuple[TimeSlot, ...] = (
    TimeSlot(period=1, start_time="09:00", end_time="09:45"),
    TimeSlot(period=2, start_time="09:45", end_time="10:30"),
    TimeSlot(period=3, start_time="10:30", end_time="11:15"),
    TimeSlot(period=4, start_time="11:15", end_time="12:00"),
    TimeSlot(period=5, start_time="12:00", end_time="12:30", is_break=True),
    TimeSlot(period=6, start_time="12:30", end_time="13:15"),
    TimeSlot(period=7, start_time="13:15", end_time="14:00"),
    TimeSlot(period=8, start_time="14:00", end_time="14:45"),
    TimeSlot(period=9, start_time="14:45", end_time="15:30"),
)


@dataclass(frozen=True)
class SchoolStructure:
    school_id: str
    working_days: tuple[DayOfWeek, ...]
    time_slots: tuple[TimeSlot, ...]
    is_default: bool = False

    def slot(self, period: int) -> TimeSlot | None:
        for item in self.time_slots:
            if item.period == period:
                return item
        return None

    @property
    def teaching_slots(self) -> tuple[TimeSlot, ...]:
        return tuple(item for item in self.time_slots if not item.is_break)

    def teaching_number(self, period: int) -> int | None:
        return teaching_period_number(self.time_slots, period)

    def label(self, period: int) -> str:
        return period_label(self.time_slots, period)


def default_structure(school_id: str) -> SchoolStructure:
    return SchoolStructure(
        school_id=school_id,
        working_days=DEFAULT_WORKING_DAYS,
        time_slots=DEFAULT_TIME_SLOTS,
        is_default=True,
    )


def get_structure(db: Session, school_id: str) -> SchoolStructure:
    record = db.execute(
        select(TimetableStructure).where(TimetableStructure.school_id == school_id)
    ).scalar_one_or_none()
    if record is None:
        return default_structure(school_id)

    slots: list[TimeSlot] = []
    for raw in record.time_slots or []:
        try:
            slots.append(TimeSlot.model_validate(raw))
        except ValueError:
            logger.warning("Skipping malformed time slot %r for school %s", raw, school_id)
    if not slots:
        logger.warning("Structure for school %s has no usable time slots; using defaults", school_id)
        return default_structure(school_id)

    return SchoolStructure(
        school_id=school_id,
        working_days=tuple(sort_days(record.working_days or DEFAULT_WORKING_DAYS)),
        time_slots=tuple(sorted(slots, key=lambda item: item.period)),
    )


def save_structure(db: Session, school_id: str, payload: StructureIn) -> TimetableStructure:
    record = db.execute(
        select(TimetableStructure).where(TimetableStructure.school_id == school_id)
    ).scalar_one_or_none()
    if record is None:
        record = TimetableStructure(school_id=school_id)
        db.add(record)
    record.working_days = [day.value for day in payload.working_days]
    record.time_slots = [slot.model_dump() for slot in payload.time_slots]
    db.flush()
    return record


def structure_to_out(structure: SchoolStructure) -> StructureOut:
    return StructureOut(
        school_id=structure.school_id,
        working_days=list(structure.working_days),
        time_slots=[
            TimeSlotOut(
                period=slot.period,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_break=slot.is_break,
                teaching_period=structure.teaching_number(slot.period),
                label=structure.label(slot.period),
            )
            for slot in structure.time_slots
        ],
        is_default=structure.is_default,
    )
