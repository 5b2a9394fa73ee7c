from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.core.exceptions import NotFoundError, ScheduleValidationError
from weekweave.models.weekly_edit import WeeklyEdit
from weekweave.schemas.structure import parse_time_to_minutes
from weekweave.schemas.timetable import WeeklyEditCreate
from weekweave.services.audit import log_scope_activity
from weekweave.services.calendar import DAY_OFFSETS, week_start
from weekweave.services.directory import require_class, require_subject, require_teacher
from weekweave.services.scope_lock import ensure_scope_writable
from weekweave.services.structure import SchoolStructure

logger = logging.getLogger(__name__)


def resolve_week_anchor(payload: WeeklyEditCreate) -> date:
    if payload.week_start is not None:
        if payload.week_start.weekday() != 0:
            raise ScheduleValidationError(
                "week_start must be a Monday",
                details={"week_start": payload.week_start.isoformat()},
            )
        if payload.on_date is not None and week_start(payload.on_date) != payload.week_start:
            raise ScheduleValidationError(
                "date does not fall in the week starting at week_start",
                details={"week_start": payload.week_start.isoformat(), "date": payload.on_date.isoformat()},
            )
        return payload.week_start
    return week_start(payload.on_date)


def _validate_against_structure(payload: WeeklyEditCreate, structure: SchoolStructure) -> tuple[str, str]:
    if payload.day not in structure.working_days:
        raise ScheduleValidationError(
            f"{payload.day.value} is not a working day",
            details={"day": payload.day.value},
        )
    slot = structure.slot(payload.period)
    if slot is None:
        raise ScheduleValidationError(
            f"Period {payload.period} is outside the school structure",
            details={"period": payload.period},
        )
    if slot.is_break and (payload.teacher_id or payload.subject_id):
        raise ScheduleValidationError(
            f"Period {payload.period} is a break and cannot hold a lesson",
            details={"period": payload.period},
        )

    start_time = payload.start_time or slot.start_time
    end_time = payload.end_time or slot.end_time
    if parse_time_to_minutes(end_time) <= parse_time_to_minutes(start_time):
        raise ScheduleValidationError(
            "end_time must be after start_time",
            details={"start_time": start_time, "end_time": end_time},
        )
    return start_time, end_time


def upsert_weekly_edit(
    db: Session,
    payload: WeeklyEditCreate,
    *,
    structure: SchoolStructure,
    actor_id: str | None,
) -> WeeklyEdit:
    """Create or replace the weekly edit for one slot; null teacher and subject clear it."""
    if bool(payload.teacher_id) != bool(payload.subject_id):
        missing = "teacher_id" if payload.subject_id else "subject_id"
        raise ScheduleValidationError(
            "A weekly edit needs both a teacher and a subject, or neither to clear the slot",
            details={"missing": missing},
        )

    monday = resolve_week_anchor(payload)
    require_class(db, payload.class_id)
    start_time, end_time = _validate_against_structure(payload, structure)
    if payload.teacher_id:
        require_teacher(db, payload.teacher_id)
        require_subject(db, payload.subject_id)
    ensure_scope_writable(db, payload.class_id, monday)

    record = db.execute(
        select(WeeklyEdit).where(
            WeeklyEdit.class_id == payload.class_id,
            WeeklyEdit.week_start == monday,
            WeeklyEdit.day == payload.day,
            WeeklyEdit.period == payload.period,
        )
    ).scalar_one_or_none()
    created = record is None
    if record is None:
        record = WeeklyEdit(
            class_id=payload.class_id,
            week_start=monday,
            day=payload.day,
            period=payload.period,
        )
        db.add(record)

    record.teacher_id = payload.teacher_id
    record.subject_id = payload.subject_id
    record.start_time = start_time
    record.end_time = end_time
    record.room = payload.room
    record.reason = payload.reason
    record.modified_by = actor_id
    db.flush()

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="weekly_edit.create" if created else "weekly_edit.update",
        class_id=record.class_id,
        reference=monday,
        entity_type="weekly_edit",
        entity_id=record.id,
        details={"day": record.day, "period": record.period, "cleared": record.is_soft_delete},
    )
    logger.info(
        "Weekly edit %s %s for class %s %s period %s (week %s)",
        record.id,
        "created" if created else "replaced",
        record.class_id,
        record.day.value,
        record.period,
        monday,
    )
    return record


def delete_weekly_edit(db: Session, edit_id: str, *, actor_id: str | None) -> WeeklyEdit:
    record = db.get(WeeklyEdit, edit_id)
    if record is None:
        raise NotFoundError("WeeklyEdit", edit_id)
    ensure_scope_writable(db, record.class_id, record.week_start)
    db.delete(record)
    log_scope_activity(
        db,
        actor_id=actor_id,
        action="weekly_edit.delete",
        class_id=record.class_id,
        reference=record.week_start,
        entity_type="weekly_edit",
        entity_id=edit_id,
        details={"day": record.day, "period": record.period},
    )
    db.flush()
    return record


def list_weekly_edits(db: Session, *, class_id: str, reference: date) -> list[WeeklyEdit]:
    records = db.execute(
        select(WeeklyEdit).where(WeeklyEdit.class_id == class_id, WeeklyEdit.week_start == week_start(reference))
    ).scalars()
    return sorted(records, key=lambda item: (DAY_OFFSETS[item.day], item.period))
