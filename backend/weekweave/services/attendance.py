from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from weekweave.models.attendance import AttendanceStatus, TeacherAttendance
from weekweave.models.directory import Teacher
from weekweave.models.timetable_entry import TimetableEntry
from weekweave.schemas.attendance import AttendanceMark
from weekweave.schemas.timetable import EffectiveStatus
from weekweave.services.audit import log_activity
from weekweave.services.calendar import day_of
from weekweave.services.directory import require_teacher
from weekweave.services.resolution import load_week_snapshot, resolve_class_slot
from weekweave.services.structure import get_structure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AbsenceAlert:
    teacher: Teacher
    status: AttendanceStatus
    affected_entries: list[TimetableEntry]
    uncovered_entry_ids: list[str]


def get_attendance(db: Session, on_date: date, *, teacher_id: str | None = None) -> list[TeacherAttendance]:
    """Attendance records that apply on ``on_date``, either marked for it or spanning it."""
    query = select(TeacherAttendance).where(
        or_(
            TeacherAttendance.attendance_date == on_date,
            and_(
                TeacherAttendance.leave_start_date <= on_date,
                TeacherAttendance.leave_end_date >= on_date,
            ),
        )
    )
    if teacher_id is not None:
        query = query.where(TeacherAttendance.teacher_id == teacher_id)
    records = db.execute(query.order_by(TeacherAttendance.teacher_id, TeacherAttendance.attendance_date)).scalars()

    by_teacher: dict[str, TeacherAttendance] = {}
    for record in records:
        current = by_teacher.get(record.teacher_id)
        if current is None or record.attendance_date == on_date:
            by_teacher[record.teacher_id] = record
    return list(by_teacher.values())


def mark_attendance(db: Session, payload: AttendanceMark, *, actor_id: str | None) -> list[TeacherAttendance]:
    require_teacher(db, payload.teacher_id)
    last = payload.end_date or payload.date
    is_range = last != payload.date

    records: list[TeacherAttendance] = []
    current = payload.date
    while current <= last:
        record = db.execute(
            select(TeacherAttendance).where(
                TeacherAttendance.teacher_id == payload.teacher_id,
                TeacherAttendance.attendance_date == current,
            )
        ).scalar_one_or_none()
        if record is None:
            record = TeacherAttendance(teacher_id=payload.teacher_id, attendance_date=current)
            db.add(record)
        record.status = payload.status
        record.reason = payload.reason
        record.leave_start_date = payload.date if is_range else None
        record.leave_end_date = last if is_range else None
        record.marked_by = actor_id
        records.append(record)
        current += timedelta(days=1)
    db.flush()

    log_activity(
        db,
        actor_id=actor_id,
        action="attendance.mark",
        entity_type="teacher",
        entity_id=payload.teacher_id,
        details={
            "status": payload.status.value,
            "from": payload.date.isoformat(),
            "to": last.isoformat(),
            "days": len(records),
        },
    )
    logger.info(
        "Marked teacher %s %s from %s to %s",
        payload.teacher_id,
        payload.status.value,
        payload.date,
        last,
    )
    return records


def affected_class_ids(db: Session, teacher_id: str) -> set[str]:
    return set(
        db.execute(select(TimetableEntry.class_id).where(TimetableEntry.teacher_id == teacher_id)).scalars()
    )


def absence_alerts(db: Session, on_date: date) -> list[AbsenceAlert]:
    """Absent teachers with lessons on ``on_date`` and which of those lessons lack cover.

    A lesson lacks cover while its effective slot still needs a substitute. Any overlay
    that gives the slot a teacher or frees it clears the alert.
    """
    day = day_of(on_date)
    alerts: list[AbsenceAlert] = []
    for record in get_attendance(db, on_date):
        if not record.is_absence:
            continue
        teacher = db.get(Teacher, record.teacher_id)
        if teacher is None:
            continue
        entries = list(
            db.execute(
                select(TimetableEntry)
                .where(TimetableEntry.teacher_id == teacher.id, TimetableEntry.day == day)
                .order_by(TimetableEntry.period, TimetableEntry.class_id)
            ).scalars()
        )
        if not entries:
            continue

        snapshot = load_week_snapshot(
            db,
            class_ids={entry.class_id for entry in entries},
            reference=on_date,
            structure=get_structure(db, teacher.school_id),
        )
        uncovered = [
            entry.id
            for entry in entries
            if resolve_class_slot(snapshot, entry.class_id, day, entry.period).status
            == EffectiveStatus.substitution_required
        ]
        alerts.append(
            AbsenceAlert(
                teacher=teacher,
                status=record.status,
                affected_entries=entries,
                uncovered_entry_ids=uncovered,
            )
        )
    return alerts
