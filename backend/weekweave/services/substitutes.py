from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.models.attendance import ABSENCE_STATUSES, TeacherAttendance
from weekweave.models.directory import SchoolClass, Teacher
from weekweave.models.substitution import Substitution
from weekweave.models.timetable_entry import TimetableEntry
from weekweave.services.calendar import day_of
from weekweave.services.directory import require_class
from weekweave.services.resolution import load_week_snapshot, teachers_by_period
from weekweave.services.structure import get_structure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubstituteCandidate:
    teacher: Teacher
    periods_that_day: int


def _absent_teacher_ids(db: Session, on_date: date) -> set[str]:
    records = db.execute(
        select(TeacherAttendance).where(
            (TeacherAttendance.attendance_date == on_date)
            | (
                (TeacherAttendance.leave_start_date <= on_date)
                & (TeacherAttendance.leave_end_date >= on_date)
            )
        )
    ).scalars()
    absent: set[str] = set()
    present: set[str] = set()
    for record in records:
        if record.attendance_date == on_date and not record.is_absence:
            present.add(record.teacher_id)
        elif record.status in ABSENCE_STATUSES:
            absent.add(record.teacher_id)
    return absent - present


def find_substitute_candidates(db: Session, entry: TimetableEntry, on_date: date) -> list[SubstituteCandidate]:
    """Teachers who could cover ``entry`` on ``on_date``, lightest daily load first.

    A candidate is active, teaches the entry's subject, is not absent that day, is free at
    the entry's period and is still under their daily period limit. Busy periods and daily
    load are read from the effective schedule of every class in the school, so weekly edits
    and cancellations count.
    """
    school_id = require_class(db, entry.class_id).school_id
    teachers = db.execute(
        select(Teacher).where(Teacher.is_active.is_(True), Teacher.school_id == school_id)
    ).scalars()

    day = day_of(on_date)
    absent = _absent_teacher_ids(db, on_date)
    class_ids = list(db.execute(select(SchoolClass.id).where(SchoolClass.school_id == school_id)).scalars())
    snapshot = load_week_snapshot(
        db,
        class_ids=class_ids,
        reference=on_date,
        structure=get_structure(db, school_id),
    )
    placed = teachers_by_period(snapshot, class_ids, day)
    load = Counter(teacher_id for teacher_ids in placed.values() for teacher_id in teacher_ids)
    busy = set(placed.get(entry.period, ()))
    # Proposed cover only reaches the effective schedule once approved.
    busy.update(
        db.execute(
            select(Substitution.substitute_teacher_id)
            .join(TimetableEntry, TimetableEntry.id == Substitution.timetable_entry_id)
            .where(
                Substitution.substitution_date == on_date,
                TimetableEntry.period == entry.period,
            )
        ).scalars()
    )

    candidates: list[SubstituteCandidate] = []
    for teacher in teachers:
        if teacher.id == entry.teacher_id or teacher.id in absent or teacher.id in busy:
            continue
        if entry.subject_id not in (teacher.subjects or []):
            continue
        periods = load[teacher.id]
        if periods >= teacher.max_daily_periods:
            continue
        candidates.append(SubstituteCandidate(teacher=teacher, periods_that_day=periods))

    candidates.sort(key=lambda item: (item.periods_that_day, item.teacher.name, item.teacher.id))
    logger.debug("Found %d substitute candidate(s) for entry %s on %s", len(candidates), entry.id, on_date)
    return candidates
