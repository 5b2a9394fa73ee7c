from __future__ import annotations

from sqlalchemy.orm import Session

from weekweave.core.exceptions import NotFoundError
from weekweave.models.directory import SchoolClass, Subject, Teacher
from weekweave.models.timetable_entry import TimetableEntry


def require_class(db: Session, class_id: str) -> SchoolClass:
    record = db.get(SchoolClass, class_id)
    if record is None:
        raise NotFoundError("Class", class_id)
    return record


def require_teacher(db: Session, teacher_id: str) -> Teacher:
    record = db.get(Teacher, teacher_id)
    if record is None:
        raise NotFoundError("Teacher", teacher_id)
    return record


def require_subject(db: Session, subject_id: str) -> Subject:
    record = db.get(Subject, subject_id)
    if record is None:
        raise NotFoundError("Subject", subject_id)
    return record


def require_entry(db: Session, entry_id: str) -> TimetableEntry:
    record = db.get(TimetableEntry, entry_id)
    if record is None:
        raise NotFoundError("TimetableEntry", entry_id)
    return record
