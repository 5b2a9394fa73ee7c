"""Effective schedule resolution.

The effective schedule is never stored. It is computed on every read from a
:class:`WeekSnapshot`, a point-in-time copy of the base timetable and the overlays for one
week. Precedence for a class slot is:

1. a weekly edit for the slot (a cleared edit makes the slot free),
2. otherwise the base entry, with an active cancellation making the slot free,
3. if the base teacher is absent on that date, the substitute from the most recently
   approved substitution change, else a confirmed substitution for the entry and date,
   else ``substitution_required``,
4. active room and time changes applied on top.

A teacher's schedule is derived by resolving each class the teacher could appear in and
keeping the one whose outcome names the teacher.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from weekweave.models.attendance import TeacherAttendance
from weekweave.models.substitution import Substitution, SubstitutionStatus
from weekweave.models.timetable_change import ChangeType, TimetableChange
from weekweave.models.timetable_entry import DayOfWeek, TimetableEntry
from weekweave.models.weekly_edit import WeeklyEdit
from weekweave.schemas.timetable import EffectiveEntry, EffectiveSource, EffectiveStatus
from weekweave.services.calendar import date_of_day_in_week, day_of, in_school_week, week_bounds, week_start
from weekweave.services.structure import SchoolStructure

logger = logging.getLogger(__name__)

SlotKey = tuple[str, DayOfWeek, int]


@dataclass(frozen=True)
class ScheduleView:
    """Either a class view or a teacher view, never both."""

    class_id: str | None = None
    teacher_id: str | None = None

    def __post_init__(self) -> None:
        if (self.class_id is None) == (self.teacher_id is None):
            raise ValueError("Exactly one of class_id or teacher_id is required")


@dataclass(frozen=True)
class WeekSnapshot:
    week_start: date
    structure: SchoolStructure
    base_by_slot: dict[SlotKey, TimetableEntry] = field(default_factory=dict)
    base_by_id: dict[str, TimetableEntry] = field(default_factory=dict)
    edits_by_slot: dict[SlotKey, WeeklyEdit] = field(default_factory=dict)
    changes_by_entry: dict[str, tuple[TimetableChange, ...]] = field(default_factory=dict)
    attendance_by_teacher: dict[str, tuple[TeacherAttendance, ...]] = field(default_factory=dict)
    confirmations_by_entry: dict[str, tuple[Substitution, ...]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        reference: date,
        structure: SchoolStructure,
        base_entries: Iterable[TimetableEntry] = (),
        weekly_edits: Iterable[WeeklyEdit] = (),
        changes: Iterable[TimetableChange] = (),
        attendance: Iterable[TeacherAttendance] = (),
        confirmations: Iterable[Substitution] = (),
    ) -> WeekSnapshot:
        monday = week_start(reference)

        base_by_slot: dict[SlotKey, TimetableEntry] = {}
        base_by_id: dict[str, TimetableEntry] = {}
        for entry in base_entries:
            base_by_slot[(entry.class_id, entry.day, entry.period)] = entry
            base_by_id[entry.id] = entry

        edits_by_slot = {
            (edit.class_id, edit.day, edit.period): edit
            for edit in weekly_edits
            if edit.week_start == monday
        }

        grouped_changes: dict[str, list[TimetableChange]] = defaultdict(list)
        for change in changes:
            if in_school_week(change.change_date, monday):
                grouped_changes[change.timetable_entry_id].append(change)

        grouped_attendance: dict[str, list[TeacherAttendance]] = defaultdict(list)
        for record in attendance:
            grouped_attendance[record.teacher_id].append(record)

        grouped_confirmations: dict[str, list[Substitution]] = defaultdict(list)
        for item in confirmations:
            if in_school_week(item.substitution_date, monday):
                grouped_confirmations[item.timetable_entry_id].append(item)

        return cls(
            week_start=monday,
            structure=structure,
            base_by_slot=base_by_slot,
            base_by_id=base_by_id,
            edits_by_slot=edits_by_slot,
            changes_by_entry={key: tuple(sorted(value, key=_change_order)) for key, value in grouped_changes.items()},
            attendance_by_teacher={key: tuple(value) for key, value in grouped_attendance.items()},
            confirmations_by_entry={key: tuple(value) for key, value in grouped_confirmations.items()},
        )

    def date_of(self, day: DayOfWeek) -> date:
        return date_of_day_in_week(self.week_start, day)

    def is_absent(self, teacher_id: str, on_date: date) -> bool:
        records = [item for item in self.attendance_by_teacher.get(teacher_id, ()) if item.covers(on_date)]
        if not records:
            return False
        # A record marked for the exact date overrides a leave range covering it.
        exact = [item for item in records if item.attendance_date == on_date]
        if exact:
            return exact[0].is_absence
        return any(item.is_absence for item in records)


def _change_order(change: TimetableChange) -> tuple:
    created = change.created_at
    return (created is None, created or datetime.min, change.id)


def _approval_order(change: TimetableChange) -> tuple:
    approved = change.approved_at
    return (approved is not None, approved or datetime.min, change.id)


def _entry(
    snapshot: WeekSnapshot,
    *,
    status: EffectiveStatus,
    source: EffectiveSource,
    class_id: str | None,
    day: DayOfWeek,
    period: int,
    **values,
) -> EffectiveEntry:
    return EffectiveEntry(
        status=status,
        source=source,
        class_id=class_id,
        day=day,
        period=period,
        date=snapshot.date_of(day),
        teaching_period=snapshot.structure.teaching_number(period),
        period_label=snapshot.structure.label(period),
        **values,
    )


def _slot_times(snapshot: WeekSnapshot, period: int) -> dict:
    slot = snapshot.structure.slot(period)
    if slot is None:
        return {}
    return {"start_time": slot.start_time, "end_time": slot.end_time}


def _substitute_for(snapshot: WeekSnapshot, entry: TimetableEntry) -> tuple[str | None, list[str]]:
    changes = snapshot.changes_by_entry.get(entry.id, ())
    approved = [
        change
        for change in changes
        if change.change_type == ChangeType.substitution
        and change.is_approved
        and change.new_teacher_id
    ]
    if approved:
        latest = max(approved, key=_approval_order)
        return latest.new_teacher_id, [latest.id]

    for item in snapshot.confirmations_by_entry.get(entry.id, ()):
        if item.status == SubstitutionStatus.confirmed:
            return item.substitute_teacher_id, []
    return None, []


def _cosmetic_overrides(changes: Iterable[TimetableChange]) -> tuple[dict, list[str]]:
    overrides: dict = {}
    applied: list[str] = []
    for change in changes:
        if not change.is_active:
            continue
        if change.change_type == ChangeType.room_change and change.new_room:
            overrides["room"] = change.new_room
            applied.append(change.id)
        elif change.change_type == ChangeType.time_change and change.new_start_time and change.new_end_time:
            overrides["start_time"] = change.new_start_time
            overrides["end_time"] = change.new_end_time
            applied.append(change.id)
    return overrides, applied


def resolve_class_slot(snapshot: WeekSnapshot, class_id: str, day: DayOfWeek, period: int) -> EffectiveEntry:
    on_date = snapshot.date_of(day)
    key = (class_id, day, period)

    edit = snapshot.edits_by_slot.get(key)
    if edit is not None:
        if edit.is_soft_delete or edit.teacher_id is None:
            return _entry(
                snapshot,
                status=EffectiveStatus.free,
                source=EffectiveSource.weekly_edit,
                class_id=class_id,
                day=day,
                period=period,
                weekly_edit_id=edit.id,
                **_slot_times(snapshot, period),
            )
        return _entry(
            snapshot,
            status=EffectiveStatus.scheduled,
            source=EffectiveSource.weekly_edit,
            class_id=class_id,
            day=day,
            period=period,
            teacher_id=edit.teacher_id,
            subject_id=edit.subject_id,
            room=edit.room,
            start_time=edit.start_time,
            end_time=edit.end_time,
            weekly_edit_id=edit.id,
        )

    entry = snapshot.base_by_slot.get(key)
    if entry is None:
        return _entry(
            snapshot,
            status=EffectiveStatus.free,
            source=EffectiveSource.none,
            class_id=class_id,
            day=day,
            period=period,
            **_slot_times(snapshot, period),
        )

    changes = snapshot.changes_by_entry.get(entry.id, ())
    for change in changes:
        if change.change_type == ChangeType.cancellation and change.is_active:
            return _entry(
                snapshot,
                status=EffectiveStatus.free,
                source=EffectiveSource.cancellation,
                class_id=class_id,
                day=day,
                period=period,
                subject_id=entry.subject_id,
                original_teacher_id=entry.teacher_id,
                base_entry_id=entry.id,
                applied_change_ids=[change.id],
                start_time=entry.start_time,
                end_time=entry.end_time,
            )

    values = {
        "subject_id": entry.subject_id,
        "room": entry.room,
        "start_time": entry.start_time,
        "end_time": entry.end_time,
        "base_entry_id": entry.id,
    }
    overrides, applied = _cosmetic_overrides(changes)

    if snapshot.is_absent(entry.teacher_id, on_date):
        substitute_id, substitution_ids = _substitute_for(snapshot, entry)
        values.update(overrides)
        if substitute_id is None:
            return _entry(
                snapshot,
                status=EffectiveStatus.substitution_required,
                source=EffectiveSource.base,
                class_id=class_id,
                day=day,
                period=period,
                original_teacher_id=entry.teacher_id,
                applied_change_ids=applied,
                **values,
            )
        return _entry(
            snapshot,
            status=EffectiveStatus.scheduled,
            source=EffectiveSource.substitution,
            class_id=class_id,
            day=day,
            period=period,
            teacher_id=substitute_id,
            original_teacher_id=entry.teacher_id,
            applied_change_ids=substitution_ids + applied,
            **values,
        )

    values.update(overrides)
    return _entry(
        snapshot,
        status=EffectiveStatus.scheduled,
        source=EffectiveSource.base,
        class_id=class_id,
        day=day,
        period=period,
        teacher_id=entry.teacher_id,
        applied_change_ids=applied,
        **values,
    )


def _teacher_candidate_classes(snapshot: WeekSnapshot, teacher_id: str, day: DayOfWeek, period: int) -> list[str]:
    candidates: set[str] = set()
    for (class_id, slot_day, slot_period), entry in snapshot.base_by_slot.items():
        if slot_day == day and slot_period == period and entry.teacher_id == teacher_id:
            candidates.add(class_id)
    for (class_id, slot_day, slot_period), edit in snapshot.edits_by_slot.items():
        if slot_day == day and slot_period == period and edit.teacher_id == teacher_id:
            candidates.add(class_id)

    for entry_id, changes in snapshot.changes_by_entry.items():
        entry = snapshot.base_by_id.get(entry_id)
        if entry is None or entry.day != day or entry.period != period:
            continue
        if any(change.new_teacher_id == teacher_id for change in changes):
            candidates.add(entry.class_id)
    for entry_id, confirmations in snapshot.confirmations_by_entry.items():
        entry = snapshot.base_by_id.get(entry_id)
        if entry is None or entry.day != day or entry.period != period:
            continue
        if any(item.substitute_teacher_id == teacher_id for item in confirmations):
            candidates.add(entry.class_id)
    return sorted(candidates)


def resolve_teacher_slot(snapshot: WeekSnapshot, teacher_id: str, day: DayOfWeek, period: int) -> EffectiveEntry:
    matches: list[EffectiveEntry] = []
    for class_id in _teacher_candidate_classes(snapshot, teacher_id, day, period):
        outcome = resolve_class_slot(snapshot, class_id, day, period)
        if outcome.teacher_id == teacher_id:
            matches.append(outcome)
        elif outcome.status == EffectiveStatus.substitution_required and outcome.original_teacher_id == teacher_id:
            matches.append(outcome)

    if len(matches) > 1:
        logger.warning(
            "Teacher %s resolves into %d classes on %s period %s; reporting %s",
            teacher_id,
            len(matches),
            day.value,
            period,
            matches[0].class_id,
        )
    if matches:
        return matches[0]
    return _entry(
        snapshot,
        status=EffectiveStatus.free,
        source=EffectiveSource.none,
        class_id=None,
        day=day,
        period=period,
        **_slot_times(snapshot, period),
    )


def resolve(snapshot: WeekSnapshot, view: ScheduleView, day: DayOfWeek, period: int) -> EffectiveEntry:
    if view.class_id is not None:
        return resolve_class_slot(snapshot, view.class_id, day, period)
    return resolve_teacher_slot(snapshot, view.teacher_id, day, period)


def effective_schedule(
    snapshot: WeekSnapshot,
    view: ScheduleView,
    days: Iterable[DayOfWeek] | None = None,
) -> list[EffectiveEntry]:
    """Resolve every period of the structure for ``days`` (all working days by default)."""
    selected = list(days) if days is not None else list(snapshot.structure.working_days)
    return [
        resolve(snapshot, view, day, slot.period)
        for day in selected
        for slot in snapshot.structure.time_slots
    ]


def load_week_snapshot(
    db: Session,
    *,
    class_ids: Iterable[str],
    reference: date,
    structure: SchoolStructure,
) -> WeekSnapshot:
    """Read the base entries and overlays of ``class_ids`` for the week containing ``reference``."""
    class_ids = sorted(set(class_ids))
    if not class_ids:
        return WeekSnapshot.build(reference=reference, structure=structure)

    monday = week_start(reference)
    first, last = week_bounds(reference)

    base_entries = list(
        db.execute(select(TimetableEntry).where(TimetableEntry.class_id.in_(class_ids))).scalars()
    )
    weekly_edits = list(
        db.execute(
            select(WeeklyEdit).where(WeeklyEdit.class_id.in_(class_ids), WeeklyEdit.week_start == monday)
        ).scalars()
    )
    entry_ids = [entry.id for entry in base_entries]
    teacher_ids = {entry.teacher_id for entry in base_entries}

    changes: list[TimetableChange] = []
    confirmations: list[Substitution] = []
    attendance: list[TeacherAttendance] = []
    if entry_ids:
        changes = list(
            db.execute(
                select(TimetableChange).where(
                    TimetableChange.timetable_entry_id.in_(entry_ids),
                    TimetableChange.change_date.between(first, last),
                )
            ).scalars()
        )
        confirmations = list(
            db.execute(
                select(Substitution).where(
                    Substitution.timetable_entry_id.in_(entry_ids),
                    Substitution.substitution_date.between(first, last),
                )
            ).scalars()
        )
    if teacher_ids:
        attendance = list(
            db.execute(
                select(TeacherAttendance).where(
                    TeacherAttendance.teacher_id.in_(teacher_ids),
                    or_(
                        TeacherAttendance.attendance_date.between(first, last),
                        and_(
                            TeacherAttendance.leave_start_date <= last,
                            TeacherAttendance.leave_end_date >= first,
                        ),
                    ),
                )
            ).scalars()
        )

    return WeekSnapshot.build(
        reference=reference,
        structure=structure,
        base_entries=base_entries,
        weekly_edits=weekly_edits,
        changes=changes,
        attendance=attendance,
        confirmations=confirmations,
    )


def teacher_class_ids(db: Session, teacher_id: str, reference: date) -> set[str]:
    """Classes whose week could place ``teacher_id`` in a slot."""
    monday = week_start(reference)
    first, last = week_bounds(reference)

    class_ids = set(
        db.execute(select(TimetableEntry.class_id).where(TimetableEntry.teacher_id == teacher_id)).scalars()
    )
    class_ids.update(
        db.execute(
            select(WeeklyEdit.class_id).where(WeeklyEdit.teacher_id == teacher_id, WeeklyEdit.week_start == monday)
        ).scalars()
    )
    class_ids.update(
        db.execute(
            select(TimetableEntry.class_id)
            .join(TimetableChange, TimetableChange.timetable_entry_id == TimetableEntry.id)
            .where(
                TimetableChange.new_teacher_id == teacher_id,
                TimetableChange.change_date.between(first, last),
            )
        ).scalars()
    )
    class_ids.update(
        db.execute(
            select(TimetableEntry.class_id)
            .join(Substitution, Substitution.timetable_entry_id == TimetableEntry.id)
            .where(
                Substitution.substitute_teacher_id == teacher_id,
                Substitution.substitution_date.between(first, last),
            )
        ).scalars()
    )
    return class_ids


def snapshot_for_view(
    db: Session,
    view: ScheduleView,
    reference: date,
    structure: SchoolStructure,
) -> WeekSnapshot:
    if view.class_id is not None:
        class_ids = {view.class_id}
    else:
        class_ids = teacher_class_ids(db, view.teacher_id, reference)
    return load_week_snapshot(db, class_ids=class_ids, reference=reference, structure=structure)


def resolve_on_date(snapshot: WeekSnapshot, view: ScheduleView, on_date: date, period: int) -> EffectiveEntry:
    return resolve(snapshot, view, day_of(on_date), period)


def teachers_by_period(snapshot: WeekSnapshot, class_ids: Iterable[str], day: DayOfWeek) -> dict[int, list[str]]:
    """Teachers the effective schedule places in each period of ``day`` across ``class_ids``."""
    placed: dict[int, list[str]] = defaultdict(list)
    for class_id in sorted(set(class_ids)):
        for slot in snapshot.structure.time_slots:
            outcome = resolve_class_slot(snapshot, class_id, day, slot.period)
            if outcome.status == EffectiveStatus.scheduled and outcome.teacher_id:
                placed[slot.period].append(outcome.teacher_id)
    return placed
