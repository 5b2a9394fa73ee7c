"""Change record lifecycle.

A change record moves ``pending -> approved -> dismissed``; rejecting a pending record deletes
it. Every transition is a conditional write on the current state, so of two racing callers
exactly one observes ``pending``. The other re-reads the row and gets
:class:`InvalidTransitionError` (or :class:`NotFoundError` once the row is gone).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from weekweave.core.exceptions import InvalidTransitionError, NotFoundError, ScheduleValidationError
from weekweave.models.directory import SchoolClass
from weekweave.models.notification import NotificationType
from weekweave.models.substitution import Substitution, SubstitutionStatus
from weekweave.models.timetable_change import ChangeSource, ChangeState, ChangeType, TimetableChange
from weekweave.models.timetable_entry import TimetableEntry
from weekweave.schemas.change import ChangeRecordCreate
from weekweave.schemas.structure import parse_time_to_minutes
from weekweave.services.audit import log_scope_activity
from weekweave.services.calendar import day_of
from weekweave.services.directory import require_entry, require_teacher
from weekweave.services.notifications import notify_once
from weekweave.services.scope_lock import ensure_scope_writable
from weekweave.services.substitutes import find_substitute_candidates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    change_id: str
    action: str
    state: ChangeState | None
    changed: bool
    message: str
    class_id: str | None = None
    change_date: date | None = None


@dataclass(frozen=True)
class AutoSubstituteOutcome:
    change: TimetableChange | None
    substitute_teacher_id: str | None
    message: str
    class_id: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_change(db: Session, change_id: str) -> TimetableChange:
    change = db.get(TimetableChange, change_id)
    if change is None:
        raise NotFoundError("TimetableChange", change_id)
    return change


def _guard_scope(db: Session, change: TimetableChange) -> TimetableEntry | None:
    entry = db.get(TimetableEntry, change.timetable_entry_id)
    if entry is not None:
        ensure_scope_writable(db, entry.class_id, change.change_date)
    return entry


def _settle_lost_transition(
    db: Session,
    change_id: str,
    action: str,
    *,
    tolerated: frozenset[ChangeState] = frozenset(),
    class_id: str | None = None,
) -> TransitionOutcome:
    current = db.execute(select(TimetableChange.state).where(TimetableChange.id == change_id)).scalar_one_or_none()
    if current is None:
        raise NotFoundError("TimetableChange", change_id)
    if current in tolerated:
        return TransitionOutcome(
            change_id=change_id,
            action=action,
            state=current,
            changed=False,
            message=f"Change is already {current.value}",
            class_id=class_id,
        )
    logger.info("Refused to %s change %s in state %s", action, change_id, current.value)
    raise InvalidTransitionError(change_id, current.value, action)


def _validate_draft(db: Session, payload: ChangeRecordCreate, entry: TimetableEntry) -> None:
    if day_of(payload.change_date) != entry.day:
        raise ScheduleValidationError(
            f"change_date {payload.change_date.isoformat()} is not a {entry.day.value}",
            details={"change_date": payload.change_date.isoformat(), "day": entry.day.value},
        )

    if payload.change_type == ChangeType.substitution:
        if not payload.new_teacher_id:
            raise ScheduleValidationError("A substitution needs new_teacher_id")
        if payload.new_teacher_id == entry.teacher_id:
            raise ScheduleValidationError(
                "The substitute must differ from the scheduled teacher",
                details={"new_teacher_id": payload.new_teacher_id},
            )
        require_teacher(db, payload.new_teacher_id)
    elif payload.change_type == ChangeType.room_change:
        if not payload.new_room:
            raise ScheduleValidationError("A room change needs new_room")
    elif payload.change_type == ChangeType.time_change:
        if not payload.new_start_time or not payload.new_end_time:
            raise ScheduleValidationError("A time change needs new_start_time and new_end_time")
        if parse_time_to_minutes(payload.new_end_time) <= parse_time_to_minutes(payload.new_start_time):
            raise ScheduleValidationError(
                "new_end_time must be after new_start_time",
                details={"new_start_time": payload.new_start_time, "new_end_time": payload.new_end_time},
            )
    elif payload.change_type == ChangeType.cancellation:
        duplicate = db.execute(
            select(TimetableChange.id).where(
                TimetableChange.timetable_entry_id == entry.id,
                TimetableChange.change_date == payload.change_date,
                TimetableChange.change_type == ChangeType.cancellation,
                TimetableChange.is_active.is_(True),
            )
        ).first()
        if duplicate is not None:
            raise ScheduleValidationError(
                "An active cancellation already exists for this entry and date",
                details={"existing_change_id": duplicate[0]},
            )


def create_change(db: Session, payload: ChangeRecordCreate, *, actor_id: str | None) -> TimetableChange:
    entry = require_entry(db, payload.timetable_entry_id)
    _validate_draft(db, payload, entry)
    ensure_scope_writable(db, entry.class_id, payload.change_date)

    change = TimetableChange(
        timetable_entry_id=entry.id,
        change_type=payload.change_type,
        change_date=payload.change_date,
        original_teacher_id=payload.original_teacher_id or entry.teacher_id,
        new_teacher_id=payload.new_teacher_id,
        original_room=payload.original_room or entry.room,
        new_room=payload.new_room,
        new_start_time=payload.new_start_time,
        new_end_time=payload.new_end_time,
        reason=payload.reason,
        change_source=payload.change_source,
        state=ChangeState.pending,
        is_active=True,
        created_by=actor_id,
    )
    db.add(change)
    db.flush()

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable_change.create",
        class_id=entry.class_id,
        reference=change.change_date,
        entity_type="timetable_change",
        entity_id=change.id,
        details={"change_type": change.change_type, "change_date": change.change_date},
    )
    logger.info(
        "Created %s change %s for entry %s on %s",
        change.change_type.value,
        change.id,
        entry.id,
        change.change_date,
    )
    return change


def _confirm_substitution(db: Session, change: TimetableChange, entry: TimetableEntry | None) -> None:
    original_teacher_id = change.original_teacher_id or (entry.teacher_id if entry is not None else None)
    if not change.new_teacher_id or original_teacher_id is None:
        return

    existing = db.execute(
        select(Substitution).where(
            Substitution.timetable_entry_id == change.timetable_entry_id,
            Substitution.substitution_date == change.change_date,
            Substitution.substitute_teacher_id == change.new_teacher_id,
        )
    ).scalars().first()
    if existing is not None:
        existing.status = SubstitutionStatus.confirmed
        return
    db.add(
        Substitution(
            timetable_entry_id=change.timetable_entry_id,
            original_teacher_id=original_teacher_id,
            substitute_teacher_id=change.new_teacher_id,
            substitution_date=change.change_date,
            status=SubstitutionStatus.confirmed,
            reason=change.reason,
        )
    )


def _notify_substitute(db: Session, change: TimetableChange, entry: TimetableEntry | None) -> None:
    where = ""
    if entry is not None:
        school_class = db.get(SchoolClass, entry.class_id)
        class_label = school_class.label if school_class is not None else entry.class_id
        where = f" for {class_label}, period {entry.period}"
    notify_once(
        db,
        recipient_id=change.new_teacher_id,
        change_id=change.id,
        title="Substitution assigned",
        message=f"You are covering a lesson{where} on {change.change_date.isoformat()}.",
        notification_type=NotificationType.substitution,
    )


def approve_change(db: Session, change_id: str, *, actor_id: str | None) -> TransitionOutcome:
    change = _require_change(db, change_id)
    entry = _guard_scope(db, change)
    class_id = entry.class_id if entry is not None else None

    result = db.execute(
        update(TimetableChange)
        .where(TimetableChange.id == change_id, TimetableChange.state == ChangeState.pending)
        .values(state=ChangeState.approved, approved_by=actor_id, approved_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return _settle_lost_transition(
            db,
            change_id,
            "approve",
            tolerated=frozenset({ChangeState.approved, ChangeState.dismissed}),
            class_id=class_id,
        )
    db.refresh(change)

    if change.change_type == ChangeType.substitution and change.new_teacher_id:
        _confirm_substitution(db, change, entry)
        _notify_substitute(db, change, entry)

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable_change.approve",
        class_id=class_id,
        reference=change.change_date,
        entity_type="timetable_change",
        entity_id=change.id,
        details={"change_type": change.change_type},
    )
    db.flush()
    logger.info("Approved %s change %s", change.change_type.value, change.id)
    return TransitionOutcome(
        change_id=change.id,
        action="approve",
        state=ChangeState.approved,
        changed=True,
        message="Change approved",
        class_id=class_id,
        change_date=change.change_date,
    )


def reject_change(db: Session, change_id: str, *, actor_id: str | None, reason: str | None = None) -> TransitionOutcome:
    change = _require_change(db, change_id)
    entry = _guard_scope(db, change)
    class_id = entry.class_id if entry is not None else None
    change_date = change.change_date
    change_type = change.change_type

    result = db.execute(
        delete(TimetableChange)
        .where(TimetableChange.id == change_id, TimetableChange.state == ChangeState.pending)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return _settle_lost_transition(db, change_id, "reject", class_id=class_id)
    db.expunge(change)

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable_change.reject",
        class_id=class_id,
        reference=change_date,
        entity_type="timetable_change",
        entity_id=change_id,
        details={"change_type": change_type, "reason": reason},
    )
    db.flush()
    logger.info("Rejected %s change %s", change_type.value, change_id)
    return TransitionOutcome(
        change_id=change_id,
        action="reject",
        state=None,
        changed=True,
        message="Change rejected and removed",
        class_id=class_id,
        change_date=change_date,
    )


def dismiss_change(db: Session, change_id: str, *, actor_id: str | None) -> TransitionOutcome:
    """Hide an approved change from the notification list; its scheduling effect stays."""
    change = _require_change(db, change_id)
    entry = _guard_scope(db, change)
    class_id = entry.class_id if entry is not None else None

    result = db.execute(
        update(TimetableChange)
        .where(TimetableChange.id == change_id, TimetableChange.state == ChangeState.approved)
        .values(state=ChangeState.dismissed)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return _settle_lost_transition(
            db,
            change_id,
            "dismiss",
            tolerated=frozenset({ChangeState.dismissed}),
            class_id=class_id,
        )
    db.refresh(change)

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable_change.dismiss",
        class_id=class_id,
        reference=change.change_date,
        entity_type="timetable_change",
        entity_id=change.id,
    )
    db.flush()
    return TransitionOutcome(
        change_id=change.id,
        action="dismiss",
        state=ChangeState.dismissed,
        changed=True,
        message="Change dismissed",
        class_id=class_id,
        change_date=change.change_date,
    )


def list_changes(
    db: Session,
    *,
    on_date: date | None = None,
    class_id: str | None = None,
    state: ChangeState | None = None,
    include_dismissed: bool = False,
) -> list[TimetableChange]:
    query = select(TimetableChange)
    if class_id is not None:
        query = query.join(TimetableEntry, TimetableEntry.id == TimetableChange.timetable_entry_id).where(
            TimetableEntry.class_id == class_id
        )
    if on_date is not None:
        query = query.where(TimetableChange.change_date == on_date)
    if state is not None:
        query = query.where(TimetableChange.state == state)
    elif not include_dismissed:
        query = query.where(TimetableChange.state != ChangeState.dismissed)
    return list(db.execute(query.order_by(TimetableChange.created_at.desc(), TimetableChange.id)).scalars())


def auto_substitute(
    db: Session,
    entry_id: str,
    on_date: date,
    *,
    reason: str,
    actor_id: str | None,
) -> AutoSubstituteOutcome:
    """Pick the best available substitute and propose it as a pending substitution."""
    entry = require_entry(db, entry_id)
    if day_of(on_date) != entry.day:
        raise ScheduleValidationError(
            f"{on_date.isoformat()} is not a {entry.day.value}",
            details={"date": on_date.isoformat(), "day": entry.day.value},
        )
    ensure_scope_writable(db, entry.class_id, on_date)

    candidates = find_substitute_candidates(db, entry, on_date)
    if not candidates:
        logger.warning("No substitute available for entry %s on %s", entry.id, on_date)
        return AutoSubstituteOutcome(
            change=None,
            substitute_teacher_id=None,
            message="No available substitute teachers found",
            class_id=entry.class_id,
        )

    chosen = candidates[0].teacher
    db.add(
        Substitution(
            timetable_entry_id=entry.id,
            original_teacher_id=entry.teacher_id,
            substitute_teacher_id=chosen.id,
            substitution_date=on_date,
            status=SubstitutionStatus.auto_assigned,
            reason=reason,
        )
    )
    change = TimetableChange(
        timetable_entry_id=entry.id,
        change_type=ChangeType.substitution,
        change_date=on_date,
        original_teacher_id=entry.teacher_id,
        new_teacher_id=chosen.id,
        original_room=entry.room,
        reason=reason,
        change_source=ChangeSource.auto_substitution,
        state=ChangeState.pending,
        is_active=True,
        created_by=actor_id,
    )
    db.add(change)
    db.flush()

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable_change.auto_substitute",
        class_id=entry.class_id,
        reference=on_date,
        entity_type="timetable_change",
        entity_id=change.id,
        details={"substitute_teacher_id": chosen.id},
    )
    logger.info("Proposed %s as substitute for entry %s on %s", chosen.id, entry.id, on_date)
    return AutoSubstituteOutcome(
        change=change,
        substitute_teacher_id=chosen.id,
        message=f"{chosen.name} proposed as substitute",
        class_id=entry.class_id,
    )
