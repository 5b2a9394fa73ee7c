"""Fold one week's effective schedule into the base timetable.

Promotion runs under the (class, week) scope lock and in a single transaction. If the
transaction cannot be rolled back after a failure, a write hold is recorded for the class
so no further writes land on a possibly half-promoted base.

Writers bump the week's scope revision before checking the lock. A promotion reads the
revision before its snapshot and again before clearing overlays, and rolls back if a
write committed in between.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import delete
from sqlalchemy.orm import Session

from weekweave.core.exceptions import ConflictError, InconsistentStateError
from weekweave.models.substitution import Substitution
from weekweave.models.timetable_change import TimetableChange
from weekweave.models.timetable_entry import TimetableEntry
from weekweave.models.weekly_edit import WeeklyEdit
from weekweave.schemas.timetable import EffectiveEntry, EffectiveStatus
from weekweave.services.audit import log_scope_activity
from weekweave.services.calendar import week_bounds
from weekweave.services.directory import require_class
from weekweave.services.resolution import WeekSnapshot, load_week_snapshot, resolve_class_slot
from weekweave.services.scope_lock import (
    claim_scope,
    ensure_class_writable,
    place_write_hold,
    scope_lock,
    scope_revision,
)
from weekweave.services.structure import SchoolStructure, get_structure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionOutcome:
    class_id: str
    week_start: date
    week_end: date
    entries_updated: int
    weekly_edits_cleared: int
    changes_cleared: int
    substitutions_cleared: int


def _differs(entry: TimetableEntry, effective: EffectiveEntry) -> bool:
    return (
        entry.teacher_id != effective.teacher_id
        or entry.subject_id != effective.subject_id
        or entry.room != effective.room
        or entry.start_time != effective.start_time
        or entry.end_time != effective.end_time
    )


def _rewrite_base(db: Session, snapshot: WeekSnapshot, class_id: str, structure: SchoolStructure) -> int:
    updated = 0
    for day in structure.working_days:
        for slot in structure.teaching_slots:
            effective = resolve_class_slot(snapshot, class_id, day, slot.period)
            base = snapshot.base_by_slot.get((class_id, day, slot.period))

            # Nobody is assigned yet, so the recurring entry stays.
            if effective.status == EffectiveStatus.substitution_required:
                continue

            if effective.status == EffectiveStatus.free:
                if base is not None:
                    db.delete(base)
                    updated += 1
                continue

            if base is None:
                db.add(
                    TimetableEntry(
                        class_id=class_id,
                        teacher_id=effective.teacher_id,
                        subject_id=effective.subject_id,
                        day=day,
                        period=slot.period,
                        start_time=effective.start_time or slot.start_time,
                        end_time=effective.end_time or slot.end_time,
                        room=effective.room,
                    )
                )
                updated += 1
            elif _differs(base, effective):
                base.teacher_id = effective.teacher_id
                base.subject_id = effective.subject_id
                base.room = effective.room
                base.start_time = effective.start_time or base.start_time
                base.end_time = effective.end_time or base.end_time
                updated += 1
    db.flush()
    return updated


def _clear_overlays(db: Session, snapshot: WeekSnapshot, class_id: str) -> tuple[int, int, int]:
    first, last = week_bounds(snapshot.week_start)
    entry_ids = list(snapshot.base_by_id)

    edits = db.execute(
        delete(WeeklyEdit)
        .where(WeeklyEdit.class_id == class_id, WeeklyEdit.week_start == snapshot.week_start)
        .execution_options(synchronize_session=False)
    ).rowcount
    changes = 0
    substitutions = 0
    if entry_ids:
        changes = db.execute(
            delete(TimetableChange)
            .where(
                TimetableChange.timetable_entry_id.in_(entry_ids),
                TimetableChange.change_date.between(first, last),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        substitutions = db.execute(
            delete(Substitution)
            .where(
                Substitution.timetable_entry_id.in_(entry_ids),
                Substitution.substitution_date.between(first, last),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
    return edits, changes, substitutions


def _apply_promotion(
    db: Session,
    class_id: str,
    reference: date,
    structure: SchoolStructure,
    actor_id: str | None,
) -> PromotionOutcome:
    first, last = week_bounds(reference)
    revision = scope_revision(db, class_id, reference, for_update=True)
    snapshot = load_week_snapshot(db, class_ids=[class_id], reference=reference, structure=structure)
    updated = _rewrite_base(db, snapshot, class_id, structure)
    if scope_revision(db, class_id, reference) != revision:
        raise ConflictError(
            f"Week of {first.isoformat()} for class {class_id} changed during promotion; retry",
            details={"class_id": class_id, "week_start": first.isoformat()},
        )
    edits, changes, substitutions = _clear_overlays(db, snapshot, class_id)
    claim_scope(db, class_id, reference)

    log_scope_activity(
        db,
        actor_id=actor_id,
        action="timetable.promote",
        class_id=class_id,
        reference=first,
        entity_type="class",
        entity_id=class_id,
        details={
            "entries_updated": updated,
            "weekly_edits_cleared": edits,
            "changes_cleared": changes,
            "substitutions_cleared": substitutions,
        },
    )
    return PromotionOutcome(
        class_id=class_id,
        week_start=first,
        week_end=last,
        entries_updated=updated,
        weekly_edits_cleared=edits,
        changes_cleared=changes,
        substitutions_cleared=substitutions,
    )


def promote_to_global(db: Session, class_id: str, reference: date, *, actor_id: str | None) -> PromotionOutcome:
    school_class = require_class(db, class_id)
    ensure_class_writable(db, class_id)
    structure = get_structure(db, school_class.school_id)
    bind = db.get_bind()

    with scope_lock(bind, class_id, reference, holder_id=actor_id):
        try:
            outcome = _apply_promotion(db, class_id, reference, structure, actor_id)
            db.commit()
        except Exception as exc:
            try:
                db.rollback()
            except Exception as rollback_exc:
                logger.critical(
                    "Promotion of class %s for week of %s failed (%s) and could not be rolled back; "
                    "halting writes to the class",
                    class_id,
                    week_bounds(reference)[0],
                    exc,
                    exc_info=rollback_exc,
                )
                place_write_hold(
                    bind,
                    class_id,
                    f"Promotion for week of {week_bounds(reference)[0].isoformat()} could not be rolled back",
                )
                raise InconsistentStateError(class_id) from rollback_exc
            logger.warning("Promotion of class %s rolled back: %s", class_id, exc)
            raise

    logger.info(
        "Promoted class %s week %s: %d base entries updated, %d edits and %d changes cleared",
        class_id,
        outcome.week_start,
        outcome.entries_updated,
        outcome.weekly_edits_cleared,
        outcome.changes_cleared,
    )
    return outcome
