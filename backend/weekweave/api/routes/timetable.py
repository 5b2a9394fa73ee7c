from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.api.deps import get_current_user, get_db, require_admin
from weekweave.core.exceptions import NotFoundError, ScheduleValidationError
from weekweave.models.timetable_entry import TimetableEntry
from weekweave.schemas.auth import CurrentUser
from weekweave.schemas.timetable import (
    BaseEntryOut,
    EffectiveEntry,
    GenerateRequest,
    GenerateResult,
    PromotionRequest,
    PromotionResult,
    ScopeInvalidation,
    SubstituteCandidateOut,
    WeeklyEditCreate,
    WeeklyEditOut,
    WeeklyEditResult,
)
from weekweave.services.audit import log_activity
from weekweave.services.calendar import DAY_OFFSETS, date_of_day_in_week, day_of, parse_day, today, week_start
from weekweave.services.directory import require_class, require_entry, require_teacher
from weekweave.services.generator import ScheduleGenerator, UnconfiguredGenerator
from weekweave.services.notifications import publish_scope_invalidation
from weekweave.services.promotion import promote_to_global
from weekweave.services.resolution import (
    ScheduleView,
    effective_schedule,
    resolve,
    resolve_class_slot,
    resolve_on_date,
    snapshot_for_view,
)
from weekweave.services.scope_lock import clear_write_hold
from weekweave.services.structure import SchoolStructure, get_structure
from weekweave.services.substitutes import find_substitute_candidates
from weekweave.services.weekly_edits import delete_weekly_edit, list_weekly_edits, upsert_weekly_edit

router = APIRouter()


def _view_and_structure(db: Session, class_id: str | None, teacher_id: str | None) -> tuple[ScheduleView, SchoolStructure]:
    if (class_id is None) == (teacher_id is None):
        raise ScheduleValidationError("Provide exactly one of class_id or teacher_id")
    if class_id is not None:
        school_id = require_class(db, class_id).school_id
    else:
        school_id = require_teacher(db, teacher_id).school_id
    return ScheduleView(class_id=class_id, teacher_id=teacher_id), get_structure(db, school_id)


def _scope(class_id: str, reference: date) -> ScopeInvalidation:
    return ScopeInvalidation(class_id=class_id, week_start=week_start(reference))


@router.get("/base", response_model=list[BaseEntryOut])
def list_base_entries(
    class_id: str | None = Query(default=None, max_length=36),
    teacher_id: str | None = Query(default=None, max_length=36),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BaseEntryOut]:
    view, _ = _view_and_structure(db, class_id, teacher_id)
    query = select(TimetableEntry)
    if view.class_id is not None:
        query = query.where(TimetableEntry.class_id == view.class_id)
    else:
        query = query.where(TimetableEntry.teacher_id == view.teacher_id)
    entries = db.execute(query).scalars()
    return sorted(entries, key=lambda item: (DAY_OFFSETS[item.day], item.period, item.class_id))


@router.get("/effective", response_model=list[EffectiveEntry])
def read_effective_schedule(
    class_id: str | None = Query(default=None, max_length=36),
    teacher_id: str | None = Query(default=None, max_length=36),
    on_date: date | None = Query(default=None, alias="date"),
    scope: Literal["day", "week"] = Query(default="week"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[EffectiveEntry]:
    view, structure = _view_and_structure(db, class_id, teacher_id)
    reference = on_date or today()
    snapshot = snapshot_for_view(db, view, reference, structure)
    days = [day_of(reference)] if scope == "day" else None
    return effective_schedule(snapshot, view, days)


@router.get("/effective/slot", response_model=EffectiveEntry)
def read_effective_slot(
    period: int = Query(ge=1, le=20),
    class_id: str | None = Query(default=None, max_length=36),
    teacher_id: str | None = Query(default=None, max_length=36),
    day: str | None = Query(default=None),
    on_date: date | None = Query(default=None, alias="date"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> EffectiveEntry:
    view, structure = _view_and_structure(db, class_id, teacher_id)
    reference = on_date or today()
    if day is None:
        snapshot = snapshot_for_view(db, view, reference, structure)
        return resolve_on_date(snapshot, view, reference, period)
    try:
        target_day = parse_day(day)
    except ValueError as exc:
        raise ScheduleValidationError(str(exc), details={"day": day}) from exc
    snapshot = snapshot_for_view(db, view, date_of_day_in_week(reference, target_day), structure)
    return resolve(snapshot, view, target_day, period)


@router.get("/weekly-edits", response_model=list[WeeklyEditOut])
def read_weekly_edits(
    class_id: str = Query(min_length=1, max_length=36),
    on_date: date | None = Query(default=None, alias="date"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[WeeklyEditOut]:
    require_class(db, class_id)
    return list_weekly_edits(db, class_id=class_id, reference=on_date or today())


@router.post("/weekly-edits", response_model=WeeklyEditResult, status_code=status.HTTP_201_CREATED)
def create_weekly_edit(
    payload: WeeklyEditCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WeeklyEditResult:
    school_class = require_class(db, payload.class_id)
    structure = get_structure(db, school_class.school_id)
    record = upsert_weekly_edit(db, payload, structure=structure, actor_id=current_user.id)
    db.commit()
    db.refresh(record)

    reference = record.week_start
    publish_scope_invalidation(record.class_id, reference, reason="weekly_edit")
    snapshot = snapshot_for_view(db, ScheduleView(class_id=record.class_id), reference, structure)
    return WeeklyEditResult(
        edit=WeeklyEditOut.model_validate(record),
        effective=resolve_class_slot(snapshot, record.class_id, record.day, record.period),
        invalidates=_scope(record.class_id, reference),
    )


@router.delete("/weekly-edits/{edit_id}", response_model=ScopeInvalidation)
def remove_weekly_edit(
    edit_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ScopeInvalidation:
    record = delete_weekly_edit(db, edit_id, actor_id=current_user.id)
    class_id, reference = record.class_id, record.week_start
    db.commit()
    publish_scope_invalidation(class_id, reference, reason="weekly_edit")
    return _scope(class_id, reference)


@router.post("/promote", response_model=PromotionResult)
def promote_week(
    payload: PromotionRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PromotionResult:
    outcome = promote_to_global(db, payload.class_id, payload.date, actor_id=current_user.id)
    publish_scope_invalidation(outcome.class_id, outcome.week_start, reason="promotion")
    return PromotionResult(
        class_id=outcome.class_id,
        week_start=outcome.week_start,
        week_end=outcome.week_end,
        entries_updated=outcome.entries_updated,
        weekly_edits_cleared=outcome.weekly_edits_cleared,
        changes_cleared=outcome.changes_cleared,
        invalidates=_scope(outcome.class_id, outcome.week_start),
    )


@router.post("/generate", response_model=GenerateResult)
def generate_base_schedule(
    payload: GenerateRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GenerateResult:
    if payload.class_id is not None:
        require_class(db, payload.class_id)
    generator: ScheduleGenerator = getattr(request.app.state, "schedule_generator", None) or UnconfiguredGenerator()
    outcome = generator.generate(payload.class_id)
    log_activity(
        db,
        actor_id=current_user.id,
        action="timetable.generate",
        entity_type="class" if payload.class_id else None,
        entity_id=payload.class_id,
        details={"status": outcome.status, "message": outcome.message},
    )
    db.commit()
    if outcome.status == "success" and payload.class_id is not None:
        publish_scope_invalidation(payload.class_id, today(), reason="regeneration")
    return GenerateResult(status=outcome.status, message=outcome.message, class_id=payload.class_id)


@router.delete("/classes/{class_id}/write-hold", status_code=status.HTTP_204_NO_CONTENT)
def release_write_hold(
    class_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    if not clear_write_hold(db, class_id):
        raise NotFoundError("ClassWriteHold", class_id)
    log_activity(
        db,
        actor_id=current_user.id,
        action="timetable.write_hold.clear",
        entity_type="class",
        entity_id=class_id,
    )
    db.commit()


@router.get("/substitute-candidates", response_model=list[SubstituteCandidateOut])
def read_substitute_candidates(
    timetable_entry_id: str = Query(min_length=1, max_length=36),
    on_date: date = Query(alias="date"),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[SubstituteCandidateOut]:
    entry = require_entry(db, timetable_entry_id)
    if day_of(on_date) != entry.day:
        raise ScheduleValidationError(
            f"{on_date.isoformat()} is not a {entry.day.value}",
            details={"date": on_date.isoformat(), "day": entry.day.value},
        )
    return [
        SubstituteCandidateOut(
            teacher_id=item.teacher.id,
            name=item.teacher.name,
            periods_that_day=item.periods_that_day,
        )
        for item in find_substitute_candidates(db, entry, on_date)
    ]
