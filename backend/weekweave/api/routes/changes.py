from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from weekweave.api.deps import get_current_user, get_db, require_admin
from weekweave.models.timetable_change import ChangeState
from weekweave.schemas.auth import CurrentUser
from weekweave.schemas.change import (
    AutoSubstituteRequest,
    AutoSubstituteResult,
    ChangeCreateResult,
    ChangeRecordCreate,
    ChangeRecordOut,
    ChangeRejectRequest,
    ChangeTransitionResult,
)
from weekweave.schemas.timetable import ScopeInvalidation
from weekweave.services.calendar import week_start
from weekweave.services.changes import (
    TransitionOutcome,
    approve_change,
    auto_substitute,
    create_change,
    dismiss_change,
    list_changes,
    reject_change,
)
from weekweave.services.directory import require_entry
from weekweave.services.notifications import publish_scope_invalidation

router = APIRouter()


def _transition_result(db: Session, outcome: TransitionOutcome) -> ChangeTransitionResult:
    invalidates = None
    if outcome.changed:
        db.commit()
        if outcome.class_id is not None and outcome.change_date is not None:
            publish_scope_invalidation(outcome.class_id, outcome.change_date, reason=f"change.{outcome.action}")
            invalidates = ScopeInvalidation(class_id=outcome.class_id, week_start=week_start(outcome.change_date))
    return ChangeTransitionResult(
        change_id=outcome.change_id,
        action=outcome.action,
        state=outcome.state,
        changed=outcome.changed,
        message=outcome.message,
        invalidates=invalidates,
    )


@router.get("", response_model=list[ChangeRecordOut])
def read_changes(
    on_date: date | None = Query(default=None, alias="date"),
    class_id: str | None = Query(default=None, max_length=36),
    state: ChangeState | None = Query(default=None),
    include_dismissed: bool = Query(default=False),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChangeRecordOut]:
    return list_changes(
        db,
        on_date=on_date,
        class_id=class_id,
        state=state,
        include_dismissed=include_dismissed,
    )


@router.post("", response_model=ChangeCreateResult, status_code=status.HTTP_201_CREATED)
def submit_change(
    payload: ChangeRecordCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ChangeCreateResult:
    change = create_change(db, payload, actor_id=current_user.id)
    class_id = require_entry(db, change.timetable_entry_id).class_id
    db.commit()
    db.refresh(change)
    publish_scope_invalidation(class_id, change.change_date, reason="change.create")
    return ChangeCreateResult(
        change=ChangeRecordOut.model_validate(change),
        invalidates=ScopeInvalidation(class_id=class_id, week_start=week_start(change.change_date)),
    )


@router.post("/auto-substitute", response_model=AutoSubstituteResult)
def propose_substitute(
    payload: AutoSubstituteRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AutoSubstituteResult:
    outcome = auto_substitute(
        db,
        payload.timetable_entry_id,
        payload.date,
        reason=payload.reason,
        actor_id=current_user.id,
    )
    if outcome.change is None:
        return AutoSubstituteResult(assigned=False, message=outcome.message)

    db.commit()
    db.refresh(outcome.change)
    publish_scope_invalidation(outcome.class_id, payload.date, reason="change.auto_substitute")
    return AutoSubstituteResult(
        assigned=True,
        message=outcome.message,
        substitute_teacher_id=outcome.substitute_teacher_id,
        change=ChangeRecordOut.model_validate(outcome.change),
        invalidates=ScopeInvalidation(class_id=outcome.class_id, week_start=week_start(payload.date)),
    )


@router.post("/{change_id}/approve", response_model=ChangeTransitionResult)
def approve(
    change_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ChangeTransitionResult:
    return _transition_result(db, approve_change(db, change_id, actor_id=current_user.id))


@router.post("/{change_id}/reject", response_model=ChangeTransitionResult)
def reject(
    change_id: str,
    payload: ChangeRejectRequest | None = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ChangeTransitionResult:
    reason = payload.reason if payload is not None else None
    return _transition_result(db, reject_change(db, change_id, actor_id=current_user.id, reason=reason))


@router.post("/{change_id}/dismiss", response_model=ChangeTransitionResult)
def dismiss(
    change_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ChangeTransitionResult:
    return _transition_result(db, dismiss_change(db, change_id, actor_id=current_user.id))
