"""Activity log writes and reads.

Every mutation of the timetable records one row in the caller's transaction, so the log
entry commits or rolls back with the write it describes. Writes scoped to a class-week are
stamped with ``class_id`` and ``week_start`` in ``details`` so the log can be filtered the
same way invalidations are keyed.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.models.activity_log import ActivityLog
from weekweave.services.calendar import week_start


def _json_safe(value):
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def log_activity(
    db: Session,
    *,
    actor_id: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    record = ActivityLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_json_safe(details or {}),
    )
    db.add(record)
    return record


def log_scope_activity(
    db: Session,
    *,
    actor_id: str | None,
    action: str,
    class_id: str | None,
    reference: date,
    entity_type: str,
    entity_id: str,
    details: dict | None = None,
) -> ActivityLog:
    return log_activity(
        db,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details={**(details or {}), "class_id": class_id, "week_start": week_start(reference)},
    )


def list_activity(
    db: Session,
    *,
    action: str | None = None,
    entity_id: str | None = None,
    class_id: str | None = None,
    limit: int = 200,
) -> list[ActivityLog]:
    """Newest first."""
    query = select(ActivityLog).order_by(ActivityLog.created_at.desc(), ActivityLog.id)
    if action:
        query = query.where(ActivityLog.action == action)
    if entity_id:
        query = query.where(ActivityLog.entity_id == entity_id)
    if class_id:
        query = query.where(ActivityLog.details["class_id"].as_string() == class_id)
    return list(db.execute(query.limit(limit)).scalars())
