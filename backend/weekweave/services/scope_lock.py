from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from weekweave.core.config import get_settings
from weekweave.core.exceptions import ConflictError, InconsistentStateError
from weekweave.models.scope_lock import ClassWriteHold, TimetableScope, TimetableScopeLock
from weekweave.services.calendar import week_start

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def ensure_class_writable(db: Session, class_id: str) -> None:
    hold = db.get(ClassWriteHold, class_id)
    if hold is not None:
        raise InconsistentStateError(
            class_id,
            f"Writes to class {class_id} are halted until manual reconciliation: {hold.reason}",
        )


def claim_scope(db: Session, class_id: str, reference: date) -> None:
    """Bump the (class, week) revision in the caller's transaction.

    The row update serializes the write against a promotion holding the same row, and the
    new revision tells a promotion that read the week earlier that its snapshot is stale.
    """
    monday = week_start(reference)
    bumped = db.execute(
        update(TimetableScope)
        .where(TimetableScope.class_id == class_id, TimetableScope.week_start == monday)
        .values(revision=TimetableScope.revision + 1, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if bumped:
        return
    db.add(TimetableScope(class_id=class_id, week_start=monday, revision=1, updated_at=_utcnow()))
    try:
        db.flush()
    except IntegrityError:
        raise ConflictError(
            f"Week of {monday.isoformat()} for class {class_id} was written concurrently; retry shortly",
            details={"class_id": class_id, "week_start": monday.isoformat()},
        ) from None


def scope_revision(db: Session, class_id: str, reference: date, *, for_update: bool = False) -> int | None:
    query = select(TimetableScope.revision).where(
        TimetableScope.class_id == class_id,
        TimetableScope.week_start == week_start(reference),
    )
    if for_update:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()


def ensure_scope_writable(db: Session, class_id: str, reference: date) -> None:
    """Raise if the class is held or its week is locked by an in-flight promotion.

    The week is claimed before the lock is checked, so a write that gets past the check
    either lands before a promotion snapshots the week or makes that promotion roll back.
    """
    ensure_class_writable(db, class_id)
    claim_scope(db, class_id, reference)
    monday = week_start(reference)
    lock = db.execute(
        select(TimetableScopeLock).where(
            TimetableScopeLock.class_id == class_id,
            TimetableScopeLock.week_start == monday,
        )
    ).scalar_one_or_none()
    if lock is not None and _as_utc(lock.expires_at) > _utcnow():
        raise ConflictError(
            f"Week of {monday.isoformat()} for class {class_id} is being promoted; retry shortly",
            details={"class_id": class_id, "week_start": monday.isoformat()},
        )


def acquire_scope_lock(
    bind: Engine | Connection,
    class_id: str,
    reference: date,
    *,
    holder_id: str | None = None,
    ttl_seconds: int | None = None,
) -> str:
    """Insert the lock row for (class, week) in its own transaction and return its id."""
    monday = week_start(reference)
    ttl = ttl_seconds if ttl_seconds is not None else get_settings().scope_lock_ttl_seconds
    details = {"class_id": class_id, "week_start": monday.isoformat()}

    with Session(bind=bind) as session:
        for _ in range(2):
            now = _utcnow()
            lock = TimetableScopeLock(
                class_id=class_id,
                week_start=monday,
                holder_id=holder_id,
                expires_at=now + timedelta(seconds=max(1, ttl)),
            )
            session.add(lock)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.execute(
                    select(TimetableScopeLock).where(
                        TimetableScopeLock.class_id == class_id,
                        TimetableScopeLock.week_start == monday,
                    )
                ).scalar_one_or_none()
                if existing is not None and _as_utc(existing.expires_at) > now:
                    raise ConflictError(
                        f"Week of {monday.isoformat()} for class {class_id} is already being promoted",
                        details=details,
                    ) from None
                if existing is not None:
                    logger.warning("Reclaiming expired scope lock %s for class %s", existing.id, class_id)
                    session.delete(existing)
                    session.commit()
                continue
            logger.debug("Acquired scope lock %s for class %s week %s", lock.id, class_id, monday)
            return lock.id

    raise ConflictError(f"Could not lock week of {monday.isoformat()} for class {class_id}", details=details)


def release_scope_lock(bind: Engine | Connection, lock_id: str) -> None:
    with Session(bind=bind) as session:
        session.execute(delete(TimetableScopeLock).where(TimetableScopeLock.id == lock_id))
        session.commit()


@contextmanager
def scope_lock(
    bind: Engine | Connection,
    class_id: str,
    reference: date,
    *,
    holder_id: str | None = None,
) -> Iterator[str]:
    lock_id = acquire_scope_lock(bind, class_id, reference, holder_id=holder_id)
    try:
        yield lock_id
    finally:
        try:
            release_scope_lock(bind, lock_id)
        except Exception:
            logger.exception("Failed to release scope lock %s; it expires on its own", lock_id)


def place_write_hold(bind: Engine | Connection, class_id: str, reason: str) -> None:
    """Record a write hold outside the caller's (failed) transaction."""
    with Session(bind=bind) as session:
        hold = session.get(ClassWriteHold, class_id)
        if hold is None:
            session.add(ClassWriteHold(class_id=class_id, reason=reason))
        else:
            hold.reason = reason
        session.commit()


def clear_write_hold(db: Session, class_id: str) -> bool:
    result = db.execute(delete(ClassWriteHold).where(ClassWriteHold.class_id == class_id))
    return bool(result.rowcount)
