from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from weekweave.core.exceptions import ConflictError, InconsistentStateError
from weekweave.models import TimetableScopeLock
from weekweave.services.scope_lock import (
    acquire_scope_lock,
    clear_write_hold,
    ensure_scope_writable,
    place_write_hold,
    release_scope_lock,
    scope_lock,
    scope_revision,
)

WEDNESDAY = date(2024, 3, 6)


def test_second_holder_is_refused_until_release(engine, db_session):
    lock_id = acquire_scope_lock(engine, "class-1", WEDNESDAY)

    with pytest.raises(ConflictError):
        acquire_scope_lock(engine, "class-1", date(2024, 3, 4))
    with pytest.raises(ConflictError):
        ensure_scope_writable(db_session, "class-1", date(2024, 3, 9))
    ensure_scope_writable(db_session, "class-1", date(2024, 3, 11))
    ensure_scope_writable(db_session, "class-2", WEDNESDAY)

    release_scope_lock(engine, lock_id)
    db_session.expire_all()
    ensure_scope_writable(db_session, "class-1", WEDNESDAY)
    assert acquire_scope_lock(engine, "class-1", WEDNESDAY) != lock_id


def test_expired_lock_is_reclaimed(engine, db_session):
    stale = TimetableScopeLock(
        class_id="class-1",
        week_start=date(2024, 3, 4),
        holder_id="crashed-worker",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    db_session.add(stale)
    db_session.commit()
    stale_id = stale.id

    ensure_scope_writable(db_session, "class-1", WEDNESDAY)
    db_session.commit()
    lock_id = acquire_scope_lock(engine, "class-1", WEDNESDAY, holder_id="admin-1")

    db_session.expire_all()
    locks = db_session.execute(select(TimetableScopeLock)).scalars().all()
    assert lock_id != stale_id
    assert [item.id for item in locks] == [lock_id]


def test_scope_lock_is_released_when_the_body_fails(engine, db_session):
    with pytest.raises(RuntimeError):
        with scope_lock(engine, "class-1", WEDNESDAY):
            raise RuntimeError("boom")

    db_session.expire_all()
    assert db_session.execute(select(TimetableScopeLock)).scalars().all() == []


def test_write_hold_blocks_every_week_of_the_class(engine, db_session):
    place_write_hold(engine, "class-1", "rollback failed")
    db_session.expire_all()

    with pytest.raises(InconsistentStateError) as excinfo:
        ensure_scope_writable(db_session, "class-1", WEDNESDAY)
    assert excinfo.value.status_code == 500
    with pytest.raises(InconsistentStateError):
        ensure_scope_writable(db_session, "class-1", date(2025, 1, 6))

    assert clear_write_hold(db_session, "class-1") is True
    db_session.commit()
    assert clear_write_hold(db_session, "class-1") is False
    ensure_scope_writable(db_session, "class-1", WEDNESDAY)


def test_every_write_bumps_the_week_revision(db_session):
    assert scope_revision(db_session, "class-1", WEDNESDAY) is None

    ensure_scope_writable(db_session, "class-1", date(2024, 3, 4))
    ensure_scope_writable(db_session, "class-1", WEDNESDAY)
    ensure_scope_writable(db_session, "class-1", date(2024, 3, 11))
    db_session.commit()

    assert scope_revision(db_session, "class-1", WEDNESDAY) == 2
    assert scope_revision(db_session, "class-1", date(2024, 3, 11)) == 1
    assert scope_revision(db_session, "class-2", WEDNESDAY) is None


def test_refused_write_does_not_claim_a_held_class(engine, db_session):
    place_write_hold(engine, "class-1", "rollback failed")
    db_session.expire_all()

    with pytest.raises(InconsistentStateError):
        ensure_scope_writable(db_session, "class-1", WEDNESDAY)

    assert scope_revision(db_session, "class-1", WEDNESDAY) is None
