from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from weekweave.core.exceptions import ConflictError, InconsistentStateError
from weekweave.db.base import Base
from weekweave.models import (
    ClassWriteHold,
    DayOfWeek,
    SchoolClass,
    Subject,
    Teacher,
    TimetableChange,
    TimetableEntry,
    TimetableScopeLock,
    WeeklyEdit,
)
from weekweave.services import promotion
from weekweave.services.scope_lock import acquire_scope_lock, claim_scope, release_scope_lock

PROMOTE = "/api/timetable/promote"
MONDAY = date(2024, 3, 4)


def _stage_week(client, headers):
    edit = client.post(
        "/api/timetable/weekly-edits",
        json={
            "class_id": "class-1",
            "date": "2024-03-04",
            "day": "monday",
            "period": 2,
            "teacher_id": "teacher-v",
            "subject_id": "subj-eng",
            "room": "Library",
        },
        headers=headers,
    )
    assert edit.status_code == 201, edit.text
    cancellation = client.post(
        "/api/timetable-changes",
        json={
            "timetable_entry_id": "entry-tue-2",
            "change_type": "cancellation",
            "change_date": "2024-03-05",
            "reason": "Sports day",
        },
        headers=headers,
    )
    assert cancellation.status_code == 201, cancellation.text
    room = client.post(
        "/api/timetable-changes",
        json={
            "timetable_entry_id": "entry-mon-1",
            "change_type": "room_change",
            "change_date": "2024-03-04",
            "new_room": "Lab 1",
            "reason": "Projector",
        },
        headers=headers,
    )
    assert room.status_code == 201, room.text


def _base(client, headers):
    response = client.get("/api/timetable/base", params={"class_id": "class-1"}, headers=headers)
    assert response.status_code == 200
    return {(item["day"], item["period"]): item for item in response.json()}


def test_promotion_folds_the_week_into_the_base(client, admin_headers, db_session):
    _stage_week(client, admin_headers)

    response = client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-06"}, headers=admin_headers)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["week_start"] == "2024-03-04"
    assert body["week_end"] == "2024-03-09"
    assert body["entries_updated"] == 3
    assert body["weekly_edits_cleared"] == 1
    assert body["changes_cleared"] == 2

    base = _base(client, admin_headers)
    assert base[("monday", 2)]["teacher_id"] == "teacher-v"
    assert base[("monday", 2)]["room"] == "Library"
    assert base[("monday", 1)]["room"] == "Lab 1"
    assert ("tuesday", 2) not in base

    db_session.expire_all()
    assert db_session.execute(select(WeeklyEdit)).scalars().all() == []
    assert db_session.execute(select(TimetableChange)).scalars().all() == []
    assert db_session.execute(select(TimetableScopeLock)).scalars().all() == []


def test_promoted_schedule_matches_the_effective_week(client, admin_headers):
    _stage_week(client, admin_headers)
    params = {"class_id": "class-1", "date": "2024-03-04"}
    before = client.get("/api/timetable/effective", params=params, headers=admin_headers).json()

    client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)
    after = client.get("/api/timetable/effective", params=params, headers=admin_headers).json()

    def shape(slots):
        return [(s["day"], s["period"], s["status"], s["teacher_id"], s["room"]) for s in slots]

    assert shape(after) == shape(before)
    assert all(slot["source"] in {"base", "none"} for slot in after)


def test_promoting_twice_is_a_no_op(client, admin_headers):
    _stage_week(client, admin_headers)
    client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)
    first = _base(client, admin_headers)

    second = client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)

    assert second.status_code == 200
    assert second.json()["entries_updated"] == 0
    assert second.json()["weekly_edits_cleared"] == 0
    assert _base(client, admin_headers) == first


def _slot(client, headers, day, period):
    response = client.get(
        "/api/timetable/effective/slot",
        params={"class_id": "class-1", "date": "2024-03-04", "day": day, "period": period},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return body["status"], body["teacher_id"], body["subject_id"], body["room"]


def test_promotion_keeps_approved_cover(client, admin_headers):
    client.post(
        "/api/attendance",
        json={"teacher_id": "teacher-t", "date": "2024-03-04", "status": "absent"},
        headers=admin_headers,
    )
    auto = client.post(
        "/api/timetable-changes/auto-substitute",
        json={"timetable_entry_id": "entry-mon-2", "date": "2024-03-04"},
        headers=admin_headers,
    )
    assert auto.json()["assigned"] is True, auto.text
    client.post(f"/api/timetable-changes/{auto.json()['change']['id']}/approve", headers=admin_headers)
    before = _slot(client, admin_headers, "monday", 2)
    assert before[:2] == ("scheduled", "teacher-s")

    response = client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)

    assert response.status_code == 200
    assert _slot(client, admin_headers, "monday", 2) == before
    assert _base(client, admin_headers)[("monday", 2)]["teacher_id"] == "teacher-s"


def test_promotion_leaves_uncovered_slot_to_the_base_teacher(client, admin_headers):
    client.post(
        "/api/attendance",
        json={"teacher_id": "teacher-t", "date": "2024-03-04", "status": "absent"},
        headers=admin_headers,
    )
    assert _slot(client, admin_headers, "monday", 2)[0] == "substitution_required"

    response = client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)

    assert response.status_code == 200
    assert _base(client, admin_headers)[("monday", 2)]["teacher_id"] == "teacher-t"


def test_locked_week_rejects_writes_and_promotion(client, admin_headers, engine):
    lock_id = acquire_scope_lock(engine, "class-1", MONDAY, holder_id="other-admin")

    promote = client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers)
    edit = client.post(
        "/api/timetable/weekly-edits",
        json={"class_id": "class-1", "date": "2024-03-04", "day": "monday", "period": 2},
        headers=admin_headers,
    )
    other_week = client.post(
        "/api/timetable/weekly-edits",
        json={"class_id": "class-1", "date": "2024-03-11", "day": "monday", "period": 2},
        headers=admin_headers,
    )

    assert promote.status_code == 423
    assert promote.json()["code"] == "scope_locked"
    assert edit.status_code == 423
    assert other_week.status_code == 201

    release_scope_lock(engine, lock_id)
    assert client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers).status_code == 200


def test_failed_promotion_rolls_back(client, admin_headers, db_session, monkeypatch):
    _stage_week(client, admin_headers)

    def fail(*args, **kwargs):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(promotion, "_clear_overlays", fail)
    with pytest.raises(RuntimeError):
        promotion.promote_to_global(db_session, "class-1", MONDAY, actor_id="admin-1")

    db_session.expire_all()
    entry = db_session.get(TimetableEntry, "entry-mon-2")
    assert entry.teacher_id == "teacher-t"
    assert db_session.get(TimetableEntry, "entry-tue-2") is not None
    assert len(db_session.execute(select(WeeklyEdit)).scalars().all()) == 1
    assert db_session.execute(select(TimetableScopeLock)).scalars().all() == []
    assert db_session.execute(select(ClassWriteHold)).scalars().all() == []


def test_unrecoverable_promotion_halts_class_writes(client, admin_headers, db_session, monkeypatch):
    def fail(*args, **kwargs):
        raise RuntimeError("storage unavailable")

    def broken_rollback():
        raise RuntimeError("connection lost")

    monkeypatch.setattr(promotion, "_apply_promotion", fail)
    monkeypatch.setattr(db_session, "rollback", broken_rollback)
    with pytest.raises(InconsistentStateError):
        promotion.promote_to_global(db_session, "class-1", MONDAY, actor_id="admin-1")
    monkeypatch.undo()
    db_session.rollback()

    edit_payload = {"class_id": "class-1", "date": "2024-03-04", "day": "monday", "period": 2}
    blocked = client.post("/api/timetable/weekly-edits", json=edit_payload, headers=admin_headers)
    assert blocked.status_code == 500
    assert blocked.json()["code"] == "inconsistent_state"
    assert client.post(PROMOTE, json={"class_id": "class-1", "date": "2024-03-04"}, headers=admin_headers).status_code == 500

    other_class = client.post(
        "/api/timetable/weekly-edits",
        json={**edit_payload, "class_id": "class-2"},
        headers=admin_headers,
    )
    assert other_class.status_code == 201

    cleared = client.delete("/api/timetable/classes/class-1/write-hold", headers=admin_headers)
    assert cleared.status_code == 204
    assert client.delete("/api/timetable/classes/class-1/write-hold", headers=admin_headers).status_code == 404
    assert client.post("/api/timetable/weekly-edits", json=edit_payload, headers=admin_headers).status_code == 201


def test_promotion_requires_admin_and_known_class(client, admin_headers, teacher_headers):
    payload = {"class_id": "class-1", "date": "2024-03-04"}
    assert client.post(PROMOTE, json=payload, headers=teacher_headers("teacher-t")).status_code == 403
    assert client.post(PROMOTE, json={**payload, "class_id": "class-x"}, headers=admin_headers).status_code == 404


@pytest.fixture()
def file_sessions(tmp_path):
    file_engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'weekweave.db'}")
    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    file_engine.dispose()


def _weekly_edit(period, teacher_id):
    return WeeklyEdit(
        class_id="class-1",
        week_start=MONDAY,
        day=DayOfWeek.monday,
        period=period,
        teacher_id=teacher_id,
        subject_id="subj-math",
        start_time="09:45",
        end_time="10:30",
    )


def test_write_committed_during_promotion_is_not_lost(file_sessions, monkeypatch):
    with file_sessions() as setup:
        setup.add_all(
            [
                SchoolClass(id="class-1", school_id="school-1", grade="7", section="A", room="R1"),
                Subject(id="subj-math", school_id="school-1", name="Mathematics", code="MATH"),
                Teacher(id="teacher-t", school_id="school-1", name="Tara", subjects=["subj-math"]),
                Teacher(id="teacher-s", school_id="school-1", name="Sanjay", subjects=["subj-math"]),
                TimetableEntry(
                    id="entry-mon-2",
                    class_id="class-1",
                    teacher_id="teacher-t",
                    subject_id="subj-math",
                    day=DayOfWeek.monday,
                    period=2,
                    start_time="09:45",
                    end_time="10:30",
                    room="R1",
                ),
            ]
        )
        claim_scope(setup, "class-1", MONDAY)
        setup.add(_weekly_edit(2, "teacher-s"))
        setup.commit()

    real_snapshot = promotion.load_week_snapshot

    def snapshot_then_concurrent_edit(db, **kwargs):
        snapshot = real_snapshot(db, **kwargs)
        with file_sessions() as writer:
            claim_scope(writer, "class-1", MONDAY)
            writer.add(_weekly_edit(3, "teacher-t"))
            writer.commit()
        return snapshot

    monkeypatch.setattr(promotion, "load_week_snapshot", snapshot_then_concurrent_edit)
    with file_sessions() as db:
        with pytest.raises(ConflictError):
            promotion.promote_to_global(db, "class-1", MONDAY, actor_id="admin-1")

    with file_sessions() as check:
        periods = sorted(edit.period for edit in check.execute(select(WeeklyEdit)).scalars())
        assert periods == [2, 3]
        assert check.get(TimetableEntry, "entry-mon-2").teacher_id == "teacher-t"
        assert check.execute(select(TimetableScopeLock)).scalars().all() == []
