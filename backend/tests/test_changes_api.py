from sqlalchemy import select

from weekweave.models import Notification, Substitution, SubstitutionStatus, TimetableChange

CHANGES = "/api/timetable-changes"


def _effective_slot(client, headers, *, period=2, on="2024-03-04", class_id="class-1"):
    response = client.get(
        "/api/timetable/effective/slot",
        params={"class_id": class_id, "period": period, "date": on},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


def _mark_absent(client, headers, teacher_id="teacher-t", on="2024-03-04"):
    response = client.post(
        "/api/attendance",
        json={"teacher_id": teacher_id, "date": on, "status": "absent", "reason": "Fever"},
        headers=headers,
    )
    assert response.status_code == 200, response.text


def _create_change(client, headers, **overrides):
    payload = {
        "timetable_entry_id": "entry-mon-2",
        "change_type": "substitution",
        "change_date": "2024-03-04",
        "new_teacher_id": "teacher-s",
        "reason": "Tara is absent",
    }
    payload.update(overrides)
    return client.post(CHANGES, json=payload, headers=headers)


def test_create_change_autofills_original_teacher_and_room(client, admin_headers):
    response = _create_change(client, admin_headers)

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["change"]["state"] == "pending"
    assert body["change"]["original_teacher_id"] == "teacher-t"
    assert body["change"]["original_room"] == "R1"
    assert body["invalidates"] == {"class_id": "class-1", "week_start": "2024-03-04"}


def test_approved_substitution_covers_absent_teacher(client, admin_headers, teacher_headers):
    _mark_absent(client, admin_headers)
    assert _effective_slot(client, admin_headers)["status"] == "substitution_required"

    change_id = _create_change(client, admin_headers).json()["change"]["id"]
    assert _effective_slot(client, admin_headers)["status"] == "substitution_required"

    response = client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers)
    assert response.status_code == 200, response.text
    assert response.json()["changed"] is True
    assert response.json()["state"] == "approved"

    slot = _effective_slot(client, admin_headers)
    assert slot["status"] == "scheduled"
    assert slot["source"] == "substitution"
    assert slot["teacher_id"] == "teacher-s"
    assert slot["original_teacher_id"] == "teacher-t"

    substitute_view = client.get(
        "/api/timetable/effective/slot",
        params={"teacher_id": "teacher-s", "period": 2, "date": "2024-03-04"},
        headers=teacher_headers("teacher-s"),
    )
    assert substitute_view.json()["class_id"] == "class-1"


def test_approving_twice_notifies_substitute_once(client, admin_headers, teacher_headers, db_session):
    change_id = _create_change(client, admin_headers).json()["change"]["id"]

    first = client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers)
    second = client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers)

    assert first.json()["changed"] is True
    assert second.status_code == 200
    assert second.json()["changed"] is False
    assert second.json()["invalidates"] is None

    notifications = client.get("/api/notifications", headers=teacher_headers("teacher-s")).json()
    assert len(notifications) == 1
    assert notifications[0]["change_id"] == change_id
    assert notifications[0]["notification_type"] == "substitution"

    db_session.expire_all()
    confirmed = db_session.execute(select(Substitution)).scalars().all()
    assert [item.status for item in confirmed] == [SubstitutionStatus.confirmed]
    assert db_session.execute(select(Notification)).scalars().all()[0].recipient_id == "teacher-s"


def test_rejecting_pending_cancellation_restores_the_lesson(client, admin_headers, db_session):
    response = _create_change(client, admin_headers, change_type="cancellation", new_teacher_id=None)
    assert response.status_code == 201, response.text
    change_id = response.json()["change"]["id"]

    assert _effective_slot(client, admin_headers)["status"] == "free"
    assert _effective_slot(client, admin_headers)["source"] == "cancellation"

    rejected = client.post(f"{CHANGES}/{change_id}/reject", json={"reason": "Lesson goes ahead"}, headers=admin_headers)
    assert rejected.status_code == 200, rejected.text
    assert rejected.json()["state"] is None

    slot = _effective_slot(client, admin_headers)
    assert slot["status"] == "scheduled"
    assert slot["teacher_id"] == "teacher-t"

    db_session.expire_all()
    assert db_session.get(TimetableChange, change_id) is None


def test_rejecting_substitution_leaves_slot_uncovered(client, admin_headers):
    _mark_absent(client, admin_headers)
    change_id = _create_change(client, admin_headers).json()["change"]["id"]

    assert client.post(f"{CHANGES}/{change_id}/reject", headers=admin_headers).status_code == 200

    assert _effective_slot(client, admin_headers)["status"] == "substitution_required"


def test_reject_after_approve_is_refused(client, admin_headers):
    change_id = _create_change(client, admin_headers).json()["change"]["id"]
    client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers)

    response = client.post(f"{CHANGES}/{change_id}/reject", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"
    assert response.json()["details"]["state"] == "approved"


def test_rejecting_twice_reports_missing_change(client, admin_headers):
    change_id = _create_change(client, admin_headers).json()["change"]["id"]
    client.post(f"{CHANGES}/{change_id}/reject", headers=admin_headers)

    assert client.post(f"{CHANGES}/{change_id}/reject", headers=admin_headers).status_code == 404
    assert client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers).status_code == 404


def test_dismissing_pending_change_is_refused(client, admin_headers):
    change_id = _create_change(client, admin_headers).json()["change"]["id"]

    response = client.post(f"{CHANGES}/{change_id}/dismiss", headers=admin_headers)

    assert response.status_code == 409


def test_dismiss_hides_change_but_keeps_its_effect(client, admin_headers):
    _mark_absent(client, admin_headers)
    change_id = _create_change(client, admin_headers).json()["change"]["id"]
    client.post(f"{CHANGES}/{change_id}/approve", headers=admin_headers)

    dismissed = client.post(f"{CHANGES}/{change_id}/dismiss", headers=admin_headers)
    again = client.post(f"{CHANGES}/{change_id}/dismiss", headers=admin_headers)

    assert dismissed.json()["state"] == "dismissed"
    assert again.status_code == 200
    assert again.json()["changed"] is False
    assert _effective_slot(client, admin_headers)["teacher_id"] == "teacher-s"

    listed = client.get(CHANGES, params={"date": "2024-03-04"}, headers=admin_headers).json()
    assert listed == []
    with_dismissed = client.get(
        CHANGES,
        params={"date": "2024-03-04", "include_dismissed": "true"},
        headers=admin_headers,
    ).json()
    assert [item["id"] for item in with_dismissed] == [change_id]


def test_room_change_moves_the_lesson(client, admin_headers):
    response = _create_change(client, admin_headers, change_type="room_change", new_teacher_id=None, new_room="Lab 2")
    assert response.status_code == 201, response.text

    slot = _effective_slot(client, admin_headers)
    assert slot["room"] == "Lab 2"
    assert slot["teacher_id"] == "teacher-t"


def test_list_changes_filters_by_class_and_state(client, admin_headers):
    first = _create_change(client, admin_headers).json()["change"]["id"]
    _create_change(
        client,
        admin_headers,
        timetable_entry_id="entry-c2-mon-3",
        change_type="room_change",
        new_teacher_id=None,
        new_room="Hall",
    )
    client.post(f"{CHANGES}/{first}/approve", headers=admin_headers)

    class_one = client.get(CHANGES, params={"class_id": "class-1"}, headers=admin_headers).json()
    approved = client.get(CHANGES, params={"state": "approved"}, headers=admin_headers).json()
    pending = client.get(CHANGES, params={"state": "pending"}, headers=admin_headers).json()

    assert [item["id"] for item in class_one] == [first]
    assert [item["id"] for item in approved] == [first]
    assert [item["timetable_entry_id"] for item in pending] == ["entry-c2-mon-3"]


def test_change_validation_errors(client, admin_headers):
    wrong_day = _create_change(client, admin_headers, change_date="2024-03-05")
    same_teacher = _create_change(client, admin_headers, new_teacher_id="teacher-t")
    missing_teacher = _create_change(client, admin_headers, new_teacher_id=None)
    unknown_teacher = _create_change(client, admin_headers, new_teacher_id="teacher-x")
    missing_room = _create_change(client, admin_headers, change_type="room_change", new_teacher_id=None)
    reversed_times = _create_change(
        client,
        admin_headers,
        change_type="time_change",
        new_teacher_id=None,
        new_start_time="10:30",
        new_end_time="10:00",
    )
    bad_time = _create_change(
        client,
        admin_headers,
        change_type="time_change",
        new_teacher_id=None,
        new_start_time="25:00",
        new_end_time="10:00",
    )

    assert wrong_day.status_code == 422
    assert wrong_day.json()["code"] == "validation_error"
    assert same_teacher.status_code == 422
    assert missing_teacher.status_code == 422
    assert unknown_teacher.status_code == 404
    assert missing_room.status_code == 422
    assert reversed_times.status_code == 422
    assert bad_time.status_code == 422


def test_duplicate_active_cancellation_is_rejected(client, admin_headers):
    first = _create_change(client, admin_headers, change_type="cancellation", new_teacher_id=None)
    second = _create_change(client, admin_headers, change_type="cancellation", new_teacher_id=None)

    assert first.status_code == 201
    assert second.status_code == 422
    assert second.json()["details"]["existing_change_id"] == first.json()["change"]["id"]


def test_unknown_entry_and_change_return_404(client, admin_headers):
    assert _create_change(client, admin_headers, timetable_entry_id="missing").status_code == 404
    assert client.post(f"{CHANGES}/missing/approve", headers=admin_headers).status_code == 404


def test_change_endpoints_require_authentication_and_admin(client, teacher_headers):
    unauthenticated = client.get(CHANGES, headers={"Authorization": "Bearer not-a-token"})
    assert unauthenticated.status_code == 401

    as_teacher = _create_change(client, teacher_headers("teacher-t"))
    assert as_teacher.status_code == 403
    assert client.get(CHANGES, headers=teacher_headers("teacher-t")).status_code == 200
