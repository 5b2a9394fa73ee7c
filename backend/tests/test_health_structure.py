import pytest
from starlette.websockets import WebSocketDisconnect

from weekweave.main import app
from weekweave.services.generator import GenerationOutcome


def test_health_endpoints(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/api/health/live").status_code == 200

    ready = client.get("/api/health/ready")
    assert ready.status_code in {200, 503}
    payload = ready.json()
    assert "database" in payload
    assert payload["timezone"]


def test_default_structure_has_a_numbered_break(client, admin_headers):
    response = client.get("/api/structure", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["school_id"] == "school-1"
    assert body["is_default"] is True
    assert len(body["working_days"]) == 6
    labels = [slot["label"] for slot in body["time_slots"]]
    assert labels == ["1", "2", "3", "4", "Break", "5", "6", "7", "8"]


def test_structure_update_renumbers_teaching_periods(client, admin_headers):
    payload = {
        "working_days": ["fri", "monday", "tue", "wed", "thu"],
        "time_slots": [
            {"period": 1, "startTime": "09:00", "endTime": "09:45"},
            {"period": 2, "startTime": "09:45", "endTime": "10:30"},
            {"period": 3, "startTime": "10:30", "endTime": "10:45", "isBreak": True},
            {"period": 4, "startTime": "10:45", "endTime": "11:30"},
        ],
    }

    response = client.put("/api/structure/school-1", json=payload, headers=admin_headers)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_default"] is False
    assert body["working_days"] == ["monday", "tuesday", "wednesday", "thursday", "friday"]
    assert [slot["teaching_period"] for slot in body["time_slots"]] == [1, 2, None, 3]

    week = client.get(
        "/api/timetable/effective",
        params={"class_id": "class-1", "date": "2024-03-04"},
        headers=admin_headers,
    ).json()
    assert len(week) == 5 * 4
    saturday_edit = client.post(
        "/api/timetable/weekly-edits",
        json={"class_id": "class-1", "date": "2024-03-04", "day": "saturday", "period": 1},
        headers=admin_headers,
    )
    assert saturday_edit.status_code == 422

    logs = client.get("/api/activity/logs", params={"action": "structure.update"}, headers=admin_headers).json()
    assert len(logs) == 1


def test_structure_update_validation_and_permissions(client, admin_headers, teacher_headers):
    duplicate = {
        "working_days": ["monday"],
        "time_slots": [
            {"period": 1, "startTime": "09:00", "endTime": "09:45"},
            {"period": 1, "startTime": "09:45", "endTime": "10:30"},
        ],
    }
    reversed_slot = {
        "working_days": ["monday"],
        "time_slots": [{"period": 1, "startTime": "09:45", "endTime": "09:00"}],
    }
    valid = {
        "working_days": ["monday"],
        "time_slots": [{"period": 1, "startTime": "09:00", "endTime": "09:45"}],
    }

    assert client.put("/api/structure/school-1", json=duplicate, headers=admin_headers).status_code == 422
    assert client.put("/api/structure/school-1", json=reversed_slot, headers=admin_headers).status_code == 422
    assert client.put("/api/structure/school-1", json=valid, headers=teacher_headers("teacher-t")).status_code == 403
    assert client.get("/api/activity/logs", headers=teacher_headers("teacher-t")).status_code == 403


def test_base_schedule_listing(client, admin_headers):
    by_class = client.get("/api/timetable/base", params={"class_id": "class-1"}, headers=admin_headers)
    by_teacher = client.get("/api/timetable/base", params={"teacher_id": "teacher-t"}, headers=admin_headers)

    assert [item["id"] for item in by_class.json()] == ["entry-mon-1", "entry-mon-2", "entry-tue-2"]
    assert [item["id"] for item in by_teacher.json()] == ["entry-mon-2", "entry-tue-2"]
    assert client.get("/api/timetable/base", headers=admin_headers).status_code == 422
    assert (
        client.get(
            "/api/timetable/base",
            params={"class_id": "class-1", "teacher_id": "teacher-t"},
            headers=admin_headers,
        ).status_code
        == 422
    )


class _StaticGenerator:
    def __init__(self):
        self.calls = []

    def generate(self, class_id):
        self.calls.append(class_id)
        return GenerationOutcome(status="success", message="Generated 30 entries")


def test_generation_without_a_configured_generator(client, admin_headers):
    response = client.post("/api/timetable/generate", json={"class_id": "class-1"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {
        "status": "failure",
        "message": "No base schedule generator is configured",
        "class_id": "class-1",
    }


def test_generation_delegates_to_the_configured_generator(client, admin_headers, monkeypatch):
    generator = _StaticGenerator()
    monkeypatch.setattr(app.state, "schedule_generator", generator, raising=False)

    response = client.post("/api/timetable/generate", json={}, headers=admin_headers)

    assert response.json()["status"] == "success"
    assert generator.calls == [None]


def test_websocket_receives_class_invalidations(client, admin_headers):
    token = admin_headers["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/api/notifications/ws?token={token}&classes=class-1") as websocket:
        connected = websocket.receive_json()
        assert connected["event"] == "connected"
        assert connected["classes"] == ["class-1"]

        websocket.send_text("ping")
        assert websocket.receive_json() == {"event": "pong"}

        response = client.post(
            "/api/timetable/weekly-edits",
            json={"class_id": "class-1", "date": "2024-03-04", "day": "monday", "period": 2},
            headers=admin_headers,
        )
        assert response.status_code == 201

        event = websocket.receive_json()
        assert event["event"] == "schedule.invalidated"
        assert event["class_id"] == "class-1"
        assert event["week_start"] == "2024-03-04"


def test_websocket_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/notifications/ws?token=invalid") as websocket:
            websocket.receive_json()


def test_notifications_are_scoped_to_recipient(client, admin_headers, teacher_headers):
    change = client.post(
        "/api/timetable-changes",
        json={
            "timetable_entry_id": "entry-mon-2",
            "change_type": "substitution",
            "change_date": "2024-03-04",
            "new_teacher_id": "teacher-s",
            "reason": "Cover",
        },
        headers=admin_headers,
    ).json()["change"]
    client.post(f"/api/timetable-changes/{change['id']}/approve", headers=admin_headers)

    assert client.get("/api/notifications", headers=teacher_headers("teacher-t")).json() == []
    notifications = client.get("/api/notifications", headers=teacher_headers("teacher-s")).json()
    assert len(notifications) == 1

    foreign = client.post(f"/api/notifications/{notifications[0]['id']}/read", headers=teacher_headers("teacher-t"))
    assert foreign.status_code == 404
    read = client.post(f"/api/notifications/{notifications[0]['id']}/read", headers=teacher_headers("teacher-s"))
    assert read.json()["is_read"] is True
    unread = client.get("/api/notifications", params={"is_read": "false"}, headers=teacher_headers("teacher-s"))
    assert unread.json() == []
