import json
import os

from socio import models

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_organiser_creates_event(client, organiser):
    _, headers = organiser
    form = {
        "title": "  Robotics Workshop ",
        "event_date": "2030-03-14",
        "event_time": "10:30",
        "venue": "Main Auditorium",
        "category": "technical",
        "registration_fee": "150",
        "max_participants": "40",
        "rules": json.dumps(["Bring a laptop", "Teams of two"]),
        "department_access": json.dumps(["CSE", "ECE"]),
        "claims_applicable": "true",
    }
    response = client.post("/api/events", data=form, headers=headers)

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["created_by"] == "organiser@campus.edu"

    event = client.get(f"/api/events/{body['event_id']}").json()["event"]
    assert event["title"] == "Robotics Workshop"
    assert event["rules"] == ["Bring a laptop", "Teams of two"]
    assert event["department_access"] == ["CSE", "ECE"]
    assert event["registration_fee"] == 150.0
    assert event["claims_applicable"] is True
    assert event["spots_left"] == 40
    assert event["total_participants"] == 0


def test_students_cannot_create_events(client, student):
    _, headers = student
    response = client.post("/api/events", data={"title": "Nope"}, headers=headers)
    assert response.status_code == 403


def test_title_is_required(client, organiser):
    _, headers = organiser
    response = client.post("/api/events", data={"title": "   "}, headers=headers)
    assert response.status_code == 400


def test_malformed_json_field_is_rejected(client, organiser):
    _, headers = organiser
    response = client.post("/api/events", data={"title": "Quiz", "rules": "[not json"}, headers=headers)
    assert response.status_code == 400
    assert "rules" in response.json()["detail"]


def test_non_numeric_fee_is_rejected_but_blank_is_null(client, organiser):
    _, headers = organiser
    response = client.post("/api/events", data={"title": "Quiz", "registration_fee": "free"}, headers=headers)
    assert response.status_code == 400

    response = client.post("/api/events", data={"title": "Quiz", "registration_fee": ""}, headers=headers)
    assert response.status_code == 201
    event = client.get(f"/api/events/{response.json()['event_id']}").json()["event"]
    assert event["registration_fee"] is None


def test_image_upload_is_stored_locally(client, organiser, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    _, headers = organiser
    response = client.post(
        "/api/events",
        data={"title": "Art Expo"},
        files={"imageFile": ("poster.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert response.status_code == 201, response.text

    event = client.get(f"/api/events/{response.json()['event_id']}").json()["event"]
    assert event["event_image_url"].startswith("http://testserver/uploads/event-images/")
    stored = list((tmp_path / "event-images").rglob("*poster.png"))
    assert len(stored) == 1


def test_failed_create_removes_uploaded_files(client, organiser, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    _, headers = organiser
    response = client.post(
        "/api/events",
        data={"title": "Art Expo"},
        files={
            "imageFile": ("poster.png", PNG_BYTES, "image/png"),
            "pdfFile": ("rules.png", PNG_BYTES, "image/png"),
        },
        headers=headers,
    )
    assert response.status_code == 400
    assert list((tmp_path / "event-images").rglob("*.png")) == []


def test_list_events_with_category_filter(client, make_event):
    make_event(title="Chess", category="cultural")
    make_event(title="Code Golf", category="technical")

    events = client.get("/api/events").json()["events"]
    assert {e["title"] for e in events} == {"Chess", "Code Golf"}

    technical = client.get("/api/events", params={"category": "technical"}).json()["events"]
    assert [e["title"] for e in technical] == ["Code Golf"]


def test_stored_json_of_the_wrong_shape_reads_as_empty(client, make_event):
    make_event(title="Open Mic", department_access='{"all": true}', tags='"music"')

    response = client.get("/api/events")

    assert response.status_code == 200
    event = response.json()["events"][0]
    assert event["department_access"] == []
    assert event["tags"] == []


def test_missing_event_is_404(client):
    assert client.get("/api/events/does-not-exist").status_code == 404


def test_only_owner_can_update(client, other_organiser, make_event):
    _, headers = other_organiser
    event = make_event()
    response = client.put(f"/api/events/{event.event_id}", data={"title": "Hijacked"}, headers=headers)
    assert response.status_code == 403


def test_update_is_partial_and_notifies_registrants(client, db, organiser, make_event, register):
    _, headers = organiser
    event = make_event(venue="Room 101")
    register(event.event_id)

    response = client.put(f"/api/events/{event.event_id}", data={"title": "Hack Night 2.0"}, headers=headers)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["event"]["title"] == "Hack Night 2.0"
    assert body["event"]["venue"] == "Room 101"
    assert body["notified"] == 1
    notification = db.query(models.Notification).one()
    assert notification.recipient_email == "student@campus.edu"
    assert notification.type == "info"
    assert notification.action_url == f"/event/{event.event_id}"


def test_delete_event_cascades(client, db, organiser, make_event, register):
    _, headers = organiser
    event = make_event()
    registration = register(event.event_id)
    client.post(
        f"/api/events/{event.event_id}/attendance",
        json={"participantIds": [registration["registration_id"]], "status": "attended"},
        headers=headers,
    )

    response = client.delete(f"/api/events/{event.event_id}", headers=headers)

    assert response.status_code == 200
    db.expire_all()
    assert db.query(models.Event).count() == 0
    assert db.query(models.Registration).count() == 0
    assert db.query(models.AttendanceStatus).count() == 0


def test_delete_requires_owner(client, other_organiser, make_event):
    _, headers = other_organiser
    event = make_event()
    assert client.delete(f"/api/events/{event.event_id}", headers=headers).status_code == 403


def test_uploaded_files_are_deleted_with_event(client, organiser, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    _, headers = organiser
    created = client.post(
        "/api/events",
        data={"title": "Art Expo"},
        files={"bannerFile": ("banner.png", PNG_BYTES, "image/png")},
        headers=headers,
    ).json()

    client.delete(f"/api/events/{created['event_id']}", headers=headers)

    leftovers = [f for f in (tmp_path / "event-banners").rglob("*") if os.path.isfile(f)]
    assert leftovers == []
