import json

from sqlalchemy.orm import Session

from socio import models

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _create_fest(client, headers, **form):
    data = {"fest_title": "Spring Fest", "opening_date": "2030-04-01", "closing_date": "2030-04-03"}
    data.update(form)
    response = client.post("/api/fests", data=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["fest_id"]


def test_create_and_fetch_fest(client, organiser):
    _, headers = organiser
    fest_id = _create_fest(client, headers, event_heads=json.dumps([{"name": "Ravi", "email": "ravi@campus.edu"}]))

    fest = client.get(f"/api/fests/{fest_id}").json()["fest"]
    assert fest["fest_title"] == "Spring Fest"
    assert fest["opening_date"] == "2030-04-01"
    assert fest["event_heads"] == [{"name": "Ravi", "email": "ravi@campus.edu"}]
    assert [f["fest_id"] for f in client.get("/api/fests").json()["fests"]] == [fest_id]


def test_fest_title_required(client, organiser):
    _, headers = organiser
    assert client.post("/api/fests", data={"description": "untitled"}, headers=headers).status_code == 400


def test_closing_before_opening_is_rejected(client, organiser):
    _, headers = organiser
    response = client.post(
        "/api/fests",
        data={"fest_title": "Backwards", "opening_date": "2030-04-03", "closing_date": "2030-04-01"},
        headers=headers,
    )
    assert response.status_code == 400


def test_students_cannot_create_fests(client, student):
    _, headers = student
    assert client.post("/api/fests", data={"fest_title": "Nope"}, headers=headers).status_code == 403


def test_update_fest_by_owner_only(client, organiser, other_organiser):
    _, headers = organiser
    _, rival_headers = other_organiser
    fest_id = _create_fest(client, headers)

    assert client.put(f"/api/fests/{fest_id}", data={"category": "cultural"}, headers=rival_headers).status_code == 403

    response = client.put(f"/api/fests/{fest_id}", data={"category": "cultural"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["fest"]["category"] == "cultural"
    assert response.json()["fest"]["fest_title"] == "Spring Fest"


def test_fest_events_and_delete_detaches_them(client, db, organiser, make_event):
    _, headers = organiser
    fest_id = _create_fest(client, headers)
    event = make_event(fest=fest_id)
    make_event(title="Unrelated")

    events = client.get(f"/api/fests/{fest_id}/events").json()["events"]
    assert [e["event_id"] for e in events] == [event.event_id]

    assert client.delete(f"/api/fests/{fest_id}", headers=headers).status_code == 200
    assert client.get(f"/api/fests/{fest_id}").status_code == 404
    db.expire_all()
    assert db.query(models.Event).filter(models.Event.event_id == event.event_id).one().fest is None


def test_missing_fest_is_404(client):
    assert client.get("/api/fests/nope").status_code == 404
    assert client.get("/api/fests/nope/events").status_code == 404


def _failing_commit(self):
    raise RuntimeError("database went away")


def test_failed_create_removes_uploaded_image(client, organiser, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    _, headers = organiser
    monkeypatch.setattr(Session, "commit", _failing_commit)

    response = client.post(
        "/api/fests",
        data={"fest_title": "Spring Fest"},
        files={"imageFile": ("poster.png", PNG_BYTES, "image/png")},
        headers=headers,
    )

    assert response.status_code == 500
    assert list((tmp_path / "fest-images").rglob("*.png")) == []


def test_failed_delete_keeps_fest(client, db, organiser, make_event, monkeypatch):
    _, headers = organiser
    fest_id = _create_fest(client, headers)
    event = make_event(fest=fest_id)
    monkeypatch.setattr(Session, "commit", _failing_commit)

    response = client.delete(f"/api/fests/{fest_id}", headers=headers)

    assert response.status_code == 500
    monkeypatch.undo()
    assert client.get(f"/api/fests/{fest_id}").status_code == 200
    db.expire_all()
    assert db.query(models.Event).filter(models.Event.event_id == event.event_id).one().fest == fest_id
