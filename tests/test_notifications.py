from socio import models
from socio.notification_service import create_notifications


def _seed(db, recipient, count=1):
    created = []
    for _ in range(count):
        created += create_notifications(db, [recipient], title="Heads up", message="Venue changed")
    db.commit()
    return created


def test_create_notifications_dedupes_recipients(db):
    created = create_notifications(db, ["A@campus.edu", "a@campus.edu ", "", None, "b@campus.edu"],
                                   title="Hi", message="There")
    db.commit()
    assert [n.recipient_email for n in created] == ["a@campus.edu", "b@campus.edu"]


def test_list_own_notifications_with_unread_count(client, db, student):
    _, headers = student
    _seed(db, "student@campus.edu", count=2)
    _seed(db, "someone-else@campus.edu")

    body = client.get("/api/notifications", headers=headers).json()

    assert body["success"] is True
    assert len(body["notifications"]) == 2
    assert body["unread_count"] == 2


def test_mark_read_and_read_all(client, db, student):
    _, headers = student
    first, = _seed(db, "student@campus.edu")
    _seed(db, "student@campus.edu")

    assert client.post(f"/api/notifications/{first.id}/read", headers=headers).status_code == 200
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 1

    assert client.post("/api/notifications/read-all", headers=headers).status_code == 200
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 0


def test_cannot_touch_other_users_notifications(client, db, student):
    _, headers = student
    theirs, = _seed(db, "someone-else@campus.edu")

    assert client.post(f"/api/notifications/{theirs.id}/read", headers=headers).status_code == 404
    assert client.delete(f"/api/notifications/{theirs.id}", headers=headers).status_code == 404


def test_delete_own_notification(client, db, student):
    _, headers = student
    mine, = _seed(db, "student@campus.edu")
    notification_id = mine.id

    assert client.delete(f"/api/notifications/{notification_id}", headers=headers).status_code == 200
    db.expire_all()
    assert db.query(models.Notification).count() == 0


def test_organiser_sends_notification(client, organiser, student):
    _, headers = organiser
    _, student_headers = student
    response = client.post("/api/notifications", json={
        "title": "Schedule change",
        "message": "We start at 11 now",
        "type": "warning",
        "recipientEmail": "Student@campus.edu",
    }, headers=headers)

    assert response.status_code == 201, response.text
    assert response.json()["notification"]["recipient_email"] == "student@campus.edu"
    notifications = client.get("/api/notifications", headers=student_headers).json()["notifications"]
    assert notifications[0]["type"] == "warning"


def test_notification_validation(client, organiser, student):
    _, headers = organiser
    _, student_headers = student
    base = {"title": "T", "message": "M", "recipientEmail": "student@campus.edu"}

    assert client.post("/api/notifications", json={**base, "type": "urgent"}, headers=headers).status_code == 400
    assert client.post("/api/notifications", json={**base, "title": ""}, headers=headers).status_code == 400
    assert client.post("/api/notifications", json={"title": "T", "message": "M"}, headers=headers).status_code == 400
    assert client.post("/api/notifications", json=base, headers=student_headers).status_code == 403


def test_bulk_notifications(client, db, organiser):
    _, headers = organiser
    response = client.post("/api/notifications/bulk", json={
        "title": "Reminder",
        "message": "Bring your ID card",
        "eventId": "evt-1",
        "recipientEmails": ["a@campus.edu", "b@campus.edu", "A@campus.edu"],
    }, headers=headers)

    assert response.status_code == 201
    assert response.json()["count"] == 2
    assert {n.event_id for n in db.query(models.Notification).all()} == {"evt-1"}

    empty = client.post("/api/notifications/bulk", json={"title": "T", "message": "M", "recipientEmails": []},
                        headers=headers)
    assert empty.status_code == 400
