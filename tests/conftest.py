import os
import tempfile
import time
import uuid

import jwt
import pytest

UPLOAD_DIR = tempfile.mkdtemp(prefix="socio-uploads-")
JWT_SECRET = "test-supabase-jwt-secret-0123456789abcdef"

# Must be set before socio.main is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = JWT_SECRET
os.environ["QR_SIGNING_SECRET"] = "test-qr-signing-secret-0123456789abcdef"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["UPLOAD_DIR"] = UPLOAD_DIR
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ.pop("CORS_ORIGINS", None)

from fastapi.testclient import TestClient  # noqa: E402

from socio.main import app  # noqa: E402
from socio.database import Base, SessionLocal, engine  # noqa: E402
from socio import models  # noqa: E402


def make_token(user_id, email, expires_in=3600, secret=JWT_SECRET, audience="authenticated"):
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "exp": int(time.time()) + expires_in,
        "user_metadata": {},
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(user_id, email, **kwargs):
    return {"Authorization": f"Bearer {make_token(user_id, email, **kwargs)}"}


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def token_headers():
    return bearer


@pytest.fixture
def make_user(db):
    def _make_user(email, auth_uuid=None, is_organiser=False, name="Test User"):
        user = models.User(
            auth_uuid=auth_uuid or f"uuid-{uuid.uuid4().hex[:12]}",
            email=email,
            name=name,
            is_organiser=is_organiser,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user, bearer(user.auth_uuid, user.email)

    return _make_user


@pytest.fixture
def organiser(make_user):
    return make_user("organiser@campus.edu", auth_uuid="organiser-uuid", is_organiser=True, name="Olivia Organiser")


@pytest.fixture
def other_organiser(make_user):
    return make_user("rival@campus.edu", auth_uuid="rival-uuid", is_organiser=True, name="Rival Organiser")


@pytest.fixture
def student(make_user):
    return make_user("student@campus.edu", auth_uuid="student-uuid", name="Sam Student")


@pytest.fixture
def make_event(db):
    def _make_event(owner_uuid="organiser-uuid", **overrides):
        values = {
            "event_id": str(uuid.uuid4()),
            "title": "Hack Night",
            "created_by": "organiser@campus.edu",
            "auth_uuid": owner_uuid,
            "total_participants": 0,
        }
        values.update(overrides)
        event = models.Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make_event


@pytest.fixture
def register(client):
    """POST /api/register and return the created registration."""
    def _register(event_id, email="student@campus.edu", **body):
        payload = {
            "event_id": event_id,
            "registration_type": "individual",
            "individual_name": "Sam Student",
            "individual_email": email,
        }
        payload.update(body)
        response = client.post("/api/register", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["registration"]

    return _register
