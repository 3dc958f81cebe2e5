import pytest
import requests

from socio import auth_utils


class FakeResponse:
    def __init__(self, status_code, data=None):
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data


@pytest.fixture
def supabase_fallback(monkeypatch):
    """Drop the local JWT secret so tokens are resolved by the auth server."""
    monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    calls = []

    def _respond_with(result):
        def fake_get(url, headers=None, timeout=None):
            calls.append({"url": url, "headers": headers, "timeout": timeout})
            if isinstance(result, Exception):
                raise result
            return result

        monkeypatch.setattr(auth_utils.requests, "get", fake_get)
        return calls

    return _respond_with


def test_token_resolved_by_auth_server(client, supabase_fallback):
    calls = supabase_fallback(FakeResponse(200, {"id": "remote-uuid", "email": "remote@campus.edu"}))

    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})

    assert response.status_code == 200
    assert calls[0]["url"] == "https://project.supabase.co/auth/v1/user"
    assert calls[0]["headers"] == {"Authorization": "Bearer opaque-token", "apikey": "anon-key"}
    assert calls[0]["timeout"] == auth_utils.SUPABASE_TIMEOUT_SECONDS


def test_verify_access_token_returns_remote_identity(supabase_fallback):
    supabase_fallback(FakeResponse(200, {"id": "remote-uuid", "email": "remote@campus.edu"}))

    auth_user = auth_utils.verify_access_token("opaque-token")

    assert auth_user.id == "remote-uuid"
    assert auth_user.email == "remote@campus.edu"


@pytest.mark.parametrize("status_code", [401, 403])
def test_rejected_token_is_401(client, supabase_fallback, status_code):
    supabase_fallback(FakeResponse(status_code))

    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_response_without_user_id_is_401(client, supabase_fallback):
    supabase_fallback(FakeResponse(200, {}))
    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})
    assert response.status_code == 401


def test_unreachable_auth_server_is_500(client, supabase_fallback):
    supabase_fallback(requests.ConnectionError("connection refused"))

    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Authentication service error"


def test_auth_server_error_is_500(client, supabase_fallback):
    supabase_fallback(FakeResponse(502))
    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})
    assert response.status_code == 500


def test_unconfigured_auth_is_500(client, monkeypatch):
    monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

    response = client.get("/api/users", headers={"Authorization": "Bearer opaque-token"})

    assert response.status_code == 500


def test_optional_auth_ignores_unreachable_auth_server(client, supabase_fallback, make_event):
    supabase_fallback(requests.ConnectionError("connection refused"))
    event = make_event()

    response = client.post("/api/register", headers={"Authorization": "Bearer opaque-token"}, json={
        "event_id": event.event_id,
        "registration_type": "individual",
        "individual_email": "walkin@campus.edu",
    })

    assert response.status_code == 201
