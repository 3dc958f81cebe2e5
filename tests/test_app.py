import pytest

from socio import main


def test_welcome(client):
    assert client.get("/").json() == {"message": "Welcome to SOCIO Events API"}


def test_validation_errors_are_400(client):
    response = client.post("/api/register", json={"event_id": 123, "teammates": "not-a-list"})
    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)


def test_error_responses_carry_cors_headers(client):
    response = client.get("/api/events/missing", headers={"Origin": "http://localhost:5173"})
    assert response.status_code == 404
    assert response.headers["access-control-allow-origin"] == "*"


def test_required_env_vars(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DB_HOST", raising=False)
    monkeypatch.setenv("STORAGE_BACKEND", "r2")
    for name in main.R2_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CF_ACCESS_KEY_ID", "key")

    missing = main.missing_env_vars()

    assert "DATABASE_URL" in missing
    assert "CF_ACCESS_KEY_ID" not in missing
    assert "CLOUDFLARE_R2_BUCKET" in missing


def test_local_backend_needs_only_database(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    assert main.missing_env_vars() == []


def test_startup_check_raises_without_database(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DB_HOST", raising=False)
    monkeypatch.setenv("STORAGE_BACKEND", "local")

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        main.check_required_env()


def test_startup_check_raises_for_incomplete_r2_settings(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("STORAGE_BACKEND", "r2")
    for name in main.R2_ENV_VARS:
        monkeypatch.setenv(name, "set")
    monkeypatch.delenv("CLOUDFLARE_WORKER_URL")

    with pytest.raises(RuntimeError, match="CLOUDFLARE_WORKER_URL"):
        main.check_required_env()


def test_startup_check_passes_with_db_host(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    main.check_required_env()
