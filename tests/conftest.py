from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from sensor_history.core.config import Settings
from sensor_history.core.security import get_password_hash
from sensor_history.factory import create_app
from sensor_history.repositories.sqlite import SqliteReadingRepository


@pytest.fixture(scope="session")
def password_hash() -> str:
    return get_password_hash("password")


@pytest.fixture()
def settings(tmp_path, password_hash: str) -> Settings:  # type: ignore[no-untyped-def]
    return Settings(
        _env_file=None,
        env="test",
        debug=True,
        docs_enabled=False,
        secret_key="test_secret_key_must_be_32_chars_minimum",
        admin_username="admin",
        admin_password_hash=password_hash,
        cors_origins=["http://localhost"],
        trusted_hosts=["testserver", "localhost"],
        db_path=str(tmp_path / "history.db"),
        retention_days=30,
        sweep_min_interval_seconds=3600,
        sweep_batch_size=1,
        sweep_background_enabled=False,
    )


@pytest.fixture()
def client(settings: Settings) -> TestClient:
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def token(client: TestClient) -> str:
    resp = client.post(
        "/api/v1/auth/token",
        data={"username": "admin", "password": "password"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


@pytest.fixture()
def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def store(tmp_path) -> SqliteReadingRepository:  # type: ignore[no-untyped-def]
    repo = SqliteReadingRepository(db_path=str(tmp_path / "store.db"))
    yield repo
    repo.close()


@pytest.fixture()
def now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
