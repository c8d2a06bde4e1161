import pytest
from fastapi.testclient import TestClient

from trivia_duels.api.routes import health as health_routes
from trivia_duels.main import app


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


def test_health_ok(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_celery_worker", _ok_check)

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {
            "database": {"status": "ok"},
            "celery": {"status": "ok"},
        },
    }


def test_live_ok() -> None:
    client = TestClient(app)
    response = client.get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_returns_503_when_worker_missing(monkeypatch) -> None:
    async def _failed_celery() -> dict[str, str]:
        return {"status": "failed", "error": "no celery workers responded to ping"}

    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_celery_worker", _failed_celery)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["celery"]["status"] == "failed"


def test_ready_ignores_celery(monkeypatch) -> None:
    async def _failed_celery() -> dict[str, str]:
        return {"status": "failed", "error": "worker not responding"}

    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_celery_worker", _failed_celery)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": {"status": "ok"}}}


def test_ready_returns_503_without_database(monkeypatch) -> None:
    async def _failed_database() -> dict[str, str]:
        return {"status": "failed", "error": "database_unavailable"}

    monkeypatch.setattr(health_routes, "_check_database", _failed_database)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


@pytest.mark.asyncio
async def test_database_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    result = await health_routes._check_database()
    assert result == {"status": "failed", "error": "database_unavailable"}


def test_celery_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenControl:
        def inspect(self, timeout: float):
            raise RuntimeError("broker-url=redis://secret")

    monkeypatch.setattr(health_routes.celery_app, "control", _BrokenControl())

    result = health_routes._check_celery_worker_sync()
    assert result == {"status": "failed", "error": "celery_unavailable"}
