"""Tests for health endpoints and the error envelope.

Tests:
    - /health reports the service and version
    - /health/ready reports ready when the database answers, 503 when not
    - Domain errors raised in a route keep the JSON envelope shape
    - 5xx messages are generic in production
"""

from fastapi import APIRouter
from httpx import ASGITransport, AsyncClient

from gatehouse import __version__
from gatehouse.core.errors import InternalError
from gatehouse.main import create_app


async def test_health(client):
    res = await client.get("/api/v1/health/")

    assert res.status_code == 200
    assert res.json()["service"] == "gatehouse-api"
    assert res.json()["version"] == __version__


async def test_ready(client):
    res = await client.get("/api/v1/health/ready")

    assert res.status_code == 200
    assert res.json()["checks"] == {"database": "healthy"}


async def test_not_ready_when_database_down(client, services, monkeypatch):
    async def unhealthy() -> bool:
        return False

    monkeypatch.setattr(services.db, "health_check", unhealthy)
    res = await client.get("/api/v1/health/ready")

    assert res.status_code == 503
    assert res.json()["status"] == "not_ready"


async def _get_boom(services):
    app = create_app(services=services)
    router = APIRouter()

    @router.get("/boom")
    async def boom():
        raise InternalError("connection string leaked: postgres://secret")

    app.include_router(router)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        return await c.get("/boom")


async def test_internal_error_message_hidden_in_production(services):
    services.settings = services.settings.model_copy(update={"environment": "production"})

    res = await _get_boom(services)

    assert res.status_code == 500
    assert res.json() == {
        "error": {
            "code": "INTERNAL_SERVER_ERROR",
            "message": "An unexpected error occurred",
        },
    }


async def test_internal_error_message_shown_outside_production(services):
    res = await _get_boom(services)

    assert res.status_code == 500
    assert "leaked" in res.json()["error"]["message"]
