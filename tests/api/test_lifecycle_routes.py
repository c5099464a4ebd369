from unittest.mock import AsyncMock, patch

import pytest


@pytest.mark.asyncio
async def test_root_and_liveness(async_client):
    root = await async_client.get("/")
    live = await async_client.get("/health/live")

    assert root.json()["app"] == "CloudForge"
    assert live.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_health_reports_database_down(async_client):
    with patch(
        "app.shared.core.app_routes.db_health_check",
        AsyncMock(return_value={"status": "down", "error": "refused", "latency_ms": 1.0}),
    ):
        response = await async_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client):
    response = await async_client.get("/health/live", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"
