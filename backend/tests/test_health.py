"""
Tests for the FastAPI application, health endpoint and API-key auth.
"""

import os
import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_health_endpoint_healthy():
    """Health endpoint should return healthy when DB is connected."""
    with patch("adperf.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        from adperf.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "healthy"
            assert data["database"] == "connected"
            assert data["service"] == "Ad Performance Dashboard"


@pytest.mark.anyio
async def test_health_endpoint_degraded():
    """Health endpoint should return degraded when DB is disconnected."""
    with patch("adperf.main.check_db_connection", new_callable=AsyncMock, return_value=False):
        from adperf.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "degraded"
            assert data["database"] == "disconnected"


@pytest.mark.anyio
async def test_api_key_required_when_configured(client):
    from adperf.config import get_settings
    with patch.dict(os.environ, {"API_KEY": "secret-key"}):
        get_settings.cache_clear()
        missing = await client.get("/api/campaigns")
        wrong = await client.get("/api/campaigns", headers={"Authorization": "Bearer nope"})
        ok = await client.get("/api/campaigns", headers={"Authorization": "Bearer secret-key"})
    get_settings.cache_clear()

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert ok.json() == {"campaign_data": []}


@pytest.mark.anyio
async def test_health_is_public_when_api_key_set():
    from adperf.config import get_settings
    with patch.dict(os.environ, {"API_KEY": "secret-key"}), \
            patch("adperf.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        get_settings.cache_clear()
        from adperf.main import app
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
    get_settings.cache_clear()
    assert response.status_code == 200
