"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_memory_backend_skips_dependencies(client):
    data = (await client.get("/api/v1/health")).json()
    assert data["backend"] == "memory"
    assert "postgres" not in data
    assert "redis" not in data
