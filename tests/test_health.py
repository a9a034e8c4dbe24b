"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient, ASGITransport


@pytest.mark.asyncio
async def test_health_endpoint(dashboard_app, orchestrator):
    """Test combined health check endpoint."""
    await orchestrator.refresh()

    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cycles_completed"] == 1
    assert data["auto_refresh_running"] is False
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_when_records_have_errors(dashboard_app, orchestrator, fake_api):
    fake_api.failing.add("Paris")
    await orchestrator.refresh()

    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        response = await client.get("/health")

    assert response.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_liveness_probe():
    """Test liveness probe endpoint."""
    from weather_dashboard.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_readiness_probe_ready(dashboard_app, orchestrator):
    """Test readiness probe once a fetch cycle has completed."""
    await orchestrator.refresh()

    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["cycles_completed"] == 1


@pytest.mark.asyncio
async def test_readiness_probe_not_ready(dashboard_app):
    """Test readiness probe before the first fetch cycle."""
    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 503
    assert "not ready" in response.json()["detail"].lower()


@pytest.mark.asyncio
async def test_correlation_id_header(dashboard_app):
    """Test that correlation ID is added to responses."""
    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_metrics_endpoint(dashboard_app, orchestrator):
    """Test Prometheus metrics endpoint."""
    await orchestrator.refresh()

    async with AsyncClient(transport=ASGITransport(app=dashboard_app), base_url="http://test") as client:
        await client.get("/health")
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "weather_dashboard_requests_total" in response.text
    assert "weather_dashboard_fetch_cycles_total" in response.text
