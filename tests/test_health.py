"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test basic health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert "version" in data
    assert "environment" in data
    assert data["dependencies"]["database"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_database_health_lists_service_tables(client: AsyncClient):
    response = await client.get("/health/database")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["details"]["dialect"] == "sqlite"
    assert set(data["details"]["tables"]) == {
        "accounts", "account_usage", "plan_settings", "upgrade_requests"
    }
    assert data["details"]["missing_tables"] == []


@pytest.mark.asyncio
async def test_version_endpoint(client: AsyncClient):
    """Test version information endpoint."""
    response = await client.get("/version")

    assert response.status_code == 200
    data = response.json()

    assert data["service"] == "account-core-service"
    assert data["api_version"] == "v1"
    assert "version" in data
    assert "environment" in data


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert "service" in data
    assert "version" in data
    assert data["status"] == "running"
