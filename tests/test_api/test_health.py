"""
Tests for the health endpoint.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint returns ok status."""
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["images"] == 0


@pytest.mark.asyncio
async def test_health_counts_images(client: AsyncClient, sample_meta_headers: dict):
    await client.post("/api/v1/images", headers=sample_meta_headers)

    response = await client.get("/api/v1/health")

    assert response.json()["images"] == 1


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["api"] == "/api/v1"
