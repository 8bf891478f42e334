"""Tests for Health endpoint."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "env" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_protected_routes_require_session(client: AsyncClient):
    response = await client.get("/tickets")
    assert response.status_code == 401

    response = await client.get("/kanban/boards")
    assert response.status_code == 401
