"""Tests for the liveness and session quote endpoints."""

import pytest
from fastapi import status


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok", "service": "coachly-backend"}


@pytest.mark.asyncio
async def test_session_quote(client):
    response = await client.get("/api/v1/pricing/session", params={"duration_hours": 2})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"duration_hours": 2, "hourly_rate": 10_000, "total": 20_000}


@pytest.mark.asyncio
async def test_session_quote_rejects_unsupported_duration(client):
    response = await client.get("/api/v1/pricing/session", params={"duration_hours": 4})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"]["error"] == "validation_error"
