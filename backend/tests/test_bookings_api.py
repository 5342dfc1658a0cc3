"""Integration tests for the booking and coach catalogue endpoints."""

from datetime import datetime, time, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import status

from app.core.database import utcnow
from app.services.token_service import TokenService


DAY = (utcnow() + timedelta(days=2)).date()


def at(hour: int) -> datetime:
    return datetime.combine(DAY, time(hour), tzinfo=timezone.utc)


def start_at(hour: int) -> str:
    return at(hour).isoformat()


def parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


def booking_payload(coach, hour: int, duration_hours: int = 1) -> dict:
    return {
        "coach_id": coach.id,
        "coach_slug": coach.slug,
        "coach_name": coach.name,
        "date": start_at(hour),
        "duration_hours": duration_hours,
    }


@pytest_asyncio.fixture
async def rich_user(db_session, test_user):
    await TokenService(db_session).record_topup(test_user.id, 50_000)
    return test_user


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_book_session(self, client, auth_headers, rich_user, test_coach):
        response = await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 10, 2), headers=auth_headers
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["new_balance"] == 30_000
        assert data["booking"]["tokens_charged"] == 20_000
        assert data["booking"]["status"] == "confirmed"
        assert data["booking"]["coach_slug"] == "anna-petrova"

    @pytest.mark.asyncio
    async def test_slot_conflict_is_409(self, client, auth_headers, rich_user, test_coach):
        await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 10, 2), headers=auth_headers
        )

        response = await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 11, 1), headers=auth_headers
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        detail = response.json()["detail"]
        assert detail["error"] == "slot_conflict"
        assert len(detail["conflicts"]) == 1

        balance = await client.get("/api/v1/tokens/balance", headers=auth_headers)
        assert balance.json()["balance"] == 30_000

    @pytest.mark.asyncio
    async def test_free_slot_books_after_a_conflict(self, client, auth_headers, rich_user, test_coach):
        for hour, duration in ((10, 2), (11, 1)):
            await client.post(
                "/api/v1/bookings",
                json=booking_payload(test_coach, hour, duration),
                headers=auth_headers,
            )

        response = await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 12, 1), headers=auth_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["new_balance"] == 20_000

    @pytest.mark.asyncio
    async def test_insufficient_tokens_is_409(self, client, auth_headers, funded_user, test_coach):
        response = await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 10, 2), headers=auth_headers
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        detail = response.json()["detail"]
        assert detail["error"] == "insufficient_tokens"
        assert detail["shortfall"] == 5_000

    @pytest.mark.asyncio
    async def test_past_date_is_400(self, client, auth_headers, rich_user, test_coach):
        payload = booking_payload(test_coach, 10)
        payload["date"] = (utcnow() - timedelta(days=1)).isoformat()

        response = await client.post("/api/v1/bookings", json=payload, headers=auth_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_bad_duration_is_400(self, client, auth_headers, rich_user, test_coach):
        response = await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 10, 5), headers=auth_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client, auth_headers):
        response = await client.post(
            "/api/v1/bookings", json={"coach_id": "coach-anna"}, headers=auth_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["errors"]

    @pytest.mark.asyncio
    async def test_unknown_coach_is_404(self, client, auth_headers, rich_user, test_coach):
        payload = booking_payload(test_coach, 10)
        payload["coach_id"] = "coach-nobody"

        response = await client.post("/api/v1/bookings", json=payload, headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client, test_coach):
        response = await client.post("/api/v1/bookings", json=booking_payload(test_coach, 10))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_list_bookings(client, auth_headers, rich_user, test_coach):
    for hour in (14, 9):
        await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, hour), headers=auth_headers
        )

    response = await client.get("/api/v1/bookings", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert [parse(b["date"]) for b in response.json()] == [at(9), at(14)]


# ============================================================================
# Coach catalogue
# ============================================================================


class TestCoachEndpoints:
    @pytest.mark.asyncio
    async def test_list_coaches(self, client, test_coach):
        response = await client.get("/api/v1/coaches")

        assert response.status_code == status.HTTP_200_OK
        assert [c["slug"] for c in response.json()] == ["anna-petrova"]

    @pytest.mark.asyncio
    async def test_get_coach_by_slug(self, client, test_coach):
        response = await client.get("/api/v1/coaches/anna-petrova")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == "coach-anna"

    @pytest.mark.asyncio
    async def test_unknown_slug_is_404(self, client, test_coach):
        response = await client.get("/api/v1/coaches/nobody")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_availability(self, client, auth_headers, rich_user, test_coach):
        await client.post(
            "/api/v1/bookings", json=booking_payload(test_coach, 10, 2), headers=auth_headers
        )

        response = await client.get(
            f"/api/v1/coaches/{test_coach.id}/availability",
            params={"day": DAY.isoformat(), "duration_hours": 1},
        )

        assert response.status_code == status.HTTP_200_OK
        slots = [parse(slot) for slot in response.json()["slots"]]
        assert at(9) in slots
        assert at(10) not in slots
        assert at(12) in slots
