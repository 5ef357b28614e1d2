"""
tests/test_lessons.py
Tests for coaching lessons: scheduling, conflicts in both directions, listing.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import LessonStatus, User
from tests.helpers import make_booking, make_lesson, user_headers


def _payload(**overrides):
    body = {
        "court_id": 1,
        "lesson_date": "2026-02-25",
        "start_time": "10:00",
        "end_time": "11:30",
        "price": "80",
        "notes": "Junior squad",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_admin_schedules_lesson(client: AsyncClient, admin_user: User):
    response = await client.post("/lessons", headers=user_headers(admin_user), json=_payload())

    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["duration"]) == Decimal("1.5")
    assert Decimal(data["price"]) == Decimal("80.00")
    assert data["status"] == LessonStatus.SCHEDULED.value


@pytest.mark.asyncio
async def test_lesson_until_midnight(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/lessons",
        headers=user_headers(admin_user),
        json=_payload(start_time="22:30", end_time="00:00"),
    )
    assert response.status_code == 201
    assert Decimal(response.json()["duration"]) == Decimal("1.5")


@pytest.mark.asyncio
async def test_lesson_requires_admin(client: AsyncClient, user: User):
    response = await client.post("/lessons", headers=user_headers(user), json=_payload())
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_lesson_blocked_by_existing_booking(
    client: AsyncClient, db: AsyncSession, admin_user: User
):
    await make_booking(db, court_id=1, start_time="11:00")

    response = await client.post("/lessons", headers=user_headers(admin_user), json=_payload())

    assert response.status_code == 409
    conflicts = response.json()["detail"]["details"]["conflicts"]
    assert [(c["start_time"], c["source"]) for c in conflicts] == [("11:00", "BOOKING")]


@pytest.mark.asyncio
async def test_lesson_blocks_adhoc_booking(client: AsyncClient, admin_user: User, user: User):
    await client.post("/lessons", headers=user_headers(admin_user), json=_payload())

    inside = await client.post(
        "/bookings",
        headers=user_headers(user),
        json={"date": "2026-02-25", "sport": "badminton", "slots": [{"court_id": 1, "slot_time": "11:00"}]},
    )
    after = await client.post(
        "/bookings",
        headers=user_headers(user),
        json={"date": "2026-02-25", "sport": "badminton", "slots": [{"court_id": 1, "slot_time": "11:30"}]},
    )

    assert inside.status_code == 409
    assert after.status_code == 201


@pytest.mark.asyncio
async def test_overlapping_lessons_rejected(client: AsyncClient, admin_user: User):
    first = await client.post("/lessons", headers=user_headers(admin_user), json=_payload())
    assert first.status_code == 201

    response = await client.post(
        "/lessons", headers=user_headers(admin_user), json=_payload(start_time="11:00", end_time="12:00")
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_lesson_in_past_rejected(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/lessons", headers=user_headers(admin_user), json=_payload(lesson_date="2026-02-16")
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "SLOT_IN_PAST"


@pytest.mark.asyncio
async def test_off_grid_end_rejected(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/lessons", headers=user_headers(admin_user), json=_payload(end_time="11:15")
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_malformed_time_is_422(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/lessons", headers=user_headers(admin_user), json=_payload(start_time="ten")
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_lessons_filtered(client: AsyncClient, db: AsyncSession, admin_user: User):
    await make_lesson(db, court_id=1)
    await make_lesson(db, court_id=2, start_time="14:00", end_time="15:00")

    everything = await client.get("/lessons", headers=user_headers(admin_user))
    court_two = await client.get("/lessons", headers=user_headers(admin_user), params={"court_id": 2})
    other_day = await client.get(
        "/lessons", headers=user_headers(admin_user), params={"date": "2026-02-26"}
    )

    assert len(everything.json()) == 2
    assert [l["start_time"] for l in court_two.json()] == ["14:00"]
    assert other_day.json() == []
