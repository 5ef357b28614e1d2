"""
tests/test_availability.py
Tests for the public catalogue and the court × slot availability grid.
"""

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import BookingStatus
from tests.helpers import FakeRedis, make_booking, make_lesson, make_recurring


@pytest.mark.asyncio
async def test_time_slots_and_courts(client: AsyncClient, fake_redis: FakeRedis):
    slots = await client.get("/time-slots")
    courts = await client.get("/courts")

    assert slots.status_code == 200
    assert len(slots.json()) == 30
    assert slots.json()[0] == {"slot_time": "09:00", "display_name": "9:00 AM"}
    assert [c["id"] for c in courts.json()] == [1, 2, 3, 4]
    # served from cache on the next call
    assert await fake_redis.keys("*") != []


@pytest.mark.asyncio
async def test_availability_marks_every_kind_of_hold(client: AsyncClient, db: AsyncSession):
    await make_booking(db, court_id=1, start_time="09:00")
    await make_booking(db, court_id=1, start_time="09:30", status=BookingStatus.EXPIRED)
    await make_recurring(db, court_id=1, day_of_week=3, start_time="19:00", end_time="19:30")
    await make_lesson(db, court_id=1, start_time="12:00", end_time="13:00")

    response = await client.get("/availability", params={"date": "2026-02-25", "court_id": 1})

    assert response.status_code == 200
    [court] = response.json()["courts"]
    assert court["court"]["name"] == "Court 1"
    held = {s["slot_time"]: s["held_by"] for s in court["slots"] if not s["available"]}
    assert held == {
        "09:00": "BOOKING",
        "12:00": "LESSON",
        "12:30": "LESSON",
        "19:00": "RECURRING",
    }


@pytest.mark.asyncio
async def test_availability_covers_all_courts(client: AsyncClient):
    response = await client.get("/availability", params={"date": date(2026, 2, 26).isoformat()})

    courts = response.json()["courts"]
    assert len(courts) == 4
    assert all(s["available"] for c in courts for s in c["slots"])


@pytest.mark.asyncio
async def test_availability_unknown_court(client: AsyncClient):
    response = await client.get("/availability", params={"date": "2026-02-25", "court_id": 9})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_availability_requires_date(client: AsyncClient):
    response = await client.get("/availability")
    assert response.status_code == 422
