"""
tests/test_conflicts.py
Cross-kind conflict detection for ad-hoc, recurring and lesson requests.
"""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from services.booking.conflicts import (
    ConflictSource,
    RecurringRequest,
    SlotRequest,
    check_lesson_request,
    check_recurring_requests,
    check_slot_requests,
)
from shared.models.models import BookingStatus, LessonStatus
from tests.helpers import make_booking, make_lesson, make_recurring

WEDNESDAY = date(2026, 2, 25)
TODAY = date(2026, 2, 17)


@pytest.mark.asyncio
async def test_free_slots_pass(db: AsyncSession):
    report = await check_slot_requests(
        db, [SlotRequest(1, WEDNESDAY, "10:00"), SlotRequest(2, WEDNESDAY, "10:00")]
    )
    assert report.ok
    assert report.indices == []


@pytest.mark.asyncio
async def test_pending_and_confirmed_bookings_hold_the_slot(db: AsyncSession):
    await make_booking(db, start_time="10:00", status=BookingStatus.PENDING)
    await make_booking(db, start_time="11:00", status=BookingStatus.CONFIRMED)

    report = await check_slot_requests(
        db,
        [
            SlotRequest(1, WEDNESDAY, "09:30"),
            SlotRequest(1, WEDNESDAY, "10:00"),
            SlotRequest(1, WEDNESDAY, "11:00"),
        ],
    )
    assert report.indices == [1, 2]
    assert {c.source for c in report.conflicts} == {ConflictSource.BOOKING}


@pytest.mark.asyncio
async def test_expired_and_cancelled_bookings_free_the_slot(db: AsyncSession):
    await make_booking(db, start_time="10:00", status=BookingStatus.EXPIRED)
    await make_booking(db, start_time="10:30", status=BookingStatus.CANCELLED)

    report = await check_slot_requests(
        db, [SlotRequest(1, WEDNESDAY, "10:00"), SlotRequest(1, WEDNESDAY, "10:30")]
    )
    assert report.ok


@pytest.mark.asyncio
async def test_recurring_row_holds_matching_weekday_inside_window(db: AsyncSession):
    await make_recurring(db, day_of_week=3, start_time="10:00", end_time="10:30")

    report = await check_slot_requests(
        db,
        [
            SlotRequest(1, WEDNESDAY, "10:00"),          # Wednesday → held
            SlotRequest(1, date(2026, 2, 26), "10:00"),  # Thursday → free
            SlotRequest(2, WEDNESDAY, "10:00"),          # other court → free
        ],
    )
    assert report.indices == [0]
    assert report.conflicts[0].source == ConflictSource.RECURRING


@pytest.mark.asyncio
async def test_recurring_row_outside_window_or_inactive_is_ignored(db: AsyncSession):
    await make_recurring(db, start_time="10:00", end_date=date(2026, 2, 1))
    await make_recurring(db, start_time="10:30", start_date=date(2026, 3, 1))
    await make_recurring(db, start_time="11:00", is_active=False)

    report = await check_slot_requests(
        db,
        [
            SlotRequest(1, WEDNESDAY, "10:00"),
            SlotRequest(1, WEDNESDAY, "10:30"),
            SlotRequest(1, WEDNESDAY, "11:00"),
        ],
    )
    assert report.ok


@pytest.mark.asyncio
async def test_lesson_blocks_every_overlapping_slot(db: AsyncSession):
    await make_lesson(db, start_time="10:00", end_time="11:30")

    report = await check_slot_requests(
        db,
        [
            SlotRequest(1, WEDNESDAY, "09:30"),
            SlotRequest(1, WEDNESDAY, "10:00"),
            SlotRequest(1, WEDNESDAY, "11:00"),
            SlotRequest(1, WEDNESDAY, "11:30"),   # half-open: lesson ends at 11:30
        ],
    )
    assert report.indices == [1, 2]
    assert all(c.source == ConflictSource.LESSON for c in report.conflicts)


@pytest.mark.asyncio
async def test_cancelled_lesson_does_not_block(db: AsyncSession):
    await make_lesson(db, start_time="10:00", end_time="11:00", status=LessonStatus.CANCELLED)
    report = await check_slot_requests(db, [SlotRequest(1, WEDNESDAY, "10:30")])
    assert report.ok


@pytest.mark.asyncio
async def test_recurring_request_sees_future_bookings_on_that_weekday(db: AsyncSession):
    await make_booking(db, booking_date=date(2026, 3, 4), start_time="19:00")   # Wednesday
    await make_booking(db, booking_date=date(2026, 3, 5), start_time="20:00")   # Thursday

    report = await check_recurring_requests(
        db,
        [
            RecurringRequest(1, 3, "19:00"),
            RecurringRequest(1, 3, "20:00"),
        ],
        start_date=TODAY,
        end_date=None,
        today=TODAY,
    )
    assert report.indices == [0]
    assert report.conflicts[0].describe() == "Court 1, Wednesday, 19:00"


@pytest.mark.asyncio
async def test_recurring_request_ignores_bookings_outside_window(db: AsyncSession):
    await make_booking(db, booking_date=date(2026, 4, 1), start_time="19:00")

    report = await check_recurring_requests(
        db,
        [RecurringRequest(1, 3, "19:00")],
        start_date=TODAY,
        end_date=date(2026, 3, 31),
        today=TODAY,
    )
    assert report.ok


@pytest.mark.asyncio
async def test_recurring_request_sees_overlapping_series_and_lessons(db: AsyncSession):
    await make_recurring(db, day_of_week=3, start_time="10:00", end_time="10:30")
    await make_lesson(db, lesson_date=date(2026, 3, 11), start_time="12:00", end_time="13:00")

    report = await check_recurring_requests(
        db,
        [
            RecurringRequest(1, 3, "10:00"),
            RecurringRequest(1, 3, "12:30"),
            RecurringRequest(1, 4, "10:00"),
        ],
        start_date=TODAY,
        end_date=None,
        today=TODAY,
    )
    assert report.indices == [0, 1]
    assert [c.source for c in report.conflicts] == [ConflictSource.RECURRING, ConflictSource.LESSON]


@pytest.mark.asyncio
async def test_lesson_request_checks_full_span(db: AsyncSession):
    await make_booking(db, start_time="15:30")

    report = await check_lesson_request(db, 1, WEDNESDAY, "14:00", "16:00")
    assert not report.ok
    assert report.conflicts[0].start_time == "15:30"

    report = await check_lesson_request(db, 1, WEDNESDAY, "14:00", "15:30")
    assert report.ok
