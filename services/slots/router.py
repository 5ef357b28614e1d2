"""
services/slots/router.py
Public availability grid: courts × slots for one date.
"""

from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.booking.conflicts import SlotRequest, check_slot_requests
from services.slots.catalog import get_cached_courts, get_cached_time_slots
from shared.exceptions import NotFoundError
from shared.schemas.schemas import (
    AvailabilityResponse,
    CourtAvailability,
    CourtResponse,
    SlotAvailability,
    TimeSlotResponse,
)

router = APIRouter(tags=["Availability"])


@router.get("/time-slots", response_model=list[TimeSlotResponse])
async def list_time_slots(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    return await get_cached_time_slots(db, RedisCache(redis))


@router.get("/courts", response_model=list[CourtResponse])
async def list_courts(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    return await get_cached_courts(db, RedisCache(redis))


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date: date_type = Query(...),
    court_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """A slot is unavailable when a booking, recurring booking or lesson holds it."""
    cache = RedisCache(redis)
    courts = await get_cached_courts(db, cache)
    slots = await get_cached_time_slots(db, cache)

    if court_id is not None:
        courts = [c for c in courts if c["id"] == court_id]
        if not courts:
            raise NotFoundError(f"Court {court_id} not found", code="COURT_NOT_FOUND")

    requests = [
        SlotRequest(court_id=c["id"], date=date, start_time=s["slot_time"])
        for c in courts
        for s in slots
    ]
    report = await check_slot_requests(db, requests)
    held = {c.index: c.source.value for c in report.conflicts}

    grid = []
    index = 0
    for court in courts:
        court_slots = []
        for slot in slots:
            source = held.get(index)
            court_slots.append(
                SlotAvailability(
                    slot_time=slot["slot_time"],
                    display_name=slot["display_name"],
                    available=source is None,
                    held_by=source,
                )
            )
            index += 1
        grid.append(
            CourtAvailability(
                court=CourtResponse(
                    id=court["id"],
                    name=court["name"],
                    hourly_rate=Decimal(court["hourly_rate"]) if court["hourly_rate"] else None,
                ),
                slots=court_slots,
            )
        )

    return AvailabilityResponse(date=date, courts=grid)
