"""
services/slots/catalog.py
The facility's 30-minute slot grid and cached reference data (courts, time slots).

Bookable starts run 09:00 … 23:30. The last slot ends at 00:00, which is
stored as "00:00" and read as end of day.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.redis_client import COURTS_KEY, TIME_SLOTS_KEY, RedisCache
from config.settings import settings
from shared.exceptions import ValidationError
from shared.models.models import Court, TimeSlot
from shared.utils.time_utils import MINUTES_PER_DAY, add_minutes, from_minutes, to_minutes

logger = logging.getLogger(__name__)

SLOT_MINUTES = 30
OPENING_TIME = "09:00"
DAY_END = "00:00"

SLOT_TIMES: List[str] = [
    from_minutes(m) for m in range(to_minutes(OPENING_TIME), MINUTES_PER_DAY, SLOT_MINUTES)
]

DEFAULT_COURTS = ["Court 1", "Court 2", "Court 3", "Court 4"]


# ── Grid helpers ──────────────────────────────────────────────

def is_valid_slot(start: str) -> bool:
    return start in SLOT_TIMES


def slot_end_time(start: str) -> str:
    """start + 30 min; 23:30 → 00:00."""
    return add_minutes(start, SLOT_MINUTES)


def slots_between(start: str, end: str) -> List[str]:
    """Catalog starts in [start, end). end "00:00" (or "24:00") means end of day."""
    if not is_valid_slot(start):
        raise ValidationError(f"{start} is not a bookable slot", code="INVALID_SLOT")
    start_min = to_minutes(start)
    end_min = to_minutes(end)
    if end_min <= start_min:
        end_min += MINUTES_PER_DAY
    return [s for s in SLOT_TIMES if start_min <= to_minutes(s) < end_min]


def display_name(slot: str) -> str:
    """"18:30" → "6:30 PM"."""
    minutes = to_minutes(slot) % MINUTES_PER_DAY
    hours, mins = divmod(minutes, 60)
    suffix = "AM" if hours < 12 else "PM"
    hours12 = hours % 12 or 12
    return f"{hours12}:{mins:02d} {suffix}"


# ── Cached reference data ─────────────────────────────────────

async def get_cached_time_slots(db: AsyncSession, cache: Optional[RedisCache] = None) -> List[dict]:
    """Time slots ordered by start. Redis first, database on a miss."""
    if cache:
        cached = await cache.get(TIME_SLOTS_KEY)
        if cached is not None:
            return cached

    result = await db.execute(select(TimeSlot).order_by(TimeSlot.slot_time))
    slots = [
        {"id": s.id, "slot_time": s.slot_time, "display_name": s.display_name}
        for s in result.scalars().all()
    ]
    if cache and slots:
        await cache.set(TIME_SLOTS_KEY, slots, ttl=settings.REDIS_STATIC_CACHE_TTL)
    return slots


async def get_cached_courts(db: AsyncSession, cache: Optional[RedisCache] = None) -> List[dict]:
    """Active courts ordered by id. Redis first, database on a miss."""
    if cache:
        cached = await cache.get(COURTS_KEY)
        if cached is not None:
            return cached

    result = await db.execute(
        select(Court).where(Court.is_active.is_(True)).order_by(Court.id)
    )
    courts = [
        {
            "id": c.id,
            "name": c.name,
            "hourly_rate": str(c.hourly_rate) if c.hourly_rate is not None else None,
        }
        for c in result.scalars().all()
    ]
    if cache and courts:
        await cache.set(COURTS_KEY, courts, ttl=settings.REDIS_STATIC_CACHE_TTL)
    return courts


async def seed_reference_data(db: AsyncSession) -> None:
    """Insert the slot grid and default courts if the tables are empty."""
    slot_count = await db.scalar(select(func.count(TimeSlot.id)))
    if not slot_count:
        for slot in SLOT_TIMES:
            db.add(TimeSlot(slot_time=slot, display_name=display_name(slot)))
        logger.info(f"Seeded {len(SLOT_TIMES)} time slots")

    court_count = await db.scalar(select(func.count(Court.id)))
    if not court_count:
        for name in DEFAULT_COURTS:
            db.add(Court(name=name, is_active=True))
        logger.info(f"Seeded {len(DEFAULT_COURTS)} courts")

    await db.flush()
