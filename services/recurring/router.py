"""
services/recurring/router.py
Weekly recurring bookings: grouped listing, batch creation, editing, deactivation.
Rows are never deleted; deactivation flips is_active.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from services.booking.conflicts import RecurringRequest, check_recurring_requests
from services.pricing.pricing import parse_sport
from services.recurring.grouping import group_recurring_slots
from services.slots.catalog import is_valid_slot, slot_end_time, slots_between
from shared.exceptions import NotFoundError, SlotConflict, ValidationError
from shared.middleware.auth import get_optional_user, require_admin
from shared.models.models import Court, RecurringBooking, User, UserRole
from shared.schemas.schemas import (
    RecurringCreateRequest,
    RecurringCreateResponse,
    RecurringDeactivateRequest,
    RecurringDeactivateResponse,
    RecurringGroupResponse,
    RecurringRowResponse,
    RecurringUpdateRequest,
)
from shared.utils.time_utils import Clock, facility_today, get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-bookings", tags=["Recurring Bookings"])


@router.get("", response_model=List[RecurringGroupResponse])
async def list_recurring_bookings(
    include_inactive: bool = Query(False),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(RecurringBooking).options(selectinload(RecurringBooking.court))
    if not include_inactive:
        stmt = stmt.where(RecurringBooking.is_active.is_(True))
    result = await db.execute(stmt)
    return group_recurring_slots(result.scalars().all())


@router.post("", response_model=RecurringCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_booking(
    payload: RecurringCreateRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Create one row per court × weekday × 30-minute slot.
    Conflicting combinations are skipped and reported; 409 only if every one conflicts.
    """
    is_admin = user is not None and user.role == UserRole.ADMIN
    if not is_admin and (not payload.guest_name or not payload.guest_phone):
        raise ValidationError(
            "Name and phone are required for recurring bookings", code="MISSING_CONTACT"
        )

    sport = parse_sport(payload.sport)
    if not is_valid_slot(payload.start_time):
        raise ValidationError(f"Invalid start time: {payload.start_time}", code="INVALID_SLOT")
    slot_times = (
        slots_between(payload.start_time, payload.end_time)
        if payload.end_time
        else [payload.start_time]
    )
    if not slot_times:
        raise ValidationError("Invalid time range", code="INVALID_TIME_RANGE")

    court_ids = list(dict.fromkeys(payload.court_ids))
    days = list(dict.fromkeys(payload.days_of_week))
    result = await db.execute(
        select(Court.id).where(Court.id.in_(court_ids), Court.is_active.is_(True))
    )
    found = set(result.scalars().all())
    missing = [c for c in court_ids if c not in found]
    if missing:
        raise NotFoundError(f"Court(s) not found: {missing}", code="COURT_NOT_FOUND")

    today = facility_today(clock())
    start_date = payload.start_date or today
    if payload.end_date and payload.end_date < start_date:
        raise ValidationError("end_date must not be before start_date", code="INVALID_DATE_RANGE")

    combos = [
        RecurringRequest(court_id=c, day_of_week=d, start_time=t)
        for c in court_ids
        for d in days
        for t in slot_times
    ]
    report = await check_recurring_requests(db, combos, start_date, payload.end_date, today)
    conflicts = [c.describe() for c in report.conflicts]
    if len(report.indices) == len(combos):
        raise SlotConflict(
            f"All slots have conflicts: {', '.join(conflicts)}",
            conflicts=report.to_details(),
        )

    skipped = set(report.indices)
    rows = [
        RecurringBooking(
            court_id=combo.court_id,
            sport=sport,
            day_of_week=combo.day_of_week,
            start_time=combo.start_time,
            end_time=slot_end_time(combo.start_time),
            start_date=start_date,
            end_date=payload.end_date,
            is_active=True,
            hourly_rate=payload.hourly_rate if is_admin else None,
            label=payload.label if is_admin else None,
            created_by=user.email if is_admin else None,
            user_id=payload.user_id if is_admin else (user.id if user else None),
            guest_name=payload.guest_name,
            guest_phone=payload.guest_phone,
        )
        for i, combo in enumerate(combos)
        if i not in skipped
    ]
    db.add_all(rows)
    await db.commit()

    logger.info(
        f"Created {len(rows)} recurring slot(s), skipped {len(conflicts)} conflicting"
    )
    return RecurringCreateResponse(
        count=len(rows),
        conflicts=conflicts,
        recurring_bookings=[RecurringRowResponse.model_validate(r) for r in rows],
    )


@router.delete("", response_model=RecurringDeactivateResponse)
async def deactivate_recurring_bookings(
    payload: RecurringDeactivateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(RecurringBooking)
        .where(RecurringBooking.id.in_(payload.ids), RecurringBooking.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info(f"Admin {admin.id} deactivated {result.rowcount} recurring slot(s)")
    return RecurringDeactivateResponse(deactivated=result.rowcount)


@router.patch("", response_model=RecurringRowResponse)
async def update_recurring_booking(
    payload: RecurringUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Edit one recurring row. Moving it (court, weekday, start time) or changing
    its end date re-runs the conflict check against everything but itself.
    """
    row = await db.get(RecurringBooking, payload.id)
    if not row:
        raise NotFoundError("Recurring booking not found", code="RECURRING_NOT_FOUND")

    changes = payload.changes()
    court_id = changes.get("court_id", row.court_id)
    day_of_week = changes.get("day_of_week", row.day_of_week)
    start_time = changes.get("start_time", row.start_time)
    end_date = changes.get("end_date", row.end_date)

    if not is_valid_slot(start_time):
        raise ValidationError(f"Invalid start time: {start_time}", code="INVALID_SLOT")
    end_time = slot_end_time(start_time)
    if changes.get("end_time", end_time) != end_time:
        raise ValidationError(
            f"A recurring row covers one slot; {start_time} ends at {end_time}",
            code="INVALID_TIME_RANGE",
        )
    if end_date is not None and end_date < row.start_date:
        raise ValidationError("end_date must not be before start_date", code="INVALID_DATE_RANGE")

    if court_id != row.court_id:
        court = await db.get(Court, court_id)
        if not court or not court.is_active:
            raise NotFoundError(f"Court(s) not found: [{court_id}]", code="COURT_NOT_FOUND")

    moved = {"court_id", "day_of_week", "start_time", "end_date"} & changes.keys()
    if moved and row.is_active:
        report = await check_recurring_requests(
            db,
            [RecurringRequest(court_id=court_id, day_of_week=day_of_week, start_time=start_time)],
            row.start_date,
            end_date,
            facility_today(clock()),
            exclude_ids=[row.id],
        )
        if not report.ok:
            raise SlotConflict(
                f"Conflict exists for {report.conflicts[0].describe()}",
                conflicts=report.to_details(),
            )

    for field, value in changes.items():
        setattr(row, field, value)
    row.end_time = end_time
    await db.commit()

    logger.info(f"Admin {admin.id} updated recurring slot {row.id}: {sorted(changes)}")
    return RecurringRowResponse.model_validate(row)
