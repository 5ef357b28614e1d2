"""
services/lesson/router.py
Coaching lesson sessions. A lesson blocks every slot in [start_time, end_time).
"""

import logging
from datetime import date as date_type
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking.conflicts import check_lesson_request
from services.booking.expiration import booking_datetime
from services.pricing.pricing import calculate_hours, to_money
from services.slots.catalog import DAY_END, is_valid_slot
from shared.exceptions import NotFoundError, SlotConflict, ValidationError
from shared.middleware.auth import require_admin
from shared.models.models import Court, LessonSession, LessonStatus, User
from shared.schemas.schemas import LessonCreateRequest, LessonResponse
from shared.utils.time_utils import Clock, get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lessons", tags=["Lessons"])


def _validate_range(start_time: str, end_time: str) -> None:
    if not is_valid_slot(start_time):
        raise ValidationError(f"Invalid start time: {start_time}", code="INVALID_SLOT")
    if end_time not in (DAY_END, "24:00") and not is_valid_slot(end_time):
        raise ValidationError(f"Invalid end time: {end_time}", code="INVALID_SLOT")


@router.get("", response_model=List[LessonResponse])
async def list_lessons(
    date: Optional[date_type] = Query(None),
    court_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(LessonSession).order_by(
        LessonSession.lesson_date, LessonSession.court_id, LessonSession.start_time
    )
    if date is not None:
        stmt = stmt.where(LessonSession.lesson_date == date)
    if court_id is not None:
        stmt = stmt.where(LessonSession.court_id == court_id)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    _validate_range(payload.start_time, payload.end_time)
    if booking_datetime(payload.lesson_date, payload.start_time) <= clock():
        raise ValidationError("Cannot schedule lessons in the past", code="SLOT_IN_PAST")

    court = await db.get(Court, payload.court_id)
    if court is None or not court.is_active:
        raise NotFoundError(f"Court {payload.court_id} not found", code="COURT_NOT_FOUND")

    report = await check_lesson_request(
        db, payload.court_id, payload.lesson_date, payload.start_time, payload.end_time
    )
    if not report.ok:
        raise SlotConflict(
            "Lesson conflicts with existing reservations", conflicts=report.to_details()
        )

    try:
        # Lock the court, then re-check before writing
        await db.execute(select(Court.id).where(Court.id == court.id).with_for_update())
        report = await check_lesson_request(
            db, payload.court_id, payload.lesson_date, payload.start_time, payload.end_time
        )
        if not report.ok:
            raise SlotConflict(
                "Lesson conflicts with existing reservations", conflicts=report.to_details()
            )

        lesson = LessonSession(
            court_id=payload.court_id,
            lesson_date=payload.lesson_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            duration=calculate_hours(payload.start_time, payload.end_time),
            price=to_money(payload.price),
            status=LessonStatus.SCHEDULED,
            notes=payload.notes,
        )
        db.add(lesson)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Lesson {lesson.id} scheduled on court {lesson.court_id} "
        f"{lesson.lesson_date} {lesson.start_time}-{lesson.end_time}"
    )
    return lesson
