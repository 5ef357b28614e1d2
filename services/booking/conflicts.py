"""
services/booking/conflicts.py
Cross-kind slot conflict detection.

A court slot is held by any of:
  1. an ad-hoc Booking in PENDING or CONFIRMED at the same court/date/start
  2. an active RecurringBooking on the same court/weekday/start whose
     date window contains the date
  3. a SCHEDULED LessonSession on the same court/date whose range overlaps

All three sources are checked for every request. Results are advisory;
the allocator repeats the check inside its own transaction.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum as PyEnum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.slots.catalog import is_valid_slot, slot_end_time, slots_between
from shared.exceptions import ValidationError
from shared.models.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    LessonSession,
    LessonStatus,
    RecurringBooking,
)
from shared.utils.time_utils import day_of_week, intervals_overlap

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class ConflictSource(str, PyEnum):
    BOOKING = "BOOKING"
    RECURRING = "RECURRING"
    LESSON = "LESSON"


@dataclass(frozen=True)
class SlotRequest:
    court_id: int
    date: date
    start_time: str


@dataclass(frozen=True)
class RecurringRequest:
    court_id: int
    day_of_week: int
    start_time: str


@dataclass
class Conflict:
    index: int
    court_id: int
    start_time: str
    source: ConflictSource
    date: Optional[date] = None
    day_of_week: Optional[int] = None

    def describe(self) -> str:
        if self.date is not None:
            return f"Court {self.court_id}, {self.date.isoformat()}, {self.start_time}"
        return f"Court {self.court_id}, {DAY_NAMES[self.day_of_week]}, {self.start_time}"

    def to_dict(self) -> dict:
        data = {
            "index": self.index,
            "court_id": self.court_id,
            "start_time": self.start_time,
            "source": self.source.value,
        }
        if self.date is not None:
            data["date"] = self.date.isoformat()
        if self.day_of_week is not None:
            data["day_of_week"] = self.day_of_week
        return data


@dataclass
class ConflictReport:
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.conflicts

    @property
    def indices(self) -> List[int]:
        return sorted({c.index for c in self.conflicts})

    def to_details(self) -> List[dict]:
        return [c.to_dict() for c in self.conflicts]


def _recurring_covers(row: RecurringBooking, on: date) -> bool:
    return row.start_date <= on and (row.end_date is None or row.end_date >= on)


# ── Ad-hoc slot requests ──────────────────────────────────────

async def check_slot_requests(
    db: AsyncSession, requests: Sequence[SlotRequest]
) -> ConflictReport:
    """Check each (court, date, start) request against all three reservation kinds."""
    report = ConflictReport()
    if not requests:
        return report

    for req in requests:
        if not is_valid_slot(req.start_time):
            raise ValidationError(f"{req.start_time} is not a bookable slot", code="INVALID_SLOT")

    court_ids = {r.court_id for r in requests}
    dates = {r.date for r in requests}

    # 1. Ad-hoc bookings
    result = await db.execute(
        select(Booking.court_id, Booking.booking_date, Booking.start_time).where(
            Booking.court_id.in_(court_ids),
            Booking.booking_date.in_(dates),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    held: Set[Tuple[int, date, str]] = {tuple(row) for row in result.all()}

    # 2. Recurring templates
    result = await db.execute(
        select(RecurringBooking).where(
            RecurringBooking.court_id.in_(court_ids),
            RecurringBooking.day_of_week.in_({day_of_week(d) for d in dates}),
            RecurringBooking.is_active.is_(True),
            RecurringBooking.start_date <= max(dates),
            or_(RecurringBooking.end_date.is_(None), RecurringBooking.end_date >= min(dates)),
        )
    )
    recurring: Dict[Tuple[int, int, str], List[RecurringBooking]] = defaultdict(list)
    for row in result.scalars().all():
        recurring[(row.court_id, row.day_of_week, row.start_time)].append(row)

    # 3. Lessons
    result = await db.execute(
        select(LessonSession).where(
            LessonSession.court_id.in_(court_ids),
            LessonSession.lesson_date.in_(dates),
            LessonSession.status == LessonStatus.SCHEDULED,
        )
    )
    lessons: Dict[Tuple[int, date], List[LessonSession]] = defaultdict(list)
    for lesson in result.scalars().all():
        lessons[(lesson.court_id, lesson.lesson_date)].append(lesson)

    for index, req in enumerate(requests):
        source: Optional[ConflictSource] = None
        if (req.court_id, req.date, req.start_time) in held:
            source = ConflictSource.BOOKING
        elif any(
            _recurring_covers(row, req.date)
            for row in recurring.get((req.court_id, day_of_week(req.date), req.start_time), [])
        ):
            source = ConflictSource.RECURRING
        else:
            slot_end = slot_end_time(req.start_time)
            if any(
                intervals_overlap(req.start_time, slot_end, lesson.start_time, lesson.end_time)
                for lesson in lessons.get((req.court_id, req.date), [])
            ):
                source = ConflictSource.LESSON

        if source is not None:
            report.conflicts.append(
                Conflict(
                    index=index,
                    court_id=req.court_id,
                    date=req.date,
                    start_time=req.start_time,
                    source=source,
                )
            )

    return report


# ── Recurring series ──────────────────────────────────────────

async def check_recurring_requests(
    db: AsyncSession,
    requests: Sequence[RecurringRequest],
    start_date: date,
    end_date: Optional[date],
    today: date,
    exclude_ids: Iterable[uuid.UUID] = (),
) -> ConflictReport:
    """
    Check weekly (court, weekday, start) combinations over [start_date, end_date].
    Only dates from today onwards count for bookings and lessons.
    """
    report = ConflictReport()
    if not requests:
        return report

    court_ids = {r.court_id for r in requests}
    window_start = max(start_date, today)
    excluded = set(exclude_ids)

    # Other recurring rows: active, still current, overlapping date window
    stmt = select(RecurringBooking).where(
        RecurringBooking.court_id.in_(court_ids),
        RecurringBooking.is_active.is_(True),
        or_(RecurringBooking.end_date.is_(None), RecurringBooking.end_date >= today),
        or_(RecurringBooking.end_date.is_(None), RecurringBooking.end_date >= start_date),
    )
    if end_date is not None:
        stmt = stmt.where(RecurringBooking.start_date <= end_date)
    result = await db.execute(stmt)
    taken_recurring = {
        (row.court_id, row.day_of_week, row.start_time)
        for row in result.scalars().all()
        if row.id not in excluded
    }

    # Ad-hoc bookings inside the window
    stmt = select(Booking.court_id, Booking.booking_date, Booking.start_time).where(
        Booking.court_id.in_(court_ids),
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.booking_date >= window_start,
    )
    if end_date is not None:
        stmt = stmt.where(Booking.booking_date <= end_date)
    result = await db.execute(stmt)
    taken_bookings = {
        (court_id, day_of_week(booking_date), start_time)
        for court_id, booking_date, start_time in result.all()
    }

    # Scheduled lessons inside the window
    stmt = select(LessonSession).where(
        LessonSession.court_id.in_(court_ids),
        LessonSession.status == LessonStatus.SCHEDULED,
        LessonSession.lesson_date >= window_start,
    )
    if end_date is not None:
        stmt = stmt.where(LessonSession.lesson_date <= end_date)
    result = await db.execute(stmt)
    lessons_by_day: Dict[Tuple[int, int], List[LessonSession]] = defaultdict(list)
    for lesson in result.scalars().all():
        lessons_by_day[(lesson.court_id, day_of_week(lesson.lesson_date))].append(lesson)

    for index, req in enumerate(requests):
        key = (req.court_id, req.day_of_week, req.start_time)
        source: Optional[ConflictSource] = None
        if key in taken_bookings:
            source = ConflictSource.BOOKING
        elif key in taken_recurring:
            source = ConflictSource.RECURRING
        else:
            slot_end = slot_end_time(req.start_time)
            if any(
                intervals_overlap(req.start_time, slot_end, lesson.start_time, lesson.end_time)
                for lesson in lessons_by_day.get((req.court_id, req.day_of_week), [])
            ):
                source = ConflictSource.LESSON

        if source is not None:
            report.conflicts.append(
                Conflict(
                    index=index,
                    court_id=req.court_id,
                    day_of_week=req.day_of_week,
                    start_time=req.start_time,
                    source=source,
                )
            )

    return report


# ── Lessons ───────────────────────────────────────────────────

async def check_lesson_request(
    db: AsyncSession,
    court_id: int,
    lesson_date: date,
    start_time: str,
    end_time: str,
) -> ConflictReport:
    """A lesson conflicts if any grid slot inside [start_time, end_time) is held."""
    slots = slots_between(start_time, end_time)
    if not slots:
        raise ValidationError("Lesson must cover at least one slot", code="INVALID_TIME_RANGE")
    return await check_slot_requests(
        db, [SlotRequest(court_id=court_id, date=lesson_date, start_time=s) for s in slots]
    )
