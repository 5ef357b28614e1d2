"""
tests/helpers.py
Test doubles and row factories shared by the test modules.
"""

import fnmatch
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification.email import EmailResult
from shared.models.models import (
    Booking,
    BookingStatus,
    LessonSession,
    LessonStatus,
    PaymentStatus,
    RecurringBooking,
    Sport,
    User,
)

# 2026-02-17 18:00 facility time (Tuesday)
NOW = datetime(2026, 2, 17, 10, 0, tzinfo=timezone.utc)


def user_headers(user: User) -> dict:
    return {"X-User-Id": str(user.id)}


# ── Clock ──────────────────────────────────────────────────────────────────────

class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── Redis ──────────────────────────────────────────────────────────────────────

class _FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds):
        self.ops.append(("expire", key))

    async def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                results.append(await self.redis.incr(key))
            else:
                results.append(True)
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis the app touches. No expiry."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.store.pop(key, None) is not None
        return removed

    async def keys(self, pattern):
        return [k for k in self.store if fnmatch.fnmatch(k, pattern)]

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def ping(self):
        return True

    def pipeline(self):
        return _FakePipeline(self)


# ── Email ──────────────────────────────────────────────────────────────────────

@dataclass
class SentEmail:
    to: str
    subject: str
    html: str


class FakeEmailSender:
    def __init__(self, fail_for: Optional[set] = None):
        self.sent: List[SentEmail] = []
        self.fail_for = fail_for or set()

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        if to in self.fail_for:
            return EmailResult(success=False, error="provider rejected message")
        self.sent.append(SentEmail(to=to, subject=subject, html=html))
        return EmailResult(success=True)


# ── Row factories ──────────────────────────────────────────────────────────────

async def make_booking(
    db: AsyncSession,
    *,
    court_id: int = 1,
    booking_date: date = date(2026, 2, 25),
    start_time: str = "10:00",
    end_time: Optional[str] = None,
    status: BookingStatus = BookingStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    user: Optional[User] = None,
    guest_name: Optional[str] = None,
    guest_email: Optional[str] = None,
    created_at: datetime = NOW,
    warning_sent: bool = False,
) -> Booking:
    if end_time is None:
        hours, minutes = map(int, start_time.split(":"))
        total = (hours * 60 + minutes + 30) % (24 * 60)
        end_time = f"{total // 60:02d}:{total % 60:02d}"
    booking = Booking(
        court_id=court_id,
        sport=Sport.BADMINTON,
        booking_date=booking_date,
        start_time=start_time,
        end_time=end_time,
        total_amount=Decimal("7.50"),
        status=status,
        payment_status=payment_status,
        user_id=user.id if user else None,
        guest_name=guest_name,
        guest_email=guest_email,
        expiration_warning_sent=warning_sent,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(booking)
    await db.commit()
    return booking


async def make_recurring(
    db: AsyncSession,
    *,
    court_id: int = 1,
    day_of_week: int = 3,
    start_time: str = "10:00",
    end_time: str = "10:30",
    start_date: date = date(2026, 1, 1),
    end_date: Optional[date] = None,
    is_active: bool = True,
    guest_name: str = "Wednesday Club",
) -> RecurringBooking:
    row = RecurringBooking(
        court_id=court_id,
        sport=Sport.BADMINTON,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        start_date=start_date,
        end_date=end_date,
        is_active=is_active,
        guest_name=guest_name,
        guest_phone="+60111111111",
    )
    db.add(row)
    await db.commit()
    return row


async def make_lesson(
    db: AsyncSession,
    *,
    court_id: int = 1,
    lesson_date: date = date(2026, 2, 25),
    start_time: str = "10:00",
    end_time: str = "11:30",
    status: LessonStatus = LessonStatus.SCHEDULED,
) -> LessonSession:
    lesson = LessonSession(
        court_id=court_id,
        lesson_date=lesson_date,
        start_time=start_time,
        end_time=end_time,
        duration=Decimal("1.5"),
        price=Decimal("80.00"),
        status=status,
    )
    db.add(lesson)
    await db.commit()
    return lesson


async def fetch_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()
