"""
services/booking/expiration.py
Deadline rules and the sweep that retires unconfirmed bookings.

Deadline for a PENDING booking:
  - event within SHORT_WINDOW_THRESHOLD_HOURS of now → event − SHORT_WINDOW_HOURS_BEFORE
  - otherwise                                      → created_at + STANDARD_EXPIRATION_HOURS

The sweep may run from Celery beat, the cron endpoint, or right before a
booking is shown. Each booking is its own unit of work; a conditional UPDATE
claims each transition so concurrent sweeps fire side effects once.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from services.notification.dispatch import create_notification
from services.notification.email import (
    EmailSender,
    build_booking_expired_email,
    build_expiration_warning_email,
    get_email_sender,
)
from shared.exceptions import EmailDeliveryError
from shared.models.models import Booking, BookingStatus, Court, NotificationType, User
from shared.utils.time_utils import Clock, facility_datetime, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_LINK = "/profile"


@dataclass
class ExpirationCheckResult:
    expired: List[uuid.UUID] = field(default_factory=list)
    warnings: List[uuid.UUID] = field(default_factory=list)
    errors: List[uuid.UUID] = field(default_factory=list)


@dataclass
class ExpirationInfo:
    expiration_time: datetime
    hours_remaining: float
    is_expired: bool
    will_expire_soon: bool


@dataclass(frozen=True)
class _PendingBooking:
    id: uuid.UUID
    booking_date: date
    start_time: str
    end_time: str
    created_at: datetime
    expiration_warning_sent: bool
    court_name: str
    user_id: Optional[uuid.UUID]
    contact_email: Optional[str]
    contact_name: str


# ── Deadline rules ────────────────────────────────────────────

def booking_datetime(booking_date: date, start_time: str) -> datetime:
    return facility_datetime(booking_date, start_time)


def calculate_expiration_time(
    created_at: datetime, booking_dt: datetime, now: datetime
) -> datetime:
    hours_until_booking = (booking_dt - now).total_seconds() / 3600
    if hours_until_booking <= settings.SHORT_WINDOW_THRESHOLD_HOURS:
        return booking_dt - timedelta(hours=settings.SHORT_WINDOW_HOURS_BEFORE)
    return created_at + timedelta(hours=settings.STANDARD_EXPIRATION_HOURS)


def get_expiration_info(booking: Booking, now: datetime) -> ExpirationInfo:
    """Read-only view of a booking's deadline."""
    expiration_time = calculate_expiration_time(
        booking.created_at, booking_datetime(booking.booking_date, booking.start_time), now
    )
    hours_remaining = (expiration_time - now).total_seconds() / 3600
    return ExpirationInfo(
        expiration_time=expiration_time,
        hours_remaining=max(0.0, hours_remaining),
        is_expired=(
            booking.status == BookingStatus.EXPIRED
            or booking.expired_at is not None
            or now >= expiration_time
        ),
        will_expire_soon=0 < hours_remaining <= settings.WARNING_HOURS_BEFORE,
    )


# ── Sweep ─────────────────────────────────────────────────────

async def _load_pending(
    db: AsyncSession, booking_ids: Optional[List[uuid.UUID]]
) -> List[_PendingBooking]:
    stmt = (
        select(
            Booking.id,
            Booking.booking_date,
            Booking.start_time,
            Booking.end_time,
            Booking.created_at,
            Booking.expiration_warning_sent,
            Booking.user_id,
            Booking.guest_email,
            Booking.guest_name,
            Court.name.label("court_name"),
            User.email.label("user_email"),
            User.name.label("user_name"),
        )
        .join(Court, Booking.court_id == Court.id)
        .outerjoin(User, Booking.user_id == User.id)
        .where(Booking.status == BookingStatus.PENDING, Booking.expired_at.is_(None))
        .order_by(Booking.created_at)
    )
    if booking_ids is not None:
        stmt = stmt.where(Booking.id.in_(booking_ids))

    rows = (await db.execute(stmt)).all()
    return [
        _PendingBooking(
            id=r.id,
            booking_date=r.booking_date,
            start_time=r.start_time,
            end_time=r.end_time,
            created_at=r.created_at,
            expiration_warning_sent=r.expiration_warning_sent,
            court_name=r.court_name,
            user_id=r.user_id,
            contact_email=r.user_email or r.guest_email,
            contact_name=r.user_name or r.guest_name or "Customer",
        )
        for r in rows
    ]


def _pretty_date(b: _PendingBooking) -> str:
    return b.booking_date.strftime("%A, %d %b %Y")


async def _send(sender: EmailSender, to: str, subject: str, html: str) -> None:
    result = await sender.send(to, subject, html)
    if not result.success:
        raise EmailDeliveryError(to, result.error or "unknown error")


async def _expire(db: AsyncSession, b: _PendingBooking, now: datetime) -> bool:
    claimed = await db.execute(
        update(Booking)
        .where(
            Booking.id == b.id,
            Booking.status == BookingStatus.PENDING,
            Booking.expired_at.is_(None),
        )
        .values(status=BookingStatus.EXPIRED, expired_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False

    if b.user_id:
        create_notification(
            db,
            user_id=b.user_id,
            type=NotificationType.BOOKING_EXPIRED,
            title="Booking Expired",
            message=(
                f"Your booking for {b.court_name} on {_pretty_date(b)} at {b.start_time} "
                f"has expired as it was not confirmed in time."
            ),
            link=NOTIFICATION_LINK,
            booking_id=b.id,
            created_at=now,
        )
    return True


async def _send_expired_email(sender: Optional[EmailSender], b: _PendingBooking) -> None:
    """Runs after the expiry is committed; a failed send never revives the booking."""
    if not sender or not b.contact_email:
        return
    subject, html = build_booking_expired_email(
        user_name=b.contact_name,
        booking_date=_pretty_date(b),
        booking_time=f"{b.start_time} - {b.end_time}",
        court_name=b.court_name,
    )
    await _send(sender, b.contact_email, subject, html)


async def _warn(
    db: AsyncSession,
    b: _PendingBooking,
    now: datetime,
    hours_until_expiration: float,
    sender: Optional[EmailSender],
) -> bool:
    claimed = await db.execute(
        update(Booking)
        .where(
            Booking.id == b.id,
            Booking.status == BookingStatus.PENDING,
            Booking.expiration_warning_sent.is_(False),
        )
        .values(expiration_warning_sent=True, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False

    hours_remaining = math.ceil(hours_until_expiration)
    pretty_date = _pretty_date(b)
    if sender and b.contact_email:
        subject, html = build_expiration_warning_email(
            user_name=b.contact_name,
            booking_date=pretty_date,
            booking_time=f"{b.start_time} - {b.end_time}",
            court_name=b.court_name,
            hours_remaining=hours_remaining,
        )
        await _send(sender, b.contact_email, subject, html)

    if b.user_id:
        create_notification(
            db,
            user_id=b.user_id,
            type=NotificationType.BOOKING_WARNING,
            title="Booking Confirmation Pending",
            message=(
                f"Your booking for {b.court_name} on {pretty_date} at {b.start_time} "
                f"will expire in {hours_remaining} hours if not confirmed."
            ),
            link=NOTIFICATION_LINK,
            booking_id=b.id,
            created_at=now,
        )
    return True


async def check_and_expire_bookings(
    db: AsyncSession,
    *,
    send_emails: bool = True,
    booking_ids: Optional[Iterable[uuid.UUID]] = None,
    clock: Clock = utcnow,
    email_sender: Optional[EmailSender] = None,
) -> ExpirationCheckResult:
    """
    Expire or warn every PENDING booking (optionally only `booking_ids`).

    Commits after each booking. A failure rolls back that booking only,
    records its id in `errors`, and the sweep moves on. Expiry is committed
    before the notice email goes out, so an undelivered notice lands the id
    in both `expired` and `errors` while the slot is already free. A failed
    warning email rolls the warning back and it is retried next sweep.
    """
    result = ExpirationCheckResult()
    ids = list(booking_ids) if booking_ids is not None else None
    if ids is not None and not ids:
        return result

    now = clock()
    sender = (email_sender or get_email_sender()) if send_emails else None
    pending = await _load_pending(db, ids)

    for b in pending:
        try:
            deadline = calculate_expiration_time(
                b.created_at, booking_datetime(b.booking_date, b.start_time), now
            )
            hours_until_expiration = (deadline - now).total_seconds() / 3600

            if now >= deadline:
                if not await _expire(db, b, now):
                    await db.rollback()
                    continue
                await db.commit()
                result.expired.append(b.id)
                logger.info(f"Booking {b.id} expired (deadline {deadline.isoformat()})")
                try:
                    await _send_expired_email(sender, b)
                except EmailDeliveryError as e:
                    logger.warning(f"Booking {b.id} expired but the notice was not delivered: {e}")
                    result.errors.append(b.id)
            elif (
                0 < hours_until_expiration <= settings.WARNING_HOURS_BEFORE
                and not b.expiration_warning_sent
            ):
                if await _warn(db, b, now, hours_until_expiration, sender):
                    await db.commit()
                    result.warnings.append(b.id)
                    logger.info(
                        f"Booking {b.id} warned, {hours_until_expiration:.1f}h until expiry"
                    )
                else:
                    await db.rollback()
        except Exception:
            await db.rollback()
            logger.exception(f"Error processing booking {b.id} during expiration sweep")
            result.errors.append(b.id)

    if result.expired or result.warnings or result.errors:
        logger.info(
            f"Expiration sweep: {len(result.expired)} expired, "
            f"{len(result.warnings)} warned, {len(result.errors)} errors"
        )
    return result
