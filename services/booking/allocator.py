"""
services/booking/allocator.py
Atomic creation of ad-hoc bookings.

All requested slots are committed together or not at all. Conflicts are
re-checked inside the transaction; the partial unique index on
(court_id, booking_date, start_time) catches writers that race past it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.booking.conflicts import SlotRequest, check_slot_requests
from services.pricing.pricing import calculate_booking_amount, parse_sport
from services.slots.catalog import is_valid_slot, slot_end_time
from shared.exceptions import NotFoundError, SlotConflict, StorageConflict, ValidationError
from shared.models.models import Booking, BookingStatus, Court, PaymentStatus, Sport
from shared.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingIdentity:
    """Registered user, guest contact, or both (logged-in guest checkout)."""
    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.user_id is None and not self.guest_name


def select_initial_status(
    *,
    pay_at_counter: bool = False,
    is_test_booking: bool = False,
) -> Tuple[BookingStatus, PaymentStatus]:
    """
    Starting (status, payment_status) for a new booking.
      counter / QR payment      → CONFIRMED, PENDING
      admin test booking        → CONFIRMED, PAID
      regular online booking    → PENDING, PENDING  (subject to expiry)
    """
    if pay_at_counter:
        return BookingStatus.CONFIRMED, PaymentStatus.PENDING
    if is_test_booking:
        return BookingStatus.CONFIRMED, PaymentStatus.PAID
    return BookingStatus.PENDING, PaymentStatus.PENDING


async def allocate_bookings(
    db: AsyncSession,
    requests: Sequence[SlotRequest],
    *,
    sport: Union[str, Sport],
    identity: BookingIdentity,
    status: BookingStatus = BookingStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    clock: Clock = utcnow,
) -> List[Booking]:
    """
    Create one Booking per request in a single transaction.

    Raises SlotConflict (naming every colliding request) when any slot is held,
    StorageConflict when the unique index fires. Nothing is persisted on failure.
    """
    if not requests:
        raise ValidationError("No slots selected", code="NO_SLOTS")
    if identity.is_empty:
        raise ValidationError("A user or guest name is required", code="MISSING_IDENTITY")

    sport_ = parse_sport(sport)
    seen = set()
    for req in requests:
        if not is_valid_slot(req.start_time):
            raise ValidationError(f"{req.start_time} is not a bookable slot", code="INVALID_SLOT")
        key = (req.court_id, req.date, req.start_time)
        if key in seen:
            raise ValidationError(
                f"Duplicate slot: court {req.court_id}, {req.date}, {req.start_time}",
                code="DUPLICATE_SLOT",
            )
        seen.add(key)

    try:
        # Row locks serialize writers per court on PostgreSQL
        result = await db.execute(
            select(Court)
            .where(Court.id.in_({r.court_id for r in requests}))
            .order_by(Court.id)
            .with_for_update()
        )
        courts = {c.id: c for c in result.scalars().all()}
        for req in requests:
            court = courts.get(req.court_id)
            if court is None or not court.is_active:
                raise NotFoundError(f"Court {req.court_id} not found", code="COURT_NOT_FOUND")

        report = await check_slot_requests(db, requests)
        if not report.ok:
            described = ", ".join(c.describe() for c in report.conflicts)
            raise SlotConflict(
                f"Slots no longer available: {described}", conflicts=report.to_details()
            )

        now = clock()
        bookings = []
        for req in requests:
            court = courts[req.court_id]
            end_time = slot_end_time(req.start_time)
            bookings.append(
                Booking(
                    court_id=req.court_id,
                    sport=sport_,
                    booking_date=req.date,
                    start_time=req.start_time,
                    end_time=end_time,
                    total_amount=calculate_booking_amount(
                        req.start_time, end_time, sport_, court.hourly_rate
                    ),
                    status=status,
                    payment_status=payment_status,
                    user_id=identity.user_id,
                    guest_name=identity.guest_name,
                    guest_phone=identity.guest_phone,
                    guest_email=identity.guest_email,
                    expiration_warning_sent=False,
                    expired_at=None,
                    cancelled_at=None,
                    created_at=now,
                    updated_at=now,
                )
            )
        db.add_all(bookings)
        await db.flush()
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Unique slot index rejected allocation: {e.orig}")
        raise StorageConflict() from e
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Allocated {len(bookings)} booking(s) "
        f"[{', '.join(f'{b.court_id}/{b.booking_date}/{b.start_time}' for b in bookings)}] "
        f"status={status.value}"
    )
    return bookings
