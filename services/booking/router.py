"""
services/booking/router.py
Ad-hoc booking lifecycle.
States: PENDING → CONFIRMED | EXPIRED | CANCELLED, CONFIRMED → CANCELLED
"""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking.allocator import BookingIdentity, allocate_bookings, select_initial_status
from services.booking.conflicts import SlotRequest, check_slot_requests
from services.booking.expiration import (
    booking_datetime,
    check_and_expire_bookings,
    get_expiration_info,
)
from services.notification.email import EmailSender, get_email_sender
from shared.exceptions import ForbiddenError, NotFoundError, SlotConflict, ValidationError
from shared.middleware.auth import get_current_user, get_optional_user
from shared.models.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    PaymentStatus,
    User,
    UserRole,
)
from shared.schemas.schemas import (
    BookingCreateRequest,
    BookingCreateResponse,
    BookingDetailResponse,
    BookingResponse,
    ExpirationInfoResponse,
    MessageResponse,
)
from shared.utils.time_utils import Clock, get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ── Helpers ───────────────────────────────────────────────────

async def _get_booking_or_404(booking_id: UUID, db: AsyncSession) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
    return booking


def _check_owner(booking: Booking, user: User) -> None:
    if user.role != UserRole.ADMIN and booking.user_id != user.id:
        raise ForbiddenError("Not your booking", code="NOT_BOOKING_OWNER")


def _resolve_identity(payload: BookingCreateRequest, user: Optional[User]) -> BookingIdentity:
    """Who the booking is for, and which starting status applies."""
    if payload.is_guest_booking or payload.pay_at_counter:
        name = (payload.guest_name or "").strip() or (user.name if user else None)
        if not name:
            raise ValidationError("Name is required for bookings", code="MISSING_NAME")
        phone = (payload.guest_phone or "").strip() or None
        if not phone and not user:
            raise ValidationError(
                "Phone number is required for guest bookings", code="MISSING_PHONE"
            )
        return BookingIdentity(
            user_id=user.id if user else None,
            guest_name=name,
            guest_phone=phone,
            guest_email=payload.guest_email or (user.email if user else None),
        )

    if payload.is_test_booking:
        if not user:
            raise ForbiddenError("Authentication required", code="AUTH_REQUIRED")
        if user.role != UserRole.ADMIN:
            raise ForbiddenError("Only admins can create test bookings", code="ADMIN_ONLY")
        return BookingIdentity(user_id=user.id)

    if not user:
        raise ForbiddenError("Please log in or book as a guest", code="AUTH_REQUIRED")
    return BookingIdentity(user_id=user.id)


# ── Creation ──────────────────────────────────────────────────

@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreateRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Book one or more 30-minute slots on one date.
    The advisory conflict check gives a fast answer; the allocator re-checks
    atomically before writing.
    """
    identity = _resolve_identity(payload, user)
    booking_status, payment_status = select_initial_status(
        pay_at_counter=payload.pay_at_counter,
        is_test_booking=payload.is_test_booking and not payload.is_guest_booking,
    )

    now = clock()
    requests = [
        SlotRequest(court_id=s.court_id, date=payload.date, start_time=s.slot_time)
        for s in payload.slots
    ]
    for req in requests:
        if booking_datetime(req.date, req.start_time) <= now:
            raise ValidationError("Cannot book slots in the past", code="SLOT_IN_PAST")

    report = await check_slot_requests(db, requests)
    if not report.ok:
        raise SlotConflict(
            "One or more slots are no longer available", conflicts=report.to_details()
        )

    bookings = await allocate_bookings(
        db,
        requests,
        sport=payload.sport,
        identity=identity,
        status=booking_status,
        payment_status=payment_status,
        clock=clock,
    )
    return BookingCreateResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        booking_ids=[b.id for b in bookings],
        count=len(bookings),
    )


# ── Queries ───────────────────────────────────────────────────

@router.get("", response_model=list[BookingResponse])
async def list_my_bookings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == current_user.id)
        .order_by(Booking.booking_date.desc(), Booking.start_time.asc())
    )
    return result.scalars().all()


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Runs a sweep scoped to this booking first so the status shown is current."""
    booking = await _get_booking_or_404(booking_id, db)
    _check_owner(booking, current_user)

    if booking.status == BookingStatus.PENDING:
        await check_and_expire_bookings(
            db, booking_ids=[booking.id], clock=clock, email_sender=email_sender
        )
        booking = await _get_booking_or_404(booking_id, db)

    expiration = None
    if booking.status == BookingStatus.PENDING:
        info = get_expiration_info(booking, clock())
        expiration = ExpirationInfoResponse(
            expiration_time=info.expiration_time,
            hours_remaining=info.hours_remaining,
            is_expired=info.is_expired,
            will_expire_soon=info.will_expire_soon,
        )

    return BookingDetailResponse(
        booking=BookingResponse.model_validate(booking), expiration=expiration
    )


# ── Cancellation ──────────────────────────────────────────────

@router.post("/{booking_id}/cancel", response_model=MessageResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Owners may cancel up to CANCELLATION_MIN_HOURS_BEFORE hours before play."""
    booking = await _get_booking_or_404(booking_id, db)
    if booking.user_id != current_user.id:
        raise ForbiddenError("Not your booking", code="NOT_BOOKING_OWNER")

    if booking.status not in ACTIVE_BOOKING_STATUSES:
        raise ValidationError(
            f"Booking is already {booking.status.value.lower()}", code="INVALID_STATUS"
        )

    now = clock()
    starts_at = booking_datetime(booking.booking_date, booking.start_time)
    if starts_at - now < timedelta(hours=settings.CANCELLATION_MIN_HOURS_BEFORE):
        raise ValidationError(
            f"Cannot cancel bookings within {settings.CANCELLATION_MIN_HOURS_BEFORE} hours of start time",
            code="CANCELLATION_WINDOW_CLOSED",
        )

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = now
    if booking.payment_status == PaymentStatus.PAID:
        booking.payment_status = PaymentStatus.REFUNDED
    await db.commit()

    logger.info(f"Booking {booking.id} cancelled by {current_user.id}")
    return MessageResponse(message="Booking cancelled")
