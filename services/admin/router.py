"""
services/admin/router.py
Admin and scheduler endpoints: payment confirmation, expiration sweep, job codes.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import AsyncSessionLocal, get_db
from services.booking.expiration import check_and_expire_bookings
from services.job_code.generator import JobCodeGenerator, sql_counter_increment
from services.notification.email import EmailSender, get_email_sender
from shared.middleware.auth import require_admin, verify_cron_secret
from shared.models.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    PaymentStatus,
    User,
)
from shared.schemas.schemas import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    ExpirationCheckResponse,
    JobCodeResponse,
)
from shared.utils.time_utils import Clock, get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_job_code_generator(clock: Clock = Depends(get_clock)) -> JobCodeGenerator:
    return JobCodeGenerator(sql_counter_increment(AsyncSessionLocal), clock=clock)


# ── Payments ──────────────────────────────────────────────────

@router.patch("/bookings/confirm-payment", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    payload: ConfirmPaymentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Mark payment received: payment PENDING → PAID, status → CONFIRMED."""
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id.in_(payload.booking_ids),
            Booking.payment_status == PaymentStatus.PENDING,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .values(
            payment_status=PaymentStatus.PAID,
            status=BookingStatus.CONFIRMED,
            updated_at=clock(),
        )
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    confirmed = list(result.scalars().all())
    await db.commit()

    logger.info(f"Admin {admin.id} confirmed payment for {len(confirmed)} booking(s)")
    return ConfirmPaymentResponse(updated=len(confirmed), booking_ids=confirmed)


# ── Scheduler ─────────────────────────────────────────────────

@router.post(
    "/expire-bookings",
    response_model=ExpirationCheckResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def expire_bookings(
    send_emails: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Run the expiration sweep. Called by an external scheduler."""
    result = await check_and_expire_bookings(
        db, send_emails=send_emails, clock=clock, email_sender=email_sender
    )
    return ExpirationCheckResponse(
        expired=result.expired, warnings=result.warnings, errors=result.errors
    )


# ── Job codes ─────────────────────────────────────────────────

@router.post("/job-codes", response_model=JobCodeResponse)
async def issue_job_code(
    admin: User = Depends(require_admin),
    generator: JobCodeGenerator = Depends(get_job_code_generator),
):
    return JobCodeResponse(job_code=await generator.generate())
