"""
tests/test_admin.py
Tests for admin and scheduler endpoints: payment confirmation,
the cron-triggered expiration sweep, job codes, access control.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import BookingStatus, PaymentStatus, User
from tests.helpers import NOW, FakeEmailSender, FrozenClock, fetch_booking, make_booking, user_headers

CRON = {"Authorization": "Bearer test-cron-secret"}


# ── Access Control ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_user_cannot_access_admin_endpoints(client: AsyncClient, user: User):
    """Regular users get 403 on admin endpoints."""
    response = await client.post("/admin/job-codes", headers=user_headers(user))
    assert response.status_code == 403

    response = await client.patch(
        "/admin/bookings/confirm-payment",
        headers=user_headers(user),
        json={"booking_ids": ["00000000-0000-0000-0000-000000000000"]},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unauthenticated_cannot_access_admin(client: AsyncClient):
    response = await client.post("/admin/job-codes")
    assert response.status_code == 401


# ── Payment Confirmation ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_confirm_payment(client: AsyncClient, db: AsyncSession, admin_user: User):
    """Pending and counter bookings become CONFIRMED + PAID; cancelled ones are untouched."""
    pending = await make_booking(db, start_time="10:00")
    counter = await make_booking(db, start_time="10:30", status=BookingStatus.CONFIRMED)
    cancelled = await make_booking(db, start_time="11:00", status=BookingStatus.CANCELLED)

    response = await client.patch(
        "/admin/bookings/confirm-payment",
        headers=user_headers(admin_user),
        json={"booking_ids": [str(pending.id), str(counter.id), str(cancelled.id)]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["updated"] == 2
    assert set(data["booking_ids"]) == {str(pending.id), str(counter.id)}

    for booking_id in (pending.id, counter.id):
        stored = await fetch_booking(db, booking_id)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.payment_status == PaymentStatus.PAID
    assert (await fetch_booking(db, cancelled.id)).status == BookingStatus.CANCELLED


@pytest.mark.asyncio
async def test_confirmed_booking_is_never_expired(
    client: AsyncClient, db: AsyncSession, admin_user: User, clock: FrozenClock
):
    booking = await make_booking(db, booking_date=date(2026, 2, 25))
    await client.patch(
        "/admin/bookings/confirm-payment",
        headers=user_headers(admin_user),
        json={"booking_ids": [str(booking.id)]},
    )
    clock.advance(days=3)

    response = await client.post("/admin/expire-bookings", headers=CRON)

    assert response.json()["expired"] == []
    assert (await fetch_booking(db, booking.id)).status == BookingStatus.CONFIRMED


# ── Expiration Sweep ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_expire_endpoint_requires_cron_secret(client: AsyncClient):
    assert (await client.post("/admin/expire-bookings")).status_code == 401
    response = await client.post(
        "/admin/expire-bookings", headers={"Authorization": "Bearer wrong"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expire_endpoint_runs_sweep(
    client: AsyncClient,
    db: AsyncSession,
    user: User,
    clock: FrozenClock,
    fake_email: FakeEmailSender,
):
    overdue = await make_booking(db, booking_date=date(2026, 2, 25), user=user)
    fresh = await make_booking(
        db, booking_date=date(2026, 3, 10), start_time="10:30", created_at=NOW + timedelta(hours=40)
    )
    clock.advance(hours=48)

    response = await client.post("/admin/expire-bookings", headers=CRON)

    assert response.status_code == 200
    data = response.json()
    assert data["expired"] == [str(overdue.id)]
    assert data["warnings"] == []
    assert (await fetch_booking(db, fresh.id)).status == BookingStatus.PENDING
    assert data["errors"] == []
    assert len(fake_email.sent) == 1

    notifications = await client.get("/notifications", headers=user_headers(user))
    assert [n["type"] for n in notifications.json()] == ["BOOKING_EXPIRED"]


@pytest.mark.asyncio
async def test_expire_endpoint_without_emails(
    client: AsyncClient, db: AsyncSession, user: User, clock: FrozenClock, fake_email: FakeEmailSender
):
    await make_booking(db, booking_date=date(2026, 2, 25), user=user)
    clock.advance(hours=48)

    response = await client.post(
        "/admin/expire-bookings", headers=CRON, params={"send_emails": False}
    )

    assert len(response.json()["expired"]) == 1
    assert fake_email.sent == []


# ── Job Codes ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_issue_job_codes(client: AsyncClient, admin_user: User):
    first = await client.post("/admin/job-codes", headers=user_headers(admin_user))
    second = await client.post("/admin/job-codes", headers=user_headers(admin_user))

    assert first.status_code == 200
    assert first.json() == {"job_code": "FEB-001-2026"}
    assert second.json() == {"job_code": "FEB-002-2026"}
