"""
tasks/booking_tasks.py
Celery tasks for booking housekeeping.

The sweep itself is async; each task run gets its own event loop and a
NullPool engine so no connection outlives the loop that opened it.
"""

import asyncio
import logging

from config.database import create_worker_sessionmaker
from services.booking.expiration import check_and_expire_bookings
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_sweep(send_emails: bool) -> dict:
    engine, session_factory = create_worker_sessionmaker()
    try:
        async with session_factory() as db:
            result = await check_and_expire_bookings(db, send_emails=send_emails)
    finally:
        await engine.dispose()
    return {
        "expired": [str(i) for i in result.expired],
        "warnings": [str(i) for i in result.warnings],
        "errors": [str(i) for i in result.errors],
    }


@celery_app.task(name="tasks.booking_tasks.expire_pending_bookings", ignore_result=False)
def expire_pending_bookings(send_emails: bool = True) -> dict:
    """Periodic: expire overdue PENDING bookings and warn those close to their deadline."""
    summary = asyncio.run(_run_sweep(send_emails))
    logger.info(
        f"Expiration sweep done: {len(summary['expired'])} expired, "
        f"{len(summary['warnings'])} warned, {len(summary['errors'])} errors"
    )
    return summary
