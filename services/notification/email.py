"""
services/notification/email.py
Transactional email via Resend, guarded by a circuit breaker.

Missing API key → the send is skipped and logged, not failed.
Repeated provider failures open the breaker; sends then fail fast
until the reset timeout passes.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol, Tuple

import pybreaker
import resend

from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    success: bool
    skipped: bool = False
    error: Optional[str] = None


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        ...


class _BreakerLogger(pybreaker.CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state):
        logger.warning(
            f"Circuit breaker '{cb.name}' {getattr(old_state, 'name', old_state)} → {new_state.name}"
        )


class ResendEmailSender:
    """EmailSender backed by the Resend API. The SDK is synchronous, so calls run in a thread."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        breaker: Optional[pybreaker.CircuitBreaker] = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.breaker = breaker or pybreaker.CircuitBreaker(
            fail_max=settings.EMAIL_BREAKER_FAIL_MAX,
            reset_timeout=settings.EMAIL_BREAKER_RESET_TIMEOUT,
            listeners=[_BreakerLogger()],
            name="resend",
        )

    def _deliver(self, to: str, subject: str, html: str) -> None:
        resend.api_key = self.api_key
        resend.Emails.send({
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        })

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        if not self.api_key:
            logger.warning(f"Email provider not configured - would send to {to}: {subject}")
            return EmailResult(success=True, skipped=True)

        try:
            await asyncio.to_thread(self.breaker.call, self._deliver, to, subject, html)
        except pybreaker.CircuitBreakerError:
            logger.error(f"Email to {to} not attempted: circuit breaker open")
            return EmailResult(success=False, error="circuit breaker open")
        except Exception as e:
            logger.error(f"Email to {to} failed: {e}")
            return EmailResult(success=False, error=str(e))

        logger.info(f"Email sent to {to}: {subject}")
        return EmailResult(success=True)


@lru_cache()
def _default_sender() -> ResendEmailSender:
    return ResendEmailSender(
        api_key=settings.RESEND_API_KEY,
        from_address=f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
    )


def get_email_sender() -> EmailSender:
    """FastAPI dependency. One sender (and breaker) per process."""
    return _default_sender()


# ── Templates ─────────────────────────────────────────────────

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
    <div style="background: #3b82f6; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0;">{facility}</h1>
    </div>
    <div style="background: #f9fafb; padding: 20px; border-radius: 0 0 8px 8px;">
        <p>Hi {user_name},</p>
        <div style="background: {banner_bg}; border-left: 4px solid {banner_border}; padding: 15px; margin: 15px 0;">
            <strong>{banner}</strong>
        </div>
        <p>{intro}</p>
        <div style="background: white; padding: 15px; border-radius: 8px; margin: 15px 0;">
            <p><strong>Court:</strong> {court_name}</p>
            <p><strong>Date:</strong> {booking_date}</p>
            <p><strong>Time:</strong> {booking_time}</p>
        </div>
        <p style="text-align: center; margin: 20px 0;">
            <a href="{link}" style="background: #3b82f6; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">{cta}</a>
        </p>
    </div>
</div>
"""


def build_expiration_warning_email(
    user_name: str,
    booking_date: str,
    booking_time: str,
    court_name: str,
    hours_remaining: int,
) -> Tuple[str, str]:
    subject = f"Action Required: Your booking will expire in {hours_remaining} hours"
    html = _LAYOUT.format(
        facility=settings.EMAIL_FROM_NAME,
        user_name=user_name,
        banner_bg="#fef3c7",
        banner_border="#f59e0b",
        banner=f"Your booking is awaiting confirmation and will expire in {hours_remaining} hours.",
        intro="Your booking details:",
        court_name=court_name,
        booking_date=booking_date,
        booking_time=booking_time,
        link=f"{settings.FRONTEND_URL}/profile",
        cta="Complete Payment",
    )
    return subject, html


def build_booking_expired_email(
    user_name: str,
    booking_date: str,
    booking_time: str,
    court_name: str,
) -> Tuple[str, str]:
    subject = f"Your booking has expired - {settings.EMAIL_FROM_NAME}"
    html = _LAYOUT.format(
        facility=settings.EMAIL_FROM_NAME,
        user_name=user_name,
        banner_bg="#fee2e2",
        banner_border="#ef4444",
        banner="Your booking has expired as it was not confirmed in time.",
        intro="The following booking has been cancelled:",
        court_name=court_name,
        booking_date=booking_date,
        booking_time=booking_time,
        link=f"{settings.FRONTEND_URL}/booking",
        cta="Book Again",
    )
    return subject, html
