"""
shared/models/models.py
All SQLAlchemy ORM models for the court booking engine.
UUID primary keys for reservations, integer ids for reference data.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config.database import Base
from shared.models.types import UTCDateTime
from shared.utils.time_utils import utcnow


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    USER = "USER"
    ADMIN = "ADMIN"


class Sport(str, PyEnum):
    BADMINTON = "BADMINTON"
    PICKLEBALL = "PICKLEBALL"


class BookingStatus(str, PyEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Statuses that hold a slot
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class PaymentStatus(str, PyEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class RecurringStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class LessonStatus(str, PyEnum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class NotificationType(str, PyEnum):
    BOOKING_WARNING = "BOOKING_WARNING"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )


# ── Reference Data ────────────────────────────────────────────

class User(TimestampMixin, Base):
    """Registered account. Authentication lives upstream; this is the contact record."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), nullable=False, default=UserRole.USER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="user")
    notifications: Mapped[List["Notification"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class Court(Base):
    """Physical court. Deactivated, never deleted."""
    __tablename__ = "courts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Overrides the default sport rate when set
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Court {self.id} {self.name}>"


class TimeSlot(Base):
    """Canonical 30-minute grid entry. Seeded from services.slots.catalog."""
    __tablename__ = "time_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slot_time: Mapped[str] = mapped_column(String(5), unique=True, nullable=False)  # "09:30"
    display_name: Mapped[str] = mapped_column(String(20), nullable=False)          # "9:30 AM"


# ── Reservations ──────────────────────────────────────────────

class Booking(TimestampMixin, Base):
    """
    Ad-hoc single-slot reservation.
    Status transitions: PENDING → CONFIRMED | EXPIRED | CANCELLED, CONFIRMED → CANCELLED.
    """
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id"), nullable=False)
    sport: Mapped[Sport] = mapped_column(Enum(Sport), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    expired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expiration_warning_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Identity: registered user OR guest contact
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    user: Mapped[Optional["User"]] = relationship(back_populates="bookings")
    court: Mapped["Court"] = relationship()

    __table_args__ = (
        # Last-resort race closer: one live booking per court/date/slot
        Index(
            "uq_bookings_active_slot",
            "court_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'CONFIRMED')"),
            sqlite_where=text("status IN ('PENDING', 'CONFIRMED')"),
        ),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_user_id", "user_id"),
        Index("ix_bookings_court_date", "court_id", "booking_date"),
    )


class RecurringBooking(TimestampMixin, Base):
    """
    Weekly template, one row per 30-minute slot.
    Contiguous rows with the same identity/court/day form one logical booking.
    """
    __tablename__ = "recurring_bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id"), nullable=False)
    sport: Mapped[Sport] = mapped_column(Enum(Sport), nullable=False)
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 0 = Sunday
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # None = open-ended
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    court: Mapped["Court"] = relationship()

    @property
    def status(self) -> RecurringStatus:
        return RecurringStatus.ACTIVE if self.is_active else RecurringStatus.INACTIVE

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_recurring_day_of_week"),
        Index("ix_recurring_court_day_slot", "court_id", "day_of_week", "start_time"),
    )


class LessonSession(TimestampMixin, Base):
    """Coaching session. Blocks its whole [start_time, end_time) range."""
    __tablename__ = "lesson_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id"), nullable=False)
    lesson_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[Decimal] = mapped_column(Numeric(4, 1), nullable=False)  # hours
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[LessonStatus] = mapped_column(
        Enum(LessonStatus), nullable=False, default=LessonStatus.SCHEDULED
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    court: Mapped["Court"] = relationship()

    __table_args__ = (Index("ix_lessons_court_date", "court_id", "lesson_date"),)


# ── Identifiers ───────────────────────────────────────────────

class JobCodeCounter(Base):
    """Last issued job-code counter per (year, month). Facility-local calendar."""
    __tablename__ = "job_code_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("year", "month", name="uq_job_code_counter_month"),)


# ── Notifications ─────────────────────────────────────────────

class Notification(Base):
    """In-app notification for registered users."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="notifications")

    __table_args__ = (Index("ix_notifications_user_id_read", "user_id", "is_read"),)
