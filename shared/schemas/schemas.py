"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the booking engine.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from shared.exceptions import InvalidTimeFormat
from shared.utils.time_utils import to_minutes


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class MessageResponse(BaseSchema):
    message: str
    success: bool = True


def _check_hhmm(value: str) -> str:
    try:
        to_minutes(value)
    except InvalidTimeFormat as e:
        raise ValueError(e.message)
    return value


# ── Catalog / Availability ────────────────────────────────────

class CourtResponse(BaseSchema):
    id: int
    name: str
    hourly_rate: Optional[Decimal] = None


class TimeSlotResponse(BaseSchema):
    slot_time: str
    display_name: str


class SlotAvailability(BaseSchema):
    slot_time: str
    display_name: str
    available: bool
    held_by: Optional[str] = None   # BOOKING | RECURRING | LESSON


class CourtAvailability(BaseSchema):
    court: CourtResponse
    slots: List[SlotAvailability]


class AvailabilityResponse(BaseSchema):
    date: date
    courts: List[CourtAvailability]


# ── Bookings ──────────────────────────────────────────────────

class SlotSelection(BaseSchema):
    court_id: int
    slot_time: str

    @field_validator("slot_time")
    @classmethod
    def validate_slot_time(cls, v: str) -> str:
        return _check_hhmm(v)


class BookingCreateRequest(BaseSchema):
    date: date
    sport: str
    slots: List[SlotSelection] = Field(..., min_length=1)

    is_guest_booking: bool = False
    pay_at_counter: bool = False
    is_test_booking: bool = False

    guest_name: Optional[str] = Field(None, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_email: Optional[EmailStr] = None


class BookingResponse(BaseSchema):
    id: uuid.UUID
    court_id: int
    sport: str
    booking_date: date
    start_time: str
    end_time: str
    total_amount: Decimal
    status: str
    payment_status: str
    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    expiration_warning_sent: bool
    expired_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime


class BookingCreateResponse(BaseSchema):
    message: str = "Booking created successfully"
    bookings: List[BookingResponse]
    booking_ids: List[uuid.UUID]
    count: int


class ExpirationInfoResponse(BaseSchema):
    expiration_time: datetime
    hours_remaining: float
    is_expired: bool
    will_expire_soon: bool


class BookingDetailResponse(BaseSchema):
    booking: BookingResponse
    expiration: Optional[ExpirationInfoResponse] = None


class ConfirmPaymentRequest(BaseSchema):
    booking_ids: List[uuid.UUID] = Field(..., min_length=1)


class ConfirmPaymentResponse(BaseSchema):
    updated: int
    booking_ids: List[uuid.UUID]


class ExpirationCheckResponse(BaseSchema):
    expired: List[uuid.UUID]
    warnings: List[uuid.UUID]
    errors: List[uuid.UUID]


# ── Recurring ─────────────────────────────────────────────────

class RecurringCreateRequest(BaseSchema):
    court_ids: List[int] = Field(..., min_length=1)
    days_of_week: List[int] = Field(..., min_length=1)
    sport: str
    start_time: str
    end_time: Optional[str] = None          # default: one slot
    start_date: Optional[date] = None       # default: today
    end_date: Optional[date] = None         # None = open-ended
    label: Optional[str] = Field(None, max_length=100)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)

    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = Field(None, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=20)

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days_of_week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_hhmm(v)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringRowResponse(BaseSchema):
    id: uuid.UUID
    court_id: int
    sport: str
    day_of_week: int
    start_time: str
    end_time: str
    start_date: date
    end_date: Optional[date] = None
    status: str
    hourly_rate: Optional[Decimal] = None
    label: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None


class RecurringCreateResponse(BaseSchema):
    count: int
    conflicts: List[str] = []
    recurring_bookings: List[RecurringRowResponse]


class RecurringGroupResponse(BaseSchema):
    slot_ids: List[uuid.UUID]
    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    day_of_week: int
    court_id: int
    court_name: Optional[str] = None
    sport: str
    start_time: str
    end_time: str
    duration: Decimal
    label: Optional[str] = None
    is_active: bool
    hourly_rate: Optional[Decimal] = None
    start_date: date
    end_date: Optional[date] = None
    amount_per_session: Decimal


class RecurringUpdateRequest(BaseSchema):
    """Partial edit of one recurring row. Omitted fields are left as they are."""
    id: uuid.UUID
    court_id: Optional[int] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None          # must match the slot's own end
    end_date: Optional[date] = None
    label: Optional[str] = Field(None, max_length=100)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)

    user_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = Field(None, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=20)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_hhmm(v)

    @model_validator(mode="after")
    def reject_null_placement(self):
        for name in ("court_id", "day_of_week", "start_time"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"id"})


class RecurringDeactivateRequest(BaseSchema):
    ids: List[uuid.UUID] = Field(..., min_length=1)


class RecurringDeactivateResponse(BaseSchema):
    deactivated: int


# ── Lessons ───────────────────────────────────────────────────

class LessonCreateRequest(BaseSchema):
    court_id: int
    lesson_date: date
    start_time: str
    end_time: str
    price: Decimal = Field(..., ge=0)
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str) -> str:
        return _check_hhmm(v)


class LessonResponse(BaseSchema):
    id: uuid.UUID
    court_id: int
    lesson_date: date
    start_time: str
    end_time: str
    duration: Decimal
    price: Decimal
    status: str
    notes: Optional[str] = None


# ── Job codes ─────────────────────────────────────────────────

class JobCodeResponse(BaseSchema):
    job_code: str


# ── Notifications ─────────────────────────────────────────────

class NotificationResponse(BaseSchema):
    id: uuid.UUID
    booking_id: Optional[uuid.UUID] = None
    type: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class UnreadCountResponse(BaseSchema):
    count: int
