"""
services/recurring/grouping.py
Rebuild logical recurring bookings from their 30-minute rows.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from services.pricing.pricing import calculate_booking_amount, calculate_hours
from shared.models.models import RecurringBooking, Sport

UNKNOWN_IDENTITY = "unknown"


@dataclass
class RecurringGroup:
    slot_ids: List[uuid.UUID]
    user_id: Optional[uuid.UUID]
    guest_name: Optional[str]
    guest_phone: Optional[str]
    day_of_week: int
    court_id: int
    court_name: Optional[str]
    sport: Sport
    start_time: str
    end_time: str
    duration: Decimal
    label: Optional[str]
    is_active: bool
    hourly_rate: Optional[Decimal]
    start_date: date
    end_date: Optional[date]
    amount_per_session: Decimal
    slots: List[RecurringBooking] = field(default_factory=list, repr=False)


def identity_key(row: RecurringBooking) -> str:
    if row.user_id:
        return str(row.user_id)
    return row.guest_name or UNKNOWN_IDENTITY


def _continues(last: RecurringBooking, row: RecurringBooking) -> bool:
    return (
        identity_key(last) == identity_key(row)
        and last.day_of_week == row.day_of_week
        and last.court_id == row.court_id
        and last.is_active == row.is_active
        and last.end_time == row.start_time
    )


def _build_group(rows: List[RecurringBooking]) -> RecurringGroup:
    first, last = rows[0], rows[-1]
    duration = calculate_hours(first.start_time, last.end_time)
    if first.hourly_rate:
        amount = calculate_booking_amount(
            first.start_time, last.end_time, first.sport, override_rate=first.hourly_rate
        )
    else:
        amount = calculate_booking_amount(first.start_time, last.end_time, first.sport)

    court = first.__dict__.get("court")  # only if already loaded
    return RecurringGroup(
        slot_ids=[r.id for r in rows],
        user_id=first.user_id,
        guest_name=first.guest_name,
        guest_phone=first.guest_phone,
        day_of_week=first.day_of_week,
        court_id=first.court_id,
        court_name=court.name if court is not None else None,
        sport=first.sport,
        start_time=first.start_time,
        end_time=last.end_time,
        duration=duration,
        label=first.label,
        is_active=first.is_active,
        hourly_rate=first.hourly_rate,
        start_date=first.start_date,
        end_date=first.end_date,
        amount_per_session=amount,
        slots=list(rows),
    )


def group_recurring_slots(rows: Sequence[RecurringBooking]) -> List[RecurringGroup]:
    """
    Merge contiguous rows that share identity, weekday, court and active flag.
    A gap, an identity change or a status change starts a new group.
    """
    ordered = sorted(
        rows,
        key=lambda r: (r.day_of_week, r.court_id, identity_key(r), r.start_time),
    )

    groups: List[RecurringGroup] = []
    current: List[RecurringBooking] = []
    for row in ordered:
        if current and _continues(current[-1], row):
            current.append(row)
            continue
        if current:
            groups.append(_build_group(current))
        current = [row]

    if current:
        groups.append(_build_group(current))
    return groups
