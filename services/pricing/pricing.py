"""
services/pricing/pricing.py
Court pricing. Pure functions, no I/O.

Badminton is 15/h before 18:00 and 18/h from 18:00 onwards (peak runs past
midnight). Pickleball is a flat 25/h. A court or recurring override rate
replaces both.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from shared.exceptions import ValidationError
from shared.models.models import Sport
from shared.utils.time_utils import span_minutes, to_minutes

BADMINTON_RATE = Decimal("15")
BADMINTON_PEAK_RATE = Decimal("18")
PICKLEBALL_RATE = Decimal("25")
PEAK_START_MINUTES = 18 * 60

CENTS = Decimal("0.01")

RateLike = Union[Decimal, int, float, str]


def to_money(value: RateLike) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_sport(sport: Union[str, Sport]) -> Sport:
    """Case-insensitive sport lookup."""
    if isinstance(sport, Sport):
        return sport
    try:
        return Sport(str(sport).strip().upper())
    except ValueError:
        raise ValidationError(f"unknown sport: {sport!r}", code="UNKNOWN_SPORT")


def calculate_hours(start_time: str, end_time: str) -> Decimal:
    """Duration in hours; end <= start wraps to the next day."""
    start_min, end_min = span_minutes(start_time, end_time)
    return Decimal(end_min - start_min) / Decimal(60)


def calculate_booking_amount(
    start_time: str,
    end_time: str,
    sport: Union[str, Sport],
    override_rate: Optional[RateLike] = None,
) -> Decimal:
    start_min, end_min = span_minutes(start_time, end_time)
    sport_ = parse_sport(sport)
    hours = Decimal(end_min - start_min) / Decimal(60)

    if override_rate is not None:
        return to_money(hours * Decimal(str(override_rate)))

    if sport_ == Sport.PICKLEBALL:
        return to_money(hours * PICKLEBALL_RATE)

    if end_min <= PEAK_START_MINUTES:
        return to_money(hours * BADMINTON_RATE)
    if start_min >= PEAK_START_MINUTES:
        return to_money(hours * BADMINTON_PEAK_RATE)

    off_peak = Decimal(PEAK_START_MINUTES - start_min) / Decimal(60)
    peak = Decimal(end_min - PEAK_START_MINUTES) / Decimal(60)
    return to_money(off_peak * BADMINTON_RATE + peak * BADMINTON_PEAK_RATE)


def get_sport_rate(sport: Union[str, Sport], start_time: Optional[str] = None) -> Decimal:
    """Hourly rate shown next to a slot."""
    if parse_sport(sport) == Sport.PICKLEBALL:
        return PICKLEBALL_RATE
    if start_time and to_minutes(start_time) >= PEAK_START_MINUTES:
        return BADMINTON_PEAK_RATE
    return BADMINTON_RATE
