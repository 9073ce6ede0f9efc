"""Dutch auction pricing.

The ask price falls linearly from the start price to the reserve price over the
auction schedule. Everything is computed with Python integers: time is measured
in whole microseconds and the interpolation is an exact rational rounded half
up, so 18-decimal token amounts never pass through a float.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any

MICROSECOND = timedelta(microseconds=1)

PHASE_UPCOMING = 'upcoming'
PHASE_LIVE = 'live'
PHASE_ENDED = 'ended'

def utcnow() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)

def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def _micros(delta: timedelta) -> int:
    return delta // MICROSECOND

def current_price(
    start_price: int,
    reserve_price: int,
    start_at: datetime,
    end_at: datetime,
    now: Optional[datetime] = None
) -> int:
    """Price of the auction at ``now``.

    Args:
        start_price: Price at (and before) ``start_at``, in minor units
        reserve_price: Floor reached at (and after) ``end_at``, in minor units
        start_at: Auction start
        end_at: Auction end
        now: Instant to price at, defaults to the current time

    Returns:
        An integer in ``[reserve_price, start_price]``. A zero-length schedule
        prices at the reserve.

    Raises:
        ValueError: If prices are negative or the reserve exceeds the start price
    """
    if reserve_price < 0 or start_price < 0:
        raise ValueError("Prices must not be negative")
    if reserve_price > start_price:
        raise ValueError("Reserve price must not exceed start price")

    start_at = ensure_utc(start_at)
    end_at = ensure_utc(end_at)
    now = ensure_utc(now) if now is not None else utcnow()

    span = max(0, _micros(end_at - start_at))
    if span == 0:
        return reserve_price

    elapsed = min(span, max(0, _micros(now - start_at)))
    remaining = span - elapsed
    decay = start_price - reserve_price

    # round(decay * remaining / span), halves rounded up
    return reserve_price + (2 * decay * remaining + span) // (2 * span)

def price_curve(
    start_price: int,
    reserve_price: int,
    start_at: datetime,
    end_at: datetime,
    points: int = 21
) -> List[Dict[str, Any]]:
    """Sample the price at evenly spaced instants across the schedule.

    Returns a list of ``{'progress', 'at', 'price'}`` dicts where progress is
    the percentage of the schedule elapsed. Pure, safe to call for previews.
    """
    if points < 2:
        raise ValueError("A price curve needs at least 2 points")

    start_at = ensure_utc(start_at)
    end_at = ensure_utc(end_at)
    duration = end_at - start_at

    samples = []
    for i in range(points):
        at = start_at + duration * i / (points - 1)
        samples.append({
            'progress': round(100 * i / (points - 1), 2),
            'at': at,
            'price': current_price(start_price, reserve_price, start_at, end_at, at)
        })
    return samples

def auction_phase(start_at: datetime, end_at: datetime, now: Optional[datetime] = None) -> str:
    """Where ``now`` falls relative to the half-open window ``[start_at, end_at)``."""
    now = ensure_utc(now) if now is not None else utcnow()
    if now < ensure_utc(start_at):
        return PHASE_UPCOMING
    if now < ensure_utc(end_at):
        return PHASE_LIVE
    return PHASE_ENDED

def time_remaining(end_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole seconds left until ``end_at``, never negative."""
    now = ensure_utc(now) if now is not None else utcnow()
    return max(0, int((ensure_utc(end_at) - now).total_seconds()))

__all__ = [
    'current_price',
    'price_curve',
    'auction_phase',
    'time_remaining',
    'utcnow',
    'ensure_utc',
    'PHASE_UPCOMING',
    'PHASE_LIVE',
    'PHASE_ENDED'
]
