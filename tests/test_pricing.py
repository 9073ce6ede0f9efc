"""Tests for Dutch auction pricing."""

from datetime import datetime, timedelta, timezone

import pytest

from pricing import (
    current_price, price_curve, auction_phase, time_remaining,
    PHASE_UPCOMING, PHASE_LIVE, PHASE_ENDED
)

START = datetime(2025, 1, 1, tzinfo=timezone.utc)
END = START + timedelta(hours=24)
START_PRICE = 10 ** 18
RESERVE = 10 ** 17

def price_at(now):
    return current_price(START_PRICE, RESERVE, START, END, now)

def test_price_before_and_at_start_is_start_price():
    assert price_at(START - timedelta(hours=1)) == START_PRICE
    assert price_at(START) == START_PRICE

def test_price_at_and_after_end_is_reserve():
    assert price_at(END) == RESERVE
    assert price_at(END + timedelta(days=3)) == RESERVE

@pytest.mark.parametrize("fraction,expected", [
    (0.25, 775000000000000000),
    (0.5, 550000000000000000),
    (0.75, 325000000000000000),
])
def test_linear_decay(fraction, expected):
    assert price_at(START + (END - START) * fraction) == expected

def test_zero_length_schedule_prices_at_reserve():
    assert current_price(START_PRICE, RESERVE, START, START, START) == RESERVE
    assert current_price(START_PRICE, RESERVE, START, START - timedelta(hours=1), START) == RESERVE

def test_price_is_non_increasing():
    prices = [price_at(START + timedelta(minutes=7 * i)) for i in range(250)]
    assert all(a >= b for a, b in zip(prices, prices[1:]))
    assert all(RESERVE <= p <= START_PRICE for p in prices)

def test_large_amounts_are_exact():
    start = 10 ** 30
    assert current_price(start, 1, START, END, START + timedelta(hours=12)) == 5 * 10 ** 29 + 1

def test_halves_round_up():
    end = START + timedelta(seconds=2)
    assert current_price(1, 0, START, end, START + timedelta(seconds=1)) == 1

def test_naive_datetimes_are_utc():
    naive = START.replace(tzinfo=None)
    assert current_price(START_PRICE, RESERVE, naive, naive + timedelta(hours=24),
                         naive + timedelta(hours=12)) == 550000000000000000

def test_invalid_prices_rejected():
    with pytest.raises(ValueError):
        current_price(RESERVE, START_PRICE, START, END, START)
    with pytest.raises(ValueError):
        current_price(-1, -2, START, END, START)

def test_price_curve_endpoints():
    curve = price_curve(START_PRICE, RESERVE, START, END)
    assert len(curve) == 21
    assert curve[0]['price'] == START_PRICE
    assert curve[-1]['price'] == RESERVE
    assert curve[10]['progress'] == 50
    assert curve[10]['price'] == 550000000000000000
    assert curve[-1]['at'] == END

def test_price_curve_needs_two_points():
    with pytest.raises(ValueError):
        price_curve(START_PRICE, RESERVE, START, END, points=1)

def test_auction_phase():
    assert auction_phase(START, END, START - timedelta(seconds=1)) == PHASE_UPCOMING
    assert auction_phase(START, END, START) == PHASE_LIVE
    assert auction_phase(START, END, END) == PHASE_ENDED

def test_time_remaining():
    assert time_remaining(END, END - timedelta(minutes=1)) == 60
    assert time_remaining(END, END + timedelta(minutes=1)) == 0
