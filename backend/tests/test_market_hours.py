from datetime import datetime, timedelta, timezone

import pytest

from market_hours import get_refresh_interval, is_market_open, should_fetch_market_data


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize('now,expected', [
    (utc(2024, 1, 10, 15, 0), True),     # Wed 10:00 EST
    (utc(2024, 1, 10, 8, 59), False),    # 03:59, before pre-market
    (utc(2024, 1, 10, 9, 0), True),      # 04:00 sharp
    (utc(2024, 1, 11, 1, 0), True),      # 20:00 sharp
    (utc(2024, 1, 11, 1, 1), False),     # 20:01
    (utc(2024, 1, 13, 0, 30), True),     # Fri 19:30 EST
    (utc(2024, 1, 13, 15, 0), False),    # Saturday
    (utc(2024, 1, 14, 15, 0), False),    # Sunday
    (utc(2024, 7, 10, 8, 30), True),     # 04:30 EDT in summer
    (utc(2024, 1, 10, 8, 30), False),    # 03:30 EST in winter
])
def test_is_market_open(now, expected):
    assert is_market_open(now) is expected


def test_naive_datetime_is_treated_as_utc():
    assert is_market_open(datetime(2024, 1, 10, 15, 0)) is True
    assert is_market_open(datetime(2024, 1, 13, 15, 0)) is False


def test_refresh_interval_is_five_minutes():
    assert get_refresh_interval() == 300


def test_first_load_always_fetches_even_when_closed():
    saturday = utc(2024, 1, 13, 15, 0)
    assert should_fetch_market_data(None, force_first_load=True, existing_data=False, now=saturday) is True


def test_existing_data_not_refetched_while_closed():
    saturday = utc(2024, 1, 13, 15, 0)
    last = (saturday - timedelta(hours=5)).timestamp() * 1000
    assert should_fetch_market_data(last, existing_data=True, now=saturday) is False


def test_open_market_refetches_after_interval():
    now = utc(2024, 1, 10, 15, 0)
    recent = (now - timedelta(minutes=4)).timestamp() * 1000
    stale = (now - timedelta(minutes=6)).timestamp() * 1000
    assert should_fetch_market_data(recent, existing_data=True, now=now) is False
    assert should_fetch_market_data(stale, existing_data=True, now=now) is True
    assert should_fetch_market_data(None, existing_data=True, now=now) is True
