"""Tests for injectable clocks."""

from datetime import date, datetime, timezone

from billing.services.clock import FixedClock, SystemClock


def test_fixed_clock_returns_given_instant():
    instant = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
    clock = FixedClock(instant)

    assert clock.now() == instant
    assert clock.today() == date(2025, 6, 15)


def test_fixed_clock_naive_instant_is_utc():
    clock = FixedClock(datetime(2025, 6, 15, 12, 0))
    assert clock.now().tzinfo == timezone.utc


def test_fixed_clock_advance():
    clock = FixedClock(datetime(2025, 6, 15, 23, 30, tzinfo=timezone.utc))
    clock.advance(hours=1)

    assert clock.today() == date(2025, 6, 16)


def test_today_uses_business_timezone():
    """23:30 UTC on June 15 is already June 16 in Tokyo."""
    instant = datetime(2025, 6, 15, 23, 30, tzinfo=timezone.utc)

    assert FixedClock(instant, "UTC").today() == date(2025, 6, 15)
    assert FixedClock(instant, "Asia/Tokyo").today() == date(2025, 6, 16)
    assert FixedClock(instant, "America/New_York").today() == date(2025, 6, 15)


def test_system_clock_is_aware():
    now = SystemClock().now()
    assert now.tzinfo is not None
