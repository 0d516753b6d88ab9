"""Tests for the virtual clock."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from entitlement_engine.services.time_controller import VirtualClock
from entitlement_engine.utils.billing_period import MILLIS_PER_DAY, MILLIS_PER_HOUR, MILLIS_PER_MINUTE

START = 1_767_225_600_000  # 2026-01-01T00:00:00Z


@pytest.fixture
def clock():
    """Clock starting at a fixed instant."""
    return VirtualClock(START)


class TestVirtualClockBasics:
    """Test reading the clock."""

    def test_starts_at_given_time(self, clock):
        """Test that the clock starts at the given timestamp."""
        assert clock.now_millis() == START
        assert clock.offset_millis == 0

    def test_now_is_aware_utc(self, clock):
        """Test that now() is an aware UTC datetime."""
        assert clock.now() == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_defaults_to_wall_clock(self):
        """Test that a clock without a start uses the wall clock."""
        with patch("entitlement_engine.services.time_controller.time.time", return_value=1000.5):
            clock = VirtualClock()
        assert clock.now_millis() == 1_000_500


class TestAdvance:
    """Test advancing the clock."""

    def test_advance_combined_units(self, clock):
        """Test advancing by days, hours and minutes together."""
        old_time, new_time = clock.advance(days=1, hours=2, minutes=3)

        assert old_time == START
        assert new_time == START + MILLIS_PER_DAY + 2 * MILLIS_PER_HOUR + 3 * MILLIS_PER_MINUTE
        assert clock.offset_millis == new_time - START

    def test_advance_zero(self, clock):
        """Test that advancing by nothing leaves the clock unchanged."""
        assert clock.advance() == (START, START)

    def test_advance_negative(self, clock):
        """Test that negative values are rejected."""
        with pytest.raises(ValueError):
            clock.advance(hours=-1)
        assert clock.now_millis() == START

    def test_advance_accumulates(self, clock):
        """Test that successive advances add up."""
        clock.advance(days=1)
        clock.advance(days=2)

        assert clock.now_millis() == START + 3 * MILLIS_PER_DAY


class TestSetTimeAndReset:
    """Test jumping and resetting."""

    def test_set_time_forward(self, clock):
        """Test jumping forward."""
        target = START + 5 * MILLIS_PER_DAY

        assert clock.set_time(target) == (START, target)
        assert clock.offset_millis == 5 * MILLIS_PER_DAY

    def test_set_time_backwards(self, clock):
        """Test that jumping backwards is rejected."""
        with pytest.raises(ValueError) as exc_info:
            clock.set_time(START - 1)
        assert "backwards" in str(exc_info.value)

    def test_reset(self, clock):
        """Test that reset returns to the wall clock."""
        clock.advance(days=10)

        with patch("entitlement_engine.services.time_controller.time.time", return_value=2000.0):
            clock.reset()

        assert clock.now_millis() == 2_000_000
        assert clock.offset_millis == 0
