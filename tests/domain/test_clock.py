"""
Tests for requisition_kernel.domain.clock.

Covers:
- to_utc: dates, naive datetimes, other offsets
- DeterministicClock: stands still, advance/tick/set_time
"""

from datetime import date, datetime, timedelta, timezone

from requisition_kernel.domain.clock import EPOCH, DeterministicClock, SystemClock, to_utc


class TestToUtc:

    def test_date_is_midnight_utc(self):
        assert to_utc(date(2024, 1, 15)) == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_naive_read_as_utc(self):
        result = to_utc(datetime(2024, 1, 15, 9, 30))
        assert result.tzinfo == timezone.utc
        assert result.hour == 9

    def test_offset_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = to_utc(datetime(2024, 1, 15, 9, 0, tzinfo=plus_two))
        assert result == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)


class TestDeterministicClock:

    def test_stands_still(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == EPOCH

    def test_advance_and_tick(self):
        clock = DeterministicClock(step_seconds=5)
        clock.advance(60)
        assert clock.now() == EPOCH + timedelta(seconds=60)
        assert clock.tick() == EPOCH + timedelta(seconds=65)

    def test_set_time_backwards(self):
        clock = DeterministicClock()
        clock.set_time(EPOCH - timedelta(days=1))
        assert clock.now() < EPOCH

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
