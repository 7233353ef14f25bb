"""
Tests for slot generation.
"""

import pendulum
import pytest

from slotengine.domain.exceptions import InvalidConfig
from slotengine.domain.models import TimeRange
from slotengine.domain.slot_generator import SlotGenerator


def _at(clock: str):
    return pendulum.parse(f"2024-11-25 {clock}", tz="UTC")


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(start=_at(start), end=_at(end))


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def test_full_day_without_busy_times(self):
        """An 8 hour window yields 16 half-hour slots."""
        generator = SlotGenerator(duration_minutes=30)

        slots = generator.generate([_range("09:00", "17:00")], [])

        assert len(slots) == 16
        assert slots[0] == _range("09:00", "09:30")
        assert slots[-1] == _range("16:30", "17:00")
        assert all(slot.duration_minutes() == 30 for slot in slots)

    def test_busy_time_removes_overlapping_slots(self):
        """Slots overlapping busy time are rejected; touching ones stay."""
        generator = SlotGenerator(duration_minutes=30)

        slots = generator.generate([_range("09:00", "12:00")], [_range("10:00", "11:00")])

        starts = [slot.start.format("HH:mm") for slot in slots]
        assert starts == ["09:00", "09:30", "11:00", "11:30"]

    def test_buffer_widens_busy_time(self):
        """A 15 minute buffer also removes the neighbouring slots."""
        generator = SlotGenerator(duration_minutes=30, buffer_minutes=15)

        slots = generator.generate([_range("09:00", "17:00")], [_range("10:00", "11:00")])

        starts = [slot.start.format("HH:mm") for slot in slots]
        assert "09:00" in starts
        for blocked in ("09:30", "10:00", "10:30", "11:00"):
            assert blocked not in starts
        assert starts[1] == "11:30"

    def test_grid_does_not_move_around_busy_time(self):
        """Slots keep their duration-aligned grid after a conflict."""
        generator = SlotGenerator(duration_minutes=60)

        slots = generator.generate([_range("09:00", "13:00")], [_range("09:10", "09:20")])

        assert [slot.start.format("HH:mm") for slot in slots] == ["10:00", "11:00", "12:00"]

    def test_partial_slot_at_window_end_dropped(self):
        """A slot must fit completely in the window."""
        generator = SlotGenerator(duration_minutes=45)

        slots = generator.generate([_range("09:00", "10:00")], [])

        assert slots == [_range("09:00", "09:45")]

    def test_window_shorter_than_duration(self):
        """A window too short for one slot yields nothing."""
        generator = SlotGenerator(duration_minutes=60)

        assert generator.generate([_range("09:00", "09:30")], []) == []

    def test_multiple_windows_in_order(self):
        """Each window gets its own grid and output is chronological."""
        generator = SlotGenerator(duration_minutes=45)

        slots = generator.generate([_range("13:10", "14:40"), _range("09:00", "10:30")], [])

        assert [slot.start.format("HH:mm") for slot in slots] == ["09:00", "09:45", "13:10", "13:55"]

    def test_not_before_filters_without_shifting(self):
        """Advance notice drops early slots but keeps the grid."""
        generator = SlotGenerator(duration_minutes=30)

        slots = generator.generate([_range("09:00", "11:00")], [], not_before=_at("09:40"))

        assert [slot.start.format("HH:mm") for slot in slots] == ["10:00", "10:30"]

    def test_not_after_stops_generation(self):
        """Slots starting after the horizon are dropped."""
        generator = SlotGenerator(duration_minutes=30)

        slots = generator.generate([_range("09:00", "17:00")], [], not_after=_at("10:00"))

        assert [slot.start.format("HH:mm") for slot in slots] == ["09:00", "09:30", "10:00"]

    def test_busy_before_window_with_buffer(self):
        """Busy time ending just before a window still blocks its first slot."""
        generator = SlotGenerator(duration_minutes=30, buffer_minutes=10)

        slots = generator.generate([_range("09:00", "10:00")], [_range("08:00", "08:55")])

        assert [slot.start.format("HH:mm") for slot in slots] == ["09:30"]

    def test_has_slot(self):
        """has_slot reports whether anything is bookable."""
        generator = SlotGenerator(duration_minutes=30)

        assert generator.has_slot([_range("09:00", "10:00")], [_range("09:30", "10:00")])
        assert not generator.has_slot([_range("09:00", "10:00")], [_range("08:00", "11:00")])
        assert not generator.has_slot([], [])

    @pytest.mark.parametrize("duration, buffer", [(0, 0), (-30, 0), (30, -5)])
    def test_invalid_configuration(self, duration, buffer):
        """Non-positive durations and negative buffers are rejected."""
        with pytest.raises(InvalidConfig):
            SlotGenerator(duration_minutes=duration, buffer_minutes=buffer)
