"""
Tests for busy interval aggregation.
"""

import pendulum

from slotengine.domain.busy import (
    ExternalBusyResult,
    aggregate_busy_sources,
    merge_busy_intervals,
)
from slotengine.domain.exceptions import FetchError
from slotengine.domain.models import BusyInterval, BusySource, TimeRange


def _busy(start: str, end: str, source=BusySource.INTERNAL_BOOKING, origin_id=""):
    return BusyInterval(
        start=pendulum.parse(f"2024-06-03 {start}", tz="UTC"),
        end=pendulum.parse(f"2024-06-03 {end}", tz="UTC"),
        source=source,
        origin_id=origin_id,
    )


def _span(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2024-06-03 {start}", tz="UTC"),
        end=pendulum.parse(f"2024-06-03 {end}", tz="UTC"),
    )


class TestMergeBusyIntervals:
    """Tests for merge_busy_intervals."""

    def test_empty(self):
        """No sources means no busy time."""
        assert merge_busy_intervals() == []
        assert merge_busy_intervals([], []) == []

    def test_overlapping_and_touching_merge(self):
        """Overlapping and touching spans merge; a one-minute gap stays a gap."""
        merged = merge_busy_intervals(
            [_busy("10:30", "12:00"), _busy("10:00", "11:00")],
            [_busy("12:00", "12:30", BusySource.EXTERNAL_CALENDAR), _busy("12:31", "13:00")],
        )

        assert merged == [_span("10:00", "12:30"), _span("12:31", "13:00")]

    def test_contained_interval(self):
        """A span inside another does not shorten it."""
        merged = merge_busy_intervals([_busy("09:00", "17:00"), _busy("10:00", "11:00")])

        assert merged == [_span("09:00", "17:00")]

    def test_output_sorted_and_disjoint(self):
        """Unordered input comes out ascending with no overlaps."""
        merged = merge_busy_intervals(
            [_busy("15:00", "16:00"), _busy("09:00", "09:30"), _busy("11:00", "12:00")]
        )

        assert [span.start for span in merged] == sorted(span.start for span in merged)
        assert all(a.end < b.start for a, b in zip(merged, merged[1:]))

    def test_accepts_time_ranges(self):
        """Plain TimeRanges can be mixed with BusyIntervals."""
        merged = merge_busy_intervals([_span("09:00", "10:00")], [_busy("09:30", "10:30")])

        assert merged == [_span("09:00", "10:30")]


class TestAggregateBusySources:
    """Tests for aggregate_busy_sources."""

    def test_all_sources_healthy(self):
        """Healthy sources are merged and the snapshot is not degraded."""
        snapshot = aggregate_busy_sources(
            [_busy("09:00", "10:00")],
            [ExternalBusyResult(source="outlook", intervals=[_busy("09:30", "11:00", BusySource.EXTERNAL_CALENDAR)])],
        )

        assert snapshot.intervals == (_span("09:00", "11:00"),)
        assert not snapshot.degraded
        assert snapshot.failed_sources == ()

    def test_failed_source_is_empty_and_degraded(self):
        """A failing calendar contributes nothing and flags the result."""
        snapshot = aggregate_busy_sources(
            [_busy("09:00", "10:00")],
            [
                ExternalBusyResult(source="outlook", error=FetchError("outlook", "timeout")),
                ExternalBusyResult(source="google", intervals=[_busy("14:00", "15:00")]),
            ],
        )

        assert snapshot.intervals == (_span("09:00", "10:00"), _span("14:00", "15:00"))
        assert snapshot.degraded
        assert snapshot.failed_sources == ("outlook",)

    def test_only_internal(self):
        """No external calendars is a normal, healthy case."""
        snapshot = aggregate_busy_sources([])

        assert snapshot.intervals == ()
        assert not snapshot.degraded
