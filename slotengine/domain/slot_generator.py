"""
Core slot generation.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). Everything here works on UTC instants, so the output
does not depend on the zone anyone later uses to look at it.
"""

import bisect
from typing import Iterator, List, Optional, Sequence

from pendulum import DateTime

from .exceptions import InvalidConfig
from .models import TimeRange


class SlotGenerator:
    """
    Places fixed-length slots inside open windows around busy time.

    Algorithm:
    1. For each window, lay a grid of candidate starts from the window's
       start, stepping by the slot duration, while the slot still fits.
    2. Reject a candidate if it overlaps any busy span widened by the
       buffer on both sides.
    3. Optionally drop candidates starting before ``not_before`` or after
       ``not_after`` (advance notice and booking horizon). The grid itself
       never moves.
    """

    def __init__(self, duration_minutes: int, buffer_minutes: int = 0):
        if duration_minutes <= 0:
            raise InvalidConfig("duration_minutes", "must be greater than zero")
        if buffer_minutes < 0:
            raise InvalidConfig("buffer_minutes", "must not be negative")

        self.duration_minutes = duration_minutes
        self.buffer_minutes = buffer_minutes

    def iter_slots(
        self,
        windows: Sequence[TimeRange],
        busy: Sequence[TimeRange],
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> Iterator[TimeRange]:
        """
        Lazily yield accepted slots in chronological order.

        Args:
            windows: Disjoint open windows (any order)
            busy: Busy spans as returned by ``merge_busy_intervals``
            not_before: Earliest allowed slot start
            not_after: Latest allowed slot start
        """
        busy_ends = [span.end for span in busy]

        for window in sorted(windows, key=lambda w: w.start):
            # First busy span whose buffered end reaches into this window.
            index = bisect.bisect_right(
                busy_ends, window.start.subtract(minutes=self.buffer_minutes)
            )
            candidate = window.start

            while True:
                candidate_end = candidate.add(minutes=self.duration_minutes)
                if candidate_end > window.end:
                    break
                if not_after is not None and candidate > not_after:
                    return

                index = self._skip_passed_busy(busy, index, candidate)
                conflict = index < len(busy) and self._conflicts(candidate, candidate_end, busy[index])

                if not conflict and (not_before is None or candidate >= not_before):
                    yield TimeRange(start=candidate, end=candidate_end)

                candidate = candidate_end

    def generate(
        self,
        windows: Sequence[TimeRange],
        busy: Sequence[TimeRange],
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> List[TimeRange]:
        """Return every accepted slot."""
        return list(self.iter_slots(windows, busy, not_before, not_after))

    def has_slot(
        self,
        windows: Sequence[TimeRange],
        busy: Sequence[TimeRange],
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> bool:
        """Stop at the first accepted slot; used by month summaries."""
        return next(self.iter_slots(windows, busy, not_before, not_after), None) is not None

    def _skip_passed_busy(self, busy: Sequence[TimeRange], index: int, candidate: DateTime) -> int:
        """Advance past busy spans whose buffered end is at or before ``candidate``."""
        while index < len(busy) and busy[index].end.add(minutes=self.buffer_minutes) <= candidate:
            index += 1
        return index

    def _conflicts(self, start: DateTime, end: DateTime, busy: TimeRange) -> bool:
        """Overlap test against one busy span widened by the buffer on both sides."""
        return (
            start < busy.end.add(minutes=self.buffer_minutes)
            and end > busy.start.subtract(minutes=self.buffer_minutes)
        )
