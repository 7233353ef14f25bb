"""
Availability window resolution.

Turns the organizer's weekly pattern, breaks and date exceptions into the
open windows of one calendar date, first as wall-clock times and then as
UTC instants in the organizer's zone.
"""

import logging
from collections import defaultdict
from datetime import time
from typing import Dict, List, Sequence, Tuple

from pendulum import Date

from .models import (
    AvailabilityBreak,
    AvailabilityException,
    TimeRange,
    WeeklyAvailability,
    as_date,
)
from .timezones import DEFAULT_TIMEZONE_DATABASE, TimezoneDatabase, to_instant

logger = logging.getLogger(__name__)

LocalWindow = Tuple[time, time]


class WindowResolver:
    """
    Resolves open windows per date.

    Precedence for a date:
    1. Exceptions for the date replace the weekly pattern entirely. A closed
       exception closes the date; open exceptions supply the windows.
    2. Otherwise the weekly entries for the date's weekday apply, minus
       their breaks.
    3. No entry, or an unavailable one, means no windows.
    """

    def __init__(
        self,
        weekly_pattern: Sequence[WeeklyAvailability],
        exceptions: Sequence[AvailabilityException] = (),
    ):
        self._pattern: Dict[int, List[WeeklyAvailability]] = defaultdict(list)
        for entry in weekly_pattern:
            self._pattern[entry.day_of_week].append(entry)

        self._exceptions: Dict[Date, List[AvailabilityException]] = defaultdict(list)
        for exception in exceptions:
            self._exceptions[exception.date].append(exception)

        if not weekly_pattern:
            logger.debug("No weekly pattern configured; only exception dates can open")

    @property
    def has_pattern(self) -> bool:
        return any(entry.is_available for entries in self._pattern.values() for entry in entries)

    def local_windows(self, day: Date) -> List[LocalWindow]:
        """Open wall-clock windows for ``day``, ascending and non-overlapping."""
        day = as_date(day)
        overrides = self._exceptions.get(day)

        if overrides:
            if any(not exception.is_available for exception in overrides):
                return []
            return self._merge_windows(
                [(exception.start_time, exception.end_time) for exception in overrides]
            )

        windows: List[LocalWindow] = []
        for entry in self._pattern.get(day.isoweekday(), []):
            if not entry.is_available:
                continue
            windows.extend(self._subtract_breaks(entry.start_time, entry.end_time, entry.breaks))

        return self._merge_windows(windows)

    def has_hours(self, day: Date) -> bool:
        return bool(self.local_windows(day))

    def windows(
        self,
        day: Date,
        organizer_tz: str,
        tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
    ) -> List[TimeRange]:
        """
        Open windows for ``day`` as UTC instants.

        Wall-clock times are read in ``organizer_tz``. A window that
        collapses to nothing (both ends inside one DST gap) is dropped.
        """
        day = as_date(day)
        resolved: List[TimeRange] = []

        for start, end in self.local_windows(day):
            start_instant = to_instant(day, start, organizer_tz, tzdb)
            end_instant = to_instant(day, end, organizer_tz, tzdb)
            if start_instant >= end_instant:
                logger.debug("Window %s-%s on %s vanished in a DST gap", start, end, day)
                continue
            resolved.append(TimeRange(start=start_instant, end=end_instant))

        return resolved

    @staticmethod
    def _subtract_breaks(
        start: time,
        end: time,
        breaks: Sequence[AvailabilityBreak],
    ) -> List[LocalWindow]:
        """
        Subtract breaks from a working-hours window.

        Example:
        Working: 09:00 - 17:00
        Breaks: [12:00-13:00, 15:00-15:15]
        Result: [09:00-12:00, 13:00-15:00, 15:15-17:00]
        """
        free: List[LocalWindow] = []
        current_start = start

        for brk in sorted(breaks, key=lambda b: b.start_time):
            clipped_start = max(brk.start_time, start)
            clipped_end = min(brk.end_time, end)

            if current_start < clipped_start:
                free.append((current_start, clipped_start))

            current_start = max(current_start, clipped_end)

        if current_start < end:
            free.append((current_start, end))

        return free

    @staticmethod
    def _merge_windows(windows: List[LocalWindow]) -> List[LocalWindow]:
        """
        Merge overlapping or adjacent windows.

        Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
        """
        if not windows:
            return []

        ordered = sorted(windows)
        merged: List[LocalWindow] = [ordered[0]]

        for start, end in ordered[1:]:
            last_start, last_end = merged[-1]
            if start <= last_end:
                merged[-1] = (last_start, max(last_end, end))
            else:
                merged.append((start, end))

        return merged
