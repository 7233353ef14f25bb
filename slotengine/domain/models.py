"""
Domain models for availability windows, busy time and bookable slots.

All instants handled by the engine are pendulum ``DateTime`` objects
normalised to UTC. Wall-clock values (weekly hours, breaks, exceptions)
are plain ``datetime.time`` objects interpreted in the organizer's zone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime, time
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidConfig


MAX_ADVANCE_DAYS_CAP = 366
MAX_MIN_ADVANCE_HOURS = 24 * 366
MAX_DURATION_MINUTES = 24 * 60
MAX_BUFFER_MINUTES = 24 * 60


def to_utc(value: datetime) -> DateTime:
    """Return ``value`` as a pendulum DateTime in UTC (naive values are read as UTC)."""
    return pendulum.instance(value).in_timezone("UTC")


def as_date(value: date_type) -> Date:
    """Coerce a ``datetime.date`` (or pendulum Date) into a pendulum Date."""
    if isinstance(value, datetime):
        raise TypeError(f"Expected a calendar date, got datetime {value!r}")
    return pendulum.date(value.year, value.month, value.day)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{self.start.to_iso8601_string()} - {self.end.to_iso8601_string()}"


class BusySource(str, Enum):
    """Where a busy interval came from."""
    INTERNAL_BOOKING = "internal_booking"
    EXTERNAL_CALENDAR = "external_calendar"


@dataclass(frozen=True)
class BusyInterval:
    """
    A span during which the organizer cannot be booked.

    Instants are stored in UTC regardless of how they were supplied.
    """
    start: DateTime
    end: DateTime
    source: BusySource
    origin_id: str = ""

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))
        object.__setattr__(self, "source", BusySource(self.source))
        if self.start >= self.end:
            raise ValueError(f"Busy interval {self.origin_id or '?'} must end after it starts")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


def validate_breaks(
    work_start: time,
    work_end: time,
    breaks: Sequence["AvailabilityBreak"],
) -> None:
    """
    Check that breaks sit inside working hours and do not overlap each other.

    Raises:
        ValueError: describing the first offending break
    """
    ordered = sorted(breaks, key=lambda b: b.start_time)
    previous: Optional[AvailabilityBreak] = None

    for brk in ordered:
        if brk.start_time < work_start:
            raise ValueError(f"Break {brk} cannot start before work hours")
        if brk.end_time > work_end:
            raise ValueError(f"Break {brk} cannot end after work hours")
        if previous is not None and brk.start_time < previous.end_time:
            raise ValueError(f"Break {brk} overlaps with existing break {previous}")
        previous = brk


@dataclass(frozen=True)
class AvailabilityBreak:
    """A recurring pause inside one weekday's working hours."""
    start_time: time
    end_time: time
    label: Optional[str] = None

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time")

    def __str__(self) -> str:
        span = f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"
        return f"{self.label} ({span})" if self.label else span


@dataclass(frozen=True)
class WeeklyAvailability:
    """
    Working hours for one day of the week, authored in organizer-local time.

    ``day_of_week`` follows ISO numbering: 1 = Monday ... 7 = Sunday.
    """
    day_of_week: int
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    breaks: Tuple[AvailabilityBreak, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 1 <= self.day_of_week <= 7:
            raise ValueError(f"day_of_week must be between 1 and 7, got {self.day_of_week}")
        object.__setattr__(self, "breaks", tuple(self.breaks))

        if not self.is_available:
            return

        if self.start_time is None or self.end_time is None:
            raise ValueError(f"Available day {self.day_of_week} needs start and end times")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Start time {self.start_time} must be before end time {self.end_time}"
            )
        validate_breaks(self.start_time, self.end_time, self.breaks)


@dataclass(frozen=True)
class AvailabilityException:
    """
    Overrides the weekly pattern for a single calendar date.

    A closed exception shuts the whole date; an open one must name the
    hours that replace the weekly window.
    """
    date: Date
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    def __post_init__(self):
        object.__setattr__(self, "date", as_date(self.date))

        if not self.is_available:
            if self.start_time is not None or self.end_time is not None:
                raise ValueError(
                    f"Closed exception on {self.date} closes the whole day and takes no times"
                )
            return

        if self.start_time is None or self.end_time is None:
            raise ValueError(f"Open exception on {self.date} needs start and end times")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Start time {self.start_time} must be before end time {self.end_time}"
            )


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfig(name, f"must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class SlotConfig:
    """
    Slot placement rules for one booking page.

    Validated on construction; an instance that exists is always usable.
    """
    duration_minutes: int
    buffer_minutes: int = 0
    min_advance_hours: int = 0
    max_advance_days: int = 90
    profile_id: Optional[str] = None

    def __post_init__(self):
        duration = _require_int("duration_minutes", self.duration_minutes)
        buffer = _require_int("buffer_minutes", self.buffer_minutes)
        notice = _require_int("min_advance_hours", self.min_advance_hours)
        horizon = _require_int("max_advance_days", self.max_advance_days)

        if not 0 < duration <= MAX_DURATION_MINUTES:
            raise InvalidConfig(
                "duration_minutes", f"must be between 1 and {MAX_DURATION_MINUTES}, got {duration}"
            )
        if not 0 <= buffer <= MAX_BUFFER_MINUTES:
            raise InvalidConfig(
                "buffer_minutes", f"must be between 0 and {MAX_BUFFER_MINUTES}, got {buffer}"
            )
        if not 0 <= notice <= MAX_MIN_ADVANCE_HOURS:
            raise InvalidConfig(
                "min_advance_hours", f"must be between 0 and {MAX_MIN_ADVANCE_HOURS}, got {notice}"
            )
        if not 0 < horizon <= MAX_ADVANCE_DAYS_CAP:
            raise InvalidConfig(
                "max_advance_days", f"must be between 1 and {MAX_ADVANCE_DAYS_CAP}, got {horizon}"
            )

    def earliest_bookable(self, now: DateTime) -> DateTime:
        """First instant a slot may start at, given the current instant."""
        return to_utc(now).add(hours=self.min_advance_hours)

    def latest_bookable(self, now: DateTime) -> DateTime:
        """Last instant a slot may start at, given the current instant."""
        return to_utc(now).add(days=self.max_advance_days)


def format_utc_offset(seconds: int) -> str:
    """Render an offset in seconds as ``UTC+5:30`` / ``UTC-4`` / ``UTC±0``."""
    if seconds == 0:
        return "UTC±0"

    sign = "+" if seconds > 0 else "-"
    hours, remainder = divmod(abs(seconds), 3600)
    minutes = remainder // 60
    if minutes:
        return f"UTC{sign}{hours}:{minutes:02d}"
    return f"UTC{sign}{hours}"


@dataclass(frozen=True)
class WallClock:
    """An instant as read off a clock in a given zone."""
    date: Date
    time: time
    zone: str
    utc_offset: int  # seconds east of UTC

    def to_datetime(self) -> DateTime:
        """Return an aware DateTime carrying this reading's fixed offset."""
        return pendulum.datetime(
            self.date.year,
            self.date.month,
            self.date.day,
            self.time.hour,
            self.time.minute,
            self.time.second,
            tz=pendulum.fixed_timezone(self.utc_offset),
        )

    def format_time(self) -> str:
        """Format as a 12-hour slot label, e.g. ``9:00 AM``."""
        hour = self.time.hour % 12 or 12
        suffix = "AM" if self.time.hour < 12 else "PM"
        return f"{hour}:{self.time.minute:02d} {suffix}"

    def __str__(self) -> str:
        return (
            f"{self.date.isoformat()} {self.time:%H:%M} "
            f"{self.zone} ({format_utc_offset(self.utc_offset)})"
        )


@dataclass(frozen=True)
class AvailableSlot:
    """
    A bookable slot.

    ``start``/``end`` are the canonical UTC instants; ``organizer`` and
    ``viewer`` are both derived from ``start`` for display only.
    """
    start: DateTime
    end: DateTime
    organizer: WallClock
    viewer: WallClock

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass(frozen=True)
class CalendarDay:
    """One cell of a six-week month picker."""
    date: Date
    current_month: bool
    past: bool
    today: bool
    within_horizon: bool
    has_hours: bool

    @property
    def day(self) -> int:
        return self.date.day

    @property
    def available(self) -> bool:
        return self.has_hours and not self.past and self.within_horizon


WEEKLY_PRESETS: Dict[str, Optional[Tuple[time, time]]] = {
    "9-5": (time(9, 0), time(17, 0)),
    "8-6": (time(8, 0), time(18, 0)),
    "10-6": (time(10, 0), time(18, 0)),
    "unavailable": None,
}


def weekly_preset(name: str, days: Sequence[int] = (1, 2, 3, 4, 5)) -> List[WeeklyAvailability]:
    """
    Build weekly entries for a named preset.

    Args:
        name: One of ``WEEKLY_PRESETS``
        days: ISO weekdays the preset applies to

    Raises:
        InvalidConfig: If the preset name is unknown
    """
    if name not in WEEKLY_PRESETS:
        raise InvalidConfig("preset", f"unknown preset {name!r}")

    hours = WEEKLY_PRESETS[name]
    if hours is None:
        return [WeeklyAvailability(day_of_week=day, is_available=False) for day in days]

    start, end = hours
    return [
        WeeklyAvailability(day_of_week=day, is_available=True, start_time=start, end_time=end)
        for day in days
    ]
