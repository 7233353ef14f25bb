"""
Domain layer - Pure availability logic without external dependencies.
"""

from .busy import BusySnapshot, ExternalBusyResult, aggregate_busy_sources, merge_busy_intervals
from .calculator import AvailabilityCalculator
from .exceptions import (
    FetchError,
    InvalidConfig,
    InvalidTimezone,
    ProfileNotFound,
    SlotEngineError,
    TimeConversionError,
)
from .models import (
    AvailabilityBreak,
    AvailabilityException,
    AvailableSlot,
    BusyInterval,
    BusySource,
    CalendarDay,
    SlotConfig,
    TimeRange,
    WallClock,
    WeeklyAvailability,
    weekly_preset,
)
from .slot_generator import SlotGenerator
from .timezones import (
    FixedTimezoneTable,
    PendulumTimezoneDatabase,
    TimezoneDatabase,
    to_instant,
    to_local,
)
from .windows import WindowResolver

__all__ = [
    "AvailabilityBreak",
    "AvailabilityCalculator",
    "AvailabilityException",
    "AvailableSlot",
    "BusyInterval",
    "BusySnapshot",
    "BusySource",
    "CalendarDay",
    "ExternalBusyResult",
    "FetchError",
    "FixedTimezoneTable",
    "InvalidConfig",
    "InvalidTimezone",
    "PendulumTimezoneDatabase",
    "ProfileNotFound",
    "SlotConfig",
    "SlotEngineError",
    "SlotGenerator",
    "TimeConversionError",
    "TimeRange",
    "TimezoneDatabase",
    "WallClock",
    "WeeklyAvailability",
    "WindowResolver",
    "aggregate_busy_sources",
    "merge_busy_intervals",
    "to_instant",
    "to_local",
    "weekly_preset",
]
