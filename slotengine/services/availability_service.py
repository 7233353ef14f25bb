"""
Application services for computing an organizer's availability.

The service gathers the weekly pattern, exceptions, internal bookings and
external calendar busy time through collaborator protocols (concurrently,
since they are independent), then hands the resolved data to the pure
``AvailabilityCalculator``. Failing external calendars are folded into a
degraded flag on the result instead of failing the request.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import pendulum
from pendulum import Date, DateTime

from ..domain.busy import BusySnapshot, ExternalBusyResult, aggregate_busy_sources
from ..domain.calculator import AvailabilityCalculator, first_of_month
from ..domain.exceptions import FetchError, InvalidConfig
from ..domain.models import (
    AvailabilityException,
    AvailableSlot,
    BusyInterval,
    CalendarDay,
    SlotConfig,
    WeeklyAvailability,
    as_date,
    to_utc,
)
from ..domain.timezones import DEFAULT_TIMEZONE_DATABASE, TimezoneDatabase, day_bounds
from .cache import AvailabilityCache

logger = logging.getLogger(__name__)

DEGRADED_NOTICE = "Some calendars may be out of date; shown availability may include busy time."


class ProfileRepositoryProtocol(Protocol):
    """Source of an organizer's availability settings."""

    async def get_weekly_pattern(self, profile_id: str) -> Sequence[WeeklyAvailability]:
        """Return the weekly pattern (empty when none is configured)."""

    async def get_exceptions(
        self, profile_id: str, start: Date, end: Date
    ) -> Sequence[AvailabilityException]:
        """Return exceptions dated between ``start`` and ``end`` inclusive."""


class BookingRepositoryProtocol(Protocol):
    """Source of confirmed bookings."""

    async def get_internal_busy_intervals(
        self, profile_id: str, start: DateTime, end: DateTime
    ) -> Sequence[BusyInterval]:
        """Return bookings overlapping ``start``..``end``."""


class ExternalCalendarProtocol(Protocol):
    """A connected external calendar."""

    name: str

    def applies_to(self, profile_id: str) -> bool:
        """Whether this calendar belongs to ``profile_id``."""

    async def get_busy_intervals(
        self, profile_id: str, start: DateTime, end: DateTime
    ) -> Sequence[BusyInterval]:
        """Return busy time overlapping ``start``..``end``; raise FetchError on failure."""


@dataclass(frozen=True)
class SlotsResult:
    """Slots for one date plus the health of the busy sources behind them."""
    date: Date
    slots: Tuple[AvailableSlot, ...]
    degraded: bool = False
    failed_sources: Tuple[str, ...] = ()

    @property
    def notice(self) -> Optional[str]:
        return DEGRADED_NOTICE if self.degraded else None


@dataclass(frozen=True)
class MonthResult:
    """Per-date availability for a month."""
    year: int
    month: int
    days: Dict[Date, Union[bool, List[AvailableSlot]]]
    degraded: bool = False
    failed_sources: Tuple[str, ...] = ()

    @property
    def notice(self) -> Optional[str]:
        return DEGRADED_NOTICE if self.degraded else None

    def available_dates(self) -> List[Date]:
        return [day for day, value in self.days.items() if value]


@dataclass(frozen=True)
class _ProfileData:
    pattern: Tuple[WeeklyAvailability, ...]
    exceptions: Tuple[AvailabilityException, ...]
    busy: BusySnapshot

    def fingerprint(self) -> str:
        """Digest of everything fetched, so cached results die with changed inputs."""
        digest = hashlib.sha256()
        for item in (*self.pattern, *self.exceptions):
            digest.update(repr(item).encode("utf-8"))
        for span in self.busy.intervals:
            digest.update(f"{span.start.int_timestamp}:{span.end.int_timestamp};".encode("utf-8"))
        return digest.hexdigest()


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


class AvailabilityService:
    """
    Orchestrates collaborator fetches and the availability calculation.

    Dependency inversion toward protocols makes it easy to plug in the
    YAML-backed store, real calendar adapters, or stubs in tests.
    """

    def __init__(
        self,
        profile_repository: ProfileRepositoryProtocol,
        booking_repository: BookingRepositoryProtocol,
        calendars: Sequence[ExternalCalendarProtocol] = (),
        tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
        clock: Callable[[], DateTime] = _utc_now,
        cache: Optional[AvailabilityCache] = None,
    ) -> None:
        self._profiles = profile_repository
        self._bookings = booking_repository
        self._calendars = list(calendars)
        self._tzdb = tzdb
        self._clock = clock
        self._cache = cache

    async def available_slots(
        self,
        *,
        profile_id: str,
        day: Date,
        organizer_tz: str,
        viewer_tz: str,
        config: SlotConfig,
        by_viewer_date: bool = False,
        now: Optional[DateTime] = None,
    ) -> SlotsResult:
        """
        Bookable slots for one date.

        Args:
            by_viewer_date: Treat ``day`` as a viewer-local date instead of
                an organizer-local one
        """
        day = as_date(day)
        organizer_tz, viewer_tz = self._validate(organizer_tz, viewer_tz, config=config)
        now = to_utc(now) if now is not None else to_utc(self._clock())

        data = await self.fetch_profile_data(
            profile_id,
            day,
            day,
            organizer_tz,
            buffer_minutes=config.buffer_minutes,
            extra_days=1 if by_viewer_date else 0,
        )
        mode = "viewer-day" if by_viewer_date else "day"
        key = self._cache_key(mode, profile_id, day, day, organizer_tz, viewer_tz, config, data, now)

        slots = self._cached(key)
        if slots is None:
            calculator = self._calculator(profile_id, data)
            compute = (
                calculator.slots_for_viewer_date if by_viewer_date else calculator.available_slots
            )
            not_before, not_after = self._minute_cutoffs(config, now)
            slots = tuple(
                compute(
                    day, organizer_tz, viewer_tz, data.busy.intervals, config,
                    now=now, not_before=not_before, not_after=not_after,
                )
            )
            self._store(key, slots)

        self._log_degraded(profile_id, data.busy)
        return SlotsResult(
            date=day,
            slots=tuple(self._bookable(slots, config, now)),
            degraded=data.busy.degraded,
            failed_sources=data.busy.failed_sources,
        )

    async def month_availability(
        self,
        *,
        profile_id: str,
        year: int,
        month: int,
        organizer_tz: str,
        viewer_tz: str,
        config: SlotConfig,
        eager: bool = False,
        now: Optional[DateTime] = None,
    ) -> MonthResult:
        """Per-date availability for a month (flags, or slot lists when ``eager``)."""
        organizer_tz, viewer_tz = self._validate(organizer_tz, viewer_tz, config=config)
        first = first_of_month(year, month)
        last = first.end_of("month")
        now = to_utc(now) if now is not None else to_utc(self._clock())

        data = await self.fetch_profile_data(
            profile_id, first, last, organizer_tz, buffer_minutes=config.buffer_minutes
        )
        key = self._cache_key("month", profile_id, first, last, organizer_tz, viewer_tz, config, data, now)

        # Slot lists are cached even for flag requests so both cutoffs can
        # be re-applied to the exact ``now`` on every call.
        month_slots = self._cached(key)
        if month_slots is None:
            not_before, not_after = self._minute_cutoffs(config, now)
            month_slots = self._calculator(profile_id, data).month_availability(
                year, month, organizer_tz, viewer_tz, data.busy.intervals, config,
                eager=True, now=now, not_before=not_before, not_after=not_after,
            )
            self._store(key, month_slots)

        days: Dict[Date, Union[bool, List[AvailableSlot]]] = {}
        for day, slots in month_slots.items():
            bookable = self._bookable(slots, config, now)
            days[day] = bookable if eager else bool(bookable)

        self._log_degraded(profile_id, data.busy)
        return MonthResult(
            year=year,
            month=month,
            days=days,
            degraded=data.busy.degraded,
            failed_sources=data.busy.failed_sources,
        )

    async def calendar_days(
        self,
        *,
        profile_id: str,
        year: int,
        month: int,
        viewer_tz: str,
        config: SlotConfig,
        now: Optional[DateTime] = None,
    ) -> List[CalendarDay]:
        """Month-picker cells; needs the pattern and exceptions but no busy time."""
        first = first_of_month(year, month)
        pattern, exceptions = await asyncio.gather(
            self._profiles.get_weekly_pattern(profile_id),
            # The grid spills up to six days into the neighbouring months.
            self._profiles.get_exceptions(profile_id, first.subtract(days=7), first.add(days=42)),
        )
        calculator = AvailabilityCalculator(pattern, exceptions, tzdb=self._tzdb, clock=self._clock)
        return calculator.calendar_days(year, month, viewer_tz, config, now=now)

    async def fetch_profile_data(
        self,
        profile_id: str,
        first_day: Date,
        last_day: Date,
        organizer_tz: str,
        buffer_minutes: int = 0,
        extra_days: int = 0,
    ) -> _ProfileData:
        """
        Fetch everything the calculator needs for organizer dates
        ``first_day``..``last_day``.

        Busy time is fetched one extra day on each side so viewer-date
        views and buffers reaching across midnight see it too, widened by
        ``extra_days`` more days and by ``buffer_minutes``.
        """
        padding = 1 + extra_days
        first = first_day.subtract(days=padding)
        last = last_day.add(days=padding)
        start = day_bounds(first, organizer_tz, self._tzdb).start.subtract(minutes=buffer_minutes)
        end = day_bounds(last, organizer_tz, self._tzdb).end.add(minutes=buffer_minutes)
        calendars = [calendar for calendar in self._calendars if calendar.applies_to(profile_id)]

        pattern, exceptions, internal, *external = await asyncio.gather(
            self._profiles.get_weekly_pattern(profile_id),
            self._profiles.get_exceptions(profile_id, first, last),
            self._bookings.get_internal_busy_intervals(profile_id, start, end),
            *(self._fetch_external(calendar, profile_id, start, end) for calendar in calendars),
        )

        return _ProfileData(
            pattern=tuple(pattern),
            exceptions=tuple(exceptions),
            busy=aggregate_busy_sources(internal, external),
        )

    @staticmethod
    async def _fetch_external(
        calendar: ExternalCalendarProtocol,
        profile_id: str,
        start: DateTime,
        end: DateTime,
    ) -> ExternalBusyResult:
        """Fetch one calendar, turning a FetchError into an empty, failed result."""
        try:
            intervals = await calendar.get_busy_intervals(profile_id, start, end)
        except FetchError as exc:
            logger.warning("External calendar %s failed: %s", calendar.name, exc)
            return ExternalBusyResult(source=calendar.name, error=exc)

        return ExternalBusyResult(source=calendar.name, intervals=tuple(intervals))

    def _validate(self, *zones: str, config: SlotConfig) -> Tuple[str, ...]:
        validated = tuple(self._tzdb.validate(zone) for zone in zones)
        if not isinstance(config, SlotConfig):
            raise InvalidConfig("config", f"expected SlotConfig, got {type(config).__name__}")
        return validated

    def _calculator(self, profile_id: str, data: _ProfileData) -> AvailabilityCalculator:
        calculator = AvailabilityCalculator(
            data.pattern, data.exceptions, tzdb=self._tzdb, clock=self._clock
        )
        if not calculator.resolver.has_pattern:
            logger.info("Profile %s has no weekly pattern; treating as no availability", profile_id)
        return calculator

    @staticmethod
    def _minute_cutoffs(config: SlotConfig, now: DateTime) -> Tuple[DateTime, DateTime]:
        """Cutoffs wide enough for every ``now`` sharing this cache minute."""
        minute = now.start_of("minute")
        return config.earliest_bookable(minute), config.latest_bookable(minute.add(minutes=1))

    @staticmethod
    def _bookable(
        slots: Sequence[AvailableSlot], config: SlotConfig, now: DateTime
    ) -> List[AvailableSlot]:
        earliest, latest = config.earliest_bookable(now), config.latest_bookable(now)
        return [slot for slot in slots if earliest <= slot.start <= latest]

    def _cache_key(
        self,
        mode: str,
        profile_id: str,
        first_day: Date,
        last_day: Date,
        organizer_tz: str,
        viewer_tz: str,
        config: SlotConfig,
        data: _ProfileData,
        now: DateTime,
    ) -> Tuple:
        # Minute resolution keeps keys reusable while "now" moves forward.
        minute = now.int_timestamp // 60
        return (
            mode, profile_id, first_day, last_day, organizer_tz, viewer_tz,
            config, data.fingerprint(), minute,
        )

    def _cached(self, key: Tuple):
        if self._cache is None:
            return None
        return self._cache.get(key)

    def _store(self, key: Tuple, value) -> None:
        if self._cache is not None:
            self._cache.set(key, value)

    @staticmethod
    def _log_degraded(profile_id: str, busy: BusySnapshot) -> None:
        if busy.degraded:
            logger.info(
                "Availability for %s is degraded; failed sources: %s",
                profile_id,
                ", ".join(busy.failed_sources),
            )
