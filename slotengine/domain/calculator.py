"""
Availability calculator - the public entry point of the engine.

Combines window resolution, busy aggregation and slot generation, applies
the advance-notice and horizon cutoffs, and attaches organizer and viewer
wall-clock readings to every slot.

The calculator is stateless apart from the immutable pattern it was built
with; ``now`` is read once per call (or passed in) and every comparison
against it happens in UTC.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pendulum
from pendulum import Date, DateTime

from .busy import merge_busy_intervals
from .exceptions import InvalidConfig
from .models import (
    AvailabilityException,
    AvailableSlot,
    BusyInterval,
    CalendarDay,
    SlotConfig,
    TimeRange,
    WeeklyAvailability,
    as_date,
    to_utc,
)
from .slot_generator import SlotGenerator
from .timezones import (
    DEFAULT_TIMEZONE_DATABASE,
    TimezoneDatabase,
    day_bounds,
    to_local,
    today_in,
)
from .windows import WindowResolver

logger = logging.getLogger(__name__)

BusyInput = Iterable[Union[BusyInterval, TimeRange]]
MonthSummary = Dict[Date, bool]
MonthSlots = Dict[Date, List[AvailableSlot]]

MIN_YEAR = 1900
MAX_YEAR = 2999


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


def first_of_month(year: int, month: int) -> Date:
    """
    First date of ``year``-``month``.

    Raises:
        InvalidConfig: If the month or year is out of range
    """
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidConfig("month", f"must be between 1 and 12, got {month!r}")
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidConfig("year", f"must be between {MIN_YEAR} and {MAX_YEAR}, got {year!r}")
    return pendulum.date(year, month, 1)


class AvailabilityCalculator:
    """
    Computes bookable slots for one organizer.

    Args:
        weekly_pattern: The organizer's weekly working hours
        exceptions: Date-specific overrides
        tzdb: Timezone capability (IANA via pendulum by default)
        clock: Returns the current instant when ``now`` is not supplied
    """

    def __init__(
        self,
        weekly_pattern: Sequence[WeeklyAvailability],
        exceptions: Sequence[AvailabilityException] = (),
        tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
        clock: Callable[[], DateTime] = _utc_now,
    ):
        self.resolver = WindowResolver(weekly_pattern, exceptions)
        self.tzdb = tzdb
        self._clock = clock

    def available_slots(
        self,
        day: Date,
        organizer_tz: str,
        viewer_tz: str,
        busy_intervals: BusyInput,
        config: SlotConfig,
        now: Optional[DateTime] = None,
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> List[AvailableSlot]:
        """
        Bookable slots on organizer-local date ``day``.

        The set of returned instants does not depend on ``viewer_tz``; it
        only decides the ``viewer`` reading attached to each slot.
        ``not_before``/``not_after`` replace the cutoffs derived from
        ``config`` and ``now`` when given.

        Raises:
            InvalidTimezone: If either zone is unknown
            InvalidConfig: If ``config`` is not a SlotConfig
        """
        organizer_tz, viewer_tz = self._validate(organizer_tz, viewer_tz, config=config)
        earliest, latest = self._cutoffs(config, now, not_before, not_after)
        busy = merge_busy_intervals(busy_intervals)
        generator = SlotGenerator(config.duration_minutes, config.buffer_minutes)

        return self._slots_for_day(
            as_date(day), organizer_tz, viewer_tz, busy, generator, earliest, latest
        )

    def slots_for_viewer_date(
        self,
        day: Date,
        organizer_tz: str,
        viewer_tz: str,
        busy_intervals: BusyInput,
        config: SlotConfig,
        now: Optional[DateTime] = None,
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> List[AvailableSlot]:
        """
        Bookable slots whose viewer-local date is ``day``.

        Offsets between two zones can exceed a full day, so the organizer
        dates either side of ``day`` are computed too and then filtered.
        """
        organizer_tz, viewer_tz = self._validate(organizer_tz, viewer_tz, config=config)
        earliest, latest = self._cutoffs(config, now, not_before, not_after)
        busy = merge_busy_intervals(busy_intervals)
        generator = SlotGenerator(config.duration_minutes, config.buffer_minutes)
        day = as_date(day)

        slots: List[AvailableSlot] = []
        for offset in (-1, 0, 1):
            slots.extend(
                slot
                for slot in self._slots_for_day(
                    day.add(days=offset), organizer_tz, viewer_tz, busy, generator, earliest, latest
                )
                if slot.viewer.date == day
            )

        return sorted(slots, key=lambda slot: slot.start)

    def month_availability(
        self,
        year: int,
        month: int,
        organizer_tz: str,
        viewer_tz: str,
        busy_intervals: BusyInput,
        config: SlotConfig,
        eager: bool = False,
        now: Optional[DateTime] = None,
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> Union[MonthSummary, MonthSlots]:
        """
        Availability for every organizer-local date of a month.

        Args:
            eager: Return full slot lists per date instead of a
                has-at-least-one-slot flag
            not_before, not_after: Explicit cutoffs overriding the ones
                derived from ``config`` and ``now``

        Returns:
            Mapping date -> bool, or date -> slots when ``eager``. Dates
            outside the bookable range map to False / [] without being
            computed.

        Raises:
            InvalidConfig: If ``month`` or ``year`` is out of range
        """
        organizer_tz, viewer_tz = self._validate(organizer_tz, viewer_tz, config=config)
        first = first_of_month(year, month)
        earliest, latest = self._cutoffs(config, now, not_before, not_after)
        busy = merge_busy_intervals(busy_intervals)
        generator = SlotGenerator(config.duration_minutes, config.buffer_minutes)

        last = first.end_of("month")
        result: Dict[Date, Union[bool, List[AvailableSlot]]] = {}

        current = first
        while current <= last:
            bounds = day_bounds(current, organizer_tz, self.tzdb)
            outside = bounds.start > latest or bounds.end <= earliest

            if outside:
                result[current] = [] if eager else False
            elif eager:
                result[current] = self._slots_for_day(
                    current, organizer_tz, viewer_tz, busy, generator, earliest, latest
                )
            else:
                windows = self.resolver.windows(current, organizer_tz, self.tzdb)
                result[current] = generator.has_slot(windows, busy, earliest, latest)

            current = current.add(days=1)

        return result

    def calendar_days(
        self,
        year: int,
        month: int,
        viewer_tz: str,
        config: SlotConfig,
        now: Optional[DateTime] = None,
    ) -> List[CalendarDay]:
        """
        Six-week month grid starting on the Sunday on or before the 1st.

        Cheap flags for rendering a date picker; ``has_hours`` only says the
        pattern opens that weekday or date, not that a slot is free.
        """
        (viewer_tz,) = self._validate(viewer_tz, config=config)
        first = first_of_month(year, month)
        now = to_utc(now) if now is not None else to_utc(self._clock())
        today = today_in(viewer_tz, now, self.tzdb)
        last_bookable_date = today.add(days=config.max_advance_days)

        grid_start = first.subtract(days=first.isoweekday() % 7)

        days: List[CalendarDay] = []
        for offset in range(42):
            day = grid_start.add(days=offset)
            days.append(
                CalendarDay(
                    date=day,
                    current_month=day.month == month,
                    past=day < today,
                    today=day == today,
                    within_horizon=day <= last_bookable_date,
                    has_hours=self.resolver.has_hours(day),
                )
            )
        return days

    def _slots_for_day(
        self,
        day: Date,
        organizer_tz: str,
        viewer_tz: str,
        busy: Sequence[TimeRange],
        generator: SlotGenerator,
        earliest: DateTime,
        latest: DateTime,
    ) -> List[AvailableSlot]:
        windows = self.resolver.windows(day, organizer_tz, self.tzdb)
        if not windows:
            return []

        ranges = generator.generate(windows, busy, not_before=earliest, not_after=latest)
        logger.debug("%s: %d window(s), %d slot(s)", day, len(windows), len(ranges))

        return [
            AvailableSlot(
                start=slot.start,
                end=slot.end,
                organizer=to_local(slot.start, organizer_tz, self.tzdb),
                viewer=to_local(slot.start, viewer_tz, self.tzdb),
            )
            for slot in ranges
        ]

    def _cutoffs(
        self,
        config: SlotConfig,
        now: Optional[DateTime],
        not_before: Optional[DateTime] = None,
        not_after: Optional[DateTime] = None,
    ) -> Tuple[DateTime, DateTime]:
        """Read the clock once and derive both booking cutoffs from it in UTC."""
        now = to_utc(now) if now is not None else to_utc(self._clock())
        earliest = config.earliest_bookable(now) if not_before is None else to_utc(not_before)
        latest = config.latest_bookable(now) if not_after is None else to_utc(not_after)
        return earliest, latest

    def _validate(self, *zones: str, config: SlotConfig) -> Tuple[str, ...]:
        validated = tuple(self.tzdb.validate(zone) for zone in zones)
        if not isinstance(config, SlotConfig):
            raise InvalidConfig("config", f"expected SlotConfig, got {type(config).__name__}")
        return validated
