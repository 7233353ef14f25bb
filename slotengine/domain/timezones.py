"""
Timezone conversion between organizer/viewer wall-clock time and UTC instants.

The engine never asks a zone for anything except "what is your UTC offset at
this instant?" (``TimezoneDatabase.offset_for``). Everything else, including
DST gap and overlap handling, is derived from that single capability so the
engine can run against the real IANA database or a fixed table in tests.

Policies:
- DST gap (local time does not exist): move forward to the first instant
  after the gap, i.e. the transition itself.
- DST overlap (local time happens twice): take the earlier occurrence.
"""

from __future__ import annotations

import bisect
from datetime import time
from typing import Dict, List, Mapping, Protocol, Sequence, Tuple, Union

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidTimezone, TimeConversionError
from .models import TimeRange, WallClock, as_date, to_utc


# Zones renamed in the IANA database that organizers may still have stored.
_RENAMED_ZONES = {
    "Europe/Kiev": "Europe/Kyiv",
}

# No real zone changes its offset twice within this distance of a wall-clock time.
_PROBE_SECONDS = 24 * 3600


def normalize_timezone(zone: str) -> str:
    """Map legacy zone names to their current IANA names."""
    return _RENAMED_ZONES.get(zone, zone)


class TimezoneDatabase(Protocol):
    """Capability the engine needs from a timezone database."""

    def validate(self, zone: str) -> str:
        """Return the canonical zone name or raise ``InvalidTimezone``."""

    def offset_for(self, zone: str, instant: DateTime) -> int:
        """Return the zone's UTC offset in seconds at ``instant``."""


class PendulumTimezoneDatabase:
    """IANA timezone database as shipped with pendulum/zoneinfo."""

    def validate(self, zone: str) -> str:
        if not isinstance(zone, str) or not zone.strip():
            raise InvalidTimezone(zone)

        name = normalize_timezone(zone.strip())
        try:
            pendulum.timezone(name)
        except (ValueError, LookupError) as exc:
            raise InvalidTimezone(zone) from exc
        return name

    def offset_for(self, zone: str, instant: DateTime) -> int:
        local = to_utc(instant).in_timezone(normalize_timezone(zone))
        return int(local.utcoffset().total_seconds())


OffsetTable = Union[int, Sequence[Tuple[DateTime, int]]]


class FixedTimezoneTable:
    """
    Deterministic timezone database built from explicit offset transitions.

    Each zone maps either to a constant offset in seconds, or to a list of
    ``(effective_from, offset_seconds)`` pairs. The first pair also covers
    everything before its ``effective_from``.
    """

    def __init__(self, zones: Mapping[str, OffsetTable]):
        self._zones: Dict[str, Tuple[List[int], List[int]]] = {}

        for name, table in zones.items():
            if isinstance(table, int):
                self._zones[name] = ([0], [table])
                continue

            entries = sorted(
                ((to_utc(effective).int_timestamp, offset) for effective, offset in table),
                key=lambda entry: entry[0],
            )
            if not entries:
                raise ValueError(f"Zone {name} has an empty offset table")
            self._zones[name] = ([ts for ts, _ in entries], [offset for _, offset in entries])

    def validate(self, zone: str) -> str:
        if zone not in self._zones:
            raise InvalidTimezone(zone)
        return zone

    def offset_for(self, zone: str, instant: DateTime) -> int:
        try:
            starts, offsets = self._zones[zone]
        except KeyError:
            raise TimeConversionError(f"No offset table for zone {zone!r}") from None

        index = bisect.bisect_right(starts, to_utc(instant).int_timestamp) - 1
        return offsets[max(index, 0)]


DEFAULT_TIMEZONE_DATABASE = PendulumTimezoneDatabase()


def _wall_clock_as_utc(day: Date, local_time: time) -> DateTime:
    """Read a wall-clock reading as if it were UTC; the offset is applied later."""
    return pendulum.datetime(
        day.year,
        day.month,
        day.day,
        local_time.hour,
        local_time.minute,
        local_time.second,
        tz="UTC",
    )


def _first_instant_after_gap(
    wall: DateTime,
    zone: str,
    tzdb: TimezoneDatabase,
    offset_before: int,
    offset_after: int,
) -> DateTime:
    """
    Binary search the transition instant that skips over ``wall``.

    Read with the pre-gap offset, ``wall`` lies after the transition; read
    with the post-gap offset it lies before it.
    """
    low = wall.subtract(seconds=offset_after).int_timestamp
    high = wall.subtract(seconds=offset_before).int_timestamp

    while high - low > 1:
        middle = (low + high) // 2
        if tzdb.offset_for(zone, pendulum.from_timestamp(middle, tz="UTC")) == offset_before:
            low = middle
        else:
            high = middle

    return pendulum.from_timestamp(high, tz="UTC")


def to_instant(
    day: Date,
    local_time: time,
    zone: str,
    tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
) -> DateTime:
    """
    Convert a wall-clock date and time in ``zone`` into a UTC instant.

    Args:
        day: Calendar date in ``zone``
        local_time: Wall-clock time on that date
        zone: Zone name understood by ``tzdb``
        tzdb: Timezone capability

    Returns:
        The UTC instant. Times inside a DST gap resolve to the end of the
        gap; times inside a DST overlap resolve to the earlier occurrence.

    Raises:
        TimeConversionError: If the zone's offsets cannot place the time
    """
    wall = _wall_clock_as_utc(as_date(day), local_time)

    offset_before = tzdb.offset_for(zone, wall.subtract(seconds=_PROBE_SECONDS))
    offset_after = tzdb.offset_for(zone, wall.add(seconds=_PROBE_SECONDS))

    matches = []
    for offset in {offset_before, offset_after}:
        candidate = wall.subtract(seconds=offset)
        if tzdb.offset_for(zone, candidate) == offset:
            matches.append(candidate)

    if matches:
        return min(matches)

    if offset_after > offset_before:
        return _first_instant_after_gap(wall, zone, tzdb, offset_before, offset_after)

    raise TimeConversionError(
        f"Cannot place {day} {local_time} in {zone}: offsets {offset_before}/{offset_after}"
    )


def to_local(
    instant: DateTime,
    zone: str,
    tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
) -> WallClock:
    """Read ``instant`` off a wall clock in ``zone``. Always succeeds for a known zone."""
    offset = tzdb.offset_for(zone, instant)
    shifted = to_utc(instant).add(seconds=offset)
    return WallClock(
        date=pendulum.date(shifted.year, shifted.month, shifted.day),
        time=time(shifted.hour, shifted.minute, shifted.second),
        zone=zone,
        utc_offset=offset,
    )


def day_bounds(
    day: Date,
    zone: str,
    tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
) -> TimeRange:
    """Return the UTC span covered by calendar date ``day`` in ``zone``."""
    day = as_date(day)
    return TimeRange(
        start=to_instant(day, time(0, 0), zone, tzdb),
        end=to_instant(day.add(days=1), time(0, 0), zone, tzdb),
    )


def today_in(
    zone: str,
    now: DateTime,
    tzdb: TimezoneDatabase = DEFAULT_TIMEZONE_DATABASE,
) -> Date:
    """Calendar date in ``zone`` at instant ``now``."""
    return to_local(now, zone, tzdb).date
