"""
External calendar read from a JSON export file.

Useful for offline runs and tests without any calendar credentials. The
file holds a list of events:

    [
        {"id": "evt-1", "profile": "alice",
         "start": "2024-06-03T10:00:00+02:00", "end": "2024-06-03T11:00:00+02:00"}
    ]

Events without a ``profile`` key apply to every profile the calendar serves.
Times without an offset are read as UTC.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Sequence

import pendulum
from pendulum import DateTime

from ..domain.exceptions import FetchError
from ..domain.models import BusyInterval, BusySource

logger = logging.getLogger(__name__)


def _parse_instant(value: str) -> DateTime:
    parsed = pendulum.parse(value, tz="UTC")
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Not a date and time: {value!r}")
    return parsed


class JsonCalendarSource:
    """Busy-interval source that loads events from a JSON file on every fetch."""

    def __init__(self, name: str, path: Path, profiles: Sequence[str] = ()):
        self.name = name
        self.path = Path(path)
        self.profiles = list(profiles)

    def applies_to(self, profile_id: str) -> bool:
        return not self.profiles or profile_id in self.profiles

    async def get_busy_intervals(
        self, profile_id: str, start: DateTime, end: DateTime
    ) -> List[BusyInterval]:
        """
        Events of ``profile_id`` overlapping ``start``..``end``.

        Raises:
            FetchError: If the file is missing or is not a JSON list
        """
        events = await asyncio.to_thread(self._load_events)
        busy: List[BusyInterval] = []

        for event in events:
            if not isinstance(event, dict):
                logger.warning("%s: skipping non-object event %r", self.name, event)
                continue
            if event.get("profile", profile_id) != profile_id:
                continue

            try:
                interval = BusyInterval(
                    start=_parse_instant(event["start"]),
                    end=_parse_instant(event["end"]),
                    source=BusySource.EXTERNAL_CALENDAR,
                    origin_id=str(event.get("id", "")),
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("%s: skipping invalid event %r: %s", self.name, event, exc)
                continue

            if interval.start < end and interval.end > start:
                busy.append(interval)

        return busy

    def _load_events(self) -> List[Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise FetchError(self.name, f"cannot read {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise FetchError(self.name, f"invalid JSON in {self.path}: {exc}") from exc

        if not isinstance(data, list):
            raise FetchError(self.name, f"{self.path} must contain a list of events")
        return data
