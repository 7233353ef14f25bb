"""
Microsoft Graph calendar as an external busy-interval source.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Sequence

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import FetchError
from ..domain.models import BusyInterval, BusySource

logger = logging.getLogger(__name__)

BUSY_STATUSES = ("busy", "tentative", "oof", "workingelsewhere")


class GraphCalendarSource:
    """
    Fetches free/busy information through the /calendar/getSchedule endpoint.

    The access token is read from an environment variable at fetch time;
    obtaining it is left to whoever runs the engine.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        name: str,
        schedule_id: str,
        access_token_env: str = "SLOTENGINE_GRAPH_TOKEN",
        timeout_seconds: float = 30.0,
        profiles: Sequence[str] = (),
    ):
        self.name = name
        self.schedule_id = schedule_id
        self.access_token_env = access_token_env
        self.timeout_seconds = timeout_seconds
        self.profiles = list(profiles)

    def applies_to(self, profile_id: str) -> bool:
        return not self.profiles or profile_id in self.profiles

    async def get_busy_intervals(
        self, profile_id: str, start: DateTime, end: DateTime
    ) -> List[BusyInterval]:
        """
        Busy time of the configured schedule between ``start`` and ``end``.

        Raises:
            FetchError: If no token is available or the API call fails
        """
        token = os.environ.get(self.access_token_env)
        if not token:
            raise FetchError(self.name, f"environment variable {self.access_token_env} is not set")

        data = await asyncio.to_thread(self._get_schedule, token, start, end)
        return self._parse_schedule_response(data)

    def _get_schedule(self, token: str, start: DateTime, end: DateTime) -> Dict[str, Any]:
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendar/getSchedule"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        payload = {
            "schedules": [self.schedule_id],
            "startTime": {
                "dateTime": start.in_timezone("UTC").format("YYYY-MM-DD[T]HH:mm:ss"),
                "timeZone": "UTC",
            },
            "endTime": {
                "dateTime": end.in_timezone("UTC").format("YYYY-MM-DD[T]HH:mm:ss"),
                "timeZone": "UTC",
            },
            "availabilityViewInterval": 60,
        }

        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout_seconds)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as exc:
            raise FetchError(self.name, f"failed to fetch schedule from Microsoft Graph: {exc}") from exc
        except ValueError as exc:
            raise FetchError(self.name, f"invalid response from Microsoft Graph: {exc}") from exc

    def _parse_schedule_response(self, response_data: Dict[str, Any]) -> List[BusyInterval]:
        """
        Parse the getSchedule API response into busy intervals.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "start": {"dateTime": "...", "timeZone": "UTC"},
                            "end": {"dateTime": "...", "timeZone": "UTC"}
                        }
                    ]
                }
            ]
        }
        """
        if not isinstance(response_data, dict):
            raise self._malformed("body is not an object")

        schedules = response_data.get("value", [])
        if not isinstance(schedules, list):
            raise self._malformed("'value' is not a list")

        busy: List[BusyInterval] = []

        for schedule in schedules:
            if not isinstance(schedule, dict):
                raise self._malformed("schedule is not an object")

            if "error" in schedule:
                error = schedule["error"]
                message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
                raise FetchError(self.name, f"schedule {schedule.get('scheduleId')}: {message}")

            items = schedule.get("scheduleItems", [])
            if not isinstance(items, list):
                raise self._malformed("'scheduleItems' is not a list")

            for item in items:
                if not isinstance(item, dict):
                    logger.warning("%s: skipping schedule item that is not an object", self.name)
                    continue
                if str(item.get("status", "")).lower() not in BUSY_STATUSES:
                    continue

                try:
                    busy.append(
                        BusyInterval(
                            start=self._parse_datetime(item["start"]),
                            end=self._parse_datetime(item["end"]),
                            source=BusySource.EXTERNAL_CALENDAR,
                            origin_id=self.name,
                        )
                    )
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("%s: could not parse schedule item: %s", self.name, exc)
                    continue

        logger.debug("%s: %d busy item(s)", self.name, len(busy))
        return busy

    def _malformed(self, detail: str) -> FetchError:
        return FetchError(self.name, f"unexpected response from Microsoft Graph: {detail}")

    @staticmethod
    def _parse_datetime(value: Dict[str, str]) -> DateTime:
        """Parse a Graph ``{dateTime, timeZone}`` pair into a UTC instant."""
        if not isinstance(value, dict):
            raise ValueError(f"Expected a dateTime/timeZone object, got {value!r}")
        parsed = pendulum.parse(value["dateTime"], tz=value.get("timeZone", "UTC"))
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Could not parse datetime: {value['dateTime']}")
        return parsed.in_timezone("UTC")
