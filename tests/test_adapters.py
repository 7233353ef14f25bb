"""
Tests for the profile store and calendar adapters.
"""

import asyncio
import json

import pendulum
import pytest
import requests

from slotengine.adapters import (
    GraphCalendarSource,
    JsonCalendarSource,
    YamlProfileStore,
    build_calendar_sources,
)
from slotengine.adapters import graph_calendar
from slotengine.config import AppConfig
from slotengine.domain.exceptions import FetchError, ProfileNotFound
from slotengine.domain.models import BusySource, SlotConfig
from slotengine.services import AvailabilityService

START = pendulum.datetime(2024, 6, 3, tz="UTC")
END = pendulum.datetime(2024, 6, 4, tz="UTC")


def _config() -> AppConfig:
    return AppConfig(
        profiles=[
            {
                "id": "alice",
                "preset": "9-5",
                "exceptions": [
                    {"date": "2024-06-03", "is_available": False},
                    {"date": "2024-07-01", "is_available": False},
                ],
                "bookings": [
                    {"id": "in-range", "start": "2024-06-03T10:00:00Z", "end": "2024-06-03T11:00:00Z"},
                    {"id": "later", "start": "2024-06-10T10:00:00Z", "end": "2024-06-10T11:00:00Z"},
                ],
            }
        ],
        calendars=[
            {"name": "export", "kind": "json", "path": "/tmp/export.json"},
            {"name": "outlook", "kind": "graph", "schedule_id": "alice@example.com", "profiles": ["alice"]},
        ],
    )


class TestYamlProfileStore:
    """Tests for YamlProfileStore."""

    def test_weekly_pattern(self):
        """Presets expand to weekly entries."""
        store = YamlProfileStore(_config())

        pattern = asyncio.run(store.get_weekly_pattern("alice"))

        assert [entry.day_of_week for entry in pattern] == [1, 2, 3, 4, 5]

    def test_exceptions_filtered_by_date(self):
        """Only exceptions inside the requested dates are returned."""
        store = YamlProfileStore(_config())

        exceptions = asyncio.run(
            store.get_exceptions("alice", pendulum.date(2024, 6, 1), pendulum.date(2024, 6, 30))
        )

        assert [item.date for item in exceptions] == [pendulum.date(2024, 6, 3)]

    def test_bookings_filtered_by_overlap(self):
        """Only bookings overlapping the range are returned."""
        store = YamlProfileStore(_config())

        bookings = asyncio.run(store.get_internal_busy_intervals("alice", START, END))

        assert [booking.origin_id for booking in bookings] == ["in-range"]
        assert bookings[0].source is BusySource.INTERNAL_BOOKING

    def test_unknown_profile(self):
        """Unknown ids raise ProfileNotFound."""
        store = YamlProfileStore(_config())

        with pytest.raises(ProfileNotFound):
            asyncio.run(store.get_weekly_pattern("carol"))


class TestJsonCalendarSource:
    """Tests for JsonCalendarSource."""

    def _write(self, tmp_path, events):
        path = tmp_path / "events.json"
        path.write_text(json.dumps(events), encoding="utf-8")
        return path

    def test_events_filtered_by_profile_and_range(self, tmp_path):
        """Events of other profiles or outside the range are ignored."""
        path = self._write(
            tmp_path,
            [
                {"id": "a", "profile": "alice", "start": "2024-06-03T10:00:00+02:00", "end": "2024-06-03T11:00:00+02:00"},
                {"id": "b", "profile": "bob", "start": "2024-06-03T10:00:00Z", "end": "2024-06-03T11:00:00Z"},
                {"id": "c", "start": "2024-06-03T14:00:00", "end": "2024-06-03T15:00:00"},
                {"id": "d", "profile": "alice", "start": "2024-06-05T10:00:00Z", "end": "2024-06-05T11:00:00Z"},
            ],
        )
        source = JsonCalendarSource("export", path)

        busy = asyncio.run(source.get_busy_intervals("alice", START, END))

        assert [interval.origin_id for interval in busy] == ["a", "c"]
        assert busy[0].start == pendulum.datetime(2024, 6, 3, 8, tz="UTC")
        assert busy[1].start == pendulum.datetime(2024, 6, 3, 14, tz="UTC")
        assert all(interval.source is BusySource.EXTERNAL_CALENDAR for interval in busy)

    def test_invalid_events_are_skipped(self, tmp_path, caplog):
        """Broken events are logged and skipped, the rest still count."""
        path = self._write(
            tmp_path,
            [
                {"id": "no-end", "start": "2024-06-03T10:00:00Z"},
                {"id": "garbage", "start": "soon", "end": "later"},
                {"id": "backwards", "start": "2024-06-03T12:00:00Z", "end": "2024-06-03T11:00:00Z"},
                "not an event",
                {"id": "ok", "start": "2024-06-03T09:00:00Z", "end": "2024-06-03T09:30:00Z"},
            ],
        )

        busy = asyncio.run(JsonCalendarSource("export", path).get_busy_intervals("alice", START, END))

        assert [interval.origin_id for interval in busy] == ["ok"]
        assert "skipping" in caplog.text

    def test_missing_file(self, tmp_path):
        """A missing export is a fetch failure."""
        source = JsonCalendarSource("export", tmp_path / "missing.json")

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(source.get_busy_intervals("alice", START, END))

        assert excinfo.value.source == "export"

    def test_invalid_json(self, tmp_path):
        """Unparseable files are fetch failures."""
        path = tmp_path / "events.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(FetchError, match="invalid JSON"):
            asyncio.run(JsonCalendarSource("export", path).get_busy_intervals("alice", START, END))

    def test_not_a_list(self, tmp_path):
        """The file must hold a list of events."""
        path = self._write(tmp_path, {"events": []})

        with pytest.raises(FetchError, match="list of events"):
            asyncio.run(JsonCalendarSource("export", path).get_busy_intervals("alice", START, END))


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self._payload


class TestGraphCalendarSource:
    """Tests for GraphCalendarSource."""

    def _source(self):
        return GraphCalendarSource("outlook", "alice@example.com", access_token_env="TEST_GRAPH_TOKEN")

    def test_missing_token(self, monkeypatch):
        """Without a token the calendar fails with FetchError."""
        monkeypatch.delenv("TEST_GRAPH_TOKEN", raising=False)

        with pytest.raises(FetchError, match="TEST_GRAPH_TOKEN"):
            asyncio.run(self._source().get_busy_intervals("alice", START, END))

    def test_parses_busy_items(self, monkeypatch):
        """Busy-like statuses become intervals; free time is ignored."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        captured = {}

        def fake_post(url, headers, json, timeout):
            captured.update(url=url, headers=headers, json=json, timeout=timeout)
            return FakeResponse(
                {
                    "value": [
                        {
                            "scheduleId": "alice@example.com",
                            "scheduleItems": [
                                {
                                    "status": "busy",
                                    "start": {"dateTime": "2024-06-03T10:00:00", "timeZone": "UTC"},
                                    "end": {"dateTime": "2024-06-03T11:00:00", "timeZone": "UTC"},
                                },
                                {
                                    "status": "Tentative",
                                    "start": {"dateTime": "2024-06-03T14:00:00", "timeZone": "Europe/Berlin"},
                                    "end": {"dateTime": "2024-06-03T15:00:00", "timeZone": "Europe/Berlin"},
                                },
                                {
                                    "status": "free",
                                    "start": {"dateTime": "2024-06-03T16:00:00", "timeZone": "UTC"},
                                    "end": {"dateTime": "2024-06-03T17:00:00", "timeZone": "UTC"},
                                },
                                {"status": "oof", "start": {"timeZone": "UTC"}},
                            ],
                        }
                    ]
                }
            )

        monkeypatch.setattr(graph_calendar.requests, "post", fake_post)

        busy = asyncio.run(self._source().get_busy_intervals("alice", START, END))

        assert [(interval.start.hour, interval.end.hour) for interval in busy] == [(10, 11), (12, 13)]
        assert captured["headers"]["Authorization"] == "Bearer secret"
        assert captured["json"]["schedules"] == ["alice@example.com"]
        assert captured["json"]["startTime"] == {"dateTime": "2024-06-03T00:00:00", "timeZone": "UTC"}

    def test_http_error(self, monkeypatch):
        """Transport and HTTP errors become FetchError."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        monkeypatch.setattr(
            graph_calendar.requests, "post", lambda *args, **kwargs: FakeResponse({}, status_code=503)
        )

        with pytest.raises(FetchError, match="Microsoft Graph"):
            asyncio.run(self._source().get_busy_intervals("alice", START, END))

    def test_schedule_error(self, monkeypatch):
        """Per-schedule errors in the response fail the fetch."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        monkeypatch.setattr(
            graph_calendar.requests,
            "post",
            lambda *args, **kwargs: FakeResponse(
                {"value": [{"scheduleId": "alice@example.com", "error": {"message": "No access"}}]}
            ),
        )

        with pytest.raises(FetchError, match="No access"):
            asyncio.run(self._source().get_busy_intervals("alice", START, END))

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"value": "nothing"},
            {"value": ["not a schedule"]},
            {"value": [{"scheduleId": "alice@example.com", "error": "throttled"}]},
            {"value": [{"scheduleId": "alice@example.com", "scheduleItems": "busy"}]},
        ],
    )
    def test_malformed_response(self, monkeypatch, payload):
        """Unexpected response shapes fail the fetch with FetchError."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        monkeypatch.setattr(graph_calendar.requests, "post", lambda *args, **kwargs: FakeResponse(payload))

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(self._source().get_busy_intervals("alice", START, END))

        assert excinfo.value.source == "outlook"

    def test_malformed_items_are_skipped(self, monkeypatch):
        """Items that are not objects, or have broken times, are skipped."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        payload = {
            "value": [
                {
                    "scheduleId": "alice@example.com",
                    "scheduleItems": [
                        "busy",
                        {"status": "busy", "start": "2024-06-03T10:00:00", "end": "2024-06-03T11:00:00"},
                        {
                            "status": "busy",
                            "start": {"dateTime": "2024-06-03T12:00:00", "timeZone": "UTC"},
                            "end": {"dateTime": "2024-06-03T13:00:00", "timeZone": "UTC"},
                        },
                    ],
                }
            ]
        }
        monkeypatch.setattr(graph_calendar.requests, "post", lambda *args, **kwargs: FakeResponse(payload))

        busy = asyncio.run(self._source().get_busy_intervals("alice", START, END))

        assert [(interval.start.hour, interval.end.hour) for interval in busy] == [(12, 13)]

    def test_malformed_response_degrades_availability(self, monkeypatch):
        """A broken Graph answer marks the result degraded instead of failing it."""
        monkeypatch.setenv("TEST_GRAPH_TOKEN", "secret")
        monkeypatch.setattr(
            graph_calendar.requests,
            "post",
            lambda *args, **kwargs: FakeResponse(
                {"value": [{"scheduleId": "alice@example.com", "error": "throttled"}]}
            ),
        )
        store = YamlProfileStore(_config())
        service = AvailabilityService(store, store, calendars=[self._source()])

        result = asyncio.run(
            service.available_slots(
                profile_id="alice",
                day=pendulum.date(2024, 6, 4),
                organizer_tz="UTC",
                viewer_tz="UTC",
                config=SlotConfig(duration_minutes=30),
                now=pendulum.datetime(2024, 6, 1, tz="UTC"),
            )
        )

        assert result.degraded
        assert result.failed_sources == ("outlook",)
        assert len(result.slots) == 16


class TestBuildCalendarSources:
    """Tests for wiring calendars from config."""

    def test_kinds(self):
        """Each configured calendar becomes the matching adapter."""
        json_source, graph_source = build_calendar_sources(_config())

        assert isinstance(json_source, JsonCalendarSource)
        assert json_source.applies_to("anyone")
        assert isinstance(graph_source, GraphCalendarSource)
        assert graph_source.schedule_id == "alice@example.com"
        assert not graph_source.applies_to("bob")
