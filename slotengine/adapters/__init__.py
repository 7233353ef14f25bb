"""
Adapters layer - profile storage and external calendars.
"""

from typing import List

from ..config import AppConfig, CalendarSourceConfig
from .graph_calendar import GraphCalendarSource
from .json_calendar import JsonCalendarSource
from .yaml_profile_store import YamlProfileStore


def calendar_from_config(source: CalendarSourceConfig):
    """Instantiate the adapter for one configured calendar."""
    if source.kind == "graph":
        return GraphCalendarSource(
            name=source.name,
            schedule_id=source.schedule_id,
            access_token_env=source.access_token_env,
            timeout_seconds=source.timeout_seconds,
            profiles=source.profiles,
        )
    return JsonCalendarSource(name=source.name, path=source.path, profiles=source.profiles)


def build_calendar_sources(config: AppConfig) -> List:
    return [calendar_from_config(source) for source in config.calendars]


__all__ = [
    "GraphCalendarSource",
    "JsonCalendarSource",
    "YamlProfileStore",
    "build_calendar_sources",
    "calendar_from_config",
]
