"""
Configuration management using Pydantic models loaded from YAML.
"""

import re
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import InvalidConfig, ProfileNotFound
from .domain.models import (
    MAX_ADVANCE_DAYS_CAP,
    MAX_BUFFER_MINUTES,
    MAX_DURATION_MINUTES,
    MAX_MIN_ADVANCE_HOURS,
    AvailabilityBreak,
    AvailabilityException,
    BusyInterval,
    BusySource,
    SlotConfig,
    WeeklyAvailability,
    weekly_preset,
)
from .domain.timezones import PendulumTimezoneDatabase

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*(?:min)?\s*$", re.IGNORECASE)

_TIMEZONES = PendulumTimezoneDatabase()


def parse_duration(value: Union[int, str]) -> int:
    """
    Parse a meeting duration such as ``30``, ``"45"`` or ``"60 min"``.

    Raises:
        InvalidConfig: If the value is not a positive number of minutes
    """
    if isinstance(value, bool):
        raise InvalidConfig("duration_minutes", f"invalid duration {value!r}")

    if isinstance(value, int):
        minutes = value
    else:
        match = _DURATION_PATTERN.match(str(value))
        if not match:
            raise InvalidConfig("duration_minutes", f"invalid duration {value!r}")
        minutes = int(match.group(1))

    if minutes <= 0:
        raise InvalidConfig("duration_minutes", "must be greater than zero")
    return minutes


def _coerce_wall_time(value: Any) -> Any:
    """
    Accept wall-clock times written unquoted in YAML.

    PyYAML reads ``09:30`` as the base-60 integer 570, i.e. minutes since
    midnight; turn that back into a time before pydantic sees it.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        hours, minutes = divmod(value, 60)
        if not 0 <= hours <= 23:
            raise ValueError(f"Cannot read {value} as a time of day")
        return time(hours, minutes)
    return value


class SlotDefaults(BaseModel):
    """Default slot rules for booking pages."""
    duration_minutes: int = 30
    buffer_minutes: int = 0
    min_advance_hours: int = 0
    max_advance_days: int = 90

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure meeting duration is positive and at most a day."""
        if not 0 < value <= MAX_DURATION_MINUTES:
            raise ValueError(f"duration_minutes must be between 1 and {MAX_DURATION_MINUTES}")
        return value

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if not 0 <= value <= MAX_BUFFER_MINUTES:
            raise ValueError(f"buffer_minutes must be between 0 and {MAX_BUFFER_MINUTES}")
        return value

    @field_validator("min_advance_hours")
    @classmethod
    def validate_notice(cls, value: int) -> int:
        if not 0 <= value <= MAX_MIN_ADVANCE_HOURS:
            raise ValueError(f"min_advance_hours must be between 0 and {MAX_MIN_ADVANCE_HOURS}")
        return value

    @field_validator("max_advance_days")
    @classmethod
    def validate_horizon(cls, value: int) -> int:
        """Cap the booking horizon so month views stay bounded."""
        if not 0 < value <= MAX_ADVANCE_DAYS_CAP:
            raise ValueError(f"max_advance_days must be between 1 and {MAX_ADVANCE_DAYS_CAP}")
        return value

    def to_slot_config(self, profile_id: Optional[str] = None, **overrides: Any) -> SlotConfig:
        """
        Build the engine's SlotConfig, optionally overriding individual rules.

        Overrides set to None are ignored, so CLI options can be passed through.
        """
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return SlotConfig(profile_id=profile_id, **values)


class BreakConfig(BaseModel):
    """A recurring break inside one weekday."""
    start: time
    end: time
    label: Optional[str] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_times(cls, value: Any) -> Any:
        return _coerce_wall_time(value)

    def to_domain(self) -> AvailabilityBreak:
        return AvailabilityBreak(start_time=self.start, end_time=self.end, label=self.label)


class WeeklyDayConfig(BaseModel):
    """Working hours for one ISO weekday (1 = Monday)."""
    day_of_week: int
    is_available: bool = True
    start: Optional[time] = None
    end: Optional[time] = None
    breaks: List[BreakConfig] = Field(default_factory=list)

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_times(cls, value: Any) -> Any:
        return _coerce_wall_time(value)

    @model_validator(mode="after")
    def validate_day(self) -> "WeeklyDayConfig":
        """Run the domain invariants (hours order, breaks inside hours)."""
        self.to_domain()
        return self

    def to_domain(self) -> WeeklyAvailability:
        return WeeklyAvailability(
            day_of_week=self.day_of_week,
            is_available=self.is_available,
            start_time=self.start,
            end_time=self.end,
            breaks=tuple(brk.to_domain() for brk in self.breaks),
        )


class ExceptionConfig(BaseModel):
    """A date-specific override of the weekly pattern."""
    date: date
    is_available: bool = False
    start: Optional[time] = None
    end: Optional[time] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_times(cls, value: Any) -> Any:
        return _coerce_wall_time(value)

    @model_validator(mode="after")
    def validate_exception(self) -> "ExceptionConfig":
        self.to_domain()
        return self

    def to_domain(self) -> AvailabilityException:
        return AvailabilityException(
            date=self.date,
            is_available=self.is_available,
            start_time=self.start,
            end_time=self.end,
        )


class BookingConfig(BaseModel):
    """A confirmed booking that blocks the organizer's time."""
    id: str = ""
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "BookingConfig":
        self.to_domain()
        return self

    def to_domain(self) -> BusyInterval:
        return BusyInterval(
            start=self.start,
            end=self.end,
            source=BusySource.INTERNAL_BOOKING,
            origin_id=self.id,
        )


class ProfileConfig(BaseModel):
    """An organizer profile and its availability settings."""
    id: str
    name: str = ""
    timezone: Optional[str] = None
    preset: Optional[str] = None
    weekly: List[WeeklyDayConfig] = Field(default_factory=list)
    exceptions: List[ExceptionConfig] = Field(default_factory=list)
    bookings: List[BookingConfig] = Field(default_factory=list)
    defaults: Optional[SlotDefaults] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _TIMEZONES.validate(value)

    @model_validator(mode="after")
    def validate_pattern(self) -> "ProfileConfig":
        """A preset and explicit weekly entries are mutually exclusive."""
        if self.preset and self.weekly:
            raise ValueError(f"Profile {self.id}: use either 'preset' or 'weekly', not both")
        if self.preset:
            weekly_preset(self.preset)
        return self

    def display_name(self) -> str:
        return self.name or self.id

    def weekly_pattern(self) -> List[WeeklyAvailability]:
        if self.preset:
            return weekly_preset(self.preset)
        return [day.to_domain() for day in self.weekly]


class CalendarSourceConfig(BaseModel):
    """An external calendar that contributes busy time."""
    name: str
    kind: Literal["json", "graph"] = "json"
    path: Optional[Path] = None
    schedule_id: Optional[str] = None
    access_token_env: str = "SLOTENGINE_GRAPH_TOKEN"
    timeout_seconds: float = 30.0
    profiles: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_kind(self) -> "CalendarSourceConfig":
        """Each calendar kind needs its own location setting."""
        if self.kind == "json" and self.path is None:
            raise ValueError(f"Calendar {self.name}: json calendars need a 'path'")
        if self.kind == "graph" and not self.schedule_id:
            raise ValueError(f"Calendar {self.name}: graph calendars need a 'schedule_id'")
        return self

    def applies_to(self, profile_id: str) -> bool:
        """Calendars without a profile list apply to every profile."""
        return not self.profiles or profile_id in self.profiles


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    defaults: SlotDefaults = Field(default_factory=SlotDefaults)
    profiles: List[ProfileConfig] = Field(default_factory=list)
    calendars: List[CalendarSourceConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _TIMEZONES.validate(value)

    @field_validator("profiles")
    @classmethod
    def validate_profiles(cls, value: List[ProfileConfig]) -> List[ProfileConfig]:
        """Ensure profile ids are unique."""
        seen: set[str] = set()
        for profile in value:
            if profile.id in seen:
                raise ValueError(f"Duplicate profile id detected: {profile.id}")
            seen.add(profile.id)
        return value

    @field_validator("calendars")
    @classmethod
    def validate_calendars(cls, value: List[CalendarSourceConfig]) -> List[CalendarSourceConfig]:
        """Ensure calendar names are unique."""
        seen: set[str] = set()
        for calendar in value:
            if calendar.name in seen:
                raise ValueError(f"Duplicate calendar name detected: {calendar.name}")
            seen.add(calendar.name)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative calendar paths are relative to the config file.
        for calendar in config.calendars:
            if calendar.path is not None and not calendar.path.is_absolute():
                calendar.path = config_path.parent / calendar.path

        return config

    def find_profile(self, profile_id: str) -> Optional[ProfileConfig]:
        """Find a profile by its id."""
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def get_profile(self, profile_id: str) -> ProfileConfig:
        """
        Return the profile with ``profile_id``.

        Raises:
            ProfileNotFound: If no such profile is configured
        """
        profile = self.find_profile(profile_id)
        if profile is None:
            raise ProfileNotFound(profile_id)
        return profile

    def profile_timezone(self, profile: ProfileConfig) -> str:
        """The organizer zone for ``profile``, falling back to the global zone."""
        return profile.timezone or self.timezone

    def slot_defaults_for(self, profile: ProfileConfig) -> SlotDefaults:
        return profile.defaults or self.defaults


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
