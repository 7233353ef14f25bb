"""
Domain-specific exception hierarchy for the availability engine.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidTimezone(SlotEngineError, ValueError):
    """Raised when a timezone identifier is not known to the timezone database."""

    def __init__(self, zone: object):
        self.zone = zone
        super().__init__(f"Unknown timezone: {zone!r}")


class InvalidConfig(SlotEngineError, ValueError):
    """Raised when slot configuration is missing or outside the allowed bounds."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class TimeConversionError(SlotEngineError):
    """Raised when a local wall-clock time cannot be mapped to an instant."""


class FetchError(SlotEngineError):
    """Raised by a busy-interval source that could not deliver its data."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class ProfileNotFound(SlotEngineError, LookupError):
    """Raised when an organizer profile is not configured."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Unknown profile: {profile_id!r}")
