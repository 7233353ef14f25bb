"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_service import (
    AvailabilityService,
    BookingRepositoryProtocol,
    ExternalCalendarProtocol,
    MonthResult,
    ProfileRepositoryProtocol,
    SlotsResult,
)
from .cache import AvailabilityCache

__all__ = [
    "AvailabilityCache",
    "AvailabilityService",
    "BookingRepositoryProtocol",
    "ExternalCalendarProtocol",
    "MonthResult",
    "ProfileRepositoryProtocol",
    "SlotsResult",
]
