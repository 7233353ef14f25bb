"""
Profile and booking repository backed by the YAML application config.
"""

import logging
from typing import List

from pendulum import Date, DateTime

from ..config import AppConfig
from ..domain.models import AvailabilityException, BusyInterval, WeeklyAvailability

logger = logging.getLogger(__name__)


class YamlProfileStore:
    """
    Serves weekly patterns, exceptions and bookings from ``AppConfig``.

    Implements both ProfileRepositoryProtocol and BookingRepositoryProtocol.
    Unknown profile ids raise ProfileNotFound.
    """

    def __init__(self, config: AppConfig):
        self.config = config

    async def get_weekly_pattern(self, profile_id: str) -> List[WeeklyAvailability]:
        return self.config.get_profile(profile_id).weekly_pattern()

    async def get_exceptions(
        self, profile_id: str, start: Date, end: Date
    ) -> List[AvailabilityException]:
        profile = self.config.get_profile(profile_id)
        exceptions = [item.to_domain() for item in profile.exceptions]
        return [item for item in exceptions if start <= item.date <= end]

    async def get_internal_busy_intervals(
        self, profile_id: str, start: DateTime, end: DateTime
    ) -> List[BusyInterval]:
        profile = self.config.get_profile(profile_id)
        bookings = [booking.to_domain() for booking in profile.bookings]
        selected = [booking for booking in bookings if booking.start < end and booking.end > start]

        logger.debug("Profile %s: %d booking(s) in range", profile_id, len(selected))
        return selected
