"""Abstract base class for calendar readers."""

from abc import ABC, abstractmethod
from datetime import datetime

from ..models.calendar import Calendar
from ..models.event import CachedEvent


class CalendarReader(ABC):
    """Abstract base class for calendar readers."""

    @abstractmethod
    async def list_calendars(self) -> list[Calendar]:
        """
        List all calendars visible to the user, owned and shared.

        Returns:
            List of Calendar objects

        Raises:
            ApiError: If the server rejects the request
            CalendarReadError: If the response cannot be parsed
        """

    @abstractmethod
    async def read_events(
        self,
        calendar_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> list[CachedEvent]:
        """
        Read events of one calendar in [start_date, end_date).

        Recurring series come back expanded into occurrences.

        Raises:
            ApiError: If the server rejects the request
            CalendarReadError: If the response cannot be parsed
        """

    @abstractmethod
    async def get_event(self, calendar_id: str, event_id: str) -> CachedEvent:
        """
        Get a specific event by ID.

        Raises:
            ApiError: If the server rejects the request
            CalendarReadError: If the response cannot be parsed
        """
