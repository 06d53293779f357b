"""Abstract base class for calendar writers."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models.event import CachedEvent, EventDraft, EventPatch, MutationScope


class CalendarWriter(ABC):
    """Abstract base class for calendar writers."""

    @abstractmethod
    async def create_event(self, calendar_id: str, draft: EventDraft) -> CachedEvent:
        """
        Create a new event.

        Returns:
            The canonical event as stored by the server

        Raises:
            ApiError: If the server rejects the event
            CalendarWriteError: If the response cannot be parsed
        """

    @abstractmethod
    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        patch: EventPatch,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> Optional[CachedEvent]:
        """
        Update an existing event, optionally scoped within a recurring series.

        Returns:
            The event as returned by the server, if it returned one

        Raises:
            ValueError: If the scope needs a recurrence id and none is given
            ApiError: If the server rejects the update
        """

    @abstractmethod
    async def delete_event(
        self,
        calendar_id: str,
        event_id: str,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> None:
        """
        Delete an event, optionally scoped within a recurring series.

        Raises:
            ValueError: If the scope needs a recurrence id and none is given
            ApiError: If the server rejects the deletion
        """

    @abstractmethod
    async def move_event(
        self,
        calendar_id: str,
        event_id: str,
        start: datetime,
        end: datetime,
    ) -> Optional[CachedEvent]:
        """
        Change only the start and end of an event.

        Raises:
            ApiError: If the server rejects the change
        """
