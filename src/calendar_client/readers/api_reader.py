"""Calendar reader backed by the REST API."""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from ..api.pipeline import ApiClient
from ..config import ENDPOINTS, ApiEndpoints
from ..models.calendar import Calendar
from ..models.event import CachedEvent
from ..utils.date_utils import format_wire_timestamp
from ..utils.exceptions import CalendarReadError
from .base import CalendarReader

logger = logging.getLogger(__name__)


def _items(payload: Any, key: str) -> list:
    """Pull a list out of ``{key: [...]}`` or accept a bare list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return payload.get(key) or []
    return []


class ApiCalendarReader(CalendarReader):
    """Read calendars and events from the server."""

    def __init__(
        self,
        api: ApiClient,
        tz_name: Optional[str] = None,
        endpoints: ApiEndpoints = ENDPOINTS,
    ):
        """
        Initialize the API calendar reader.

        Args:
            api: Authenticated API client
            tz_name: Zone whose offset is used for query timestamps
            endpoints: API paths
        """
        self.api = api
        self.tz_name = tz_name
        self.endpoints = endpoints

    async def list_calendars(self) -> list[Calendar]:
        payload = await self.api.get(self.endpoints.calendars)
        try:
            calendars = [Calendar.model_validate(c) for c in _items(payload, "calendars")]
        except ValidationError as e:
            raise CalendarReadError(f"Malformed calendar list: {e}") from e
        logger.info(f"Found {len(calendars)} calendars")
        return calendars

    async def read_events(
        self,
        calendar_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> list[CachedEvent]:
        payload = await self.api.get(
            self.endpoints.events(calendar_id),
            params={
                "start": format_wire_timestamp(start_date, self.tz_name),
                "end": format_wire_timestamp(end_date, self.tz_name),
            },
        )
        try:
            events = [
                CachedEvent.model_validate({"calendar_id": calendar_id, **e})
                for e in _items(payload, "events")
            ]
        except (ValidationError, TypeError) as e:
            raise CalendarReadError(
                f"Malformed events for calendar {calendar_id}: {e}"
            ) from e
        logger.debug(f"Read {len(events)} events from calendar {calendar_id}")
        return events

    async def get_event(self, calendar_id: str, event_id: str) -> CachedEvent:
        payload = await self.api.get(self.endpoints.event(calendar_id, event_id))
        return parse_event(payload, calendar_id)


def parse_event(payload: Any, calendar_id: str) -> CachedEvent:
    """Validate a single event payload returned by the server."""
    if not isinstance(payload, dict):
        raise CalendarReadError(f"Expected an event object, got {type(payload).__name__}")
    try:
        return CachedEvent.model_validate({"calendar_id": calendar_id, **payload})
    except ValidationError as e:
        raise CalendarReadError(f"Malformed event: {e}") from e
