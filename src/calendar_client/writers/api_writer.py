"""Calendar writer backed by the REST API."""

import logging
from datetime import datetime
from typing import Optional

from ..api.pipeline import ApiClient
from ..config import ENDPOINTS, ApiEndpoints
from ..models.event import CachedEvent, EventDraft, EventPatch, MutationScope
from ..readers.api_reader import parse_event
from ..utils.date_utils import format_wire_timestamp
from ..utils.exceptions import CalendarReadError, CalendarWriteError
from .base import CalendarWriter

logger = logging.getLogger(__name__)


def scope_params(
    scope: Optional[MutationScope], recurrence_id: Optional[str]
) -> Optional[dict[str, str]]:
    """
    Build the ``scope``/``recurrence_id`` query parameters.

    Raises:
        ValueError: If an instance or this-and-future scope lacks a recurrence id
    """
    if scope is None:
        return None
    scope = MutationScope(scope)
    if scope.requires_recurrence_id and not recurrence_id:
        raise ValueError(f"scope '{scope.value}' requires a recurrence_id")
    params = {"scope": scope.value}
    if recurrence_id:
        params["recurrence_id"] = recurrence_id
    return params


class ApiCalendarWriter(CalendarWriter):
    """Write events to the server."""

    def __init__(
        self,
        api: ApiClient,
        tz_name: Optional[str] = None,
        endpoints: ApiEndpoints = ENDPOINTS,
    ):
        self.api = api
        self.tz_name = tz_name
        self.endpoints = endpoints

    async def create_event(self, calendar_id: str, draft: EventDraft) -> CachedEvent:
        payload = await self.api.post(
            self.endpoints.events(calendar_id), draft.to_payload(self.tz_name)
        )
        event = self._parse(payload, calendar_id)
        if event is None:
            raise CalendarWriteError("Server did not return the created event")
        logger.info(f"Created event: {event.summary}")
        return event

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        patch: EventPatch,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> Optional[CachedEvent]:
        params = scope_params(scope, recurrence_id)
        payload = await self.api.patch(
            self.endpoints.event(calendar_id, event_id),
            patch.to_payload(self.tz_name),
            params=params,
        )
        logger.info(f"Updated event {event_id} (scope={params['scope'] if params else 'none'})")
        return self._parse(payload, calendar_id)

    async def delete_event(
        self,
        calendar_id: str,
        event_id: str,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> None:
        params = scope_params(scope, recurrence_id)
        await self.api.delete(self.endpoints.event(calendar_id, event_id), params=params)
        logger.info(f"Deleted event {event_id} (scope={params['scope'] if params else 'none'})")

    async def move_event(
        self,
        calendar_id: str,
        event_id: str,
        start: datetime,
        end: datetime,
    ) -> Optional[CachedEvent]:
        payload = await self.api.patch(
            self.endpoints.event(calendar_id, event_id),
            {
                "start": format_wire_timestamp(start, self.tz_name),
                "end": format_wire_timestamp(end, self.tz_name),
            },
        )
        return self._parse(payload, calendar_id)

    @staticmethod
    def _parse(payload, calendar_id: str) -> Optional[CachedEvent]:
        # Some endpoints answer with a bare confirmation message
        if not isinstance(payload, dict):
            return None
        try:
            return parse_event(payload, calendar_id)
        except CalendarReadError as e:
            raise CalendarWriteError(f"Malformed event in write response: {e}") from e
