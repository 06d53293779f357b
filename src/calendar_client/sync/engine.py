"""Local event cache kept consistent with the server after each mutation."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..models.calendar import Calendar
from ..models.event import CachedEvent, EventDraft, EventPatch, MutationScope
from ..readers.base import CalendarReader
from ..utils.exceptions import CalendarClientError, SessionExpired
from ..writers.base import CalendarWriter
from .strategies import ReconcileAction, ReconcileStrategy, ScopeAwareStrategy

logger = logging.getLogger(__name__)

EventKey = tuple[str, Optional[str]]
WarningHandler = Callable[[str], None]


@dataclass
class LoadResult:
    """Result of a load across calendars."""

    events: list[CachedEvent] = field(default_factory=list)
    loaded_calendars: list[str] = field(default_factory=list)
    failed_calendars: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_calendars


class EventCache:
    """Best-effort mirror of the server's events for the displayed range.

    Entries are keyed by occurrence ``(id, recurrence_id)`` and kept in
    calendar order. Only :meth:`move_by_drag` changes an entry before the
    server has confirmed the change.
    """

    def __init__(
        self,
        reader: CalendarReader,
        writer: CalendarWriter,
        on_warning: Optional[WarningHandler] = None,
        strategy: Optional[ReconcileStrategy] = None,
    ):
        """
        Initialize the event cache.

        Args:
            reader: Source of calendars and events
            writer: Target of mutations
            on_warning: Receives degraded-success messages (e.g. a calendar failed)
            strategy: Reconciliation policy (defaults to ScopeAwareStrategy)
        """
        self.reader = reader
        self.writer = writer
        self.on_warning = on_warning
        self.strategy = strategy or ScopeAwareStrategy()
        self.calendars: list[Calendar] = []
        self.visible_calendar_ids: set[str] = set()
        self.range: Optional[tuple[datetime, datetime]] = None
        self.stale_calendars: set[str] = set()
        self.is_loading = False
        self._events: dict[EventKey, CachedEvent] = {}

    # Views

    @property
    def events(self) -> list[CachedEvent]:
        return list(self._events.values())

    @property
    def visible_events(self) -> list[CachedEvent]:
        return [e for e in self._events.values() if e.calendar_id in self.visible_calendar_ids]

    @property
    def owned_calendars(self) -> list[Calendar]:
        return [c for c in self.calendars if not c.shared]

    @property
    def shared_calendars(self) -> list[Calendar]:
        return [c for c in self.calendars if c.shared]

    def events_for(self, calendar_id: str) -> list[CachedEvent]:
        return [e for e in self._events.values() if e.calendar_id == calendar_id]

    def toggle_calendar_visibility(self, calendar_id: str) -> bool:
        """Flip a calendar's visibility; returns the new state."""
        if calendar_id in self.visible_calendar_ids:
            self.visible_calendar_ids.discard(calendar_id)
            return False
        self.visible_calendar_ids.add(calendar_id)
        return True

    # Loading

    async def fetch_calendars(self) -> list[Calendar]:
        """Load the calendar list; every calendar starts visible."""
        self.calendars = await self.reader.list_calendars()
        self.visible_calendar_ids = {c.id for c in self.calendars}
        return self.calendars

    async def load_all(self, start: datetime, end: datetime) -> LoadResult:
        """
        Replace the cache with events of every known calendar in [start, end).

        A calendar that fails to load is logged, reported as a warning and
        skipped; the load succeeds with the calendars that answered. Returns
        only after every per-calendar fetch has settled.

        Raises:
            SessionExpired: If the session was lost during the load
        """
        if not self.calendars:
            await self.fetch_calendars()

        self.is_loading = True
        self.range = (start, end)
        calendar_ids = [c.id for c in self.calendars]
        try:
            outcomes = await asyncio.gather(
                *(self.reader.read_events(cid, start, end) for cid in calendar_ids),
                return_exceptions=True,
            )
        finally:
            self.is_loading = False

        result = LoadResult()
        events: dict[EventKey, CachedEvent] = {}
        for calendar_id, outcome in zip(calendar_ids, outcomes):
            if isinstance(outcome, SessionExpired):
                raise outcome
            if isinstance(outcome, CalendarClientError):
                message = f"Failed to load events for calendar {calendar_id}: {outcome}"
                logger.warning(message)
                result.failed_calendars[calendar_id] = str(outcome)
                result.warnings.append(message)
                if self.on_warning:
                    self.on_warning(message)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for event in outcome:
                events[event.key] = event
            result.loaded_calendars.append(calendar_id)
            self.stale_calendars.discard(calendar_id)

        self._events = events
        result.events = list(events.values())
        logger.info(
            f"Loaded {len(result.events)} events from "
            f"{len(result.loaded_calendars)}/{len(calendar_ids)} calendars"
        )
        return result

    # Mutations

    async def create(self, calendar_id: str, draft: EventDraft) -> CachedEvent:
        """Create an event and append the server's canonical copy."""
        event = await self.writer.create_event(calendar_id, draft)
        self._events[event.key] = event
        return event

    async def update(
        self,
        event_id: str,
        calendar_id: str,
        patch: EventPatch,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> Optional[CachedEvent]:
        """
        Update an event and reconcile the cache.

        Whole-event updates swap the single cached entry for the server
        response. Scoped updates invalidate the calendar and reload the range.
        """
        scope = MutationScope(scope) if scope is not None else None
        updated = await self.writer.update_event(
            calendar_id, event_id, patch, scope=scope, recurrence_id=recurrence_id
        )

        if self.strategy.after_update(scope) is ReconcileAction.RELOAD:
            await self.invalidate(calendar_id)
            return updated

        matches = self._keys_for(event_id)
        if updated is None or len(matches) > 1:
            # No response to swap in, or an expanded series: one record cannot cover it
            await self.invalidate(calendar_id)
        elif len(matches) == 1:
            self._replace(matches[0], updated)
        else:
            logger.debug(f"Updated event {event_id} is not cached, nothing to swap")
        return updated

    async def delete_one(
        self,
        event_id: str,
        calendar_id: str,
        scope: Optional[MutationScope] = None,
        recurrence_id: Optional[str] = None,
    ) -> None:
        """Delete an event and reconcile the cache the same way as update."""
        scope = MutationScope(scope) if scope is not None else None
        await self.writer.delete_event(
            calendar_id, event_id, scope=scope, recurrence_id=recurrence_id
        )

        if self.strategy.after_delete(scope) is ReconcileAction.RELOAD:
            await self.invalidate(calendar_id)
            return

        for key in self._keys_for(event_id):
            del self._events[key]

    async def move_by_drag(
        self,
        event_id: str,
        calendar_id: str,
        new_start: datetime,
        new_end: datetime,
        recurrence_id: Optional[str] = None,
    ) -> Optional[CachedEvent]:
        """
        Move an event in time, updating the cache before the server answers.

        On failure the previous start/end are restored and the error re-raised.
        """
        key: EventKey = (event_id, recurrence_id)
        previous = self._events.get(key)
        optimistic = None
        if previous is not None:
            optimistic = previous.model_copy(update={"start": new_start, "end": new_end})
            self._events[key] = optimistic

        try:
            moved = await self.writer.move_event(calendar_id, event_id, new_start, new_end)
        except Exception:
            if optimistic is not None and self._events.get(key) is optimistic:
                self._events[key] = previous
                logger.info(f"Move of event {event_id} rejected, restored previous times")
            raise

        if moved is not None and key in self._events:
            self._replace(key, moved)
        return moved

    async def invalidate(self, calendar_id: str) -> None:
        """Mark a calendar stale and reload the current range."""
        self.stale_calendars.add(calendar_id)
        if self.range is None:
            # Nothing displayed yet; drop what we hold for it
            self._events = {k: e for k, e in self._events.items() if e.calendar_id != calendar_id}
            return
        logger.info(f"Calendar {calendar_id} invalidated, reloading events")
        await self.load_all(*self.range)

    def _keys_for(self, event_id: str) -> list[EventKey]:
        return [key for key in self._events if key[0] == event_id]

    def _replace(self, old_key: EventKey, event: CachedEvent) -> None:
        if event.key == old_key:
            self._events[old_key] = event
            return
        # Keep the entry's position when the server changed its occurrence key
        self._events = {
            (event.key if key == old_key else key): (event if key == old_key else value)
            for key, value in self._events.items()
        }
