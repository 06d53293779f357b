"""Calendar event models as seen by the client."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, field_validator, model_validator

from ..utils.date_utils import format_wire_timestamp


class MutationScope(str, Enum):
    """Which occurrences of a recurring series an edit or delete applies to.

    Values are the server's ``scope`` query parameter.
    """

    INSTANCE = "this"
    THIS_AND_FUTURE = "this_and_future"
    ALL = "all"

    @property
    def requires_recurrence_id(self) -> bool:
        return self is not MutationScope.ALL


class EventRecurrence(BaseModel):
    """Event recurrence pattern."""

    frequency: str  # daily, weekly, monthly, yearly
    interval: int = 1
    by_day: Optional[list[str]] = None
    by_month_day: Optional[list[int]] = None
    by_month: Optional[list[int]] = None
    until: Optional[str] = None
    count: Optional[int] = None

    def to_rrule(self) -> str:
        """Render as an RFC 5545 RRULE value."""
        parts = [f"FREQ={self.frequency.upper()}"]
        if self.interval > 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(self.by_day))
        if self.by_month_day:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in self.by_month_day))
        if self.by_month:
            parts.append("BYMONTH=" + ",".join(str(m) for m in self.by_month))
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until:
            parts.append(f"UNTIL={self.until}")
        return ";".join(parts)


class CachedEvent(BaseModel):
    """Local projection of a server event (one occurrence when expanded)."""

    id: str
    calendar_id: str
    uid: str = ""
    summary: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    start: datetime
    end: datetime
    all_day: bool = False
    is_recurring: bool = False
    recurrence_id: Optional[str] = None
    recurrence_rule: Optional[str] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        recurrence = data.pop("recurrence", None)
        if recurrence and not data.get("recurrence_rule"):
            if isinstance(recurrence, dict):
                recurrence = EventRecurrence(**recurrence)
            if isinstance(recurrence, EventRecurrence):
                data["recurrence_rule"] = recurrence.to_rrule()
        if not data.get("recurrence_id"):
            data["recurrence_id"] = None
        if data.get("recurrence_id") or data.get("recurrence_rule"):
            data["is_recurring"] = True
        return data

    @field_validator("id", "calendar_id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)

    @property
    def key(self) -> tuple[str, Optional[str]]:
        """Cache key: expanded occurrences share the series id."""
        return (self.id, self.recurrence_id)


class EventDraft(BaseModel):
    """Fields for a new event."""

    summary: str
    start: datetime
    end: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    timezone: Optional[str] = None
    all_day: bool = False
    recurrence: Optional[EventRecurrence] = None

    def to_payload(self, tz_name: Optional[str] = None) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"start", "end"})
        payload["start"] = format_wire_timestamp(self.start, tz_name)
        payload["end"] = format_wire_timestamp(self.end, tz_name)
        return payload


class EventPatch(BaseModel):
    """Partial update of an event; only set fields are sent."""

    summary: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = None
    timezone: Optional[str] = None
    all_day: Optional[bool] = None
    recurrence: Optional[EventRecurrence] = None

    def to_payload(self, tz_name: Optional[str] = None) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"start", "end"})
        if self.start is not None:
            payload["start"] = format_wire_timestamp(self.start, tz_name)
        if self.end is not None:
            payload["end"] = format_wire_timestamp(self.end, tz_name)
        return payload
