"""Calendar metadata model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class CalendarOwner(BaseModel):
    """Owner of a shared calendar."""

    id: str
    display_name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class Calendar(BaseModel):
    """Calendar metadata."""

    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    owner_id: Optional[str] = None
    shared: bool = False
    owner: Optional[CalendarOwner] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("id", "owner_id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return None if value is None else str(value)
