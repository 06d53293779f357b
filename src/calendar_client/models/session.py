"""Session and user identity models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class UserIdentity(BaseModel):
    """The authenticated user as reported by the server."""

    id: str
    email: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    is_admin: bool = False
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class Session(BaseModel):
    """Immutable snapshot of the client session.

    The refresh token is deliberately absent: it lives only in the persisted
    cookie store, never in the in-memory snapshot.
    """

    access_token: Optional[str] = None
    user: Optional[UserIdentity] = None
    issued_at: Optional[datetime] = None
    expires_in: Optional[int] = None
    generation: int = 0

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def is_admin(self) -> bool:
        return bool(self.user and self.user.is_admin)


class LoginCredentials(BaseModel):
    """Email and password submitted to the login endpoint."""

    email: str
    password: str

    def __repr__(self) -> str:
        return f"LoginCredentials(email={self.email!r}, password='***')"
