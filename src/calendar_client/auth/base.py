"""Abstract base class for refresh token storage."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

import pytz
from pydantic import BaseModel


class RefreshCookie(BaseModel):
    """Cookie-like record holding the refresh token."""

    value: str
    expires_at: datetime
    same_site: str = "strict"
    secure: bool = True
    path: str = "/"

    @classmethod
    def issue(cls, value: str, max_age_days: int, secure: bool) -> "RefreshCookie":
        return cls(
            value=value,
            expires_at=datetime.now(pytz.utc) + timedelta(days=max_age_days),
            secure=secure,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(pytz.utc)) >= self.expires_at


class RefreshTokenStore(ABC):
    """Persistence for the refresh token, kept outside the session snapshot."""

    @abstractmethod
    def load(self) -> Optional[RefreshCookie]:
        """
        Read the stored cookie.

        Returns:
            The cookie, or None when nothing is stored

        Raises:
            TokenCacheError: If the storage cannot be read
        """

    @abstractmethod
    def save(self, cookie: RefreshCookie) -> None:
        """
        Store the cookie, replacing any previous one.

        Raises:
            TokenCacheError: If the storage cannot be written
        """

    @abstractmethod
    def clear(self) -> None:
        """
        Remove the stored cookie.

        Raises:
            TokenCacheError: If the storage cannot be written
        """
