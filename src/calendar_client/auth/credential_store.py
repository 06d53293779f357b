"""In-memory session state plus the persisted refresh cookie."""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

import pytz

from ..models.session import Session, UserIdentity
from ..utils.exceptions import CalendarClientError
from .base import RefreshCookie, RefreshTokenStore

logger = logging.getLogger(__name__)

_KEEP = object()


class CredentialStore:
    """Sole owner of the mutable session.

    Readers call :meth:`get` and work on the returned immutable snapshot.
    Every call to :meth:`set` or :meth:`clear` bumps the generation counter,
    which renewal timers compare against before acting.
    """

    def __init__(
        self,
        cookie_store: RefreshTokenStore,
        api_base_url: str = "",
        secure_cookies: bool = True,
        cookie_max_age_days: int = 7,
    ):
        self._cookie_store = cookie_store
        self._session = Session()
        self.secure_cookies = secure_cookies
        self.cookie_max_age_days = cookie_max_age_days
        self._https = urlparse(api_base_url).scheme == "https"

    @property
    def generation(self) -> int:
        return self._session.generation

    def get(self) -> Session:
        return self._session

    def set(
        self,
        access_token: str,
        user=_KEEP,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> Session:
        """
        Install a new access token, starting a new token generation.

        Args:
            access_token: Bearer token for API calls
            user: New identity; omitted keeps the current one
            refresh_token: New refresh token to persist; None keeps the stored one
            expires_in: Access token lifetime in seconds

        Returns:
            The new session snapshot

        Raises:
            TokenCacheError: If the refresh token cannot be persisted
        """
        if refresh_token is not None:
            self._cookie_store.save(
                RefreshCookie.issue(
                    refresh_token,
                    max_age_days=self.cookie_max_age_days,
                    secure=self.secure_cookies,
                )
            )

        current = self._session
        new_user: Optional[UserIdentity] = current.user if user is _KEEP else user
        self._session = Session(
            access_token=access_token,
            user=new_user,
            issued_at=datetime.now(pytz.utc),
            expires_in=expires_in,
            generation=current.generation + 1,
        )
        return self._session

    def set_user(self, user: UserIdentity) -> Session:
        """Attach an identity without starting a new token generation."""
        self._session = self._session.model_copy(update={"user": user})
        return self._session

    def clear(self) -> None:
        """Drop the session and the persisted refresh token. Never raises."""
        self._session = Session(generation=self._session.generation + 1)
        try:
            self._cookie_store.clear()
        except CalendarClientError as e:
            logger.error(f"Failed to clear persisted refresh token: {e}")

    def get_refresh_token(self) -> Optional[str]:
        """
        Read the persisted refresh token, as a browser would send the cookie.

        Expired cookies are wiped and read as absent; secure cookies are only
        released to an https server.
        """
        cookie = self._cookie_store.load()
        if cookie is None:
            return None
        if cookie.is_expired():
            logger.info("Persisted refresh token expired")
            self._cookie_store.clear()
            return None
        if cookie.secure and not self._https:
            logger.warning("Secure refresh token withheld from non-https server")
            return None
        return cookie.value
