"""Access token lifecycle: login, coalesced refresh, timed renewal, logout."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..api.transport import HttpTransport
from ..config import ENDPOINTS, ApiEndpoints
from ..models.session import LoginCredentials, Session, UserIdentity
from ..utils.exceptions import AuthenticationError, CalendarClientError, TokenCacheError
from .credential_store import CredentialStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"

Navigator = Callable[[str], None]


def log_navigation(path: str) -> None:
    """Default navigator for processes without a UI."""
    logger.info(f"Navigation requested: {path}")


@dataclass
class RefreshSchedule:
    """The single pending renewal timer and the token generation it serves."""

    generation: int
    fire_at: float  # event loop time
    handle: asyncio.TimerHandle


def parse_token_response(data: Any) -> tuple[str, Optional[int]]:
    """
    Extract the access token and its lifetime from a login/refresh payload.

    The server may report the lifetime as ``expires_in`` seconds or as an
    absolute ``expires_at`` unix time.

    Raises:
        AuthenticationError: If the payload carries no access token or a
            lifetime that is not a number
    """
    if not isinstance(data, dict) or not data.get("access_token"):
        raise AuthenticationError("Server response did not contain an access token")

    expires_in: Optional[int] = None
    try:
        if data.get("expires_in") is not None:
            expires_in = int(data["expires_in"])
        elif data.get("expires_at") is not None:
            expires_in = int(float(data["expires_at"]) - time.time())
    except (TypeError, ValueError) as e:
        raise AuthenticationError(f"Server response carried an unusable token lifetime: {e}") from e
    return data["access_token"], expires_in


class TokenLifecycleManager:
    """Owns renewal timing and every call to the auth endpoints."""

    def __init__(
        self,
        transport: HttpTransport,
        credentials: CredentialStore,
        refresh_margin_seconds: int = 60,
        navigator: Optional[Navigator] = None,
        endpoints: ApiEndpoints = ENDPOINTS,
    ):
        """
        Initialize the token lifecycle manager.

        Args:
            transport: HTTP transport used for the auth endpoints
            credentials: Store holding the session and refresh cookie
            refresh_margin_seconds: Renew this long before the token expires
            navigator: Called with the login path when the session is lost
            endpoints: API paths
        """
        if refresh_margin_seconds < 0:
            raise ValueError("refresh_margin_seconds must be >= 0")
        self.transport = transport
        self.credentials = credentials
        self.refresh_margin_seconds = refresh_margin_seconds
        self.navigator = navigator or log_navigation
        self.endpoints = endpoints
        self.is_loading = False
        self._ready = asyncio.Event()
        self._schedule: Optional[RefreshSchedule] = None
        self._inflight: Optional[asyncio.Future] = None
        self._renewal_task: Optional[asyncio.Task] = None

    @property
    def schedule(self) -> Optional[RefreshSchedule]:
        return self._schedule

    async def initialize(self) -> Session:
        """Restore the session from the persisted refresh token, if any."""
        self.is_loading = True
        try:
            if self._read_refresh_token() is None:
                logger.info("No persisted session, starting signed out")
                self.credentials.clear()
            else:
                session = await self.refresh()
                if session.is_authenticated and session.user is None:
                    await self._load_user()
        finally:
            self.is_loading = False
            self._ready.set()
        return self.credentials.get()

    async def wait_until_ready(self) -> Session:
        """Block until :meth:`initialize` has finished."""
        await self._ready.wait()
        return self.credentials.get()

    async def login(self, credentials: LoginCredentials) -> Session:
        """
        Authenticate with email and password.

        Errors from the server propagate untouched and leave the session as is.

        Raises:
            ApiError: If the server rejects the login
            NetworkFailure: If the server cannot be reached
            AuthenticationError: If the response carries no usable token
        """
        data = await self.transport.send(
            "POST",
            self.endpoints.login,
            json_body={"email": credentials.email, "password": credentials.password},
        )
        access_token, expires_in = parse_token_response(data)
        user = None
        if data.get("user"):
            try:
                user = UserIdentity.model_validate(data["user"])
            except ValidationError as e:
                raise AuthenticationError(f"Malformed user in login response: {e}") from e

        session = self.credentials.set(
            access_token,
            user=user,
            refresh_token=data.get("refresh_token"),
            expires_in=expires_in,
        )
        self.schedule_renewal(expires_in)
        logger.info(f"Logged in as {credentials.email}")
        return session

    async def refresh(self) -> Session:
        """
        Exchange the persisted refresh token for a new access token.

        Concurrent callers share one in-flight attempt. A failed attempt
        clears the session; it is never retried with the same token.

        Returns:
            The resulting session snapshot (unauthenticated on failure)
        """
        if self._inflight is None:
            task = asyncio.ensure_future(self._do_refresh())
            task.add_done_callback(self._refresh_done)
            self._inflight = task
        # Shield so a cancelled caller does not abort the attempt for the others
        return await asyncio.shield(self._inflight)

    def _refresh_done(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _do_refresh(self) -> Session:
        started_generation = self.credentials.generation
        refresh_token = self._read_refresh_token()
        if not refresh_token:
            self.cancel_renewal()
            self.credentials.clear()
            return self.credentials.get()

        try:
            data = await self.transport.send(
                "POST",
                self.endpoints.refresh,
                json_body={"refresh_token": refresh_token},
            )
            access_token, expires_in = parse_token_response(data)
        except CalendarClientError as e:
            if self.credentials.generation != started_generation:
                logger.info("Session changed during failed refresh, keeping it")
                return self.credentials.get()
            logger.warning(f"Session refresh failed, signing out: {e}")
            self.cancel_renewal()
            self.credentials.clear()
            return self.credentials.get()

        if self.credentials.generation != started_generation:
            # Logout or a new login happened while the request was in flight
            logger.info("Session changed during refresh, discarding new token")
            return self.credentials.get()

        try:
            session = self.credentials.set(
                access_token,
                refresh_token=data.get("refresh_token"),
                expires_in=expires_in,
            )
        except TokenCacheError as e:
            logger.error(f"Could not persist rotated refresh token: {e}")
            self.cancel_renewal()
            self.credentials.clear()
            return self.credentials.get()

        self.schedule_renewal(expires_in)
        logger.debug("Access token refreshed")
        return session

    def schedule_renewal(self, expires_in: Optional[int]) -> Optional[RefreshSchedule]:
        """
        Arm the renewal timer for the current token generation.

        Any pending timer is cancelled first. Tokens that outlive the safety
        margin renew at ``expires_in - margin``; shorter-lived tokens renew at
        half their lifetime so renewal stays proactive without spinning.
        """
        self.cancel_renewal()
        if expires_in is None or expires_in <= 0:
            logger.debug("Token has no usable lifetime, renewal left to 401 handling")
            return None

        delay = float(expires_in - self.refresh_margin_seconds)
        if delay <= 0:
            delay = expires_in / 2

        loop = asyncio.get_running_loop()
        generation = self.credentials.generation
        handle = loop.call_later(delay, self._on_renewal_due, generation)
        self._schedule = RefreshSchedule(
            generation=generation, fire_at=loop.time() + delay, handle=handle
        )
        logger.debug(f"Token renewal scheduled in {delay:.0f}s")
        return self._schedule

    def cancel_renewal(self) -> None:
        if self._schedule is not None:
            self._schedule.handle.cancel()
            self._schedule = None

    def _on_renewal_due(self, generation: int) -> None:
        if self._schedule is not None and self._schedule.generation == generation:
            self._schedule = None
        if generation != self.credentials.generation:
            logger.debug("Renewal timer fired for a superseded session, ignoring")
            return
        self._renewal_task = asyncio.ensure_future(self._renew())

    async def _renew(self) -> None:
        session = await self.refresh()
        if not session.is_authenticated:
            self.navigator(LOGIN_PATH)

    async def logout(self) -> None:
        """Sign out: best-effort server call, then always clear and navigate."""
        session = self.credentials.get()
        refresh_token = self._read_refresh_token()
        self.cancel_renewal()

        if session.is_authenticated or refresh_token:
            headers = (
                {"Authorization": f"Bearer {session.access_token}"}
                if session.access_token
                else None
            )
            try:
                await self.transport.send(
                    "POST",
                    self.endpoints.logout,
                    json_body={"refresh_token": refresh_token or ""},
                    headers=headers,
                )
            except CalendarClientError as e:
                logger.warning(f"Server logout failed, clearing locally: {e}")

        self.credentials.clear()
        logger.info("Logged out")
        self.navigator(LOGIN_PATH)

    async def _load_user(self) -> None:
        session = self.credentials.get()
        try:
            data = await self.transport.send(
                "GET",
                self.endpoints.me,
                headers={"Authorization": f"Bearer {session.access_token}"},
            )
            user = UserIdentity.model_validate(data)
        except (CalendarClientError, ValidationError) as e:
            logger.warning(f"Could not load current user: {e}")
            return
        if self.credentials.generation == session.generation:
            self.credentials.set_user(user)

    def _read_refresh_token(self) -> Optional[str]:
        try:
            return self.credentials.get_refresh_token()
        except TokenCacheError as e:
            logger.error(f"Could not read persisted refresh token: {e}")
            return None
