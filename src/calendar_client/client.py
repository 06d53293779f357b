"""Wiring of the session, request pipeline and local stores."""

import logging
from typing import Callable, Optional

from pydantic import ValidationError

from .api.pipeline import ApiClient, RequestPipeline
from .api.transport import HttpTransport
from .auth.base import RefreshTokenStore
from .auth.credential_store import CredentialStore
from .auth.token_cache import PersistedRefreshTokenStore
from .auth.token_manager import Navigator, TokenLifecycleManager, log_navigation
from .config import AppConfig
from .contacts.store import AddressBookStore
from .models.session import LoginCredentials, Session, UserIdentity
from .readers.api_reader import ApiCalendarReader
from .sync.engine import EventCache
from .utils.exceptions import CalendarReadError
from .utils.ssl_utils import create_ssl_context
from .writers.api_writer import ApiCalendarWriter

logger = logging.getLogger(__name__)


class CalendarClient:
    """One signed-in (or signed-out) user of the calendar server.

    The credential store is created here and injected into both the token
    manager and the pipeline; nothing else holds session state.
    """

    def __init__(
        self,
        config: AppConfig,
        cookie_store: Optional[RefreshTokenStore] = None,
        navigator: Optional[Navigator] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        navigator = navigator or log_navigation

        if cookie_store is None:
            cookie_store = PersistedRefreshTokenStore(
                cache_location=config.token_store_path,
                encrypted=config.token_store_encrypted,
            )

        self.transport = HttpTransport(
            config.api_base_url,
            timeout_seconds=config.request_timeout_seconds,
            ssl_context=(
                create_ssl_context(config.use_system_truststore)
                if config.api_base_url.startswith("https")
                else None
            ),
        )
        self.credentials = CredentialStore(
            cookie_store,
            api_base_url=config.api_base_url,
            secure_cookies=not config.is_development,
            cookie_max_age_days=config.refresh_cookie_max_age_days,
        )
        self.tokens = TokenLifecycleManager(
            self.transport,
            self.credentials,
            refresh_margin_seconds=config.refresh_margin_seconds,
            navigator=navigator,
        )
        self.pipeline = RequestPipeline(
            self.transport, self.credentials, self.tokens, navigator=navigator
        )
        self.api = ApiClient(self.pipeline)
        self.events = EventCache(
            ApiCalendarReader(self.api, tz_name=config.timezone),
            ApiCalendarWriter(self.api, tz_name=config.timezone),
            on_warning=on_warning,
        )
        self.contacts = AddressBookStore(self.api, on_warning=on_warning)

    @property
    def session(self) -> Session:
        return self.credentials.get()

    async def initialize(self) -> Session:
        return await self.tokens.initialize()

    async def login(self, email: str, password: str) -> Session:
        return await self.tokens.login(LoginCredentials(email=email, password=password))

    async def logout(self) -> None:
        await self.tokens.logout()

    async def current_user(self) -> UserIdentity:
        """Fetch the signed-in user's profile."""
        payload = await self.api.get(self.tokens.endpoints.me)
        try:
            user = UserIdentity.model_validate(payload)
        except ValidationError as e:
            raise CalendarReadError(f"Malformed user profile: {e}") from e
        self.credentials.set_user(user)
        return user

    async def close(self) -> None:
        self.tokens.cancel_renewal()
        await self.transport.close()

    async def __aenter__(self) -> "CalendarClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
