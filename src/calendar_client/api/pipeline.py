"""Authenticated request pipeline every API call flows through."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..auth.credential_store import CredentialStore
from ..auth.token_manager import LOGIN_PATH, Navigator, TokenLifecycleManager, log_navigation
from ..utils.exceptions import SessionExpired, Unauthorized
from .transport import HttpTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pass through the pipeline.

    ``retry`` is set when a 401 was recovered by refreshing the session; the
    caller decides whether to repeat the request with the new token.
    """

    data: Any = None
    retry: bool = False


class RequestPipeline:
    """Attaches credentials, unwraps envelopes and recovers from 401s."""

    def __init__(
        self,
        transport: HttpTransport,
        credentials: CredentialStore,
        token_manager: TokenLifecycleManager,
        navigator: Optional[Navigator] = None,
    ):
        self.transport = transport
        self.credentials = credentials
        self.token_manager = token_manager
        self.navigator = navigator or log_navigation

    async def execute(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Mapping[str, str]] = None,
        allow_refresh: bool = True,
    ) -> PipelineResult:
        """
        Send one request with the current access token.

        With ``allow_refresh`` false a 401 is raised as is; retries pass it so
        one logical request never refreshes twice.

        Raises:
            SessionExpired: If a 401 could not be recovered (session cleared)
            Unauthorized: On a 401 while signed out or with ``allow_refresh`` false
            ApiError: For every other error status, carrying the error envelope
            NetworkFailure: If the server cannot be reached
        """
        session = self.credentials.get()
        headers = {}
        if session.access_token:
            headers["Authorization"] = f"Bearer {session.access_token}"

        try:
            data = await self.transport.send(
                method, path, json_body=json_body, params=params, headers=headers
            )
        except Unauthorized as e:
            if not session.is_authenticated or not allow_refresh:
                raise
            await self._recover(session, e)
            return PipelineResult(retry=True)
        return PipelineResult(data=data)

    async def _recover(self, sent_with, error: Unauthorized) -> None:
        current = self.credentials.get()
        if current.generation != sent_with.generation and current.is_authenticated:
            # Token already replaced while this request was in flight
            logger.debug("401 with a superseded token, retry with the current one")
            return

        logger.info(f"Request unauthorized, refreshing session: {error.message}")
        session = await self.token_manager.refresh()
        if not session.is_authenticated:
            self.navigator(LOGIN_PATH)
            raise SessionExpired() from error


class ApiClient:
    """Caller-side convention on top of the pipeline: retry once after a refresh."""

    max_attempts = 2

    def __init__(self, pipeline: RequestPipeline):
        self.pipeline = pipeline

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> Any:
        for attempt in range(self.max_attempts):
            result = await self.pipeline.execute(
                method,
                path,
                json_body=json_body,
                params=params,
                allow_refresh=(attempt == 0),
            )
            if not result.retry:
                return result.data
        raise Unauthorized(401, f"{method} {path} still unauthorized after refresh")

    async def get(self, path: str, params: Optional[Mapping[str, str]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, json_body=body)

    async def patch(
        self, path: str, body: Any = None, params: Optional[Mapping[str, str]] = None
    ) -> Any:
        return await self.request("PATCH", path, json_body=body, params=params)

    async def delete(self, path: str, params: Optional[Mapping[str, str]] = None) -> Any:
        return await self.request("DELETE", path, params=params)
