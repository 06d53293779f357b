"""HTTP transport: one aiohttp session, envelope unwrapping, error mapping."""

import asyncio
import json
import logging
import ssl
from typing import Any, Mapping, Optional

import aiohttp

from ..utils.exceptions import ApiError, NetworkFailure

logger = logging.getLogger(__name__)


def unwrap_envelope(body: Any) -> Any:
    """Return ``data`` from a ``{"status": "ok", "data": ...}`` envelope.

    Anything else (bare payloads, error envelopes) passes through unchanged.
    """
    if isinstance(body, dict) and body.get("status") == "ok":
        return body.get("data")
    return body


class HttpTransport:
    """Sends requests to the API server and decodes its responses."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """
        Initialize the transport.

        Args:
            base_url: Server origin, e.g. https://calendar.example.com
            timeout_seconds: Total timeout per request
            ssl_context: Context for HTTPS verification (None for aiohttp default)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.ssl_context = ssl_context
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Lazy-create the aiohttp session inside the running loop."""
        if self._session is None or self._session.closed:
            connector = (
                aiohttp.TCPConnector(ssl=self.ssl_context)
                if self.ssl_context is not None
                else None
            )
            self._session = aiohttp.ClientSession(
                timeout=self.timeout, connector=connector
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Send one request and return the unwrapped payload.

        Raises:
            NetworkFailure: On transport errors or timeouts
            ApiError: Subclass matching the status for any status >= 400
        """
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=headers,
            ) as response:
                status = response.status
                body = await self._read_body(response)
        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise NetworkFailure(f"{method} {path} failed: {e}") from e

        logger.debug(f"{method} {path} -> {status}")
        if status >= 400:
            raise ApiError.from_envelope(status, body)
        return unwrap_envelope(body)

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text
