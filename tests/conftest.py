import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from calendar_client.auth.base import RefreshCookie
from calendar_client.auth.credential_store import CredentialStore
from calendar_client.auth.token_cache import MemoryRefreshTokenStore
from calendar_client.auth.token_manager import TokenLifecycleManager


@dataclass
class Call:
    method: str
    path: str
    json_body: Any = None
    params: Optional[dict] = None
    headers: Optional[dict] = None


@dataclass
class FakeTransport:
    """Scripted stand-in for HttpTransport.

    Responses are queued per (method, path); the last one repeats. An
    exception instance in the queue is raised instead of returned.
    """

    responses: dict = field(default_factory=dict)
    gates: dict = field(default_factory=dict)
    calls: list = field(default_factory=list)

    def respond(self, method: str, path: str, *results) -> None:
        self.responses[(method, path)] = list(results)

    def gate(self, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[path] = event
        return event

    def count(self, path: str) -> int:
        return sum(1 for c in self.calls if c.path == path)

    async def send(self, method, path, *, json_body=None, params=None, headers=None):
        self.calls.append(Call(method, path, json_body, params, headers))
        if path in self.gates:
            await self.gates[path].wait()
        queue = self.responses.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self):
        pass


class RecordingNavigator:
    def __init__(self):
        self.paths = []

    def __call__(self, path: str) -> None:
        self.paths.append(path)


def login_payload(expires_in=3600, refresh_token="refresh-1", is_admin=False):
    return {
        "access_token": "access-1",
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "user": {"id": 7, "email": "ada@example.com", "display_name": "Ada", "is_admin": is_admin},
    }


@pytest.fixture
def cookie_store():
    return MemoryRefreshTokenStore()


@pytest.fixture
def credentials(cookie_store):
    return CredentialStore(cookie_store, api_base_url="http://testserver", secure_cookies=False)


@pytest.fixture
def stored_refresh_token(cookie_store):
    cookie_store.save(RefreshCookie.issue("refresh-1", max_age_days=7, secure=False))
    return "refresh-1"


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def manager(transport, credentials, navigator):
    return TokenLifecycleManager(
        transport, credentials, refresh_margin_seconds=60, navigator=navigator
    )
