import asyncio

import pytest

from calendar_client.auth.token_manager import LOGIN_PATH, parse_token_response
from calendar_client.config import ENDPOINTS
from calendar_client.models.session import LoginCredentials
from calendar_client.utils.exceptions import AuthenticationError, NetworkFailure, Unauthorized

from conftest import login_payload

CREDS = LoginCredentials(email="ada@example.com", password="secret")


@pytest.mark.asyncio
async def test_login_stores_session_and_schedules_renewal(manager, transport, credentials):
    transport.respond("POST", ENDPOINTS.login, login_payload(is_admin=True))

    session = await manager.login(CREDS)

    assert session.is_authenticated
    assert session.access_token == "access-1"
    assert session.user.email == "ada@example.com"
    assert session.is_admin
    assert credentials.get_refresh_token() == "refresh-1"
    assert manager.schedule is not None
    assert manager.schedule.generation == credentials.generation
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_login_failure_leaves_session_untouched(manager, transport, credentials):
    error = Unauthorized(401, "invalid credentials")
    transport.respond("POST", ENDPOINTS.login, error)
    before = credentials.get()

    with pytest.raises(Unauthorized) as exc_info:
        await manager.login(CREDS)

    assert exc_info.value is error
    assert credentials.get() is before
    assert manager.schedule is None


@pytest.mark.asyncio
async def test_login_without_token_is_rejected(manager, transport, credentials):
    transport.respond("POST", ENDPOINTS.login, {"user": {"id": 1, "email": "x@example.com"}})

    with pytest.raises(AuthenticationError):
        await manager.login(CREDS)
    assert not credentials.get().is_authenticated


@pytest.mark.asyncio
async def test_renewal_fires_margin_before_expiry(manager, transport):
    transport.respond("POST", ENDPOINTS.login, login_payload(expires_in=3600))

    await manager.login(CREDS)

    loop = asyncio.get_running_loop()
    schedule = manager.schedule
    assert schedule.fire_at - loop.time() == pytest.approx(3540, abs=1)
    assert schedule.handle.when() == pytest.approx(schedule.fire_at, abs=0.5)
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_short_lived_token_renews_at_half_lifetime(manager):
    loop = asyncio.get_running_loop()

    schedule = manager.schedule_renewal(40)

    assert schedule.fire_at - loop.time() == pytest.approx(20, abs=1)
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_rescheduling_cancels_previous_timer(manager):
    first = manager.schedule_renewal(3600)
    second = manager.schedule_renewal(7200)

    assert first.handle.cancelled()
    assert not second.handle.cancelled()
    assert manager.schedule is second
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_no_timer_without_lifetime(manager):
    assert manager.schedule_renewal(None) is None
    assert manager.schedule_renewal(0) is None
    assert manager.schedule is None


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_request(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.refresh, {"access_token": "access-2", "expires_in": 900})
    release = transport.gate(ENDPOINTS.refresh)

    first = asyncio.ensure_future(manager.refresh())
    second = asyncio.ensure_future(manager.refresh())
    await asyncio.sleep(0)
    release.set()
    a, b = await asyncio.gather(first, second)

    assert transport.count(ENDPOINTS.refresh) == 1
    assert a is b
    assert a.access_token == "access-2"
    assert credentials.get() is a
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_refresh_sends_persisted_token_and_keeps_user(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.login, login_payload())
    transport.respond("POST", ENDPOINTS.refresh, {"access_token": "access-2", "expires_in": 900})
    await manager.login(CREDS)
    generation = credentials.generation

    session = await manager.refresh()

    call = [c for c in transport.calls if c.path == ENDPOINTS.refresh][0]
    assert call.json_body == {"refresh_token": "refresh-1"}
    assert session.access_token == "access-2"
    assert session.user.email == "ada@example.com"
    assert session.generation == generation + 1
    assert manager.schedule.generation == session.generation
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_refresh_accepts_rotated_refresh_token(manager, transport, credentials, stored_refresh_token):
    transport.respond(
        "POST",
        ENDPOINTS.refresh,
        {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 900},
    )

    await manager.refresh()

    assert credentials.get_refresh_token() == "refresh-2"
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_refresh_without_token_clears_without_request(manager, transport, credentials):
    session = await manager.refresh()

    assert not session.is_authenticated
    assert transport.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [Unauthorized(401, "Invalid or expired refresh token"), NetworkFailure("connection reset")],
)
async def test_failed_refresh_clears_session_and_timer(manager, transport, credentials, stored_refresh_token, failure):
    transport.respond("POST", ENDPOINTS.login, login_payload())
    transport.respond("POST", ENDPOINTS.refresh, failure)
    await manager.login(CREDS)

    session = await manager.refresh()

    assert not session.is_authenticated
    assert credentials.get().user is None
    assert credentials.get_refresh_token() is None
    assert manager.schedule is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"access_token": "access-2", "expires_in": "soon"},
        {"access_token": "access-2", "expires_at": {"unix": 1}},
    ],
)
async def test_refresh_with_unusable_lifetime_clears_session(manager, transport, credentials, stored_refresh_token, payload):
    transport.respond("POST", ENDPOINTS.login, login_payload())
    transport.respond("POST", ENDPOINTS.refresh, payload)
    await manager.login(CREDS)

    session = await manager.refresh()

    assert not session.is_authenticated
    assert credentials.get_refresh_token() is None
    assert manager.schedule is None


@pytest.mark.asyncio
async def test_refresh_result_discarded_after_logout(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.refresh, {"access_token": "access-2", "expires_in": 900})
    transport.respond("POST", ENDPOINTS.logout, "Logged out successfully")
    release = transport.gate(ENDPOINTS.refresh)

    pending = asyncio.ensure_future(manager.refresh())
    while transport.count(ENDPOINTS.refresh) == 0:
        await asyncio.sleep(0)
    await manager.logout()
    release.set()
    session = await pending

    assert transport.count(ENDPOINTS.refresh) == 1
    assert not session.is_authenticated
    assert not credentials.get().is_authenticated
    assert manager.schedule is None


@pytest.mark.asyncio
async def test_timer_for_superseded_generation_is_noop(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.login, login_payload())
    await manager.login(CREDS)
    stale_generation = manager.schedule.generation
    credentials.clear()

    manager._on_renewal_due(stale_generation)
    await asyncio.sleep(0)

    assert transport.count(ENDPOINTS.refresh) == 0
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_timer_refreshes_and_rearms(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.login, login_payload(expires_in=1))
    transport.respond("POST", ENDPOINTS.refresh, {"access_token": "access-2", "expires_in": 3600})
    await manager.login(CREDS)

    await asyncio.sleep(0.8)

    assert transport.count(ENDPOINTS.refresh) == 1
    assert credentials.get().access_token == "access-2"
    assert manager.schedule is not None
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_timer_refresh_failure_navigates_to_login(manager, transport, credentials, navigator, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.login, login_payload(expires_in=1))
    transport.respond("POST", ENDPOINTS.refresh, Unauthorized(401, "revoked"))
    await manager.login(CREDS)

    await asyncio.sleep(0.8)

    assert not credentials.get().is_authenticated
    assert navigator.paths == [LOGIN_PATH]
    assert manager.schedule is None


@pytest.mark.asyncio
async def test_initialize_without_persisted_token(manager, transport):
    session = await manager.initialize()

    assert not session.is_authenticated
    assert not manager.is_loading
    assert transport.calls == []
    assert (await manager.wait_until_ready()) is session


@pytest.mark.asyncio
async def test_initialize_restores_session_and_user(manager, transport, credentials, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.refresh, {"access_token": "access-2", "expires_in": 900})
    transport.respond("GET", ENDPOINTS.me, {"id": "u1", "email": "ada@example.com", "is_admin": True})
    loading_states = []
    original_send = transport.send

    async def spy(*args, **kwargs):
        loading_states.append(manager.is_loading)
        return await original_send(*args, **kwargs)

    transport.send = spy

    session = await manager.initialize()

    assert loading_states == [True, True]
    assert not manager.is_loading
    assert session.is_authenticated
    assert session.is_admin
    me_call = [c for c in transport.calls if c.path == ENDPOINTS.me][0]
    assert me_call.headers == {"Authorization": "Bearer access-2"}
    manager.cancel_renewal()


@pytest.mark.asyncio
async def test_logout_calls_server_then_clears(manager, transport, credentials, navigator, stored_refresh_token):
    transport.respond("POST", ENDPOINTS.login, login_payload())
    transport.respond("POST", ENDPOINTS.logout, NetworkFailure("server down"))
    await manager.login(CREDS)

    await manager.logout()

    assert transport.count(ENDPOINTS.logout) == 1
    assert not credentials.get().is_authenticated
    assert credentials.get_refresh_token() is None
    assert manager.schedule is None
    assert navigator.paths == [LOGIN_PATH]


@pytest.mark.asyncio
async def test_logout_when_signed_out_is_quiet(manager, transport, credentials, navigator):
    await manager.logout()
    await manager.logout()

    assert transport.calls == []
    assert not credentials.get().is_authenticated
    assert navigator.paths == [LOGIN_PATH, LOGIN_PATH]


def test_parse_token_response_accepts_expires_at(monkeypatch):
    monkeypatch.setattr("calendar_client.auth.token_manager.time.time", lambda: 1000.0)

    token, expires_in = parse_token_response({"access_token": "t", "expires_at": 1900})

    assert token == "t"
    assert expires_in == 900


def test_negative_margin_rejected(transport, credentials):
    from calendar_client.auth.token_manager import TokenLifecycleManager

    with pytest.raises(ValueError):
        TokenLifecycleManager(transport, credentials, refresh_margin_seconds=-1)


def test_parse_token_response_rejects_non_numeric_lifetime():
    with pytest.raises(AuthenticationError):
        parse_token_response({"access_token": "t", "expires_in": "soon"})
