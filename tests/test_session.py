"""
Tests for the session store, the auth client underneath it and the background refresher.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from shared.config.constants import AuthChangeEvent, AuthFailure
from shared.utils.exceptions import AuthError
from storefront.session.refresher import SessionRefresher
from storefront.session.store import SessionStore
from tests.conftest import PASSWORD


@pytest.fixture
def store(backend_client, clock):
    return SessionStore(backend_client.auth, clock=clock)


async def _sign_in(backend_client, email):
    result = await backend_client.auth.sign_in_with_password(email, PASSWORD)
    assert result.ok
    return result.data


class TestSessionStore:

    @pytest.mark.asyncio
    async def test_no_session(self, store, fake_backend):
        assert await store.get_session() is None
        assert store.seconds_until_expiry() is None
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    async def test_session_after_sign_in(self, store, backend_client, customer):
        session = await _sign_in(backend_client, customer["email"])

        current = await store.get_session()

        assert current == session
        assert current.user.id == customer["id"]
        assert store.seconds_until_expiry() == pytest.approx(3600)

    @pytest.mark.asyncio
    async def test_session_survives_restart(self, test_settings, storage, transport, clock, backend_client, customer):
        """A persisted session is picked up by a fresh client sharing the storage."""
        from storefront.backend.client import BackendClient

        session = await _sign_in(backend_client, customer["email"])
        restarted = BackendClient(test_settings, storage=storage, transport=transport, clock=clock)

        restored = await SessionStore(restarted.auth, clock=clock).get_session()

        assert restored.access_token == session.access_token

    @pytest.mark.asyncio
    async def test_expired_session_is_refreshed_once(self, store, backend_client, customer, clock, fake_backend):
        session = await _sign_in(backend_client, customer["email"])
        clock.advance(3600)

        current = await store.get_session()

        assert current is not None
        assert current.access_token != session.access_token
        assert fake_backend.count("POST", "/auth/v1/token") == 2

    @pytest.mark.asyncio
    async def test_refresh_emits_token_refreshed(self, store, backend_client, customer):
        await _sign_in(backend_client, customer["email"])
        events = []

        async def handler(event, session):
            events.append((event, session.user.id if session else None))

        store.on_session_change(handler)
        refreshed = await store.refresh()

        assert events == [(AuthChangeEvent.TOKEN_REFRESHED, customer["id"])]
        assert store.current_session() == refreshed

    @pytest.mark.asyncio
    async def test_rejected_refresh_destroys_session(self, store, backend_client, customer, fake_backend):
        await _sign_in(backend_client, customer["email"])
        fake_backend.refresh_tokens.clear()
        events = []

        async def handler(event, session):
            events.append(event)

        store.on_session_change(handler)

        with pytest.raises(AuthError) as exc_info:
            await store.refresh()

        assert exc_info.value.reason is AuthFailure.SESSION_EXPIRED
        assert store.current_session() is None
        assert events == [AuthChangeEvent.SIGNED_OUT]

    @pytest.mark.asyncio
    async def test_refresh_without_session(self, store):
        with pytest.raises(AuthError) as exc_info:
            await store.refresh()
        assert exc_info.value.reason is AuthFailure.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_unreachable_provider_keeps_session(self, store, backend_client, customer, fake_backend):
        session = await _sign_in(backend_client, customer["email"])
        fake_backend.fail("POST", "/auth/v1/token", status=0)

        with pytest.raises(AuthError) as exc_info:
            await store.refresh()

        assert exc_info.value.reason is AuthFailure.UNAVAILABLE
        assert store.current_session() == session

    @pytest.mark.asyncio
    async def test_overlapping_refreshes_share_one_request(self, store, backend_client, customer, fake_backend):
        """The refresh token rotates on use, so a second request would be rejected."""
        await _sign_in(backend_client, customer["email"])
        arrived, release = fake_backend.hold("POST", "/auth/v1/token")

        first = asyncio.create_task(store.refresh())
        second = asyncio.create_task(store.refresh())
        await arrived.wait()
        release.set()
        results = await asyncio.gather(first, second)

        assert results[0] == results[1]
        assert store.current_session() == results[0]
        assert fake_backend.count("POST", "/auth/v1/token") == 2
        assert not backend_client.auth._refreshing

    @pytest.mark.asyncio
    async def test_background_and_startup_refresh_overlap(self, store, backend_client, customer, clock, fake_backend):
        await _sign_in(backend_client, customer["email"])
        clock.advance(3600)
        arrived, release = fake_backend.hold("POST", "/auth/v1/token")

        refreshing = asyncio.create_task(store.refresh())
        await arrived.wait()
        checking = asyncio.create_task(store.get_session())
        await asyncio.sleep(0)
        release.set()
        refreshed, current = await asyncio.gather(refreshing, checking)

        assert current == refreshed
        assert store.current_session() == refreshed

    @pytest.mark.asyncio
    async def test_sign_in_during_refresh_wins(self, store, backend_client, customer, fake_backend):
        await _sign_in(backend_client, customer["email"])
        arrived, release = fake_backend.hold("POST", "/auth/v1/token")

        refreshing = asyncio.create_task(store.refresh())
        await arrived.wait()
        signed_in = await _sign_in(backend_client, customer["email"])
        release.set()

        with pytest.raises(AuthError):
            await refreshing
        assert store.current_session() == signed_in

    @pytest.mark.asyncio
    async def test_session_info_masks_secrets(self, store, backend_client, customer):
        session = await _sign_in(backend_client, customer["email"])

        info = store.session_info()

        assert info["has_session"] is True
        assert info["email"] == "ma***@example.com"
        assert info["minutes_until_expiry"] == 60
        assert info["access_token"] == "***" + session.access_token[-8:]
        assert session.refresh_token not in str(info)

    def test_session_info_without_session(self, store):
        assert store.session_info() == {"has_session": False, "message": "No active session"}

    @pytest.mark.asyncio
    async def test_close_releases_subscriptions(self, store, backend_client, customer):
        events = []

        async def handler(event, session):
            events.append(event)

        store.on_session_change(handler)
        store.close()
        await _sign_in(backend_client, customer["email"])

        assert events == []
        with pytest.raises(RuntimeError):
            store.on_session_change(handler)


class TestAuthClient:
    """Provider contract details not covered through the identity context."""

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_delivery(self, backend_client, customer):
        delivered = []

        async def broken(event, session):
            raise RuntimeError("handler bug")

        async def healthy(event, session):
            delivered.append(event)

        backend_client.auth.on_auth_state_change(broken)
        backend_client.auth.on_auth_state_change(healthy)
        await _sign_in(backend_client, customer["email"])

        assert delivered == [AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_sign_out_clears_locally_when_remote_fails(self, backend_client, customer, fake_backend, storage):
        await _sign_in(backend_client, customer["email"])
        fake_backend.fail("POST", "/auth/v1/logout", status=500)

        result = await backend_client.auth.sign_out()

        assert result.error is not None
        assert result.error.status == 500
        assert backend_client.auth.current_session() is None
        assert storage.get_item("supabase.auth.token") is None

    @pytest.mark.asyncio
    async def test_transport_error_is_reported_not_raised(self, backend_client, fake_backend):
        fake_backend.fail("POST", "/auth/v1/token", status=0, message="connection refused")

        result = await backend_client.auth.sign_in_with_password("maria@example.com", PASSWORD)

        assert result.error.is_transport_error
        assert "connection refused" in result.error.message

    @pytest.mark.asyncio
    async def test_error_body_is_parsed(self, backend_client, customer):
        result = await backend_client.auth.sign_in_with_password(customer["email"], "Wrong123")

        assert result.error.status == 400
        assert result.error.message == "Invalid login credentials"

    @pytest.mark.asyncio
    async def test_unreadable_persisted_session_is_dropped(self, test_settings, transport, clock):
        from storefront.backend.client import BackendClient
        from storefront.backend.storage import MemoryStorage

        storage = MemoryStorage({"supabase.auth.token": "{broken"})
        client = BackendClient(test_settings, storage=storage, transport=transport, clock=clock)

        assert client.auth.current_session() is None
        assert storage.get_item("supabase.auth.token") is None


class TestSessionRefresher:

    @pytest.mark.asyncio
    async def test_no_refresh_above_threshold(self, store, backend_client, customer, fake_backend):
        await _sign_in(backend_client, customer["email"])
        refresher = SessionRefresher(store, interval_seconds=300, threshold_seconds=600)

        assert await refresher.check_once() is False
        assert fake_backend.count("POST", "/auth/v1/token") == 1

    @pytest.mark.asyncio
    async def test_refresh_below_threshold(self, store, backend_client, customer, clock):
        session = await _sign_in(backend_client, customer["email"])
        refresher = SessionRefresher(store, interval_seconds=300, threshold_seconds=600)
        clock.advance(3600 - 500)

        assert await refresher.check_once() is True
        assert store.current_session().access_token != session.access_token
        assert refresher.get_stats()["refreshes"] == 1

    @pytest.mark.asyncio
    async def test_no_session_no_refresh(self, store, fake_backend):
        refresher = SessionRefresher(store, interval_seconds=300, threshold_seconds=600)

        assert await refresher.check_once() is False
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    async def test_failed_refresh_is_counted_not_raised(self, store, backend_client, customer, clock, fake_backend):
        await _sign_in(backend_client, customer["email"])
        refresher = SessionRefresher(store, interval_seconds=300, threshold_seconds=600)
        clock.advance(3500)
        fake_backend.fail("POST", "/auth/v1/token", status=0)

        assert await refresher.check_once() is False
        assert refresher.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_loop_survives_errors_and_stops(self):
        store = MagicMock()
        store.seconds_until_expiry.side_effect = RuntimeError("boom")
        refresher = SessionRefresher(store, interval_seconds=0.01, threshold_seconds=600)

        await refresher.start()
        await asyncio.sleep(0.05)
        await refresher.stop()

        stats = refresher.get_stats()
        assert stats["running"] is False
        assert stats["failures"] >= 1
        assert store.seconds_until_expiry.call_count >= 2

        calls = store.seconds_until_expiry.call_count
        await asyncio.sleep(0.03)
        assert store.seconds_until_expiry.call_count == calls
