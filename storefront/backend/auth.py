"""
Identity provider client.

Talks to the hosted auth REST API, keeps the current session in memory and
in client-local storage, and emits auth state changes. Every call returns a
``BackendResult``; transport failures are reported as errors with status 0,
never raised.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any, Callable

from shared.config.constants import AuthChangeEvent
from shared.config.logging import get_logger, mask_email, mask_user_id
from storefront.backend.events import AuthEventEmitter, AuthStateHandler, Subscription
from storefront.backend.storage import LocalStorage
from storefront.backend.types import (
    AuthSession,
    AuthUser,
    BackendError,
    BackendResult,
    SignUpData,
)

if TYPE_CHECKING:
    from storefront.backend.client import BackendClient

logger = get_logger(__name__)

# Sessions this close to expiry are refreshed before being handed out
EXPIRY_MARGIN_SECONDS = 10.0

AUTH_PATH = "/auth/v1"


class AuthClient:
    """
    Session-holding client for the auth service.

    Usage:
        result = await client.auth.sign_in_with_password(email, password)
        if result.error:
            ...
        sub = client.auth.on_auth_state_change(handler)
        sub.unsubscribe()
    """

    def __init__(
        self,
        backend: "BackendClient",
        storage: LocalStorage,
        storage_key: str,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._storage = storage
        self._storage_key = storage_key
        self._clock = clock
        self._emitter = AuthEventEmitter()
        self._session: AuthSession | None = None
        self._loaded = False
        self._refreshing: asyncio.Task | None = None

    # =========================================================================
    # Local session state
    # =========================================================================

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        raw = self._storage.get_item(self._storage_key)
        if not raw:
            return
        try:
            self._session = AuthSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable persisted session", error=str(e))
            self._storage.remove_item(self._storage_key)

    def _save(self, session: AuthSession) -> None:
        self._session = session
        self._loaded = True
        self._storage.set_item(self._storage_key, json.dumps(session.to_dict()))

    def _clear(self) -> None:
        self._session = None
        self._loaded = True
        self._storage.remove_item(self._storage_key)

    def current_session(self) -> AuthSession | None:
        """The held session without any network round trip (may be expired)."""
        self._load()
        return self._session

    def current_access_token(self) -> str | None:
        session = self.current_session()
        return session.access_token if session else None

    # =========================================================================
    # Events
    # =========================================================================

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription:
        """Subscribe to SIGNED_IN / SIGNED_OUT / TOKEN_REFRESHED notifications."""
        return self._emitter.subscribe(handler)

    async def _notify(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        await self._emitter.emit(event, session)

    # =========================================================================
    # Contract
    # =========================================================================

    async def get_session(self) -> BackendResult[AuthSession | None]:
        """
        Return the current session.

        An expired (or nearly expired) session is refreshed first; that is the
        only network round trip this call can make.
        """
        session = self.current_session()
        if session is None:
            return BackendResult(data=None)
        if not session.is_expired(self._clock(), leeway=EXPIRY_MARGIN_SECONDS):
            return BackendResult(data=session)

        refreshed = await self.refresh_session()
        if refreshed.error:
            return BackendResult(data=None, error=refreshed.error)
        return BackendResult(data=refreshed.data)

    async def sign_in_with_password(self, email: str, password: str) -> BackendResult[AuthSession]:
        result = await self._backend.request(
            "POST",
            f"{AUTH_PATH}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if result.error:
            return BackendResult(error=result.error)

        session = self._parse_session(result.data)
        if session is None:
            return BackendResult(error=BackendError("Malformed session in sign-in response", status=502))

        self._save(session)
        logger.debug("Signed in", user_id=mask_user_id(session.user.id), email=mask_email(email))
        await self._notify(AuthChangeEvent.SIGNED_IN, session)
        return BackendResult(data=session)

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
    ) -> BackendResult[SignUpData]:
        """
        Register a new account.

        When the project requires email verification the response carries
        no session; the caller gets ``SignUpData(session=None)`` and no
        event is emitted.
        """
        result = await self._backend.request(
            "POST",
            f"{AUTH_PATH}/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        if result.error:
            return BackendResult(error=result.error)

        body = result.data or {}
        session = self._parse_session(body) if "access_token" in body else None
        user_data = body.get("user") if isinstance(body.get("user"), dict) else body
        try:
            user = session.user if session else AuthUser.from_dict(user_data)
        except (KeyError, TypeError):
            return BackendResult(error=BackendError("Malformed user in sign-up response", status=502))

        if session is not None:
            self._save(session)
            await self._notify(AuthChangeEvent.SIGNED_IN, session)
        return BackendResult(data=SignUpData(user=user, session=session))

    async def sign_out(self) -> BackendResult[None]:
        """
        Revoke the session remotely and drop it locally.

        The local session is removed and SIGNED_OUT is emitted even if the
        remote call fails; the error is still reported to the caller.
        """
        token = self.current_access_token()
        error: BackendError | None = None
        if token:
            result = await self._backend.request(
                "POST",
                f"{AUTH_PATH}/logout",
                access_token=token,
            )
            # 401/404: token already invalid remotely, nothing left to revoke
            if result.error and result.error.status not in (401, 404):
                error = result.error
                logger.warning("Remote sign-out failed", error=result.error.message, status=result.error.status)

        self._clear()
        await self._notify(AuthChangeEvent.SIGNED_OUT, None)
        return BackendResult(error=error)

    async def refresh_session(self) -> BackendResult[AuthSession]:
        """
        Exchange the refresh token for a new session.

        Concurrent callers share one in-flight refresh, since the provider
        rotates the refresh token on every use. An invalid/expired refresh
        token destroys the local session and emits SIGNED_OUT. Transport
        failures leave the session untouched.
        """
        task = self._refreshing
        if task is None:
            task = asyncio.create_task(self._refresh(), name="refresh-session")
            self._refreshing = task
            task.add_done_callback(self._refresh_done)
        # Shielded so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refreshing is task:
            self._refreshing = None

    async def _refresh(self) -> BackendResult[AuthSession]:
        session = self.current_session()
        if session is None or not session.refresh_token:
            return BackendResult(error=BackendError("Auth session missing", status=401))

        result = await self._backend.request(
            "POST",
            f"{AUTH_PATH}/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
        )
        # Signed in or out again while the request was out
        replaced = self.current_session() is not session

        if result.error:
            if not replaced and result.error.status in (400, 401, 403):
                logger.info("Refresh token rejected, clearing session", status=result.error.status)
                self._clear()
                await self._notify(AuthChangeEvent.SIGNED_OUT, None)
            return BackendResult(error=result.error)

        if replaced:
            return BackendResult(error=BackendError("Session changed during refresh", status=409))

        refreshed = self._parse_session(result.data)
        if refreshed is None:
            return BackendResult(error=BackendError("Malformed session in refresh response", status=502))

        self._save(refreshed)
        await self._notify(AuthChangeEvent.TOKEN_REFRESHED, refreshed)
        return BackendResult(data=refreshed)

    async def resend(self, type: str, email: str) -> BackendResult[None]:
        """Resend a confirmation email (``type`` is "signup" or "email_change")."""
        result = await self._backend.request(
            "POST",
            f"{AUTH_PATH}/resend",
            json={"type": type, "email": email},
        )
        return BackendResult(error=result.error)

    async def reset_password_for_email(
        self,
        email: str,
        redirect_to: str | None = None,
    ) -> BackendResult[None]:
        params = {"redirect_to": redirect_to} if redirect_to else None
        result = await self._backend.request(
            "POST",
            f"{AUTH_PATH}/recover",
            params=params,
            json={"email": email},
        )
        return BackendResult(error=result.error)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _parse_session(self, body: Any) -> AuthSession | None:
        if not isinstance(body, dict):
            return None
        try:
            return AuthSession.from_dict(body, now=self._clock())
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Could not parse session payload", error=str(e))
            return None
