"""
Session Store.

Owns the current authentication session: hands it out, forces refreshes,
reports expiry and relays session transitions to subscribers.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable

from shared.config.constants import AuthFailure
from shared.config.logging import audit_auth_event, mask_email, mask_token, session_logger as logger
from shared.utils.exceptions import AuthError
from storefront.backend.auth import AuthClient
from storefront.backend.events import AuthStateHandler, Subscription
from storefront.backend.types import AuthSession


class SessionStore:
    """
    Holds at most one active session.

    Subscriptions made through ``on_session_change`` are tracked and
    released together by ``close()``.
    """

    def __init__(self, auth: AuthClient, clock: Callable[[], float] = time.time):
        self._auth = auth
        self._clock = clock
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def auth(self) -> AuthClient:
        return self._auth

    @property
    def closed(self) -> bool:
        return self._closed

    async def get_session(self) -> AuthSession | None:
        """
        Current session or None.

        At most one round trip (a refresh of an expired session). Errors are
        logged and reported as "no session".
        """
        result = await self._auth.get_session()
        if result.error:
            logger.info(
                "No usable session",
                error=result.error.message,
                status=result.error.status,
            )
            return None
        return result.data

    def current_session(self) -> AuthSession | None:
        """Held session without any network call."""
        return self._auth.current_session()

    def on_session_change(self, handler: AuthStateHandler) -> Subscription:
        """Subscribe to session transitions, in provider emission order."""
        if self._closed:
            raise RuntimeError("SessionStore is closed")
        subscription = self._auth.on_auth_state_change(handler)
        self._subscriptions.append(subscription)
        return subscription

    async def refresh(self) -> AuthSession:
        """
        Force a token refresh.

        Raises:
            AuthError: SESSION_EXPIRED when the refresh token is missing,
                invalid or expired (the session is then gone), UNAVAILABLE
                when the provider could not be reached.
        """
        result = await self._auth.refresh_session()
        if result.error:
            reason = (
                AuthFailure.UNAVAILABLE
                if result.error.is_transport_error
                else AuthFailure.SESSION_EXPIRED
            )
            audit_auth_event("TOKEN_REFRESH", success=False, reason=result.error.message)
            raise AuthError(reason, status=result.error.status)

        session = result.data
        audit_auth_event("TOKEN_REFRESH", user_id=session.user.id)
        return session

    def expires_at(self) -> datetime | None:
        session = self.current_session()
        if session is None:
            return None
        return datetime.fromtimestamp(session.expires_at, tz=timezone.utc)

    def seconds_until_expiry(self) -> float | None:
        session = self.current_session()
        if session is None:
            return None
        return session.seconds_until_expiry(self._clock())

    def session_info(self) -> dict[str, Any]:
        """Debug summary of the held session with sensitive values masked."""
        session = self.current_session()
        if session is None:
            return {"has_session": False, "message": "No active session"}

        remaining = session.seconds_until_expiry(self._clock())
        return {
            "has_session": True,
            "email": mask_email(session.user.email),
            "user_id": session.user.id,
            "expires_at": self.expires_at().isoformat(),
            "minutes_until_expiry": int(remaining // 60),
            "token_type": session.token_type,
            "access_token": mask_token(session.access_token),
        }

    def close(self) -> None:
        """Release every subscription made through this store."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self._closed = True
