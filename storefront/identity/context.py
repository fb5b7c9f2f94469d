"""
Identity Context.

One observable state machine over the three identity modes:

    LOADING -> AUTHENTICATED(profile) | GUEST(guest info) | ANONYMOUS

plus PENDING_VERIFICATION after a sign-up that still needs email
confirmation. LOADING is left exactly once, on the first session check.

Two sources populate the state: the initial session check and auth events
from the provider. Every resolution takes a sequence number and its result
is dropped if a newer resolution started meanwhile, so the latest event
wins. After ``teardown()`` no continuation touches the state.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Callable

from shared.config.constants import (
    AuthChangeEvent,
    AuthFailure,
    IdentityMode,
    ResendType,
    Role,
    can_access_admin,
)
from shared.config.logging import audit_auth_event, identity_logger as logger, mask_user_id
from shared.security.rate_limit import SlidingWindowRateLimiter
from shared.utils.exceptions import AuthError, InvalidTransitionError
from shared.utils.validators import (
    EmailRequest,
    GuestInfo,
    SignInRequest,
    SignUpRequest,
    validate_input,
)
from storefront.backend.events import Subscription
from storefront.backend.types import AuthSession, AuthUser
from storefront.identity.errors import to_auth_error
from storefront.identity.guest import GuestStore
from storefront.identity.profiles import Profile, ProfileResolver
from storefront.session.refresher import SessionRefresher
from storefront.session.store import SessionStore


@dataclass(frozen=True)
class IdentityState:
    """
    Snapshot of the identity context.

    At most one of ``profile`` and ``guest`` is set, and only in the
    AUTHENTICATED and GUEST modes respectively.
    """

    mode: IdentityMode = IdentityMode.LOADING
    profile: Profile | None = None
    guest: GuestInfo | None = None
    pending_email: str | None = None

    def __post_init__(self) -> None:
        if self.profile is not None and self.guest is not None:
            raise ValueError("Identity cannot be authenticated and guest at once")
        if (self.mode is IdentityMode.AUTHENTICATED) != (self.profile is not None):
            raise ValueError("A profile is set exactly in AUTHENTICATED mode")
        if (self.mode is IdentityMode.GUEST) != (self.guest is not None):
            raise ValueError("Guest info is set exactly in GUEST mode")

    @property
    def is_loading(self) -> bool:
        return self.mode is IdentityMode.LOADING

    @property
    def is_authenticated(self) -> bool:
        return self.mode is IdentityMode.AUTHENTICATED

    @property
    def is_guest(self) -> bool:
        return self.mode is IdentityMode.GUEST

    @property
    def role(self) -> Role | None:
        if self.profile is not None:
            return self.profile.role
        if self.guest is not None:
            return Role.GUEST
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "role": self.role.value if self.role else None,
            "profile": self.profile.model_dump(mode="json") if self.profile else None,
            "guest": self.guest.model_dump(mode="json", by_alias=True) if self.guest else None,
            "pending_email": self.pending_email,
        }


IdentityListener = Callable[[IdentityState], None]

_ANONYMOUS = IdentityState(mode=IdentityMode.ANONYMOUS)


class IdentityContext:
    """
    Single shared identity for one storefront session.

    Usage:
        identity = IdentityContext(sessions, profiles, guests, sign_in_limiter, sign_up_limiter)
        await identity.init()
        state = await identity.sign_in({"email": ..., "password": ...})
        ...
        await identity.teardown()

    Actions raise typed errors (``AuthError``, ``RateLimited``,
    ``ValidationError``, ``InvalidTransitionError``); raw provider errors
    never escape.
    """

    def __init__(
        self,
        sessions: SessionStore,
        profiles: ProfileResolver,
        guests: GuestStore,
        sign_in_limiter: SlidingWindowRateLimiter,
        sign_up_limiter: SlidingWindowRateLimiter,
        refresher: SessionRefresher | None = None,
        password_reset_redirect_url: str | None = None,
    ):
        self._sessions = sessions
        self._auth = sessions.auth
        self._profiles = profiles
        self._guests = guests
        self._sign_in_limiter = sign_in_limiter
        self._sign_up_limiter = sign_up_limiter
        self._refresher = refresher
        self._reset_redirect = password_reset_redirect_url

        self._state = IdentityState()
        self._ready = asyncio.Event()
        self._listeners: dict[int, IdentityListener] = {}
        self._listener_ids = itertools.count(1)
        self._subscription: Subscription | None = None

        self._seq = 0
        self._last_user_id: str | None = None
        self._initialized = False
        self._mounted = False

    # =========================================================================
    # Observation
    # =========================================================================

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def wait_ready(self, timeout: float | None = None) -> IdentityState:
        """Wait until LOADING has resolved."""
        await asyncio.wait_for(self._ready.wait(), timeout)
        return self._state

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns the unsubscribe function."""
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _set_state(self, state: IdentityState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        self._ready.set()
        logger.info(
            "Identity changed",
            previous_mode=previous.mode.value,
            mode=state.mode.value,
            user_id=mask_user_id(state.profile.id) if state.profile else None,
        )
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(state)
            except Exception as e:
                logger.error("Identity listener failed", listener_id=listener_id, error=str(e), exc_info=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> IdentityState:
        """
        Subscribe to auth events, then resolve LOADING from the current session.

        Safe to call more than once; only the first call does anything.
        """
        if self._initialized:
            return self._state
        self._initialized = True
        self._mounted = True

        # Subscribe before the check so no event between the two is missed
        self._subscription = self._sessions.on_session_change(self._on_auth_event)

        seq = self._next_seq()
        session = await self._sessions.get_session()
        if self._accepts(seq):
            if session is not None:
                await self._apply_user(session.user, seq)
            else:
                self._restore_guest()

        if self._mounted and self._refresher is not None:
            await self._refresher.start()
        return self._state

    async def teardown(self) -> None:
        """Stop reacting to events and timers. Late results are dropped."""
        self._mounted = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._refresher is not None:
            await self._refresher.stop()
        self._listeners.clear()
        logger.info("Identity context torn down")

    # =========================================================================
    # Resolution
    # =========================================================================

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _accepts(self, seq: int) -> bool:
        """Whether a result started at ``seq`` may still be applied."""
        return self._mounted and seq == self._seq

    def _restore_guest(self) -> None:
        guest = self._guests.load()
        if guest is not None:
            self._set_state(IdentityState(mode=IdentityMode.GUEST, guest=guest))
        else:
            self._set_state(_ANONYMOUS)

    def _is_current_user(self, user_id: str) -> bool:
        return (
            self._last_user_id == user_id
            and self._state.profile is not None
            and self._state.profile.id == user_id
        )

    async def _apply_user(self, user: AuthUser, seq: int) -> None:
        if self._is_current_user(user.id):
            return

        self._last_user_id = user.id
        profile = await self._profiles.resolve_profile(user)
        if not self._accepts(seq):
            logger.debug("Dropping stale profile resolution", user_id=mask_user_id(user.id))
            return

        if profile is None:
            self._last_user_id = None
            self._set_state(_ANONYMOUS)
            return

        self._guests.clear()
        self._set_state(IdentityState(mode=IdentityMode.AUTHENTICATED, profile=profile))

    def _apply_signed_out(self) -> None:
        self._last_user_id = None
        self._guests.clear()
        self._set_state(_ANONYMOUS)

    async def _on_auth_event(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        if not self._mounted:
            return
        seq = self._next_seq()
        logger.debug("Auth event", auth_event=event.value, has_session=session is not None)

        if event is AuthChangeEvent.SIGNED_OUT or session is None:
            self._apply_signed_out()
            return
        await self._apply_user(session.user, seq)

    # =========================================================================
    # Actions
    # =========================================================================

    def _require_mode(self, action: str, *allowed: IdentityMode) -> None:
        if self._state.mode not in allowed:
            raise InvalidTransitionError(action, self._state.mode.value)

    async def sign_up(self, data: SignUpRequest | dict[str, Any]) -> IdentityState:
        """
        Register an account.

        Ends in AUTHENTICATED when the provider returns a session, otherwise
        in PENDING_VERIFICATION carrying the email.
        """
        request = validate_input(SignUpRequest, data)
        self._require_mode(
            "sign up",
            IdentityMode.ANONYMOUS,
            IdentityMode.GUEST,
            IdentityMode.PENDING_VERIFICATION,
        )
        self._sign_up_limiter.hit(request.email)

        metadata = {"full_name": request.full_name, "role": request.role.value}
        if request.phone:
            metadata["phone"] = request.phone

        result = await self._auth.sign_up(request.email, request.password, metadata)
        if result.error:
            audit_auth_event("SIGN_UP", email=request.email, success=False, reason=result.error.message)
            raise to_auth_error(result.error, action="sign_up")

        signup = result.data
        audit_auth_event("SIGN_UP", user_id=signup.user.id, email=request.email)

        if signup.requires_verification:
            self._next_seq()
            self._last_user_id = None
            self._guests.clear()
            if self._mounted:
                self._set_state(
                    IdentityState(mode=IdentityMode.PENDING_VERIFICATION, pending_email=request.email)
                )
            return self._state

        await self._apply_user(signup.user, self._next_seq())
        return self._state

    async def sign_in(self, data: SignInRequest | dict[str, Any]) -> IdentityState:
        """Password sign-in. Any guest identity is discarded on success."""
        request = validate_input(SignInRequest, data)
        session = await self._password_sign_in(request, "SIGN_IN")
        await self._apply_user(session.user, self._next_seq())
        return self._state

    async def admin_sign_in(self, data: SignInRequest | dict[str, Any]) -> IdentityState:
        """
        Sign in to the back office.

        The role comes from the resolved profile (provider-issued claim or
        profile row). Non-admin accounts are signed out again.
        """
        request = validate_input(SignInRequest, data)
        session = await self._password_sign_in(request, "ADMIN_SIGN_IN")
        await self._apply_user(session.user, self._next_seq())

        profile = self._state.profile
        if profile is not None and profile.id == session.user.id and can_access_admin(profile.role):
            return self._state

        await self.sign_out()
        audit_auth_event(
            "ADMIN_SIGN_IN",
            user_id=session.user.id,
            email=request.email,
            success=False,
            reason="not an admin",
        )
        raise AuthError(AuthFailure.NOT_AUTHORIZED, user_id=mask_user_id(session.user.id))

    async def _password_sign_in(self, request: SignInRequest, audit_event: str) -> AuthSession:
        self._require_mode(
            "sign in",
            IdentityMode.ANONYMOUS,
            IdentityMode.GUEST,
            IdentityMode.PENDING_VERIFICATION,
        )
        self._sign_in_limiter.hit(request.email)

        result = await self._auth.sign_in_with_password(request.email, request.password)
        if result.error:
            audit_auth_event(audit_event, email=request.email, success=False, reason=result.error.message)
            raise to_auth_error(result.error, action="sign_in")

        self._sign_in_limiter.reset(request.email)
        audit_auth_event(audit_event, user_id=result.data.user.id, email=request.email)
        return result.data

    async def sign_out(self) -> IdentityState:
        """
        Clear the backend session and any guest identity, whatever the mode.

        A failed remote revoke is logged; the local identity is cleared anyway.
        """
        user_id = self._state.profile.id if self._state.profile else None
        self._guests.clear()

        if self._sessions.current_session() is not None:
            result = await self._auth.sign_out()
            if result.error:
                logger.warning("Remote sign-out failed", error=result.error.message, status=result.error.status)

        self._next_seq()
        self._last_user_id = None
        if self._mounted:
            self._set_state(_ANONYMOUS)

        audit_auth_event("SIGN_OUT", user_id=user_id)
        return self._state

    def continue_as_guest(self, data: GuestInfo | dict[str, Any]) -> IdentityState:
        """Enter GUEST mode with validated contact details."""
        guest = validate_input(GuestInfo, data)
        self._require_mode(
            "continue as guest",
            IdentityMode.ANONYMOUS,
            IdentityMode.GUEST,
            IdentityMode.PENDING_VERIFICATION,
        )

        self._next_seq()
        self._last_user_id = None
        self._guests.save(guest)
        self._set_state(IdentityState(mode=IdentityMode.GUEST, guest=guest))
        audit_auth_event("GUEST", email=guest.email)
        return self._state

    async def resend_confirmation(self, data: EmailRequest | dict[str, Any]) -> None:
        request = validate_input(EmailRequest, data)
        self._sign_up_limiter.hit(request.email)
        result = await self._auth.resend(ResendType.SIGNUP, request.email)
        if result.error:
            raise to_auth_error(result.error, action="resend")
        logger.info("Confirmation email resent")

    async def reset_password(self, data: EmailRequest | dict[str, Any]) -> None:
        request = validate_input(EmailRequest, data)
        self._sign_up_limiter.hit(request.email)
        result = await self._auth.reset_password_for_email(request.email, redirect_to=self._reset_redirect)
        if result.error:
            raise to_auth_error(result.error, action="reset_password")
        logger.info("Password reset email sent")
