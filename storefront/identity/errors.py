"""
Translation of identity provider errors into user-facing failure categories.
"""

from typing import Any

from shared.config.constants import AuthFailure
from shared.utils.exceptions import AuthError
from storefront.backend.types import BackendError


def map_auth_error(error: BackendError, refresh: bool = False) -> AuthFailure:
    """
    Categorize a provider error.

    Args:
        error: Error returned by the auth client.
        refresh: The error came from a token refresh.
    """
    message = error.message.lower()

    if error.is_transport_error:
        return AuthFailure.UNAVAILABLE
    if error.status == 429:
        return AuthFailure.UPSTREAM_RATE_LIMITED
    if refresh:
        return AuthFailure.SESSION_EXPIRED
    if error.status in (400, 401):
        if "not confirmed" in message or error.code == "email_not_confirmed":
            return AuthFailure.EMAIL_NOT_CONFIRMED
        if "already registered" in message or error.code in ("user_already_exists", "email_exists"):
            return AuthFailure.ALREADY_REGISTERED
        return AuthFailure.INVALID_CREDENTIALS
    if error.status == 422 and (
        "already registered" in message or error.code in ("user_already_exists", "email_exists")
    ):
        return AuthFailure.ALREADY_REGISTERED
    return AuthFailure.UNKNOWN


def to_auth_error(error: BackendError, refresh: bool = False, **log_context: Any) -> AuthError:
    """Build the typed exception for a provider error (the raw message is only logged)."""
    return AuthError(
        map_auth_error(error, refresh=refresh),
        status=error.status,
        upstream_error=error.message,
        **log_context,
    )
