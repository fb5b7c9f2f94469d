"""
Centralized storefront exceptions for consistent error handling.

Every exception logs itself on construction and carries a user-readable
``detail``. The companion HTTP app renders them with ``status_code``; the
core library never depends on that mapping.

Usage:
    from shared.utils.exceptions import AuthError, RateLimited

    raise AuthError(AuthFailure.INVALID_CREDENTIALS, email=mask_email(email))
    raise RateLimited(retry_after=120, context="sign_in")
"""

from typing import Any

from shared.config.constants import AUTH_FAILURE_MESSAGES, AuthFailure
from shared.config.logging import get_logger

logger = get_logger(__name__)


class StorefrontError(Exception):
    """
    Base exception with automatic logging.

    All storefront exceptions inherit from this class to ensure
    consistent logging and response format.
    """

    status_code: int = 500
    category: str = "internal"

    def __init__(
        self,
        detail: str,
        log_level: str = "warning",
        status_code: int | None = None,
        **log_context: Any,
    ):
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, category=self.category, **log_context)

        super().__init__(detail)


# =============================================================================
# Startup
# =============================================================================


class ConfigError(StorefrontError):
    """
    Backend not reachable or not configured.

    Raised once, while building the service container. Not retried.
    """

    status_code = 503
    category = "config"

    def __init__(self, problems: list[str], **log_context: Any):
        self.problems = list(problems)
        detail = "Storefront is not configured: " + "; ".join(self.problems)
        super().__init__(detail, log_level="error", **log_context)


# =============================================================================
# Identity
# =============================================================================


class AuthError(StorefrontError):
    """
    Identity provider rejected an operation.

    Usage:
        raise AuthError(AuthFailure.EMAIL_NOT_CONFIRMED)
        raise AuthError(AuthFailure.UNKNOWN, detail=backend_error.message)
    """

    status_code = 401
    category = "auth"

    _STATUS_BY_REASON = {
        AuthFailure.NOT_AUTHORIZED: 403,
        AuthFailure.ALREADY_REGISTERED: 409,
        AuthFailure.UPSTREAM_RATE_LIMITED: 429,
        AuthFailure.UNAVAILABLE: 503,
    }

    def __init__(self, reason: AuthFailure, detail: str | None = None, **log_context: Any):
        self.reason = reason
        super().__init__(
            detail or AUTH_FAILURE_MESSAGES[reason],
            status_code=self._STATUS_BY_REASON.get(reason, 401),
            reason=reason.value,
            **log_context,
        )


class RateLimited(StorefrontError):
    """Local throttle tripped. The backend was not contacted."""

    status_code = 429
    category = "rate_limited"

    def __init__(self, retry_after: int, context: str | None = None, **log_context: Any):
        self.retry_after = retry_after
        detail = f"Too many attempts. Please try again in {format_retry_time(retry_after)}."
        super().__init__(detail, context=context, retry_after=retry_after, **log_context)


class InvalidTransitionError(StorefrontError):
    """Identity action is not valid from the current mode."""

    status_code = 409
    category = "identity"

    def __init__(self, action: str, current_mode: str, **log_context: Any):
        self.action = action
        self.current_mode = current_mode
        detail = f"Cannot {action} while {current_mode.replace('_', ' ')}"
        super().__init__(detail, action=action, current_mode=current_mode, **log_context)


class ProfileFetchError(StorefrontError):
    """
    Profile store query failed for a reason other than "not found".

    The profile resolver converts this into "no profile"; it never reaches
    the presentation layer.
    """

    status_code = 502
    category = "profile"

    def __init__(self, user_id: str, reason: str, **log_context: Any):
        self.user_id = user_id
        super().__init__(
            f"Could not load profile: {reason}",
            log_level="error",
            user_id=user_id,
            **log_context,
        )


# =============================================================================
# Cart / Orders
# =============================================================================


class CartConflictError(StorefrontError):
    """Adding an item from a second merchant without confirming the switch."""

    status_code = 409
    category = "cart_conflict"

    def __init__(self, current_merchant_id: str, requested_merchant_id: str, **log_context: Any):
        self.current_merchant_id = current_merchant_id
        self.requested_merchant_id = requested_merchant_id
        super().__init__(
            "Your cart contains items from another restaurant. "
            "Clear the cart and add this item?",
            log_level="info",
            current_merchant_id=current_merchant_id,
            requested_merchant_id=requested_merchant_id,
            **log_context,
        )


class OrderPlacementError(StorefrontError):
    """
    Checkout failed. The cart is left untouched so the attempt can be retried.

    ``stage`` is one of: precondition, order, items.
    """

    status_code = 502
    category = "order"

    def __init__(self, detail: str, stage: str, **log_context: Any):
        self.stage = stage
        super().__init__(
            detail,
            log_level="warning" if stage == "precondition" else "error",
            status_code=400 if stage == "precondition" else None,
            stage=stage,
            **log_context,
        )


# =============================================================================
# Input
# =============================================================================


class ValidationError(StorefrontError):
    """
    Input validation error.

    Usage:
        raise ValidationError("Full name can only contain letters and spaces", field="full_name")
    """

    status_code = 422
    category = "validation"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="info", **log_context)


def format_retry_time(seconds: int) -> str:
    """Format retry time in human-readable form."""
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    minutes = seconds // 60
    remaining_seconds = seconds % 60
    if remaining_seconds == 0:
        return f"{minutes} minute{'s' if minutes > 1 else ''}"
    return f"{minutes}m {remaining_seconds}s"
