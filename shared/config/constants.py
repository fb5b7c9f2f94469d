"""
Centralized constants for the storefront.
Closed enumerations for roles, identity modes, auth events and order status.

Usage:
    from shared.config.constants import Role, IdentityMode

    if can_access_admin(profile.role):
        ...

    if state.mode is IdentityMode.GUEST:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Role(str, Enum):
    """Application role stored on a profile."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    GUEST = "guest"
    RESTAURANT_OWNER = "restaurant_owner"


# Roles a visitor may pick for themselves at sign-up
SELF_ASSIGNABLE_ROLES: Final[frozenset[Role]] = frozenset({Role.CUSTOMER, Role.RESTAURANT_OWNER})

# Capability tables. Every table must list every Role member.
ADMIN_ACCESS: Final[dict[Role, bool]] = {
    Role.CUSTOMER: False,
    Role.ADMIN: True,
    Role.GUEST: False,
    Role.RESTAURANT_OWNER: False,
}

MENU_MANAGEMENT: Final[dict[Role, bool]] = {
    Role.CUSTOMER: False,
    Role.ADMIN: True,
    Role.GUEST: False,
    Role.RESTAURANT_OWNER: True,
}

ORDER_PLACEMENT: Final[dict[Role, bool]] = {
    Role.CUSTOMER: True,
    Role.ADMIN: True,
    Role.GUEST: True,
    Role.RESTAURANT_OWNER: False,
}


def can_access_admin(role: Role) -> bool:
    """Whether the role may enter the back office."""
    return ADMIN_ACCESS[role]


def can_manage_menu(role: Role) -> bool:
    """Whether the role may edit a merchant menu."""
    return MENU_MANAGEMENT[role]


def can_place_orders(role: Role) -> bool:
    """Whether the role may check out a cart."""
    return ORDER_PLACEMENT[role]


def parse_role(value: str | None, default: Role = Role.CUSTOMER) -> Role:
    """Parse a role string coming from the backend, falling back to ``default``."""
    if not value:
        return default
    try:
        return Role(value.lower())
    except ValueError:
        return default


# =============================================================================
# Identity
# =============================================================================


class IdentityMode(str, Enum):
    """Mode of the identity context. LOADING is only ever the initial mode."""

    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    GUEST = "guest"
    ANONYMOUS = "anonymous"
    PENDING_VERIFICATION = "pending_verification"


class AuthChangeEvent(str, Enum):
    """Session transitions emitted by the identity provider client."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class AuthFailure(str, Enum):
    """User-facing categories for identity provider failures."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    ALREADY_REGISTERED = "already_registered"
    SESSION_EXPIRED = "session_expired"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    NOT_AUTHORIZED = "not_authorized"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


AUTH_FAILURE_MESSAGES: Final[dict[AuthFailure, str]] = {
    AuthFailure.INVALID_CREDENTIALS: "Invalid email or password.",
    AuthFailure.EMAIL_NOT_CONFIRMED: "Please confirm your email address before signing in.",
    AuthFailure.ALREADY_REGISTERED: "An account with this email already exists.",
    AuthFailure.SESSION_EXPIRED: "Your session has expired. Please sign in again.",
    AuthFailure.UPSTREAM_RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    AuthFailure.NOT_AUTHORIZED: "This account is not authorized for this area.",
    AuthFailure.UNAVAILABLE: "The service is temporarily unavailable. Please try again later.",
    AuthFailure.UNKNOWN: "Something went wrong. Please try again.",
}


# =============================================================================
# Orders
# =============================================================================


class OrderStatus:
    """Order status constants."""

    PENDING: Final[str] = "pending"
    CONFIRMED: Final[str] = "confirmed"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    DELIVERED: Final[str] = "delivered"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, READY, DELIVERED, CANCELLED]
    ACTIVE: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, READY]


class ResendType:
    """Email types the identity provider can resend."""

    SIGNUP: Final[str] = "signup"
    EMAIL_CHANGE: Final[str] = "email_change"
