"""
Utilities module: Exceptions, validators.
"""

from shared.utils.exceptions import (
    StorefrontError,
    ConfigError,
    AuthError,
    RateLimited,
    ProfileFetchError,
    CartConflictError,
    OrderPlacementError,
    ValidationError,
    InvalidTransitionError,
)
from shared.utils.validators import (
    GuestInfo,
    SignUpRequest,
    SignInRequest,
    OrderDetails,
    CatalogItem,
    validate_input,
)

__all__ = [
    # exceptions
    "StorefrontError",
    "ConfigError",
    "AuthError",
    "RateLimited",
    "ProfileFetchError",
    "CartConflictError",
    "OrderPlacementError",
    "ValidationError",
    "InvalidTransitionError",
    # validators
    "GuestInfo",
    "SignUpRequest",
    "SignInRequest",
    "OrderDetails",
    "CatalogItem",
    "validate_input",
]
