"""
Identity module: profile resolution, guest persistence and the identity state machine.
"""

from storefront.identity.context import IdentityContext, IdentityState
from storefront.identity.errors import map_auth_error, to_auth_error
from storefront.identity.guest import GuestStore
from storefront.identity.profiles import Profile, ProfileResolver, role_hint, synthesize_profile

__all__ = [
    "IdentityContext",
    "IdentityState",
    "map_auth_error",
    "to_auth_error",
    "GuestStore",
    "Profile",
    "ProfileResolver",
    "role_hint",
    "synthesize_profile",
]
