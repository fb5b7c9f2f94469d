"""
Security module: authentication attempt throttling.
"""

from shared.security.rate_limit import SlidingWindowRateLimiter, create_auth_limiters

__all__ = [
    "SlidingWindowRateLimiter",
    "create_auth_limiters",
]
