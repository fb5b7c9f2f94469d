"""
Shared module for cross-cutting concerns of the storefront.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging, PII masking, audit helpers
  - constants.py: Role, IdentityMode, AuthChangeEvent, AuthFailure, OrderStatus

- shared.security: Throttling
  - rate_limit.py: Per-identifier sliding window limiter

- shared.utils: Utilities
  - exceptions.py: Storefront error taxonomy with auto-logging
  - validators.py: Input schemas (pydantic)

IMPORT EXAMPLES:
    from shared.config.settings import get_settings
    from shared.config.constants import Role, IdentityMode
    from shared.utils.exceptions import AuthError, RateLimited
    from shared.security.rate_limit import SlidingWindowRateLimiter
"""
