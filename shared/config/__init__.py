"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import get_settings, Settings
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    Role,
    IdentityMode,
    AuthChangeEvent,
    AuthFailure,
    OrderStatus,
)

__all__ = [
    # settings
    "get_settings",
    "Settings",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Role",
    "IdentityMode",
    "AuthChangeEvent",
    "AuthFailure",
    "OrderStatus",
]
