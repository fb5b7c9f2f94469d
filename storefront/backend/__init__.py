"""
Backend module: client for the hosted auth/data service and client-local storage.
"""

from storefront.backend.client import BackendClient
from storefront.backend.events import Subscription
from storefront.backend.storage import FileStorage, LocalStorage, MemoryStorage
from storefront.backend.types import (
    AuthSession,
    AuthUser,
    BackendError,
    BackendResult,
    SignUpData,
)

__all__ = [
    "BackendClient",
    "Subscription",
    "LocalStorage",
    "MemoryStorage",
    "FileStorage",
    "AuthSession",
    "AuthUser",
    "BackendError",
    "BackendResult",
    "SignUpData",
]
