"""
Session module: session store and background refresh.
"""

from storefront.session.store import SessionStore
from storefront.session.refresher import SessionRefresher

__all__ = [
    "SessionStore",
    "SessionRefresher",
]
