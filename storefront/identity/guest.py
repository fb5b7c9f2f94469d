"""
Guest identity persistence in client-local storage.
"""

from __future__ import annotations

import json

from shared.config.logging import identity_logger as logger
from shared.utils.validators import GuestInfo
from storefront.backend.storage import LocalStorage


class GuestStore:
    """Keeps the guest's contact details across reloads under one fixed key."""

    def __init__(self, storage: LocalStorage, key: str):
        self._storage = storage
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> GuestInfo | None:
        raw = self._storage.get_item(self._key)
        if not raw:
            return None
        try:
            return GuestInfo.model_validate(json.loads(raw))
        except ValueError as e:
            logger.warning("Discarding unreadable guest profile", error=str(e))
            self._storage.remove_item(self._key)
            return None

    def save(self, guest: GuestInfo) -> None:
        self._storage.set_item(self._key, guest.model_dump_json(by_alias=True))

    def clear(self) -> None:
        self._storage.remove_item(self._key)

    def exists(self) -> bool:
        return self._storage.get_item(self._key) is not None
