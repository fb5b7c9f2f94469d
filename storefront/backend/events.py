"""
Auth state change notifications.

Handlers are awaited one after another in subscription order, and events
are delivered in the order they were emitted. A failing handler is logged
and does not prevent delivery to the remaining handlers. Handlers must not
trigger another emission of the same emitter (the delivery lock is not
reentrant).
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Awaitable, Callable

from shared.config.constants import AuthChangeEvent
from shared.config.logging import get_logger
from storefront.backend.types import AuthSession

logger = get_logger(__name__)

AuthStateHandler = Callable[[AuthChangeEvent, AuthSession | None], Awaitable[None]]


@dataclass
class Subscription:
    """Handle returned by a subscribe call. ``unsubscribe`` is idempotent."""

    id: int
    _unsubscribe: Callable[[int], None]
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._unsubscribe(self.id)


class AuthEventEmitter:
    """Ordered fan-out of auth state changes to async handlers."""

    def __init__(self) -> None:
        self._handlers: dict[int, AuthStateHandler] = {}
        self._ids = itertools.count(1)
        # Serializes emissions so overlapping emitters cannot interleave deliveries
        self._emit_lock: asyncio.Lock | None = None

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: AuthStateHandler) -> Subscription:
        sub_id = next(self._ids)
        self._handlers[sub_id] = handler
        return Subscription(id=sub_id, _unsubscribe=self._remove)

    def _remove(self, sub_id: int) -> None:
        self._handlers.pop(sub_id, None)

    def _get_lock(self) -> asyncio.Lock:
        if self._emit_lock is None:
            self._emit_lock = asyncio.Lock()
        return self._emit_lock

    async def emit(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        async with self._get_lock():
            # Copy so handlers may unsubscribe during delivery
            for sub_id, handler in list(self._handlers.items()):
                if sub_id not in self._handlers:
                    continue
                try:
                    await handler(event, session)
                except Exception as e:
                    logger.error(
                        "Auth state handler failed",
                        auth_event=event.value,
                        subscription_id=sub_id,
                        error=str(e),
                        exc_info=True,
                    )
