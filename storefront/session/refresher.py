"""
Background session refresher.

Polls the held session on a fixed interval and refreshes it when its
expiry is closer than the threshold, so long browsing sessions do not
silently expire. Failures are logged and the loop keeps running.
"""

from __future__ import annotations

import asyncio

from shared.config.logging import session_logger as logger
from shared.utils.exceptions import AuthError
from storefront.session.store import SessionStore


class SessionRefresher:
    """
    Scope-owned polling task.

    ``start()`` and ``stop()`` bracket the owning scope; after ``stop()``
    no further refresh is attempted.
    """

    def __init__(
        self,
        store: SessionStore,
        interval_seconds: float,
        threshold_seconds: float,
    ):
        self._store = store
        self._interval = interval_seconds
        self._threshold = threshold_seconds
        self._running = False
        self._task: asyncio.Task | None = None

        # Metrics
        self._checks = 0
        self._refreshes = 0
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("Session refresher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="session-refresher")
        logger.info(
            "Session refresher started",
            interval=self._interval,
            threshold=self._threshold,
        )

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to finish."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session refresher stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            try:
                await self.check_once()
            except Exception as e:
                self._failures += 1
                logger.error("Session refresh check failed", error=str(e), exc_info=True)

    async def check_once(self) -> bool:
        """
        Refresh the session if it is about to expire.

        Returns:
            True if a refresh happened.
        """
        self._checks += 1
        remaining = self._store.seconds_until_expiry()
        if remaining is None or remaining >= self._threshold:
            return False

        logger.info("Session expiring soon, refreshing", seconds_left=int(remaining))
        try:
            await self._store.refresh()
        except AuthError as e:
            self._failures += 1
            logger.warning("Proactive session refresh failed", reason=e.reason.value)
            return False

        self._refreshes += 1
        return True

    def get_stats(self) -> dict[str, int | float | bool]:
        return {
            "running": self._running,
            "interval_seconds": self._interval,
            "threshold_seconds": self._threshold,
            "checks": self._checks,
            "refreshes": self._refreshes,
            "failures": self._failures,
        }
