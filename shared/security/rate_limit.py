"""
Per-identifier rate limiting for authentication attempts.

Sliding window log: each identifier keeps the timestamps of its recent
attempts; timestamps older than the window are discarded before every
check. Rejected attempts are not recorded.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from shared.config.logging import audit_rate_limit_event, get_logger
from shared.config.settings import Settings
from shared.utils.exceptions import RateLimited

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Per-identifier attempt limiter.

    Memory is bounded by ``max_tracked``: when the table is full, idle
    identifiers are purged first, then the least recently used ones.
    """

    def __init__(
        self,
        name: str,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_tracked: int = 10_000,
    ):
        """
        Args:
            name: Limiter name used in logs (sign_in, sign_up).
            max_attempts: Attempts allowed inside one window.
            window_seconds: Window length in seconds.
            clock: Monotonic time source, injectable for tests.
            max_tracked: Maximum identifiers to keep in memory.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._name = name
        self._max_attempts = max_attempts
        self._window = window_seconds
        self._clock = clock
        self._max_tracked = max_tracked

        self._attempts: dict[str, list[float]] = {}
        self._lock = threading.Lock()

        # Metrics
        self._total_allowed = 0
        self._total_rejected = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def window_seconds(self) -> float:
        return self._window

    @staticmethod
    def normalize(identifier: str) -> str:
        return identifier.strip().lower()

    def _prune(self, key: str, now: float) -> list[float]:
        window_start = now - self._window
        recent = [t for t in self._attempts.get(key, ()) if t > window_start]
        if recent:
            self._attempts[key] = recent
        else:
            self._attempts.pop(key, None)
        return recent

    def retry_after(self, identifier: str) -> int:
        """Seconds until ``identifier`` may try again (0 when allowed now)."""
        key = self.normalize(identifier)
        with self._lock:
            now = self._clock()
            recent = self._prune(key, now)
            if len(recent) < self._max_attempts:
                return 0
            return max(1, math.ceil(recent[0] + self._window - now))

    def is_allowed(self, identifier: str) -> bool:
        """
        Record an attempt for ``identifier`` if it fits in the window.

        Returns:
            True if the attempt is allowed (and was recorded), False otherwise.
        """
        key = self.normalize(identifier)
        with self._lock:
            now = self._clock()
            recent = self._prune(key, now)

            if len(recent) >= self._max_attempts:
                self._total_rejected += 1
                return False

            if key not in self._attempts and len(self._attempts) >= self._max_tracked:
                self._evict(now)

            self._attempts.setdefault(key, []).append(now)
            self._total_allowed += 1
            return True

    def hit(self, identifier: str) -> None:
        """
        Record an attempt or fail fast.

        Raises:
            RateLimited: when the identifier has used up its window.
        """
        if self.is_allowed(identifier):
            return
        retry_after = self.retry_after(identifier)
        audit_rate_limit_event(
            self._name,
            identifier,
            limit=self._max_attempts,
            window=int(self._window),
            retry_after=retry_after,
        )
        raise RateLimited(retry_after=retry_after, context=self._name)

    def reset(self, identifier: str) -> None:
        """Forget all attempts for ``identifier`` (after a successful sign-in)."""
        with self._lock:
            self._attempts.pop(self.normalize(identifier), None)

    def _evict(self, now: float) -> None:
        """Drop idle identifiers, then the least recently active, to make room."""
        window_start = now - self._window
        idle = [key for key, stamps in self._attempts.items() if not stamps or stamps[-1] <= window_start]
        for key in idle:
            del self._attempts[key]

        if len(self._attempts) >= self._max_tracked:
            logger.warning(
                "Rate limiter at capacity, evicting oldest identifiers",
                limiter=self._name,
                max_tracked=self._max_tracked,
            )
            by_last_seen = sorted(self._attempts.items(), key=lambda item: item[1][-1])
            for key, _ in by_last_seen[: max(1, self._max_tracked // 10)]:
                del self._attempts[key]

    def get_stats(self) -> dict[str, int | float]:
        """Get rate limiter statistics."""
        with self._lock:
            return {
                "tracked_identifiers": len(self._attempts),
                "max_attempts": self._max_attempts,
                "window_seconds": self._window,
                "total_allowed": self._total_allowed,
                "total_rejected": self._total_rejected,
            }


def create_auth_limiters(
    settings: Settings,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[SlidingWindowRateLimiter, SlidingWindowRateLimiter]:
    """Build the (sign-in, sign-up) limiter pair from settings."""
    sign_in = SlidingWindowRateLimiter(
        "sign_in", settings.login_rate_limit, settings.login_rate_window, clock=clock
    )
    sign_up = SlidingWindowRateLimiter(
        "sign_up", settings.signup_rate_limit, settings.signup_rate_window, clock=clock
    )
    return sign_in, sign_up
