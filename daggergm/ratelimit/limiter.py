"""
Fixed-window request rate limiter.

Each (identifier, operation) pair owns one window entry ``{count, reset_time}``
kept in process memory. Expired entries are swept lazily at the start of every
check or read, so memory is bounded by the keys active in recent windows.
The sweep is O(n) in tracked keys. Live windows are never dropped early, so
``max_tracked_keys`` is a warning threshold rather than a hard cap.

Policies are passed per call (see daggergm.ratelimit.policies); the limiter
itself holds no policy.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from daggergm.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitOptions:
    """Maximum requests allowed per fixed window of window_seconds."""

    max_requests: int
    window_seconds: int

    def __post_init__(self):
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    reset_time: float  # Unix timestamp
    retry_after: Optional[int] = None  # Seconds until reset, if denied
    limit: Optional[int] = None


@dataclass
class _WindowEntry:
    count: int
    reset_time: float


class RateLimiter:
    """
    Thread-safe in-memory fixed-window rate limiter.

    One instance is created by the application factory and shared through
    ``app.state``; tests build their own and call clear() between cases.
    """

    def __init__(
        self,
        max_tracked_keys: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_tracked_keys: Live entry count above which a warning is logged.
                Entries inside their window are kept regardless.
            clock: Returns the current time in seconds. Injected by tests.
        """
        self._entries: Dict[str, _WindowEntry] = {}
        self._lock = threading.RLock()
        self._max_tracked_keys = max_tracked_keys
        self._clock = clock
        self._over_bound = False

    @staticmethod
    def _key(identifier: str, operation: str) -> str:
        return f"{identifier}:{operation}"

    def _sweep(self, now: float) -> None:
        """Delete every entry whose window has ended. Caller holds the lock."""
        expired = [key for key, entry in self._entries.items() if entry.reset_time <= now]
        for key in expired:
            del self._entries[key]

        over_bound = len(self._entries) > self._max_tracked_keys
        if over_bound and not self._over_bound:
            logger.warning(
                f"Rate limiter tracking {len(self._entries)} live keys, "
                f"above the {self._max_tracked_keys} key threshold"
            )
        self._over_bound = over_bound

    async def check_limit(
        self,
        identifier: str,
        operation: str,
        options: RateLimitOptions,
    ) -> RateLimitResult:
        """
        Count one request against the window for identifier and operation.

        Allowed outcomes increment the window; denied outcomes leave it as is.
        """
        now = self._clock()
        key = self._key(identifier, operation)

        with self._lock:
            self._sweep(now)
            entry = self._entries.get(key)

            if entry is None or now >= entry.reset_time:
                entry = _WindowEntry(count=1, reset_time=now + options.window_seconds)
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=options.max_requests - 1,
                    reset_time=entry.reset_time,
                    limit=options.max_requests,
                )

            if entry.count >= options.max_requests:
                retry_after = max(1, math.ceil(entry.reset_time - now))
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=entry.reset_time,
                    retry_after=retry_after,
                    limit=options.max_requests,
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=options.max_requests - entry.count,
                reset_time=entry.reset_time,
                limit=options.max_requests,
            )

    async def enforce_limit(
        self,
        identifier: str,
        operation: str,
        options: RateLimitOptions,
    ) -> RateLimitResult:
        """
        Check the limit and raise when the request is not allowed.

        Raises:
            RateLimitError: With reset_time and retry_after of the current window.
        """
        result = await self.check_limit(identifier, operation, options)
        if not result.allowed:
            logger.info(
                f"Rate limit exceeded for {operation} "
                f"(retry in {result.retry_after}s)"
            )
            raise RateLimitError(
                reset_time=result.reset_time,
                retry_after=result.retry_after,
                operation=operation,
                limit=options.max_requests,
            )
        return result

    async def get_remaining_credits(
        self,
        identifier: str,
        operation: str,
        options: RateLimitOptions,
    ) -> Tuple[int, float]:
        """
        Return (remaining, reset_time) without counting a request.

        An absent or expired entry reports the full allowance with a window
        that would start now.
        """
        now = self._clock()
        key = self._key(identifier, operation)

        with self._lock:
            self._sweep(now)
            entry = self._entries.get(key)
            if entry is None:
                return options.max_requests, now + options.window_seconds
            return max(0, options.max_requests - entry.count), entry.reset_time

    def clear(self) -> None:
        """Drop all window entries."""
        with self._lock:
            self._entries.clear()
            self._over_bound = False

    reset = clear

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "tracked_keys": len(self._entries),
                "max_tracked_keys": self._max_tracked_keys,
            }
