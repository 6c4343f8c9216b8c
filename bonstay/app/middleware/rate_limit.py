"""Reusable in-memory rate limiter.

Throttles login attempts per client IP in front of the lockout logic.
For multi-replica deployments, swap to Redis.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict

from fastapi import HTTPException, status


class InMemoryRateLimiter:
    """Sliding-window in-memory rate limiter keyed by an arbitrary string."""

    def __init__(self, window_seconds: int = 60, max_attempts: int = 5) -> None:
        self._window = window_seconds
        self._max = max_attempts
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def check(self, key: str) -> None:
        """Raise HTTP 429 if *key* has exceeded *max_attempts* in the window."""
        now = time.time()
        with self._lock:
            attempts = [t for t in self._attempts[key] if now - t < self._window]
            self._attempts[key] = attempts
            if len(attempts) >= self._max:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Too many attempts. Try again in {self._window} seconds.",
                    headers={"Retry-After": str(self._window)},
                )
            attempts.append(now)

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()
