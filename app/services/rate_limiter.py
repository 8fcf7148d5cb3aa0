"""
app/services/rate_limiter.py

Per-user token-bucket limiter for evaluation starts.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from app.config import get_rate_limit_settings
from app.domain.errors import RateLimitExceededError
from app.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class UserRateLimiter:
    """
    Token bucket per user id.

    Each bucket holds at most ``max_tokens`` and refills continuously at
    ``max_tokens / window_seconds`` tokens per second.
    """

    def __init__(
        self,
        *,
        max_tokens: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_tokens = float(max(1, max_tokens))
        self._refill_rate = self._max_tokens / max(0.001, window_seconds)
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def _refill(self, bucket: _Bucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(self._max_tokens, bucket.tokens + elapsed * self._refill_rate)
        bucket.last_refill = now

    def try_acquire(self, user_id: str) -> bool:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(user_id)
            if bucket is None:
                bucket = _Bucket(tokens=self._max_tokens, last_refill=now)
                self._buckets[user_id] = bucket
            self._refill(bucket, now)
            if bucket.tokens < 1.0:
                return False
            bucket.tokens -= 1.0
            return True

    def acquire(self, user_id: str) -> None:
        """Consume one token or raise RateLimitExceededError."""
        if self.try_acquire(user_id):
            return
        log_event(logger, logging.WARNING, "rate_limit_exceeded", user_id=user_id)
        raise RateLimitExceededError(
            f"Too many evaluations for user {user_id!r}; please wait before starting another."
        )

    def remaining(self, user_id: str) -> int:
        with self._lock:
            bucket = self._buckets.get(user_id)
            if bucket is None:
                return int(self._max_tokens)
            self._refill(bucket, self._clock())
            return int(bucket.tokens)


class _NoopRateLimiter:
    def acquire(self, user_id: str) -> None:
        return None

    def remaining(self, user_id: str) -> int:
        return 0


@lru_cache(maxsize=1)
def get_rate_limiter() -> UserRateLimiter | _NoopRateLimiter:
    settings = get_rate_limit_settings()
    if not settings.enabled:
        return _NoopRateLimiter()
    return UserRateLimiter(
        max_tokens=settings.max_evaluations,
        window_seconds=settings.window_seconds,
    )
