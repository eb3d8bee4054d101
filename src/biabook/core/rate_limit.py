"""
In-process rate limiting.

Two uses:
- geocoding providers call `acquire()` before each request so upstream quotas hold;
- the HTTP layer calls `KeyedRateLimiter.check()` per client on location endpoints
  and turns a refusal into a 429 with `Retry-After`.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: float = 0.0


@dataclass
class TokenBucketRateLimiter:
    """Token bucket limiter for N events per minute."""

    max_per_minute: float
    burst: float | None = None

    def __post_init__(self) -> None:
        rpm = float(self.max_per_minute)
        if rpm <= 0:
            raise ValueError("max_per_minute must be > 0")
        self._capacity = float(self.burst) if self.burst is not None else rpm
        self._tokens = self._capacity
        self._refill_per_sec = rpm / 60.0
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last
        if elapsed <= 0:
            return
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_sec)
        self._last = now

    def try_acquire(self, tokens: float = 1.0) -> RateLimitDecision:
        """Take `tokens` if available; never blocks."""
        need = float(tokens)
        with self._lock:
            self._refill()
            if self._tokens >= need:
                self._tokens -= need
                return RateLimitDecision(allowed=True, remaining=int(self._tokens))
            missing = need - self._tokens
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after_seconds=missing / self._refill_per_sec,
            )

    def acquire(self, tokens: float = 1.0) -> None:
        """Block until `tokens` are available."""
        if float(tokens) <= 0:
            return
        while True:
            decision = self.try_acquire(tokens)
            if decision.allowed:
                return
            time.sleep(min(1.0, max(0.05, decision.retry_after_seconds)))

    def is_full(self) -> bool:
        """True once the bucket has refilled completely (the caller has been idle)."""
        with self._lock:
            self._refill()
            return self._tokens >= self._capacity


class KeyedRateLimiter:
    """One token bucket per caller key (client host, API key, ...).

    Buckets that have refilled completely carry no state worth keeping, so every
    `cleanup_interval_seconds` the next `check` drops them; the map stays bounded
    by the number of recently active callers.
    """

    def __init__(
        self,
        max_per_minute: float,
        *,
        burst: float | None = None,
        cleanup_interval_seconds: float = 60.0,
    ):
        self._max_per_minute = float(max_per_minute)
        self._burst = burst
        self._cleanup_interval = float(cleanup_interval_seconds)
        self._buckets: dict[str, TokenBucketRateLimiter] = {}
        self._lock = threading.Lock()
        self._last_cleanup = time.monotonic()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _evict_idle(self) -> None:
        # Caller holds self._lock.
        now = time.monotonic()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        for key in [k for k, bucket in self._buckets.items() if bucket.is_full()]:
            del self._buckets[key]

    def check(self, key: str) -> RateLimitDecision:
        with self._lock:
            self._evict_idle()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucketRateLimiter(self._max_per_minute, burst=self._burst)
                self._buckets[key] = bucket
        return bucket.try_acquire()

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
