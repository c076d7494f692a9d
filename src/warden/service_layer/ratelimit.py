"""ABOUTME: In-memory rate limit primitives keyed by an arbitrary string (user id, IP, request id)
ABOUTME: Counting limiter, refilling token bucket and expiring token bucket, each guarded by one lock"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class CountingLimiter:
    """
    Allows `max_count` consumes per key, then refuses once and forgets the key.

    There is no time decay. Callers `reset` a key once the protected condition
    no longer applies and rely on a periodic `clear` to bound memory.
    """

    def __init__(self, max_count: int) -> None:
        if max_count < 1:
            raise ValueError("max_count must be at least 1")
        self.max_count = max_count
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}

    def consume(self, key: str) -> bool:
        with self._lock:
            count = self._counts.get(key, 0)
            if count < self.max_count:
                self._counts[key] = count + 1
                return True
            del self._counts[key]
            return False

    def check(self, key: str) -> bool:
        """Would the next consume be allowed? Does not change anything."""
        with self._lock:
            return self._counts.get(key, 0) < self.max_count

    def reset(self, key: str) -> None:
        with self._lock:
            self._counts.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._counts = {}


@dataclass(slots=True)
class _RefillingBucket:
    count: int
    refilled_at: datetime


class RefillingTokenBucket:
    """
    Token bucket that regains one token per `refill_interval`.

    The refill is worked out lazily from the stored timestamp on every access,
    there are no timers. A key with no bucket is a full bucket.
    """

    def __init__(self, max_tokens: int, refill_interval: timedelta, clock: Clock = utc_now) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if refill_interval <= timedelta(0):
            raise ValueError("refill_interval must be positive")
        self.max_tokens = max_tokens
        self.refill_interval = refill_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, _RefillingBucket] = {}

    def _current_count(self, bucket: _RefillingBucket, now: datetime) -> int:
        refill = max((now - bucket.refilled_at) // self.refill_interval, 0)
        return min(bucket.count + refill, self.max_tokens)

    def consume(self, key: str, cost: int = 1) -> bool:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            count = self.max_tokens if bucket is None else self._current_count(bucket, now)
            if count < cost:
                return False
            self._buckets[key] = _RefillingBucket(count=count - cost, refilled_at=now)
            return True

    def check(self, key: str, cost: int = 1) -> bool:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return self.max_tokens >= cost
            return self._current_count(bucket, self._clock()) >= cost

    def add_token_if_empty(self, key: str) -> None:
        """Give an empty bucket one token back. The refill timestamp is left alone."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return
            if self._current_count(bucket, self._clock()) < 1:
                bucket.count = 1

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._buckets = {}


@dataclass(slots=True)
class _ExpiringBucket:
    count: int
    created_at: datetime


class ExpiringTokenBucket:
    """
    Fixed window bucket: `max_tokens` per `expires_in`, counted from the first consume.

    Once the window has passed, the next consume starts a fresh full window at
    that moment, however drained the old one was.
    """

    def __init__(self, max_tokens: int, expires_in: timedelta, clock: Clock = utc_now) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if expires_in <= timedelta(0):
            raise ValueError("expires_in must be positive")
        self.max_tokens = max_tokens
        self.expires_in = expires_in
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, _ExpiringBucket] = {}

    def _is_expired(self, bucket: _ExpiringBucket, now: datetime) -> bool:
        return now >= bucket.created_at + self.expires_in

    def consume(self, key: str, cost: int = 1) -> bool:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or self._is_expired(bucket, now):
                if cost > self.max_tokens:
                    return False
                self._buckets[key] = _ExpiringBucket(count=self.max_tokens - cost, created_at=now)
                return True
            if bucket.count < cost:
                return False
            bucket.count -= cost
            return True

    def check(self, key: str, cost: int = 1) -> bool:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or self._is_expired(bucket, self._clock()):
                return self.max_tokens >= cost
            return bucket.count >= cost

    def add_token_if_empty(self, key: str) -> None:
        """Make sure the key has at least one token, without restarting its window."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return
            bucket.count = max(bucket.count, 1)

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._buckets = {}
