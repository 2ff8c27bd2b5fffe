# src/pulsekit/core/reliability/rate_limit.py
"""Per-key rate limiting built on pyrate-limiter.

Each ``category:action`` key gets its own in-memory bucket holding
``max_requests`` per ``window_seconds``. Acquisition never blocks: a full
bucket is reported to the caller immediately.

All keys share one ``Limiter`` and therefore one background leaker thread;
the bucket factory routes each item name to its key's bucket. The number of
tracked keys is capped and the least recently used key is evicted first, so
free-form category and action strings cannot grow memory without bound.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable

import structlog
from pyrate_limiter import (  # type: ignore[attr-defined]
    AbstractBucket,
    BucketFactory,
    BucketFullException,
    InMemoryBucket,
    Limiter,
    Rate,
    RateItem,
    TimeClock,
)

logger = structlog.get_logger(__name__)

_DEFAULT_MAX_KEYS = 10_000


class KeyedBucketFactory(BucketFactory):
    """Routes rate items to one InMemoryBucket per item name.

    Buckets are created lazily and registered with the factory's single
    leaker. Not thread-safe on its own; RateLimitRegistry serializes access.
    """

    def __init__(
        self,
        rates: list[Rate],
        max_keys: int = _DEFAULT_MAX_KEYS,
        on_evict: Callable[[str], None] | None = None,
    ) -> None:
        self._rates = rates
        self._max_keys = max_keys
        self._on_evict = on_evict
        self._clock = TimeClock()
        self._buckets: OrderedDict[str, AbstractBucket] = OrderedDict()

    def wrap_item(self, name: str, weight: int = 1) -> RateItem:
        return RateItem(name, self._clock.now(), weight=weight)

    def get(self, item: RateItem) -> AbstractBucket:
        bucket = self._buckets.get(item.name)
        if bucket is not None:
            self._buckets.move_to_end(item.name)
            return bucket
        bucket = self.create(self._clock, InMemoryBucket, self._rates)
        self._buckets[item.name] = bucket
        # The new bucket is registered before the eviction so the leaker never runs empty
        while len(self._buckets) > self._max_keys:
            evicted, old = self._buckets.popitem(last=False)
            self.dispose(old)
            if self._on_evict is not None:
                self._on_evict(evicted)
            logger.debug("Rate limit bucket evicted", key=evicted)
        return bucket

    def keys(self) -> list[str]:
        return list(self._buckets)

    def flush(self, key: str) -> None:
        bucket = self._buckets.get(key)
        if bucket is not None:
            bucket.flush()

    def close(self) -> None:
        for bucket in self._buckets.values():
            self.dispose(bucket)
        self._buckets.clear()


class RateLimitRegistry:
    """Sliding-window limits per key over a single shared Limiter. Thread-safe.

    Example:
        registry = RateLimitRegistry(max_requests=100, window_seconds=60)
        if not registry.try_acquire("cart:add"):
            raise RateLimitExceededError("cart:add")
    """

    def __init__(self, max_requests: int, window_seconds: float, *, max_keys: int = _DEFAULT_MAX_KEYS) -> None:
        if max_requests <= 0:
            raise ValueError(f"max_requests must be positive, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        if max_keys <= 0:
            raise ValueError(f"max_keys must be positive, got {max_keys}")
        self._rates = [Rate(max_requests, int(window_seconds * 1000))]
        self._max_keys = max_keys
        self._lock = threading.Lock()
        self._factory: KeyedBucketFactory | None = None
        self._limiter: Limiter | None = None
        self._counts: dict[str, dict[str, int]] = {}

    def _get_limiter(self) -> Limiter:
        # The leaker thread cannot be restarted once it exits, so a closed
        # registry starts over with a fresh factory
        if self._limiter is None or self._factory is None:
            self._factory = KeyedBucketFactory(self._rates, self._max_keys, on_evict=self._drop_counts)
            self._limiter = Limiter(self._factory, raise_when_fail=False, max_delay=None)
        return self._limiter

    def _drop_counts(self, key: str) -> None:
        # Called from the factory while the registry lock is held
        self._counts.pop(key, None)

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            try:
                acquired = bool(self._get_limiter().try_acquire(key))
            except BucketFullException:
                acquired = False
            counts = self._counts.setdefault(key, {"allowed": 0, "rejected": 0})
            counts["allowed" if acquired else "rejected"] += 1
            return acquired

    def stats(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {key: dict(counts) for key, counts in self._counts.items()}

    def reset(self, key: str | None = None) -> None:
        """Empty the bucket for ``key`` (or every bucket) so counting restarts."""
        with self._lock:
            if self._factory is None:
                self._counts.clear()
                return
            keys = [key] if key is not None else self._factory.keys()
            for k in keys:
                self._factory.flush(k)
                self._counts.pop(k, None)

    def close(self) -> None:
        with self._lock:
            if self._factory is not None:
                self._factory.close()
            self._factory = None
            self._limiter = None
            self._counts.clear()
        logger.debug("Rate limiters closed")
