"""
Fixed-window, per-client request rate limiting.

Each client key gets a counter that lives for a 60 second window. The
counters sit behind a small store interface so the default process-local
table can be swapped for Django's cache framework (and with it Redis or
Memcached) without touching the limiter:

    RATE_LIMIT_STORE        – "memory" (default) or "cache"
    RATE_LIMIT_CACHE_ALIAS  – cache alias used by the "cache" store

The limiter serialises its read-check-write sequence with a lock, so counts
are exact inside one process. Separate worker processes sharing a cache can
still race; the limit is advisory, not a security boundary.
"""

import abc
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


@dataclass
class RateLimitRecord:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


class RateLimitStore(abc.ABC):
    """Storage for per-client :class:`RateLimitRecord` values."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[RateLimitRecord]:
        """Return the record for *key*, or ``None`` if there is none."""

    @abc.abstractmethod
    def set(self, key: str, record: RateLimitRecord, ttl: float) -> None:
        """Store *record*; stores with expiry may drop it after *ttl* seconds."""


class MemoryRateLimitStore(RateLimitStore):
    """Process-local table. Records are replaced, never evicted."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def set(self, key: str, record: RateLimitRecord, ttl: float) -> None:
        self._records[key] = record

    def __len__(self) -> int:
        return len(self._records)


class CacheRateLimitStore(RateLimitStore):
    """Records kept in a Django cache, expiring when their window ends."""

    key_prefix = 'ratelimit:'

    def __init__(self, alias: str = 'default') -> None:
        from django.core.cache import caches  # noqa: PLC0415

        self._cache = caches[alias]

    def get(self, key: str) -> Optional[RateLimitRecord]:
        value = self._cache.get(self.key_prefix + key)
        if value is None:
            return None
        count, reset_at = value
        return RateLimitRecord(count=count, reset_at=reset_at)

    def set(self, key: str, record: RateLimitRecord, ttl: float) -> None:
        timeout = max(1, math.ceil(ttl))
        self._cache.set(self.key_prefix + key, (record.count, record.reset_at), timeout)


class RateLimiter:
    """Allows at most ``limit`` requests per client key per window.

    Args:
        store: Record storage; defaults to a fresh :class:`MemoryRateLimitStore`.
        clock: Returns the current time in epoch seconds.
        window_seconds: Window length.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
        window_seconds: int = WINDOW_SECONDS,
    ) -> None:
        self.store = store if store is not None else MemoryRateLimitStore()
        self._clock = clock
        self._window = window_seconds
        self._lock = threading.Lock()

    def check(self, client_key: str, limit: int) -> RateLimitDecision:
        """Count one request for *client_key* and decide whether to allow it."""
        with self._lock:
            now = self._clock()
            record = self.store.get(client_key)

            if record is None or now > record.reset_at:
                self.store.set(
                    client_key,
                    RateLimitRecord(count=1, reset_at=now + self._window),
                    self._window,
                )
                return RateLimitDecision(allowed=True)

            if record.count < limit:
                record.count += 1
                self.store.set(client_key, record, record.reset_at - now)
                return RateLimitDecision(allowed=True)

            retry_after = math.ceil(record.reset_at - now)
            logger.info('Rate limit hit for %s (%d/%d)', client_key, record.count, limit)
            return RateLimitDecision(allowed=False, retry_after=max(1, retry_after))


_limiter: Optional[RateLimiter] = None
_limiter_lock = threading.Lock()


def _build_store() -> RateLimitStore:
    kind = getattr(settings, 'RATE_LIMIT_STORE', 'memory')
    if kind == 'cache':
        return CacheRateLimitStore(getattr(settings, 'RATE_LIMIT_CACHE_ALIAS', 'default'))
    if kind != 'memory':
        logger.warning('Unknown RATE_LIMIT_STORE %r, using in-memory store.', kind)
    return MemoryRateLimitStore()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide :class:`RateLimiter`, creating it on first use."""
    global _limiter
    with _limiter_lock:
        if _limiter is None:
            _limiter = RateLimiter(store=_build_store())
        return _limiter


def reset_rate_limiter() -> None:
    """Drop the process-wide limiter. Intended for tests."""
    global _limiter
    with _limiter_lock:
        _limiter = None
