from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING: Any = object()


class CachePurpose(str, enum.Enum):
    SSM_DAILY = "ssm_daily"
    SSM_MONTHLY = "ssm_monthly"
    SSM_WEEK_CHART = "ssm_week_chart"


@dataclass(frozen=True)
class CacheKey:
    purpose: CachePurpose
    user_id: int
    period: Optional[str] = None

    def __str__(self) -> str:
        base = f"{self.purpose.value}_{self.user_id}"
        if self.period:
            return f"{base}_{self.period}"
        return base


class TTLCache:
    """Process-wide key/value store with per-entry expiry.

    Entries are stored as ``(value, expires_at)`` against a monotonic clock.
    Expired entries behave as absent; they are dropped when touched and
    swept from the store on every write.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._lock = RLock()
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return _MISSING
        return value

    def get(self, key: Union[CacheKey, str], default: Any = None) -> Any:
        with self._lock:
            value = self._lookup(str(key))
        return default if value is _MISSING else value

    def has(self, key: Union[CacheKey, str]) -> bool:
        with self._lock:
            return self._lookup(str(key)) is not _MISSING

    def set(self, key: Union[CacheKey, str], value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._entries[str(key)] = (value, now + ttl_seconds)

    def _purge(self, now: float) -> int:
        # Period keys (one per day or month) are never read again once stale.
        expired = [name for name, (_, expires_at) in self._entries.items() if expires_at <= now]
        for name in expired:
            del self._entries[name]
        return len(expired)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def forget(self, key: Union[CacheKey, str]) -> bool:
        with self._lock:
            return self._entries.pop(str(key), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_compute(self, key: Union[CacheKey, str], ttl_seconds: float, producer: Callable[[], T]) -> T:
        """Return the cached value or store what ``producer`` returns.

        The producer runs outside the lock; two concurrent misses on the same
        key may both run it. When the producer raises, nothing is stored.
        """
        name = str(key)
        with self._lock:
            value = self._lookup(name)
        if value is not _MISSING:
            logger.debug("Cache hit", extra={"cache_key": name})
            return value
        logger.debug("Cache miss", extra={"cache_key": name})
        value = producer()
        self.set(name, value, ttl_seconds)
        return value

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)
