"""
Process-local TTL cache for per-user analytics results.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple
import json
import threading
import time

from spendsync.logging_config import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[str, str, str]


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


def make_key(user_id: Hashable, method: str, params: Optional[dict] = None) -> CacheKey:
    return (str(user_id), method, json.dumps(params or {}, sort_keys=True, default=str))


class AnalyticsCache:
    """
    Get-or-compute cache keyed by (user, method, params).

    Invalidation is per user and wipes every entry for that user. A value
    computed while an invalidation happened is returned to its caller but not
    stored, so a read after a mutation never sees pre-mutation results.
    Concurrent misses on the same key each compute (no stampede protection).
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return False, None
            return True, entry.value

    def _store(self, key: CacheKey, value: Any, generation: int) -> None:
        with self._lock:
            if self._generations.get(key[0], 0) != generation:
                logger.debug(f"Discarding stale analytics result for {key[1]} (user {key[0]})")
                return
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    async def get_or_compute(
        self,
        user_id: Hashable,
        method: str,
        params: Optional[dict],
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        key = make_key(user_id, method, params)
        hit, value = self.get(key)
        if hit:
            return value
        with self._lock:
            generation = self._generations.get(key[0], 0)
        value = await compute()
        self._store(key, value, generation)
        return value

    def invalidate_user(self, user_id: Hashable) -> int:
        """Drop every entry for a user; returns how many were removed"""
        user_key = str(user_id)
        with self._lock:
            self._generations[user_key] = self._generations.get(user_key, 0) + 1
            stale = [key for key in self._entries if key[0] == user_key]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} analytics entries for user {user_key}")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
