"""
Short-lived memoization of "does user X hold named permission Y".

The cache is never a source of truth: a miss or an expired entry always falls
back to the authoritative membership lookup. Entries live in process memory,
so separate API instances keep separate caches.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15 * 60


@dataclass(frozen=True)
class PermissionCacheEntry:
    user_id: str
    permission_name: str
    has_permission: bool
    cached_at: float
    expires_at: float


class PermissionCache(Protocol):
    def get(self, user_id: str, permission_name: str) -> Optional[bool]:
        ...

    def put(self, user_id: str, permission_name: str, has_permission: bool, ttl_seconds: Optional[float] = None) -> None:
        ...

    def invalidate(self, user_id: Optional[str] = None) -> None:
        ...


class InMemoryPermissionCache:
    """Thread-safe TTL cache keyed by (user_id, permission_name). Expiry is checked on read."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], PermissionCacheEntry] = {}

    def get(self, user_id: str, permission_name: str) -> Optional[bool]:
        key = (user_id, permission_name)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                logger.debug(f"Permission cache entry expired for {user_id} / {permission_name}")
                return None
            return entry.has_permission

    def put(self, user_id: str, permission_name: str, has_permission: bool, ttl_seconds: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = PermissionCacheEntry(
            user_id=user_id,
            permission_name=permission_name,
            has_permission=has_permission,
            cached_at=now,
            expires_at=now + ttl,
        )
        with self._lock:
            self._entries[(user_id, permission_name)] = entry

    def invalidate(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == user_id]:
                del self._entries[key]
        logger.debug(f"Invalidated permission cache for {user_id}")

    def entry(self, user_id: str, permission_name: str) -> Optional[PermissionCacheEntry]:
        with self._lock:
            return self._entries.get((user_id, permission_name))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullPermissionCache:
    """Always misses; decisions must come out identical to the in-memory cache."""

    def get(self, user_id: str, permission_name: str) -> Optional[bool]:
        return None

    def put(self, user_id: str, permission_name: str, has_permission: bool, ttl_seconds: Optional[float] = None) -> None:
        return None

    def invalidate(self, user_id: Optional[str] = None) -> None:
        return None
