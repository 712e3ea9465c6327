"""
Permission Cache - per-user cache of resolved permission sets.

Cache Strategy:
- Process-level LRU (1000 users, 5-min TTL by default)
- Single-flight: concurrent misses for the same user share one load
- Failed loads are never cached

Cache Invalidation:
- User: role reassignment
- Role: role permission-set change or role (de)activation
- Global: permission or module deactivation

Without an invalidation call (e.g. a direct database edit) a cached set
stays valid until its TTL expires.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from cache.expiring_store import Clock, ExpiringStore
from config.settings import get_rbac_settings

from .permissions import PermissionName

logger = logging.getLogger(__name__)


# =============================================================================
# CACHE CONFIGURATION
# =============================================================================

@dataclass
class CacheConfig:
    """Cache configuration settings."""
    ttl_seconds: float = 300  # 5 minutes
    maxsize: int = 1000
    key_prefix: str = "rbac:perms:"


@dataclass(frozen=True)
class CachedPermissions:
    """Resolved permission set for one user."""
    user_id: int
    role_id: Optional[int]
    permissions: FrozenSet[PermissionName]
    resolved_at: float


Loader = Callable[[], Awaitable[CachedPermissions]]


def _retrieve_exception(task: "asyncio.Task") -> None:
    # Waiters may all be gone; keep asyncio from logging an unretrieved error
    if not task.cancelled():
        task.exception()


class PermissionCache:
    """
    Permission cache with single-flight population.

    At most one load per user key is in flight at any time. Waiters are
    shielded, so a cancelled request does not abort the shared load for
    other requests.
    """

    def __init__(self, config: Optional[CacheConfig] = None, clock: Clock = time.monotonic):
        self.config = config or CacheConfig()
        self._store = ExpiringStore(
            maxsize=self.config.maxsize,
            default_ttl=self.config.ttl_seconds,
            clock=clock,
        )
        self._inflight: Dict[str, "asyncio.Task[CachedPermissions]"] = {}
        # Last resolved role per key; outlives the cached set so in-flight
        # reloads can be matched to a role on invalidation
        self._last_roles = ExpiringStore(maxsize=self.config.maxsize, clock=clock)
        # Bumped on every invalidation; loads started before a bump are not stored
        self._generation = 0
        self._hits = 0
        self._misses = 0

    def get_cache_key(self, user_id: int) -> str:
        return f"{self.config.key_prefix}user:{user_id}"

    def get(self, user_id: int) -> Optional[CachedPermissions]:
        return self._store.get(self.get_cache_key(user_id))

    def set(self, entry: CachedPermissions) -> None:
        self._store.put(self.get_cache_key(entry.user_id), entry)

    async def get_or_load(self, user_id: int, loader: Loader) -> CachedPermissions:
        """
        Return the cached set, or load it once for all concurrent callers.

        Raises whatever the loader raises; nothing is cached in that case.
        """
        key = self.get_cache_key(user_id)

        entry = self._store.get(key)
        if entry is not None:
            self._hits += 1
            logger.debug(f"Permission cache hit for user {user_id}")
            return entry

        task = self._inflight.get(key)
        if task is None:
            self._misses += 1
            logger.debug(f"Permission cache miss for user {user_id}")
            task = asyncio.ensure_future(self._load(key, loader, self._generation))
            task.add_done_callback(_retrieve_exception)
            self._inflight[key] = task

        return await asyncio.shield(task)

    async def _load(self, key: str, loader: Loader, generation: int) -> CachedPermissions:
        task = asyncio.current_task()
        try:
            entry = await loader()
            self._last_roles.put(key, entry.role_id)
            if generation == self._generation:
                self._store.put(key, entry)
            else:
                logger.debug(f"Discarding permission load for {key} invalidated mid-flight")
            return entry
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate_user(self, user_id: int) -> None:
        key = self.get_cache_key(user_id)
        self._generation += 1
        self._store.delete(key)
        self._inflight.pop(key, None)
        logger.info(f"Invalidated permission cache for user {user_id}")

    def invalidate_role(self, role_id: int) -> int:
        """Drop cached sets of every user holding the role."""
        self._generation += 1
        removed = self._store.delete_where(
            lambda _key, entry: entry.role_id == role_id
        )
        # Unrelated users keep their in-flight load; unknown roles are dropped
        for key in list(self._inflight):
            last_role = self._last_roles.get(key)
            if last_role is None or last_role == role_id:
                del self._inflight[key]
        logger.info(f"Invalidated {removed} cached permission sets for role {role_id}")
        return removed

    def invalidate_all(self) -> None:
        self._generation += 1
        self._store.clear()
        self._last_roles.clear()
        self._inflight.clear()
        logger.info("Invalidated all cached permission sets")

    def stats(self) -> Dict[str, Any]:
        stats = self._store.stats()
        stats.update({
            "hits": self._hits,
            "misses": self._misses,
            "inflight": len(self._inflight),
        })
        return stats


# =============================================================================
# SINGLETON
# =============================================================================

_permission_cache: Optional[PermissionCache] = None


def get_permission_cache() -> PermissionCache:
    """Get the process-wide permission cache configured from RBAC_* settings."""
    global _permission_cache
    if _permission_cache is None:
        settings = get_rbac_settings()
        _permission_cache = PermissionCache(
            CacheConfig(
                ttl_seconds=settings.permission_cache_ttl_seconds,
                maxsize=settings.permission_cache_maxsize,
            )
        )
    return _permission_cache


def reset_permission_cache() -> None:
    """Drop the singleton (tests and settings reload)."""
    global _permission_cache
    _permission_cache = None
