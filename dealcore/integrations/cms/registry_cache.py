"""
Registry Cache - TTL read-through cache in front of the CMS provider registry

Lookup order for every operation:
1. In-process memory layer
2. Persistent registry_cache table (shared across sessions and workers)
3. Upstream registry call (bounded by a semaphore, single-flight per key)

Entries older than the TTL (7 days by default) are treated as absent and
refetched. Not-found results are cached like any other answer; upstream
failures are not cached and degrade to an empty result for that one lookup.

Persistent writes are best-effort: a failed write is logged and never fails
the read that triggered it. Writes are conditional upserts (only replace an
older snapshot), so concurrent fills of the same key are idempotent.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional

import httpx
import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dealcore.common.config import Settings, get_settings
from dealcore.common.database import upsert_insert, utcnow
from dealcore.common.metrics import REGISTRY_CACHE_LOOKUPS
from dealcore.common.tables import registry_cache
from dealcore.integrations.cms.client import CMSRegistryClient, RegistryUnavailableError
from dealcore.integrations.cms.schemas import (
    CanonicalProvider,
    ProviderDeficiency,
    ProviderPenalty,
    normalize_ccn,
)
from dealcore.matching.text_normalizer import normalize_text

logger = structlog.get_logger()

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: datetime


class RegistryCache:
    """
    Read-through cache for provider search, fetch-by-CCN, penalties and
    deficiencies.

    Usage:
        cache = RegistryCache(CMSRegistryClient(), session_factory=sessionmanager.session)
        providers = await cache.search_providers("Valley Grande Manor", state="TX")
    """

    def __init__(
        self,
        client: CMSRegistryClient,
        session_factory: Optional[SessionFactory] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.ttl = timedelta(days=self.settings.matching.registry_ttl_days)
        self.clock = clock

        self._memory: dict[str, CacheEntry] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._outbound = asyncio.Semaphore(self.settings.cms_max_concurrent_requests)

    @staticmethod
    def make_key(operation: str, *params: str) -> str:
        """Cache key = operation + normalized query parameters"""
        return ":".join([operation, *params])

    def is_fresh(self, fetched_at: datetime) -> bool:
        """An entry fetched at T is served through T + TTL inclusive"""
        return self.clock() - fetched_at <= self.ttl

    # ---- public operations -----------------------------------------------------------

    async def search_providers(
        self,
        name: str,
        state: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[CanonicalProvider]:
        """Search providers by name (and state); [] when registry unavailable"""
        limit = limit or self.settings.cms_search_limit
        query = normalize_text(name)
        state_key = (state or "").strip().upper()
        key = self.make_key("search", query, state_key or "all", str(limit))

        rows = await self._read_through(
            "search",
            key,
            lambda: self.client.search_providers(query, state_key or None, limit),
            default=[],
        )
        return [CanonicalProvider.from_registry_row(row) for row in rows or []]

    async def get_provider(self, ccn: str) -> Optional[CanonicalProvider]:
        """Fetch one provider by CCN; None when not found or unavailable"""
        normalized = normalize_ccn(ccn)
        if not normalized:
            return None

        key = self.make_key("provider", normalized)
        row = await self._read_through(
            "provider",
            key,
            lambda: self.client.get_provider(normalized),
            default=None,
        )
        return CanonicalProvider.from_registry_row(row) if row else None

    async def get_penalties(self, ccn: str) -> list[ProviderPenalty]:
        normalized = normalize_ccn(ccn)
        if not normalized:
            return []

        key = self.make_key("penalties", normalized)
        rows = await self._read_through(
            "penalties",
            key,
            lambda: self.client.get_penalties(normalized),
            default=[],
        )
        return [ProviderPenalty.from_registry_row(row) for row in rows or []]

    async def get_deficiencies(self, ccn: str) -> list[ProviderDeficiency]:
        normalized = normalize_ccn(ccn)
        if not normalized:
            return []

        key = self.make_key("deficiencies", normalized)
        rows = await self._read_through(
            "deficiencies",
            key,
            lambda: self.client.get_deficiencies(normalized),
            default=[],
        )
        return [ProviderDeficiency.from_registry_row(row) for row in rows or []]

    def clear(self):
        """Drop the in-process layer (persistent entries are kept)"""
        self._memory.clear()

    async def purge_expired(self) -> int:
        """
        Evict expired memory entries and delete persistent entries older
        than the TTL. Returns persistent rows removed.
        """
        for key in [k for k, e in self._memory.items() if not self.is_fresh(e.fetched_at)]:
            del self._memory[key]

        if self.session_factory is None:
            return 0

        cutoff = self.clock() - self.ttl
        async with self.session_factory() as session:
            result = await session.execute(
                sa.delete(registry_cache).where(registry_cache.c.fetched_at < cutoff)
            )
            await session.commit()

        logger.info("registry_cache_purged", removed=result.rowcount)
        return result.rowcount

    # ---- read-through machinery ------------------------------------------------------

    async def _read_through(
        self,
        operation: str,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        default: Any,
    ) -> Any:
        entry = self._fresh_memory_entry(key)
        if entry:
            REGISTRY_CACHE_LOOKUPS.labels(operation=operation, outcome="memory_hit").inc()
            return entry.payload

        # Locks live only while someone holds or waits on them
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._fill(operation, key, fetch, default)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._key_locks[key]

    def _fresh_memory_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._memory.get(key)
        if entry is None:
            return None
        if not self.is_fresh(entry.fetched_at):
            del self._memory[key]
            return None
        return entry

    async def _fill(
        self,
        operation: str,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        default: Any,
    ) -> Any:
        # Another waiter may have filled the key while we queued
        entry = self._fresh_memory_entry(key)
        if entry:
            REGISTRY_CACHE_LOOKUPS.labels(operation=operation, outcome="memory_hit").inc()
            return entry.payload

        entry = await self._read_persistent(key)
        if entry and self.is_fresh(entry.fetched_at):
            self._memory[key] = entry
            REGISTRY_CACHE_LOOKUPS.labels(operation=operation, outcome="persistent_hit").inc()
            logger.debug("registry_cache_hit", key=key, layer="persistent")
            return entry.payload

        try:
            async with self._outbound:
                payload = await fetch()
        except (RegistryUnavailableError, httpx.HTTPError) as e:
            REGISTRY_CACHE_LOOKUPS.labels(operation=operation, outcome="error").inc()
            logger.warning("registry_lookup_degraded",
                          key=key,
                          error=str(e))
            return default

        REGISTRY_CACHE_LOOKUPS.labels(operation=operation, outcome="miss").inc()
        entry = CacheEntry(payload=payload, fetched_at=self.clock())
        self._memory[key] = entry
        await self._write_persistent(key, operation, entry)

        logger.debug("registry_cache_filled", key=key)
        return payload

    async def _read_persistent(self, key: str) -> Optional[CacheEntry]:
        if self.session_factory is None:
            return None

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    sa.select(registry_cache.c.payload, registry_cache.c.fetched_at)
                    .where(registry_cache.c.cache_key == key)
                )
                row = result.first()
        except Exception as e:
            logger.warning("registry_cache_read_failed", key=key, error=str(e))
            return None

        if row is None:
            return None
        return CacheEntry(payload=row.payload, fetched_at=row.fetched_at)

    async def _write_persistent(self, key: str, operation: str, entry: CacheEntry):
        if self.session_factory is None:
            return

        try:
            async with self.session_factory() as session:
                stmt = upsert_insert(session, registry_cache).values(
                    cache_key=key,
                    operation=operation,
                    payload=entry.payload,
                    fetched_at=entry.fetched_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[registry_cache.c.cache_key],
                    set_={
                        "operation": stmt.excluded.operation,
                        "payload": stmt.excluded.payload,
                        "fetched_at": stmt.excluded.fetched_at,
                    },
                    where=registry_cache.c.fetched_at < stmt.excluded.fetched_at,
                )
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            logger.warning("registry_cache_write_failed", key=key, error=str(e))
