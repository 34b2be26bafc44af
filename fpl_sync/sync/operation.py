"""Cache-aside synchronization of one entity kind.

SyncOperation is the only path by which records reach the cache. It reads
through the cache to the store and writes store first, cache second.

Per scope the cache is in one of three states:
    COLD        no cache entry; the next read goes to the store
    WARM        cache entry present; reads are served from it
    REFRESHING  a store read or a sync of the scope is in flight

Ordering rules:
- Syncs of the same scope are serialized by a per-scope asyncio.Lock, so the
  order of cache writes matches the order of store commits. A scope lock
  lives only while a sync holds or awaits it.
- Every cache write of the kind runs under one write lock. A read-through fill
  (or a sync writing a collection wider than its own lock scope) only writes
  if no sync of the kind started or finished since it read the store;
  otherwise the key is left cold (or invalidated). A slow cold read can never
  overwrite what a newer sync wrote.
- Concurrent cold reads of one scope share a single store read.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Sequence

from fpl_sync.cache import CacheGateway
from fpl_sync.db import StoreGateway
from fpl_sync.errors import (
    CacheError,
    DomainError,
    ErrorKind,
    StoreError,
    cache_to_domain,
    root_cause,
    store_to_domain,
)
from fpl_sync.monitoring import get_logger


class ScopeState(str, Enum):
    COLD = "cold"
    WARM = "warm"
    REFRESHING = "refreshing"


@dataclass
class SyncOutcome:
    """Result of one sync.

    Attributes:
        kind: Entity kind synced
        scope / secondary_scope: Scope that was replaced (None = whole kind)
        count: Records persisted by the store
        cache_degraded: Store write succeeded but the cache write failed
        cache_error: Translated cache failure when degraded
    """

    kind: str
    scope: Any
    secondary_scope: Any
    count: int
    cache_degraded: bool = False
    cache_error: DomainError | None = None


@dataclass
class _ScopeLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Syncs holding or waiting for the lock.
    users: int = 0


class SyncOperation:
    """Consistent cache-aside reads and store-then-cache syncs for one kind.

    Example:
        op = SyncOperation(store, cache, pointer_ttl=3600)
        outcome = await op.sync(fixtures, scope=12)
        rows = await op.read(scope=12)   # served from cache
    """

    def __init__(self, store: StoreGateway, cache: CacheGateway, pointer_ttl: int | None = None):
        if store.spec is not cache.spec:
            raise ValueError("store and cache must serve the same entity kind")
        self.spec = store.spec
        self.store = store
        self.cache = cache
        self.metrics = cache.metrics
        self.pointer_ttl = pointer_ttl
        self.logger = get_logger()

        self._scope_locks: dict[tuple, _ScopeLock] = {}
        self._write_lock = asyncio.Lock()
        self._inflight: dict[tuple, asyncio.Task] = {}
        self._refreshing: dict[tuple, int] = {}
        self._generation = 0
        self._active_syncs = 0

    @property
    def kind(self) -> str:
        return self.spec.kind

    async def state(self, scope: Any = None, secondary_scope: Any = None) -> ScopeState:
        if self._refreshing.get((scope, secondary_scope)):
            return ScopeState.REFRESHING
        try:
            warm = await self.cache.exists(scope, secondary_scope)
        except CacheError as e:
            self.logger.warning("cache_state_unknown", kind=self.kind, scope=scope, error=str(e))
            return ScopeState.COLD
        return ScopeState.WARM if warm else ScopeState.COLD

    async def read(self, scope: Any = None, secondary_scope: Any = None) -> list[Any]:
        """Read a collection, from cache when warm, else from the store.

        Raises:
            DomainError: If the store read fails
        """
        cached = await self._cached(self.cache.read(scope, secondary_scope), scope=scope)
        if cached is not None:
            self.metrics.hits += 1
            return cached

        self.metrics.misses += 1
        key = (scope, secondary_scope)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(scope, secondary_scope))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task)

    async def read_one(self, key: tuple) -> Any:
        """Read one record by natural key.

        Raises:
            DomainError: kind NOT_FOUND if no such record, or a store failure
        """
        cached = await self._cached(self.cache.read_one(key), key=key)
        if cached is not None:
            self.metrics.hits += 1
            return cached

        self.metrics.misses += 1
        generation = self._generation
        try:
            record = await self.store.find_by_id(key)
        except StoreError as e:
            raise store_to_domain(e) from e

        async with self._write_lock:
            if self._fill_allowed(generation):
                await self._best_effort(self.cache.write_one(record), "write_one", key=key)
        return record

    async def read_pointer(self, name: str) -> Any | None:
        """Read a singular pointer (e.g. the current event).

        Returns:
            The record, or None when no record carries the pointer flag
        """
        flag = self.spec.pointers.get(name)
        if flag is None:
            raise DomainError(
                ErrorKind.VALIDATION, f"{self.kind} has no pointer named {name!r}", details={"kind": self.kind}
            )

        cached = await self._cached(self.cache.read_pointer(name), pointer=name)
        if cached is not None:
            self.metrics.hits += 1
            return cached

        self.metrics.misses += 1
        generation = self._generation
        try:
            record = await self.store.find_first(flag)
        except StoreError as e:
            raise store_to_domain(e) from e

        if record is not None:
            async with self._write_lock:
                if self._fill_allowed(generation):
                    await self._best_effort(
                        self.cache.write_pointer(name, record, ttl=self.pointer_ttl), "write_pointer", pointer=name
                    )
        return record

    async def sync(
        self,
        records: Sequence[Any],
        scope: Any = None,
        secondary_scope: Any = None,
        replace: bool = True,
    ) -> SyncOutcome:
        """Persist records, then refresh the cache from what was persisted.

        With replace=True the scope (or the whole kind) becomes exactly the
        given records. With replace=False records are upserted and the scope's
        cache entry is invalidated instead of rewritten.

        Raises:
            DomainError: If the store write fails (the cache is not touched)
        """
        key = (scope, secondary_scope)
        async with self._scope_guard(key):
            self._begin(key)
            self._active_syncs += 1
            self._generation += 1
            generation = self._generation
            try:
                try:
                    if replace:
                        persisted = await self.store.replace(records, scope, secondary_scope)
                    else:
                        persisted = await self.store.save_batch(records)
                except StoreError as e:
                    error = store_to_domain(e)
                    self.logger.error(
                        "sync_store_write_failed",
                        kind=self.kind,
                        scope=scope,
                        secondary_scope=secondary_scope,
                        error_kind=error.kind.value,
                        error=error.message,
                        cause=root_cause(e),
                    )
                    raise error from e

                outcome = SyncOutcome(self.kind, scope, secondary_scope, count=len(persisted))
                async with self._write_lock:
                    try:
                        await self._refresh_cache(persisted, scope, secondary_scope, replace, generation)
                    except CacheError as e:
                        self.metrics.write_failures += 1
                        outcome.cache_degraded = True
                        outcome.cache_error = cache_to_domain(e)
                        self.logger.warning(
                            "sync_cache_write_degraded",
                            kind=self.kind,
                            scope=scope,
                            secondary_scope=secondary_scope,
                            error_kind=e.kind.value,
                            error=e.message,
                            cause=root_cause(e),
                        )
                        await self._best_effort(
                            self._invalidate_affected(persisted, scope, secondary_scope), "invalidate", scope=scope
                        )
            finally:
                self._active_syncs -= 1
                self._generation += 1
                self._end(key)

        self.logger.info(
            "sync_completed",
            kind=self.kind,
            scope=scope,
            secondary_scope=secondary_scope,
            count=outcome.count,
            cache_degraded=outcome.cache_degraded,
        )
        return outcome

    async def invalidate(self, scope: Any = None, secondary_scope: Any = None) -> None:
        async with self._write_lock:
            try:
                await self.cache.invalidate(scope, secondary_scope)
            except CacheError as e:
                raise cache_to_domain(e) from e

    async def _load(self, scope: Any, secondary_scope: Any) -> list[Any]:
        key = (scope, secondary_scope)
        self._begin(key)
        generation = self._generation
        try:
            try:
                if scope is None:
                    records = await self.store.find_all()
                else:
                    records = await self.store.find_by_scope(scope, secondary_scope)
            except StoreError as e:
                raise store_to_domain(e) from e

            if records:
                async with self._write_lock:
                    if self._fill_allowed(generation):
                        await self._best_effort(
                            self.cache.write(records, scope, secondary_scope, invalidate_related=False),
                            "write",
                            scope=scope,
                        )
            return records
        finally:
            self._end(key)

    async def _refresh_cache(
        self,
        persisted: list[Any],
        scope: Any,
        secondary_scope: Any,
        replace: bool,
        generation: int,
    ) -> None:
        wide = (self.spec.scope_field is not None and scope is None) or (
            self.spec.secondary_scope_field is not None and secondary_scope is None
        )
        # Another sync overlapped; a wide snapshot may already be outdated.
        overlapped = wide and self._generation != generation
        if not replace or overlapped:
            await self._invalidate_affected(persisted, scope, secondary_scope)
        else:
            await self.cache.write(persisted, scope, secondary_scope)

        if self.spec.pointers and scope is None:
            for name, flag in self.spec.pointers.items():
                record = next((r for r in persisted if getattr(r, flag)), None)
                if not replace or overlapped:
                    await self.cache.invalidate_pointer(name)
                else:
                    await self.cache.write_pointer(name, record, ttl=self.pointer_ttl)

    async def _cached(self, awaitable: Any, **context: Any) -> Any | None:
        try:
            return await awaitable
        except CacheError as e:
            self.metrics.read_errors += 1
            self.logger.warning(
                "cache_read_failed",
                kind=self.kind,
                error_kind=e.kind.value,
                error=e.message,
                cause=root_cause(e),
                **context,
            )
            return None

    async def _best_effort(self, awaitable: Any, operation: str, **context: Any) -> None:
        try:
            await awaitable
        except CacheError as e:
            self.metrics.write_failures += 1
            self.logger.warning(
                "cache_write_failed",
                kind=self.kind,
                operation=operation,
                error_kind=e.kind.value,
                error=e.message,
                cause=root_cause(e),
                **context,
            )

    def _fill_allowed(self, generation: int) -> bool:
        if self._active_syncs or self._generation != generation:
            self.logger.debug("cache_fill_skipped", kind=self.kind, reason="concurrent_sync")
            return False
        return True

    @asynccontextmanager
    async def _scope_guard(self, key: tuple) -> AsyncIterator[None]:
        entry = self._scope_locks.get(key)
        if entry is None:
            entry = self._scope_locks[key] = _ScopeLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._scope_locks[key]

    async def _invalidate_affected(self, persisted: list[Any], scope: Any, secondary_scope: Any) -> None:
        keys = {(scope, secondary_scope), (scope, None), (None, None)}
        if self.spec.scope_field:
            for record in persisted:
                record_scope, record_secondary = self.spec.scope_of(record)
                keys.update({(record_scope, record_secondary), (record_scope, None)})
        for key_scope, key_secondary in keys:
            await self.cache.invalidate(key_scope, key_secondary)

    def _begin(self, key: tuple) -> None:
        self._refreshing[key] = self._refreshing.get(key, 0) + 1

    def _end(self, key: tuple) -> None:
        remaining = self._refreshing.get(key, 0) - 1
        if remaining > 0:
            self._refreshing[key] = remaining
        else:
            self._refreshing.pop(key, None)

    def _forget(self, key: tuple, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
