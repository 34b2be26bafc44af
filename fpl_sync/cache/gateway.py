"""Typed Redis access for one synchronized entity kind.

Key layout:
    {prefix}::{season}                       all records of the kind
    {prefix}::{season}::{scope}              one scope (e.g. one event)
    {prefix}::{season}::{scope}::{secondary} one scope + secondary scope
    {prefix}::{season}::{pointer}            singular pointer (e.g. current event)

Collections are Redis hashes keyed by the record's in-scope id, so one scoped
key holds many records addressable by field. Pointers are plain string keys
holding one serialized record.

Collection writes are a single MULTI/EXEC transaction (DEL, HSET, EXPIRE plus
the deletion of any broader or narrower keys that now hold stale copies), so
a concurrent reader sees the old collection or the new one, never a partial
one.
"""

from typing import Any, Sequence

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from fpl_sync.cache.serialization import deserialize, serialize
from fpl_sync.entities import EntitySpec
from fpl_sync.errors import CacheError, ErrorKind
from fpl_sync.monitoring import CacheMetrics, get_logger


class CacheGateway:
    """Read/write access to the cache for one entity kind.

    read() and read_one() return None when an entry is absent OR structurally
    invalid, so callers fall back to the store. Malformed JSON raises a
    CacheError of kind CACHE_DESERIALIZATION.

    Example:
        cache = CacheGateway(PLAYER_STATS, client, season="2526", ttl=300)
        await cache.write(stats, scope=12)
        cached = await cache.read(scope=12)
    """

    def __init__(
        self,
        spec: EntitySpec,
        client: redis.Redis,
        season: str,
        ttl: int,
        metrics: CacheMetrics | None = None,
    ):
        self.spec = spec
        self.client = client
        self.season = season
        self.ttl = ttl
        self.metrics = metrics or CacheMetrics()
        self.logger = get_logger()

    def key(self, scope: Any = None, secondary_scope: Any = None) -> str:
        parts = [self.spec.cache_prefix, self.season]
        if scope is not None:
            parts.append(_part(scope))
            if secondary_scope is not None:
                parts.append(_part(secondary_scope))
        return "::".join(parts)

    def pointer_key(self, name: str) -> str:
        return f"{self.spec.cache_prefix}::{self.season}::{name}"

    async def read(self, scope: Any = None, secondary_scope: Any = None) -> list[Any] | None:
        """Read a whole collection.

        Returns:
            Records sorted by natural key, or None if absent or invalid

        Raises:
            CacheError: On connection/operation failure or undecodable entries
        """
        key = self.key(scope, secondary_scope)
        raw = await self._call("read", key, self.client.hgetall(key))
        if not raw:
            return None

        records = []
        for field, value in raw.items():
            record = self._parse(key, value, field=field)
            if record is None:
                return None
            records.append(record)
        return sorted(records, key=self.spec.key_of)

    async def read_one(self, natural_key: tuple) -> Any | None:
        """Read one record of a collection by natural key."""
        key, field = self._location(natural_key)
        value = await self._call("read_one", key, self.client.hget(key, field))
        if value is None:
            return None
        return self._parse(key, value, field=field)

    async def exists(self, scope: Any = None, secondary_scope: Any = None) -> bool:
        key = self.key(scope, secondary_scope)
        return bool(await self._call("exists", key, self.client.exists(key)))

    async def write(
        self,
        records: Sequence[Any],
        scope: Any = None,
        secondary_scope: Any = None,
        ttl: int | None = None,
        invalidate_related: bool = True,
    ) -> None:
        """Atomically replace a collection.

        With invalidate_related, stale copies are dropped in the same
        transaction: writing one scope removes the season-wide collection (and
        the scope-wide one when a secondary scope is given); writing the
        season-wide collection of a scoped kind removes every per-scope
        collection. Read-through fills pass False since they change nothing
        in the store.
        """
        key = self.key(scope, secondary_scope)
        mapping = {self.spec.member_key_of(r): serialize(self.spec.to_dict(r)) for r in records}
        stale = await self._stale_keys(scope, secondary_scope) if invalidate_related else []

        async def _transaction() -> None:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(key, *stale)
                if mapping:
                    pipe.hset(key, mapping=mapping)
                    pipe.expire(key, ttl or self.ttl)
                await pipe.execute()

        await self._call("write", key, _transaction())
        self.logger.debug("cache_collection_written", kind=self.spec.kind, key=key, count=len(mapping), invalidated=len(stale))

    async def write_one(self, record: Any) -> bool:
        """Add or overwrite one record inside an existing collection.

        A missing collection is left missing so a single record never poses
        as a complete snapshot. The key is WATCHed, so an expiry between the
        existence check and the HSET aborts the write.

        Returns:
            True if the record was written
        """
        key, field = self._location(self.spec.key_of(record))
        value = serialize(self.spec.to_dict(record))

        async def _transaction() -> bool:
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    if not await pipe.exists(key):
                        return False
                    pipe.multi()
                    pipe.hset(key, field, value)
                    await pipe.execute()
                except WatchError:
                    self.logger.debug("cache_write_one_aborted", kind=self.spec.kind, key=key)
                    return False
            return True

        return await self._call("write_one", key, _transaction())

    async def read_pointer(self, name: str) -> Any | None:
        key = self.pointer_key(name)
        value = await self._call("read_pointer", key, self.client.get(key))
        if value is None:
            return None
        return self._parse(key, value)

    async def write_pointer(self, name: str, record: Any | None, ttl: int | None = None) -> None:
        """Set a pointer, or delete it when record is None."""
        key = self.pointer_key(name)
        if record is None:
            await self._call("write_pointer", key, self.client.delete(key))
            return
        value = serialize(self.spec.to_dict(record))
        await self._call("write_pointer", key, self.client.set(key, value, ex=ttl or self.ttl))

    async def invalidate(self, scope: Any = None, secondary_scope: Any = None) -> None:
        key = self.key(scope, secondary_scope)
        await self._call("invalidate", key, self.client.delete(key))
        self.logger.debug("cache_invalidated", kind=self.spec.kind, key=key)

    async def invalidate_pointer(self, name: str) -> None:
        key = self.pointer_key(name)
        await self._call("invalidate_pointer", key, self.client.delete(key))

    def _location(self, natural_key: tuple) -> tuple[str, str]:
        """Collection key and hash field a single record is read from and written to.

        Only scope fields that are part of the natural key select the
        collection; a fixture (keyed by id alone) lives in the season-wide hash.
        """
        values = dict(zip(self.spec.key_fields, natural_key))
        scope = values.get(self.spec.scope_field)
        secondary = values.get(self.spec.secondary_scope_field) if scope is not None else None
        field = ":".join(_part(values[f]) for f in self.spec.member_key_fields)
        return self.key(scope, secondary), field

    async def _stale_keys(self, scope: Any, secondary_scope: Any) -> list[str]:
        if not self.spec.scope_field:
            return []
        if scope is None:
            pattern = f"{self.key()}::*"
            pointer_keys = {self.pointer_key(name) for name in self.spec.pointers}
            keys = await self._call("scan", pattern, self._scan(pattern))
            return [k for k in keys if k not in pointer_keys]
        stale = [self.key()]
        if secondary_scope is not None:
            stale.append(self.key(scope))
        elif self.spec.secondary_scope_field:
            pattern = f"{self.key(scope)}::*"
            stale.extend(await self._call("scan", pattern, self._scan(pattern)))
        return stale

    async def _scan(self, pattern: str) -> list[str]:
        return [k async for k in self.client.scan_iter(match=pattern, count=500)]

    def _parse(self, key: str, value: str, field: str | None = None) -> Any | None:
        data = deserialize(value)
        if not self.spec.is_valid(data):
            self.metrics.invalid_entries += 1
            self.logger.warning("cache_entry_invalid", kind=self.spec.kind, key=key, field=field)
            return None
        try:
            return self.spec.from_dict(data)
        except TypeError as e:
            self.metrics.invalid_entries += 1
            self.logger.warning("cache_entry_invalid", kind=self.spec.kind, key=key, field=field, error=str(e))
            return None

    async def _call(self, operation: str, key: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise CacheError(
                ErrorKind.CONNECTION,
                f"Cache unavailable during {operation} of {key}",
                details={"kind": self.spec.kind, "key": key, "operation": operation},
                cause=e,
            ) from e
        except RedisError as e:
            raise CacheError(
                ErrorKind.OPERATION,
                f"Cache {operation} failed for {key}",
                details={"kind": self.spec.kind, "key": key, "operation": operation},
                cause=e,
            ) from e


def _part(value: Any) -> str:
    return value.isoformat() if hasattr(value, "isoformat") else str(value)
