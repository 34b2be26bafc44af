"""Generic store gateway with idempotent batch upsert.

One StoreGateway instance serves one entity kind. It is the only component
that talks to the relational store and the source of truth for every read
that misses the cache.

Upsert contract:
- Conflict target is the natural key (the model's primary key)
- On conflict every mutable column is overwritten from the incoming row and
  updated_at is bumped; created_at and key columns are never touched
- Duplicate natural keys inside one batch are collapsed before the statement
  is built: the LAST occurrence wins (overwrite-last)

Consistency of full resyncs:
- replace() deletes the previous snapshot (whole table or one scope) and
  upserts the new batch in ONE transaction, so concurrent readers see either
  the old or the new rows, never an empty window
- delete_all() on its own commits immediately; callers that use it followed by
  save_batch() accept a visible empty window between the two commits
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, func, select, tuple_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fpl_sync.db.models import MODELS, Base
from fpl_sync.db.session import session_scope
from fpl_sync.entities import EntitySpec
from fpl_sync.errors import ErrorKind, StoreError
from fpl_sync.monitoring import get_logger

# Rows per INSERT statement, keeps bound parameters well under driver limits.
CHUNK_SIZE = 500

_TIMESTAMP_COLUMNS = ("created_at", "updated_at")


# Driver messages of an OperationalError that mean the database itself is
# unreachable rather than the statement being wrong for the schema.
_CONNECTION_MARKERS = ("unable to open", "connect", "closed", "timeout", "timed out", "locked", "terminat")


def _is_connection_fault(exc: BaseException) -> bool:
    if isinstance(exc, (InterfaceError, DisconnectionError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, OperationalError):
        text = str(exc.orig).lower()
        return any(marker in text for marker in _CONNECTION_MARKERS)
    return False


def map_db_error(exc: BaseException, operation: str, kind_name: str) -> StoreError:
    """Translate a SQLAlchemy exception into a StoreError.

    Only connection faults map to CONNECTION. Schema faults such as a missing
    table are OperationalErrors on SQLite but map to QUERY.

    Driver text stays on ``cause``; the message only names the operation.

    Args:
        exc: Exception raised by SQLAlchemy or the driver
        operation: Gateway operation name (e.g. "save_batch")
        kind_name: Entity kind the operation ran for

    Returns:
        StoreError with the original exception as cause
    """
    if _is_connection_fault(exc):
        kind = ErrorKind.CONNECTION
    elif isinstance(exc, IntegrityError):
        kind = ErrorKind.CONSTRAINT
    elif isinstance(exc, DataError):
        kind = ErrorKind.VALIDATION
    elif isinstance(exc, SQLAlchemyError):
        kind = ErrorKind.QUERY
    else:
        kind = ErrorKind.OPERATION
    return StoreError(
        kind,
        f"Failed to {operation.replace('_', ' ')} {kind_name}",
        details={"kind": kind_name, "operation": operation},
        cause=exc,
    )


class StoreGateway:
    """Typed CRUD and batch-upsert access to one entity table.

    Every public method opens its own short unit of work, so a single gateway
    can be shared by concurrent workers.

    Example:
        store = StoreGateway(FIXTURES, session_factory)
        await store.replace(fixtures, scope=12)
        rows = await store.find_by_scope(12)
    """

    def __init__(self, spec: EntitySpec, session_factory: async_sessionmaker[AsyncSession]):
        self.spec = spec
        self.model: type[Base] = MODELS[spec.kind]
        self.session_factory = session_factory
        self.logger = get_logger()

        table = self.model.__table__
        self._columns = [c.name for c in table.columns]
        self._key_columns = [table.c[name] for name in spec.key_fields]
        self._mutable = [
            name
            for name in self._columns
            if name not in spec.key_fields and name not in _TIMESTAMP_COLUMNS
        ]

    async def find_by_id(self, key: tuple) -> Any:
        """Fetch one record by natural key.

        Raises:
            StoreError: kind NOT_FOUND when no row exists, or a mapped DB failure
        """
        try:
            async with session_scope(self.session_factory) as session:
                row = await session.get(self.model, key)
        except SQLAlchemyError as e:
            raise self._failed("find_by_id", e) from e

        if row is None:
            raise StoreError(
                ErrorKind.NOT_FOUND,
                f"{self.spec.kind} {':'.join(map(str, key))} not found",
                details={"kind": self.spec.kind, "key": key},
            )
        return self._to_record(row)

    async def find_all(self) -> list[Any]:
        """Fetch every record of this kind ordered by natural key."""
        stmt = select(self.model).order_by(*self._key_columns)
        return await self._select("find_all", stmt)

    async def find_by_scope(self, scope: Any, secondary_scope: Any = None) -> list[Any]:
        """Fetch every record of one scope (and optional secondary scope)."""
        stmt = select(self.model).where(*self._scope_clauses(scope, secondary_scope))
        return await self._select("find_by_scope", stmt.order_by(*self._key_columns))

    async def find_first(self, flag: str) -> Any | None:
        """Fetch the first record whose boolean column ``flag`` is true."""
        stmt = (
            select(self.model)
            .where(getattr(self.model, flag).is_(True))
            .order_by(*self._key_columns)
            .limit(1)
        )
        rows = await self._select("find_first", stmt)
        return rows[0] if rows else None

    async def save_batch(self, records: Sequence[Any]) -> list[Any]:
        """Idempotently upsert a batch and return the persisted records."""
        if not records:
            return []
        try:
            async with session_scope(self.session_factory) as session:
                rows = await self._upsert(session, records)
        except SQLAlchemyError as e:
            raise self._failed("save_batch", e, count=len(records)) from e

        self.logger.info("store_save_batch_completed", kind=self.spec.kind, count=len(rows))
        return rows

    async def delete_all(self) -> int:
        """Delete every row of this kind (commits immediately)."""
        return await self._delete("delete_all", delete(self.model))

    async def delete_scope(self, scope: Any, secondary_scope: Any = None) -> int:
        """Delete every row of one scope (commits immediately)."""
        stmt = delete(self.model).where(*self._scope_clauses(scope, secondary_scope))
        return await self._delete("delete_scope", stmt)

    async def replace(
        self,
        records: Sequence[Any],
        scope: Any = None,
        secondary_scope: Any = None,
    ) -> list[Any]:
        """Replace a snapshot atomically: delete + upsert in one transaction.

        With a scope only that scope's rows are replaced; without a scope the
        whole table is replaced. Records outside the given scope are rejected.

        Raises:
            StoreError: kind VALIDATION when a record belongs to another scope,
                or a mapped DB failure (nothing is committed)
        """
        if self.spec.scope_field and scope is not None:
            for record in records:
                record_scope, record_secondary = self.spec.scope_of(record)
                if record_scope != scope or (
                    secondary_scope is not None and record_secondary != secondary_scope
                ):
                    raise StoreError(
                        ErrorKind.VALIDATION,
                        f"{self.spec.kind} record {self.spec.key_of(record)} is outside scope {scope}",
                        details={"kind": self.spec.kind, "scope": scope, "secondary_scope": secondary_scope},
                    )

        if scope is None:
            stmt = delete(self.model)
        else:
            stmt = delete(self.model).where(*self._scope_clauses(scope, secondary_scope))

        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                rows = await self._upsert(session, records) if records else []
        except SQLAlchemyError as e:
            raise self._failed("replace", e, count=len(records)) from e

        self.logger.info(
            "store_replace_completed",
            kind=self.spec.kind,
            scope=scope,
            secondary_scope=secondary_scope,
            deleted=result.rowcount,
            count=len(rows),
        )
        return rows

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self.model)
        try:
            async with session_scope(self.session_factory) as session:
                return (await session.execute(stmt)).scalar() or 0
        except SQLAlchemyError as e:
            raise self._failed("count", e) from e

    async def check_health(self) -> bool:
        """Execute a trivial query to verify connectivity."""
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(select(1))
            return True
        except SQLAlchemyError as e:
            self.logger.warning(
                "store_health_check_failed",
                kind=self.spec.kind,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def _upsert(self, session: AsyncSession, records: Sequence[Any]) -> list[Any]:
        deduped: dict[tuple, dict[str, Any]] = {}
        for record in records:
            deduped[self.spec.key_of(record)] = self._to_row(record)
        if len(deduped) < len(records):
            self.logger.warning(
                "store_batch_duplicate_keys",
                kind=self.spec.kind,
                received=len(records),
                kept=len(deduped),
                strategy="overwrite_last",
            )

        rows = list(deduped.values())
        dialect_name = session.bind.dialect.name if session.bind else "sqlite"
        insert_fn = pg_insert if dialect_name == "postgresql" else sqlite_insert

        for start in range(0, len(rows), CHUNK_SIZE):
            stmt = insert_fn(self.model).values(rows[start : start + CHUNK_SIZE])
            set_ = {name: stmt.excluded[name] for name in self._mutable}
            set_["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=list(self.spec.key_fields), set_=set_)
            await session.execute(stmt)

        return await self._select_keys(session, list(deduped.keys()))

    async def _select_keys(self, session: AsyncSession, keys: list[tuple]) -> list[Any]:
        persisted: list[Any] = []
        for start in range(0, len(keys), CHUNK_SIZE):
            chunk = keys[start : start + CHUNK_SIZE]
            if len(self._key_columns) == 1:
                clause = self._key_columns[0].in_([k[0] for k in chunk])
            else:
                clause = tuple_(*self._key_columns).in_(chunk)
            stmt = select(self.model).where(clause).order_by(*self._key_columns)
            result = await session.execute(stmt)
            persisted.extend(self._to_record(row) for row in result.scalars().all())
        return persisted

    async def _select(self, operation: str, stmt: Any) -> list[Any]:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                return [self._to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._failed(operation, e) from e

    async def _delete(self, operation: str, stmt: Any) -> int:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise self._failed(operation, e) from e
        self.logger.info("store_delete_completed", kind=self.spec.kind, operation=operation, deleted=result.rowcount)
        return result.rowcount

    def _scope_clauses(self, scope: Any, secondary_scope: Any) -> list[Any]:
        if not self.spec.scope_field:
            raise StoreError(
                ErrorKind.VALIDATION,
                f"{self.spec.kind} is not a scoped entity",
                details={"kind": self.spec.kind},
            )
        clauses = [getattr(self.model, self.spec.scope_field) == scope]
        if self.spec.secondary_scope_field and secondary_scope is not None:
            clauses.append(getattr(self.model, self.spec.secondary_scope_field) == secondary_scope)
        return clauses

    def _failed(self, operation: str, exc: BaseException, **context: Any) -> StoreError:
        error = map_db_error(exc, operation, self.spec.kind)
        self.logger.error(
            "store_operation_failed",
            kind=self.spec.kind,
            operation=operation,
            error_kind=error.kind.value,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        return error

    def _to_row(self, record: Any) -> dict[str, Any]:
        data = self.spec.to_dict(record)
        return {name: data[name] for name in self._columns if name in data}

    def _to_record(self, row: Base) -> Any:
        data = {name: _as_utc(getattr(row, name)) for name in self._columns if name not in _TIMESTAMP_COLUMNS}
        return self.spec.from_dict(data)


def _as_utc(value: Any) -> Any:
    # SQLite drops tzinfo; every stored timestamp is UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def stores_for(specs: Iterable[EntitySpec], session_factory: async_sessionmaker[AsyncSession]) -> dict[str, StoreGateway]:
    """Instantiate one gateway per entity kind."""
    return {spec.kind: StoreGateway(spec, session_factory) for spec in specs}
