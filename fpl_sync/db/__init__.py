"""Database layer for the FPL sync backend.

Provides SQLAlchemy ORM models, engine/session factories and the generic
StoreGateway used by every synchronized entity kind.

Public exports:
    - Base: SQLAlchemy declarative base
    - MODELS: entity kind -> ORM model
    - create_engine / create_session_factory / session_scope
    - StoreGateway: typed CRUD + idempotent batch upsert for one kind
    - init_database: Create tables
"""

from sqlalchemy.ext.asyncio import AsyncEngine

from fpl_sync.db.models import MODELS, Base
from fpl_sync.db.session import create_engine, create_session_factory, session_scope
from fpl_sync.db.store import StoreGateway, stores_for


async def init_database(engine: AsyncEngine) -> None:
    """Create tables if they don't exist.

    Should be called at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "MODELS",
    "create_engine",
    "create_session_factory",
    "session_scope",
    "StoreGateway",
    "stores_for",
    "init_database",
]
