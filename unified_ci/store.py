"""Persistent key/value store.

A single sqlite file (``core.db_file``) accessed through an async SQLAlchemy
engine. Keys are namespaced by prefix, e.g. ``error:<message id>`` for checks
waiting to be retried and ``worker:<name>`` for worker heartbeats.
"""

import logging
from pathlib import Path

from sqlalchemy import Column, MetaData, String, Table, Text, delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

metadata = MetaData()

kv_table = Table(
    "kv",
    metadata,
    Column("key", String(512), primary_key=True),
    Column("value", Text, nullable=False),
)


class StoreError(Exception):
    """Raised when the store cannot be opened or queried."""


class Store:
    """Async key/value store backed by sqlite."""

    def __init__(self, db_file: str | Path):
        self.db_file = Path(db_file)
        self._engine: AsyncEngine | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StoreError("Store is not open")
        return self._engine

    async def open(self) -> None:
        """Open the database file, creating it and its schema if needed.

        Raises:
            StoreError: If the file cannot be opened
        """
        try:
            self.db_file.parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_file}")
            async with self._engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except (OSError, SQLAlchemyError) as e:
            await self.close()
            raise StoreError(f"Failed to open store {self.db_file}: {e}") from e

        logger.info(f"Store opened at {self.db_file}")

    async def close(self) -> None:
        """Dispose the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def get(self, key: str) -> str | None:
        """Return the value of ``key``, or None.

        Raises:
            StoreError: If the query fails
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    select(kv_table.c.value).where(kv_table.c.key == key)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {key}: {e}") from e

    async def put(self, key: str, value: str) -> None:
        stmt = insert(kv_table).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[kv_table.c.key], set_={"value": value}
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(delete(kv_table).where(kv_table.c.key == key))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete {key}: {e}") from e

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        """Return every ``(key, value)`` whose key starts with ``prefix``, sorted.

        Raises:
            StoreError: If the query fails
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    select(kv_table.c.key, kv_table.c.value)
                    .where(kv_table.c.key.startswith(prefix, autoescape=True))
                    .order_by(kv_table.c.key)
                )
                return [(row.key, row.value) for row in result]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to scan {prefix}: {e}") from e


_store: Store | None = None


async def init(db_file: str | Path) -> Store:
    """Open the process-wide store."""
    global _store

    store = Store(db_file)
    await store.open()
    _store = store
    return store


def get_store() -> Store:
    """Get the process-wide store.

    Raises:
        StoreError: If :func:`init` has not been called
    """
    if _store is None:
        raise StoreError("Store not initialized")
    return _store


async def deinit() -> None:
    """Release the process-wide store."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None
