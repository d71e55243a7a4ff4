"""Async ORM storage engine.

Provides ``AsyncOrmEngine``, a ``StorageEngine`` backed by SQLAlchemy ORM
sessions over the declarative models in ``orm_models``.  Works against
PostgreSQL (``asyncpg``) and file-based SQLite (``aiosqlite``) URLs,
including the ``file:./dev.db`` form local development setups use.

Rows are converted to the declared column types on write (see
``coerce_row``), so dumps produced by any engine can be restored here.

Usage:
    from data_lifecycle.adapters.orm import AsyncOrmEngine

    engine = AsyncOrmEngine("sqlite:///./assets.db")
    await engine.create_all()
    async with engine.transaction() as tx:
        await tx.write_batch("categories", rows)
    await engine.close()
"""

import copy
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from data_lifecycle.adapters.base import Row
from data_lifecycle.adapters.coercion import coerce_row, serialize_value
from data_lifecycle.adapters.orm_models import MODELS, Base
from data_lifecycle.adapters.postgres import (
    create_async_engine_pooled,
    normalize_postgres_url,
)
from data_lifecycle.errors import MissingTableError, translate_error

logger = logging.getLogger(__name__)

_NATIVE_ERRORS = (SQLAlchemyError, OSError)


def normalize_orm_url(database_url: str) -> str:
    """Map application URLs onto async SQLAlchemy drivers.

    Example:
        >>> normalize_orm_url("file:./dev.db")
        'sqlite+aiosqlite:///./dev.db'
    """
    url = database_url
    if url.startswith("file:"):
        return "sqlite+aiosqlite:///" + url[len("file:"):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return normalize_postgres_url(url)


class AsyncOrmEngine:
    """ORM-backed implementation of the ``StorageEngine`` protocol.

    Args:
        database_url: SQLite (``sqlite:///``, ``file:``) or PostgreSQL URL.
        **engine_kwargs: Forwarded to ``create_async_engine``.
    """

    name = "orm"
    supports_transactions = True

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        url = normalize_orm_url(database_url)
        if url.startswith("sqlite"):
            self._engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        else:
            self._engine = create_async_engine_pooled(url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)
        self._session: AsyncSession | None = None
        self._known_tables: dict[str, bool] = {}

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return
        async with self._sessionmaker() as session:
            async with session.begin():
                yield session

    async def _model(self, session: AsyncSession, table: str) -> type[Base]:
        """Resolve the model for ``table`` and check the table exists."""
        model = MODELS.get(table)
        if model is None:
            raise MissingTableError(table, engine=self.name)
        present = self._known_tables.get(table)
        if present is None:
            present = await session.run_sync(
                lambda sync_session: inspect(sync_session.connection()).has_table(table)
            )
            self._known_tables[table] = present
        if not present:
            raise MissingTableError(table, engine=self.name)
        return model

    @staticmethod
    def _to_row(obj: Base) -> Row:
        return {
            column.key: serialize_value(getattr(obj, column.key))
            for column in obj.__table__.columns
        }

    # ------------------------------------------------------------------
    # StorageEngine
    # ------------------------------------------------------------------

    async def read(self, table: str, filters: dict[str, Any] | None = None) -> list[Row]:
        try:
            async with self._session_scope() as session:
                model = await self._model(session, table)
                stmt = select(model)
                for column, value in (filters or {}).items():
                    stmt = stmt.where(getattr(model, column) == value)
                result = await session.scalars(stmt)
                return [self._to_row(obj) for obj in result.all()]
        except _NATIVE_ERRORS as exc:
            raise translate_error(exc, engine=self.name, table=table) from exc

    async def write_batch(self, table: str, rows: list[Row], key: str = "id") -> int:
        """Insert or replace rows through the session.

        Rows keyed on the primary key are merged.  For any other key the
        existing row is looked up and updated in place, keeping its id.
        """
        if not rows:
            return 0
        try:
            async with self._session_scope() as session:
                model = await self._model(session, table)
                pk = model.__table__.primary_key.columns.keys()[0]
                for row in rows:
                    values = coerce_row(model.__table__, row)
                    if key == pk:
                        await session.merge(model(**values))
                        continue
                    existing = await session.scalar(
                        select(model).where(getattr(model, key) == values[key])
                    )
                    if existing is None:
                        session.add(model(**values))
                    else:
                        for column, value in values.items():
                            if column != pk:
                                setattr(existing, column, value)
                await session.flush()
                return len(rows)
        except _NATIVE_ERRORS as exc:
            raise translate_error(exc, engine=self.name, table=table) from exc

    async def delete_where(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
    ) -> int:
        try:
            async with self._session_scope() as session:
                model = await self._model(session, table)
                stmt = delete(model)
                for column, value in (filters or {}).items():
                    stmt = stmt.where(getattr(model, column) == value)
                for column, value in (exclude or {}).items():
                    stmt = stmt.where(getattr(model, column).is_distinct_from(value))
                result = await session.execute(
                    stmt, execution_options={"synchronize_session": False}
                )
                return result.rowcount
        except _NATIVE_ERRORS as exc:
            raise translate_error(exc, engine=self.name, table=table) from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AsyncOrmEngine"]:
        if self._session is not None:
            yield self
            return
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    bound = copy.copy(self)
                    bound._session = session
                    yield bound
        except _NATIVE_ERRORS as exc:
            raise translate_error(exc, engine=self.name) from exc

    async def create_all(self) -> None:
        """Create every model table that does not exist yet."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._known_tables.clear()

    async def test_connection(self) -> bool:
        try:
            async with self._sessionmaker() as session:
                await session.execute(select(1))
                return True
        except _NATIVE_ERRORS as exc:
            raise translate_error(exc, engine=self.name) from exc

    async def close(self) -> None:
        if self._session is None:
            await self._engine.dispose()
