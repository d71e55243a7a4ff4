"""Async Supabase storage engine (REST relational service).

Provides ``AsyncSupabaseEngine``, a ``StorageEngine`` over the supabase-py
async client.  The client is initialized lazily on first use with an
``asyncio.Lock`` so it is created exactly once.

PostgREST has no multi-statement transactions: ``supports_transactions`` is
``False`` and ``transaction()`` yields the engine itself.  Callers that need
all-or-nothing behaviour must check the flag.

Usage:
    from data_lifecycle.adapters.supabase import AsyncSupabaseEngine

    engine = AsyncSupabaseEngine(
        url="https://xyzproject.supabase.co",
        key="eyJ...",
    )
    rows = await engine.read("assets")
    await engine.close()
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from data_lifecycle.adapters.base import Row
from data_lifecycle.errors import EngineError, ErrorKind, translate_error

logger = logging.getLogger(__name__)


class AsyncSupabaseEngine:
    """Async Supabase implementation of the ``StorageEngine`` protocol.

    Args:
        url: Supabase project URL.
        key: Supabase API key (service role key for lifecycle operations).
        page_size: Rows per ranged read and per upsert request.
    """

    name = "supabase"
    supports_transactions = False

    def __init__(self, url: str, key: str, page_size: int = 1000) -> None:
        self._url: str = url
        self._key: str = key
        self._page_size: int = page_size
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Get or create the async Supabase client."""
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = await acreate_client(self._url, self._key)
        return self._client

    def _translate(self, exc: Exception, table: str | None = None) -> EngineError:
        if isinstance(exc, httpx.TransportError):
            return EngineError(
                f"{self.name} unreachable: {exc}",
                kind=ErrorKind.CONNECTION_FAILED,
                engine=self.name,
                table=table,
            )
        return translate_error(exc, engine=self.name, table=table)

    # ------------------------------------------------------------------
    # StorageEngine
    # ------------------------------------------------------------------

    async def read(self, table: str, filters: dict[str, Any] | None = None) -> list[Row]:
        """Read all rows in pages of ``page_size`` using ranged requests."""
        rows: list[Row] = []
        start = 0
        try:
            client = await self._get_client()
            while True:
                query = client.table(table).select("*")
                for column, value in (filters or {}).items():
                    query = query.eq(column, value)
                result = await query.range(start, start + self._page_size - 1).execute()
                page = result.data or []
                rows.extend(page)
                if len(page) < self._page_size:
                    return rows
                start += self._page_size
        except (APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, table) from exc

    async def write_batch(self, table: str, rows: list[Row], key: str = "id") -> int:
        """Upsert rows with ``on_conflict=key`` in chunks of ``page_size``.

        Rows are grouped by column set because one PostgREST request takes
        a single column list.
        """
        if not rows:
            return 0
        groups: dict[tuple[str, ...], list[Row]] = {}
        for row in rows:
            groups.setdefault(tuple(row), []).append(row)
        try:
            client = await self._get_client()
            for group in groups.values():
                for start in range(0, len(group), self._page_size):
                    chunk = group[start:start + self._page_size]
                    await client.table(table).upsert(chunk, on_conflict=key).execute()
            return len(rows)
        except (APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, table) from exc

    async def delete_where(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
    ) -> int:
        """Delete matching rows and return the exact count.

        PostgREST refuses an unfiltered DELETE, so "delete everything" is
        expressed as ``id IS NOT NULL``.
        """
        try:
            client = await self._get_client()
            query = client.table(table).delete(count="exact")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            for column, value in (exclude or {}).items():
                query = query.or_(f"{column}.neq.{value},{column}.is.null")
            if not filters and not exclude:
                query = query.not_.is_("id", "null")
            result = await query.execute()
        except (APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, table) from exc
        if result.count is not None:
            return result.count
        return len(result.data or [])

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AsyncSupabaseEngine"]:
        yield self

    async def test_connection(self) -> bool:
        """Issue a one-row read against ``users``."""
        try:
            client = await self._get_client()
            await client.table("users").select("id").limit(1).execute()
            return True
        except (APIError, httpx.HTTPError) as exc:
            raise self._translate(exc, "users") from exc

    async def close(self) -> None:
        """Close the Supabase async client, if it was ever created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
