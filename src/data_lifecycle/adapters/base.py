"""Storage engine protocol definition.

Defines the ``StorageEngine`` Protocol that every backend adapter
implements.  All I/O methods are ``async def``.  Business logic talks only
to this interface and never branches on which engine it was handed.

Usage:
    from data_lifecycle.adapters.base import StorageEngine

    async def copy_sites(engine: StorageEngine) -> int:
        async with engine.transaction() as tx:
            rows = await tx.read("sites")
            return await tx.write_batch("sites", rows)
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

Row = dict[str, Any]


class StorageEngine(Protocol):
    """Capability interface shared by the postgres, supabase and orm engines.

    Attributes:
        name: Engine identifier used in logs and summaries.
        supports_transactions: ``True`` when ``transaction()`` gives real
            all-or-nothing semantics.  Engines without multi-statement
            transactions still provide ``transaction()``; it simply yields
            the engine itself.

    Every method raises ``MissingTableError`` when the table does not exist
    and ``EngineError`` for any other backend failure.
    """

    name: str
    supports_transactions: bool

    async def read(self, table: str, filters: dict[str, Any] | None = None) -> list[Row]:
        """Read every row of a table, optionally filtered by equality.

        Args:
            table: Table name.
            filters: Optional dict of column=value filters (AND-ed).

        Returns:
            List of JSON-compatible row dicts.  Timestamps are ISO-8601
            strings.

        Example:
            admins = await engine.read("users", {"role": "ADMIN"})
        """
        ...

    async def write_batch(self, table: str, rows: list[Row], key: str = "id") -> int:
        """Insert or replace rows, matching existing rows on ``key``.

        Rows whose ``key`` already exists are updated in place (the primary
        key of the existing row is never changed), so writing the same batch
        twice is a no-op.

        Args:
            table: Table name.
            rows: Row dicts keyed by column name.
            key: Natural key column used for conflict detection.

        Returns:
            Number of rows written.
        """
        ...

    async def delete_where(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
    ) -> int:
        """Delete rows matching ``filters`` and not matching ``exclude``.

        With no arguments every row of the table is deleted.  ``exclude``
        keeps rows whose column equals the given value; rows where that
        column is NULL are deleted.

        Example:
            removed = await engine.delete_where("users", exclude={"role": "ADMIN"})
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager["StorageEngine"]:
        """Open a unit of work and yield an engine bound to it.

        The unit commits when the block exits normally and rolls back when
        it raises.  Nested calls on a bound engine reuse the open unit.
        """
        ...

    async def test_connection(self) -> bool:
        """Check that the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release pooled connections and clients."""
        ...
