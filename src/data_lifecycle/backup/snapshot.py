"""Table snapshot reader.

Reads the fixed list of logical tables into an in-memory dump.  Tables are
read concurrently (bounded by a semaphore) but the dump always keeps the
list order.  A missing table is skipped, logged and counted as 0 rows.
"""

import asyncio
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from data_lifecycle.adapters.base import Row, StorageEngine
from data_lifecycle.backup.schema import SNAPSHOT_TABLES
from data_lifecycle.errors import MissingTableError

logger = logging.getLogger(__name__)


class Snapshot(BaseModel):
    engine: str
    tables: dict[str, list[Row]] = Field(default_factory=dict)
    missing: list[str] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {name: len(rows) for name, rows in self.tables.items()}

    @property
    def total(self) -> int:
        return sum(self.counts.values())


async def read_table(engine: StorageEngine, name: str) -> list[Row]:
    """Read one table.  Raises ``MissingTableError`` if it does not exist."""
    return await engine.read(name)


async def read_all(
    engine: StorageEngine,
    tables: Sequence[str] = SNAPSHOT_TABLES,
    concurrency: int = 4,
) -> Snapshot:
    """Read every table in ``tables`` into a ``Snapshot``.

    Missing tables appear in the dump as empty lists and are listed in
    ``Snapshot.missing``.  Any other engine error propagates.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def _read(name: str) -> list[Row] | None:
        async with semaphore:
            try:
                return await read_table(engine, name)
            except MissingTableError:
                logger.info(f"[{engine.name}] {name}: table missing, skipped")
                return None

    results = await asyncio.gather(*(_read(name) for name in tables))

    snapshot = Snapshot(engine=engine.name)
    for name, rows in zip(tables, results):
        if rows is None:
            snapshot.missing.append(name)
            rows = []
        snapshot.tables[name] = rows
        logger.info(f"[{engine.name}] {name}: {len(rows)} rows")
    return snapshot
