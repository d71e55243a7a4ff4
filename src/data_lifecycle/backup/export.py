"""Export orchestration: snapshot, collect files, build the archive.

``prepare_export()`` does all database work up front (through the engine
selector) and returns a ``PreparedExport`` whose archive bytes are produced
lazily by ``iter_bytes()`` or ``write_to()``.
"""

import asyncio
import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from data_lifecycle.backup.archive import ArchiveBuilder, archive_name
from data_lifecycle.backup.assets import collect
from data_lifecycle.backup.integrity import serialize_dump, sha256_hex
from data_lifecycle.backup.models import ArchiveMetadata, DatabaseInfo
from data_lifecycle.backup.snapshot import Snapshot, read_all
from data_lifecycle.config.loader import LifecycleSettings
from data_lifecycle.factory import EngineSelector
from data_lifecycle.storage.base import BinaryStore

logger = logging.getLogger(__name__)


class PreparedExport:
    """A snapshot ready to be streamed as an archive."""

    def __init__(
        self,
        name: str,
        metadata: ArchiveMetadata,
        builder: ArchiveBuilder,
    ) -> None:
        self.name = name
        self.metadata = metadata
        self._builder = builder

    @property
    def engine(self) -> str | None:
        return self.metadata.engine

    def iter_bytes(self) -> Iterator[bytes]:
        return self._builder.iter_bytes()

    def write_to(self, path: str | Path) -> Path:
        return self._builder.write_to(path)


def build_metadata(
    snapshot: Snapshot,
    dump_bytes: bytes,
    settings: LifecycleSettings,
    exported_at: datetime,
    label: str,
) -> ArchiveMetadata:
    """Metadata for an archive; ``label`` is its file name without ``.zip``."""
    counts = snapshot.counts
    notes = "Full logical snapshot of the asset-tracking tables and uploaded files."
    if snapshot.missing:
        notes += f" Tables not present at export: {', '.join(snapshot.missing)}."
    return ArchiveMetadata(
        name=label,
        exported_at=exported_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        exported_at_epoch=int(exported_at.timestamp() * 1000),
        app_version=settings.app_version,
        engine=snapshot.engine,
        total_records=sum(counts.values()),
        table_counts=counts,
        database=DatabaseInfo(
            file_size_bytes=len(dump_bytes),
            checksum_sha256=sha256_hex(dump_bytes),
        ),
        notes=notes,
    )


async def prepare_export(
    selector: EngineSelector,
    store: BinaryStore,
    settings: LifecycleSettings,
    exported_at: datetime | None = None,
) -> PreparedExport:
    """Snapshot every table and prepare the archive.

    Raises:
        ConfigurationError: No engine is configured.
        AllEnginesFailedError: Every engine failed to produce a snapshot.
    """
    async def _snapshot(engine) -> Snapshot:
        return await read_all(engine, concurrency=settings.read_concurrency)

    result = await selector.attempt_in_order(_snapshot, label="export")
    snapshot: Snapshot = result.value

    dump_bytes = serialize_dump(snapshot.tables)
    collected = await asyncio.to_thread(collect, snapshot.tables, store)

    exported_at = exported_at or datetime.now(timezone.utc)
    name = archive_name(exported_at, settings.archive_prefix)
    metadata = build_metadata(
        snapshot, dump_bytes, settings, exported_at, name.removesuffix(".zip")
    )
    metadata.images = collected.summary
    metadata_bytes = json.dumps(
        metadata.to_json_dict(), indent=2, ensure_ascii=False
    ).encode("utf-8")

    logger.info(
        f"[{result.engine}] export prepared: {metadata.total_records} records, "
        f"{len(collected.files)} files -> {name}"
    )
    builder = ArchiveBuilder(dump_bytes, metadata_bytes, store, collected.files)
    return PreparedExport(name, metadata, builder)
