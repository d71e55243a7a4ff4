"""Import orchestration and referential integrity sequencing.

Restores a verified dump table by table in forward dependency order.  Each
table is written with "insert or replace" on its natural key, so importing
the same archive twice leaves the same rows.

- On transactional engines the whole relational restore is one unit and is
  rolled back in full on any failure.
- On engines without transactions the restore is best-effort and
  sequential.  A failure part way raises ``PartialRestoreError`` whose
  summary says which tables were written (``transactional=False``,
  ``complete=False``).

``users`` is matched on ``email``: an archive user whose email already
exists keeps the existing row's id, and every reference to the archive id
(including ``users.createdBy``) is rewritten to the surviving id.

Files are restored only after the relational step has committed.
"""

import asyncio
import logging
import zipfile
from pathlib import Path
from typing import Any, Literal

from data_lifecycle.adapters.base import Row, StorageEngine
from data_lifecycle.adapters.coercion import column_aliases
from data_lifecycle.backup.archive import ArchiveReader, VerifiedArchive
from data_lifecycle.backup.assets import UPLOADS_PREFIX
from data_lifecycle.backup.integrity import safe_delete
from data_lifecycle.backup.models import FileRestoreSummary, RestoreSummary
from data_lifecycle.backup.schema import DEPENDENCY_GRAPH, DependencyGraph, TableDef
from data_lifecycle.config.loader import LifecycleSettings
from data_lifecycle.errors import (
    EngineError,
    FileIOError,
    LifecycleError,
    MissingTableError,
    PartialRestoreError,
    ValidationError,
)
from data_lifecycle.factory import EngineSelector
from data_lifecycle.storage.base import BinaryStore

logger = logging.getLogger(__name__)

RestoreMode = Literal["upsert", "replace"]

IdMaps = dict[str, dict[Any, Any]]


# ============================================================================
# Row sequencing helpers
# ============================================================================


def _ref_column(row: Row, field: str) -> str | None:
    """Column under which ``row`` stores ``field`` (any alias spelling)."""
    for alias in column_aliases(field):
        if alias in row:
            return alias
    return None


def remap_references(rows: list[Row], table_def: TableDef, id_maps: IdMaps) -> None:
    """Rewrite foreign keys pointing at ids that were remapped."""
    for row in rows:
        for ref in table_def.refs:
            mapping = id_maps.get(ref.table)
            if not mapping:
                continue
            column = _ref_column(row, ref.field)
            if column is None:
                continue
            value = row[column]
            if isinstance(value, (str, int)) and value in mapping:
                row[column] = mapping[value]


def self_reference_levels(rows: list[Row], table_def: TableDef) -> list[list[Row]]:
    """Split rows into levels so referenced rows are written first.

    Level 0 holds rows that reference no other row of the batch; level n
    holds rows whose parent is in level n-1.  Reference cycles are broken
    arbitrarily.
    """
    if not table_def.self_refs:
        return [rows]

    by_id = {row.get(table_def.pk): row for row in rows if row.get(table_def.pk) is not None}
    depth: dict[Any, int] = {}

    def level_of(row_id: Any, visiting: set) -> int:
        if row_id in depth:
            return depth[row_id]
        if row_id in visiting:
            return 0
        visiting.add(row_id)
        row = by_id[row_id]
        level = 0
        for ref in table_def.self_refs:
            column = _ref_column(row, ref.field)
            parent = row.get(column) if column else None
            if parent is not None and parent != row_id and parent in by_id:
                level = max(level, level_of(parent, visiting) + 1)
        visiting.discard(row_id)
        depth[row_id] = level
        return level

    levels: list[list[Row]] = []
    for row in rows:
        row_id = row.get(table_def.pk)
        level = level_of(row_id, set()) if row_id in by_id else 0
        while len(levels) <= level:
            levels.append([])
        levels[level].append(row)
    return levels


async def match_natural_keys(
    engine: StorageEngine,
    table_def: TableDef,
    rows: list[Row],
    id_maps: IdMaps,
) -> None:
    """Adopt existing ids for rows whose natural key already exists."""
    key = table_def.natural_key
    if key is None:
        return
    existing = {
        row.get(key): row.get(table_def.pk)
        for row in await engine.read(table_def.name)
        if row.get(key) is not None
    }
    mapping = id_maps.setdefault(table_def.name, {})
    for row in rows:
        archive_id = row.get(table_def.pk)
        surviving_id = existing.get(row.get(key))
        if surviving_id is not None and archive_id is not None and surviving_id != archive_id:
            mapping[archive_id] = surviving_id
            row[table_def.pk] = surviving_id


# ============================================================================
# Relational restore
# ============================================================================


class _Progress:
    """Mutable record of what the restore wrote so far."""

    def __init__(self, engine: StorageEngine, mode: str) -> None:
        self.engine = engine.name
        self.transactional = engine.supports_transactions
        self.mode = mode
        self.imported: dict[str, int] = {}
        self.skipped: list[str] = []
        self.current: str | None = None

    def summary(self, complete: bool) -> RestoreSummary:
        return RestoreSummary(
            engine=self.engine,
            transactional=self.transactional,
            complete=complete,
            mode=self.mode,
            imported_tables=dict(self.imported),
            skipped_tables=list(self.skipped),
            total_restored=sum(self.imported.values()),
            failed_table=None if complete else self.current,
        )


async def _restore_tables(
    engine: StorageEngine,
    dump: dict[str, list[Row]],
    mode: RestoreMode,
    progress: _Progress,
    graph: DependencyGraph,
) -> None:
    extra = [name for name in dump if graph.table(name) is None]
    order = [name for name in graph.restore_order(extra) if name in dump]

    if mode == "replace":
        for name in reversed(order):
            progress.current = name
            await safe_delete(engine, name)

    id_maps: IdMaps = {}
    for name in order:
        progress.current = name
        rows = [dict(row) for row in dump[name]]
        table_def = graph.table(name) or TableDef(name=name)
        try:
            await match_natural_keys(engine, table_def, rows, id_maps)
            remap_references(rows, table_def, id_maps)
            written = 0
            for level in self_reference_levels(rows, table_def):
                written += await engine.write_batch(name, level, key=table_def.key)
        except MissingTableError:
            logger.warning(f"[{engine.name}] {name}: table missing in target, skipped")
            progress.skipped.append(name)
            progress.imported[name] = 0
            continue
        progress.imported[name] = written
        logger.info(f"[{engine.name}] {name}: restored {written} rows")
    progress.current = None


async def restore_dump(
    engine: StorageEngine,
    dump: dict[str, list[Row]],
    mode: RestoreMode = "upsert",
    graph: DependencyGraph = DEPENDENCY_GRAPH,
) -> RestoreSummary:
    """Restore ``dump`` into ``engine``.

    Raises:
        EngineError: Transactional restore failed and was rolled back.
        ValidationError: A row could not be converted; rolled back when the
            engine is transactional.
        PartialRestoreError: Best-effort restore stopped part way.
    """
    progress = _Progress(engine, mode)

    if not engine.supports_transactions:
        logger.warning(
            f"[{engine.name}] no transaction support: restoring best-effort"
        )
        try:
            await _restore_tables(engine, dump, mode, progress, graph)
        except (EngineError, ValidationError) as exc:
            raise PartialRestoreError(
                f"Best-effort restore on {engine.name} stopped at table "
                f"'{progress.current}': {exc}",
                summary=progress.summary(complete=False).to_json_dict(),
            ) from exc
        return progress.summary(complete=True)

    try:
        async with engine.transaction() as tx:
            await _restore_tables(tx, dump, mode, progress, graph)
    except LifecycleError as exc:
        logger.error(f"[{engine.name}] restore rolled back at '{progress.current}': {exc}")
        failed = progress.summary(complete=False)
        failed.imported_tables = {}
        failed.total_restored = 0
        raise exc.with_summary(failed.to_json_dict())
    return progress.summary(complete=True)


# ============================================================================
# File restore
# ============================================================================


def _restore_one(archive: Path, member: str, store: BinaryStore, key: str) -> str:
    """Copy one archive member into the store.  Runs in a worker thread.

    Raises:
        FileIOError: The member could not be read or the file not written.
    """
    try:
        with zipfile.ZipFile(archive) as zf:
            try:
                info = zf.getinfo(member)
            except KeyError:
                return "missing"
            with zf.open(info) as source:
                store.write_atomic(key, iter(lambda: source.read(64 * 1024), b""))
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise FileIOError(key, str(exc)) from exc
    return "restored"


async def restore_files(
    reader: ArchiveReader,
    verified: VerifiedArchive,
    store: BinaryStore,
    concurrency: int = 8,
) -> FileRestoreSummary:
    """Write manifest files (or every ``uploads/`` member) into the store.

    Individual failures are logged and counted; they never raise.
    """
    images = verified.metadata.images
    if images is not None and images.manifest:
        paths = list(dict.fromkeys(entry.relative_path for entry in images.manifest))
    else:
        paths = reader.upload_members()

    summary = FileRestoreSummary()
    semaphore = asyncio.Semaphore(concurrency)

    async def _one(relative_path: str) -> None:
        key = relative_path
        if key.startswith(UPLOADS_PREFIX):
            key = key[len(UPLOADS_PREFIX):]
        async with semaphore:
            try:
                outcome = await asyncio.to_thread(
                    _restore_one, reader.path, reader.member(relative_path), store, key
                )
            except FileIOError as exc:
                logger.warning(f"Failed to restore file {relative_path}: {exc.reason}")
                summary.failed += 1
                return
        if outcome == "missing":
            logger.warning(f"File {relative_path} listed in manifest but not in archive")
            summary.missing += 1
        else:
            summary.restored += 1

    await asyncio.gather(*(_one(path) for path in paths))
    logger.info(
        f"Files restored: {summary.restored}, failed: {summary.failed}, "
        f"missing: {summary.missing}"
    )
    return summary


# ============================================================================
# Entry point
# ============================================================================


async def restore_archive(
    archive: str | Path,
    selector: EngineSelector,
    store: BinaryStore,
    settings: LifecycleSettings,
    mode: RestoreMode | None = None,
) -> RestoreSummary:
    """Validate an archive, restore its tables, then its files.

    Validation (structure and checksum) completes before any engine is
    selected, so a bad archive never mutates anything.

    Raises:
        ValidationError / ChecksumMismatchError: Bad archive.
        ConfigurationError: No (suitable) engine configured.
        AllEnginesFailedError: Every engine failed.
        PartialRestoreError: Best-effort restore stopped part way.
    """
    mode = mode or settings.restore_mode
    with ArchiveReader(archive) as reader:
        verified = reader.verify()

        async def _restore(engine: StorageEngine) -> RestoreSummary:
            return await restore_dump(engine, verified.dump, mode)

        result = await selector.attempt_in_order(
            _restore,
            label="import",
            require_transactions=settings.require_transactional_restore,
        )
        summary: RestoreSummary = result.value
        summary.images = await restore_files(
            reader, verified, store, concurrency=settings.file_concurrency
        )

    summary.exported_at = verified.metadata.exported_at
    summary.app_version = verified.metadata.app_version
    return summary
