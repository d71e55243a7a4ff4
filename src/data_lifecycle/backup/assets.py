"""Asset file collector.

Cross-references the file references stored in rows (asset images) with
the binary store and produces the image manifest:

1. External ``http://`` / ``https://`` references are counted as skipped
   and never bundled.
2. Each distinct local reference is resolved against the store.  Found
   files are queued for the archive; missing ones get a zero-size manifest
   entry and are counted as missing.
3. Every other file physically present in the store is an orphan: it is
   bundled and flagged with ``assetId = 'orphaned-file'``.

A store key appears in ``files`` at most once.
"""

import logging
import posixpath

from pydantic import BaseModel, Field

from data_lifecycle.adapters.base import Row
from data_lifecycle.backup.models import ORPHANED_FILE, ImageSummary, ManifestEntry
from data_lifecycle.backup.schema import DEPENDENCY_GRAPH, DependencyGraph
from data_lifecycle.storage.base import BinaryStore

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "uploads/"

_EXTERNAL_SCHEMES = ("http://", "https://")


class CollectResult(BaseModel):
    files: list[str] = Field(default_factory=list)   # store keys to bundle
    summary: ImageSummary = Field(default_factory=ImageSummary)

    @property
    def manifest(self) -> list[ManifestEntry]:
        return self.summary.manifest


def reference_key(reference: str) -> str | None:
    """Turn a stored file reference into a store key.

    Accepts ``/uploads/a.jpg``, ``uploads/a.jpg``, ``public/uploads/a.jpg``
    and bare ``a.jpg``; query strings are dropped.  Returns ``None`` for
    references that cannot name a file in the store.

    Example:
        >>> reference_key("/uploads/2024/a.jpg?v=2")
        '2024/a.jpg'
    """
    path = reference.split("?", 1)[0].split("#", 1)[0].replace("\\", "/").strip()
    path = path.lstrip("/")
    if path.startswith("public/"):
        path = path[len("public/"):]
    if path.startswith(UPLOADS_PREFIX):
        path = path[len(UPLOADS_PREFIX):]
    if not path or ":" in path or any(part in ("", ".", "..") for part in path.split("/")):
        return None
    return path


def archive_path(key: str) -> str:
    """Relative path of a store key inside the archive."""
    return UPLOADS_PREFIX + key


def _row_reference(row: Row, fields: tuple[str, ...]) -> str | None:
    for field in fields:
        value = row.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def collect(
    dump: dict[str, list[Row]],
    store: BinaryStore,
    graph: DependencyGraph = DEPENDENCY_GRAPH,
) -> CollectResult:
    """Build the image manifest and the list of files to bundle.

    Synchronous (filesystem only); async callers run it in a thread.
    """
    summary = ImageSummary()
    local_refs: dict[str, list[tuple[str, str]]] = {}

    for table_def in graph.tables:
        if not table_def.image_fields:
            continue
        for row in dump.get(table_def.name, []):
            reference = _row_reference(row, table_def.image_fields)
            if reference is None:
                continue
            summary.referenced += 1
            if reference.lower().startswith(_EXTERNAL_SCHEMES):
                summary.skipped += 1
                continue
            key = reference_key(reference)
            if key is None:
                logger.warning(f"Unusable file reference {reference!r} in {table_def.name}")
                summary.skipped += 1
                continue
            row_id = str(row.get(table_def.pk, ""))
            local_refs.setdefault(key, []).append((row_id, reference))

    files: list[str] = []
    for key, refs in local_refs.items():
        size = store.stat(key)
        if size is None:
            summary.missing += 1
            logger.warning(f"Referenced file missing from store: {key}")
        else:
            files.append(key)
        for row_id, reference in refs:
            summary.manifest.append(
                ManifestEntry(
                    asset_id=row_id,
                    image_url=reference,
                    relative_path=archive_path(key),
                    file_name=posixpath.basename(key),
                    file_size=size or 0,
                )
            )
    summary.unique_files = len(files)

    for key in store.list():
        if key in local_refs:
            continue
        summary.orphaned += 1
        files.append(key)
        summary.manifest.append(
            ManifestEntry(
                asset_id=ORPHANED_FILE,
                image_url=f"/{archive_path(key)}",
                relative_path=archive_path(key),
                file_name=posixpath.basename(key),
                file_size=store.stat(key) or 0,
            )
        )

    summary.included = len(files)
    logger.info(
        f"Collected {summary.included} files ({summary.unique_files} referenced, "
        f"{summary.orphaned} orphaned, {summary.missing} missing, "
        f"{summary.skipped} external)"
    )
    return CollectResult(files=files, summary=summary)
