"""Archive builder and reader.

Archive layout (ZIP)::

    database.json          serialized dump (checksummed)
    metadata.json          ArchiveMetadata
    uploads/<key>          bundled binary files

``ArchiveBuilder`` streams the container: ``zipfile`` writes into a
write-only sink, and every chunk it produces is yielded as soon as it
exists, so the archive is never held in memory.  ``ArchiveReader`` accepts
archives whose members sit at the root or inside one top-level folder.
"""

import json
import logging
import os
import tempfile
import zipfile
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from data_lifecycle.backup.assets import UPLOADS_PREFIX, archive_path
from data_lifecycle.backup.integrity import verify_checksum
from data_lifecycle.backup.models import ArchiveMetadata
from data_lifecycle.errors import ValidationError
from data_lifecycle.storage.base import BinaryStore

logger = logging.getLogger(__name__)

DATABASE_MEMBER = "database.json"
METADATA_MEMBER = "metadata.json"
CHUNK_SIZE = 64 * 1024


def archive_name(exported_at: datetime, prefix: str = "assetso-backup") -> str:
    """File name for an archive, e.g. ``assetso-backup-2024-05-01T10-20-30-123Z.zip``."""
    iso = exported_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"{prefix}-{iso.replace(':', '-').replace('.', '-')}.zip"


# ============================================================================
# Builder
# ============================================================================


class _ChunkSink:
    """Write-only file object collecting what ``zipfile`` writes.

    It has no ``tell``/``seek``, so ``zipfile`` switches to streaming mode
    (data descriptors after each member).
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class ArchiveBuilder:
    """Serialize dump, metadata and files into one ZIP stream.

    Args:
        dump_bytes: Exact ``database.json`` bytes (already checksummed).
        metadata_bytes: ``metadata.json`` bytes.
        store: Binary store the files are read from.
        files: Store keys to bundle under ``uploads/``.
    """

    def __init__(
        self,
        dump_bytes: bytes,
        metadata_bytes: bytes,
        store: BinaryStore,
        files: list[str],
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._dump_bytes = dump_bytes
        self._metadata_bytes = metadata_bytes
        self._store = store
        self._files = files
        self._chunk_size = chunk_size

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield the archive incrementally.

        Closing the generator early (client disconnect) closes the open
        source file and abandons the archive.
        """
        sink = _ChunkSink()
        with zipfile.ZipFile(sink, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            zf.writestr(DATABASE_MEMBER, self._dump_bytes)
            zf.writestr(METADATA_MEMBER, self._metadata_bytes)
            yield sink.drain()

            for key in self._files:
                try:
                    source = self._store.open_read(key)
                except (OSError, ValueError) as exc:
                    logger.warning(f"Skipping {key}: cannot open ({exc})")
                    continue
                with source, zf.open(archive_path(key), "w") as target:
                    while chunk := source.read(self._chunk_size):
                        target.write(chunk)
                        data = sink.drain()
                        if data:
                            yield data
                data = sink.drain()
                if data:
                    yield data

        tail = sink.drain()
        if tail:
            yield tail

    def write_to(self, path: str | Path) -> Path:
        """Write the archive to ``path`` atomically; partial files are removed."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in self.iter_bytes():
                    f.write(chunk)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise
        return path


# ============================================================================
# Reader
# ============================================================================


class VerifiedArchive(BaseModel):
    """Archive contents that passed structural and checksum validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    dump: dict[str, list[dict[str, Any]]]
    metadata: ArchiveMetadata
    checksum: str


class ArchiveReader:
    """Read and validate an uploaded archive.

    Usage:
        with ArchiveReader(path) as reader:
            verified = reader.verify()
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ValidationError(f"Not a readable ZIP archive: {exc}") from exc
        self.prefix = self._locate_prefix()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def _locate_prefix(self) -> str:
        """Folder holding ``database.json``: the root or one top-level folder."""
        names = set(self._zip.namelist())
        if DATABASE_MEMBER in names:
            return ""
        for name in sorted(names):
            parts = name.split("/")
            if len(parts) == 2 and parts[1] == DATABASE_MEMBER:
                return parts[0] + "/"
        return ""

    def member(self, relative_path: str) -> str:
        return self.prefix + relative_path

    def has_member(self, relative_path: str) -> bool:
        try:
            self._zip.getinfo(self.member(relative_path))
        except KeyError:
            return False
        return True

    def read_member(self, relative_path: str) -> bytes:
        try:
            return self._zip.read(self.member(relative_path))
        except KeyError as exc:
            raise ValidationError(f"Archive has no {relative_path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise ValidationError(f"Cannot read {relative_path}: {exc}") from exc

    def upload_members(self) -> list[str]:
        """Relative paths of every file under ``uploads/``."""
        start = self.member(UPLOADS_PREFIX)
        return [
            name[len(self.prefix):]
            for name in self._zip.namelist()
            if name.startswith(start) and not name.endswith("/")
        ]

    def read_metadata(self) -> ArchiveMetadata:
        raw = self.read_member(METADATA_MEMBER)
        try:
            return ArchiveMetadata.model_validate(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError(f"{METADATA_MEMBER} is not valid JSON: {exc}") from exc
        except PydanticValidationError as exc:
            raise ValidationError(f"{METADATA_MEMBER} is malformed: {exc}") from exc

    def verify(self) -> VerifiedArchive:
        """Check structure and checksum.  Nothing is mutated before this passes.

        Raises:
            ValidationError: A member is missing or malformed.
            ChecksumMismatchError: The dump does not match its checksum.
        """
        if not self.has_member(DATABASE_MEMBER):
            raise ValidationError(f"Archive has no {DATABASE_MEMBER}")
        if not self.has_member(METADATA_MEMBER):
            raise ValidationError(f"Archive has no {METADATA_MEMBER}")

        metadata = self.read_metadata()
        dump_bytes = self.read_member(DATABASE_MEMBER)
        checksum = verify_checksum(dump_bytes, metadata.database.checksum_sha256)

        try:
            dump = json.loads(dump_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError(f"{DATABASE_MEMBER} is not valid JSON: {exc}") from exc
        if not isinstance(dump, dict) or not all(
            isinstance(rows, list) and all(isinstance(row, dict) for row in rows)
            for rows in dump.values()
        ):
            raise ValidationError(f"{DATABASE_MEMBER} must map table names to row lists")

        logger.info(
            f"Archive verified: {sum(len(r) for r in dump.values())} rows in "
            f"{len(dump)} tables, sha256 {checksum[:12]}"
        )
        return VerifiedArchive(dump=dump, metadata=metadata, checksum=checksum)
