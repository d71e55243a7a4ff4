"""Archive metadata and operation summary models.

Field names are snake_case in Python and camelCase on the wire
(``metadata.json`` and the HTTP responses), e.g. ``exported_at`` <->
``exportedAt``.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ORPHANED_FILE = "orphaned-file"
FORMAT_VERSION = "1.0"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# Archive Metadata
# ============================================================================


class ManifestEntry(CamelModel):
    """One binary file reference (or orphan) recorded in the archive."""

    asset_id: str                # row id, or ORPHANED_FILE
    image_url: str               # reference as stored in the row
    relative_path: str           # path inside the archive, "uploads/<key>"
    file_name: str
    file_size: int = 0           # 0 when the file was missing at export


class ImageSummary(CamelModel):
    referenced: int = 0          # rows with a file reference
    included: int = 0            # files bundled (referenced + orphans)
    unique_files: int = 0        # distinct referenced files found
    missing: int = 0             # distinct local references not found
    skipped: int = 0             # external http(s) references
    orphaned: int = 0            # files in the store no row references
    manifest: list[ManifestEntry] = Field(default_factory=list)


class DatabaseInfo(CamelModel):
    file_size_bytes: int = 0
    checksum_sha256: str | None = None


class ArchiveMetadata(CamelModel):
    """Contents of ``metadata.json``."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    exported_at: str | None = None
    exported_at_epoch: int | None = None
    app_version: str | None = None
    format_version: str = FORMAT_VERSION
    engine: str | None = None
    total_records: int = 0
    table_counts: dict[str, int] = Field(default_factory=dict)
    database: DatabaseInfo = Field(default_factory=DatabaseInfo)
    images: ImageSummary | None = None
    notes: str | None = None


# ============================================================================
# Operation Summaries
# ============================================================================


class FileRestoreSummary(CamelModel):
    restored: int = 0
    failed: int = 0
    missing: int = 0


class RestoreSummary(CamelModel):
    """Result of an import, also attached (partially) to import errors."""

    engine: str
    transactional: bool
    complete: bool = True
    mode: str = "upsert"
    imported_tables: dict[str, int] = Field(default_factory=dict)
    skipped_tables: list[str] = Field(default_factory=list)
    total_restored: int = 0
    failed_table: str | None = None
    images: FileRestoreSummary = Field(default_factory=FileRestoreSummary)
    exported_at: str | None = None
    app_version: str | None = None


class CleanState(str, Enum):
    IDLE = "idle"
    DELETING = "deleting"
    RESEEDING = "reseeding"
    DONE = "done"


class CleanSummary(CamelModel):
    """Result of a clean, also attached (partially) to clean errors."""

    engine: str
    cleaned_at: str | None = None
    state: CleanState = CleanState.IDLE
    tables: dict[str, int] = Field(default_factory=dict)
    skipped_tables: list[str] = Field(default_factory=list)
    admin_email: str | None = None
