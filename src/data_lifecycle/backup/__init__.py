"""Export, import and clean of the asset-tracking store.

Usage:
    from data_lifecycle.backup import prepare_export, restore_archive, clean
    from data_lifecycle.backup import DEPENDENCY_GRAPH, SNAPSHOT_TABLES
"""

from data_lifecycle.backup.archive import ArchiveBuilder, ArchiveReader, archive_name
from data_lifecycle.backup.assets import collect
from data_lifecycle.backup.clean import clean, clean_store
from data_lifecycle.backup.export import PreparedExport, prepare_export
from data_lifecycle.backup.models import (
    ArchiveMetadata,
    CleanSummary,
    ManifestEntry,
    RestoreSummary,
)
from data_lifecycle.backup.restore import restore_archive, restore_dump
from data_lifecycle.backup.schema import (
    DEPENDENCY_GRAPH,
    SNAPSHOT_TABLES,
    DependencyGraph,
    ForeignKey,
    TableDef,
)
from data_lifecycle.backup.snapshot import read_all, read_table

__all__ = [
    "ArchiveBuilder",
    "ArchiveReader",
    "archive_name",
    "collect",
    "clean",
    "clean_store",
    "PreparedExport",
    "prepare_export",
    "restore_archive",
    "restore_dump",
    "read_all",
    "read_table",
    "ArchiveMetadata",
    "CleanSummary",
    "ManifestEntry",
    "RestoreSummary",
    "DEPENDENCY_GRAPH",
    "SNAPSHOT_TABLES",
    "DependencyGraph",
    "ForeignKey",
    "TableDef",
]
