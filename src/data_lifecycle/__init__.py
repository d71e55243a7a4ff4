"""data-lifecycle: export, import and clean for the asset-tracking store.

Produces self-contained backup archives (database dump, metadata, uploaded
files), restores them with referential integrity across three
interchangeable storage engines, and resets the store to a minimal state
that keeps administrative access.

Usage:
    from data_lifecycle import EngineSelector, load_settings
    from data_lifecycle import prepare_export, restore_archive, clean
    from data_lifecycle import LocalFileStore
"""

__version__ = "0.1.0"

# Adapters
from data_lifecycle.adapters.base import Row, StorageEngine
from data_lifecycle.adapters.orm import AsyncOrmEngine
from data_lifecycle.adapters.postgres import AsyncPostgresEngine
from data_lifecycle.adapters.supabase import AsyncSupabaseEngine

# Config
from data_lifecycle.config.loader import LifecycleSettings, load_settings
from data_lifecycle.config.models import AdminAccount, EngineConfig

# Errors
from data_lifecycle.errors import (
    AllEnginesFailedError,
    ChecksumMismatchError,
    ConfigurationError,
    EngineError,
    ErrorKind,
    LifecycleError,
    MissingTableError,
    PartialRestoreError,
    ValidationError,
)

# Factory
from data_lifecycle.factory import EngineSelector

# Storage
from data_lifecycle.storage.base import BinaryStore
from data_lifecycle.storage.local import LocalFileStore

# Operations
from data_lifecycle.backup.clean import clean
from data_lifecycle.backup.export import prepare_export
from data_lifecycle.backup.models import ArchiveMetadata, CleanSummary, RestoreSummary
from data_lifecycle.backup.restore import restore_archive
from data_lifecycle.backup.schema import DEPENDENCY_GRAPH, DependencyGraph, ForeignKey, TableDef

__all__ = [
    # Adapters
    "Row",
    "StorageEngine",
    "AsyncPostgresEngine",
    "AsyncSupabaseEngine",
    "AsyncOrmEngine",
    # Config
    "load_settings",
    "LifecycleSettings",
    "EngineConfig",
    "AdminAccount",
    # Errors
    "ErrorKind",
    "LifecycleError",
    "ConfigurationError",
    "EngineError",
    "MissingTableError",
    "AllEnginesFailedError",
    "ValidationError",
    "ChecksumMismatchError",
    "PartialRestoreError",
    # Factory
    "EngineSelector",
    # Storage
    "BinaryStore",
    "LocalFileStore",
    # Operations
    "prepare_export",
    "restore_archive",
    "clean",
    "ArchiveMetadata",
    "RestoreSummary",
    "CleanSummary",
    "DEPENDENCY_GRAPH",
    "DependencyGraph",
    "TableDef",
    "ForeignKey",
]
