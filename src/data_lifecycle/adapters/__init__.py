"""Storage engine adapters.

Provides the ``StorageEngine`` Protocol and the three async implementations:
direct PostgreSQL, Supabase REST and SQLAlchemy ORM.

Usage:
    from data_lifecycle.adapters import StorageEngine, AsyncPostgresEngine
"""

from data_lifecycle.adapters.base import Row, StorageEngine
from data_lifecycle.adapters.orm import AsyncOrmEngine
from data_lifecycle.adapters.postgres import AsyncPostgresEngine
from data_lifecycle.adapters.supabase import AsyncSupabaseEngine

__all__ = [
    "Row",
    "StorageEngine",
    "AsyncPostgresEngine",
    "AsyncSupabaseEngine",
    "AsyncOrmEngine",
]
