"""Checksums, dump serialization and missing-table tolerant wrappers."""

import hashlib
import json
import logging
from typing import Any

from data_lifecycle.adapters.base import Row, StorageEngine
from data_lifecycle.errors import ChecksumMismatchError, MissingTableError, ValidationError

logger = logging.getLogger(__name__)


def serialize_dump(dump: dict[str, list[Row]]) -> bytes:
    """Exact byte form of ``database.json``; the checksum covers these bytes."""
    return json.dumps(dump, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: bytes, expected: str | None) -> str:
    """Recompute the dump checksum and compare it with the recorded one.

    Returns:
        The verified hex digest.

    Raises:
        ValidationError: No checksum was recorded.
        ChecksumMismatchError: The digest differs.
    """
    if not expected:
        raise ValidationError("Archive metadata has no database checksum")
    actual = sha256_hex(data)
    if actual.lower() != expected.strip().lower():
        raise ChecksumMismatchError(expected, actual)
    return actual


async def safe_delete(
    engine: StorageEngine,
    table: str,
    exclude: dict[str, Any] | None = None,
) -> int | None:
    """Delete rows, returning ``None`` when the table does not exist."""
    try:
        deleted = await engine.delete_where(table, exclude=exclude)
    except MissingTableError:
        logger.info(f"[{engine.name}] {table}: table missing, nothing to delete")
        return None
    logger.info(f"[{engine.name}] {table}: deleted {deleted} rows")
    return deleted
