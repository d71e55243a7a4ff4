"""Error taxonomy and engine error classification.

Every failure raised by the lifecycle operations derives from
``LifecycleError``.  Storage adapters never let native driver exceptions
escape: they pass them through ``translate_error()`` at their boundary, which
classifies them into a small closed set of ``ErrorKind`` values.  Upstream
code (orchestrators, the engine selector) only ever looks at the exception
type and ``kind`` -- never at raw error text.

Usage:
    from data_lifecycle.errors import MissingTableError, translate_error

    try:
        rows = await conn.execute(query)
    except SQLAlchemyError as exc:
        raise translate_error(exc, engine="postgres", table="assets") from exc
"""

from enum import Enum
from typing import Any

from sqlalchemy.exc import DBAPIError, IntegrityError


class ErrorKind(str, Enum):
    """Closed set of engine failure kinds."""

    NOT_FOUND = "not_found"
    CONNECTION_FAILED = "connection_failed"
    CONSTRAINT_VIOLATION = "constraint_violation"
    UNKNOWN = "unknown"


# ============================================================================
# Exceptions
# ============================================================================


class LifecycleError(Exception):
    """Base class for all data lifecycle failures.

    Carries an optional ``summary`` (a plain dict) with whatever partial
    counts the failing operation obtained before it stopped.
    """

    code = "lifecycle_error"

    def __init__(self, message: str, *, summary: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.summary = summary

    def with_summary(self, summary: dict[str, Any] | None) -> "LifecycleError":
        """Attach a partial summary and return ``self`` for re-raising."""
        self.summary = summary
        return self

    def to_dict(self) -> dict[str, Any]:
        """Structured form used by the HTTP layer and the CLI."""
        body: dict[str, Any] = {"error": self.message, "kind": self.code}
        if self.summary is not None:
            body["summary"] = self.summary
        return body


class ConfigurationError(LifecycleError):
    """No usable engine is configured.  Fatal, never retried."""

    code = "configuration_error"


class EngineError(LifecycleError):
    """A storage engine failed.  Connection and unknown failures trigger fallback."""

    code = "engine_error"

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        engine: str | None = None,
        table: str | None = None,
        summary: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, summary=summary)
        self.kind = kind
        self.engine = engine
        self.table = table

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["engineErrorKind"] = self.kind.value
        if self.engine:
            body["engine"] = self.engine
        if self.table:
            body["table"] = self.table
        return body


class MissingTableError(EngineError):
    """The table does not exist in the target store.

    Soft failure: readers and deleters skip the table and count it as 0.
    """

    code = "missing_table"

    def __init__(self, table: str, *, engine: str | None = None) -> None:
        super().__init__(
            f"Table '{table}' does not exist",
            kind=ErrorKind.NOT_FOUND,
            engine=engine,
            table=table,
        )


class AllEnginesFailedError(EngineError):
    """Every configured engine was attempted and every attempt failed."""

    code = "all_engines_failed"

    def __init__(self, operation: str, attempts: list[dict[str, Any]]) -> None:
        tried = ", ".join(a["engine"] for a in attempts) or "none"
        last = attempts[-1]["error"] if attempts else "no attempts"
        super().__init__(
            f"{operation} failed on every configured engine ({tried}): {last}",
            summary=attempts[-1].get("summary") if attempts else None,
        )
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["attempts"] = self.attempts
        return body


class ValidationError(LifecycleError):
    """Malformed or tampered archive.  Import aborts before any mutation."""

    code = "validation_error"


class ChecksumMismatchError(ValidationError):
    """The dump does not hash to the checksum recorded in the metadata."""

    code = "checksum_mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Database checksum mismatch: metadata records {expected}, "
            f"archive contents hash to {actual}"
        )
        self.expected = expected
        self.actual = actual


class UploadTooLargeError(ValidationError):
    """The uploaded archive exceeds the configured size limit."""

    code = "upload_too_large"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Archive exceeds the {limit // (1024 * 1024)} MB upload limit")
        self.limit = limit


class PartialRestoreError(LifecycleError):
    """A best-effort restore on a non-transactional engine stopped part way.

    The store may be inconsistent; ``summary`` lists what was written.
    """

    code = "partial_restore"


class FileIOError(LifecycleError):
    """A single binary asset could not be read or written.  Never fatal."""

    code = "file_io_error"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


# ============================================================================
# Classification
# ============================================================================

_MISSING_TABLE_CODES = {"42P01", "PGRST116", "PGRST205"}

_MISSING_TABLE_PHRASES = (
    "does not exist",
    "undefined table",
    "undefinedtable",
    "schema cache",
    "no such table",
)


def _error_codes(exc: BaseException) -> list[str]:
    """Collect SQLSTATE / PostgREST codes from an exception and its cause."""
    codes: list[str] = []
    candidates = [exc, getattr(exc, "orig", None), exc.__cause__]
    for candidate in candidates:
        if candidate is None:
            continue
        for attr in ("sqlstate", "pgcode", "code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, str) and value:
                codes.append(value.upper())
    return codes


def _error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    for attr in ("message", "details", "hint"):
        value = getattr(exc, attr, None)
        if isinstance(value, str):
            parts.append(value)
    return " ".join(parts).lower()


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a native driver / client exception to an ``ErrorKind``.

    Codes are checked first (SQLSTATE ``42P01``, PostgREST ``PGRST116`` /
    ``PGRST205``, SQLSTATE classes ``23`` and ``08``), then exception types,
    then message patterns as the last resort.

    Example:
        >>> classify_error(Exception('relation "logs" does not exist'))
        <ErrorKind.NOT_FOUND: 'not_found'>
    """
    codes = _error_codes(exc)
    if any(code in _MISSING_TABLE_CODES for code in codes):
        return ErrorKind.NOT_FOUND
    if any(code.startswith("23") and len(code) == 5 for code in codes):
        return ErrorKind.CONSTRAINT_VIOLATION
    if any(code.startswith("08") and len(code) == 5 for code in codes):
        return ErrorKind.CONNECTION_FAILED

    if isinstance(exc, IntegrityError):
        return ErrorKind.CONSTRAINT_VIOLATION
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ErrorKind.CONNECTION_FAILED

    text = _error_text(exc)
    if any(phrase in text for phrase in _MISSING_TABLE_PHRASES):
        return ErrorKind.NOT_FOUND
    if "relation" in text and "not found" in text:
        return ErrorKind.NOT_FOUND

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return ErrorKind.CONNECTION_FAILED
    if "connection refused" in text or "could not connect" in text:
        return ErrorKind.CONNECTION_FAILED
    if "violates" in text and "constraint" in text:
        return ErrorKind.CONSTRAINT_VIOLATION

    return ErrorKind.UNKNOWN


def translate_error(
    exc: BaseException,
    *,
    engine: str,
    table: str | None = None,
) -> EngineError:
    """Translate a native exception into the domain taxonomy.

    Returns (does not raise) the translated error so callers can write
    ``raise translate_error(exc, ...) from exc``.
    """
    if isinstance(exc, EngineError):
        return exc

    kind = classify_error(exc)
    if kind is ErrorKind.NOT_FOUND and table is not None:
        return MissingTableError(table, engine=engine)

    target = f" on table '{table}'" if table else ""
    return EngineError(
        f"{engine} failed{target}: {exc}",
        kind=kind,
        engine=engine,
        table=table,
    )
