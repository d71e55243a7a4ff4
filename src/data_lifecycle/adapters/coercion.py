"""Value coercion shared by the SQL-backed engines.

Snapshot rows are JSON: timestamps are ISO strings, booleans may arrive as
``"yes"`` or ``1``, and column names may be camelCase, snake_case or
lowercase depending on which engine produced the dump.  These helpers turn
such values back into the Python types the drivers expect, and turn driver
values into JSON-compatible ones on the way out.
"""

import json
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, Numeric, Table

from data_lifecycle.errors import ValidationError

TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off", ""})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def parse_bool(value: Any) -> bool:
    """Parse booleans the way form posts and CSV exports spell them."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) or epoch millis."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialize_value(value: Any) -> Any:
    """Convert driver result values to JSON-compatible types."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def serialize_row(row: dict[str, Any]) -> dict[str, Any]:
    return {k: serialize_value(v) for k, v in row.items()}


def column_aliases(name: str) -> tuple[str, ...]:
    """Spellings a column may have in a dump: camelCase, snake_case, lowercase.

    Example:
        >>> column_aliases("isActive")
        ('isActive', 'is_active', 'isactive')
    """
    snake = _CAMEL_BOUNDARY.sub("_", name).lower()
    aliases = [name]
    for alias in (snake, name.lower()):
        if alias not in aliases:
            aliases.append(alias)
    return tuple(aliases)


def pick(row: dict[str, Any], name: str) -> tuple[bool, Any]:
    """Find a column value under any of its aliases.

    Returns:
        ``(found, value)``.  A present-but-null value counts as not found.
    """
    for alias in column_aliases(name):
        value = row.get(alias)
        if value is not None:
            return True, value
    return False, None


def _coerce_for_type(column_type: Any, value: Any) -> Any:
    if isinstance(column_type, DateTime):
        return to_naive_utc(parse_datetime(value))
    if isinstance(column_type, Date):
        return parse_datetime(value).date()
    if isinstance(column_type, Boolean):
        return parse_bool(value)
    if isinstance(column_type, Integer):
        return int(float(value))
    if isinstance(column_type, (Float, Numeric)):
        return float(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value if isinstance(value, str) else str(value)


def coerce_row(table: Table, row: dict[str, Any]) -> dict[str, Any]:
    """Convert a dump row into typed values for ``table``'s columns.

    Missing values fall back to the column default, then to NULL when the
    column is nullable.  Required timestamps default to now and required
    booleans to ``False``.  Columns the table does not declare are dropped.

    Raises:
        ValidationError: A required value is missing or cannot be parsed.
    """
    values: dict[str, Any] = {}
    for column in table.columns:
        found, raw = pick(row, column.key)
        if found:
            try:
                values[column.key] = _coerce_for_type(column.type, raw)
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    f"{table.name}.{column.key}: cannot convert {raw!r} ({exc})"
                ) from exc
            continue

        default = column.default
        if default is not None and default.is_scalar:
            values[column.key] = default.arg
        elif column.nullable and not column.primary_key:
            values[column.key] = None
        elif isinstance(column.type, DateTime):
            values[column.key] = datetime.now(timezone.utc).replace(tzinfo=None)
        elif isinstance(column.type, Boolean):
            values[column.key] = False
        else:
            raise ValidationError(f"{table.name}.{column.key}: missing required value")
    return values
