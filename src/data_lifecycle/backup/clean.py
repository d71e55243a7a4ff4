"""Clean orchestration: wipe operational data, keep administrative access.

State machine::

    Idle -> Deleting(table_1) -> ... -> Deleting(table_n) -> Reseeding -> Done

Tables are deleted in reverse dependency order through ``safe_delete``, so
an absent table counts as 0.  ``users`` keeps its administrative rows.  The
default admin account is then upserted by email with a freshly hashed
password, the admin role and ``isActive = true``.  This reseed always runs.

Any failure other than a missing table aborts the clean.  On transactional
engines nothing is left deleted.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

import bcrypt

from data_lifecycle.adapters.base import StorageEngine
from data_lifecycle.backup.integrity import safe_delete
from data_lifecycle.backup.models import CleanState, CleanSummary
from data_lifecycle.backup.schema import DEPENDENCY_GRAPH, DependencyGraph, TableDef
from data_lifecycle.config.loader import LifecycleSettings
from data_lifecycle.config.models import AdminAccount
from data_lifecycle.errors import LifecycleError, MissingTableError
from data_lifecycle.factory import EngineSelector

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def _detach_kept_rows(engine: StorageEngine, table_def: TableDef) -> None:
    """Null self references from kept rows to rows about to be deleted."""
    if not table_def.self_refs:
        return
    try:
        kept = await engine.read(table_def.name, filters=table_def.keep_on_clean)
    except MissingTableError:
        return
    kept_ids = {row.get(table_def.pk) for row in kept}
    detached = []
    for row in kept:
        changed = False
        for ref in table_def.self_refs:
            parent = row.get(ref.field)
            if parent is not None and parent not in kept_ids:
                row[ref.field] = None
                changed = True
        if changed:
            detached.append(row)
    if detached:
        await engine.write_batch(table_def.name, detached, key=table_def.pk)
        logger.info(f"[{engine.name}] {table_def.name}: detached {len(detached)} kept rows")


async def reseed_admin(engine: StorageEngine, admin: AdminAccount, password_hash: str) -> None:
    """Upsert the default admin account keyed by email."""
    now = _iso_now()
    existing = await engine.read("users", filters={"email": admin.email})
    current = existing[0] if existing else {}
    row = {
        "id": current.get("id") or str(uuid.uuid4()),
        "email": admin.email,
        "name": admin.name,
        "password": password_hash,
        "role": admin.role,
        "isActive": True,
        "createdAt": current.get("createdAt") or now,
        "updatedAt": now,
    }
    await engine.write_batch("users", [row], key="email")
    logger.info(f"[{engine.name}] admin account {admin.email} reseeded")


async def clean_store(
    engine: StorageEngine,
    admin: AdminAccount,
    password_hash: str,
    graph: DependencyGraph = DEPENDENCY_GRAPH,
) -> CleanSummary:
    """Run the clean state machine against one engine.

    Raises:
        EngineError: Any failure other than a missing table; the partial
            summary is attached.
    """
    summary = CleanSummary(engine=engine.name, admin_email=admin.email)

    def _enter(state: CleanState, table: str | None = None) -> None:
        summary.state = state
        target = f"({table})" if table else ""
        logger.debug(f"[{engine.name}] clean -> {state.value}{target}")

    try:
        async with engine.transaction() as tx:
            for name in graph.delete_order():
                _enter(CleanState.DELETING, name)
                table_def = graph.table(name)
                exclude = table_def.keep_on_clean or None
                if exclude:
                    await _detach_kept_rows(tx, table_def)
                deleted = await safe_delete(tx, name, exclude=exclude)
                if deleted is None:
                    summary.skipped_tables.append(name)
                summary.tables[name] = deleted or 0

            _enter(CleanState.RESEEDING)
            await reseed_admin(tx, admin, password_hash)
    except LifecycleError as exc:
        logger.error(f"[{engine.name}] clean aborted during {summary.state.value}: {exc}")
        raise exc.with_summary(summary.to_json_dict())

    _enter(CleanState.DONE)
    summary.cleaned_at = _iso_now()
    return summary


async def clean(selector: EngineSelector, settings: LifecycleSettings) -> CleanSummary:
    """Clean the first engine that succeeds, falling back in priority order."""
    admin = settings.admin_account()
    password_hash = await asyncio.to_thread(hash_password, admin.password)

    async def _clean(engine: StorageEngine) -> CleanSummary:
        return await clean_store(engine, admin, password_hash)

    result = await selector.attempt_in_order(_clean, label="clean")
    return result.value
