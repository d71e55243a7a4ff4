"""Engine selection and fallback.

``EngineSelector`` ranks the three storage engines from an explicit
``EngineConfig`` and either returns the first usable one (``select()``) or
runs an operation against each configured engine in priority order until
one succeeds (``attempt_in_order()``).

Each attempt gets a freshly created engine that is closed when the attempt
ends, so connection pools never outlive the operation that borrowed them.

Usage:
    from data_lifecycle.factory import EngineSelector

    selector = EngineSelector(settings.engine_config())
    result = await selector.attempt_in_order(clean_store, label="clean")
    print(result.engine, result.value)
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from data_lifecycle.adapters.base import StorageEngine
from data_lifecycle.adapters.orm import AsyncOrmEngine
from data_lifecycle.adapters.postgres import AsyncPostgresEngine
from data_lifecycle.adapters.supabase import AsyncSupabaseEngine
from data_lifecycle.config.models import EngineConfig
from data_lifecycle.errors import (
    AllEnginesFailedError,
    ConfigurationError,
    EngineError,
    ErrorKind,
    translate_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EngineFactory = Callable[[EngineConfig], StorageEngine]

# Failures another engine might not hit. A constraint violation comes from
# the data itself and would fail the same way everywhere.
FALLBACK_KINDS = frozenset({ErrorKind.CONNECTION_FAILED, ErrorKind.UNKNOWN})


def _make_postgres(config: EngineConfig) -> StorageEngine:
    return AsyncPostgresEngine(config.database_url)


def _make_supabase(config: EngineConfig) -> StorageEngine:
    return AsyncSupabaseEngine(
        config.supabase_url, config.supabase_key, page_size=config.page_size
    )


def _make_orm(config: EngineConfig) -> StorageEngine:
    return AsyncOrmEngine(config.orm_url or config.database_url)


DEFAULT_FACTORIES: dict[str, EngineFactory] = {
    "postgres": _make_postgres,
    "supabase": _make_supabase,
    "orm": _make_orm,
}


def is_local_placeholder(url: str) -> bool:
    """True for file-based URLs a direct Postgres connection cannot use."""
    lowered = url.strip().lower()
    return lowered.startswith("file:") or lowered.startswith("sqlite")


# ============================================================================
# Result Models
# ============================================================================


class EngineCandidate(BaseModel):
    """One ranked engine and whether its prerequisites hold."""

    name: str
    rank: int
    configured: bool
    reason: str


class EngineResult(BaseModel):
    """Outcome of ``attempt_in_order()``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    engine: str
    value: Any = None
    attempts: list[dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Selector
# ============================================================================


class EngineSelector:
    """Rank engines from an ``EngineConfig`` and drive fallback.

    Args:
        config: Engine priority, URLs and keys.
        factories: Optional engine constructors keyed by engine name.
            Defaults to the real adapters; tests pass in-memory fakes.
    """

    def __init__(
        self,
        config: EngineConfig,
        factories: dict[str, EngineFactory] | None = None,
    ) -> None:
        self._config = config
        self._factories = {**DEFAULT_FACTORIES, **(factories or {})}

    @property
    def config(self) -> EngineConfig:
        return self._config

    def _check(self, name: str) -> tuple[bool, str]:
        config = self._config
        if name == "postgres":
            if not config.database_url:
                return False, "DATABASE_URL is not set"
            if is_local_placeholder(config.database_url):
                return False, "DATABASE_URL points at a local file database"
            return True, "DATABASE_URL is a server connection string"
        if name == "supabase":
            if not config.supabase_url or not config.supabase_key:
                return False, "Supabase URL or service key is missing"
            return True, "Supabase URL and key are set"
        if name == "orm":
            if not (config.orm_url or config.database_url):
                return False, "no ORM connection string"
            return True, "ORM connection string is set"
        return False, f"unknown engine '{name}'"

    def ranked(self) -> list[EngineCandidate]:
        """Every engine in priority order with its prerequisite check."""
        candidates: list[EngineCandidate] = []
        for rank, name in enumerate(self._config.priority, start=1):
            configured, reason = self._check(name)
            if name not in self._factories:
                configured, reason = False, f"no factory for engine '{name}'"
            candidates.append(
                EngineCandidate(name=name, rank=rank, configured=configured, reason=reason)
            )
        return candidates

    def configured(self) -> list[str]:
        return [c.name for c in self.ranked() if c.configured]

    def select(self) -> StorageEngine:
        """Create the highest-ranked configured engine.

        The caller owns the returned engine and must ``close()`` it.

        Raises:
            ConfigurationError: If no engine is configured.
        """
        names = self.configured()
        if not names:
            raise ConfigurationError(
                "No storage engine is configured. Set DATABASE_URL or "
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
            )
        logger.info(f"Selected engine: {names[0]}")
        return self._factories[names[0]](self._config)

    async def attempt_in_order(
        self,
        operation: Callable[[StorageEngine], Awaitable[T]],
        *,
        label: str = "operation",
        require_transactions: bool = False,
    ) -> EngineResult:
        """Run ``operation`` on each configured engine until one succeeds.

        Only an ``EngineError`` whose kind is in ``FALLBACK_KINDS`` moves on
        to the next engine.  Any other ``EngineError`` (constraint
        violations) and every other exception (validation failures,
        partial restores) propagates immediately with its summary.

        Args:
            operation: Async callable taking an engine.
            label: Operation name used in logs and errors.
            require_transactions: Skip engines without transaction support.

        Returns:
            ``EngineResult`` with the engine used, the operation's return
            value and the failed attempts before it.

        Raises:
            ConfigurationError: No engine is configured (or none qualifies).
            AllEnginesFailedError: Every attempted engine failed.
            EngineError: A failure outside ``FALLBACK_KINDS``, unchanged.
        """
        names = self.configured()
        if not names:
            raise ConfigurationError(
                f"Cannot {label}: no storage engine is configured"
            )

        attempts: list[dict[str, Any]] = []
        tried = 0
        for name in names:
            try:
                engine = self._factories[name](self._config)
            except (SQLAlchemyError, ValueError) as exc:
                error = translate_error(exc, engine=name)
                logger.warning(f"[{name}] could not create engine for {label}: {error}")
                attempts.append(self._attempt_record(name, error))
                tried += 1
                continue

            try:
                if require_transactions and not engine.supports_transactions:
                    logger.info(f"[{name}] skipped for {label}: no transaction support")
                    continue
                tried += 1
                logger.info(f"[{name}] attempting {label}")
                value = await operation(engine)
                logger.info(f"[{name}] {label} succeeded")
                return EngineResult(engine=name, value=value, attempts=attempts)
            except EngineError as exc:
                logger.warning(f"[{name}] {label} failed ({exc.kind.value}): {exc}")
                attempts.append(self._attempt_record(name, exc))
                if exc.kind not in FALLBACK_KINDS:
                    logger.error(f"[{name}] {label} not retried on other engines")
                    raise
            finally:
                await engine.close()

        if tried == 0:
            raise ConfigurationError(
                f"Cannot {label}: no configured engine supports transactions"
            )
        raise AllEnginesFailedError(label, attempts)

    @staticmethod
    def _attempt_record(name: str, exc: EngineError) -> dict[str, Any]:
        return {
            "engine": name,
            "kind": exc.kind.value,
            "error": str(exc),
            "summary": exc.summary,
        }
