"""Pydantic models for engine selection and lifecycle configuration."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EngineName = Literal["postgres", "supabase", "orm"]

DEFAULT_ENGINE_PRIORITY: tuple[EngineName, ...] = ("postgres", "supabase", "orm")


# ============================================================================
# Engine Configuration
# ============================================================================


class EngineConfig(BaseModel):
    """Immutable engine selection input, resolved once per operation.

    Passed explicitly into ``EngineSelector`` -- there is no module-level
    engine state anywhere in the package.
    """

    model_config = ConfigDict(frozen=True)

    priority: tuple[EngineName, ...] = DEFAULT_ENGINE_PRIORITY
    database_url: str | None = None      # direct relational connection
    supabase_url: str | None = None      # REST relational service
    supabase_key: str | None = None
    orm_url: str | None = None           # ORM-backed client (falls back to database_url)
    page_size: int = Field(default=1000, gt=0)

    @field_validator("priority")
    @classmethod
    def _unique_priority(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError(f"Engine priority lists an engine twice: {value}")
        return value


# ============================================================================
# Default Admin Account
# ============================================================================


class AdminAccount(BaseModel):
    """Administrative account reseeded by every clean."""

    model_config = ConfigDict(frozen=True)

    email: str = "admin@assetso.com"
    name: str = "Administrator"
    password: str = "admin123"
    role: str = "ADMIN"
