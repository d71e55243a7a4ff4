"""HTTP endpoints for export, import and clean.

Usage:
    from data_lifecycle.api import create_app
    from data_lifecycle.config import load_settings

    app = create_app(load_settings(), identity_provider=my_auth)

The authentication collaborator is injected as ``identity_provider``: a
callable taking the request and returning an ``Identity`` (or ``None`` for
anonymous callers).  Export needs any identity; import and clean need the
administrative role.

Endpoints:
    GET  /api/backup/export   stream a ZIP archive
    POST /api/backup/import   multipart upload field ``file``
    POST /api/backup/clean    wipe operational data, reseed admin
"""

import logging
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from data_lifecycle.backup.clean import clean
from data_lifecycle.backup.export import prepare_export
from data_lifecycle.backup.restore import RestoreMode, restore_archive
from data_lifecycle.config.loader import LifecycleSettings
from data_lifecycle.errors import (
    ConfigurationError,
    LifecycleError,
    UploadTooLargeError,
    ValidationError,
)
from data_lifecycle.factory import EngineFactory, EngineSelector
from data_lifecycle.storage.base import BinaryStore
from data_lifecycle.storage.local import LocalFileStore

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"
UPLOAD_CHUNK = 1024 * 1024


class Identity(BaseModel):
    """Pre-validated caller identity supplied by the auth collaborator."""

    id: str | None = None
    email: str | None = None
    role: str


IdentityProvider = Callable[[Request], Identity | None]


# ============================================================================
# Dependencies
# ============================================================================


def get_settings(request: Request) -> LifecycleSettings:
    return request.app.state.settings


def get_store(request: Request) -> BinaryStore:
    return request.app.state.store


def get_selector(request: Request) -> EngineSelector:
    settings: LifecycleSettings = request.app.state.settings
    return EngineSelector(settings.engine_config(), factories=request.app.state.engine_factories)


def get_identity(request: Request) -> Identity:
    provider: IdentityProvider | None = request.app.state.identity_provider
    identity = provider(request) if provider else None
    if identity is None:
        raise HTTPException(401, "Authentication required")
    return identity


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role != ADMIN_ROLE:
        raise HTTPException(403, "Administrator role required")
    return identity


# ============================================================================
# Error mapping
# ============================================================================


def status_for(exc: LifecycleError) -> int:
    if isinstance(exc, UploadTooLargeError):
        return 413
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, ConfigurationError):
        return 503
    return 500


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse({"success": False, **exc.to_dict()}, status_code=status)


# ============================================================================
# Routes
# ============================================================================


router = APIRouter(prefix="/api/backup")


@router.get("/export")
async def export_backup(
    identity: Identity = Depends(get_identity),
    settings: LifecycleSettings = Depends(get_settings),
    store: BinaryStore = Depends(get_store),
    selector: EngineSelector = Depends(get_selector),
) -> StreamingResponse:
    prepared = await prepare_export(selector, store, settings)
    logger.info(f"Export requested by {identity.email or identity.id}: {prepared.name}")
    return StreamingResponse(
        prepared.iter_bytes(),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{prepared.name}"',
            "Cache-Control": "no-store",
            "X-Backup-Engine": prepared.engine or "",
        },
    )


async def _save_upload(upload: UploadFile, target: Path, limit: int) -> int:
    size = 0
    with open(target, "wb") as f:
        while chunk := await upload.read(UPLOAD_CHUNK):
            size += len(chunk)
            if size > limit:
                raise UploadTooLargeError(limit)
            f.write(chunk)
    return size


@router.post("/import")
async def import_backup(
    file: UploadFile = File(...),
    mode: RestoreMode | None = Query(default=None),
    identity: Identity = Depends(require_admin),
    settings: LifecycleSettings = Depends(get_settings),
    store: BinaryStore = Depends(get_store),
    selector: EngineSelector = Depends(get_selector),
) -> dict[str, Any]:
    if not file.filename or not file.filename.lower().endswith(".zip"):
        raise ValidationError("Only .zip backup archives are accepted")

    with tempfile.TemporaryDirectory(prefix="lifecycle-import-") as tmp:
        path = Path(tmp) / "upload.zip"
        size = await _save_upload(file, path, settings.max_upload_bytes)
        logger.info(f"Import of {file.filename} ({size} bytes) by {identity.email or identity.id}")
        summary = await restore_archive(path, selector, store, settings, mode=mode)

    return {"success": True, **summary.to_json_dict()}


@router.post("/clean")
async def clean_backup(
    identity: Identity = Depends(require_admin),
    settings: LifecycleSettings = Depends(get_settings),
    selector: EngineSelector = Depends(get_selector),
) -> dict[str, Any]:
    logger.warning(f"Clean requested by {identity.email or identity.id}")
    summary = await clean(selector, settings)
    return {"success": True, **summary.to_json_dict()}


# ============================================================================
# Application factory
# ============================================================================


def create_app(
    settings: LifecycleSettings,
    identity_provider: IdentityProvider | None = None,
    store: BinaryStore | None = None,
    engine_factories: dict[str, EngineFactory] | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Resolved settings; engine config is derived per request.
        identity_provider: Auth collaborator hook.  Without one every
            request is anonymous and rejected.
        store: Binary store; defaults to ``settings.uploads_dir``.
        engine_factories: Engine constructor overrides (tests).
    """
    app = FastAPI(title="Data Lifecycle Manager")
    app.state.settings = settings
    app.state.identity_provider = identity_provider
    app.state.store = store or LocalFileStore(settings.uploads_dir)
    app.state.engine_factories = engine_factories
    app.add_exception_handler(LifecycleError, lifecycle_error_handler)
    app.include_router(router)
    return app
