"""Admin statistics, cache control, backups and the health check."""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from common.config import get_settings
from common.db import Database, get_db
from common.errors import NotFoundError
from common.security import TokenPayload, get_current_user, require_admin
from services.aih.schemas import ClearCacheRequest
from services.maintenance import backup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["maintenance"])

STARTED_AT = time.monotonic()


@router.get("/admin/stats")
async def get_stats(current: TokenPayload = Depends(require_admin), db: Database = Depends(get_db)):
    """Row counts, file sizes, cache entries and pool figures."""
    return {"success": True, "stats": await db.stats()}


@router.post("/admin/clear-cache")
async def clear_cache(
    body: Optional[ClearCacheRequest] = None,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    """Drop every cached read, or only those whose key contains ``pattern``."""
    pattern = body.pattern if body else None
    removed = db.invalidate(pattern)
    logger.info(f"Cache cleared by admin {current.id}: {removed} entries (pattern={pattern})")
    return {"success": True, "removed": removed}


@router.post("/admin/backup")
async def create_backup(current: TokenPayload = Depends(require_admin), db: Database = Depends(get_db)):
    backup_path = await backup.create_backup(db, get_settings())
    return {"success": True, "message": "Backup created", "path": backup_path}


@router.get("/backup")
async def download_backup(current: TokenPayload = Depends(get_current_user), db: Database = Depends(get_db)):
    """Stream the database file after a FULL checkpoint."""
    if not os.path.exists(db.path):
        raise NotFoundError("Database file not found")

    await db.checkpoint("FULL")
    filename = f"backup-aih-{datetime.now().strftime('%Y-%m-%d')}.db"
    return FileResponse(db.path, media_type="application/octet-stream", filename=filename)


@router.get("/health")
async def health_check(db: Database = Depends(get_db)):
    """Health check endpoint. No authentication."""
    stats = await db.stats()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 1),
        "database": {
            "total_aihs": stats.get("total_aihs") or 0,
            "db_size": stats.get("db_size_mb") or 0,
            "connections": stats.get("pool_connections") or 0,
        },
    }
