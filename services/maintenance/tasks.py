"""Celery tasks for scheduled backups and database maintenance."""

from common.celery_app import celery_app
from common.config import get_settings
from common.db import Database
from services.maintenance import backup, cleanup
import asyncio
import logging

logger = logging.getLogger(__name__)


def _open_database() -> Database:
    """A small private pool; the worker runs one job at a time."""
    settings = get_settings()
    return Database(
        settings.database_path,
        pool_size=1,
        busy_timeout_ms=settings.busy_timeout_ms,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        cache_max_entries=settings.cache_max_entries,
    )


@celery_app.task(name="create_backup")
def create_backup_task():
    """
    Async task to copy the database file into the backup directory.

    Keeps only the newest MAX_BACKUPS files.
    """
    db = _open_database()
    try:
        backup_path = asyncio.run(backup.create_backup(db, get_settings()))
        return {"status": "success", "path": backup_path}
    except Exception as e:
        logger.error(f"Error creating backup: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close_all()


@celery_app.task(name="run_maintenance")
def run_maintenance_task():
    """Async task to purge old logs and optimize the database."""
    db = _open_database()
    try:
        removed = asyncio.run(cleanup.run_maintenance(db, get_settings()))
        return {"status": "success", "removed": removed}
    except Exception as e:
        logger.error(f"Error running maintenance: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close_all()


@celery_app.task(name="wal_checkpoint")
def wal_checkpoint_task():
    """Light daily maintenance: a PASSIVE checkpoint that never blocks writers."""
    db = _open_database()
    try:
        result = asyncio.run(db.checkpoint("PASSIVE"))
        logger.info(f"WAL checkpoint done: {result}")
        return {"status": "success", "checkpoint": result}
    except Exception as e:
        logger.error(f"Error running WAL checkpoint: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close_all()
