"""File backups of the SQLite database."""

import asyncio
import glob
import logging
import os
import shutil
from datetime import datetime
from typing import List

from common.config import Settings
from common.db import Database

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "aih-backup-"


def backup_filename(now: datetime = None) -> str:
    now = now or datetime.now()
    return f"{BACKUP_PREFIX}{now.strftime('%Y-%m-%d_%H-%M-%S')}.db"


def rotate_backups(backup_dir: str, keep: int) -> List[str]:
    """Delete all but the newest ``keep`` backups. Returns the removed paths."""
    backups = sorted(glob.glob(os.path.join(backup_dir, f"{BACKUP_PREFIX}*.db")), reverse=True)
    removed = backups[keep:]
    for path in removed:
        os.remove(path)
        logger.info(f"Old backup removed: {os.path.basename(path)}")
    return removed


async def create_backup(db: Database, settings: Settings) -> str:
    """
    Copy the database file into the backup directory.

    A FULL checkpoint first moves every committed WAL page into the main
    file, so the copy alone is consistent. File work runs in worker
    threads, off the event loop.
    """
    await asyncio.to_thread(os.makedirs, settings.backup_dir, exist_ok=True)
    await db.checkpoint("FULL")

    backup_path = os.path.join(settings.backup_dir, backup_filename())
    await asyncio.to_thread(shutil.copy2, db.path, backup_path)
    logger.info(f"Backup created: {backup_path}")

    await asyncio.to_thread(rotate_backups, settings.backup_dir, settings.max_backups)
    return backup_path
