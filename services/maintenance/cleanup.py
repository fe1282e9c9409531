"""Log retention and database housekeeping."""

import logging

from common.config import Settings
from common.db import Database
from services.aih import queries

logger = logging.getLogger(__name__)

DELETE_OLD_ACCESS_LOGS = "DELETE FROM logs_acesso WHERE data_hora < datetime('now', :cutoff)"
DELETE_OLD_DELETION_LOGS = "DELETE FROM logs_exclusao WHERE data_exclusao < datetime('now', :cutoff)"


async def cleanup_old_logs(db: Database, settings: Settings) -> dict:
    """
    Purge access logs past their retention.

    Deletion logs are the audit trail of hard-deletes and are only purged
    after the much longer deletion log retention.
    """
    access = await db.execute(
        DELETE_OLD_ACCESS_LOGS, {"cutoff": f"-{settings.access_log_retention_days} days"}
    )
    deletion = await db.execute(
        DELETE_OLD_DELETION_LOGS, {"cutoff": f"-{settings.deletion_log_retention_days} days"}
    )
    # Spent grants only matter while they could still be presented
    await db.execute(queries.DELETE_OLD_REAUTH_GRANTS, {"cutoff": "-1 days"})
    db.invalidate("logs_acesso")

    logger.info(
        f"Logs cleaned: {access.rows_affected} access logs, {deletion.rows_affected} deletion logs removed"
    )
    return {"logs_acesso": access.rows_affected, "logs_exclusao": deletion.rows_affected}


async def optimize_database(db: Database) -> None:
    """Truncate the WAL, refresh planner statistics and let SQLite optimize."""
    await db.checkpoint("TRUNCATE")
    await db.execute("ANALYZE")
    await db.execute("PRAGMA optimize")
    logger.info("Database optimized")


async def run_maintenance(db: Database, settings: Settings) -> dict:
    logger.info("Starting database maintenance")
    removed = await cleanup_old_logs(db, settings)
    await optimize_database(db)
    logger.info("Database maintenance finished")
    return removed
