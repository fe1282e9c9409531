"""User action trail (logs_acesso)."""

import logging

from common.db import ExecuteResult, Operation
from services.aih import queries

logger = logging.getLogger(__name__)


def access_log_operation(user_id: int, acao: str) -> Operation:
    """Access log insert to run as part of a larger transaction."""
    return Operation(queries.INSERT_ACCESS_LOG, {"usuario_id": user_id, "acao": acao})


async def log_action(executor, user_id: int, acao: str) -> ExecuteResult:
    """
    Record a user action.

    ``executor`` is the Database or an open Transaction, so the log row can
    commit together with the action it describes.
    """
    sql, params = access_log_operation(user_id, acao)
    result = await executor.execute(sql, params)
    logger.debug(f"Access log: user {user_id} {acao}")
    return result
