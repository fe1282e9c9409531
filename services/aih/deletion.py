"""Audited hard-deletes of movements and whole AIHs."""

import json
import logging
from typing import NamedTuple, Optional

from common.db import Database
from common.enums import DEFAULT_AIH_STATUS, DeletionKind, ProfessionalField
from common.errors import AuthError, NotFoundError, ValidationError
from services.aih import queries
from services.rules import validator

logger = logging.getLogger(__name__)


class RequestOrigin(NamedTuple):
    """Caller metadata stored with each deletion log."""

    ip_origem: Optional[str]
    user_agent: Optional[str]


def _require_justification(justificativa: Optional[str]) -> str:
    result = validator.validate_justification(justificativa)
    if not result.is_valid:
        raise ValidationError(result.errors)
    return justificativa.strip()


async def _consume_grant(tx, reauth_grant: Optional[str], user_id: int) -> None:
    if reauth_grant is None:
        return
    result = await tx.execute(queries.CONSUME_REAUTH_GRANT, {"jti": reauth_grant, "usuario_id": user_id})
    if result.rows_affected == 0:
        raise AuthError("Password confirmation already used", status_code=403)


def _deletion_log_params(kind: DeletionKind, user_id: int, snapshot: dict, justificativa: str, origin: RequestOrigin) -> dict:
    return {
        "tipo_exclusao": kind.value,
        "usuario_id": user_id,
        "dados_excluidos": json.dumps(snapshot, default=str, ensure_ascii=False),
        "justificativa": justificativa,
        "ip_origem": origin.ip_origem,
        "user_agent": origin.user_agent or "Unknown",
    }


async def delete_movement(
    db: Database,
    movimentacao_id: Optional[int],
    justificativa: Optional[str],
    user_id: int,
    origin: RequestOrigin,
    reauth_grant: Optional[str] = None,
) -> dict:
    """
    Hard-delete one movement.

    Snapshot, deletion log, delete and the AIH state re-derivation run in a
    single transaction: either all of them happen or none. A password
    confirmation grant, when given, is spent in that same transaction.
    """
    if movimentacao_id is None:
        raise ValidationError(["Movement id is required"])
    justificativa = _require_justification(justificativa)

    async with db.transaction() as tx:
        await _consume_grant(tx, reauth_grant, user_id)
        movement = await tx.fetch_one(queries.SELECT_MOVEMENT_WITH_AIH, {"movimentacao_id": movimentacao_id})
        if not movement:
            raise NotFoundError("Movement not found")

        snapshot = {
            "id": movement["id"],
            "aih_id": movement["aih_id"],
            "numero_aih": movement["numero_aih"],
            "tipo": movement["tipo"],
            "data_movimentacao": movement["data_movimentacao"],
            "valor_conta": movement["valor_conta"],
            "competencia": movement["competencia"],
            "status_aih": movement["status_aih"],
            "observacoes": movement["observacoes"],
            **{field.value: movement[field.value] for field in ProfessionalField},
        }

        await tx.execute(
            queries.INSERT_DELETION_LOG,
            _deletion_log_params(DeletionKind.MOVEMENT, user_id, snapshot, justificativa, origin),
        )
        await tx.execute(queries.DELETE_MOVEMENT, {"movimentacao_id": movimentacao_id})
        await tx.execute(
            queries.REDERIVE_AIH_STATE,
            {"aih_id": movement["aih_id"], "default_status": int(DEFAULT_AIH_STATUS)},
        )

    db.invalidate("movimentacoes")
    db.invalidate("aihs")
    logger.info(f"Movement {movimentacao_id} of AIH {movement['numero_aih']} deleted by user {user_id}")

    return {
        "success": True,
        "message": "Movement deleted",
        "movimentacao_deletada": {
            "id": movimentacao_id,
            "aih": movement["numero_aih"],
            "tipo": movement["tipo"],
        },
    }


async def delete_aih(
    db: Database,
    numero_aih: Optional[str],
    justificativa: Optional[str],
    user_id: int,
    origin: RequestOrigin,
    reauth_grant: Optional[str] = None,
) -> dict:
    """
    Hard-delete an AIH with its glosas, movements and attendances.

    The snapshot of every removed row is logged in the same transaction as
    the deletes, which run in dependency order.
    """
    if not numero_aih or not numero_aih.strip():
        raise ValidationError(["AIH number is required"])
    justificativa = _require_justification(justificativa)
    numero_aih = numero_aih.strip()

    async with db.transaction() as tx:
        await _consume_grant(tx, reauth_grant, user_id)
        aih = await tx.fetch_one(queries.SELECT_AIH_BY_NUMBER, {"numero_aih": numero_aih})
        if not aih:
            raise NotFoundError("AIH not found")

        params = {"aih_id": aih["id"]}
        movements = await tx.fetch_all(queries.SELECT_ALL_MOVEMENTS, params)
        glosas = await tx.fetch_all(queries.SELECT_ALL_GLOSAS, params)
        attendances = await tx.fetch_all(queries.SELECT_ALL_ATTENDANCES, params)

        snapshot = {
            "aih": aih,
            "movimentacoes": movements,
            "glosas": glosas,
            "atendimentos": attendances,
            "totais": {
                "movimentacoes": len(movements),
                "glosas": len(glosas),
                "atendimentos": len(attendances),
            },
        }

        await tx.execute(
            queries.INSERT_DELETION_LOG,
            _deletion_log_params(DeletionKind.FULL_AIH, user_id, snapshot, justificativa, origin),
        )
        await tx.execute(queries.DELETE_AIH_GLOSAS, params)
        await tx.execute(queries.DELETE_AIH_MOVEMENTS, params)
        await tx.execute(queries.DELETE_AIH_ATTENDANCES, params)
        await tx.execute(queries.DELETE_AIH, params)

    for table in ("aihs", "movimentacoes", "glosas", "atendimentos"):
        db.invalidate(table)
    logger.info(
        f"AIH {numero_aih} deleted by user {user_id}: {len(movements)} movements, "
        f"{len(glosas)} glosas, {len(attendances)} attendances"
    )

    return {
        "success": True,
        "message": "AIH deleted",
        "aih_deletada": {
            "numero_aih": numero_aih,
            "movimentacoes_removidas": len(movements),
            "glosas_removidas": len(glosas),
            "atendimentos_removidos": len(attendances),
        },
    }
