"""AIH registration, lookup, glosas and the catalogs."""

import logging
from typing import Any, Dict, List

from common.db import Database, Operation
from common.enums import DEFAULT_AIH_STATUS
from common.errors import ConflictError, NotFoundError, QueryError, ValidationError
from services.aih import queries
from services.audit.access_log import access_log_operation, log_action
from services.rules import validator

logger = logging.getLogger(__name__)


def _is_unique_violation(error: QueryError) -> bool:
    return error.is_constraint_violation and "UNIQUE" in error.message.upper()


async def register_aih(db: Database, data: Dict[str, Any], user_id: int) -> dict:
    """
    Register an AIH with its attendances.

    The AIH, every attendance and the access log row are written in one
    transaction. No movement is created: the first one must be recorded
    explicitly as an entry.
    """
    result = validator.validate_aih(data)
    if not result.is_valid:
        logger.warning(f"AIH registration rejected: {'; '.join(result.errors)}")
        raise ValidationError(result.errors)

    numero_aih = data["numero_aih"].strip()
    valor_inicial = float(data["valor_inicial"])
    competencia = data["competencia"].strip()
    attendances = validator.normalize_attendances(data.get("atendimentos"))

    existing = await db.fetch_one(queries.SELECT_AIH_ID_BY_NUMBER, {"numero_aih": numero_aih})
    if existing:
        raise ConflictError("AIH already exists")

    operations = [
        Operation(
            queries.INSERT_AIH,
            {
                "numero_aih": numero_aih,
                "valor_inicial": valor_inicial,
                "competencia": competencia,
                "usuario_id": user_id,
                "status": int(DEFAULT_AIH_STATUS),
            },
        )
    ]
    operations.extend(
        Operation(queries.INSERT_ATTENDANCE, {"numero_aih": numero_aih, "numero_atendimento": attendance})
        for attendance in attendances
    )
    operations.append(access_log_operation(user_id, f"Registered AIH {numero_aih}"))

    try:
        results = await db.run_transaction(operations)
    except QueryError as e:
        # Concurrent registration of the same number
        if _is_unique_violation(e):
            raise ConflictError("AIH already exists") from e
        raise

    db.invalidate("aihs")
    aih_id = results[0].inserted_id
    logger.info(f"AIH {numero_aih} registered (id {aih_id}, {len(attendances)} attendances)")

    return {
        "success": True,
        "id": aih_id,
        "numero_aih": numero_aih,
        "atendimentos_inseridos": len(attendances),
        "valor_inicial": valor_inicial,
        "competencia": competencia,
        "warnings": result.warnings,
    }


async def get_aih(db: Database, aih_id: int) -> dict:
    aih = await db.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
    if not aih:
        raise NotFoundError("AIH not found")
    return aih


async def get_aih_detail(db: Database, numero_aih: str) -> dict:
    """AIH with attendance numbers, movements (latest first) and active glosas."""
    aih = await db.fetch_one(queries.SELECT_AIH_BY_NUMBER, {"numero_aih": numero_aih})
    if not aih:
        raise NotFoundError("AIH not found")

    params = {"aih_id": aih["id"]}
    attendances = await db.fetch_all(queries.SELECT_ATTENDANCE_NUMBERS, params)
    movements = await db.fetch_all(queries.SELECT_MOVEMENTS, params)
    glosas = await db.fetch_all(queries.SELECT_ACTIVE_GLOSAS, params)

    return {
        **aih,
        "atendimentos": [row["numero_atendimento"] for row in attendances],
        "movimentacoes": movements,
        "glosas": glosas,
    }


async def list_active_glosas(db: Database, aih_id: int) -> List[dict]:
    await get_aih(db, aih_id)
    return await db.fetch_all(queries.SELECT_ACTIVE_GLOSAS, {"aih_id": aih_id})


async def add_glosa(db: Database, aih_id: int, data: Dict[str, Any], user_id: int) -> int:
    result = validator.validate_glosa(data)
    if not result.is_valid:
        raise ValidationError(result.errors)

    async with db.transaction() as tx:
        aih = await tx.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
        if not aih:
            raise NotFoundError("AIH not found")

        inserted = await tx.execute(
            queries.INSERT_GLOSA,
            {
                "aih_id": aih_id,
                "linha": str(data["linha"]).strip(),
                "tipo": str(data["tipo"]).strip(),
                "profissional": str(data["profissional"]).strip(),
                "quantidade": int(data.get("quantidade") or 1),
            },
        )
        await log_action(tx, user_id, f"Added glosa on AIH {aih['numero_aih']}: {data['linha']} - {data['tipo']}")

    db.invalidate("glosas")
    logger.info(f"Glosa {inserted.inserted_id} added to AIH {aih['numero_aih']}")
    return inserted.inserted_id


async def deactivate_glosa(db: Database, glosa_id: int, user_id: int) -> None:
    """Soft-delete: the row stays, only the active flag is cleared."""
    async with db.transaction() as tx:
        updated = await tx.execute(queries.DEACTIVATE_GLOSA, {"glosa_id": glosa_id})
        if updated.rows_affected == 0:
            raise NotFoundError("Glosa not found")
        await log_action(tx, user_id, f"Removed glosa {glosa_id}")

    db.invalidate("glosas")
    logger.info(f"Glosa {glosa_id} deactivated")


async def list_glosa_types(db: Database) -> List[dict]:
    return await db.fetch_all(queries.SELECT_GLOSA_TYPES, cacheable=True)


async def add_glosa_type(db: Database, descricao: str) -> int:
    try:
        result = await db.execute(queries.INSERT_GLOSA_TYPE, {"descricao": descricao.strip()})
    except QueryError as e:
        if _is_unique_violation(e):
            raise ConflictError("Glosa type already exists") from e
        raise
    db.invalidate("tipos_glosa")
    return result.inserted_id


async def delete_glosa_type(db: Database, tipo_id: int) -> None:
    result = await db.execute(queries.DELETE_GLOSA_TYPE, {"tipo_id": tipo_id})
    if result.rows_affected == 0:
        raise NotFoundError("Glosa type not found")
    db.invalidate("tipos_glosa")


async def list_professionals(db: Database) -> List[dict]:
    return await db.fetch_all(queries.SELECT_PROFESSIONALS, cacheable=True)


async def add_professional(db: Database, nome: str, especialidade: str) -> int:
    result = await db.execute(
        queries.INSERT_PROFESSIONAL, {"nome": nome.strip(), "especialidade": especialidade.strip()}
    )
    db.invalidate("profissionais")
    return result.inserted_id


async def delete_professional(db: Database, profissional_id: int) -> None:
    result = await db.execute(queries.DELETE_PROFESSIONAL, {"profissional_id": profissional_id})
    if result.rows_affected == 0:
        raise NotFoundError("Professional not found")
    db.invalidate("profissionais")
