"""Dashboard aggregates and AIH search."""

import logging
from datetime import datetime
from typing import List, Optional

from common.db import Database
from common.errors import ValidationError
from services.aih import queries
from services.aih.schemas import SearchFilters
from services.rules.validator import AuditRuleValidator

logger = logging.getLogger(__name__)


def current_competence() -> str:
    return datetime.now().strftime("%m/%Y")


async def get_dashboard(db: Database, competencia: Optional[str] = None) -> dict:
    """
    Counts and value sums for one competence plus totals since the beginning.

    Every aggregate read is cacheable; figures may lag writes that do not
    invalidate them by up to one cache TTL.
    """
    competencia = competencia or current_competence()
    errors, _ = AuditRuleValidator.validate_competence(competencia)
    if errors:
        raise ValidationError(errors)

    params = {"competencia": competencia}
    flow = await db.fetch_one(queries.COUNT_COMPETENCE_FLOW, params, cacheable=True) or {}
    by_status = await db.fetch_one(queries.COUNT_COMPETENCE_BY_STATUS, params, cacheable=True) or {}
    overall = await db.fetch_one(queries.COUNT_OVERALL, cacheable=True) or {}
    competences = await db.fetch_all(queries.SELECT_COMPETENCES, cacheable=True)
    values = await db.fetch_one(queries.SUM_COMPETENCE_VALUES, params, cacheable=True) or {}

    entradas = overall.get("total_entradas_sus") or 0
    saidas = overall.get("total_saidas_hospital") or 0

    return {
        "competencia_selecionada": competencia,
        "competencias_disponiveis": [row["competencia"] for row in competences],
        # Competence figures
        "em_processamento_competencia": (flow.get("entradas") or 0) - (flow.get("saidas") or 0),
        "finalizadas_competencia": by_status.get("finalizadas") or 0,
        "com_pendencias_competencia": by_status.get("com_pendencias") or 0,
        "total_aihs_competencia": by_status.get("total") or 0,
        # Since the beginning
        "total_entradas_sus": entradas,
        "total_saidas_hospital": saidas,
        "total_em_processamento_geral": entradas - saidas,
        "total_finalizadas_geral": overall.get("total_finalizadas_geral") or 0,
        "total_aihs_geral": overall.get("total_aihs_geral") or 0,
        "valores_competencia": {
            "inicial": values.get("valor_inicial_total") or 0,
            "atual": values.get("valor_atual_total") or 0,
            "media_glosa": values.get("media_glosa") or 0,
        },
    }


async def search_aihs(db: Database, filters: SearchFilters) -> List[dict]:
    """AIHs matching the filters, newest first, each with its active glosa count."""
    results = await db.fetch_all(queries.build_search(filters))
    logger.debug(f"Search returned {len(results)} AIHs")
    return results
