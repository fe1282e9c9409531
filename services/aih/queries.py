"""SQL statement templates and the search query builder.

Templates use named parameters only. Cache invalidation matches on table
names inside the statement text, so every template names its tables
explicitly.
"""

from sqlalchemy import and_, column, func, or_, select, table
from sqlalchemy.sql import Select

from common.enums import MovementType, ProfessionalField
from services.aih.schemas import SearchFilters

# AIH
SELECT_AIH_BY_NUMBER = "SELECT * FROM aihs WHERE numero_aih = :numero_aih"
SELECT_AIH_BY_ID = "SELECT * FROM aihs WHERE id = :aih_id"
SELECT_AIH_ID_BY_NUMBER = "SELECT id FROM aihs WHERE numero_aih = :numero_aih"
INSERT_AIH = """
    INSERT INTO aihs (numero_aih, valor_inicial, valor_atual, competencia, usuario_cadastro_id, status)
    VALUES (:numero_aih, :valor_inicial, :valor_inicial, :competencia, :usuario_id, :status)
"""
UPDATE_AIH_STATE = """
    UPDATE aihs SET status = :status_aih, valor_atual = COALESCE(:valor_conta, valor_atual)
    WHERE id = :aih_id
"""

# Attendances. Inserted by AIH number so they can share the AIH insert transaction
INSERT_ATTENDANCE = """
    INSERT INTO atendimentos (aih_id, numero_atendimento)
    SELECT id, :numero_atendimento FROM aihs WHERE numero_aih = :numero_aih
"""
SELECT_ATTENDANCE_NUMBERS = "SELECT numero_atendimento FROM atendimentos WHERE aih_id = :aih_id ORDER BY id"

# Movements. Same-second timestamps are ordered by id
SELECT_MOVEMENTS = """
    SELECT * FROM movimentacoes WHERE aih_id = :aih_id
    ORDER BY data_movimentacao DESC, id DESC
"""
SELECT_LATEST_MOVEMENT = """
    SELECT * FROM movimentacoes WHERE aih_id = :aih_id
    ORDER BY data_movimentacao DESC, id DESC LIMIT 1
"""
SELECT_LATEST_MOVEMENT_WITH_PROFESSIONALS = """
    SELECT * FROM movimentacoes
    WHERE aih_id = :aih_id AND (
        prof_medicina IS NOT NULL OR prof_enfermagem IS NOT NULL
        OR prof_fisioterapia IS NOT NULL OR prof_bucomaxilo IS NOT NULL
    )
    ORDER BY data_movimentacao DESC, id DESC LIMIT 1
"""
SELECT_MOVEMENT_WITH_AIH = """
    SELECT m.*, a.numero_aih FROM movimentacoes m
    JOIN aihs a ON m.aih_id = a.id
    WHERE m.id = :movimentacao_id
"""
INSERT_MOVEMENT = """
    INSERT INTO movimentacoes (
        aih_id, tipo, usuario_id, valor_conta, competencia,
        prof_medicina, prof_enfermagem, prof_fisioterapia, prof_bucomaxilo,
        status_aih, observacoes
    ) VALUES (
        :aih_id, :tipo, :usuario_id, :valor_conta, :competencia,
        :prof_medicina, :prof_enfermagem, :prof_fisioterapia, :prof_bucomaxilo,
        :status_aih, :observacoes
    )
"""

# Hard-deletes
SELECT_ALL_MOVEMENTS = "SELECT * FROM movimentacoes WHERE aih_id = :aih_id ORDER BY id"
SELECT_ALL_GLOSAS = "SELECT * FROM glosas WHERE aih_id = :aih_id ORDER BY id"
SELECT_ALL_ATTENDANCES = "SELECT * FROM atendimentos WHERE aih_id = :aih_id ORDER BY id"
DELETE_MOVEMENT = "DELETE FROM movimentacoes WHERE id = :movimentacao_id"
DELETE_AIH_GLOSAS = "DELETE FROM glosas WHERE aih_id = :aih_id"
DELETE_AIH_MOVEMENTS = "DELETE FROM movimentacoes WHERE aih_id = :aih_id"
DELETE_AIH_ATTENDANCES = "DELETE FROM atendimentos WHERE aih_id = :aih_id"
DELETE_AIH = "DELETE FROM aihs WHERE id = :aih_id"
# Back to the state of the new latest movement, or the registration state
REDERIVE_AIH_STATE = """
    UPDATE aihs SET
        status = COALESCE(
            (SELECT status_aih FROM movimentacoes WHERE aih_id = :aih_id
             ORDER BY data_movimentacao DESC, id DESC LIMIT 1),
            :default_status
        ),
        valor_atual = COALESCE(
            (SELECT valor_conta FROM movimentacoes WHERE aih_id = :aih_id AND valor_conta IS NOT NULL
             ORDER BY data_movimentacao DESC, id DESC LIMIT 1),
            valor_inicial
        )
    WHERE id = :aih_id
"""

# Glosas
SELECT_ACTIVE_GLOSAS = "SELECT * FROM glosas WHERE aih_id = :aih_id AND ativa = 1 ORDER BY id"
INSERT_GLOSA = """
    INSERT INTO glosas (aih_id, linha, tipo, profissional, quantidade)
    VALUES (:aih_id, :linha, :tipo, :profissional, :quantidade)
"""
DEACTIVATE_GLOSA = "UPDATE glosas SET ativa = 0 WHERE id = :glosa_id"

# Catalogs
SELECT_GLOSA_TYPES = "SELECT * FROM tipos_glosa ORDER BY descricao"
INSERT_GLOSA_TYPE = "INSERT INTO tipos_glosa (descricao) VALUES (:descricao)"
DELETE_GLOSA_TYPE = "DELETE FROM tipos_glosa WHERE id = :tipo_id"
SELECT_PROFESSIONALS = "SELECT * FROM profissionais ORDER BY nome"
INSERT_PROFESSIONAL = "INSERT INTO profissionais (nome, especialidade) VALUES (:nome, :especialidade)"
DELETE_PROFESSIONAL = "DELETE FROM profissionais WHERE id = :profissional_id"

# Logs
INSERT_ACCESS_LOG = "INSERT INTO logs_acesso (usuario_id, acao) VALUES (:usuario_id, :acao)"
INSERT_DELETION_LOG = """
    INSERT INTO logs_exclusao (
        tipo_exclusao, usuario_id, dados_excluidos, justificativa, ip_origem, user_agent
    ) VALUES (
        :tipo_exclusao, :usuario_id, :dados_excluidos, :justificativa, :ip_origem, :user_agent
    )
"""

# Single-use password confirmations
CONSUME_REAUTH_GRANT = """
    INSERT OR IGNORE INTO confirmacoes_usadas (jti, usuario_id) VALUES (:jti, :usuario_id)
"""

DELETE_OLD_REAUTH_GRANTS = "DELETE FROM confirmacoes_usadas WHERE usado_em < datetime('now', :cutoff)"

# Dashboard aggregates
COUNT_COMPETENCE_FLOW = """
    SELECT
        COUNT(DISTINCT CASE WHEN m.tipo = 'entrada_sus' THEN m.aih_id END) AS entradas,
        COUNT(DISTINCT CASE WHEN m.tipo = 'saida_hospital' THEN m.aih_id END) AS saidas
    FROM movimentacoes m
    WHERE m.competencia = :competencia
"""
COUNT_COMPETENCE_BY_STATUS = """
    SELECT
        COUNT(*) AS total,
        COALESCE(SUM(CASE WHEN status IN (1, 4) THEN 1 ELSE 0 END), 0) AS finalizadas,
        COALESCE(SUM(CASE WHEN status IN (2, 3) THEN 1 ELSE 0 END), 0) AS com_pendencias
    FROM aihs
    WHERE competencia = :competencia
"""
COUNT_OVERALL = """
    SELECT
        (SELECT COUNT(DISTINCT aih_id) FROM movimentacoes WHERE tipo = 'entrada_sus') AS total_entradas_sus,
        (SELECT COUNT(DISTINCT aih_id) FROM movimentacoes WHERE tipo = 'saida_hospital') AS total_saidas_hospital,
        (SELECT COUNT(*) FROM aihs WHERE status IN (1, 4)) AS total_finalizadas_geral,
        (SELECT COUNT(*) FROM aihs) AS total_aihs_geral
"""
SELECT_COMPETENCES = """
    SELECT DISTINCT competencia FROM aihs
    ORDER BY CAST(SUBSTR(competencia, 4, 4) AS INTEGER) DESC,
             CAST(SUBSTR(competencia, 1, 2) AS INTEGER) DESC
"""
SUM_COMPETENCE_VALUES = """
    SELECT
        SUM(valor_inicial) AS valor_inicial_total,
        SUM(valor_atual) AS valor_atual_total,
        AVG(valor_inicial - valor_atual) AS media_glosa
    FROM aihs
    WHERE competencia = :competencia
"""

# Query-side views of the tables used by the search builder
aihs = table(
    "aihs",
    column("id"),
    column("numero_aih"),
    column("valor_inicial"),
    column("valor_atual"),
    column("status"),
    column("competencia"),
    column("criado_em"),
    column("usuario_cadastro_id"),
)
glosas = table("glosas", column("id"), column("aih_id"), column("ativa"))
atendimentos = table("atendimentos", column("aih_id"), column("numero_atendimento"))
movimentacoes = table(
    "movimentacoes",
    column("aih_id"),
    column("tipo"),
    column("competencia"),
    *(column(field.value) for field in ProfessionalField),
)


def in_processing_ids(competencia: str = None) -> Select:
    """AIH ids with an entry movement and no exit movement, optionally per competence."""
    entries = movimentacoes.alias("m1")
    exits = movimentacoes.alias("m2")

    exited = select(exits.c.aih_id).where(exits.c.tipo == MovementType.EXIT.value)
    entered = select(entries.c.aih_id).where(entries.c.tipo == MovementType.ENTRY.value)
    if competencia:
        exited = exited.where(exits.c.competencia == competencia)
        entered = entered.where(entries.c.competencia == competencia)

    return entered.where(entries.c.aih_id.not_in(exited)).distinct()


def build_search(filters: SearchFilters) -> Select:
    """
    Build the AIH search query.

    Each result row carries every AIH column plus ``total_glosas``, the
    number of active glosas. The in-processing filters replace all other
    criteria.
    """
    active_glosas = and_(glosas.c.aih_id == aihs.c.id, glosas.c.ativa == 1)
    query = select(aihs, func.count(glosas.c.id).label("total_glosas")).select_from(
        aihs.outerjoin(glosas, active_glosas)
    )

    if filters.em_processamento_competencia:
        query = query.where(aihs.c.id.in_(in_processing_ids(filters.em_processamento_competencia)))
    elif filters.em_processamento_geral:
        query = query.where(aihs.c.id.in_(in_processing_ids()))
    else:
        conditions = []

        if filters.status:
            conditions.append(aihs.c.status.in_(filters.status))
        if filters.competencia:
            conditions.append(aihs.c.competencia == filters.competencia)
        if filters.data_inicio:
            conditions.append(aihs.c.criado_em >= filters.data_inicio)
        if filters.data_fim:
            conditions.append(aihs.c.criado_em <= f"{filters.data_fim} 23:59:59")
        if filters.valor_min is not None:
            conditions.append(aihs.c.valor_atual >= filters.valor_min)
        if filters.valor_max is not None:
            conditions.append(aihs.c.valor_atual <= filters.valor_max)
        if filters.numero_aih:
            conditions.append(aihs.c.numero_aih.contains(filters.numero_aih))
        if filters.numero_atendimento:
            matching = select(atendimentos.c.aih_id).where(
                atendimentos.c.numero_atendimento.contains(filters.numero_atendimento)
            )
            conditions.append(aihs.c.id.in_(matching))
        if filters.profissional:
            assigned = movimentacoes.alias("mp")
            matching = select(assigned.c.aih_id).where(
                or_(*(assigned.c[field.value].contains(filters.profissional) for field in ProfessionalField))
            )
            conditions.append(aihs.c.id.in_(matching))

        if conditions:
            query = query.where(and_(*conditions))

    return query.group_by(aihs.c.id).order_by(aihs.c.criado_em.desc(), aihs.c.id.desc())
