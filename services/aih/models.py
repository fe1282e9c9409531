"""SQLAlchemy models for the AIH audit schema."""

from sqlalchemy import Column, String, Float, DateTime, Integer, ForeignKey, Text, Index, text
from sqlalchemy.sql import func
from common.db import Base
from common.enums import DEFAULT_AIH_STATUS


class User(Base):
    """Auditor account (regular user)."""

    __tablename__ = "usuarios"

    id = Column(Integer, primary_key=True)
    nome = Column(Text, unique=True, nullable=False)
    matricula = Column(Text, unique=True, nullable=True)  # Added after the first release
    senha_hash = Column(Text, nullable=False)
    criado_em = Column(DateTime, server_default=func.now())


class Administrator(Base):
    """Administrator account, separate from auditors."""

    __tablename__ = "administradores"

    id = Column(Integer, primary_key=True)
    usuario = Column(Text, unique=True, nullable=False)
    senha_hash = Column(Text, nullable=False)
    criado_em = Column(DateTime, server_default=func.now())
    ultima_alteracao = Column(DateTime, server_default=func.now())


# the billing authorization being audited
class AIH(Base):
    """Hospital billing authorization record."""

    __tablename__ = "aihs"

    id = Column(Integer, primary_key=True)
    numero_aih = Column(Text, unique=True, nullable=False)
    valor_inicial = Column(Float, nullable=False)
    valor_atual = Column(Float, nullable=False)
    status = Column(Integer, nullable=False, server_default=text(str(int(DEFAULT_AIH_STATUS))))
    competencia = Column(String(7), nullable=False)  # MM/YYYY
    criado_em = Column(DateTime, server_default=func.now())
    usuario_cadastro_id = Column(Integer, ForeignKey("usuarios.id"), nullable=True)

    __table_args__ = (
        Index("idx_aih_status_competencia", "status", "competencia"),
        Index("idx_aih_competencia_criado", "competencia", "criado_em"),
        Index("idx_aih_status_valor", "status", "valor_atual"),
    )


class Attendance(Base):
    """Care-episode number attached to an AIH at registration."""

    __tablename__ = "atendimentos"

    id = Column(Integer, primary_key=True)
    aih_id = Column(Integer, ForeignKey("aihs.id"), nullable=False)
    numero_atendimento = Column(Text, nullable=False)

    __table_args__ = (
        Index("idx_atendimentos_aih", "aih_id"),
        Index("idx_atendimentos_numero", "numero_atendimento"),
    )


class Movement(Base):
    """Audit hand-off event. Append-only; overwrites the parent AIH state."""

    __tablename__ = "movimentacoes"

    id = Column(Integer, primary_key=True)
    aih_id = Column(Integer, ForeignKey("aihs.id"), nullable=False)
    tipo = Column(Text, nullable=False)  # MovementType value
    data_movimentacao = Column(DateTime, server_default=func.now())
    usuario_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False)
    valor_conta = Column(Float, nullable=True)
    competencia = Column(String(7), nullable=True)

    # Professionals, one per discipline
    prof_medicina = Column(Text, nullable=True)
    prof_enfermagem = Column(Text, nullable=True)
    prof_fisioterapia = Column(Text, nullable=True)
    prof_bucomaxilo = Column(Text, nullable=True)

    status_aih = Column(Integer, nullable=False)
    observacoes = Column(Text, nullable=True)  # Added after the first release

    __table_args__ = (
        Index("idx_mov_aih_data", "aih_id", "data_movimentacao"),
        Index("idx_mov_tipo_competencia", "tipo", "competencia", "aih_id"),
    )


class Glosa(Base):
    """Disputed billing line item. Removal only clears the active flag."""

    __tablename__ = "glosas"

    id = Column(Integer, primary_key=True)
    aih_id = Column(Integer, ForeignKey("aihs.id"), nullable=False)
    linha = Column(Text, nullable=False)
    tipo = Column(Text, nullable=False)
    profissional = Column(Text, nullable=False)
    quantidade = Column(Integer, server_default=text("1"))
    ativa = Column(Integer, server_default=text("1"))
    criado_em = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_glosas_aih_ativa", "aih_id", "ativa"),
        Index("idx_glosas_tipo_prof", "tipo", "profissional"),
    )


class Professional(Base):
    """Catalog of professionals offered when filling movements."""

    __tablename__ = "profissionais"

    id = Column(Integer, primary_key=True)
    nome = Column(Text, nullable=False)
    especialidade = Column(Text, nullable=False)


class GlosaType(Base):
    """Catalog of dispute types."""

    __tablename__ = "tipos_glosa"

    id = Column(Integer, primary_key=True)
    descricao = Column(Text, unique=True, nullable=False)


class AccessLog(Base):
    """One row per audited user action."""

    __tablename__ = "logs_acesso"

    id = Column(Integer, primary_key=True)
    usuario_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False)
    acao = Column(Text, nullable=False)
    data_hora = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_logs_usuario_data", "usuario_id", "data_hora"),)


class DeletionLog(Base):
    """Immutable trail of hard-deletes with a JSON snapshot of what was removed."""

    __tablename__ = "logs_exclusao"

    id = Column(Integer, primary_key=True)
    tipo_exclusao = Column(Text, nullable=False)  # DeletionKind value
    usuario_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False)
    dados_excluidos = Column(Text, nullable=False)
    justificativa = Column(Text, nullable=False)
    ip_origem = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    data_exclusao = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_logs_exclusao_tipo", "tipo_exclusao", "data_exclusao"),)


class UsedReauthGrant(Base):
    """Password confirmation grants already spent on a destructive action."""

    __tablename__ = "confirmacoes_usadas"

    jti = Column(Text, primary_key=True)
    usuario_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False)
    usado_em = Column(DateTime, server_default=func.now())
