"""Pydantic schemas for the AIH audit API."""

from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Optional, Union


class AIHCreate(BaseModel):
    """Schema for registering an AIH. Field rules are checked by the validator."""

    numero_aih: Optional[str] = None
    valor_inicial: Optional[Union[float, str]] = None
    competencia: Optional[str] = None
    # list, comma/newline separated string or mapping
    atendimentos: Optional[Union[List[Any], str, Dict[str, Any]]] = None


class AIHCreatedResponse(BaseModel):
    """Schema for a successful registration."""

    success: bool = True
    id: int
    numero_aih: str
    atendimentos_inseridos: int
    valor_inicial: float
    competencia: str
    warnings: List[str] = []


class MovementCreate(BaseModel):
    """Schema for recording a movement."""

    tipo: Optional[str] = None
    status_aih: Optional[Union[int, str]] = None
    valor_conta: Optional[Union[float, str]] = None
    competencia: Optional[str] = None
    prof_medicina: Optional[str] = None
    prof_enfermagem: Optional[str] = None
    prof_fisioterapia: Optional[str] = None
    prof_bucomaxilo: Optional[str] = None
    observacoes: Optional[str] = None


class MovementResponse(BaseModel):
    """Schema for a stored movement."""

    id: int
    aih_id: int
    tipo: str
    data_movimentacao: Optional[str]
    usuario_id: int
    valor_conta: Optional[float]
    competencia: Optional[str]
    prof_medicina: Optional[str]
    prof_enfermagem: Optional[str]
    prof_fisioterapia: Optional[str]
    prof_bucomaxilo: Optional[str]
    status_aih: int
    observacoes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class NextMovementResponse(BaseModel):
    """Schema for the legal next movement of an AIH."""

    proximo_tipo: str
    descricao: str
    explicacao: str
    ultima_movimentacao: Optional[str]


class LastProfessionalsResponse(BaseModel):
    """Schema for the professionals of the latest movement that has any."""

    success: bool = True
    movimentacao: Optional[Dict[str, Any]]
    message: Optional[str] = None


class GlosaCreate(BaseModel):
    """Schema for adding a glosa."""

    linha: Optional[str] = None
    tipo: Optional[str] = None
    profissional: Optional[str] = None
    quantidade: Optional[int] = None


class GlosaResponse(BaseModel):
    """Schema for a glosa row."""

    id: int
    aih_id: int
    linha: str
    tipo: str
    profissional: str
    quantidade: Optional[int]
    ativa: int
    criado_em: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class AIHDetailResponse(BaseModel):
    """Schema for an AIH with its attendances, movements and active glosas."""

    id: int
    numero_aih: str
    valor_inicial: float
    valor_atual: float
    status: int
    competencia: str
    criado_em: Optional[str]
    usuario_cadastro_id: Optional[int]
    atendimentos: List[str]
    movimentacoes: List[MovementResponse]
    glosas: List[GlosaResponse]

    model_config = ConfigDict(from_attributes=True)


class GlosaTypeCreate(BaseModel):
    """Schema for a new catalog glosa type."""

    descricao: str = Field(..., min_length=1)


class ProfessionalCreate(BaseModel):
    """Schema for a new catalog professional."""

    nome: str = Field(..., min_length=1)
    especialidade: str = Field(..., min_length=1)


class SearchFilters(BaseModel):
    """Search criteria. The in-processing filters override every other filter."""

    status: Optional[List[int]] = None
    competencia: Optional[str] = None
    data_inicio: Optional[str] = None
    data_fim: Optional[str] = None
    valor_min: Optional[float] = None
    valor_max: Optional[float] = None
    numero_aih: Optional[str] = None
    numero_atendimento: Optional[str] = None
    profissional: Optional[str] = None
    em_processamento_competencia: Optional[str] = None
    em_processamento_geral: bool = False


class SearchRequest(BaseModel):
    """Schema for the search endpoint."""

    filtros: SearchFilters = Field(default_factory=SearchFilters)


class DeleteMovementRequest(BaseModel):
    """Schema for hard-deleting one movement."""

    movimentacao_id: Optional[int] = None
    justificativa: Optional[str] = None


class DeleteAIHRequest(BaseModel):
    """Schema for hard-deleting an AIH and everything attached to it."""

    numero_aih: Optional[str] = None
    justificativa: Optional[str] = None


class ClearCacheRequest(BaseModel):
    pattern: Optional[str] = None
