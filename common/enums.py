"""Enumerations for AIH audit workflow states and types."""

from enum import Enum, IntEnum


# the two alternating hand-offs
class MovementType(str, Enum):
    """Movement (audit hand-off) types."""

    ENTRY = "entrada_sus"  # Entry into the payer (SUS) audit
    EXIT = "saida_hospital"  # Exit to the hospital (provider) audit

    @property
    def opposite(self) -> "MovementType":
        return MovementType.EXIT if self is MovementType.ENTRY else MovementType.ENTRY


class AIHStatus(IntEnum):
    """AIH status codes."""

    FINALIZED_DIRECT = 1  # Finalized, direct approval
    ACTIVE_INDIRECT = 2  # Active, indirect approval (waiting on hospital)
    ACTIVE_IN_DISCUSSION = 3  # Active, divergences under discussion
    FINALIZED_AFTER_DISCUSSION = 4  # Finalized after discussion

    @classmethod
    def finalized(cls):
        return (cls.FINALIZED_DIRECT, cls.FINALIZED_AFTER_DISCUSSION)

    @classmethod
    def pending(cls):
        return (cls.ACTIVE_INDIRECT, cls.ACTIVE_IN_DISCUSSION)


DEFAULT_AIH_STATUS = AIHStatus.ACTIVE_IN_DISCUSSION


class DeletionKind(str, Enum):
    """Kinds of audited hard-deletes."""

    MOVEMENT = "movimentacao"
    FULL_AIH = "aih_completa"


class UserKind(str, Enum):
    """Token subject kinds."""

    USER = "usuario"
    ADMIN = "admin"


class TokenType(str, Enum):
    """JWT purposes."""

    ACCESS = "access"
    REAUTH = "reauth"  # Password re-validation grant for destructive actions


# professional fields on a movement, one per discipline
class ProfessionalField(str, Enum):
    """Movement professional columns."""

    MEDICINE = "prof_medicina"
    NURSING = "prof_enfermagem"
    PHYSIOTHERAPY = "prof_fisioterapia"
    MAXILLOFACIAL = "prof_bucomaxilo"
