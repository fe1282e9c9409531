"""Movement state machine: entry and exit movements must alternate."""

import logging
from typing import Any, Dict, NamedTuple, Optional

from common.db import Database
from common.enums import MovementType, ProfessionalField
from common.errors import ConflictError, NotFoundError, ValidationError
from services.aih import queries
from services.audit.access_log import log_action
from services.rules import validator

logger = logging.getLogger(__name__)


class NextMovement(NamedTuple):
    """The only legal next movement for an AIH, with a human explanation."""

    tipo: MovementType
    descricao: str
    explicacao: str
    ultima_movimentacao: Optional[str]


class MovementStateMachine:
    """
    Enforces the movement sequence for an AIH.

    No movement yet -> entry -> exit -> entry -> ... The first movement is
    always an entry; every later one is the opposite of the latest.
    """

    DESCRIPTIONS = {
        MovementType.ENTRY: "Entry into SUS audit",
        MovementType.EXIT: "Exit to hospital audit",
    }

    @classmethod
    def legal_next_type(cls, last_type: Optional[str]) -> MovementType:
        """Next legal type given the type of the latest movement (None when there is none)."""
        if last_type == MovementType.ENTRY.value:
            return MovementType.EXIT
        return MovementType.ENTRY

    @classmethod
    def describe(cls, last_type: Optional[str]) -> NextMovement:
        next_type = cls.legal_next_type(last_type)

        if last_type is None:
            explanation = "This is the first movement of the AIH. It must be recorded as an entry into SUS audit."
        elif next_type == MovementType.EXIT:
            explanation = "The latest movement was an entry into SUS audit. The next one must be an exit to hospital audit."
        else:
            explanation = "The latest movement was an exit to hospital audit. The next one must be an entry into SUS audit."

        return NextMovement(
            tipo=next_type,
            descricao=cls.DESCRIPTIONS[next_type],
            explicacao=explanation,
            ultima_movimentacao=last_type,
        )

    @classmethod
    async def next_legal_type(cls, db: Database, aih_id: int) -> NextMovement:
        aih = await db.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
        if not aih:
            raise NotFoundError("AIH not found")

        latest = await db.fetch_one(queries.SELECT_LATEST_MOVEMENT, {"aih_id": aih_id})
        return cls.describe(latest["tipo"] if latest else None)

    @classmethod
    async def last_professionals(cls, db: Database, aih_id: int) -> Optional[dict]:
        """Professionals of the latest movement that has any, for pre-filling. Read only."""
        latest = await db.fetch_one(queries.SELECT_LATEST_MOVEMENT_WITH_PROFESSIONALS, {"aih_id": aih_id})
        if not latest:
            return None

        projection = {field.value: latest[field.value] for field in ProfessionalField}
        projection["data_movimentacao"] = latest["data_movimentacao"]
        projection["tipo"] = latest["tipo"]
        return projection

    @classmethod
    async def validate_and_record(
        cls, db: Database, aih_id: int, data: Dict[str, Any], user_id: int
    ) -> dict:
        """
        Validate a movement and record it.

        The latest-movement read, the insert and the AIH update share one
        BEGIN IMMEDIATE transaction, so concurrent submissions are checked
        against each other's writes. Every violated rule is reported at
        once: a sequence violation alone raises ConflictError, anything
        else raises ValidationError. Nothing is written on rejection.
        """
        input_result = validator.validate_movement(data)
        professionals_result = validator.validate_professionals(data)
        errors = input_result.errors + professionals_result.errors

        requested = data.get("tipo")

        async with db.transaction() as tx:
            aih = await tx.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
            if not aih:
                raise NotFoundError("AIH not found")

            latest = await tx.fetch_one(queries.SELECT_LATEST_MOVEMENT, {"aih_id": aih_id})
            expected = cls.legal_next_type(latest["tipo"] if latest else None)

            sequence_error = None
            if requested in {t.value for t in MovementType} and requested != expected.value:
                sequence_error = f"Invalid movement type: expected {expected.value}, got {requested}"

            if errors:
                if sequence_error:
                    errors.append(sequence_error)
                logger.warning(f"Movement on AIH {aih['numero_aih']} rejected: {'; '.join(errors)}")
                raise ValidationError(errors)
            if sequence_error:
                logger.warning(f"Movement on AIH {aih['numero_aih']} out of sequence: {sequence_error}")
                raise ConflictError(sequence_error, expected=expected.value, received=requested)

            status_aih = int(str(data["status_aih"]).strip())
            valor_conta = None if validator.is_blank(data.get("valor_conta")) else float(data["valor_conta"])

            inserted = await tx.execute(
                queries.INSERT_MOVEMENT,
                {
                    "aih_id": aih_id,
                    "tipo": requested,
                    "usuario_id": user_id,
                    "valor_conta": valor_conta,
                    "competencia": _clean(data.get("competencia")),
                    **{field.value: _clean(data.get(field.value)) for field in ProfessionalField},
                    "status_aih": status_aih,
                    "observacoes": _clean(data.get("observacoes")),
                },
            )
            await tx.execute(
                queries.UPDATE_AIH_STATE,
                {"aih_id": aih_id, "status_aih": status_aih, "valor_conta": valor_conta},
            )
            await log_action(tx, user_id, f"Recorded {requested} on AIH {aih['numero_aih']}")
            updated = await tx.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})

        db.invalidate("movimentacoes")
        db.invalidate("aihs")
        logger.info(
            f"Movement {inserted.inserted_id} ({requested}) recorded on AIH {aih['numero_aih']}: "
            f"status {status_aih}, value {updated['valor_atual']}"
        )

        return {"success": True, "id": inserted.inserted_id, "aih": updated}


def _clean(value: Any) -> Optional[str]:
    """Trimmed text, or None for blanks."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
