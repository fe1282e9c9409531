"""Unit tests for audited hard-deletes."""

import json

import pytest
from sqlalchemy import text

from common.enums import AIHStatus
from common.errors import AuthError, NotFoundError, QueryError, ValidationError
from services.aih import deletion, queries, service
from services.aih.state_machine import MovementStateMachine

ORIGIN = deletion.RequestOrigin(ip_origem="10.0.0.7", user_agent="pytest")
JUSTIFICATION = "Registered twice by mistake"


async def count(db, table):
    row = await db.fetch_one(f"SELECT COUNT(*) AS total FROM {table}")
    return row["total"]


async def aih_with_history(db, user, sample_aih_data, entry_movement, exit_movement):
    """AIH with 2 attendances, 2 movements and 1 active glosa."""
    aih_id = (await service.register_aih(db, sample_aih_data, user["id"]))["id"]
    await MovementStateMachine.validate_and_record(
        db, aih_id, {**entry_movement, "valor_conta": 800.0, "status_aih": 3}, user["id"]
    )
    await MovementStateMachine.validate_and_record(
        db, aih_id, {**exit_movement, "valor_conta": 700.0, "status_aih": 2}, user["id"]
    )
    await service.add_glosa(
        db, aih_id, {"linha": "10", "tipo": "Quantidade excedente", "profissional": "Dr. A"}, user["id"]
    )
    return aih_id


class TestDeleteAIH:
    """Test full AIH deletion."""

    @pytest.mark.asyncio
    async def test_removes_everything_and_logs_snapshot(
        self, db, user, sample_aih_data, entry_movement, exit_movement
    ):
        aih_id = await aih_with_history(db, user, sample_aih_data, entry_movement, exit_movement)

        result = await deletion.delete_aih(db, sample_aih_data["numero_aih"], JUSTIFICATION, user["id"], ORIGIN)

        assert result["aih_deletada"] == {
            "numero_aih": sample_aih_data["numero_aih"],
            "movimentacoes_removidas": 2,
            "glosas_removidas": 1,
            "atendimentos_removidos": 2,
        }
        params = {"aih_id": aih_id}
        assert await db.fetch_one(queries.SELECT_AIH_BY_ID, params) is None
        assert await db.fetch_all(queries.SELECT_ALL_MOVEMENTS, params) == []
        assert await db.fetch_all(queries.SELECT_ALL_GLOSAS, params) == []
        assert await db.fetch_all(queries.SELECT_ALL_ATTENDANCES, params) == []

        log = await db.fetch_one("SELECT * FROM logs_exclusao")
        assert log["tipo_exclusao"] == "aih_completa"
        assert log["usuario_id"] == user["id"]
        assert log["ip_origem"] == "10.0.0.7"
        snapshot = json.loads(log["dados_excluidos"])
        assert snapshot["aih"]["numero_aih"] == sample_aih_data["numero_aih"]
        assert snapshot["totais"] == {"movimentacoes": 2, "glosas": 1, "atendimentos": 2}

    @pytest.mark.asyncio
    async def test_short_justification_rejected(self, db, user, sample_aih_data):
        await service.register_aih(db, sample_aih_data, user["id"])
        with pytest.raises(ValidationError):
            await deletion.delete_aih(db, sample_aih_data["numero_aih"], "oops", user["id"], ORIGIN)
        assert await count(db, "aihs") == 1
        assert await count(db, "logs_exclusao") == 0

    @pytest.mark.asyncio
    async def test_unknown_aih(self, db, user):
        with pytest.raises(NotFoundError):
            await deletion.delete_aih(db, "0000000000000", JUSTIFICATION, user["id"], ORIGIN)
        assert await count(db, "logs_exclusao") == 0

    @pytest.mark.asyncio
    async def test_failed_delete_leaves_no_log(self, db, user, sample_aih_data, entry_movement, exit_movement):
        """A failure at the last delete rolls back the log and every earlier delete."""
        aih_id = await aih_with_history(db, user, sample_aih_data, entry_movement, exit_movement)
        with db.engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TRIGGER block_aih_delete BEFORE DELETE ON aihs "
                    "BEGIN SELECT RAISE(ABORT, 'blocked'); END"
                )
            )

        with pytest.raises(QueryError):
            await deletion.delete_aih(db, sample_aih_data["numero_aih"], JUSTIFICATION, user["id"], ORIGIN)

        params = {"aih_id": aih_id}
        assert await count(db, "logs_exclusao") == 0
        assert await db.fetch_one(queries.SELECT_AIH_BY_ID, params) is not None
        assert len(await db.fetch_all(queries.SELECT_ALL_MOVEMENTS, params)) == 2
        assert len(await db.fetch_all(queries.SELECT_ALL_GLOSAS, params)) == 1
        assert len(await db.fetch_all(queries.SELECT_ALL_ATTENDANCES, params)) == 2


class TestDeleteMovement:
    """Test single movement deletion."""

    @pytest.mark.asyncio
    async def test_rederives_aih_state(self, db, user, sample_aih_data, entry_movement, exit_movement):
        aih_id = await aih_with_history(db, user, sample_aih_data, entry_movement, exit_movement)
        movements = await db.fetch_all(queries.SELECT_MOVEMENTS, {"aih_id": aih_id})
        latest = movements[0]
        assert latest["tipo"] == "saida_hospital"

        result = await deletion.delete_movement(db, latest["id"], JUSTIFICATION, user["id"], ORIGIN)

        assert result["movimentacao_deletada"]["tipo"] == "saida_hospital"
        aih = await db.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
        assert aih["status"] == 3
        assert aih["valor_atual"] == 800.0

        log = await db.fetch_one("SELECT * FROM logs_exclusao")
        assert log["tipo_exclusao"] == "movimentacao"
        assert json.loads(log["dados_excluidos"])["id"] == latest["id"]

        next_movement = await MovementStateMachine.next_legal_type(db, aih_id)
        assert next_movement.tipo.value == "saida_hospital"

    @pytest.mark.asyncio
    async def test_last_movement_resets_to_registration_state(self, db, user, sample_aih_data, entry_movement):
        aih_id = (await service.register_aih(db, sample_aih_data, user["id"]))["id"]
        recorded = await MovementStateMachine.validate_and_record(
            db, aih_id, {**entry_movement, "valor_conta": 10.0, "status_aih": 1}, user["id"]
        )

        await deletion.delete_movement(db, recorded["id"], JUSTIFICATION, user["id"], ORIGIN)

        aih = await db.fetch_one(queries.SELECT_AIH_BY_ID, {"aih_id": aih_id})
        assert aih["status"] == AIHStatus.ACTIVE_IN_DISCUSSION
        assert aih["valor_atual"] == aih["valor_inicial"]

    @pytest.mark.asyncio
    async def test_unknown_movement(self, db, user):
        with pytest.raises(NotFoundError):
            await deletion.delete_movement(db, 999, JUSTIFICATION, user["id"], ORIGIN)
        assert await count(db, "logs_exclusao") == 0

    @pytest.mark.asyncio
    async def test_missing_id(self, db, user):
        with pytest.raises(ValidationError):
            await deletion.delete_movement(db, None, JUSTIFICATION, user["id"], ORIGIN)


class TestDeletionLogCounts:
    """The snapshot totals match the rows actually removed."""

    @pytest.mark.asyncio
    async def test_four_movements_two_glosas_one_attendance(
        self, db, user, sample_aih_data, entry_movement, exit_movement
    ):
        sample_aih_data["atendimentos"] = ["AT-1"]
        aih_id = (await service.register_aih(db, sample_aih_data, user["id"]))["id"]
        for movement in (entry_movement, exit_movement, entry_movement, exit_movement):
            await MovementStateMachine.validate_and_record(db, aih_id, movement, user["id"])
        for line in ("1", "2"):
            await service.add_glosa(db, aih_id, {"linha": line, "tipo": "x", "profissional": "y"}, user["id"])

        result = await deletion.delete_aih(db, sample_aih_data["numero_aih"], JUSTIFICATION, user["id"], ORIGIN)

        assert result["aih_deletada"]["movimentacoes_removidas"] == 4
        logs = await db.fetch_all("SELECT dados_excluidos FROM logs_exclusao")
        assert len(logs) == 1
        assert json.loads(logs[0]["dados_excluidos"])["totais"] == {
            "movimentacoes": 4,
            "glosas": 2,
            "atendimentos": 1,
        }


class TestConfirmationGrant:
    """A password confirmation authorizes exactly one successful delete."""

    @pytest.mark.asyncio
    async def test_grant_spent_by_first_delete(self, db, user, sample_aih_data, entry_movement, exit_movement):
        aih_id = (await service.register_aih(db, sample_aih_data, user["id"]))["id"]
        first = await MovementStateMachine.validate_and_record(db, aih_id, entry_movement, user["id"])
        second = await MovementStateMachine.validate_and_record(db, aih_id, exit_movement, user["id"])

        await deletion.delete_movement(db, second["id"], JUSTIFICATION, user["id"], ORIGIN, reauth_grant="grant-1")
        with pytest.raises(AuthError) as exc_info:
            await deletion.delete_movement(db, first["id"], JUSTIFICATION, user["id"], ORIGIN, reauth_grant="grant-1")

        assert exc_info.value.http_status == 403
        assert len(await db.fetch_all(queries.SELECT_ALL_MOVEMENTS, {"aih_id": aih_id})) == 1
        assert await count(db, "logs_exclusao") == 1

    @pytest.mark.asyncio
    async def test_failed_delete_leaves_grant_unspent(self, db, user, sample_aih_data):
        with pytest.raises(NotFoundError):
            await deletion.delete_aih(db, "0000000000000", JUSTIFICATION, user["id"], ORIGIN, reauth_grant="grant-2")
        assert await count(db, "confirmacoes_usadas") == 0

        await service.register_aih(db, sample_aih_data, user["id"])
        await deletion.delete_aih(
            db, sample_aih_data["numero_aih"], JUSTIFICATION, user["id"], ORIGIN, reauth_grant="grant-2"
        )
        assert await count(db, "confirmacoes_usadas") == 1
