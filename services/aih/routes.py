"""FastAPI routes for AIHs, movements, glosas and the catalogs."""

from fastapi import APIRouter, Depends, Request, status
from common.db import Database, get_db
from common.security import TokenPayload, get_current_user, require_admin, require_reauth, require_user
from services.aih import deletion, schemas, service
from services.aih.state_machine import MovementStateMachine

router = APIRouter(prefix="/api", tags=["aih"])


# register an AIH with its attendances
@router.post("/aih", response_model=schemas.AIHCreatedResponse)
async def create_aih(
    aih: schemas.AIHCreate,
    current: TokenPayload = Depends(require_user),
    db: Database = Depends(get_db),
):
    """Register a new AIH in the default 'active, in discussion' status."""
    return await service.register_aih(db, aih.model_dump(), current.id)


@router.get("/aih/{numero_aih}", response_model=schemas.AIHDetailResponse)
async def get_aih(
    numero_aih: str,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Get an AIH by number with attendances, movements and active glosas."""
    return await service.get_aih_detail(db, numero_aih)


@router.get("/aih/{aih_id}/proxima-movimentacao", response_model=schemas.NextMovementResponse)
async def get_next_movement(
    aih_id: int,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Get the only movement type that may be recorded next."""
    next_movement = await MovementStateMachine.next_legal_type(db, aih_id)
    return {
        "proximo_tipo": next_movement.tipo.value,
        "descricao": next_movement.descricao,
        "explicacao": next_movement.explicacao,
        "ultima_movimentacao": next_movement.ultima_movimentacao,
    }


@router.get("/aih/{aih_id}/ultima-movimentacao", response_model=schemas.LastProfessionalsResponse)
async def get_last_professionals(
    aih_id: int,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Get the professionals of the latest movement that has any."""
    latest = await MovementStateMachine.last_professionals(db, aih_id)
    if latest is None:
        return {"success": True, "movimentacao": None, "message": "No previous movement with professionals"}
    return {"success": True, "movimentacao": latest}


# record a movement
@router.post("/aih/{aih_id}/movimentacao")
async def create_movement(
    aih_id: int,
    movement: schemas.MovementCreate,
    current: TokenPayload = Depends(require_user),
    db: Database = Depends(get_db),
):
    """Record a movement; it must be the opposite of the latest one."""
    return await MovementStateMachine.validate_and_record(db, aih_id, movement.model_dump(), current.id)


# glosas
@router.get("/aih/{aih_id}/glosas")
async def list_glosas(
    aih_id: int,
    current: TokenPayload = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """List the active glosas of an AIH."""
    return {"glosas": await service.list_active_glosas(db, aih_id)}


@router.post("/aih/{aih_id}/glosas")
async def create_glosa(
    aih_id: int,
    glosa: schemas.GlosaCreate,
    current: TokenPayload = Depends(require_user),
    db: Database = Depends(get_db),
):
    """Add an active glosa to an AIH."""
    glosa_id = await service.add_glosa(db, aih_id, glosa.model_dump(), current.id)
    return {"success": True, "id": glosa_id}


@router.delete("/glosas/{glosa_id}")
async def remove_glosa(
    glosa_id: int,
    current: TokenPayload = Depends(require_user),
    db: Database = Depends(get_db),
):
    """Deactivate a glosa. The row is kept."""
    await service.deactivate_glosa(db, glosa_id, current.id)
    return {"success": True}


# catalogs
@router.get("/tipos-glosa")
async def list_glosa_types(current: TokenPayload = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"tipos": await service.list_glosa_types(db)}


@router.post("/tipos-glosa", status_code=status.HTTP_201_CREATED)
async def create_glosa_type(
    tipo: schemas.GlosaTypeCreate,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return {"success": True, "id": await service.add_glosa_type(db, tipo.descricao)}


@router.delete("/tipos-glosa/{tipo_id}")
async def remove_glosa_type(
    tipo_id: int,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    await service.delete_glosa_type(db, tipo_id)
    return {"success": True}


@router.get("/profissionais")
async def list_professionals(current: TokenPayload = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"profissionais": await service.list_professionals(db)}


@router.post("/profissionais", status_code=status.HTTP_201_CREATED)
async def create_professional(
    professional: schemas.ProfessionalCreate,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    professional_id = await service.add_professional(db, professional.nome, professional.especialidade)
    return {"success": True, "id": professional_id}


@router.delete("/profissionais/{profissional_id}")
async def remove_professional(
    profissional_id: int,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    await service.delete_professional(db, profissional_id)
    return {"success": True}


def _origin(request: Request) -> deletion.RequestOrigin:
    return deletion.RequestOrigin(
        ip_origem=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# audited hard-deletes, gated by a fresh password confirmation
@router.delete("/admin/deletar-movimentacao")
async def delete_movement(
    body: schemas.DeleteMovementRequest,
    request: Request,
    current: TokenPayload = Depends(require_reauth),
    db: Database = Depends(get_db),
):
    """Hard-delete one movement and re-derive the AIH state."""
    return await deletion.delete_movement(
        db, body.movimentacao_id, body.justificativa, current.id, _origin(request), reauth_grant=current.reauth_grant
    )


@router.delete("/admin/deletar-aih")
async def delete_aih(
    body: schemas.DeleteAIHRequest,
    request: Request,
    current: TokenPayload = Depends(require_reauth),
    db: Database = Depends(get_db),
):
    """Hard-delete an AIH with all its movements, glosas and attendances."""
    return await deletion.delete_aih(
        db, body.numero_aih, body.justificativa, current.id, _origin(request), reauth_grant=current.reauth_grant
    )
