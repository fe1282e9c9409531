"""FastAPI routes for logins, auditor accounts and password confirmation."""

from fastapi import APIRouter, Depends, status
from common.db import Database, get_db
from common.security import TokenPayload, require_admin, require_user
from services.auth import schemas, service

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/login")
async def login(credentials: schemas.LoginRequest, db: Database = Depends(get_db)):
    """Auditor login. Returns a 24h bearer token."""
    return await service.login(db, credentials.nome, credentials.senha)


@router.post("/admin/login")
async def admin_login(credentials: schemas.AdminLoginRequest, db: Database = Depends(get_db)):
    """Administrator login."""
    return await service.login_admin(db, credentials.usuario, credentials.senha)


@router.get("/admin/usuarios")
async def list_users(current: TokenPayload = Depends(require_admin), db: Database = Depends(get_db)):
    users = await service.list_users(db)
    return {"usuarios": [schemas.UserResponse.model_validate(user) for user in users]}


@router.post("/admin/usuarios", status_code=status.HTTP_201_CREATED)
async def create_user(
    user: schemas.UserCreate,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    """Create an auditor account."""
    created = await service.create_user(db, user.nome, user.matricula, user.senha)
    return {"success": True, "usuario": created}


@router.delete("/admin/usuarios/{usuario_id}")
async def delete_user(
    usuario_id: int,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    await service.delete_user(db, usuario_id)
    return {"success": True}


@router.post("/admin/alterar-senha")
async def change_admin_password(
    body: schemas.ChangePasswordRequest,
    current: TokenPayload = Depends(require_admin),
    db: Database = Depends(get_db),
):
    """Change the password of the calling administrator."""
    await service.change_admin_password(db, current.id, body.nova_senha)
    return {"success": True}


@router.post("/validar-senha")
async def confirm_password(
    body: schemas.PasswordCheckRequest,
    current: TokenPayload = Depends(require_user),
    db: Database = Depends(get_db),
):
    """Re-check the caller's password before a destructive action."""
    return await service.confirm_password(db, current.id, body.senha)
