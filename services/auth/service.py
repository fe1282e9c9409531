"""Logins, auditor accounts, the admin password and password re-validation."""

import asyncio
import logging
from typing import List, Optional

from common.db import Database
from common.enums import UserKind
from common.errors import AuthError, ConflictError, NotFoundError, QueryError, ValidationError
from common.security import (
    check_password_strength,
    create_access_token,
    create_reauth_token,
    hash_password,
    verify_password,
)
from services.audit.access_log import log_action

logger = logging.getLogger(__name__)

SELECT_USER_BY_NAME = "SELECT * FROM usuarios WHERE nome = :nome"
SELECT_USER_HASH = "SELECT senha_hash FROM usuarios WHERE id = :usuario_id"
SELECT_USER_CONFLICT = """
    SELECT id FROM usuarios
    WHERE nome = :nome OR (:matricula IS NOT NULL AND matricula = :matricula)
"""
SELECT_USERS = "SELECT id, nome, matricula, criado_em FROM usuarios ORDER BY nome"
INSERT_USER = "INSERT INTO usuarios (nome, matricula, senha_hash) VALUES (:nome, :matricula, :senha_hash)"
DELETE_USER = "DELETE FROM usuarios WHERE id = :usuario_id"
SELECT_ADMIN_BY_NAME = "SELECT * FROM administradores WHERE usuario = :usuario"
UPDATE_ADMIN_PASSWORD = """
    UPDATE administradores SET senha_hash = :senha_hash, ultima_alteracao = CURRENT_TIMESTAMP
    WHERE id = :admin_id
"""

# Same message for unknown name and wrong password
INVALID_CREDENTIALS = "Invalid credentials"


async def _verify(password: str, hashed: str) -> bool:
    # bcrypt is CPU bound; keep it off the event loop
    return await asyncio.to_thread(verify_password, password, hashed)


def _require(**fields: Optional[str]) -> None:
    missing = [f"{name} is required" for name, value in fields.items() if not value]
    if missing:
        raise ValidationError(missing)


async def login(db: Database, nome: Optional[str], senha: Optional[str]) -> dict:
    """Authenticate an auditor and record the login."""
    _require(nome=nome, senha=senha)

    user = await db.fetch_one(SELECT_USER_BY_NAME, {"nome": nome})
    if not user or not await _verify(senha, user["senha_hash"]):
        logger.warning(f"Failed login for {nome}")
        raise AuthError(INVALID_CREDENTIALS)

    await log_action(db, user["id"], "Login")
    logger.info(f"User {user['nome']} logged in")

    return {
        "token": create_access_token(user["id"], user["nome"], UserKind.USER),
        "usuario": {"id": user["id"], "nome": user["nome"]},
    }


async def login_admin(db: Database, usuario: Optional[str], senha: Optional[str]) -> dict:
    _require(usuario=usuario, senha=senha)

    admin = await db.fetch_one(SELECT_ADMIN_BY_NAME, {"usuario": usuario})
    if not admin or not await _verify(senha, admin["senha_hash"]):
        logger.warning(f"Failed admin login for {usuario}")
        raise AuthError(INVALID_CREDENTIALS)

    logger.info(f"Administrator {admin['usuario']} logged in")
    return {
        "token": create_access_token(admin["id"], admin["usuario"], UserKind.ADMIN),
        "admin": {"id": admin["id"], "usuario": admin["usuario"]},
    }


async def list_users(db: Database) -> List[dict]:
    return await db.fetch_all(SELECT_USERS)


async def create_user(db: Database, nome: Optional[str], matricula: Optional[str], senha: Optional[str]) -> dict:
    """Create an auditor account. Name and registration number are unique."""
    _require(nome=nome, senha=senha)
    check_password_strength(senha)
    nome = nome.strip()
    matricula = matricula.strip() if matricula and matricula.strip() else None

    existing = await db.fetch_one(SELECT_USER_CONFLICT, {"nome": nome, "matricula": matricula})
    if existing:
        raise ConflictError("User or registration number already exists")

    senha_hash = await asyncio.to_thread(hash_password, senha)
    try:
        result = await db.execute(INSERT_USER, {"nome": nome, "matricula": matricula, "senha_hash": senha_hash})
    except QueryError as e:
        if e.is_constraint_violation:
            raise ConflictError("User or registration number already exists") from e
        raise

    logger.info(f"User {nome} created (id {result.inserted_id})")
    return {"id": result.inserted_id, "nome": nome, "matricula": matricula}


async def delete_user(db: Database, usuario_id: int) -> None:
    """
    Delete an auditor account.

    Accounts referenced by AIHs, movements or logs cannot be deleted.
    """
    try:
        result = await db.execute(DELETE_USER, {"usuario_id": usuario_id})
    except QueryError as e:
        if e.is_constraint_violation:
            raise ConflictError("User has recorded activity and cannot be deleted") from e
        raise

    if result.rows_affected == 0:
        raise NotFoundError("User not found")
    logger.info(f"User {usuario_id} deleted")


async def change_admin_password(db: Database, admin_id: int, nova_senha: Optional[str]) -> None:
    check_password_strength(nova_senha)
    senha_hash = await asyncio.to_thread(hash_password, nova_senha)

    result = await db.execute(UPDATE_ADMIN_PASSWORD, {"senha_hash": senha_hash, "admin_id": admin_id})
    if result.rows_affected == 0:
        raise NotFoundError("Administrator not found")
    logger.info(f"Administrator {admin_id} changed their password")


async def confirm_password(db: Database, usuario_id: int, senha: Optional[str]) -> dict:
    """
    Re-check the caller's password.

    On success returns a short-lived grant that destructive endpoints require
    in the X-Reauth-Token header.
    """
    _require(senha=senha)

    user = await db.fetch_one(SELECT_USER_HASH, {"usuario_id": usuario_id})
    if not user:
        raise NotFoundError("User not found")
    if not await _verify(senha, user["senha_hash"]):
        logger.warning(f"Password confirmation failed for user {usuario_id}")
        raise AuthError("Incorrect password")

    return {"success": True, "reauth_token": create_reauth_token(usuario_id)}
