"""Pydantic schemas for login, account management and password confirmation."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class LoginRequest(BaseModel):
    nome: Optional[str] = None
    senha: Optional[str] = None


class AdminLoginRequest(BaseModel):
    usuario: Optional[str] = None
    senha: Optional[str] = None


class UserCreate(BaseModel):
    """Schema for an auditor account created by an administrator."""

    nome: Optional[str] = None
    matricula: Optional[str] = None
    senha: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    nome: str
    matricula: Optional[str] = None
    criado_em: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ChangePasswordRequest(BaseModel):
    nova_senha: Optional[str] = Field(None, alias="novaSenha")

    model_config = ConfigDict(populate_by_name=True)


class PasswordCheckRequest(BaseModel):
    senha: Optional[str] = None
