"""Password hashing, JWT issuance and the FastAPI auth dependencies."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from common.config import get_settings
from common.enums import TokenType, UserKind
from common.errors import AuthError

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

# Missing credentials are reported as AuthError, not FastAPI's default
security = HTTPBearer(auto_error=False)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def check_password_strength(password: Optional[str]) -> None:
    """Reject passwords shorter than the minimum length."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", status_code=400)


def _encode(payload: dict, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(subject_id: int, nome: str, tipo: UserKind) -> str:
    """Session token for a user or an administrator."""
    return _encode(
        {"sub": str(subject_id), "nome": nome, "tipo": tipo.value, "type": TokenType.ACCESS.value},
        timedelta(hours=settings.access_token_expire_hours),
    )


def create_reauth_token(user_id: int) -> str:
    """Short-lived, single-use grant proving the user re-entered their password."""
    return _encode(
        {"sub": str(user_id), "tipo": UserKind.USER.value, "type": TokenType.REAUTH.value, "jti": uuid4().hex},
        timedelta(minutes=settings.reauth_token_expire_minutes),
    )


def decode_token(token: str) -> dict:
    """
    Decode and verify a token.

    Raises jwt.InvalidTokenError when the signature is wrong or it expired.
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


class TokenPayload:
    """Identity carried by a verified access token."""

    def __init__(self, payload: dict):
        self.id: int = int(payload["sub"])
        self.nome: str = payload.get("nome", "")
        self.tipo: UserKind = UserKind(payload.get("tipo", UserKind.USER.value))
        self.token_type: str = payload.get("type", TokenType.ACCESS.value)
        # Set by require_reauth; spent by the destructive action it authorizes
        self.reauth_grant: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.tipo == UserKind.ADMIN


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenPayload:
    """Decode the bearer token of the request."""
    if credentials is None:
        raise AuthError("Token not provided")

    try:
        payload = decode_token(credentials.credentials)
        token = TokenPayload(payload)
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise AuthError("Invalid token")

    if token.token_type != TokenType.ACCESS.value:
        raise AuthError("Invalid token type")
    return token


def require_user(current: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """Only regular users (auditors) may proceed."""
    if current.tipo != UserKind.USER:
        raise AuthError("Access denied - auditor account required", status_code=403)
    return current


def require_admin(current: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """Only administrators may proceed."""
    if not current.is_admin:
        raise AuthError("Access denied - administrators only", status_code=403)
    return current


def require_reauth(
    current: TokenPayload = Depends(require_user),
    reauth_token: Optional[str] = Header(None, alias="X-Reauth-Token"),
) -> TokenPayload:
    """
    Destructive actions need a fresh password re-validation grant for the same user.

    Each grant authorizes one action; the action records it as spent.
    """
    if not reauth_token:
        raise AuthError("Password confirmation required", status_code=403)

    try:
        payload = decode_token(reauth_token)
    except jwt.InvalidTokenError:
        raise AuthError("Password confirmation expired or invalid", status_code=403)

    if payload.get("type") != TokenType.REAUTH.value or payload.get("sub") != str(current.id):
        raise AuthError("Password confirmation does not match the current user", status_code=403)
    if not payload.get("jti"):
        raise AuthError("Password confirmation expired or invalid", status_code=403)

    current.reauth_grant = payload["jti"]
    return current
