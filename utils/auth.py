"""
Bearer-token authentication for admin endpoints (tokens are issued elsewhere)
"""

import os
from dataclasses import dataclass

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_session
from db.schema import Form, User
from utils.errors import AccessDeniedError, AuthenticationError

# JWT configuration
JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    name: str
    email: str
    role: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", code="TOKEN_INVALID")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
    session: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Resolve the bearer token to an active user row."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required", code="TOKEN_MISSING")

    payload = decode_token(credentials.credentials)
    user_id = payload.get("userId") or payload.get("sub")
    user = await session.get(User, str(user_id)) if user_id else None
    if user is None:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated", code="USER_DEACTIVATED")
    return CurrentUser(id=user.id, name=user.name, email=user.email, role=user.role)


def ensure_form_access(user: CurrentUser, form: Form, code: str = "FORM_ACCESS_DENIED") -> None:
    """Owners and super admins may manage a form and its submissions."""
    if user.is_super_admin or form.created_by == user.id:
        return
    raise AccessDeniedError("Access denied", code=code)
