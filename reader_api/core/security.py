"""Auth helpers for FastAPI endpoints.

Tokens are issued elsewhere (login is not part of this service). We only
verify them against the shared secret.

Provides:
- `CurrentUser` for the JWT subject ({userId, role, username})
- `verify_token` to decode/validate a bearer token
- `get_current_user` FastAPI dependency using HTTP Bearer auth
- `require_roles(*roles)` dependency factory
- `create_access_token` for tests and local tooling
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reader_api.core.config import Settings
from reader_api.core.errors import AuthenticationError, AuthorizationError
from reader_api.db.session import get_db
from reader_api.models.user import ROLES, STAFF_ROLES, User

security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    user_id: int
    role: str
    username: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def create_access_token(settings: Settings, user_id: int, role: str, username: str, expires_minutes: int | None = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "role": role,
        "username": username,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(settings: Settings, token: str) -> CurrentUser:
    """Decode and validate a bearer token. Raises AuthenticationError (401) on any failure."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid or expired token")

    try:
        return CurrentUser(
            user_id=int(payload.get("userId")),
            role=str(payload.get("role") or ""),
            username=str(payload.get("username") or ""),
        )
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """
    401 when the header is missing, the token is bad, or its user no longer
    exists; 403 when the role is not one of admin/teacher/student.
    """
    if not creds or not creds.credentials:
        raise AuthenticationError("Authentication required")

    user = verify_token(request.app.state.settings, creds.credentials)
    if user.role not in ROLES:
        raise AuthorizationError()
    if db.get(User, user.user_id) is None:
        raise AuthenticationError("User not found")
    return user


def require_roles(*allowed: str) -> Callable[..., CurrentUser]:
    """Dependency that lets through users whose role is any of `allowed`."""

    def wrapper(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise AuthorizationError("Insufficient role")
        return user

    return wrapper
