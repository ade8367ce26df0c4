from __future__ import annotations

from datetime import datetime, timedelta, timezone

from argon2 import PasswordHasher
from jose import jwt, JWTError

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthenticationFailed
from app.db.session import get_db


_ph = PasswordHasher(
    time_cost=2,
    memory_cost=102400,  # ~100 MB
    parallelism=8,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    return _ph.hash(password)


def create_access_token(subject: str, extra: dict | None = None) -> str:
    payload = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
    }
    if extra:
        payload.update(extra)

    token = jwt.encode(
        payload,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return token


def decode_access_token(token: str) -> dict | None:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None


def user_id_from_token(token: str | None) -> int:
    """
    Resolve the user id carried by a bearer token.

    Used by the real-time handshake, which has no HTTP request to hang a
    dependency on. Raises AuthenticationFailed for a missing, expired or
    malformed token.
    """
    if not token:
        raise AuthenticationFailed("No token provided")

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        raise AuthenticationFailed("Authentication failed")

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationFailed("Authentication failed")


_security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_security),
    db: Session = Depends(get_db),
):
    """
    Dependency: Extract JWT token, verify it, and fetch User object from DB.
    Expects: Authorization: Bearer <token>
    Returns: User object
    Raises: HTTPException 401 if token invalid/expired/user not found
    """
    from app.models.user import User  # avoid circular imports

    try:
        user_id = user_id_from_token(credentials.credentials)
    except AuthenticationFailed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get(User, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user
