from __future__ import annotations

import hashlib
import os
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models
from .deps import get_db

# Security scheme for Bearer token
oauth2_scheme = HTTPBearer(auto_error=False)

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    raise RuntimeError(
        "JWT_SECRET_KEY environment variable is required but not set. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
# Minimum key length (256 bits)
if len(JWT_SECRET_KEY) < 32:
    raise RuntimeError(
        "JWT_SECRET_KEY is too short. Must be at least 32 characters long. "
        "Note: This checks length, not entropy. Use cryptographically random values."
    )
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
JWT_REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("JWT_REFRESH_TOKEN_EXPIRE_DAYS", "30"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def check_user_can_authenticate(user: models.User) -> None:
    """
    Check if a user is allowed to authenticate.
    Raises HTTPException if the account is deactivated.

    Called during login, token refresh and every authenticated request.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account deactivated",
        )


def create_access_token(user_id: int, expires_in_seconds: int | None = None) -> str:
    """
    Create a JWT access token for a user.
    """
    if expires_in_seconds is None:
        expires_in_seconds = JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60

    now = _utcnow()
    payload = {
        "user_id": str(user_id),
        "exp": now + timedelta(seconds=expires_in_seconds),
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: int, db: Session, expires_in_days: int | None = None) -> str:
    """
    Create a refresh token for a user and store its hash.

    The row is flushed, not committed; the caller owns the transaction.

    Args:
        user_id: The user's id
        db: Database session
        expires_in_days: Token expiration in days
    """
    if expires_in_days is None:
        expires_in_days = JWT_REFRESH_TOKEN_EXPIRE_DAYS

    token = secrets.token_urlsafe(32)

    refresh_token = models.RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(token),
        expires_at=_utcnow() + timedelta(days=expires_in_days),
    )
    db.add(refresh_token)
    db.flush()

    return token


def verify_refresh_token(token: str, db: Session) -> models.User | None:
    """
    Verify a refresh token and return the associated user.
    """
    refresh_token = (
        db.query(models.RefreshToken)
        .filter(
            models.RefreshToken.token_hash == _hash_token(token),
            models.RefreshToken.expires_at > _utcnow(),
            models.RefreshToken.revoked == False,  # noqa: E712
        )
        .first()
    )

    if not refresh_token:
        return None

    return refresh_token.user


def revoke_refresh_token(token: str, db: Session) -> bool:
    """
    Revoke a refresh token. Flushes only.
    """
    refresh_token = (
        db.query(models.RefreshToken)
        .filter(models.RefreshToken.token_hash == _hash_token(token))
        .first()
    )

    if refresh_token and not refresh_token.revoked:
        refresh_token.revoked = True
        db.flush()
        return True

    return False


def issue_tokens(user: models.User, db: Session) -> dict:
    """Access + refresh token pair for a freshly authenticated user."""
    return {
        "access_token": create_access_token(user.id),
        "refresh_token": create_refresh_token(user.id, db),
        "token_type": "bearer",
        "expires_in": JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Get current authenticated user from Bearer token.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            JWT_SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    try:
        user_id = int(payload.get("user_id"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID in token",
        )

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    check_user_can_authenticate(user)
    return user


def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    """
    Get current user if authenticated, None otherwise.

    Used for endpoints that work differently for authenticated vs anonymous users.
    """
    if credentials is None:
        return None

    try:
        return get_current_user(credentials, db)
    except HTTPException:
        return None


def require_staff(user: models.User = Depends(get_current_user)) -> models.User:
    """
    Require that the current user has moderator or admin role.
    """
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Moderator or admin role required",
        )
    return user


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    """
    Require that the current user has admin role.
    """
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user


def check_ownership(resource_owner_id: int, current_user: models.User) -> bool:
    """
    True if the user owns the resource or is staff.
    """
    return resource_owner_id == current_user.id or current_user.is_staff


def require_ownership(resource_owner_id: int, current_user: models.User) -> None:
    """
    Require that the current user owns a resource or is staff.

    Raises 403 Forbidden if not authorized.
    """
    if not check_ownership(resource_owner_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You don't have permission to access this resource",
        )
