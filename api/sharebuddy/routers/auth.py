"""Authentication endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import (
    check_user_can_authenticate,
    get_current_user,
    issue_tokens,
    revoke_refresh_token,
    verify_refresh_token,
)
from ..deps import get_db
from ..services.accounts import authenticate, hash_password, register_user, verify_password
from ..services.rate_limit import enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _token_response(user: models.User, db: Session) -> schemas.TokenResponse:
    tokens = issue_tokens(user, db)
    db.commit()
    db.refresh(user)
    return schemas.TokenResponse(**tokens, user=schemas.UserMe.model_validate(user))


@router.post("/register", response_model=schemas.TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: schemas.RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """
    Register a new account.

    The account starts with the signup bonus, recorded in the credit ledger.
    """
    enforce_rate_limit(request, "register", limit=10, window_seconds=3600)

    user = register_user(
        db,
        email=payload.email,
        username=payload.username,
        password=payload.password,
        full_name=payload.full_name,
        university=payload.university,
        major=payload.major,
    )
    return _token_response(user, db)


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    payload: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """Log in with e-mail or username."""
    enforce_rate_limit(request, "login", limit=20, window_seconds=300)

    user = authenticate(db, payload.login, payload.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    check_user_can_authenticate(user)
    logger.info(f"User {user.id} logged in")
    return _token_response(user, db)


@router.post("/refresh-token", response_model=schemas.TokenResponse)
def refresh_token(
    payload: schemas.RefreshRequest,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """
    Exchange a refresh token for a new token pair.

    The presented refresh token is revoked (rotation).
    """
    user = verify_refresh_token(payload.refresh_token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    check_user_can_authenticate(user)
    revoke_refresh_token(payload.refresh_token, db)
    return _token_response(user, db)


@router.post("/logout", response_model=schemas.Message)
def logout(
    payload: schemas.RefreshRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    """Revoke the given refresh token."""
    revoke_refresh_token(payload.refresh_token, db)
    db.commit()
    return schemas.Message(message="Logged out")


@router.get("/me", response_model=schemas.UserMe)
def get_me(current_user: models.User = Depends(get_current_user)) -> schemas.UserMe:
    return schemas.UserMe.model_validate(current_user)


@router.put("/update-profile", response_model=schemas.UserMe)
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserMe:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return schemas.UserMe.model_validate(current_user)


@router.put("/change-password", response_model=schemas.Message)
def change_password(
    payload: schemas.ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    """
    Change the password and revoke every outstanding refresh token.
    """
    if not verify_password(payload.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.password_hash = hash_password(payload.new_password)
    db.query(models.RefreshToken).filter(
        models.RefreshToken.user_id == current_user.id,
        models.RefreshToken.revoked == False,  # noqa: E712
    ).update({"revoked": True}, synchronize_session=False)
    db.commit()
    logger.info(f"User {current_user.id} changed password")
    return schemas.Message(message="Password changed")
