"""User accounts: password hashing, registration and login."""

from __future__ import annotations

import logging

from passlib.context import CryptContext
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError
from .credits import SIGNUP_BONUS, apply_credit_change

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def register_user(
    db: Session,
    email: str,
    username: str,
    password: str,
    full_name: str | None = None,
    university: str | None = None,
    major: str | None = None,
) -> models.User:
    """
    Create an account and grant the signup bonus through the ledger.

    Flushes only.

    Raises:
        ConflictError: If the e-mail or username is taken
    """
    email = email.lower().strip()
    username = username.strip()

    if db.query(models.User.id).filter(models.User.email == email).first():
        raise ConflictError("Email is already registered")
    if db.query(models.User.id).filter(func.lower(models.User.username) == username.lower()).first():
        raise ConflictError("Username is already taken")

    user = models.User(
        email=email,
        username=username,
        password_hash=hash_password(password),
        full_name=full_name,
        university=university,
        major=major,
        role="user",
        credits=0,
    )
    db.add(user)
    db.flush()

    apply_credit_change(db, user, SIGNUP_BONUS, "signup_bonus", "Welcome bonus")

    logger.info(f"Registered user {user.id} ({username})")
    return user


def authenticate(db: Session, login: str, password: str) -> models.User | None:
    """User matching e-mail or username and password, else None."""
    login = login.strip()
    user = (
        db.query(models.User)
        .filter(
            or_(
                models.User.email == login.lower(),
                func.lower(models.User.username) == login.lower(),
            )
        )
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user
