"""Credit ledger.

Every change to ``users.credits`` goes through :func:`apply_credit_change`,
which writes the balance and one ``credit_transactions`` row in the caller's
transaction. The sum of a user's ledger amounts always equals their balance.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..db import is_postgres
from ..errors import InsufficientCreditsError, NotFoundError

logger = logging.getLogger(__name__)

SIGNUP_BONUS = 10
UPLOAD_APPROVAL_BONUS = 5
ANSWER_ACCEPTED_REWARD = 2

TRANSACTION_TYPES = (
    "signup_bonus",
    "upload_bonus",
    "download",
    "earn",
    "purchase",
    "refund",
    "answer_reward",
    "admin_adjustment",
)


def _lock_user(db: Session, user_id: int) -> models.User:
    db.flush()
    # Reload the balance even when the user is already in the session
    query = db.query(models.User).filter(models.User.id == user_id).populate_existing()
    if is_postgres(db):
        query = query.with_for_update()
    user = query.first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def apply_credit_change(
    db: Session,
    user: models.User | int,
    amount: int,
    transaction_type: str,
    description: str,
    reference_id: str | None = None,
    related_document_id: int | None = None,
) -> models.CreditTransaction:
    """
    Move ``amount`` credits into (positive) or out of (negative) a user's balance.

    The user row is locked for the rest of the transaction on PostgreSQL.
    Nothing is committed here; the caller decides where the transaction ends.

    Args:
        db: Database session
        user: User (or user id) whose balance changes
        amount: Signed credit delta
        transaction_type: One of TRANSACTION_TYPES
        description: Human-readable ledger description
        reference_id: External reference (payment intent id, etc.)
        related_document_id: Document the movement is about, if any

    Returns:
        The flushed CreditTransaction row

    Raises:
        InsufficientCreditsError: If the balance would go below zero
        ValueError: On an unknown transaction type
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown credit transaction type: {transaction_type}")

    user_id = user if isinstance(user, int) else user.id
    locked = _lock_user(db, user_id)

    new_balance = locked.credits + amount
    if new_balance < 0:
        raise InsufficientCreditsError(required=-amount, available=locked.credits)

    locked.credits = new_balance
    entry = models.CreditTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        description=description,
        reference_id=reference_id,
        related_document_id=related_document_id,
        balance_after=new_balance,
    )
    db.add(entry)
    db.flush()

    logger.info(
        f"Credits {amount:+d} for user {user_id} ({transaction_type}), balance now {new_balance}"
    )
    return entry


def ledger_balance(db: Session, user_id: int) -> int:
    """Sum of all ledger entries for a user."""
    total = (
        db.query(func.coalesce(func.sum(models.CreditTransaction.amount), 0))
        .filter(models.CreditTransaction.user_id == user_id)
        .scalar()
    )
    return int(total or 0)


def credit_totals(db: Session, user_id: int) -> tuple[int, int]:
    """(total earned, total spent) over a user's ledger; spent is positive."""
    earned = (
        db.query(func.coalesce(func.sum(models.CreditTransaction.amount), 0))
        .filter(models.CreditTransaction.user_id == user_id, models.CreditTransaction.amount > 0)
        .scalar()
    )
    spent = (
        db.query(func.coalesce(func.sum(models.CreditTransaction.amount), 0))
        .filter(models.CreditTransaction.user_id == user_id, models.CreditTransaction.amount < 0)
        .scalar()
    )
    return int(earned or 0), -int(spent or 0)


def list_credit_history(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    transaction_type: str | None = None,
) -> tuple[list[models.CreditTransaction], int]:
    """Newest-first ledger entries for a user and the total count."""
    query = db.query(models.CreditTransaction).filter(models.CreditTransaction.user_id == user_id)
    if transaction_type:
        query = query.filter(models.CreditTransaction.transaction_type == transaction_type)

    total = query.count()
    items = (
        query.order_by(models.CreditTransaction.created_at.desc(), models.CreditTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
