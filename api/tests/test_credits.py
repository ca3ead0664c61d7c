"""Credit ledger."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.db import SessionLocal
from sharebuddy.errors import InsufficientCreditsError
from sharebuddy.services import credits
from sharebuddy.services.credits import apply_credit_change, credit_totals, ledger_balance


def test_apply_credit_change_writes_balance_and_ledger(db: Session, make_user) -> None:
    user = make_user()
    apply_credit_change(db, user, 20, "purchase", "Bought credits", reference_id="pi_1")
    entry = apply_credit_change(db, user.id, -5, "download", "Downloaded something")
    db.commit()
    db.refresh(user)

    assert user.credits == 15
    assert entry.balance_after == 15
    assert ledger_balance(db, user.id) == user.credits
    assert credit_totals(db, user.id) == (20, 5)


def test_overdraft_raises_and_changes_nothing(db: Session, make_user) -> None:
    user = make_user(credits=0)
    apply_credit_change(db, user, 3, "admin_adjustment", "Seed")
    db.commit()

    with pytest.raises(InsufficientCreditsError) as excinfo:
        apply_credit_change(db, user, -10, "download", "Too expensive")
    db.rollback()

    assert excinfo.value.required == 10
    assert excinfo.value.available == 3
    db.refresh(user)
    assert user.credits == 3
    assert db.query(models.CreditTransaction).filter(models.CreditTransaction.user_id == user.id).count() == 1


def test_unknown_transaction_type(db: Session, make_user) -> None:
    user = make_user()
    with pytest.raises(ValueError):
        apply_credit_change(db, user, 1, "gift", "Not a ledger type")


def test_credit_endpoints(client: TestClient, db: Session, make_user) -> None:
    user = make_user()
    apply_credit_change(db, user, 12, "purchase", "Bought credits")
    apply_credit_change(db, user, -2, "download", "Downloaded notes")
    db.commit()

    balance = client.get("/api/users/credits", headers=auth_headers(user))
    assert balance.status_code == 200
    assert balance.json() == {"credits": 10, "total_earned": 12, "total_spent": 2}

    history = client.get("/api/users/credit-history", headers=auth_headers(user))
    assert history.status_code == 200
    body = history.json()
    assert body["total_items"] == 2
    assert {item["transaction_type"] for item in body["items"]} == {"purchase", "download"}


@pytest.mark.parametrize("row_locking", [False, True])
def test_balance_reloaded_before_debit(db: Session, make_user, monkeypatch, row_locking: bool) -> None:
    monkeypatch.setattr(credits, "is_postgres", lambda session: row_locking)
    user = make_user(credits=0)
    apply_credit_change(db, user, 10, "signup_bonus", "Welcome")
    db.commit()
    assert user.credits == 10

    other = SessionLocal()
    try:
        apply_credit_change(other, user.id, -10, "download", "Spent elsewhere")
        other.commit()
    finally:
        other.close()

    with pytest.raises(InsufficientCreditsError) as excinfo:
        apply_credit_change(db, user, -10, "download", "Spent twice")
    db.rollback()

    assert excinfo.value.available == 0
    db.refresh(user)
    assert user.credits == 0
    assert ledger_balance(db, user.id) == 0
