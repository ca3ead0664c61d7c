"""Test authentication functionality."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import PASSWORD, auth_headers
from sharebuddy import models
from sharebuddy.auth import create_access_token, create_refresh_token
from sharebuddy.services.credits import SIGNUP_BONUS, ledger_balance


def _register(client: TestClient, **overrides) -> dict:
    payload = {
        "email": "Alice@Example.com",
        "username": "alice",
        "password": "s3cret-password",
        "full_name": "Alice Nguyen",
        "university": "HCMUS",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_grants_signup_bonus_through_ledger(client: TestClient, db: Session) -> None:
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["credits"] == SIGNUP_BONUS

    user = db.query(models.User).filter(models.User.username == "alice").one()
    entries = db.query(models.CreditTransaction).filter(models.CreditTransaction.user_id == user.id).all()
    assert [(e.transaction_type, e.amount, e.balance_after) for e in entries] == [
        ("signup_bonus", SIGNUP_BONUS, SIGNUP_BONUS)
    ]
    assert ledger_balance(db, user.id) == user.credits


def test_register_duplicate_email_conflicts(client: TestClient) -> None:
    assert _register(client).status_code == 201
    response = _register(client, username="alice2", email="alice@example.com")
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Email is already registered"}


def test_register_duplicate_username_is_case_insensitive(client: TestClient) -> None:
    assert _register(client).status_code == 201
    response = _register(client, username="ALICE", email="other@example.com")
    assert response.status_code == 409


def test_register_validation_error_envelope(client: TestClient) -> None:
    response = _register(client, email="not-an-email", password="short")
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request data"
    fields = {d["field"] for d in body["details"]}
    assert "body.email" in fields
    assert "body.password" in fields


def test_login_with_username_or_email(client: TestClient, make_user) -> None:
    make_user("bob")
    by_name = client.post("/api/auth/login", json={"login": "bob", "password": PASSWORD})
    assert by_name.status_code == 200
    by_email = client.post("/api/auth/login", json={"login": "bob@example.com", "password": PASSWORD})
    assert by_email.status_code == 200
    assert by_email.json()["user"]["username"] == "bob"


def test_login_wrong_password(client: TestClient, make_user) -> None:
    make_user("bob")
    response = client.post("/api/auth/login", json={"login": "bob", "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid credentials"


def test_login_deactivated_account(client: TestClient, make_user) -> None:
    make_user("bob", is_active=False)
    response = client.post("/api/auth/login", json={"login": "bob", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["error"] == "Account deactivated"


def test_create_access_token(make_user) -> None:
    """Test JWT access token creation."""
    user = make_user()
    token = create_access_token(user.id)
    assert isinstance(token, str)
    assert len(token) > 0


def test_refresh_token_rotation(client: TestClient, db: Session, make_user) -> None:
    user = make_user()
    token = create_refresh_token(user.id, db)
    db.commit()

    first = client.post("/api/auth/refresh-token", json={"refresh_token": token})
    assert first.status_code == 200
    assert first.json()["refresh_token"] != token

    # The presented token was revoked
    again = client.post("/api/auth/refresh-token", json={"refresh_token": token})
    assert again.status_code == 401


def test_me_requires_token(client: TestClient, make_user) -> None:
    assert client.get("/api/auth/me").status_code == 401

    user = make_user("carol")
    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["username"] == "carol"


def test_invalid_token_rejected(client: TestClient) -> None:
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid token"


def test_update_profile(client: TestClient, make_user) -> None:
    user = make_user()
    response = client.put(
        "/api/auth/update-profile",
        json={"bio": "Math major", "university": "HCMUT"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["bio"] == "Math major"
    assert response.json()["university"] == "HCMUT"


def test_change_password_revokes_refresh_tokens(client: TestClient, db: Session, make_user) -> None:
    user = make_user()
    token = create_refresh_token(user.id, db)
    db.commit()

    wrong = client.put(
        "/api/auth/change-password",
        json={"current_password": "nope", "new_password": "brand-new-password"},
        headers=auth_headers(user),
    )
    assert wrong.status_code == 400

    response = client.put(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "brand-new-password"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200

    assert client.post("/api/auth/refresh-token", json={"refresh_token": token}).status_code == 401
    login = client.post("/api/auth/login", json={"login": user.username, "password": "brand-new-password"})
    assert login.status_code == 200
