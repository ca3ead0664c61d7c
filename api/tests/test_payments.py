"""Credit purchases through Stripe (Stripe calls are faked)."""

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models, settings
from sharebuddy.seed import ensure_seed_data
from sharebuddy.services.credits import apply_credit_change, ledger_balance


@pytest.fixture()
def stripe_calls(monkeypatch: pytest.MonkeyPatch) -> dict:
    calls: dict = {"intents": [], "event": None, "intent_status": "succeeded"}

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test")

    def create_customer(**kwargs):
        return {"id": "cus_test"}

    def create_intent(**kwargs):
        calls["intents"].append(kwargs)
        return {"id": f"pi_{len(calls['intents'])}", "client_secret": "secret_abc"}

    def retrieve_intent(intent_id, **kwargs):
        return {"id": intent_id, "status": calls["intent_status"], "amount": 499, "currency": "usd"}

    def construct_event(payload, signature, secret):
        if signature != "good":
            raise stripe.SignatureVerificationError("bad signature", signature)
        return calls["event"]

    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.PaymentIntent, "create", create_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve_intent)
    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)
    return calls


@pytest.fixture()
def student_package(db: Session) -> models.CreditPackage:
    ensure_seed_data()
    return db.query(models.CreditPackage).filter(models.CreditPackage.name == "Student").one()


def _intent(client: TestClient, user: models.User, package: models.CreditPackage, currency: str = "usd") -> dict:
    response = client.post(
        "/api/payment/create-payment-intent",
        json={"package_id": package.id, "currency": currency},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    return response.json()


def _webhook(client: TestClient, stripe_calls: dict, event_type: str, obj: dict, signature: str = "good"):
    stripe_calls["event"] = {"type": event_type, "data": {"object": obj}}
    return client.post("/api/payment/webhook", content=b"{}", headers={"Stripe-Signature": signature})


def test_packages_seeded_once(client: TestClient, db: Session) -> None:
    ensure_seed_data()
    ensure_seed_data()
    body = client.get("/api/payment/packages").json()
    assert [p["name"] for p in body] == ["Starter", "Student", "Scholar", "Researcher"]
    assert body[1]["total_credits"] == 130


def test_create_payment_intent_records_pending(
    client: TestClient, db: Session, make_user, student_package, stripe_calls
) -> None:
    user = make_user()
    body = _intent(client, user, student_package)
    assert body == {
        "client_secret": "secret_abc",
        "payment_intent_id": "pi_1",
        "amount": 4.99,
        "currency": "usd",
        "credits": 130,
    }
    assert stripe_calls["intents"][0]["amount"] == 499
    assert stripe_calls["intents"][0]["currency"] == "usd"

    txn = db.query(models.PaymentTransaction).one()
    assert txn.payment_status == "pending"
    assert txn.credits_purchased == 130


def test_vnd_price_is_charged_in_usd(client: TestClient, make_user, student_package, stripe_calls) -> None:
    body = _intent(client, make_user(), student_package, currency="vnd")
    assert body["currency"] == "usd"
    assert body["amount"] == round(119000 / 23000, 2)
    assert stripe_calls["intents"][0]["amount"] == 517


def test_payments_not_configured(client: TestClient, monkeypatch, make_user, student_package) -> None:
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    response = client.post(
        "/api/payment/create-payment-intent",
        json={"package_id": student_package.id},
        headers=auth_headers(make_user()),
    )
    assert response.status_code == 502


def test_succeeded_webhook_credits_once(
    client: TestClient, db: Session, make_user, student_package, stripe_calls
) -> None:
    user = make_user()
    intent = _intent(client, user, student_package)
    obj = {"id": intent["payment_intent_id"], "payment_method_types": ["card"]}

    first = _webhook(client, stripe_calls, "payment_intent.succeeded", obj)
    assert first.json() == {"received": True, "handled": True, "applied": True}
    redelivered = _webhook(client, stripe_calls, "payment_intent.succeeded", obj)
    assert redelivered.json() == {"received": True, "handled": True, "applied": False}

    db.expire_all()
    assert db.get(models.User, user.id).credits == 130
    assert ledger_balance(db, user.id) == 130
    txn = db.query(models.PaymentTransaction).one()
    assert txn.payment_status == "succeeded"
    assert txn.payment_method == "card"


def test_failed_then_succeeded(client: TestClient, db: Session, make_user, student_package, stripe_calls) -> None:
    user = make_user()
    intent = _intent(client, user, student_package)
    obj = {"id": intent["payment_intent_id"], "last_payment_error": {"message": "Card declined"}}

    _webhook(client, stripe_calls, "payment_intent.payment_failed", obj)
    db.expire_all()
    txn = db.query(models.PaymentTransaction).one()
    assert txn.payment_status == "failed"
    assert txn.error_message == "Card declined"

    retried = _webhook(client, stripe_calls, "payment_intent.succeeded", {"id": intent["payment_intent_id"]})
    assert retried.json()["applied"] is True
    db.expire_all()
    assert db.get(models.User, user.id).credits == 130


def test_refund_is_clamped_to_balance(
    client: TestClient, db: Session, make_user, student_package, stripe_calls
) -> None:
    user = make_user()
    intent = _intent(client, user, student_package)
    _webhook(client, stripe_calls, "payment_intent.succeeded", {"id": intent["payment_intent_id"]})

    db.expire_all()
    apply_credit_change(db, user.id, -100, "download", "Spent most of it")
    db.commit()

    refund = {"payment_intent": intent["payment_intent_id"]}
    assert _webhook(client, stripe_calls, "charge.refunded", refund).json()["applied"] is True
    assert _webhook(client, stripe_calls, "charge.refunded", refund).json()["applied"] is False

    db.expire_all()
    assert db.get(models.User, user.id).credits == 0
    assert ledger_balance(db, user.id) == 0
    refund_entry = (
        db.query(models.CreditTransaction).filter(models.CreditTransaction.transaction_type == "refund").one()
    )
    assert refund_entry.amount == -30


def test_unknown_event_acknowledged(client: TestClient, stripe_calls) -> None:
    response = _webhook(client, stripe_calls, "customer.created", {"id": "cus_1"})
    assert response.status_code == 200
    assert response.json() == {"received": True, "handled": False}


def test_bad_or_missing_signature(client: TestClient, stripe_calls) -> None:
    assert _webhook(client, stripe_calls, "payment_intent.succeeded", {"id": "pi_x"}, signature="bad").status_code == 400
    missing = client.post("/api/payment/webhook", content=b"{}")
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing Stripe signature"


def test_verify_payment_credits_once(
    client: TestClient, db: Session, make_user, student_package, stripe_calls
) -> None:
    user = make_user()
    intent = _intent(client, user, student_package)

    for _ in range(2):
        response = client.get(f"/api/payment/verify/{intent['payment_intent_id']}", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["payment_status"] == "succeeded"

    db.expire_all()
    assert db.get(models.User, user.id).credits == 130

    stranger = client.get(f"/api/payment/verify/{intent['payment_intent_id']}", headers=auth_headers(make_user()))
    assert stranger.status_code == 404


def test_payment_history(client: TestClient, make_user, student_package, stripe_calls) -> None:
    user = make_user()
    _intent(client, user, student_package)
    _intent(client, user, student_package)

    body = client.get("/api/payment/history", headers=auth_headers(user)).json()
    assert body["total_items"] == 2
