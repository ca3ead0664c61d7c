"""Credit purchases through Stripe.

Payment intents are mirrored in ``payment_transactions``. Webhook
transitions are conditional updates on that row, so a redelivered event
never credits or debits twice.
"""

from __future__ import annotations

import logging
from typing import Any

import stripe
from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models, settings
from ..errors import NotFoundError, PaymentProviderError, ValidationFailedError
from .credits import apply_credit_change
from .notifications import create_notification

logger = logging.getLogger(__name__)

# States a payment can still be credited from
CREDITABLE_STATES = ("pending", "processing", "requires_payment_method", "requires_action", "failed")


def _stripe_key() -> str:
    if not settings.STRIPE_SECRET_KEY:
        raise PaymentProviderError("Payments are not configured")
    return settings.STRIPE_SECRET_KEY


def _field(obj: Any, name: str, default: Any = None) -> Any:
    try:
        value = obj[name]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def list_packages(db: Session) -> list[models.CreditPackage]:
    return (
        db.query(models.CreditPackage)
        .filter(models.CreditPackage.is_active == True)  # noqa: E712
        .order_by(models.CreditPackage.display_order, models.CreditPackage.id)
        .all()
    )


def package_amount_usd(package: models.CreditPackage, currency: str) -> float:
    """Charge amount in USD; VND prices are converted at VND_PER_USD."""
    if currency == "vnd":
        return round(package.price_vnd / settings.VND_PER_USD, 2)
    return round(float(package.price_usd), 2)


def _customer_id(db: Session, user: models.User) -> str:
    existing = (
        db.query(models.PaymentTransaction.stripe_customer_id)
        .filter(
            models.PaymentTransaction.user_id == user.id,
            models.PaymentTransaction.stripe_customer_id.isnot(None),
        )
        .first()
    )
    if existing:
        return existing[0]

    customer = stripe.Customer.create(
        api_key=_stripe_key(),
        email=user.email,
        metadata={"user_id": str(user.id), "username": user.username},
    )
    return customer["id"]


def create_payment_intent(
    db: Session, user: models.User, package_id: int, currency: str = "usd"
) -> dict:
    """
    Create a Stripe payment intent for a credit package and record it as pending.

    Raises:
        NotFoundError: If the package does not exist or is inactive
        PaymentProviderError: If Stripe rejects the request
    """
    package = (
        db.query(models.CreditPackage)
        .filter(models.CreditPackage.id == package_id, models.CreditPackage.is_active == True)  # noqa: E712
        .first()
    )
    if package is None:
        raise NotFoundError("Credit package not found")

    amount = package_amount_usd(package, currency)
    if amount <= 0:
        raise ValidationFailedError("Invalid package price")
    total_credits = package.total_credits

    try:
        customer_id = _customer_id(db, user)
        intent = stripe.PaymentIntent.create(
            api_key=_stripe_key(),
            amount=int(round(amount * 100)),
            currency="usd",
            customer=customer_id,
            metadata={
                "user_id": str(user.id),
                "package_id": str(package.id),
                "credits": str(total_credits),
            },
            description=f"Purchase {total_credits} credits for ShareBuddy",
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe payment intent creation failed for user {user.id}: {e}")
        raise PaymentProviderError("Payment provider error")

    db.add(
        models.PaymentTransaction(
            user_id=user.id,
            package_id=package.id,
            stripe_payment_intent_id=intent["id"],
            stripe_customer_id=customer_id,
            amount=amount,
            currency="usd",
            credits_purchased=total_credits,
            payment_status="pending",
        )
    )
    db.flush()
    logger.info(f"Payment intent {intent['id']} created for user {user.id} ({total_credits} credits)")

    return {
        "client_secret": _field(intent, "client_secret"),
        "payment_intent_id": intent["id"],
        "amount": amount,
        "currency": "usd",
        "credits": total_credits,
    }


# ============================================================================
# TRANSITIONS
# ============================================================================


def _transaction(db: Session, payment_intent_id: str) -> models.PaymentTransaction | None:
    return (
        db.query(models.PaymentTransaction)
        .filter(models.PaymentTransaction.stripe_payment_intent_id == payment_intent_id)
        .first()
    )


def mark_succeeded(db: Session, payment_intent_id: str, payment_method: str | None = None) -> bool:
    """
    Credit a succeeded payment. Returns False when it was already credited.
    Flushes only.
    """
    P = models.PaymentTransaction
    result = db.execute(
        update(P)
        .where(P.stripe_payment_intent_id == payment_intent_id, P.payment_status.in_(CREDITABLE_STATES))
        .values(payment_status="succeeded", payment_method=payment_method, error_message=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(f"Payment {payment_intent_id} already processed or unknown; not crediting")
        return False

    txn = _transaction(db, payment_intent_id)
    db.refresh(txn)
    apply_credit_change(
        db,
        txn.user_id,
        txn.credits_purchased,
        "purchase",
        f"Purchased {txn.credits_purchased} credits via Stripe",
        reference_id=payment_intent_id,
    )
    create_notification(
        db,
        user_id=txn.user_id,
        notification_type="payment_succeeded",
        title="Payment successful",
        content=f"You have successfully purchased {txn.credits_purchased} credits!",
    )
    logger.info(f"Payment {payment_intent_id} succeeded: {txn.credits_purchased} credits to user {txn.user_id}")
    return True


def mark_failed(db: Session, payment_intent_id: str, error_message: str | None) -> bool:
    P = models.PaymentTransaction
    result = db.execute(
        update(P)
        .where(P.stripe_payment_intent_id == payment_intent_id, P.payment_status.in_(("pending", "processing")))
        .values(payment_status="failed", error_message=(error_message or "Payment failed")[:2000])
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    txn = _transaction(db, payment_intent_id)
    db.refresh(txn)
    create_notification(
        db,
        user_id=txn.user_id,
        notification_type="payment_failed",
        title="Payment failed",
        content="Your payment could not be processed. Please try again.",
    )
    logger.info(f"Payment {payment_intent_id} failed: {error_message}")
    return True


def mark_refunded(db: Session, payment_intent_id: str) -> bool:
    """
    Reverse a succeeded purchase. The debit is clamped to the user's balance.
    Returns False when the payment was not in the succeeded state.
    """
    P = models.PaymentTransaction
    result = db.execute(
        update(P)
        .where(P.stripe_payment_intent_id == payment_intent_id, P.payment_status == "succeeded")
        .values(payment_status="refunded")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(f"Refund for {payment_intent_id} ignored: payment not in succeeded state")
        return False

    txn = _transaction(db, payment_intent_id)
    db.refresh(txn)
    user = db.get(models.User, txn.user_id)
    db.refresh(user)
    debit = min(txn.credits_purchased, user.credits)
    if debit > 0:
        apply_credit_change(
            db,
            user,
            -debit,
            "refund",
            f"Refund: {debit} credits deducted",
            reference_id=payment_intent_id,
        )
    logger.info(f"Payment {payment_intent_id} refunded: {debit} credits deducted from user {user.id}")
    return True


def construct_event(payload: bytes, signature: str | None) -> Any:
    """
    Verify a Stripe webhook signature and parse the event.

    Raises:
        ValidationFailedError: On a missing or invalid signature or payload
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise PaymentProviderError("Webhook secret is not configured")
    if not signature:
        raise ValidationFailedError("Missing Stripe signature")
    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError:
        logger.warning("Stripe webhook with invalid signature")
        raise ValidationFailedError("Invalid signature")
    except ValueError:
        raise ValidationFailedError("Invalid payload")


def handle_event(db: Session, event: Any) -> dict:
    """Dispatch a verified webhook event. Unknown types are acknowledged. Flushes only."""
    event_type = _field(event, "type")
    obj = _field(_field(event, "data", {}), "object", {})

    if event_type == "payment_intent.succeeded":
        methods = _field(obj, "payment_method_types", [])
        applied = mark_succeeded(db, _field(obj, "id"), methods[0] if methods else None)
    elif event_type == "payment_intent.payment_failed":
        error = _field(_field(obj, "last_payment_error", {}), "message")
        applied = mark_failed(db, _field(obj, "id"), error)
    elif event_type == "charge.refunded":
        applied = mark_refunded(db, _field(obj, "payment_intent"))
    else:
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return {"received": True, "handled": False}

    return {"received": True, "handled": True, "applied": applied}


def verify_payment(db: Session, user: models.User, payment_intent_id: str) -> dict:
    """Re-read a payment intent from Stripe and apply its state."""
    txn = _transaction(db, payment_intent_id)
    if txn is None or txn.user_id != user.id:
        raise NotFoundError("Payment not found")

    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=_stripe_key())
    except stripe.StripeError as e:
        logger.error(f"Stripe retrieve failed for {payment_intent_id}: {e}")
        raise PaymentProviderError("Payment provider error")

    status = _field(intent, "status")
    if status == "succeeded":
        mark_succeeded(db, payment_intent_id)
    elif status in ("canceled", "requires_payment_method") and txn.payment_status == "pending":
        error = _field(_field(intent, "last_payment_error", {}), "message")
        mark_failed(db, payment_intent_id, error or f"Payment {status}")
    elif status and txn.payment_status == "pending":
        txn.payment_status = status if status in CREDITABLE_STATES else txn.payment_status
        db.flush()

    db.refresh(txn)
    return {
        "payment_intent_id": payment_intent_id,
        "stripe_status": status,
        "payment_status": txn.payment_status,
        "amount": (_field(intent, "amount", 0) or 0) / 100,
        "currency": _field(intent, "currency", "usd"),
    }


def payment_history(
    db: Session, user_id: int, page: int = 1, limit: int = 10
) -> tuple[list[models.PaymentTransaction], int]:
    query = db.query(models.PaymentTransaction).filter(models.PaymentTransaction.user_id == user_id)
    total = query.count()
    items = (
        query.order_by(models.PaymentTransaction.created_at.desc(), models.PaymentTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
