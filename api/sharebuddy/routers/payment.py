"""Credit package purchases through Stripe."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import get_current_user
from ..db import atomic
from ..deps import PageParams, get_db, page_params
from ..services import payments

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["Payment"])


@router.get("/packages", response_model=list[schemas.CreditPackage])
def list_packages(db: Session = Depends(get_db)) -> list[schemas.CreditPackage]:
    return [schemas.CreditPackage.model_validate(p) for p in payments.list_packages(db)]


@router.get("/config", response_model=schemas.PaymentConfig)
def get_config() -> schemas.PaymentConfig:
    return schemas.PaymentConfig(
        publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
        currency="usd",
        vnd_per_usd=settings.VND_PER_USD,
    )


@router.post("/create-payment-intent", response_model=schemas.PaymentIntentResponse)
def create_payment_intent(
    payload: schemas.PaymentIntentRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PaymentIntentResponse:
    result = payments.create_payment_intent(db, current_user, payload.package_id, payload.currency)
    db.commit()
    return schemas.PaymentIntentResponse(**result)


@router.get("/history", response_model=schemas.Page[schemas.PaymentTransaction])
def payment_history(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.PaymentTransaction]:
    items, total = payments.payment_history(db, current_user.id, params.page, params.limit)
    return schemas.Page.build(
        [schemas.PaymentTransaction.model_validate(t) for t in items], total, params.page, params.limit
    )


@router.get("/verify/{payment_intent_id}")
def verify_payment(
    payment_intent_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """Re-check a payment with Stripe; credits are granted at most once."""
    with atomic(db):
        result = payments.verify_payment(db, current_user, payment_intent_id)
    return result


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
) -> dict:
    """
    Stripe webhook receiver.

    The signature is verified against STRIPE_WEBHOOK_SECRET. Each payment
    transition applies once, so redelivered events are acknowledged without
    effect.
    """
    payload = await request.body()
    event = payments.construct_event(payload, stripe_signature)
    with atomic(db):
        result = payments.handle_event(db, event)
    return result
