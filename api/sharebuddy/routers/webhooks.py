"""Inbound webhook from an external moderation service."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas, settings
from ..db import atomic
from ..deps import get_db
from ..services import moderation, previews

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/moderation")
def moderation_webhook(
    payload: schemas.ModerationWebhookPayload,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
    db: Session = Depends(get_db),
) -> dict:
    """
    Receive a moderation result.

    ``completed`` applies the decision (once; later results for the same
    document are ignored), ``failed`` marks the job failed.
    """
    expected = settings.MODERATION_WEBHOOK_SECRET
    if not expected or not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning("Moderation webhook with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )

    if payload.status == "failed":
        with atomic(db):
            moderation.record_failure(db, payload.document_id, payload.error or "External moderation failed")
        return {"success": True, "applied": False}

    if payload.approved is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="approved is required for completed results",
        )

    with atomic(db):
        applied = moderation.apply_moderation_decision(
            db,
            payload.document_id,
            approved=payload.approved,
            score=payload.score,
            flags=payload.flags,
            reason=payload.reason,
        )
    if applied and payload.approved:
        previews.enqueue_preview(payload.document_id)
    return {"success": True, "applied": applied}
