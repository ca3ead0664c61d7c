from __future__ import annotations

import logging
import os
from typing import Any

from celery import Celery

logger = logging.getLogger(__name__)

DEFAULT_REDIS = "redis://cache:6379/0"

celery_app = Celery(
    "sharebuddy",
    broker=os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL", DEFAULT_REDIS),
    backend=os.getenv("CELERY_RESULT_BACKEND") or os.getenv("REDIS_URL", DEFAULT_REDIS),
)

celery_app.conf.update(
    task_default_queue="default",
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    worker_max_tasks_per_child=100,
    task_acks_late=True,
    task_routes={
        "sharebuddy.tasks.moderate_document": {"queue": "moderation"},
        "sharebuddy.tasks.generate_document_preview": {"queue": "default"},
    },
    beat_schedule={
        "refresh-user-similarity": {
            "task": "sharebuddy.tasks.refresh_user_similarity",
            "schedule": 3600.0,  # Every hour (in seconds)
        },
    },
    timezone="UTC",
)

MAX_MODERATION_RETRIES = 3


@celery_app.task(name="sharebuddy.tasks.moderate_document", bind=True, max_retries=MAX_MODERATION_RETRIES)
def moderate_document(self, document_id: int) -> dict[str, Any]:
    """
    Screen an uploaded document and approve or reject it.

    Retries with exponential backoff (2s, 4s, 8s) on unexpected errors; after
    the last attempt the moderation job is marked failed so staff can re-queue.
    """
    from .db import SessionLocal
    from .services import moderation

    db = SessionLocal()
    try:
        return moderation.run_moderation(db, document_id)
    except Exception as e:
        db.rollback()
        if self.request.retries < MAX_MODERATION_RETRIES:
            countdown = 2 ** (self.request.retries + 1)
            logger.warning(
                "Moderation of document %s failed (attempt %s), retrying in %ss: %s",
                document_id,
                self.request.retries + 1,
                countdown,
                e,
            )
            raise self.retry(exc=e, countdown=countdown)

        logger.error("Moderation of document %s failed permanently: %s", document_id, e, exc_info=True)
        moderation.record_failure(db, document_id, str(e))
        db.commit()
        return {"status": "failed", "document_id": document_id, "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="sharebuddy.tasks.generate_document_preview", bind=True)
def generate_document_preview(self, document_id: int) -> dict[str, Any]:
    """Build the PDF preview and thumbnail for an approved document."""
    from . import models
    from .db import SessionLocal
    from .services.previews import generate_preview

    db = SessionLocal()
    try:
        document = db.get(models.Document, document_id)
        if document is None:
            logger.error("Document %s not found", document_id)
            return {"status": "error", "message": "Document not found"}
        if document.file_type != "pdf":
            return {"status": "skipped", "message": "Not a PDF"}

        generate_preview(db, document)
        db.commit()
        return {"status": "ok", "document_id": document_id, "pages": document.preview_pages}
    except Exception as e:
        db.rollback()
        logger.error("Preview generation failed for document %s: %s", document_id, e, exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close()


@celery_app.task(name="sharebuddy.tasks.refresh_user_similarity", bind=True)
def refresh_user_similarity(self) -> dict[str, Any]:
    """Periodic rebuild of the user_similarity table (see beat_schedule)."""
    from .db import SessionLocal
    from .services.recommendations import refresh_user_similarity as rebuild

    db = SessionLocal()
    try:
        pairs = rebuild(db)
        db.commit()
        return {"status": "ok", "pairs": pairs}
    except Exception as e:
        db.rollback()
        logger.error("User similarity refresh failed: %s", e, exc_info=True)
        raise
    finally:
        db.close()
