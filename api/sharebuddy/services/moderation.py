"""Automated document moderation.

Uploads start ``pending``. A Celery worker extracts the text, scores it
with rule-based checks and applies the decision. The transition out of
``pending`` is a conditional UPDATE, so whichever of the worker, the
external webhook or a staff member gets there first wins and every later
decision is a no-op.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from .. import models, storage
from .credits import UPLOAD_APPROVAL_BONUS, apply_credit_change
from .notifications import create_notification
from .profanity import contains_profanity
from .verified_author import check_and_auto_verify

logger = logging.getLogger(__name__)

APPROVAL_THRESHOLD = 0.5
MAX_EXTRACTED_CHARS = 50_000
TEXT_PREVIEW_CHARS = 1000

SPAM_PATTERNS = [
    re.compile(r"\b(buy now|click here|limited offer|act now)\b", re.IGNORECASE),
    re.compile(r"\b(viagra|cialis|pharmacy)\b", re.IGNORECASE),
    re.compile(r"\b(casino|poker|gambling)\b", re.IGNORECASE),
    re.compile(r"\$\$\$+"),
    re.compile(r"!{5,}"),
]


@dataclass
class ModerationResult:
    score: float
    flags: list[str] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        return self.score > APPROVAL_THRESHOLD

    @property
    def reason(self) -> str | None:
        if self.approved:
            return None
        return "Automatic moderation failed: " + (", ".join(self.flags) or "low score")


# ============================================================================
# ANALYSIS
# ============================================================================


def extract_text(content: bytes, file_type: str) -> str:
    """
    Text of a stored document: PDF pages via pypdf, plain text decoded.

    Other formats yield an empty string.
    """
    file_type = file_type.lower()
    if file_type == "txt":
        return content.decode("utf-8", errors="ignore")[:MAX_EXTRACTED_CHARS]

    if file_type == "pdf":
        try:
            reader = PdfReader(io.BytesIO(content))
            parts: list[str] = []
            length = 0
            for page in reader.pages:
                text = page.extract_text() or ""
                parts.append(text)
                length += len(text)
                if length >= MAX_EXTRACTED_CHARS:
                    break
            return "\n".join(parts)[:MAX_EXTRACTED_CHARS]
        except (PdfReadError, ValueError, OSError) as e:
            logger.warning(f"Could not extract PDF text: {e}")
            return ""

    return ""


def analyze_content(text: str, title: str | None, file_size: int | None) -> ModerationResult:
    """
    Rule-based score starting from 1.0.

    No text (0.8), spam (-0.3), shouting (-0.1), profanity (-0.4),
    repetitive text (-0.15), "test"+"ignore" title (-0.2), tiny file (-0.1).
    Clamped to [0, 1].
    """
    flags: list[str] = []
    score = 1.0
    title = title or ""
    combined = f"{title} {text}".lower()

    if not text or not text.strip():
        flags.append("no_text_content")
        score = 0.8

    if any(pattern.search(combined) for pattern in SPAM_PATTERNS):
        flags.append("spam_detected")
        score -= 0.3

    if text and len(text) > 50:
        caps_ratio = sum(1 for ch in text if "A" <= ch <= "Z") / len(text)
        if caps_ratio > 0.5:
            flags.append("excessive_caps")
            score -= 0.1

    if contains_profanity(combined):
        flags.append("profanity_detected")
        score -= 0.4

    if text and len(text) > 20:
        words = text.split()
        if len(words) > 20 and len(set(words)) / len(words) < 0.3:
            flags.append("repetitive_content")
            score -= 0.15

    title_lower = title.lower()
    if "test" in title_lower and "ignore" in title_lower:
        flags.append("test_document")
        score -= 0.2

    if file_size and file_size / (1024 * 1024) < 0.01:
        flags.append("suspiciously_small")
        score -= 0.1

    return ModerationResult(score=round(max(0.0, min(1.0, score)), 4), flags=flags)


# ============================================================================
# STATE TRANSITION
# ============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def apply_moderation_decision(
    db: Session,
    document_id: int,
    approved: bool,
    score: float | None = None,
    flags: list[str] | None = None,
    reason: str | None = None,
    actor_id: int | None = None,
) -> bool:
    """
    Move a pending document to approved or rejected.

    Only a document that is still ``pending`` changes; any later decision
    returns False and has no effect. On approval the author earns
    UPLOAD_APPROVAL_BONUS credits and the verified-author criteria are
    re-checked. The author is notified either way. Flushes only.

    Returns:
        True if this call made the transition
    """
    new_status = "approved" if approved else "rejected"
    result = db.execute(
        update(models.Document)
        .where(models.Document.id == document_id, models.Document.status == "pending")
        .values(
            status=new_status,
            moderation_score=score,
            moderation_flags=flags,
            rejection_reason=None if approved else (reason or "Rejected by moderation"),
            moderated_at=_utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(f"Moderation decision for document {document_id} ignored: not pending")
        return False

    document = db.get(models.Document, document_id)
    db.refresh(document)

    job = db.query(models.ModerationJob).filter(models.ModerationJob.document_id == document_id).first()
    if job is not None:
        job.moderation_status = "completed"
        job.moderation_score = score
        job.moderation_flags = flags
        job.completed_at = _utcnow()

    if approved:
        apply_credit_change(
            db,
            document.author_id,
            UPLOAD_APPROVAL_BONUS,
            "upload_bonus",
            f"Upload approved: {document.title}",
            related_document_id=document.id,
        )
        create_notification(
            db,
            user_id=document.author_id,
            notification_type="document_approved",
            title="Your document was approved",
            content=f'"{document.title}" is now public. You earned {UPLOAD_APPROVAL_BONUS} credits.',
            related_document_id=document.id,
            actor_id=actor_id,
        )
        check_and_auto_verify(db, document.author_id)
    else:
        create_notification(
            db,
            user_id=document.author_id,
            notification_type="document_rejected",
            title="Your document was rejected",
            content=document.rejection_reason,
            related_document_id=document.id,
            actor_id=actor_id,
        )

    db.flush()
    logger.info(f"Document {document_id} {new_status} (score={score}, flags={flags})")
    return True


def record_failure(db: Session, document_id: int, error: str) -> None:
    job = db.query(models.ModerationJob).filter(models.ModerationJob.document_id == document_id).first()
    if job is not None:
        job.moderation_status = "failed"
        job.error_message = error[:2000]
        db.flush()


def run_moderation(db: Session, document_id: int) -> dict:
    """
    Analyse one document and apply the decision. Commits.

    Used by the Celery task; exceptions propagate so the task can retry.
    """
    document = db.get(models.Document, document_id)
    if document is None:
        logger.warning(f"Moderation skipped: document {document_id} not found")
        return {"status": "missing", "document_id": document_id}

    job = db.query(models.ModerationJob).filter(models.ModerationJob.document_id == document_id).first()
    if job is None:
        job = models.ModerationJob(document_id=document_id, moderation_status="queued", attempts=0)
        db.add(job)

    if document.status != "pending":
        job.moderation_status = "completed"
        db.commit()
        return {"status": "skipped", "document_id": document_id, "document_status": document.status}

    job.moderation_status = "processing"
    job.attempts = (job.attempts or 0) + 1
    db.commit()

    content = storage.read_file(document.file_path)
    text = extract_text(content, document.file_type)
    result = analyze_content(text, document.title, document.file_size)
    job.extracted_text_preview = text[:TEXT_PREVIEW_CHARS] or None

    applied = apply_moderation_decision(
        db,
        document_id,
        approved=result.approved,
        score=result.score,
        flags=result.flags,
        reason=result.reason,
    )
    db.commit()

    if applied and result.approved:
        from .previews import enqueue_preview

        enqueue_preview(document_id)

    return {
        "status": "completed",
        "document_id": document_id,
        "approved": result.approved,
        "score": result.score,
        "flags": result.flags,
        "applied": applied,
    }


# ============================================================================
# QUEUE
# ============================================================================


def moderation_task_id(document_id: int) -> str:
    """Celery task id for a document; re-queuing reuses it."""
    return f"moderate-document-{document_id}"


def enqueue_moderation(document_id: int) -> bool:
    """
    Hand a document to the moderation worker.

    Failures are logged and reported as False; the job row stays queued and
    staff can re-queue it.
    """
    try:
        from ..tasks import moderate_document

        moderate_document.apply_async(args=[document_id], task_id=moderation_task_id(document_id))
        logger.info(f"Queued moderation for document {document_id}")
        return True
    except Exception as e:
        logger.warning(f"Could not queue moderation for document {document_id}: {e}")
        return False


def requeue(db: Session, document_id: int) -> models.ModerationJob:
    """Reset a document's moderation job to queued. Flushes only."""
    job = db.query(models.ModerationJob).filter(models.ModerationJob.document_id == document_id).first()
    if job is None:
        job = models.ModerationJob(document_id=document_id, attempts=0)
        db.add(job)
    job.moderation_status = "queued"
    job.error_message = None
    db.flush()
    return job


def queue_stats(db: Session) -> dict:
    job_counts = dict(
        db.query(models.ModerationJob.moderation_status, func.count(models.ModerationJob.id))
        .group_by(models.ModerationJob.moderation_status)
        .all()
    )
    document_counts = dict(
        db.query(models.Document.status, func.count(models.Document.id))
        .group_by(models.Document.status)
        .all()
    )
    return {
        "jobs": {s: int(job_counts.get(s, 0)) for s in ("queued", "processing", "completed", "failed")},
        "documents": {s: int(document_counts.get(s, 0)) for s in ("pending", "approved", "rejected")},
    }
