"""Document lifecycle: upload, visibility, paid download and analytics."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, settings, storage
from ..cache import cache_invalidate
from ..errors import NotFoundError, ValidationFailedError
from .credits import apply_credit_change
from .recommendations import track_interaction

logger = logging.getLogger(__name__)

LIST_SORT_COLUMNS = {
    "created_at": models.Document.created_at,
    "title": models.Document.title,
    "download_count": models.Document.download_count,
    "avg_rating": models.Document.average_rating,
    "credit_cost": models.Document.credit_cost,
}


def normalize_tags(raw: str | list[str] | None) -> list[str]:
    """Comma string or list to trimmed, de-duplicated tags (order kept)."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    tags: list[str] = []
    for item in raw:
        for part in str(item).split(","):
            tag = part.strip()[:50]
            if tag and tag not in tags:
                tags.append(tag)
    return tags


def set_tags(db: Session, document: models.Document, tags: list[str]) -> None:
    document.tags = [models.DocumentTag(tag_name=t) for t in tags]
    db.flush()


def validate_upload(filename: str | None, size: int, title: str | None) -> str:
    """
    Check an upload against the allow-list, the size limit and the title rule.

    Returns:
        The lower-case file extension
    """
    if not filename:
        raise ValidationFailedError("File is required")
    if not title or len(title.strip()) < 3:
        raise ValidationFailedError("Title must be at least 3 characters")

    extension = storage.file_extension(filename)
    if extension not in settings.ALLOWED_FILE_TYPES:
        raise ValidationFailedError(
            f"File type not allowed. Allowed types: {', '.join(settings.ALLOWED_FILE_TYPES)}"
        )
    if size <= 0:
        raise ValidationFailedError("File is empty")
    if size > settings.MAX_UPLOAD_BYTES:
        max_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        raise ValidationFailedError(f"File exceeds maximum size of {max_mb:.0f} MB")
    return extension


def create_document(
    db: Session,
    author: models.User,
    filename: str,
    content: bytes,
    title: str,
    description: str | None = None,
    subject: str | None = None,
    university: str | None = None,
    credit_cost: int = 0,
    tags: str | list[str] | None = None,
) -> tuple[models.Document, models.ModerationJob]:
    """
    Store an upload and create the pending document with its moderation job.

    The file is written first; if the database work fails the caller rolls
    back and the stored file is removed. Flushes only.
    """
    extension = validate_upload(filename, len(content), title)
    if credit_cost < 0:
        raise ValidationFailedError("Credit cost cannot be negative")

    file_path = storage.save_document(content, extension)
    try:
        document = models.Document(
            author_id=author.id,
            title=title.strip(),
            description=description,
            subject=subject,
            university=university or author.university,
            file_path=file_path,
            file_name=filename,
            file_size=len(content),
            file_type=extension,
            credit_cost=credit_cost,
            status="pending",
        )
        db.add(document)
        db.flush()

        set_tags(db, document, normalize_tags(tags))

        job = models.ModerationJob(document_id=document.id, moderation_status="queued", attempts=0)
        db.add(job)
        db.flush()
    except Exception:
        storage.delete_file(file_path)
        raise

    logger.info(f"Document {document.id} uploaded by user {author.id} ({extension}, {len(content)} bytes)")
    return document, job


def can_view(document: models.Document, user: models.User | None) -> bool:
    if document.status == "approved":
        return True
    return user is not None and (user.id == document.author_id or user.is_staff)


def get_visible_document(db: Session, document_id: int, user: models.User | None) -> models.Document:
    """A document the caller may see; pending/rejected ones only for author and staff."""
    document = db.get(models.Document, document_id)
    if document is None or not can_view(document, user):
        raise NotFoundError("Document not found")
    return document


def get_approved_document(db: Session, document_id: int) -> models.Document:
    document = db.get(models.Document, document_id)
    if document is None or document.status != "approved":
        raise NotFoundError("Document not found")
    return document


def has_downloaded(db: Session, user_id: int, document_id: int) -> bool:
    return (
        db.query(models.Download.id)
        .filter(models.Download.user_id == user_id, models.Download.document_id == document_id)
        .first()
        is not None
    )


def user_interaction(db: Session, document: models.Document, user: models.User) -> dict:
    is_bookmarked = (
        db.query(models.Bookmark.id)
        .filter(models.Bookmark.user_id == user.id, models.Bookmark.document_id == document.id)
        .first()
        is not None
    )
    rating = (
        db.query(models.Rating.rating)
        .filter(models.Rating.user_id == user.id, models.Rating.document_id == document.id)
        .scalar()
    )
    downloaded = has_downloaded(db, user.id, document.id)
    free = document.author_id == user.id or downloaded or document.credit_cost == 0
    return {
        "is_bookmarked": is_bookmarked,
        "user_rating": rating,
        "can_download": document.status == "approved" and (free or user.credits >= document.credit_cost),
        "has_downloaded": downloaded,
    }


def download_document(db: Session, user: models.User, document_id: int) -> dict:
    """
    Charge for and record a download.

    The author and users who already paid get the file for free. Otherwise
    the downloader is debited, the author credited, the download row
    inserted and the counter bumped, all in the caller's transaction.

    Raises:
        NotFoundError: If the document is missing or not approved
        InsufficientCreditsError: If the user cannot afford the document
    """
    document = get_approved_document(db, document_id)
    cost = document.credit_cost
    charged = 0

    if document.author_id != user.id and not has_downloaded(db, user.id, document.id):
        if cost > 0:
            apply_credit_change(
                db,
                user,
                -cost,
                "download",
                f"Downloaded: {document.title}",
                related_document_id=document.id,
            )
            apply_credit_change(
                db,
                document.author_id,
                cost,
                "earn",
                f"Earned from download of: {document.title}",
                related_document_id=document.id,
            )
            charged = cost

        db.add(models.Download(user_id=user.id, document_id=document.id, credits_spent=charged))
        document.download_count = models.Document.download_count + 1
        db.flush()

    track_interaction(db, user.id, document.id, "download")
    db.refresh(user)

    logger.info(f"User {user.id} downloaded document {document.id} (charged {charged})")
    return {
        "download_url": storage.public_url(document.file_path),
        "file_name": document.file_name,
        "credits_spent": charged,
        "remaining_credits": user.credits,
    }


def recompute_rating(db: Session, document_id: int) -> tuple[float, int]:
    """Refresh the denormalized average and count from the ratings table."""
    avg, count = (
        db.query(func.avg(models.Rating.rating), func.count(models.Rating.id))
        .filter(models.Rating.document_id == document_id)
        .one()
    )
    average = round(float(avg or 0), 2)
    document = db.get(models.Document, document_id)
    document.average_rating = average
    document.rating_count = int(count or 0)
    db.flush()
    return average, int(count or 0)


def document_analytics(db: Session, document: models.Document) -> dict:
    rating_rows = dict(
        db.query(models.Rating.rating, func.count(models.Rating.id))
        .filter(models.Rating.document_id == document.id)
        .group_by(models.Rating.rating)
        .all()
    )
    bookmarks = db.query(func.count(models.Bookmark.id)).filter(models.Bookmark.document_id == document.id).scalar()
    comments = (
        db.query(func.count(models.Comment.id))
        .filter(models.Comment.document_id == document.id, models.Comment.is_deleted == False)  # noqa: E712
        .scalar()
    )
    earnings = (
        db.query(func.coalesce(func.sum(models.CreditTransaction.amount), 0))
        .filter(
            models.CreditTransaction.user_id == document.author_id,
            models.CreditTransaction.related_document_id == document.id,
            models.CreditTransaction.transaction_type == "earn",
        )
        .scalar()
    )
    return {
        "document_id": document.id,
        "downloads": document.download_count,
        "views": document.view_count,
        "ratings": {
            "count": document.rating_count,
            "average": document.average_rating,
            "distribution": {star: int(rating_rows.get(star, 0)) for star in range(1, 6)},
        },
        "bookmarks": int(bookmarks or 0),
        "comments": int(comments or 0),
        "credits_earned": int(earnings or 0),
    }


def delete_document(db: Session, document: models.Document) -> None:
    """Remove the row and its stored files. Flushes only."""
    paths = [document.file_path, document.preview_path, document.thumbnail_path]
    document_id = document.id
    db.delete(document)
    db.flush()
    for path in paths:
        try:
            storage.delete_file(path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not remove file {path} of document {document_id}: {e}")
    cache_invalidate("feed:trending:*")
    logger.info(f"Document {document_id} deleted")
