"""Document ratings."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, PermissionDeniedError
from .documents import get_approved_document, recompute_rating
from .notifications import create_notification
from .recommendations import track_interaction

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": models.Rating.created_at,
    "rating": models.Rating.rating,
    "updated_at": models.Rating.updated_at,
}


def get_user_rating(db: Session, user_id: int, document_id: int) -> models.Rating | None:
    return (
        db.query(models.Rating)
        .filter(models.Rating.user_id == user_id, models.Rating.document_id == document_id)
        .first()
    )


def rate_document(
    db: Session, user: models.User, document_id: int, rating: int, comment: str | None = None
) -> tuple[models.Rating, bool]:
    """
    Create or update the user's rating and refresh the document average.

    Returns the rating and whether it was newly created. Flushes only.

    Raises:
        NotFoundError: If the document is not approved
        PermissionDeniedError: When rating one's own document
    """
    document = get_approved_document(db, document_id)
    if document.author_id == user.id:
        raise PermissionDeniedError("You cannot rate your own document")

    existing = get_user_rating(db, user.id, document.id)
    created = existing is None
    if created:
        existing = models.Rating(user_id=user.id, document_id=document.id, rating=rating, comment=comment)
        db.add(existing)
    else:
        existing.rating = rating
        existing.comment = comment
    db.flush()

    recompute_rating(db, document.id)
    track_interaction(db, user.id, document.id, "rate", float(rating))

    if created:
        create_notification(
            db,
            user_id=document.author_id,
            notification_type="new_rating",
            title="New rating",
            content=f'{user.username} rated "{document.title}" {rating}/5',
            related_document_id=document.id,
            actor_id=user.id,
        )

    logger.info(f"User {user.id} rated document {document.id}: {rating}")
    return existing, created


def delete_rating(db: Session, user: models.User, document_id: int) -> None:
    rating = get_user_rating(db, user.id, document_id)
    if rating is None:
        raise NotFoundError("Rating not found")
    db.delete(rating)
    db.flush()
    recompute_rating(db, document_id)


def rating_stats(db: Session, document_id: int) -> dict:
    """``{total, avg, distribution}`` with every star from 1 to 5 present."""
    rows = dict(
        db.query(models.Rating.rating, func.count(models.Rating.id))
        .filter(models.Rating.document_id == document_id)
        .group_by(models.Rating.rating)
        .all()
    )
    total = sum(rows.values())
    avg = sum(star * n for star, n in rows.items()) / total if total else 0.0
    return {
        "total": int(total),
        "avg": round(avg, 2),
        "distribution": {star: int(rows.get(star, 0)) for star in range(1, 6)},
    }


def list_ratings(
    db: Session,
    document_id: int,
    page: int,
    limit: int,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[models.Rating], int]:
    column = SORT_COLUMNS.get(sort_by, models.Rating.created_at)
    ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

    query = db.query(models.Rating).filter(models.Rating.document_id == document_id)
    total = query.count()
    items = query.order_by(ordering, models.Rating.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total


def top_rated_documents(db: Session, limit: int = 10, min_ratings: int = 3) -> list[models.Document]:
    return (
        db.query(models.Document)
        .filter(models.Document.status == "approved", models.Document.rating_count >= min_ratings)
        .order_by(
            models.Document.average_rating.desc(),
            models.Document.rating_count.desc(),
            models.Document.id.desc(),
        )
        .limit(limit)
        .all()
    )
