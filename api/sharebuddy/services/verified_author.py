"""Verified author badge: criteria, progress and automatic granting."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import case, distinct, func, select
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, ValidationFailedError
from .notifications import create_notification

logger = logging.getLogger(__name__)

MIN_DOCUMENTS = 5
MIN_FIVE_STAR_DOCUMENTS = 3
FIVE_STAR_THRESHOLD = 5.0
MIN_TOTAL_DOWNLOADS = 10
REQUIRE_EMAIL_VERIFIED = True


def _document_stats(db: Session, user_id: int) -> tuple[int, int, int]:
    d = models.Document
    row = (
        db.query(
            func.count(distinct(d.id)),
            func.count(distinct(case((d.average_rating >= FIVE_STAR_THRESHOLD, d.id)))),
            func.coalesce(func.sum(d.download_count), 0),
        )
        .filter(d.author_id == user_id, d.status == "approved")
        .one()
    )
    return int(row[0] or 0), int(row[1] or 0), int(row[2] or 0)


def get_verification_progress(db: Session, user: models.User) -> dict:
    """
    Per-criterion progress towards the verified author badge.

    Returns:
        ``{"is_verified", "criteria": {name: {current, required, met}},
        "eligible_for_verification"}``
    """
    total_documents, five_star_documents, total_downloads = _document_stats(db, user.id)

    criteria = {
        "email_verified": {
            "current": bool(user.email_verified),
            "required": REQUIRE_EMAIL_VERIFIED,
            "met": bool(user.email_verified) or not REQUIRE_EMAIL_VERIFIED,
        },
        "total_documents": {
            "current": total_documents,
            "required": MIN_DOCUMENTS,
            "met": total_documents >= MIN_DOCUMENTS,
        },
        "five_star_documents": {
            "current": five_star_documents,
            "required": MIN_FIVE_STAR_DOCUMENTS,
            "met": five_star_documents >= MIN_FIVE_STAR_DOCUMENTS,
        },
        "total_downloads": {
            "current": total_downloads,
            "required": MIN_TOTAL_DOWNLOADS,
            "met": total_downloads >= MIN_TOTAL_DOWNLOADS,
        },
    }
    all_met = all(c["met"] for c in criteria.values())

    return {
        "is_verified": bool(user.is_verified_author),
        "criteria": criteria,
        "eligible_for_verification": all_met and not user.is_verified_author,
    }


def grant_badge(db: Session, user: models.User, message: str) -> None:
    user.is_verified_author = True
    user.verified_at = datetime.now(timezone.utc).replace(tzinfo=None)
    create_notification(
        db,
        user_id=user.id,
        notification_type="system",
        title="You are now a Verified Author",
        content=message,
    )
    db.flush()
    logger.info(f"Verified author badge granted to user {user.id}")


def revoke_badge(db: Session, user: models.User) -> None:
    user.is_verified_author = False
    user.verified_at = None
    db.flush()
    logger.info(f"Verified author badge revoked from user {user.id}")


def check_and_auto_verify(db: Session, user: models.User | int) -> bool:
    """
    Grant the badge when every criterion is met. Flushes only.

    Returns:
        True if the badge was granted by this call
    """
    if isinstance(user, int):
        user = db.get(models.User, user)
        if user is None:
            return False

    progress = get_verification_progress(db, user)
    if not progress["eligible_for_verification"]:
        return False

    grant_badge(
        db,
        user,
        "You met every criterion and received the Verified Author badge automatically.",
    )
    return True


def request_verification(db: Session, user: models.User) -> dict:
    """
    Evaluate a user's request for the badge and record the outcome.

    Raises:
        ValidationFailedError: If the user is already verified
    """
    if user.is_verified_author:
        raise ValidationFailedError("You are already a verified author")

    progress = get_verification_progress(db, user)
    approved = progress["eligible_for_verification"]
    if approved:
        grant_badge(db, user, "Your verification request was approved.")

    db.add(
        models.VerifiedAuthorRequest(
            user_id=user.id,
            status="approved" if approved else "rejected",
            criteria_snapshot=progress["criteria"],
        )
    )
    db.flush()

    return {"verified": approved, "progress": get_verification_progress(db, user)}


def list_verified_authors(db: Session, page: int = 1, limit: int = 20) -> tuple[list[dict], int]:
    """Verified authors with their approved-document stats, most downloaded first."""
    d = models.Document
    u = models.User

    doc_stats = (
        select(
            d.author_id.label("author_id"),
            func.count(d.id).label("document_count"),
            func.avg(d.average_rating).label("avg_rating"),
            func.sum(d.download_count).label("total_downloads"),
        )
        .where(d.status == "approved")
        .group_by(d.author_id)
        .subquery()
    )
    follower_stats = (
        select(
            models.Follow.following_id.label("user_id"),
            func.count(models.Follow.id).label("follower_count"),
        )
        .group_by(models.Follow.following_id)
        .subquery()
    )

    total_downloads = func.coalesce(doc_stats.c.total_downloads, 0)
    avg_rating = func.coalesce(doc_stats.c.avg_rating, 0)
    rows = (
        db.query(
            u,
            func.coalesce(doc_stats.c.document_count, 0),
            avg_rating,
            total_downloads,
            func.coalesce(follower_stats.c.follower_count, 0),
        )
        .outerjoin(doc_stats, doc_stats.c.author_id == u.id)
        .outerjoin(follower_stats, follower_stats.c.user_id == u.id)
        .filter(u.is_verified_author == True)  # noqa: E712
        .order_by(total_downloads.desc(), avg_rating.desc(), u.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total = db.query(func.count(u.id)).filter(u.is_verified_author == True).scalar()  # noqa: E712

    return [
        {
            "user": user,
            "document_count": int(docs),
            "avg_rating": round(float(avg or 0), 2),
            "total_downloads": int(downloads),
            "follower_count": int(followers),
        }
        for user, docs, avg, downloads, followers in rows
    ], int(total or 0)


def verification_status(db: Session, user_id: int) -> dict:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return {
        "user_id": user.id,
        "is_verified_author": bool(user.is_verified_author),
        "verified_at": user.verified_at,
    }
