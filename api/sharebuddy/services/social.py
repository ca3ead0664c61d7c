"""Follows, profile statistics and the followed-authors feed."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, NotFoundError, ValidationFailedError
from .notifications import create_notification

logger = logging.getLogger(__name__)


def get_active_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")
    return user


def is_following(db: Session, follower_id: int, following_id: int) -> bool:
    return (
        db.query(models.Follow.id)
        .filter(models.Follow.follower_id == follower_id, models.Follow.following_id == following_id)
        .first()
        is not None
    )


def follower_count(db: Session, user_id: int) -> int:
    return db.query(func.count(models.Follow.id)).filter(models.Follow.following_id == user_id).scalar() or 0


def follow_user(db: Session, follower: models.User, following_id: int) -> None:
    """
    Follow another user and notify them. Flushes only.

    Raises:
        ValidationFailedError: On a self-follow
        NotFoundError: If the target does not exist
        ConflictError: If already following
    """
    if follower.id == following_id:
        raise ValidationFailedError("You cannot follow yourself")
    target = get_active_user(db, following_id)
    if is_following(db, follower.id, target.id):
        raise ConflictError("Already following this user")

    db.add(models.Follow(follower_id=follower.id, following_id=target.id))
    db.flush()

    create_notification(
        db,
        user_id=target.id,
        notification_type="new_follower",
        title="New follower",
        content=f"{follower.username} started following you",
        actor_id=follower.id,
    )
    logger.info(f"User {follower.id} followed user {target.id}")


def unfollow_user(db: Session, follower: models.User, following_id: int) -> None:
    deleted = (
        db.query(models.Follow)
        .filter(models.Follow.follower_id == follower.id, models.Follow.following_id == following_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("You are not following this user")
    logger.info(f"User {follower.id} unfollowed user {following_id}")


def list_followers(db: Session, user_id: int, page: int, limit: int) -> tuple[list[models.User], int]:
    query = (
        db.query(models.User)
        .join(models.Follow, models.Follow.follower_id == models.User.id)
        .filter(models.Follow.following_id == user_id)
    )
    total = query.count()
    items = query.order_by(models.Follow.created_at.desc(), models.Follow.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total


def list_following(db: Session, user_id: int, page: int, limit: int) -> tuple[list[models.User], int]:
    query = (
        db.query(models.User)
        .join(models.Follow, models.Follow.following_id == models.User.id)
        .filter(models.Follow.follower_id == user_id)
    )
    total = query.count()
    items = query.order_by(models.Follow.created_at.desc(), models.Follow.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total


def user_stats(db: Session, user_id: int) -> dict:
    """Approved documents, their downloads and rating, followers and following."""
    d = models.Document
    document_count, total_downloads, average_rating = (
        db.query(
            func.count(d.id),
            func.coalesce(func.sum(d.download_count), 0),
            func.avg(func.nullif(d.average_rating, 0)),
        )
        .filter(d.author_id == user_id, d.status == "approved")
        .one()
    )
    following_count = (
        db.query(func.count(models.Follow.id)).filter(models.Follow.follower_id == user_id).scalar() or 0
    )
    return {
        "document_count": int(document_count or 0),
        "total_downloads": int(total_downloads or 0),
        "follower_count": int(follower_count(db, user_id)),
        "following_count": int(following_count),
        "average_rating": round(float(average_rating or 0), 2),
    }


def followed_feed(db: Session, user_id: int, page: int, limit: int) -> tuple[list[models.Document], int]:
    """Approved documents by authors the user follows, newest first."""
    followed = select(models.Follow.following_id).where(models.Follow.follower_id == user_id)
    query = db.query(models.Document).filter(
        models.Document.status == "approved",
        models.Document.author_id.in_(followed),
    )
    total = query.count()
    items = (
        query.order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
