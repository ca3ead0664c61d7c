"""Service for creating and managing in-app notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.orm import Session

from .. import models
from ..cache import cache_delete, cache_get, cache_set

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "new_rating",
    "new_comment",
    "comment_reply",
    "new_follower",
    "new_question",
    "new_answer",
    "answer_accepted",
    "document_approved",
    "document_rejected",
    "new_document",
    "payment_succeeded",
    "payment_failed",
    "system",
)


def _unread_key(user_id: int) -> str:
    return f"notifications:unread:{user_id}"


_STALE_KEYS = "notifications_stale_unread_keys"


def _invalidate_unread(db: Session, user_id: int) -> None:
    """Drop the cached unread count now and again once the transaction commits."""
    key = _unread_key(user_id)
    cache_delete(key)
    db.info.setdefault(_STALE_KEYS, set()).add(key)


@event.listens_for(Session, "after_commit")
def _clear_unread_after_commit(session: Session) -> None:
    for key in session.info.pop(_STALE_KEYS, ()):
        cache_delete(key)


def create_notification(
    db: Session,
    user_id: int,
    notification_type: str,
    title: str,
    content: str | None = None,
    related_document_id: int | None = None,
    related_user_id: int | None = None,
    actor_id: int | None = None,
) -> models.Notification | None:
    """
    Create a notification. The only writer of the notifications table.

    Users are not notified about their own actions: when ``actor_id`` equals
    ``user_id`` nothing is written. Flushes only.
    """
    if actor_id is not None and actor_id == user_id:
        return None

    notification = models.Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        content=content,
        related_document_id=related_document_id,
        related_user_id=related_user_id if related_user_id is not None else actor_id,
    )
    db.add(notification)
    db.flush()

    _invalidate_unread(db, user_id)
    logger.debug(f"Notification '{notification_type}' for user {user_id}")
    return notification


def unread_count(db: Session, user_id: int) -> int:
    cached = cache_get(_unread_key(user_id))
    if cached is not None:
        try:
            return int(cached)
        except (TypeError, ValueError):
            pass

    count = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read == False)  # noqa: E712
        .count()
    )
    cache_set(_unread_key(user_id), count, ttl=60)
    return count


def mark_read(db: Session, user_id: int, notification_id: int) -> models.Notification | None:
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
        .first()
    )
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.flush()
        _invalidate_unread(db, user_id)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    updated = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read == False)  # noqa: E712
        .update({"is_read": True, "read_at": now}, synchronize_session=False)
    )
    _invalidate_unread(db, user_id)
    return updated


def delete_notification(db: Session, user_id: int, notification_id: int) -> bool:
    deleted = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
        .delete(synchronize_session=False)
    )
    _invalidate_unread(db, user_id)
    return bool(deleted)
