"""Comments with one level of replies, likes and tombstone deletion."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from .documents import get_approved_document
from .notifications import create_notification
from .profanity import clean_text
from .recommendations import track_interaction

logger = logging.getLogger(__name__)

DELETED_PLACEHOLDER = "[deleted]"


def get_comment(db: Session, comment_id: int) -> models.Comment:
    comment = db.get(models.Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


def create_comment(
    db: Session,
    user: models.User,
    document_id: int,
    content: str,
    parent_id: int | None = None,
) -> models.Comment:
    """
    Comment on an approved document, or reply to a top-level comment.

    Raises:
        ValidationFailedError: On a reply to a reply or a parent on another document
    """
    document = get_approved_document(db, document_id)

    parent = None
    if parent_id is not None:
        parent = get_comment(db, parent_id)
        if parent.document_id != document.id:
            raise ValidationFailedError("Parent comment belongs to another document")
        if parent.parent_id is not None:
            raise ValidationFailedError("Replies can only be one level deep")
        if parent.is_deleted:
            raise ValidationFailedError("Cannot reply to a deleted comment")

    comment = models.Comment(
        user_id=user.id,
        document_id=document.id,
        parent_id=parent.id if parent else None,
        content=clean_text(content),
    )
    db.add(comment)
    db.flush()

    track_interaction(db, user.id, document.id, "comment")

    if parent is not None:
        create_notification(
            db,
            user_id=parent.user_id,
            notification_type="comment_reply",
            title="New reply to your comment",
            content=f'{user.username} replied on "{document.title}"',
            related_document_id=document.id,
            actor_id=user.id,
        )
    else:
        create_notification(
            db,
            user_id=document.author_id,
            notification_type="new_comment",
            title="New comment",
            content=f'{user.username} commented on "{document.title}"',
            related_document_id=document.id,
            actor_id=user.id,
        )
    return comment


def update_comment(db: Session, user: models.User, comment_id: int, content: str) -> models.Comment:
    comment = get_comment(db, comment_id)
    if comment.user_id != user.id:
        raise PermissionDeniedError("You can only edit your own comments")
    if comment.is_deleted:
        raise ValidationFailedError("Cannot edit a deleted comment")
    comment.content = clean_text(content)
    db.flush()
    return comment


def delete_comment(db: Session, user: models.User, comment_id: int) -> bool:
    """
    Delete a comment. One with replies becomes a tombstone instead.

    Returns True when the row was removed, False when it was tombstoned.
    """
    comment = get_comment(db, comment_id)
    if comment.user_id != user.id and not user.is_staff:
        raise PermissionDeniedError("You can only delete your own comments")

    has_replies = (
        db.query(models.Comment.id).filter(models.Comment.parent_id == comment.id).first() is not None
    )
    if has_replies:
        comment.is_deleted = True
        comment.content = DELETED_PLACEHOLDER
        db.flush()
        return False

    db.delete(comment)
    db.flush()
    return True


def like_count(db: Session, comment_id: int) -> int:
    return (
        db.query(func.count(models.CommentLike.id)).filter(models.CommentLike.comment_id == comment_id).scalar()
        or 0
    )


def like_comment(db: Session, user: models.User, comment_id: int) -> int:
    """Like a comment; liking twice is a no-op. Returns the like count."""
    comment = get_comment(db, comment_id)
    exists = (
        db.query(models.CommentLike.id)
        .filter(models.CommentLike.user_id == user.id, models.CommentLike.comment_id == comment.id)
        .first()
    )
    if not exists:
        db.add(models.CommentLike(user_id=user.id, comment_id=comment.id))
        db.flush()
    return like_count(db, comment.id)


def unlike_comment(db: Session, user: models.User, comment_id: int) -> int:
    comment = get_comment(db, comment_id)
    db.query(models.CommentLike).filter(
        models.CommentLike.user_id == user.id, models.CommentLike.comment_id == comment.id
    ).delete(synchronize_session=False)
    db.flush()
    return like_count(db, comment.id)


def annotate(db: Session, comments: list[models.Comment], user_id: int | None) -> list[dict]:
    """Attach like_count, reply_count and is_liked to each comment."""
    ids = [c.id for c in comments]
    if not ids:
        return []

    likes = dict(
        db.query(models.CommentLike.comment_id, func.count(models.CommentLike.id))
        .filter(models.CommentLike.comment_id.in_(ids))
        .group_by(models.CommentLike.comment_id)
        .all()
    )
    replies = dict(
        db.query(models.Comment.parent_id, func.count(models.Comment.id))
        .filter(models.Comment.parent_id.in_(ids))
        .group_by(models.Comment.parent_id)
        .all()
    )
    liked: set[int] = set()
    if user_id is not None:
        liked = {
            cid
            for (cid,) in db.query(models.CommentLike.comment_id)
            .filter(models.CommentLike.user_id == user_id, models.CommentLike.comment_id.in_(ids))
            .all()
        }

    return [
        {
            "comment": c,
            "like_count": int(likes.get(c.id, 0)),
            "reply_count": int(replies.get(c.id, 0)),
            "is_liked": c.id in liked,
        }
        for c in comments
    ]


def list_comments(
    db: Session, document_id: int, page: int, limit: int, parent_id: int | None = None
) -> tuple[list[models.Comment], int]:
    """Top-level comments newest first, or the replies of ``parent_id`` oldest first."""
    query = db.query(models.Comment).filter(models.Comment.document_id == document_id)
    if parent_id is None:
        query = query.filter(models.Comment.parent_id.is_(None))
        ordering = [models.Comment.created_at.desc(), models.Comment.id.desc()]
    else:
        query = query.filter(models.Comment.parent_id == parent_id)
        ordering = [models.Comment.created_at.asc(), models.Comment.id.asc()]

    total = query.count()
    items = query.order_by(*ordering).offset((page - 1) * limit).limit(limit).all()
    return items, total
