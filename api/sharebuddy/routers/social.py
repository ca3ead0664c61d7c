"""Notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import PageParams, get_db, page_params
from ..services import notifications as notification_service

router = APIRouter(prefix="/api/social", tags=["Social"])


@router.get("/notifications", response_model=schemas.Page[schemas.Notification])
def list_notifications(
    unread_only: bool = Query(False, description="Only return unread notifications"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.Notification]:
    """List notifications for the current user, newest first."""
    query = db.query(models.Notification).filter(models.Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(models.Notification.is_read == False)  # noqa: E712

    total = query.count()
    items = (
        query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.Notification.model_validate(n) for n in items], total, params.page, params.limit
    )


@router.get("/notifications/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UnreadCount:
    """Get unread notification count for the current user."""
    return schemas.UnreadCount(unread_count=notification_service.unread_count(db, current_user.id))


@router.patch("/notifications/read-all", response_model=schemas.Message)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    updated = notification_service.mark_all_read(db, current_user.id)
    db.commit()
    return schemas.Message(message=f"{updated} notifications marked as read")


@router.patch("/notifications/{notification_id}/read", response_model=schemas.Notification)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Notification:
    notification = notification_service.mark_read(db, current_user.id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    db.commit()
    db.refresh(notification)
    return schemas.Notification.model_validate(notification)


@router.delete("/notifications/{notification_id}", response_model=schemas.Message)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    """
    Delete a specific notification.

    Returns 404 if the notification doesn't exist or doesn't belong to the user.
    """
    deleted = notification_service.delete_notification(db, current_user.id, notification_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    db.commit()
    return schemas.Message(message="Notification deleted")
