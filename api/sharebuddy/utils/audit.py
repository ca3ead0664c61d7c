"""Audit logging utility for staff actions."""

from __future__ import annotations

from sqlalchemy.orm import Session

from .. import models


def log_staff_action(
    db: Session,
    actor_id: int | None,
    action: str,
    target_type: str | None = None,
    target_id: int | None = None,
    note: str | None = None,
) -> models.AuditLog:
    """
    Record a staff action in the audit log.

    Flushed in the caller's transaction so the entry commits together with
    the change it describes.

    Args:
        db: Database session
        actor_id: ID of the staff member (None for automated actions)
        action: Action name (e.g., "moderate_document", "adjust_credits")
        target_type: Type of target (e.g., "user", "document", "report")
        target_id: ID of the target entity
        note: Additional context
    """
    entry = models.AuditLog(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        note=note,
    )
    db.add(entry)
    db.flush()
    return entry
