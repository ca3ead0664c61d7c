"""Admin and moderation endpoints. Every staff action is written to the audit log."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import require_admin, require_staff
from ..db import atomic
from ..deps import PageParams, get_db, page_params
from ..services import moderation, previews, verified_author
from ..services.credits import apply_credit_change
from ..services.reports import resolve_report
from ..services.stats import platform_statistics
from ..utils.audit import log_staff_action

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _get_document(db: Session, document_id: int) -> models.Document:
    document = db.get(models.Document, document_id)
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


# ============================================================================
# USERS
# ============================================================================


@router.get("/users")
def list_users(
    status_filter: str | None = Query(None, alias="status", pattern="^(active|inactive)$"),
    role: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> dict:
    """
    List users (staff only).

    Filters: ``status`` (active/inactive), ``role``, ``search`` over
    username, e-mail and full name.
    """
    query = db.query(models.User)
    if status_filter:
        query = query.filter(models.User.is_active == (status_filter == "active"))
    if role:
        query = query.filter(models.User.role == role)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.User.username.ilike(pattern),
                models.User.email.ilike(pattern),
                models.User.full_name.ilike(pattern),
            )
        )

    total = query.count()
    users = query.order_by(models.User.created_at.desc(), models.User.id.desc()).offset(params.offset).limit(params.limit).all()

    counts = dict(
        db.query(models.Document.author_id, func.count(models.Document.id))
        .filter(models.Document.author_id.in_([u.id for u in users]))
        .group_by(models.Document.author_id)
        .all()
    ) if users else {}

    page = schemas.Page.build(
        [
            {"user": schemas.UserMe.model_validate(u), "document_count": int(counts.get(u.id, 0))}
            for u in users
        ],
        total,
        params.page,
        params.limit,
    )

    role_counts = dict(db.query(models.User.role, func.count(models.User.id)).group_by(models.User.role).all())
    return {**page.model_dump(), "stats": {"total": sum(role_counts.values()), "by_role": role_counts}}


@router.put("/users/{user_id}", response_model=schemas.UserMe)
def update_user(
    user_id: int,
    payload: schemas.AdminUserUpdate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.UserMe:
    """
    Change a user's active flag, role, verified badge or e-mail verification.

    Staff cannot modify themselves; only admins may modify admins or grant
    staff roles.
    """
    user = _get_user(db, user_id)
    if user.id == staff.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot modify your own account")
    if user.role == "admin" and staff.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can modify admins")
    if payload.role is not None and payload.role != user.role and staff.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can change roles")

    changes = []
    with atomic(db):
        if payload.is_active is not None and payload.is_active != user.is_active:
            user.is_active = payload.is_active
            changes.append(f"is_active={payload.is_active}")
        if payload.role is not None and payload.role != user.role:
            user.role = payload.role
            changes.append(f"role={payload.role}")
        if payload.is_verified_author is not None and payload.is_verified_author != user.is_verified_author:
            if payload.is_verified_author:
                verified_author.grant_badge(db, user, "Staff granted you the Verified Author badge.")
            else:
                verified_author.revoke_badge(db, user)
            changes.append(f"is_verified_author={payload.is_verified_author}")
        if payload.email_verified is not None and payload.email_verified != user.email_verified:
            user.email_verified = payload.email_verified
            changes.append(f"email_verified={payload.email_verified}")
            if payload.email_verified:
                verified_author.check_and_auto_verify(db, user)

        log_staff_action(db, staff.id, "update_user", "user", user.id, note=", ".join(changes) or None)

    db.refresh(user)
    return schemas.UserMe.model_validate(user)


@router.put("/users/{user_id}/verify-author", response_model=schemas.Message)
def grant_verified_author(
    user_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.Message:
    user = _get_user(db, user_id)
    if user.is_verified_author:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already a verified author")
    with atomic(db):
        verified_author.grant_badge(db, user, "Staff granted you the Verified Author badge.")
        log_staff_action(db, staff.id, "grant_verified_author", "user", user.id)
    return schemas.Message(message="Verified author badge granted")


@router.delete("/users/{user_id}/verify-author", response_model=schemas.Message)
def revoke_verified_author(
    user_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.Message:
    user = _get_user(db, user_id)
    if not user.is_verified_author:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a verified author")
    with atomic(db):
        verified_author.revoke_badge(db, user)
        log_staff_action(db, staff.id, "revoke_verified_author", "user", user.id)
    return schemas.Message(message="Verified author badge revoked")


# ============================================================================
# DOCUMENTS & MODERATION
# ============================================================================


@router.get("/documents", response_model=schemas.Page[schemas.DocumentDetail])
def list_documents(
    status_filter: str | None = Query(None, alias="status", pattern="^(pending|approved|rejected)$"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> schemas.Page[schemas.DocumentDetail]:
    query = db.query(models.Document)
    if status_filter:
        query = query.filter(models.Document.status == status_filter)
    total = query.count()
    documents = (
        query.order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.DocumentDetail.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.get("/documents/pending", response_model=schemas.Page[schemas.DocumentDetail])
def list_pending(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> schemas.Page[schemas.DocumentDetail]:
    """Pending documents, oldest first."""
    query = db.query(models.Document).filter(models.Document.status == "pending")
    total = query.count()
    documents = (
        query.order_by(models.Document.created_at.asc(), models.Document.id.asc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.DocumentDetail.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.post("/documents/{document_id}/moderate", response_model=schemas.DocumentDetail)
def moderate_document(
    document_id: int,
    payload: schemas.ModerationDecision,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.DocumentDetail:
    """Approve or reject a pending document by hand."""
    document = _get_document(db, document_id)
    if document.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Document is already {document.status}",
        )

    approved = payload.action == "approve"
    with atomic(db):
        applied = moderation.apply_moderation_decision(
            db,
            document_id,
            approved=approved,
            reason=payload.reason,
            actor_id=staff.id,
        )
        if not applied:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document is no longer pending")
        log_staff_action(
            db, staff.id, f"{payload.action}_document", "document", document_id, note=payload.reason
        )

    if approved:
        previews.enqueue_preview(document_id)

    db.refresh(document)
    return schemas.DocumentDetail.model_validate(document)


@router.post("/documents/{document_id}/requeue", response_model=schemas.ModerationJob)
def requeue_document(
    document_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.ModerationJob:
    document = _get_document(db, document_id)
    if document.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending documents can be re-queued")

    with atomic(db):
        job = moderation.requeue(db, document_id)
        log_staff_action(db, staff.id, "requeue_moderation", "document", document_id)

    moderation.enqueue_moderation(document_id)
    db.refresh(job)
    return schemas.ModerationJob.model_validate(job)


@router.put("/documents/{document_id}/feature", response_model=schemas.DocumentDetail)
def feature_document(
    document_id: int,
    payload: schemas.FeatureRequest,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.DocumentDetail:
    document = _get_document(db, document_id)
    if payload.is_featured and document.status != "approved":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only approved documents can be featured")

    with atomic(db):
        document.is_featured = payload.is_featured
        log_staff_action(
            db, staff.id, "feature_document" if payload.is_featured else "unfeature_document", "document", document_id
        )
    db.refresh(document)
    return schemas.DocumentDetail.model_validate(document)


@router.get("/moderation/stats")
def moderation_stats(
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> dict:
    return moderation.queue_stats(db)


# ============================================================================
# REPORTS
# ============================================================================


@router.get("/reports", response_model=schemas.Page[schemas.Report])
def list_reports(
    status_filter: str | None = Query(None, alias="status", pattern="^(pending|resolved|dismissed)$"),
    report_type: str | None = Query(None, alias="type", pattern="^(document|rating|comment)$"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> schemas.Page[schemas.Report]:
    query = db.query(models.Report)
    if status_filter:
        query = query.filter(models.Report.status == status_filter)
    if report_type:
        query = query.filter(models.Report.report_type == report_type)
    total = query.count()
    reports = (
        query.order_by(models.Report.created_at.desc(), models.Report.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.Report.model_validate(r) for r in reports], total, params.page, params.limit
    )


@router.put("/reports/{report_id}/resolve", response_model=schemas.Report)
def resolve(
    report_id: int,
    payload: schemas.ResolveReportRequest,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_staff),
) -> schemas.Report:
    with atomic(db):
        report = resolve_report(db, report_id, payload.action, staff, payload.admin_note)
        log_staff_action(db, staff.id, f"report_{payload.action}", "report", report_id, note=payload.admin_note)
    db.refresh(report)
    return schemas.Report.model_validate(report)


# ============================================================================
# CREDITS
# ============================================================================


@router.post("/users/{user_id}/credits", response_model=schemas.CreditTransaction)
def adjust_credits(
    user_id: int,
    payload: schemas.CreditAdjustRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.CreditTransaction:
    """Add or remove credits (admin only). The balance cannot go below zero."""
    user = _get_user(db, user_id)
    with atomic(db):
        entry = apply_credit_change(
            db, user, payload.amount, "admin_adjustment", f"Admin adjustment: {payload.reason}"
        )
        log_staff_action(
            db, admin.id, "adjust_credits", "user", user.id, note=f"{payload.amount:+d}: {payload.reason}"
        )
    db.refresh(entry)
    return schemas.CreditTransaction.model_validate(entry)


@router.get("/credit-transactions", response_model=schemas.Page[schemas.CreditTransaction])
def list_credit_transactions(
    user_id: int | None = Query(None),
    transaction_type: str | None = Query(None),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> schemas.Page[schemas.CreditTransaction]:
    query = db.query(models.CreditTransaction)
    if user_id is not None:
        query = query.filter(models.CreditTransaction.user_id == user_id)
    if transaction_type:
        query = query.filter(models.CreditTransaction.transaction_type == transaction_type)
    total = query.count()
    items = (
        query.order_by(models.CreditTransaction.created_at.desc(), models.CreditTransaction.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.CreditTransaction.model_validate(t) for t in items], total, params.page, params.limit
    )


# ============================================================================
# STATISTICS & AUDIT
# ============================================================================


@router.get("/statistics")
def statistics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    _staff: models.User = Depends(require_staff),
) -> dict:
    return platform_statistics(db, days)


@router.get("/audit-logs", response_model=schemas.Page[schemas.AuditLog])
def audit_logs(
    actor_id: int | None = Query(None),
    action: str | None = Query(None),
    target_type: str | None = Query(None),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> schemas.Page[schemas.AuditLog]:
    """
    Get audit log (admin only).

    Supports filtering by actor_id, action, and target_type.
    """
    query = db.query(models.AuditLog)
    if actor_id:
        query = query.filter(models.AuditLog.actor_id == actor_id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    if target_type:
        query = query.filter(models.AuditLog.target_type == target_type)

    total = query.count()
    logs = (
        query.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.AuditLog.model_validate(log) for log in logs], total, params.page, params.limit
    )
