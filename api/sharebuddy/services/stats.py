"""Platform statistics for the admin dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models


def _count_since(db: Session, column, since: datetime) -> int:
    return int(db.query(func.count()).filter(column >= since).scalar() or 0)


def platform_statistics(db: Session, days: int = 30) -> dict:
    """
    Totals plus activity over the last ``days`` days.

    Credit flows are summed from the ledger per transaction type.
    """
    since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)

    users_total = db.query(func.count(models.User.id)).scalar() or 0
    users_active = (
        db.query(func.count(models.User.id)).filter(models.User.is_active == True).scalar() or 0  # noqa: E712
    )
    verified_authors = (
        db.query(func.count(models.User.id)).filter(models.User.is_verified_author == True).scalar() or 0  # noqa: E712
    )

    by_status = dict(
        db.query(models.Document.status, func.count(models.Document.id))
        .group_by(models.Document.status)
        .all()
    )

    flows = dict(
        db.query(models.CreditTransaction.transaction_type, func.coalesce(func.sum(models.CreditTransaction.amount), 0))
        .filter(models.CreditTransaction.created_at >= since)
        .group_by(models.CreditTransaction.transaction_type)
        .all()
    )

    revenue = (
        db.query(func.coalesce(func.sum(models.PaymentTransaction.amount), 0))
        .filter(
            models.PaymentTransaction.payment_status == "succeeded",
            models.PaymentTransaction.created_at >= since,
        )
        .scalar()
    )

    subject_count = func.count(models.Document.id).label("count")
    top_subjects = (
        db.query(models.Document.subject, subject_count)
        .filter(models.Document.status == "approved", models.Document.subject.isnot(None))
        .group_by(models.Document.subject)
        .order_by(subject_count.desc(), models.Document.subject)
        .limit(10)
        .all()
    )

    return {
        "period_days": days,
        "users": {
            "total": int(users_total),
            "active": int(users_active),
            "verified_authors": int(verified_authors),
            "new": _count_since(db, models.User.created_at, since),
        },
        "documents": {
            "total": int(sum(by_status.values())),
            "pending": int(by_status.get("pending", 0)),
            "approved": int(by_status.get("approved", 0)),
            "rejected": int(by_status.get("rejected", 0)),
            "new": _count_since(db, models.Document.created_at, since),
        },
        "activity": {
            "downloads": _count_since(db, models.Download.created_at, since),
            "ratings": _count_since(db, models.Rating.created_at, since),
            "comments": _count_since(db, models.Comment.created_at, since),
            "questions": _count_since(db, models.Question.created_at, since),
        },
        "credits": {t: int(v) for t, v in flows.items()},
        "revenue_usd": round(float(revenue or 0), 2),
        "top_subjects": [{"subject": s, "count": int(n)} for s, n in top_subjects],
    }
