"""User reports against documents, ratings and comments."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

REPORT_TYPES = ("document", "rating", "comment")
_TARGET_COLUMNS = {
    "document": ("document_id", models.Document),
    "rating": ("rating_id", models.Rating),
    "comment": ("comment_id", models.Comment),
}


def create_report(
    db: Session,
    reporter: models.User,
    report_type: str,
    target_id: int,
    reason: str,
    description: str | None = None,
) -> models.Report:
    """
    File a report. One pending report per reporter and target. Flushes only.
    """
    if report_type not in REPORT_TYPES:
        raise ValidationFailedError(f"Unknown report type: {report_type}")

    column, model = _TARGET_COLUMNS[report_type]
    target = db.get(model, target_id)
    if target is None:
        raise NotFoundError(f"{report_type.capitalize()} not found")

    existing = (
        db.query(models.Report.id)
        .filter(
            models.Report.reporter_id == reporter.id,
            models.Report.report_type == report_type,
            getattr(models.Report, column) == target_id,
            models.Report.status == "pending",
        )
        .first()
    )
    if existing:
        raise ConflictError("You have already reported this")

    fields = {column: target_id}
    if report_type != "document":
        # Keep the document on rating/comment reports for staff context
        fields["document_id"] = target.document_id

    report = models.Report(
        reporter_id=reporter.id,
        report_type=report_type,
        reason=reason,
        description=description,
        status="pending",
        **fields,
    )
    db.add(report)
    db.flush()
    logger.info(f"User {reporter.id} reported {report_type} {target_id} ({reason})")
    return report


def resolve_report(
    db: Session, report_id: int, action: str, staff: models.User, admin_note: str | None = None
) -> models.Report:
    """
    Close a pending report: ``dismiss`` marks it dismissed, ``take_action`` resolved.

    Raises:
        NotFoundError: If the report does not exist
        ValidationFailedError: If the report is not pending
    """
    report = db.get(models.Report, report_id)
    if report is None:
        raise NotFoundError("Report not found")
    if report.status != "pending":
        raise ValidationFailedError("Report has already been handled")

    report.status = "dismissed" if action == "dismiss" else "resolved"
    report.admin_note = admin_note
    report.resolved_by = staff.id
    db.flush()
    return report
