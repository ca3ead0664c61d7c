"""Comment endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import PageParams, get_db, page_params
from ..services import comments as comment_service
from ..services.documents import get_approved_document
from ..services.reports import create_report

router = APIRouter(prefix="/api", tags=["Comments"])


def _serialize(db: Session, comments: list[models.Comment], user: models.User | None) -> list[schemas.Comment]:
    annotated = comment_service.annotate(db, comments, user.id if user else None)
    return [
        schemas.Comment.model_validate(row["comment"]).model_copy(
            update={k: row[k] for k in ("like_count", "reply_count", "is_liked")}
        )
        for row in annotated
    ]


@router.post(
    "/documents/{document_id}/comments",
    response_model=schemas.Comment,
    status_code=status.HTTP_201_CREATED,
)
def create_comment(
    document_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Comment:
    """Comment on a document or reply to a top-level comment."""
    comment = comment_service.create_comment(
        db, current_user, document_id, payload.content, parent_id=payload.parent_id
    )
    db.commit()
    db.refresh(comment)
    return schemas.Comment.model_validate(comment)


@router.get("/documents/{document_id}/comments", response_model=schemas.Page[schemas.Comment])
def list_comments(
    document_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.Page[schemas.Comment]:
    get_approved_document(db, document_id)
    comments, total = comment_service.list_comments(db, document_id, params.page, params.limit)
    return schemas.Page.build(_serialize(db, comments, current_user), total, params.page, params.limit)


@router.get("/comments/{comment_id}/replies", response_model=schemas.Page[schemas.Comment])
def list_replies(
    comment_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.Page[schemas.Comment]:
    parent = comment_service.get_comment(db, comment_id)
    replies, total = comment_service.list_comments(
        db, parent.document_id, params.page, params.limit, parent_id=parent.id
    )
    return schemas.Page.build(_serialize(db, replies, current_user), total, params.page, params.limit)


@router.put("/comments/{comment_id}", response_model=schemas.Comment)
def update_comment(
    comment_id: int,
    payload: schemas.CommentUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Comment:
    comment = comment_service.update_comment(db, current_user, comment_id, payload.content)
    db.commit()
    db.refresh(comment)
    return _serialize(db, [comment], current_user)[0]


@router.delete("/comments/{comment_id}", response_model=schemas.Message)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    removed = comment_service.delete_comment(db, current_user, comment_id)
    db.commit()
    return schemas.Message(message="Comment deleted" if removed else "Comment removed, replies kept")


@router.post("/comments/{comment_id}/like", response_model=schemas.LikeResponse)
def like_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeResponse:
    count = comment_service.like_comment(db, current_user, comment_id)
    db.commit()
    return schemas.LikeResponse(comment_id=comment_id, liked=True, like_count=count)


@router.delete("/comments/{comment_id}/like", response_model=schemas.LikeResponse)
def unlike_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeResponse:
    count = comment_service.unlike_comment(db, current_user, comment_id)
    db.commit()
    return schemas.LikeResponse(comment_id=comment_id, liked=False, like_count=count)


@router.post("/comments/{comment_id}/report", response_model=schemas.Report, status_code=status.HTTP_201_CREATED)
def report_comment(
    comment_id: int,
    payload: schemas.ReportCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Report:
    report = create_report(db, current_user, "comment", comment_id, payload.reason, payload.description)
    db.commit()
    return schemas.Report.model_validate(report)
