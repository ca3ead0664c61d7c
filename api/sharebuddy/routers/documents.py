"""Document catalog, upload, download and per-document actions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas, storage
from ..auth import get_current_user, get_current_user_optional, require_ownership
from ..deps import PageParams, get_db, page_params
from ..services import documents as document_service
from ..services import moderation
from ..services.rate_limit import enforce_rate_limit
from ..services.recommendations import popular_documents, track_interaction
from ..services.reports import create_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


def _page(documents: list[models.Document], total: int, params: PageParams) -> schemas.Page[schemas.Document]:
    return schemas.Page.build(
        [schemas.Document.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.get("", response_model=schemas.Page[schemas.Document])
def list_documents(
    search: str | None = Query(None, max_length=200),
    subject: str | None = Query(None),
    university: str | None = Query(None),
    major: str | None = Query(None),
    min_rating: float | None = Query(None, ge=0, le=5),
    max_cost: int | None = Query(None, ge=0),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> schemas.Page[schemas.Document]:
    """
    List approved documents.

    Unknown ``sort_by`` values fall back to ``created_at``.
    """
    d = models.Document
    query = db.query(d).filter(d.status == "approved")

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(d.title.ilike(pattern), d.description.ilike(pattern)))
    if subject:
        query = query.filter(d.subject.ilike(f"%{subject}%"))
    if university:
        query = query.filter(d.university.ilike(f"%{university}%"))
    if major:
        query = query.filter(d.author.has(models.User.major.ilike(f"%{major}%")))
    if min_rating is not None:
        query = query.filter(d.average_rating >= min_rating)
    if max_cost is not None:
        query = query.filter(d.credit_cost <= max_cost)

    column = document_service.LIST_SORT_COLUMNS.get(sort_by, d.created_at)
    ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

    total = query.count()
    documents = query.order_by(ordering, d.id.desc()).offset(params.offset).limit(params.limit).all()
    return _page(documents, total, params)


@router.get("/bookmarks", response_model=schemas.Page[schemas.Document])
def list_bookmarks(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.Document]:
    query = (
        db.query(models.Document)
        .join(models.Bookmark, models.Bookmark.document_id == models.Document.id)
        .filter(models.Bookmark.user_id == current_user.id)
    )
    total = query.count()
    documents = (
        query.order_by(models.Bookmark.created_at.desc(), models.Bookmark.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return _page(documents, total, params)


@router.get("/featured", response_model=list[schemas.Document])
def list_featured(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[schemas.Document]:
    documents = (
        db.query(models.Document)
        .filter(models.Document.status == "approved", models.Document.is_featured == True)  # noqa: E712
        .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .limit(limit)
        .all()
    )
    return [schemas.Document.model_validate(d) for d in documents]


@router.get("/recent", response_model=list[schemas.Document])
def list_recent(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[schemas.Document]:
    documents = (
        db.query(models.Document)
        .filter(models.Document.status == "approved")
        .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .limit(limit)
        .all()
    )
    return [schemas.Document.model_validate(d) for d in documents]


@router.get("/popular", response_model=list[schemas.Document])
def list_popular(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[schemas.Document]:
    return [schemas.Document.model_validate(d) for d in popular_documents(db, limit)]


@router.get("/tags/popular")
def list_popular_tags(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> list[dict]:
    """Most used tags on approved documents."""
    count = func.count(models.DocumentTag.id).label("count")
    rows = (
        db.query(models.DocumentTag.tag_name, count)
        .join(models.Document, models.Document.id == models.DocumentTag.document_id)
        .filter(models.Document.status == "approved")
        .group_by(models.DocumentTag.tag_name)
        .order_by(count.desc(), models.DocumentTag.tag_name)
        .limit(limit)
        .all()
    )
    return [{"tag": tag, "count": int(n)} for tag, n in rows]


@router.post("/upload", response_model=schemas.UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str | None = Form(None, max_length=5000),
    subject: str | None = Form(None, max_length=200),
    university: str | None = Form(None, max_length=200),
    credit_cost: int = Form(0, ge=0, le=1000),
    tags: str = Form(""),  # Comma-separated tags
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UploadResponse:
    """
    Upload a document for moderation.

    The document starts as ``pending``. Moderation is queued after the
    commit; if the queue is unreachable the upload still succeeds and staff
    can re-queue the job.
    """
    enforce_rate_limit(request, f"upload:{current_user.id}", limit=20, window_seconds=3600)

    file_content = await file.read()

    document, job = document_service.create_document(
        db,
        current_user,
        filename=file.filename,
        content=file_content,
        title=title,
        description=description,
        subject=subject,
        university=university,
        credit_cost=credit_cost,
        tags=tags,
    )
    file_path = document.file_path
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.delete_file(file_path)
        raise
    db.refresh(document)
    db.refresh(job)

    moderation.enqueue_moderation(document.id)

    return schemas.UploadResponse(
        message="Document uploaded and queued for moderation",
        document=schemas.Document.model_validate(document),
        moderation_job=schemas.ModerationJob.model_validate(job),
    )


@router.get("/{document_id}", response_model=schemas.DocumentDetail)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.DocumentDetail:
    """
    Document detail.

    Pending and rejected documents are visible to their author and staff only.
    """
    document = document_service.get_visible_document(db, document_id, current_user)
    detail = schemas.DocumentDetail.model_validate(document)
    if current_user is not None:
        detail.user_interaction = schemas.UserInteraction(
            **document_service.user_interaction(db, document, current_user)
        )
    return detail


@router.put("/{document_id}", response_model=schemas.DocumentDetail)
def update_document(
    document_id: int,
    payload: schemas.DocumentUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.DocumentDetail:
    document = document_service.get_visible_document(db, document_id, current_user)
    require_ownership(document.author_id, current_user)

    changes = payload.model_dump(exclude_unset=True)
    tags = changes.pop("tags", None)
    for field, value in changes.items():
        if value is not None:
            setattr(document, field, value)
    if tags is not None:
        document_service.set_tags(db, document, tags)

    db.commit()
    db.refresh(document)
    logger.info(f"Document {document.id} updated by user {current_user.id}")
    return schemas.DocumentDetail.model_validate(document)


@router.delete("/{document_id}", response_model=schemas.Message)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    document = document_service.get_visible_document(db, document_id, current_user)
    require_ownership(document.author_id, current_user)

    document_service.delete_document(db, document)
    db.commit()
    return schemas.Message(message="Document deleted")


@router.post("/{document_id}/download", response_model=schemas.DownloadResponse)
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.DownloadResponse:
    """
    Pay for (if needed) and download a document.

    Responds 402 with ``{required, available}`` when the balance is too low.
    """
    result = document_service.download_document(db, current_user, document_id)
    db.commit()
    return schemas.DownloadResponse(**result)


@router.post("/{document_id}/view")
def record_view(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> dict:
    document = document_service.get_approved_document(db, document_id)
    document.view_count = models.Document.view_count + 1
    db.flush()
    if current_user is not None:
        track_interaction(db, current_user.id, document.id, "view")
    db.commit()
    db.refresh(document)
    return {"success": True, "document_id": document.id, "view_count": document.view_count}


@router.post("/{document_id}/bookmark", response_model=schemas.BookmarkResponse)
def add_bookmark(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.BookmarkResponse:
    """Bookmark a document. Bookmarking twice is a no-op."""
    document = document_service.get_approved_document(db, document_id)
    existing = (
        db.query(models.Bookmark)
        .filter(models.Bookmark.user_id == current_user.id, models.Bookmark.document_id == document.id)
        .first()
    )
    if existing is None:
        db.add(models.Bookmark(user_id=current_user.id, document_id=document.id))
        db.flush()
        track_interaction(db, current_user.id, document.id, "bookmark")
        db.commit()
    return schemas.BookmarkResponse(document_id=document.id, bookmarked=True)


@router.delete("/{document_id}/bookmark", response_model=schemas.BookmarkResponse)
def remove_bookmark(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.BookmarkResponse:
    deleted = (
        db.query(models.Bookmark)
        .filter(models.Bookmark.user_id == current_user.id, models.Bookmark.document_id == document_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bookmark not found",
        )
    db.commit()
    return schemas.BookmarkResponse(document_id=document_id, bookmarked=False)


@router.post("/{document_id}/report", response_model=schemas.Report, status_code=status.HTTP_201_CREATED)
def report_document(
    document_id: int,
    payload: schemas.ReportCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Report:
    document_service.get_visible_document(db, document_id, current_user)
    report = create_report(db, current_user, "document", document_id, payload.reason, payload.description)
    db.commit()
    return schemas.Report.model_validate(report)


@router.get("/{document_id}/analytics")
def get_analytics(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """Download, view, rating and earnings figures for the author or staff."""
    document = document_service.get_visible_document(db, document_id, current_user)
    require_ownership(document.author_id, current_user)
    return document_service.document_analytics(db, document)
