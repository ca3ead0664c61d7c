"""Document preview and thumbnail endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from .. import models, storage
from ..auth import get_current_user, get_current_user_optional, require_ownership
from ..deps import get_db
from ..services import previews
from ..services.documents import get_visible_document

router = APIRouter(prefix="/api/preview", tags=["Preview"])


def _file_response(relative_path: str | None, media_type: str, missing: str) -> FileResponse:
    if not relative_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=missing)
    path = storage.absolute_path(relative_path)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=missing)
    return FileResponse(path, media_type=media_type)


@router.get("/{document_id}/info")
def get_preview_info(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> dict:
    document = get_visible_document(db, document_id, current_user)
    return previews.preview_info(document)


@router.get("/thumbnail/{document_id}")
def get_thumbnail(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> FileResponse:
    document = get_visible_document(db, document_id, current_user)
    return _file_response(document.thumbnail_path, "image/png", "Thumbnail not available")


@router.post("/{document_id}/generate")
def generate(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """Build the preview now (author or staff). PDF documents only."""
    document = get_visible_document(db, document_id, current_user)
    require_ownership(document.author_id, current_user)

    previews.generate_preview(db, document)
    db.commit()
    db.refresh(document)
    return previews.preview_info(document)


@router.get("/{document_id}")
def get_preview(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> FileResponse:
    """The first pages of a PDF document, free to read."""
    document = get_visible_document(db, document_id, current_user)
    return _file_response(document.preview_path, "application/pdf", "Preview not available")
