"""Rating endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import PageParams, get_db, page_params
from ..services import ratings as rating_service
from ..services.documents import get_approved_document
from ..services.reports import create_report

router = APIRouter(prefix="/api", tags=["Ratings"])


@router.post("/documents/{document_id}/rate")
def rate_document(
    document_id: int,
    payload: schemas.RatingCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """
    Rate a document from 1 to 5.

    Rating again replaces the previous rating. Authors cannot rate their own
    documents.
    """
    rating, created = rating_service.rate_document(
        db, current_user, document_id, payload.rating, payload.comment
    )
    db.commit()
    db.refresh(rating)
    document = db.get(models.Document, document_id)
    return {
        "success": True,
        "created": created,
        "rating": schemas.Rating.model_validate(rating),
        "average_rating": document.average_rating,
        "rating_count": document.rating_count,
    }


@router.delete("/documents/{document_id}/rate", response_model=schemas.Message)
def delete_rating(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    rating_service.delete_rating(db, current_user, document_id)
    db.commit()
    return schemas.Message(message="Rating deleted")


@router.get("/documents/{document_id}/ratings", response_model=schemas.RatingList)
def list_ratings(
    document_id: int,
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> schemas.RatingList:
    get_approved_document(db, document_id)
    items, total = rating_service.list_ratings(
        db, document_id, params.page, params.limit, sort_by=sort_by, sort_order=sort_order
    )
    page = schemas.Page.build(
        [schemas.Rating.model_validate(r) for r in items], total, params.page, params.limit
    )
    return schemas.RatingList(
        **page.model_dump(exclude={"items"}),
        items=page.items,
        stats=schemas.RatingStats(**rating_service.rating_stats(db, document_id)),
    )


@router.get("/documents/{document_id}/my-rating", response_model=schemas.Rating)
def get_my_rating(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Rating:
    rating = rating_service.get_user_rating(db, current_user.id, document_id)
    if rating is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Rating not found",
        )
    return schemas.Rating.model_validate(rating)


@router.get("/ratings/top-rated", response_model=list[schemas.Document])
def top_rated(
    limit: int = Query(10, ge=1, le=50),
    min_ratings: int = Query(3, ge=1),
    db: Session = Depends(get_db),
) -> list[schemas.Document]:
    documents = rating_service.top_rated_documents(db, limit=limit, min_ratings=min_ratings)
    return [schemas.Document.model_validate(d) for d in documents]


@router.post("/ratings/{rating_id}/report", response_model=schemas.Report, status_code=status.HTTP_201_CREATED)
def report_rating(
    rating_id: int,
    payload: schemas.ReportCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Report:
    report = create_report(db, current_user, "rating", rating_id, payload.reason, payload.description)
    db.commit()
    return schemas.Report.model_validate(report)
