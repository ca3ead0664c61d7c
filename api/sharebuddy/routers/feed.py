"""Activity feed: followed authors, trending and recommended documents."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import get_current_user
from ..deps import PageParams, get_db, page_params
from ..services.recommendations import recommended_for_user, trending_documents
from ..services.social import followed_feed

router = APIRouter(prefix="/api/feed", tags=["Feed"])


@router.get("", response_model=schemas.Page[schemas.Document])
def get_feed(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.Document]:
    """Recent approved documents from the authors the user follows."""
    documents, total = followed_feed(db, current_user.id, params.page, params.limit)
    return schemas.Page.build(
        [schemas.Document.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.get("/trending")
def get_trending(
    limit: int = Query(10, ge=1, le=50),
    days: int = Query(settings.TRENDING_WINDOW_DAYS, ge=1, le=90),
    db: Session = Depends(get_db),
) -> dict:
    ranked = trending_documents(db, limit=limit, days=days)
    return {
        "days": days,
        "items": [
            {"document": schemas.Document.model_validate(doc), "trending_score": score}
            for doc, score in ranked
        ],
    }


@router.get("/recommended")
def get_recommended(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    documents, source = recommended_for_user(db, current_user.id, limit)
    return {"source": source, "items": [schemas.Document.model_validate(d) for d in documents]}
