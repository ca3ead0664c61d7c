"""Recommendation endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..services import recommendations as recommendation_service
from ..services.documents import get_approved_document

router = APIRouter(prefix="/api/recommendations", tags=["Recommendations"])


class TrackRequest(BaseModel):
    document_id: int
    interaction_type: Literal["view", "download", "bookmark", "rate", "comment"]
    interaction_value: float | None = None


@router.get("")
def get_recommendations(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """Collaborative recommendations, popular documents when there are no similar users."""
    documents, source = recommendation_service.collaborative_recommendations(db, current_user.id, limit)
    return {"source": source, "items": [schemas.Document.model_validate(d) for d in documents]}


@router.get("/similar/{document_id}")
def get_similar(
    document_id: int,
    limit: int = Query(5, ge=1, le=20),
    db: Session = Depends(get_db),
) -> dict:
    source = get_approved_document(db, document_id)
    ranked = recommendation_service.similar_documents(db, source, limit)
    return {
        "document_id": source.id,
        "items": [
            {"document": schemas.Document.model_validate(doc), "similarity_score": score}
            for doc, score in ranked
        ],
    }


@router.get("/popular", response_model=list[schemas.Document])
def get_popular(
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> list[schemas.Document]:
    documents = recommendation_service.popular_documents(db, limit, offset)
    return [schemas.Document.model_validate(d) for d in documents]


@router.post("/track", response_model=schemas.Message)
def track(
    payload: TrackRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    get_approved_document(db, payload.document_id)
    recommendation_service.track_interaction(
        db, current_user.id, payload.document_id, payload.interaction_type, payload.interaction_value
    )
    db.commit()
    return schemas.Message(message="Interaction recorded")
