"""Search endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import PageParams, get_db, page_params
from ..services import search as search_service
from ..services.search import SearchFilters

router = APIRouter(prefix="/api/search", tags=["Search"])


def _results(rows: list, total: int, params: PageParams, query: str | None) -> dict:
    page = schemas.Page.build(
        [
            {"document": schemas.Document.model_validate(doc), "relevance": round(relevance, 4)}
            for doc, relevance in rows
        ],
        total,
        params.page,
        params.limit,
    )
    return {"query": query or "", **page.model_dump()}


@router.get("/documents")
def search_documents(
    q: str | None = Query(None, max_length=200),
    subject: str | None = Query(None),
    university: str | None = Query(None),
    min_rating: float | None = Query(None, ge=0, le=5),
    max_cost: int | None = Query(None, ge=0),
    file_type: str | None = Query(None),
    verified_only: bool = Query(False),
    tags: str | None = Query(None, description="Comma-separated tags, any of"),
    sort_by: str = Query("relevance"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict:
    """
    Search approved documents.

    Full-text ranked on PostgreSQL; an empty query lists every approved
    document under the filters.
    """
    filters = SearchFilters(
        subject=subject,
        university=university,
        min_rating=min_rating,
        max_cost=max_cost,
        file_type=file_type,
        verified_only=verified_only,
        tags=search_service.parse_tags(tags),
        sort_by=sort_by,
    )
    rows, total = search_service.search_documents(db, q, filters, params.page, params.limit)
    return _results(rows, total, params, q)


@router.get("/advanced")
def advanced_search(
    keywords: str | None = Query(None, max_length=200),
    author: str | None = Query(None),
    subject: str | None = Query(None),
    university: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    tags: str | None = Query(None),
    min_rating: float | None = Query(None, ge=0, le=5),
    max_cost: int | None = Query(None, ge=0),
    sort_by: str = Query("relevance"),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict:
    filters = SearchFilters(
        subject=subject,
        university=university,
        min_rating=min_rating,
        max_cost=max_cost,
        tags=search_service.parse_tags(tags),
        author=author,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
    )
    rows, total = search_service.search_documents(db, keywords, filters, params.page, params.limit)
    return _results(rows, total, params, keywords)


@router.get("/suggestions")
def suggestions(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(10, ge=1, le=20),
    db: Session = Depends(get_db),
) -> list[dict]:
    return search_service.search_suggestions(db, q, limit)


@router.get("/popular")
def popular(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[dict]:
    return search_service.popular_searches(db, limit)


@router.get("/users")
def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict:
    rows, total = search_service.search_users(db, q, params.page, params.limit)
    page = schemas.Page.build(
        [
            {
                "user": schemas.UserPublic.model_validate(row["user"]),
                "document_count": row["document_count"],
                "follower_count": row["follower_count"],
            }
            for row in rows
        ],
        total,
        params.page,
        params.limit,
    )
    return page.model_dump()
