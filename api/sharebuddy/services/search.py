"""Document and user search.

The document query is assembled from one list of filter conditions that the
result query and the count query both use. On PostgreSQL the text match is
full-text search ranked with ``ts_rank``; elsewhere it degrades to ILIKE.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Select, and_, case, distinct, func, literal, or_, select
from sqlalchemy.orm import Session

from .. import models
from ..db import is_postgres

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("relevance", "newest", "popular", "rating")

_NON_WORD = re.compile(r"[^\w]", re.UNICODE)


@dataclass
class SearchFilters:
    subject: str | None = None
    university: str | None = None
    min_rating: float | None = None
    max_cost: int | None = None
    file_type: str | None = None
    verified_only: bool = False
    tags: list[str] = field(default_factory=list)
    author: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    sort_by: str = "relevance"


def process_terms(query: str | None) -> list[str]:
    """Split on whitespace, strip non-word characters, drop empty terms."""
    if not query:
        return []
    terms = (_NON_WORD.sub("", term) for term in query.strip().split())
    return [t for t in terms if t]


def parse_tags(raw: str | list[str] | None) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    return [t.strip() for t in raw if t and t.strip()]


def _search_vector():
    d = models.Document
    return func.to_tsvector(
        "simple",
        func.coalesce(d.title, "")
        + " "
        + func.coalesce(d.description, "")
        + " "
        + func.coalesce(d.subject, ""),
    )


def _ts_query(terms: list[str]):
    return func.to_tsquery("simple", " | ".join(terms))


def text_condition(terms: list[str], full_text: bool):
    """Condition matching any of ``terms``; None when there are no terms."""
    if not terms:
        return None
    if full_text:
        return _search_vector().op("@@")(_ts_query(terms))

    d = models.Document
    return or_(
        *[
            or_(d.title.ilike(f"%{t}%"), d.description.ilike(f"%{t}%"), d.subject.ilike(f"%{t}%"))
            for t in terms
        ]
    )


def relevance_expression(terms: list[str], full_text: bool):
    if not terms:
        return literal(0.0)
    if full_text:
        return func.ts_rank(_search_vector(), _ts_query(terms))

    d = models.Document
    score = literal(0.0)
    for t in terms:
        score = score + case((d.title.ilike(f"%{t}%"), 2.0), else_=0.0)
        score = score + case((d.description.ilike(f"%{t}%"), 1.0), else_=0.0)
    return score


def build_filters(query: str | None, filters: SearchFilters, full_text: bool = True) -> list:
    """
    The WHERE conditions for a document search.

    Shared by the result query and the count query.
    """
    d = models.Document
    conditions: list = [d.status == "approved"]

    match = text_condition(process_terms(query), full_text)
    if match is not None:
        conditions.append(match)

    if filters.subject:
        conditions.append(d.subject.ilike(f"%{filters.subject}%"))
    if filters.university:
        conditions.append(d.university.ilike(f"%{filters.university}%"))
    if filters.min_rating is not None:
        conditions.append(d.average_rating >= filters.min_rating)
    if filters.max_cost is not None:
        conditions.append(d.credit_cost <= filters.max_cost)
    if filters.file_type:
        conditions.append(d.file_type == filters.file_type.lower())
    if filters.verified_only:
        conditions.append(d.author.has(models.User.is_verified_author == True))  # noqa: E712
    if filters.author:
        conditions.append(d.author.has(models.User.username.ilike(f"%{filters.author}%")))
    if filters.date_from:
        conditions.append(d.created_at >= filters.date_from)
    if filters.date_to:
        conditions.append(d.created_at <= filters.date_to)

    tags = parse_tags(filters.tags)
    if tags:
        # Any of the tags, as EXISTS so a document never appears twice
        conditions.append(
            d.tags.any(or_(*[models.DocumentTag.tag_name.ilike(f"%{t}%") for t in tags]))
        )

    return conditions


def _order_by(sort_by: str, relevance):
    d = models.Document
    if sort_by == "newest":
        return [d.created_at.desc(), d.id.desc()]
    if sort_by == "popular":
        return [d.download_count.desc(), d.id.desc()]
    if sort_by == "rating":
        return [d.average_rating.desc(), d.rating_count.desc(), d.id.desc()]
    return [relevance.desc(), d.download_count.desc(), d.id.desc()]


def build_document_search(
    query: str | None,
    filters: SearchFilters,
    full_text: bool = True,
) -> Select:
    """
    Select of ``(Document, relevance)`` rows for a search.

    An empty query matches every approved document. Unknown sort keys fall
    back to relevance.
    """
    terms = process_terms(query)
    relevance = relevance_expression(terms, full_text).label("relevance")
    sort_by = filters.sort_by if filters.sort_by in SORT_OPTIONS else "relevance"

    return (
        select(models.Document, relevance)
        .where(and_(*build_filters(query, filters, full_text)))
        .order_by(*_order_by(sort_by, relevance))
    )


def build_count_query(query: str | None, filters: SearchFilters, full_text: bool = True) -> Select:
    return select(func.count(models.Document.id)).where(and_(*build_filters(query, filters, full_text)))


def search_documents(
    db: Session,
    query: str | None,
    filters: SearchFilters,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[tuple[models.Document, float]], int]:
    """Run a document search; returns ``[(document, relevance)]`` and the total."""
    full_text = is_postgres(db)
    stmt = build_document_search(query, filters, full_text).offset((page - 1) * limit).limit(limit)
    rows = db.execute(stmt).all()
    total = db.execute(build_count_query(query, filters, full_text)).scalar_one()
    return [(row[0], float(row[1] or 0)) for row in rows], int(total)


def search_suggestions(db: Session, query: str, limit: int = 10) -> list[dict]:
    rows = (
        db.query(models.Document.id, models.Document.title)
        .filter(models.Document.status == "approved", models.Document.title.ilike(f"%{query}%"))
        .order_by(models.Document.download_count.desc(), models.Document.id.desc())
        .limit(limit)
        .all()
    )
    return [{"document_id": doc_id, "title": title} for doc_id, title in rows]


def popular_searches(db: Session, limit: int = 10) -> list[dict]:
    """Most common subjects among approved documents."""
    count = func.count(models.Document.id).label("count")
    rows = (
        db.query(models.Document.subject, count)
        .filter(models.Document.status == "approved", models.Document.subject.isnot(None))
        .group_by(models.Document.subject)
        .order_by(count.desc(), models.Document.subject)
        .limit(limit)
        .all()
    )
    return [{"term": subject, "count": int(n)} for subject, n in rows]


def search_users(db: Session, query: str, page: int = 1, limit: int = 20) -> tuple[list[dict], int]:
    """Active users matching username, full name or university; by followers then documents."""
    u = models.User
    pattern = f"%{query}%"
    match = and_(
        u.is_active == True,  # noqa: E712
        or_(u.username.ilike(pattern), u.full_name.ilike(pattern), u.university.ilike(pattern)),
    )

    document_count = func.count(distinct(models.Document.id)).label("document_count")
    follower_count = func.count(distinct(models.Follow.follower_id)).label("follower_count")
    rows = (
        db.query(u, document_count, follower_count)
        .outerjoin(
            models.Document,
            and_(models.Document.author_id == u.id, models.Document.status == "approved"),
        )
        .outerjoin(models.Follow, models.Follow.following_id == u.id)
        .filter(match)
        .group_by(u.id)
        .order_by(follower_count.desc(), document_count.desc(), u.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total = db.query(func.count(u.id)).filter(match).scalar()

    return [
        {"user": user, "document_count": int(docs), "follower_count": int(followers)}
        for user, docs, followers in rows
    ], int(total or 0)
