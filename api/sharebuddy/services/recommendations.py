"""Document recommendations.

Scoring is done in SQL:

- popular: ``download_count * 2 + view_count + average_rating * 10``
- trending: ``downloads * 3 + ratings * 2 + comments`` inside a recent window
- content-based: 3 same university and subject, 2 same university or
  subject, 1 same author
- collaborative: documents touched by similar users (``user_similarity``),
  ranked by how many similar users touched them
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, case, delete, distinct, func, or_, select
from sqlalchemy.orm import Session

from .. import models, settings
from ..cache import cache_get, cache_set

logger = logging.getLogger(__name__)

INTERACTION_TYPES = ("view", "download", "bookmark", "rate", "comment")

# Interactions that mean the user has already seen a document
SEEN_INTERACTIONS = ("view", "download", "bookmark")

MIN_COMMON_DOCUMENTS = 2
TRENDING_CACHE_TTL = 300


def _approved():
    return models.Document.status == "approved"


# ============================================================================
# INTERACTIONS
# ============================================================================


def track_interaction(
    db: Session,
    user_id: int,
    document_id: int,
    interaction_type: str,
    interaction_value: float | None = None,
) -> None:
    """
    Record an implicit-feedback event.

    Runs inside a savepoint so a failure never disturbs the caller's
    transaction; errors are logged and swallowed.
    """
    if interaction_type not in INTERACTION_TYPES:
        logger.warning(f"Ignoring unknown interaction type '{interaction_type}'")
        return

    try:
        with db.begin_nested():
            db.add(
                models.UserDocumentInteraction(
                    user_id=user_id,
                    document_id=document_id,
                    interaction_type=interaction_type,
                    interaction_value=interaction_value,
                )
            )
    except Exception as e:
        logger.error(
            f"Failed to track {interaction_type} of document {document_id} by user {user_id}: {e}",
            exc_info=True,
        )


# ============================================================================
# USER SIMILARITY
# ============================================================================


def find_similar_users(db: Session, user_id: int, limit: int = 10) -> list[dict]:
    """Most similar users first, read from the ``user_similarity`` table."""
    sim = models.UserSimilarity
    other = case((sim.user_id_1 == user_id, sim.user_id_2), else_=sim.user_id_1)
    rows = (
        db.query(
            other.label("similar_user_id"),
            sim.similarity_score,
            sim.common_interactions,
        )
        .filter(or_(sim.user_id_1 == user_id, sim.user_id_2 == user_id))
        .order_by(sim.similarity_score.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "similar_user_id": row.similar_user_id,
            "similarity_score": row.similarity_score,
            "common_interactions": row.common_interactions,
        }
        for row in rows
    ]


def refresh_user_similarity(db: Session) -> int:
    """
    Rebuild ``user_similarity`` from interactions.

    Two users are similar when they touched at least MIN_COMMON_DOCUMENTS of
    the same documents; the score is the Jaccard index of their document
    sets. Flushes only and returns the number of pairs written.
    """
    touched = (
        select(
            models.UserDocumentInteraction.user_id.label("user_id"),
            models.UserDocumentInteraction.document_id.label("document_id"),
        )
        .distinct()
        .subquery()
    )

    set_sizes = dict(
        db.execute(
            select(touched.c.user_id, func.count()).group_by(touched.c.user_id)
        ).all()
    )

    a = touched.alias("a")
    b = touched.alias("b")
    common = func.count().label("common")
    pairs = db.execute(
        select(a.c.user_id, b.c.user_id, common)
        .join(b, and_(a.c.document_id == b.c.document_id, a.c.user_id < b.c.user_id))
        .group_by(a.c.user_id, b.c.user_id)
        .having(func.count() >= MIN_COMMON_DOCUMENTS)
    ).all()

    db.execute(delete(models.UserSimilarity))
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    for user_1, user_2, overlap in pairs:
        union = set_sizes[user_1] + set_sizes[user_2] - overlap
        db.add(
            models.UserSimilarity(
                user_id_1=user_1,
                user_id_2=user_2,
                similarity_score=overlap / union if union else 0.0,
                common_interactions=overlap,
                computed_at=now,
            )
        )
    db.flush()

    logger.info(f"User similarity refreshed: {len(pairs)} pairs")
    return len(pairs)


# ============================================================================
# RECOMMENDERS
# ============================================================================


def popularity_score():
    d = models.Document
    return d.download_count * 2 + d.view_count + d.average_rating * 10


def popular_documents(db: Session, limit: int = 10, offset: int = 0) -> list[models.Document]:
    return (
        db.query(models.Document)
        .filter(_approved())
        .order_by(popularity_score().desc(), models.Document.created_at.desc(), models.Document.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def collaborative_recommendations(
    db: Session, user_id: int, limit: int = 10
) -> tuple[list[models.Document], str]:
    """
    Documents similar users interacted with that the user has not seen.

    Returns the documents and the source that produced them
    (``collaborative`` or ``popular`` when the user has no similar users).
    """
    similar = find_similar_users(db, user_id, limit=20)
    if not similar:
        return popular_documents(db, limit), "popular"

    similar_ids = [row["similar_user_id"] for row in similar]
    i = models.UserDocumentInteraction

    seen = select(i.document_id).where(
        i.user_id == user_id, i.interaction_type.in_(SEEN_INTERACTIONS)
    )
    liked_by = func.count(distinct(i.user_id)).label("liked_by_similar_users")
    avg_rating = func.avg(case((i.interaction_type == "rate", i.interaction_value))).label(
        "avg_rating_by_similar"
    )

    rows = (
        db.query(models.Document, liked_by, avg_rating)
        .join(i, i.document_id == models.Document.id)
        .filter(
            i.user_id.in_(similar_ids),
            models.Document.id.notin_(seen),
            models.Document.author_id != user_id,
            _approved(),
        )
        .group_by(models.Document.id)
        .order_by(liked_by.desc(), func.coalesce(avg_rating, 0).desc(), models.Document.id.desc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows], "collaborative"


def content_similarity_score(source: models.Document):
    """
    3 for same university and subject, 2 for either, 1 for the same author.

    A missing university or subject on the source never counts as a match.
    """
    d = models.Document
    same_university = d.university == source.university if source.university is not None else None
    same_subject = d.subject == source.subject if source.subject is not None else None

    whens = []
    if same_university is not None and same_subject is not None:
        whens.append((and_(same_university, same_subject), 3))
    if same_university is not None:
        whens.append((same_university, 2))
    if same_subject is not None:
        whens.append((same_subject, 2))
    whens.append((d.author_id == source.author_id, 1))
    return case(*whens, else_=0)


def similar_documents(
    db: Session, source: models.Document, limit: int = 5
) -> list[tuple[models.Document, int]]:
    """Approved documents ranked by content similarity to ``source``."""
    score = content_similarity_score(source).label("similarity_score")
    rows = (
        db.query(models.Document, score)
        .filter(models.Document.id != source.id, _approved())
        .order_by(
            score.desc(),
            models.Document.average_rating.desc(),
            models.Document.download_count.desc(),
            models.Document.id.desc(),
        )
        .limit(limit)
        .all()
    )
    return [(row[0], int(row[1])) for row in rows]


def content_based_for_user(db: Session, user_id: int, limit: int = 10) -> list[models.Document]:
    """Unseen documents sharing a subject or tag with the user's downloads."""
    downloaded = select(models.Download.document_id).where(models.Download.user_id == user_id)

    subjects = [
        s
        for (s,) in db.query(distinct(models.Document.subject))
        .filter(models.Document.id.in_(downloaded), models.Document.subject.isnot(None))
        .all()
    ]
    tags = [
        t
        for (t,) in db.query(distinct(models.DocumentTag.tag_name))
        .filter(models.DocumentTag.document_id.in_(downloaded))
        .all()
    ]
    if not subjects and not tags:
        return []

    conditions = []
    if subjects:
        conditions.append(models.Document.subject.in_(subjects))
    if tags:
        conditions.append(
            models.Document.tags.any(models.DocumentTag.tag_name.in_(tags))
        )

    return (
        db.query(models.Document)
        .filter(
            _approved(),
            or_(*conditions),
            models.Document.id.notin_(downloaded),
            models.Document.author_id != user_id,
        )
        .order_by(models.Document.average_rating.desc(), models.Document.download_count.desc())
        .limit(limit)
        .all()
    )


def recommended_for_user(db: Session, user_id: int, limit: int = 10) -> tuple[list[models.Document], str]:
    """
    Collaborative first, then content-based on the user's downloads, then popular.

    Returns the documents and the name of the source that produced them.
    """
    documents, source = collaborative_recommendations(db, user_id, limit)
    if source == "collaborative" and documents:
        return documents, source

    documents = content_based_for_user(db, user_id, limit)
    if documents:
        return documents, "content"

    return popular_documents(db, limit), "popular"


# ============================================================================
# TRENDING
# ============================================================================


def trending_score(since: datetime):
    """downloads*3 + ratings*2 + comments counted from ``since``."""
    d = models.Document
    downloads = (
        select(func.count(models.Download.id))
        .where(models.Download.document_id == d.id, models.Download.created_at >= since)
        .scalar_subquery()
    )
    ratings = (
        select(func.count(models.Rating.id))
        .where(models.Rating.document_id == d.id, models.Rating.created_at >= since)
        .scalar_subquery()
    )
    comments = (
        select(func.count(models.Comment.id))
        .where(
            models.Comment.document_id == d.id,
            models.Comment.created_at >= since,
            models.Comment.is_deleted == False,  # noqa: E712
        )
        .scalar_subquery()
    )
    return downloads * 3 + ratings * 2 + comments


def trending_documents(
    db: Session,
    limit: int = 10,
    days: int | None = None,
    use_cache: bool = True,
) -> list[tuple[models.Document, int]]:
    """
    Approved documents by trending score, ties newest first.

    The ranked ids are cached in Redis for a few minutes when available.
    """
    days = days or settings.TRENDING_WINDOW_DAYS
    cache_key = f"feed:trending:{days}:{limit}"

    ranked: list | None = cache_get(cache_key) if use_cache else None
    if ranked is None:
        since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
        score = trending_score(since).label("trending_score")
        rows = (
            db.query(models.Document.id, score)
            .filter(_approved())
            .order_by(score.desc(), models.Document.created_at.desc(), models.Document.id.desc())
            .limit(limit)
            .all()
        )
        ranked = [[doc_id, int(s or 0)] for doc_id, s in rows]
        if use_cache:
            cache_set(cache_key, ranked, ttl=TRENDING_CACHE_TTL)

    if not ranked:
        return []

    by_id = {
        doc.id: doc
        for doc in db.query(models.Document).filter(models.Document.id.in_([r[0] for r in ranked])).all()
    }
    return [(by_id[doc_id], s) for doc_id, s in ranked if doc_id in by_id]


def interaction_counts(db: Session, user_id: int) -> dict[str, int]:
    rows = (
        db.query(models.UserDocumentInteraction.interaction_type, func.count())
        .filter(models.UserDocumentInteraction.user_id == user_id)
        .group_by(models.UserDocumentInteraction.interaction_type)
        .all()
    )
    counts: dict[str, int] = defaultdict(int)
    for interaction_type, count in rows:
        counts[interaction_type] = count
    return dict(counts)
