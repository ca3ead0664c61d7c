"""Recommendations, trending and user similarity."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.services import recommendations


def _touch(db: Session, user: models.User, *documents: models.Document, kind: str = "view") -> None:
    for document in documents:
        db.add(models.UserDocumentInteraction(user_id=user.id, document_id=document.id, interaction_type=kind))
    db.commit()


def test_refresh_user_similarity_uses_jaccard(db: Session, make_user, make_document) -> None:
    author = make_user()
    alice, bob, carol = make_user(), make_user(), make_user()
    d1, d2, d3 = (make_document(author) for _ in range(3))

    _touch(db, alice, d1, d2, d3)
    _touch(db, alice, d1, kind="download")
    _touch(db, bob, d1, d2)
    _touch(db, carol, d3)

    assert recommendations.refresh_user_similarity(db) == 1
    db.commit()

    row = db.query(models.UserSimilarity).one()
    assert (row.user_id_1, row.user_id_2) == (alice.id, bob.id)
    assert row.common_interactions == 2
    assert row.similarity_score == pytest.approx(2 / 3)

    similar = recommendations.find_similar_users(db, bob.id)
    assert similar == [
        {"similar_user_id": alice.id, "similarity_score": pytest.approx(2 / 3), "common_interactions": 2}
    ]


def test_collaborative_recommends_unseen_documents(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    author = make_user()
    alice, bob = make_user(), make_user()
    d1, d2, d3 = (make_document(author) for _ in range(3))
    _touch(db, alice, d1, d2, d3)
    _touch(db, bob, d1, d2)
    recommendations.refresh_user_similarity(db)
    db.commit()

    response = client.get("/api/recommendations", headers=auth_headers(bob))
    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "collaborative"
    assert [d["id"] for d in body["items"]] == [d3.id]


def test_no_similar_users_falls_back_to_popular(client: TestClient, make_user, make_document) -> None:
    lonely = make_user()
    document = make_document(make_user())

    body = client.get("/api/recommendations", headers=auth_headers(lonely)).json()
    assert body["source"] == "popular"
    assert [d["id"] for d in body["items"]] == [document.id]


def test_popularity_order(client: TestClient, make_user, make_document) -> None:
    author = make_user()
    downloaded = make_document(author, download_count=10)
    viewed = make_document(author, view_count=5, average_rating=4.0)
    quiet = make_document(author)

    body = client.get("/api/recommendations/popular").json()
    assert [d["id"] for d in body] == [viewed.id, downloaded.id, quiet.id]


def test_trending_window(db: Session, make_user, make_document) -> None:
    author = make_user()
    readers = [make_user() for _ in range(3)]
    hot, warm, cold = make_document(author), make_document(author), make_document(author)

    db.add(models.Download(user_id=readers[0].id, document_id=hot.id))
    db.add(models.Download(user_id=readers[1].id, document_id=hot.id))
    db.add(models.Rating(user_id=readers[0].id, document_id=warm.id, rating=4))
    db.add(models.Comment(user_id=readers[1].id, document_id=warm.id, content="Nice"))
    db.add(models.Comment(user_id=readers[2].id, document_id=warm.id, content="Thanks"))
    # Outside the window
    month_ago = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=30)
    db.add(models.Download(user_id=readers[2].id, document_id=cold.id, created_at=month_ago))
    db.commit()

    ranked = recommendations.trending_documents(db, limit=10, days=7, use_cache=False)
    assert [(doc.id, score) for doc, score in ranked] == [(hot.id, 6), (warm.id, 4), (cold.id, 0)]


def test_similar_documents_scoring(client: TestClient, make_user, make_document) -> None:
    author, other = make_user(), make_user()
    source = make_document(author, university="HCMUS", subject="Math")
    both = make_document(other, university="HCMUS", subject="Math")
    subject_only = make_document(other, university="HUST", subject="Math")
    same_author = make_document(author, university="HUST", subject="Art")
    make_document(other, university="HUST", subject="Art")

    body = client.get(f"/api/recommendations/similar/{source.id}", params={"limit": 3}).json()
    assert [(i["document"]["id"], i["similarity_score"]) for i in body["items"]] == [
        (both.id, 3),
        (subject_only.id, 2),
        (same_author.id, 1),
    ]


def test_similar_documents_ignore_missing_fields(db: Session, make_user, make_document) -> None:
    author, stranger = make_user(), make_user()
    source = make_document(author)
    unrelated = make_document(stranger)
    own = make_document(author, subject="Math")

    ranked = recommendations.similar_documents(db, source)
    assert [(doc.id, score) for doc, score in ranked] == [(own.id, 1), (unrelated.id, 0)]


def test_recommended_feed_uses_downloaded_subjects(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    author = make_user()
    reader = make_user()
    seen = make_document(author, subject="Physics")
    related = make_document(author, subject="Physics")
    make_document(author, subject="History")
    db.add(models.Download(user_id=reader.id, document_id=seen.id))
    db.commit()

    body = client.get("/api/feed/recommended", headers=auth_headers(reader)).json()
    assert body["source"] == "content"
    assert [d["id"] for d in body["items"]] == [related.id]


def test_track_interaction_endpoint(client: TestClient, db: Session, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())

    response = client.post(
        "/api/recommendations/track",
        json={"document_id": document.id, "interaction_type": "view"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert recommendations.interaction_counts(db, user.id) == {"view": 1}


def test_track_unknown_type_is_ignored(db: Session, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())
    recommendations.track_interaction(db, user.id, document.id, "share")
    db.commit()
    assert db.query(models.UserDocumentInteraction).count() == 0
