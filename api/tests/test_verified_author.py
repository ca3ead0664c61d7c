from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.services import moderation, verified_author


def _qualifying_catalog(make_document, author: models.User, approved: int = 5) -> None:
    for i in range(approved):
        make_document(author, average_rating=5.0 if i < 3 else 4.0, download_count=2)


def test_progress_reports_each_criterion(client: TestClient, make_user, make_document) -> None:
    author = make_user(email_verified=True)
    make_document(author, average_rating=5.0, download_count=7)
    make_document(author, average_rating=4.5, download_count=1)
    make_document(author, status="pending", average_rating=5.0, download_count=100)

    body = client.get("/api/verified-author/progress", headers=auth_headers(author)).json()
    criteria = body["criteria"]
    assert criteria["email_verified"]["met"] is True
    assert criteria["total_documents"] == {"current": 2, "required": 5, "met": False}
    assert criteria["five_star_documents"] == {"current": 1, "required": 3, "met": False}
    assert criteria["total_downloads"] == {"current": 8, "required": 10, "met": False}
    assert body["eligible_for_verification"] is False


def test_request_rejected_until_criteria_met(client: TestClient, db: Session, make_user, make_document) -> None:
    author = make_user()
    _qualifying_catalog(make_document, author)

    response = client.post("/api/verified-author/verify", headers=auth_headers(author))
    assert response.status_code == 200
    body = response.json()
    assert body["verified"] is False
    assert body["progress"]["criteria"]["email_verified"]["met"] is False

    request = db.query(models.VerifiedAuthorRequest).one()
    assert request.status == "rejected"


def test_request_grants_badge(client: TestClient, db: Session, make_user, make_document) -> None:
    author = make_user(email_verified=True)
    _qualifying_catalog(make_document, author)

    body = client.post("/api/verified-author/verify", headers=auth_headers(author)).json()
    assert body["verified"] is True
    assert body["progress"]["is_verified"] is True

    status = client.get(f"/api/verified-author/status/{author.id}").json()
    assert status["is_verified_author"] is True
    assert status["verified_at"] is not None

    again = client.post("/api/verified-author/verify", headers=auth_headers(author))
    assert again.status_code == 400
    assert again.json()["error"] == "You are already a verified author"


def test_approval_auto_verifies(db: Session, make_user, make_document) -> None:
    author = make_user(email_verified=True)
    _qualifying_catalog(make_document, author, approved=4)
    pending = make_document(author, status="pending", download_count=2)

    assert moderation.apply_moderation_decision(db, pending.id, approved=True, score=1.0)
    db.commit()

    db.refresh(author)
    assert author.is_verified_author is True
    assert verified_author.check_and_auto_verify(db, author) is False


def test_list_verified_authors(client: TestClient, db: Session, make_user, make_document) -> None:
    top = make_user("top", is_verified_author=True)
    second = make_user("second", is_verified_author=True)
    make_user("plain")
    make_document(top, download_count=30)
    make_document(second, download_count=3)

    body = client.get("/api/verified-author/authors").json()
    assert body["total_items"] == 2
    assert [row["user"]["username"] for row in body["items"]] == ["top", "second"]
    assert body["items"][0]["total_downloads"] == 30


def test_status_unknown_user(client: TestClient) -> None:
    assert client.get("/api/verified-author/status/4242").status_code == 404


def test_staff_email_verification_unlocks_badge(client: TestClient, db: Session, make_user, make_document) -> None:
    moderator = make_user(role="moderator")
    author = make_user()
    _qualifying_catalog(make_document, author)

    progress = client.get("/api/verified-author/progress", headers=auth_headers(author)).json()
    assert progress["eligible_for_verification"] is False

    response = client.put(
        f"/api/admin/users/{author.id}", json={"email_verified": True}, headers=auth_headers(moderator)
    )
    assert response.status_code == 200
    assert response.json()["email_verified"] is True
    assert response.json()["is_verified_author"] is True

    db.expire_all()
    assert db.query(models.AuditLog).one().note == "email_verified=True"
    assert client.post("/api/verified-author/verify", headers=auth_headers(author)).status_code == 400
