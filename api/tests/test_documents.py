"""Document upload, visibility, download and bookmarks."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models, storage
from sharebuddy.services.credits import apply_credit_change, ledger_balance


def _upload(client: TestClient, user: models.User, filename: str = "calculus.pdf", **data):
    form = {"title": "Calculus I notes", "subject": "Math", "credit_cost": "3", "tags": "math, calculus, math"}
    form.update(data)
    return client.post(
        "/api/documents/upload",
        files={"file": (filename, b"%PDF-1.4 lecture notes", "application/pdf")},
        data=form,
        headers=auth_headers(user),
    )


def test_upload_creates_pending_document_and_queues_moderation(
    client: TestClient, db: Session, make_user, queued
) -> None:
    author = make_user()
    response = _upload(client, author)
    assert response.status_code == 201
    body = response.json()

    document = body["document"]
    assert document["status"] == "pending"
    assert document["credit_cost"] == 3
    assert document["tags"] == ["math", "calculus"]
    assert body["moderation_job"]["moderation_status"] == "queued"
    assert queued["moderation"] == [document["id"]]

    stored = db.get(models.Document, document["id"])
    assert storage.absolute_path(stored.file_path).exists()


def test_upload_rejects_disallowed_extension(client: TestClient, db: Session, make_user, queued) -> None:
    author = make_user()
    response = _upload(client, author, filename="virus.exe")
    assert response.status_code == 400
    assert response.json()["error"].startswith("File type not allowed")
    assert db.query(models.Document).count() == 0
    assert queued["moderation"] == []


def test_upload_rejects_short_title(client: TestClient, make_user) -> None:
    response = _upload(client, make_user(), title="ab")
    assert response.status_code == 400
    padded = _upload(client, make_user(), title="   ab   ")
    assert padded.status_code == 400


def test_update_rejects_title_short_after_trimming(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    author = make_user()
    document = make_document(author, title="Original title")
    document_id = document.id

    response = client.put(f"/api/documents/{document_id}", json={"title": "  ab  "}, headers=auth_headers(author))
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["details"][0]["field"] == "body.title"

    db.expire_all()
    assert db.get(models.Document, document_id).title == "Original title"


def test_pending_document_hidden_from_others(client: TestClient, make_user, make_document) -> None:
    author = make_user()
    other = make_user()
    document = make_document(author, status="pending")

    assert client.get(f"/api/documents/{document.id}").status_code == 404
    assert client.get(f"/api/documents/{document.id}", headers=auth_headers(other)).status_code == 404
    assert client.get(f"/api/documents/{document.id}", headers=auth_headers(author)).status_code == 200

    listing = client.get("/api/documents")
    assert listing.json()["total_items"] == 0


def test_list_documents_filters_and_sorting(client: TestClient, make_user, make_document) -> None:
    author = make_user()
    make_document(author, title="Linear algebra", subject="Math", credit_cost=5)
    make_document(author, title="Organic chemistry", subject="Chemistry", credit_cost=1)
    make_document(author, title="Hidden", subject="Math", status="rejected")

    math = client.get("/api/documents", params={"subject": "math"}).json()
    assert [d["title"] for d in math["items"]] == ["Linear algebra"]

    cheap = client.get("/api/documents", params={"max_cost": 2}).json()
    assert [d["title"] for d in cheap["items"]] == ["Organic chemistry"]

    by_cost = client.get("/api/documents", params={"sort_by": "credit_cost", "sort_order": "asc"}).json()
    assert [d["credit_cost"] for d in by_cost["items"]] == [1, 5]

    # Unknown sort keys fall back to created_at
    assert client.get("/api/documents", params={"sort_by": "password_hash"}).status_code == 200


def test_download_without_credits_is_payment_required(client: TestClient, make_user, make_document) -> None:
    author = make_user()
    reader = make_user(credits=0)
    document = make_document(author, credit_cost=5)

    response = client.post(f"/api/documents/{document.id}/download", headers=auth_headers(reader))
    assert response.status_code == 402
    assert response.json() == {
        "success": False,
        "error": "Not enough credits",
        "data": {"required": 5, "available": 0},
    }


def test_download_moves_credits_once(client: TestClient, db: Session, make_user, make_document) -> None:
    author = make_user()
    reader = make_user()
    apply_credit_change(db, reader, 10, "purchase", "Bought credits")
    db.commit()
    document = make_document(author, credit_cost=4)

    first = client.post(f"/api/documents/{document.id}/download", headers=auth_headers(reader))
    assert first.status_code == 200
    assert first.json()["credits_spent"] == 4
    assert first.json()["remaining_credits"] == 6
    assert first.json()["download_url"].startswith("/uploads/documents/")

    # Paid once, free afterwards
    second = client.post(f"/api/documents/{document.id}/download", headers=auth_headers(reader))
    assert second.status_code == 200
    assert second.json()["credits_spent"] == 0
    assert second.json()["remaining_credits"] == 6

    db.expire_all()
    assert db.get(models.User, author.id).credits == 4
    assert db.get(models.Document, document.id).download_count == 1
    assert db.query(models.Download).count() == 1
    assert ledger_balance(db, reader.id) == 6
    assert ledger_balance(db, author.id) == 4


def test_author_downloads_own_document_free(client: TestClient, db: Session, make_user, make_document) -> None:
    author = make_user()
    document = make_document(author, credit_cost=50)

    response = client.post(f"/api/documents/{document.id}/download", headers=auth_headers(author))
    assert response.status_code == 200
    assert response.json()["credits_spent"] == 0
    db.expire_all()
    assert db.get(models.Document, document.id).download_count == 0


def test_bookmark_is_idempotent(client: TestClient, db: Session, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())

    for _ in range(2):
        response = client.post(f"/api/documents/{document.id}/bookmark", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["bookmarked"] is True
    assert db.query(models.Bookmark).count() == 1

    listing = client.get("/api/documents/bookmarks", headers=auth_headers(user)).json()
    assert [d["id"] for d in listing["items"]] == [document.id]

    assert client.delete(f"/api/documents/{document.id}/bookmark", headers=auth_headers(user)).status_code == 200
    missing = client.delete(f"/api/documents/{document.id}/bookmark", headers=auth_headers(user))
    assert missing.status_code == 404


def test_document_detail_includes_user_interaction(client: TestClient, make_user, make_document) -> None:
    user = make_user(credits=2)
    document = make_document(make_user(), credit_cost=5)

    body = client.get(f"/api/documents/{document.id}", headers=auth_headers(user)).json()
    assert body["user_interaction"] == {
        "is_bookmarked": False,
        "user_rating": None,
        "can_download": False,
        "has_downloaded": False,
    }


def test_only_owner_updates_and_deletes(client: TestClient, db: Session, make_user, make_document) -> None:
    author = make_user()
    stranger = make_user()
    document = make_document(author)
    document_id = document.id

    forbidden = client.put(
        f"/api/documents/{document_id}", json={"title": "Stolen"}, headers=auth_headers(stranger)
    )
    assert forbidden.status_code == 403

    updated = client.put(
        f"/api/documents/{document_id}",
        json={"title": "  Better title  ", "tags": ["exam"]},
        headers=auth_headers(author),
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Better title"
    assert updated.json()["tags"] == ["exam"]

    assert client.delete(f"/api/documents/{document_id}", headers=auth_headers(author)).status_code == 200
    db.expire_all()
    assert db.query(models.Document).filter(models.Document.id == document_id).first() is None


def test_report_document_once(client: TestClient, make_user, make_document) -> None:
    reporter = make_user()
    document = make_document(make_user())

    first = client.post(
        f"/api/documents/{document.id}/report", json={"reason": "spam"}, headers=auth_headers(reporter)
    )
    assert first.status_code == 201
    assert first.json()["status"] == "pending"

    again = client.post(
        f"/api/documents/{document.id}/report", json={"reason": "spam"}, headers=auth_headers(reporter)
    )
    assert again.status_code == 409
