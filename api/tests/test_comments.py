"""Comments, replies and likes."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.services.comments import DELETED_PLACEHOLDER
from sharebuddy.services.profanity import clean_text, contains_profanity


def _comment(client: TestClient, user: models.User, document: models.Document, content: str, parent_id=None):
    return client.post(
        f"/api/documents/{document.id}/comments",
        json={"content": content, "parent_id": parent_id},
        headers=auth_headers(user),
    )


def test_comment_and_reply_notify(client: TestClient, db: Session, make_user, make_document) -> None:
    author, reader, replier = make_user(), make_user(), make_user()
    document = make_document(author)

    top = _comment(client, reader, document, "Great summary")
    assert top.status_code == 201
    reply = _comment(client, replier, document, "Agreed", parent_id=top.json()["id"])
    assert reply.status_code == 201
    assert reply.json()["parent_id"] == top.json()["id"]

    types = {
        (n.user_id, n.type) for n in db.query(models.Notification).all()
    }
    assert types == {(author.id, "new_comment"), (reader.id, "comment_reply")}


def test_replies_are_one_level_deep(client: TestClient, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Question about chapter 2").json()
    reply = _comment(client, user, document, "Follow-up", parent_id=top["id"]).json()

    nested = _comment(client, user, document, "Too deep", parent_id=reply["id"])
    assert nested.status_code == 400
    assert nested.json()["error"] == "Replies can only be one level deep"


def test_reply_parent_must_share_document(client: TestClient, make_user, make_document) -> None:
    user = make_user()
    first, second = make_document(make_user()), make_document(make_user())
    top = _comment(client, user, first, "On the first document").json()

    response = _comment(client, user, second, "Wrong place", parent_id=top["id"])
    assert response.status_code == 400


def test_profanity_is_censored(client: TestClient, make_user, make_document) -> None:
    document = make_document(make_user())
    body = _comment(client, make_user(), document, "  this shit is useful  ").json()
    assert body["content"] == "this **** is useful"


def test_clean_text_trims_and_masks() -> None:
    assert clean_text("  proof by induction \n") == "proof by induction"
    assert clean_text("  this shit again ") == "this **** again"
    assert contains_profanity("THIS SHIT")
    assert not contains_profanity("")
    assert not contains_profanity(None)


def test_delete_with_replies_leaves_tombstone(client: TestClient, db: Session, make_user, make_document) -> None:
    user, other = make_user(), make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Parent").json()
    _comment(client, other, document, "Child", parent_id=top["id"])

    response = client.delete(f"/api/comments/{top['id']}", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["message"] == "Comment removed, replies kept"

    db.expire_all()
    tombstone = db.get(models.Comment, top["id"])
    assert tombstone.is_deleted is True
    assert tombstone.content == DELETED_PLACEHOLDER

    listing = client.get(f"/api/documents/{document.id}/comments").json()
    assert listing["items"][0]["reply_count"] == 1

    blocked = _comment(client, other, document, "Reply to ghost", parent_id=top["id"])
    assert blocked.status_code == 400


def test_delete_without_replies_removes_row(client: TestClient, db: Session, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Short-lived").json()

    assert client.delete(f"/api/comments/{top['id']}", headers=auth_headers(make_user())).status_code == 403
    assert client.delete(f"/api/comments/{top['id']}", headers=auth_headers(user)).status_code == 200
    db.expire_all()
    assert db.get(models.Comment, top["id"]) is None


def test_edit_only_own_comment(client: TestClient, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Typo here").json()

    denied = client.put(f"/api/comments/{top['id']}", json={"content": "Hijack"}, headers=auth_headers(make_user()))
    assert denied.status_code == 403
    edited = client.put(f"/api/comments/{top['id']}", json={"content": "Fixed"}, headers=auth_headers(user))
    assert edited.json()["content"] == "Fixed"


def test_like_is_idempotent(client: TestClient, make_user, make_document) -> None:
    user, fan = make_user(), make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Like me").json()

    for _ in range(2):
        response = client.post(f"/api/comments/{top['id']}/like", headers=auth_headers(fan))
        assert response.json() == {"success": True, "comment_id": top["id"], "liked": True, "like_count": 1}

    listing = client.get(f"/api/documents/{document.id}/comments", headers=auth_headers(fan)).json()
    assert listing["items"][0]["is_liked"] is True
    assert listing["items"][0]["like_count"] == 1

    unliked = client.delete(f"/api/comments/{top['id']}/like", headers=auth_headers(fan))
    assert unliked.json()["like_count"] == 0


def test_replies_listed_oldest_first(client: TestClient, make_user, make_document) -> None:
    user = make_user()
    document = make_document(make_user())
    top = _comment(client, user, document, "Parent").json()
    first = _comment(client, user, document, "First", parent_id=top["id"]).json()
    second = _comment(client, user, document, "Second", parent_id=top["id"]).json()

    body = client.get(f"/api/comments/{top['id']}/replies").json()
    assert [c["id"] for c in body["items"]] == [first["id"], second["id"]]

    top_level = client.get(f"/api/documents/{document.id}/comments").json()
    assert top_level["total_items"] == 1
