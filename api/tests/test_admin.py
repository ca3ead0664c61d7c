from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.services.credits import ledger_balance


def test_staff_routes_require_role(client: TestClient, make_user) -> None:
    user = make_user()
    assert client.get("/api/admin/users", headers=auth_headers(user)).status_code == 403
    assert client.get("/api/admin/users").status_code == 401


def test_moderate_pending_document(client: TestClient, db: Session, make_user, make_document, queued) -> None:
    moderator = make_user(role="moderator")
    author = make_user()
    document = make_document(author, status="pending")

    response = client.post(
        f"/api/admin/documents/{document.id}/moderate",
        json={"action": "approve", "reason": "Looks good"},
        headers=auth_headers(moderator),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert queued["preview"] == [document.id]

    db.expire_all()
    assert db.get(models.User, author.id).credits == 5
    log = db.query(models.AuditLog).one()
    assert (log.actor_id, log.action, log.target_id) == (moderator.id, "approve_document", document.id)

    again = client.post(
        f"/api/admin/documents/{document.id}/moderate",
        json={"action": "reject"},
        headers=auth_headers(moderator),
    )
    assert again.status_code == 400
    assert again.json()["error"] == "Document is already approved"


def test_reject_keeps_reason(client: TestClient, db: Session, make_user, make_document, queued) -> None:
    moderator = make_user(role="moderator")
    document = make_document(make_user(), status="pending")

    response = client.post(
        f"/api/admin/documents/{document.id}/moderate",
        json={"action": "reject", "reason": "Copyrighted material"},
        headers=auth_headers(moderator),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert queued["preview"] == []

    db.expire_all()
    assert db.get(models.Document, document.id).rejection_reason == "Copyrighted material"


def test_staff_cannot_modify_self(client: TestClient, make_user) -> None:
    moderator = make_user(role="moderator")
    response = client.put(
        f"/api/admin/users/{moderator.id}", json={"is_active": False}, headers=auth_headers(moderator)
    )
    assert response.status_code == 400


def test_only_admins_change_roles(client: TestClient, db: Session, make_user) -> None:
    moderator = make_user(role="moderator")
    admin = make_user(role="admin")
    user = make_user()

    assert client.put(
        f"/api/admin/users/{user.id}", json={"role": "moderator"}, headers=auth_headers(moderator)
    ).status_code == 403
    assert client.put(
        f"/api/admin/users/{admin.id}", json={"is_active": False}, headers=auth_headers(moderator)
    ).status_code == 403

    response = client.put(
        f"/api/admin/users/{user.id}", json={"role": "moderator"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["role"] == "moderator"


def test_moderator_can_deactivate_user(client: TestClient, db: Session, make_user) -> None:
    moderator = make_user(role="moderator")
    user = make_user()

    response = client.put(
        f"/api/admin/users/{user.id}", json={"is_active": False}, headers=auth_headers(moderator)
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    db.expire_all()
    assert db.query(models.AuditLog).one().note == "is_active=False"


def test_credit_adjustment_is_admin_only(client: TestClient, db: Session, make_user) -> None:
    moderator = make_user(role="moderator")
    admin = make_user(role="admin")
    user = make_user()

    payload = {"amount": 25, "reason": "Contest prize"}
    assert client.post(
        f"/api/admin/users/{user.id}/credits", json=payload, headers=auth_headers(moderator)
    ).status_code == 403

    response = client.post(f"/api/admin/users/{user.id}/credits", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["transaction_type"] == "admin_adjustment"

    db.expire_all()
    assert db.get(models.User, user.id).credits == 25
    assert ledger_balance(db, user.id) == 25


def test_credit_adjustment_cannot_overdraw(client: TestClient, make_user) -> None:
    admin = make_user(role="admin")
    user = make_user()

    response = client.post(
        f"/api/admin/users/{user.id}/credits",
        json={"amount": -10, "reason": "Correction"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 402
    assert response.json()["data"] == {"required": 10, "available": 0}

    zero = client.post(
        f"/api/admin/users/{user.id}/credits", json={"amount": 0, "reason": "Nothing"}, headers=auth_headers(admin)
    )
    assert zero.status_code == 400


def test_resolve_report(client: TestClient, db: Session, make_user, make_document) -> None:
    moderator = make_user(role="moderator")
    reporter = make_user()
    document = make_document(make_user())

    report = client.post(
        f"/api/documents/{document.id}/report",
        json={"reason": "spam"},
        headers=auth_headers(reporter),
    ).json()

    listed = client.get("/api/admin/reports?status=pending", headers=auth_headers(moderator)).json()
    assert [r["id"] for r in listed["items"]] == [report["id"]]

    response = client.put(
        f"/api/admin/reports/{report['id']}/resolve",
        json={"action": "dismiss", "admin_note": "Not spam"},
        headers=auth_headers(moderator),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "dismissed"

    again = client.put(
        f"/api/admin/reports/{report['id']}/resolve",
        json={"action": "take_action"},
        headers=auth_headers(moderator),
    )
    assert again.status_code == 400


def test_audit_logs_are_admin_only(client: TestClient, make_user, make_document) -> None:
    moderator = make_user(role="moderator")
    admin = make_user(role="admin")
    document = make_document(make_user())

    client.put(
        f"/api/admin/documents/{document.id}/feature",
        json={"is_featured": True},
        headers=auth_headers(moderator),
    )

    assert client.get("/api/admin/audit-logs", headers=auth_headers(moderator)).status_code == 403
    body = client.get("/api/admin/audit-logs", headers=auth_headers(admin)).json()
    assert [log["action"] for log in body["items"]] == ["feature_document"]


def test_feature_requires_approved(client: TestClient, make_user, make_document) -> None:
    moderator = make_user(role="moderator")
    document = make_document(make_user(), status="pending")

    response = client.put(
        f"/api/admin/documents/{document.id}/feature",
        json={"is_featured": True},
        headers=auth_headers(moderator),
    )
    assert response.status_code == 400


def test_statistics(client: TestClient, make_user, make_document) -> None:
    moderator = make_user(role="moderator")
    make_document(make_user())
    make_document(make_user(), status="pending")

    response = client.get("/api/admin/statistics", headers=auth_headers(moderator))
    assert response.status_code == 200
    body = response.json()
    assert body["documents"]["approved"] == 1
    assert body["documents"]["pending"] == 1
    assert body["users"]["total"] == 3
