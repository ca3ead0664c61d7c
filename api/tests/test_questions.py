"""Questions, answers, acceptance and votes."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import auth_headers
from sharebuddy import models
from sharebuddy.db import SessionLocal
from sharebuddy.errors import ValidationFailedError
from sharebuddy.services import questions as question_service
from sharebuddy.services.credits import ANSWER_ACCEPTED_REWARD, ledger_balance


def _ask(client: TestClient, user: models.User, document: models.Document) -> dict:
    response = client.post(
        "/api/questions",
        json={
            "document_id": document.id,
            "title": "What does lemma 3 mean?",
            "content": "I do not follow the second step of the proof.",
        },
        headers=auth_headers(user),
    )
    assert response.status_code == 201
    return response.json()


def _answer(client: TestClient, user: models.User, question_id: int, content: str = "It uses induction.") -> dict:
    response = client.post(
        f"/api/questions/{question_id}/answers", json={"content": content}, headers=auth_headers(user)
    )
    assert response.status_code == 201
    return response.json()


def test_question_requires_approved_document(client: TestClient, make_user, make_document) -> None:
    document = make_document(make_user(), status="pending")
    response = client.post(
        "/api/questions",
        json={"document_id": document.id, "title": "Hidden question", "content": "Can anyone see this?"},
        headers=auth_headers(make_user()),
    )
    assert response.status_code == 404


def test_answer_increments_count_and_notifies(client: TestClient, db: Session, make_user, make_document) -> None:
    asker, helper = make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    _answer(client, helper, question["id"])

    detail = client.get(f"/api/questions/{question['id']}").json()
    assert detail["answer_count"] == 1
    assert len(detail["answers"]) == 1

    assert (
        db.query(models.Notification)
        .filter(models.Notification.user_id == asker.id, models.Notification.type == "new_answer")
        .count()
        == 1
    )


def test_accept_answer_rewards_answerer_once(client: TestClient, db: Session, make_user, make_document) -> None:
    asker, helper, other = make_user(), make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    first = _answer(client, helper, question["id"])
    second = _answer(client, other, question["id"], "Another take.")

    denied = client.post(f"/api/questions/answers/{first['id']}/accept", headers=auth_headers(helper))
    assert denied.status_code == 403

    accepted = client.post(f"/api/questions/answers/{first['id']}/accept", headers=auth_headers(asker))
    assert accepted.status_code == 200
    assert accepted.json()["is_accepted"] is True

    again = client.post(f"/api/questions/answers/{second['id']}/accept", headers=auth_headers(asker))
    assert again.status_code == 400

    db.expire_all()
    assert db.get(models.User, helper.id).credits == ANSWER_ACCEPTED_REWARD
    assert ledger_balance(db, helper.id) == ANSWER_ACCEPTED_REWARD
    assert db.get(models.User, other.id).credits == 0

    detail = client.get(f"/api/questions/{question['id']}").json()
    assert detail["accepted_answer_id"] == first["id"]
    assert detail["answers"][0]["id"] == first["id"]


def test_accepting_own_answer_earns_nothing(client: TestClient, db: Session, make_user, make_document) -> None:
    asker = make_user()
    question = _ask(client, asker, make_document(make_user()))
    own = _answer(client, asker, question["id"], "Figured it out myself.")

    assert client.post(f"/api/questions/answers/{own['id']}/accept", headers=auth_headers(asker)).status_code == 200
    db.expire_all()
    assert db.get(models.User, asker.id).credits == 0


def test_vote_toggle_and_switch(client: TestClient, make_user, make_document) -> None:
    asker, voter, second_voter = make_user(), make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    url = f"/api/questions/{question['id']}/vote"

    up = client.post(url, json={"vote": 1}, headers=auth_headers(voter)).json()
    assert (up["vote_score"], up["user_vote"]) == (1, 1)

    down = client.post(url, json={"vote": -1}, headers=auth_headers(voter)).json()
    assert (down["vote_score"], down["user_vote"]) == (-1, -1)

    client.post(url, json={"vote": -1}, headers=auth_headers(second_voter))
    removed = client.post(url, json={"vote": -1}, headers=auth_headers(voter)).json()
    assert (removed["vote_score"], removed["user_vote"]) == (-1, None)

    assert client.post(url, json={"vote": 2}, headers=auth_headers(voter)).status_code == 400


def test_cannot_vote_on_own_content(client: TestClient, make_user, make_document) -> None:
    asker, helper = make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    answer = _answer(client, helper, question["id"])

    own_question = client.post(f"/api/questions/{question['id']}/vote", json={"vote": 1}, headers=auth_headers(asker))
    assert own_question.status_code == 403
    own_answer = client.post(
        f"/api/questions/answers/{answer['id']}/vote", json={"vote": 1}, headers=auth_headers(helper)
    )
    assert own_answer.status_code == 403

    voted = client.post(f"/api/questions/answers/{answer['id']}/vote", json={"vote": 1}, headers=auth_headers(asker))
    assert voted.json()["vote_score"] == 1


def test_deleting_accepted_answer_clears_acceptance(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    asker, helper = make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    answer = _answer(client, helper, question["id"])
    client.post(f"/api/questions/answers/{answer['id']}/accept", headers=auth_headers(asker))

    assert client.delete(f"/api/questions/answers/{answer['id']}", headers=auth_headers(asker)).status_code == 403
    assert client.delete(f"/api/questions/answers/{answer['id']}", headers=auth_headers(helper)).status_code == 200

    detail = client.get(f"/api/questions/{question['id']}").json()
    assert detail["accepted_answer_id"] is None
    assert detail["answer_count"] == 0
    assert detail["answers"] == []


def test_list_questions_for_document(client: TestClient, make_user, make_document) -> None:
    document = make_document(make_user())
    _ask(client, make_user(), document)
    _ask(client, make_user(), document)

    body = client.get(f"/api/questions/document/{document.id}").json()
    assert body["total_items"] == 2


def test_stale_question_cannot_accept_second_answer(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    asker, helper, other = make_user(), make_user(), make_user()
    question = _ask(client, asker, make_document(make_user()))
    first = _answer(client, helper, question["id"])
    second = _answer(client, other, question["id"], "Another take.")

    stale = db.get(models.Question, question["id"])
    assert stale.accepted_answer_id is None

    concurrent = SessionLocal()
    try:
        question_service.accept_answer(concurrent, concurrent.get(models.User, asker.id), first["id"])
        concurrent.commit()
    finally:
        concurrent.close()

    with pytest.raises(ValidationFailedError):
        question_service.accept_answer(db, asker, second["id"])
    db.rollback()

    rewards = db.query(models.CreditTransaction).filter(models.CreditTransaction.transaction_type == "answer_reward").all()
    assert [reward.user_id for reward in rewards] == [helper.id]
    assert db.get(models.Answer, second["id"]).is_accepted is False
