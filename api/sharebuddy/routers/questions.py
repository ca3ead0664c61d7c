"""Question & answer endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..db import atomic
from ..deps import PageParams, get_db, page_params
from ..services import questions as question_service
from ..services.documents import get_approved_document

router = APIRouter(prefix="/api/questions", tags=["Questions"])


@router.post("", response_model=schemas.Question, status_code=status.HTTP_201_CREATED)
def ask_question(
    payload: schemas.QuestionCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Question:
    question = question_service.ask_question(
        db, current_user, payload.document_id, payload.title, payload.content
    )
    db.commit()
    db.refresh(question)
    return schemas.Question.model_validate(question)


@router.get("/document/{document_id}", response_model=schemas.Page[schemas.Question])
def list_questions(
    document_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> schemas.Page[schemas.Question]:
    get_approved_document(db, document_id)
    items, total = question_service.list_questions(db, document_id, params.page, params.limit)
    return schemas.Page.build(
        [schemas.Question.model_validate(q) for q in items], total, params.page, params.limit
    )


@router.get("/{question_id}", response_model=schemas.QuestionDetail)
def get_question(question_id: int, db: Session = Depends(get_db)) -> schemas.QuestionDetail:
    question = question_service.get_question(db, question_id)
    detail = schemas.QuestionDetail.model_validate(question)
    detail.answers = [
        schemas.Answer.model_validate(a) for a in question_service.list_answers(db, question.id)
    ]
    return detail


@router.post("/{question_id}/answers", response_model=schemas.Answer, status_code=status.HTTP_201_CREATED)
def answer_question(
    question_id: int,
    payload: schemas.AnswerCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Answer:
    answer = question_service.answer_question(db, current_user, question_id, payload.content)
    db.commit()
    db.refresh(answer)
    return schemas.Answer.model_validate(answer)


@router.post("/answers/{answer_id}/accept", response_model=schemas.Answer)
def accept_answer(
    answer_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Answer:
    """Accept an answer; its author earns the answer reward in the same transaction."""
    with atomic(db):
        answer = question_service.accept_answer(db, current_user, answer_id)
    db.refresh(answer)
    return schemas.Answer.model_validate(answer)


@router.post("/{question_id}/vote", response_model=schemas.VoteResult)
def vote_question(
    question_id: int,
    payload: schemas.VoteRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.VoteResult:
    score, current = question_service.vote_question(db, current_user, question_id, payload.vote)
    db.commit()
    return schemas.VoteResult(vote_score=score, user_vote=current)


@router.post("/answers/{answer_id}/vote", response_model=schemas.VoteResult)
def vote_answer(
    answer_id: int,
    payload: schemas.VoteRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.VoteResult:
    score, current = question_service.vote_answer(db, current_user, answer_id, payload.vote)
    db.commit()
    return schemas.VoteResult(vote_score=score, user_vote=current)


@router.delete("/answers/{answer_id}", response_model=schemas.Message)
def delete_answer(
    answer_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    question_service.delete_answer(db, current_user, answer_id)
    db.commit()
    return schemas.Message(message="Answer deleted")


@router.delete("/{question_id}", response_model=schemas.Message)
def delete_question(
    question_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Message:
    question_service.delete_question(db, current_user, question_id)
    db.commit()
    return schemas.Message(message="Question deleted")
