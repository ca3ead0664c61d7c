"""Questions and answers on documents, with voting and accepted answers."""

from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, PermissionDeniedError, ValidationFailedError
from .credits import ANSWER_ACCEPTED_REWARD, apply_credit_change
from .documents import get_approved_document
from .notifications import create_notification
from .profanity import clean_text

logger = logging.getLogger(__name__)


def get_question(db: Session, question_id: int) -> models.Question:
    question = db.get(models.Question, question_id)
    if question is None:
        raise NotFoundError("Question not found")
    return question


def get_answer(db: Session, answer_id: int) -> models.Answer:
    answer = db.get(models.Answer, answer_id)
    if answer is None:
        raise NotFoundError("Answer not found")
    return answer


def ask_question(db: Session, user: models.User, document_id: int, title: str, content: str) -> models.Question:
    document = get_approved_document(db, document_id)
    question = models.Question(
        document_id=document.id,
        user_id=user.id,
        title=clean_text(title),
        content=clean_text(content),
    )
    db.add(question)
    db.flush()

    create_notification(
        db,
        user_id=document.author_id,
        notification_type="new_question",
        title="New question on your document",
        content=f'{user.username} asked: "{question.title}"',
        related_document_id=document.id,
        actor_id=user.id,
    )
    return question


def list_questions(db: Session, document_id: int, page: int, limit: int) -> tuple[list[models.Question], int]:
    query = db.query(models.Question).filter(models.Question.document_id == document_id)
    total = query.count()
    items = (
        query.order_by(models.Question.created_at.desc(), models.Question.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def list_answers(db: Session, question_id: int) -> list[models.Answer]:
    """Accepted answer first, then by score, then oldest first."""
    return (
        db.query(models.Answer)
        .filter(models.Answer.question_id == question_id)
        .order_by(
            models.Answer.is_accepted.desc(),
            models.Answer.vote_score.desc(),
            models.Answer.created_at.asc(),
            models.Answer.id.asc(),
        )
        .all()
    )


def answer_question(db: Session, user: models.User, question_id: int, content: str) -> models.Answer:
    question = get_question(db, question_id)
    answer = models.Answer(question_id=question.id, user_id=user.id, content=clean_text(content))
    db.add(answer)
    question.answer_count = models.Question.answer_count + 1
    db.flush()
    db.refresh(question)

    create_notification(
        db,
        user_id=question.user_id,
        notification_type="new_answer",
        title="New answer to your question",
        content=f'{user.username} answered "{question.title}"',
        related_document_id=question.document_id,
        actor_id=user.id,
    )
    return answer


def accept_answer(db: Session, user: models.User, answer_id: int) -> models.Answer:
    """
    Mark an answer accepted and reward its author. Flushes only.

    Raises:
        PermissionDeniedError: If the caller did not ask the question
        ValidationFailedError: If the question already has an accepted answer
    """
    answer = get_answer(db, answer_id)
    question = get_question(db, answer.question_id)
    if question.user_id != user.id:
        raise PermissionDeniedError("Only the question author can accept an answer")

    result = db.execute(
        update(models.Question)
        .where(models.Question.id == question.id, models.Question.accepted_answer_id.is_(None))
        .values(accepted_answer_id=answer.id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationFailedError("This question already has an accepted answer")

    answer.is_accepted = True
    db.flush()
    db.refresh(question)

    if answer.user_id != question.user_id:
        apply_credit_change(
            db,
            answer.user_id,
            ANSWER_ACCEPTED_REWARD,
            "answer_reward",
            f"Answer accepted: {question.title}",
            related_document_id=question.document_id,
        )
        create_notification(
            db,
            user_id=answer.user_id,
            notification_type="answer_accepted",
            title="Your answer was accepted",
            content=f'You earned {ANSWER_ACCEPTED_REWARD} credits for answering "{question.title}"',
            related_document_id=question.document_id,
            actor_id=user.id,
        )

    logger.info(f"Answer {answer.id} accepted on question {question.id}")
    return answer


def _apply_vote(db: Session, vote_model, target_column: str, target, user_id: int, value: int) -> int | None:
    """
    Toggle/switch a vote and keep the target's score equal to the vote sum.

    Returns the user's vote after the change (None when removed).
    """
    existing = (
        db.query(vote_model)
        .filter(vote_model.user_id == user_id, getattr(vote_model, target_column) == target.id)
        .first()
    )
    if existing is None:
        db.add(vote_model(user_id=user_id, vote=value, **{target_column: target.id}))
        current = value
    elif existing.vote == value:
        db.delete(existing)
        current = None
    else:
        existing.vote = value
        current = value
    db.flush()

    target.vote_score = (
        db.query(func.coalesce(func.sum(vote_model.vote), 0))
        .filter(getattr(vote_model, target_column) == target.id)
        .scalar()
    )
    db.flush()
    return current


def vote_question(db: Session, user: models.User, question_id: int, value: int) -> tuple[int, int | None]:
    question = get_question(db, question_id)
    if question.user_id == user.id:
        raise PermissionDeniedError("You cannot vote on your own question")
    current = _apply_vote(db, models.QuestionVote, "question_id", question, user.id, value)
    return int(question.vote_score), current


def vote_answer(db: Session, user: models.User, answer_id: int, value: int) -> tuple[int, int | None]:
    answer = get_answer(db, answer_id)
    if answer.user_id == user.id:
        raise PermissionDeniedError("You cannot vote on your own answer")
    current = _apply_vote(db, models.AnswerVote, "answer_id", answer, user.id, value)
    return int(answer.vote_score), current


def delete_question(db: Session, user: models.User, question_id: int) -> None:
    question = get_question(db, question_id)
    if question.user_id != user.id and not user.is_staff:
        raise PermissionDeniedError("You can only delete your own questions")
    db.delete(question)
    db.flush()


def delete_answer(db: Session, user: models.User, answer_id: int) -> None:
    answer = get_answer(db, answer_id)
    if answer.user_id != user.id and not user.is_staff:
        raise PermissionDeniedError("You can only delete your own answers")

    question = get_question(db, answer.question_id)
    if question.accepted_answer_id == answer.id:
        question.accepted_answer_id = None
    question.answer_count = max(0, (question.answer_count or 0) - 1)
    db.delete(answer)
    db.flush()
