"""User profiles, follows and personal credit views."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import PageParams, get_db, page_params
from ..services import social
from ..services.credits import credit_totals, list_credit_history

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/me", response_model=schemas.UserMe)
def get_me(current_user: models.User = Depends(get_current_user)) -> schemas.UserMe:
    return schemas.UserMe.model_validate(current_user)


@router.put("/me", response_model=schemas.UserMe)
def update_me(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserMe:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return schemas.UserMe.model_validate(current_user)


@router.get("/profile/{user_id}", response_model=schemas.UserProfile)
def get_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.UserProfile:
    """Public profile with statistics."""
    user = social.get_active_user(db, user_id)
    following = None
    if current_user is not None and current_user.id != user.id:
        following = social.is_following(db, current_user.id, user.id)
    return schemas.UserProfile(
        user=schemas.UserPublic.model_validate(user),
        stats=schemas.UserStats(**social.user_stats(db, user.id)),
        is_following=following,
    )


@router.get("/stats/{user_id}", response_model=schemas.UserStats)
def get_stats(user_id: int, db: Session = Depends(get_db)) -> schemas.UserStats:
    social.get_active_user(db, user_id)
    return schemas.UserStats(**social.user_stats(db, user_id))


@router.post("/follow/{user_id}", response_model=schemas.FollowResponse, status_code=status.HTTP_201_CREATED)
def follow(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FollowResponse:
    social.follow_user(db, current_user, user_id)
    db.commit()
    return schemas.FollowResponse(following=True, follower_count=social.follower_count(db, user_id))


@router.delete("/follow/{user_id}", response_model=schemas.FollowResponse)
def unfollow(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FollowResponse:
    social.unfollow_user(db, current_user, user_id)
    db.commit()
    return schemas.FollowResponse(following=False, follower_count=social.follower_count(db, user_id))


@router.get("/followers/{user_id}", response_model=schemas.Page[schemas.UserPublic])
def list_followers(
    user_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> schemas.Page[schemas.UserPublic]:
    users, total = social.list_followers(db, user_id, params.page, params.limit)
    return schemas.Page.build(
        [schemas.UserPublic.model_validate(u) for u in users], total, params.page, params.limit
    )


@router.get("/following/{user_id}", response_model=schemas.Page[schemas.UserPublic])
def list_following(
    user_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> schemas.Page[schemas.UserPublic]:
    users, total = social.list_following(db, user_id, params.page, params.limit)
    return schemas.Page.build(
        [schemas.UserPublic.model_validate(u) for u in users], total, params.page, params.limit
    )


@router.get("/documents/{user_id}", response_model=schemas.Page[schemas.Document])
def list_user_documents(
    user_id: int,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.Page[schemas.Document]:
    """
    A user's documents, newest first.

    Others see approved documents only; the owner and staff see all of them.
    """
    query = db.query(models.Document).filter(models.Document.author_id == user_id)
    if current_user is None or (current_user.id != user_id and not current_user.is_staff):
        query = query.filter(models.Document.status == "approved")

    total = query.count()
    documents = (
        query.order_by(models.Document.created_at.desc(), models.Document.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.Document.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.get("/downloads", response_model=schemas.Page[schemas.Document])
def list_my_downloads(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.Document]:
    query = (
        db.query(models.Document)
        .join(models.Download, models.Download.document_id == models.Document.id)
        .filter(models.Download.user_id == current_user.id)
    )
    total = query.count()
    documents = (
        query.order_by(models.Download.created_at.desc(), models.Download.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )
    return schemas.Page.build(
        [schemas.Document.model_validate(d) for d in documents], total, params.page, params.limit
    )


@router.get("/credits", response_model=schemas.CreditBalance)
def get_credits(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CreditBalance:
    earned, spent = credit_totals(db, current_user.id)
    return schemas.CreditBalance(credits=current_user.credits, total_earned=earned, total_spent=spent)


@router.get("/credit-history", response_model=schemas.Page[schemas.CreditTransaction])
def get_credit_history(
    transaction_type: str | None = Query(None),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.Page[schemas.CreditTransaction]:
    items, total = list_credit_history(
        db, current_user.id, params.page, params.limit, transaction_type=transaction_type
    )
    return schemas.Page.build(
        [schemas.CreditTransaction.model_validate(t) for t in items], total, params.page, params.limit
    )
