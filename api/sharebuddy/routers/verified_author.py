"""Verified author badge endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import PageParams, get_db, page_params
from ..services import verified_author

router = APIRouter(prefix="/api/verified-author", tags=["Verified Author"])


@router.get("/progress")
def get_progress(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    return verified_author.get_verification_progress(db, current_user)


@router.post("/verify")
def request_verification(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """
    Ask for the badge. It is granted immediately when every criterion is met;
    the request and its outcome are recorded either way.
    """
    result = verified_author.request_verification(db, current_user)
    db.commit()
    return {
        "success": True,
        "verified": result["verified"],
        "message": "Verification approved" if result["verified"] else "Criteria not met yet",
        "progress": result["progress"],
    }


@router.get("/authors")
def list_authors(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict:
    rows, total = verified_author.list_verified_authors(db, params.page, params.limit)
    page = schemas.Page.build(
        [{**row, "user": schemas.UserPublic.model_validate(row["user"])} for row in rows],
        total,
        params.page,
        params.limit,
    )
    return page.model_dump()


@router.get("/status/{user_id}")
def get_status(user_id: int, db: Session = Depends(get_db)) -> dict:
    return verified_author.verification_status(db, user_id)
