from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# BASE SCHEMAS
# ============================================================================

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Generic page/limit paginated response."""

    items: list[T]
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: list[Any], total: int, page: int, limit: int) -> "Page":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            items=items,
            page=page,
            limit=limit,
            total_items=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class Message(BaseModel):
    """Plain success acknowledgement."""

    success: Literal[True] = True
    message: str


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    uptime_s: float | None = None


# ============================================================================
# USERS & AUTH
# ============================================================================


class UserPublic(BaseModel):
    """Public view of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str | None = None
    university: str | None = None
    major: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    is_verified_author: bool = False
    created_at: datetime | None = None


class UserMe(UserPublic):
    """The authenticated user's own account."""

    email: str
    role: str
    credits: int
    email_verified: bool
    is_active: bool
    verified_at: datetime | None = None


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str | None = Field(None, max_length=100)
    university: str | None = Field(None, max_length=200)
    major: str | None = Field(None, max_length=200)


class LoginRequest(BaseModel):
    """Login by e-mail or username."""

    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserMe


class ProfileUpdate(BaseModel):
    full_name: str | None = Field(None, max_length=100)
    university: str | None = Field(None, max_length=200)
    major: str | None = Field(None, max_length=200)
    bio: str | None = Field(None, max_length=2000)
    avatar_url: str | None = Field(None, max_length=500)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class UserStats(BaseModel):
    document_count: int
    total_downloads: int
    follower_count: int
    following_count: int
    average_rating: float


class UserProfile(BaseModel):
    user: UserPublic
    stats: UserStats
    is_following: bool | None = None


# ============================================================================
# DOCUMENTS
# ============================================================================


class DocumentAuthor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str | None = None
    avatar_url: str | None = None
    is_verified_author: bool = False


class Document(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    title: str
    description: str | None = None
    subject: str | None = None
    university: str | None = None
    file_name: str
    file_size: int
    file_type: str
    credit_cost: int
    status: str
    is_featured: bool
    download_count: int
    view_count: int
    average_rating: float
    rating_count: int
    tags: list[str] = Field(default_factory=list, validation_alias="tag_names")
    has_preview: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: DocumentAuthor | None = None


class UserInteraction(BaseModel):
    is_bookmarked: bool
    user_rating: int | None = None
    can_download: bool
    has_downloaded: bool


class DocumentDetail(Document):
    rejection_reason: str | None = None
    moderation_score: float | None = None
    user_interaction: UserInteraction | None = None


def _split_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    seen: list[str] = []
    for raw in value:
        tag = str(raw).strip()
        if tag and tag not in seen:
            seen.append(tag[:50])
    return seen


class DocumentUpdate(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = Field(None, max_length=5000)
    subject: str | None = Field(None, max_length=200)
    university: str | None = Field(None, max_length=200)
    credit_cost: int | None = Field(None, ge=0, le=1000)
    tags: list[str] | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, v: Any) -> list[str] | None:
        return None if v is None else _split_tags(v)


class ModerationJob(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    moderation_status: str
    moderation_score: float | None = None
    moderation_flags: list[str] | None = None
    error_message: str | None = None
    attempts: int
    created_at: datetime | None = None
    completed_at: datetime | None = None


class UploadResponse(BaseModel):
    success: Literal[True] = True
    message: str
    document: Document
    moderation_job: ModerationJob


class DownloadResponse(BaseModel):
    success: Literal[True] = True
    download_url: str
    file_name: str
    credits_spent: int
    remaining_credits: int


class BookmarkResponse(BaseModel):
    success: Literal[True] = True
    document_id: int
    bookmarked: bool


class ReportCreate(BaseModel):
    reason: Literal["spam", "inappropriate", "copyright", "misleading", "other"]
    description: str | None = Field(None, max_length=2000)


class Report(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reporter_id: int
    report_type: str
    document_id: int | None = None
    rating_id: int | None = None
    comment_id: int | None = None
    reason: str
    description: str | None = None
    status: str
    admin_note: str | None = None
    resolved_by: int | None = None
    created_at: datetime | None = None


# ============================================================================
# RATINGS
# ============================================================================


class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class Rating(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    rating: int
    comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user: DocumentAuthor | None = None


class RatingStats(BaseModel):
    total: int
    avg: float
    distribution: dict[int, int]


class RatingList(Page[Rating]):
    stats: RatingStats


# ============================================================================
# COMMENTS
# ============================================================================


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    parent_id: int | None = None


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class Comment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    parent_id: int | None = None
    content: str
    is_deleted: bool
    like_count: int = 0
    reply_count: int = 0
    is_liked: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user: DocumentAuthor | None = None


class LikeResponse(BaseModel):
    success: Literal[True] = True
    comment_id: int
    liked: bool
    like_count: int


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================


class QuestionCreate(BaseModel):
    document_id: int
    title: str = Field(..., min_length=5, max_length=255)
    content: str = Field(..., min_length=10, max_length=10000)


class AnswerCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class Answer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int
    content: str
    vote_score: int
    is_accepted: bool
    created_at: datetime | None = None
    user: DocumentAuthor | None = None


class Question(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    title: str
    content: str
    vote_score: int
    answer_count: int
    accepted_answer_id: int | None = None
    created_at: datetime | None = None
    user: DocumentAuthor | None = None


class QuestionDetail(Question):
    answers: list[Answer] = Field(default_factory=list)


class VoteRequest(BaseModel):
    vote: Literal[1, -1]


class VoteResult(BaseModel):
    success: Literal[True] = True
    vote_score: int
    user_vote: int | None = None


# ============================================================================
# SOCIAL & NOTIFICATIONS
# ============================================================================


class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    content: str | None = None
    related_document_id: int | None = None
    related_user_id: int | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None


class UnreadCount(BaseModel):
    unread_count: int


class FollowResponse(BaseModel):
    success: Literal[True] = True
    following: bool
    follower_count: int


# ============================================================================
# CREDITS & PAYMENTS
# ============================================================================


class CreditTransaction(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    amount: int
    transaction_type: str
    description: str | None = None
    reference_id: str | None = None
    related_document_id: int | None = None
    balance_after: int
    created_at: datetime | None = None


class CreditBalance(BaseModel):
    credits: int
    total_earned: int
    total_spent: int


class CreditPackage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    credits: int
    bonus_credits: int
    total_credits: int
    price_usd: float
    price_vnd: int
    is_popular: bool
    display_order: int


class PaymentIntentRequest(BaseModel):
    package_id: int
    currency: Literal["usd", "vnd"] = "usd"


class PaymentIntentResponse(BaseModel):
    client_secret: str | None = None
    payment_intent_id: str
    amount: float
    currency: str
    credits: int


class PaymentTransaction(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    package_id: int | None = None
    stripe_payment_intent_id: str
    amount: float
    currency: str
    credits_purchased: int
    payment_status: str
    payment_method: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None


class PaymentConfig(BaseModel):
    publishable_key: str | None = None
    currency: str = "usd"
    vnd_per_usd: int


# ============================================================================
# MODERATION & ADMIN
# ============================================================================


class ModerationDecision(BaseModel):
    action: Literal["approve", "reject"]
    reason: str | None = Field(None, max_length=2000)


class ModerationWebhookPayload(BaseModel):
    document_id: int
    status: Literal["completed", "failed"]
    approved: bool | None = None
    score: float | None = None
    flags: list[str] | None = None
    reason: str | None = None
    error: str | None = None


class AdminUserUpdate(BaseModel):
    is_active: bool | None = None
    role: Literal["user", "moderator", "admin"] | None = None
    is_verified_author: bool | None = None
    email_verified: bool | None = None


class ResolveReportRequest(BaseModel):
    action: Literal["dismiss", "take_action"]
    admin_note: str | None = Field(None, max_length=2000)


class CreditAdjustRequest(BaseModel):
    amount: int
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("amount must be non-zero")
        return v


class FeatureRequest(BaseModel):
    is_featured: bool


class AuditLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: int | None = None
    action: str
    target_type: str | None = None
    target_id: int | None = None
    note: str | None = None
    created_at: datetime | None = None
