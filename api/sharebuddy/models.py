from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base


# ============================================================================
# CORE ENTITIES
# ============================================================================


class User(Base):
    """User account with authentication, profile and credit balance."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=True)
    university = Column(String(200), nullable=True, index=True)
    major = Column(String(200), nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String(500), nullable=True)

    role = Column(String(20), nullable=False, default="user", index=True)  # user, moderator, admin
    credits = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    is_verified_author = Column(Boolean, nullable=False, default=False, index=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # Relationships
    documents = relationship("Document", back_populates="author", cascade="all, delete-orphan")
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )
    credit_transactions = relationship(
        "CreditTransaction", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),)

    @property
    def is_staff(self) -> bool:
        return self.role in ("moderator", "admin")


class RefreshToken(Base):
    """Refresh token for JWT authentication (stored hashed)."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="refresh_tokens")


class Document(Base):
    """Uploaded study document."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    subject = Column(String(200), nullable=True, index=True)
    university = Column(String(200), nullable=True, index=True)

    # Stored file
    file_path = Column(String(500), nullable=False)  # relative to UPLOAD_LOCATION
    file_name = Column(String(255), nullable=False)  # original client file name
    file_size = Column(Integer, nullable=False, default=0)
    file_type = Column(String(20), nullable=False, index=True)

    credit_cost = Column(Integer, nullable=False, default=0)

    # Moderation
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, approved, rejected
    moderation_score = Column(Float, nullable=True)
    moderation_flags = Column(JSON, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    moderated_at = Column(DateTime(timezone=True), nullable=True)

    is_featured = Column(Boolean, nullable=False, default=False, index=True)

    # Denormalized counters
    download_count = Column(Integer, nullable=False, default=0, index=True)
    view_count = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0, index=True)
    rating_count = Column(Integer, nullable=False, default=0)

    # Preview
    preview_path = Column(String(500), nullable=True)
    preview_pages = Column(Integer, nullable=True)
    thumbnail_path = Column(String(500), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    author = relationship("User", back_populates="documents")
    tags = relationship(
        "DocumentTag",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentTag.id",
    )

    __table_args__ = (
        CheckConstraint("credit_cost >= 0", name="ck_documents_credit_cost_non_negative"),
        Index("ix_documents_status_created", "status", "created_at"),
    )

    @property
    def tag_names(self) -> list[str]:
        return [t.tag_name for t in self.tags]

    @property
    def has_preview(self) -> bool:
        return bool(self.preview_path)


class DocumentTag(Base):
    """Free-form tag attached to a document."""

    __tablename__ = "document_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_name = Column(String(50), nullable=False, index=True)

    document = relationship("Document", back_populates="tags")

    __table_args__ = (UniqueConstraint("document_id", "tag_name", name="uq_document_tag"),)


class Download(Base):
    """A user's paid (or free) download of a document. One row per user/document."""

    __tablename__ = "downloads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    credits_spent = Column(Integer, nullable=False, default=0)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    __table_args__ = (UniqueConstraint("user_id", "document_id", name="uq_download_user_document"),)


# ============================================================================
# FEEDBACK: RATINGS, COMMENTS, BOOKMARKS, REPORTS
# ============================================================================


class Rating(Base):
    """1-5 star rating with optional review text."""

    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("user_id", "document_id", name="uq_rating_user_document"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
    )


class Comment(Base):
    """Comment on a document. Replies are one level deep."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id = Column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    content = Column(Text, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User")
    parent = relationship("Comment", remote_side=[id])


class CommentLike(Base):
    __tablename__ = "comment_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    comment_id = Column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "comment_id", name="uq_comment_like"),)


class Bookmark(Base):
    __tablename__ = "bookmarks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    document = relationship("Document")

    __table_args__ = (UniqueConstraint("user_id", "document_id", name="uq_bookmark_user_document"),)


class Report(Base):
    """User report against a document, rating or comment."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type = Column(String(20), nullable=False, index=True)  # document, rating, comment
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=True)
    rating_id = Column(Integer, ForeignKey("ratings.id", ondelete="CASCADE"), nullable=True)
    comment_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True)
    reason = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, resolved, dismissed
    admin_note = Column(Text, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    reporter = relationship("User", foreign_keys=[reporter_id])


# ============================================================================
# SOCIAL
# ============================================================================


class Follow(Base):
    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    following_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follow_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_follows_no_self_follow"),
    )


class Notification(Base):
    """In-app notification."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    related_document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    related_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    __table_args__ = (Index("ix_notifications_user_read", "user_id", "is_read"),)


# ============================================================================
# CREDITS & PAYMENTS
# ============================================================================


class CreditTransaction(Base):
    """One ledger entry. The sum of a user's amounts equals users.credits."""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed
    transaction_type = Column(String(30), nullable=False, index=True)
    description = Column(String(500), nullable=True)
    reference_id = Column(String(255), nullable=True, index=True)
    related_document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    balance_after = Column(Integer, nullable=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    user = relationship("User", back_populates="credit_transactions")


class CreditPackage(Base):
    __tablename__ = "credit_packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    credits = Column(Integer, nullable=False)
    bonus_credits = Column(Integer, nullable=False, default=0)
    price_usd = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    price_vnd = Column(Integer, nullable=False)
    is_popular = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    display_order = Column(Integer, nullable=False, default=0)

    @property
    def total_credits(self) -> int:
        return self.credits + self.bonus_credits


class PaymentTransaction(Base):
    """Stripe payment intent mirrored locally."""

    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("credit_packages.id", ondelete="SET NULL"), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=False, unique=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    currency = Column(String(10), nullable=False, default="usd")
    credits_purchased = Column(Integer, nullable=False)
    payment_status = Column(String(30), nullable=False, default="pending", index=True)
    payment_method = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())


# ============================================================================
# VERIFIED AUTHORS
# ============================================================================


class VerifiedAuthorRequest(Base):
    """A user's request for the verified author badge, with the criteria at that time."""

    __tablename__ = "verified_author_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # approved, rejected
    criteria_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    vote_score = Column(Integer, nullable=False, default=0)
    answer_count = Column(Integer, nullable=False, default=0)
    accepted_answer_id = Column(Integer, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User")
    answers = relationship("Answer", back_populates="question", cascade="all, delete-orphan")


class Answer(Base):
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    vote_score = Column(Integer, nullable=False, default=0)
    is_accepted = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User")
    question = relationship("Question", back_populates="answers")


class QuestionVote(Base):
    __tablename__ = "question_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vote = Column(Integer, nullable=False)  # +1 / -1

    __table_args__ = (UniqueConstraint("user_id", "question_id", name="uq_question_vote"),)


class AnswerVote(Base):
    __tablename__ = "answer_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    answer_id = Column(
        Integer, ForeignKey("answers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vote = Column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "answer_id", name="uq_answer_vote"),)


# ============================================================================
# RECOMMENDATIONS
# ============================================================================


class UserDocumentInteraction(Base):
    """Implicit feedback used by the recommender."""

    __tablename__ = "user_document_interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    interaction_type = Column(String(20), nullable=False)  # view, download, bookmark, rate, comment
    interaction_value = Column(Float, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    __table_args__ = (Index("ix_interactions_user_type", "user_id", "interaction_type"),)


class UserSimilarity(Base):
    """Pairwise user similarity, rebuilt periodically from interactions."""

    __tablename__ = "user_similarity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id_1 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id_2 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    similarity_score = Column(Float, nullable=False)
    common_interactions = Column(Integer, nullable=False)
    computed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id_1", "user_id_2", name="uq_user_similarity_pair"),
        CheckConstraint("user_id_1 < user_id_2", name="ck_user_similarity_ordered"),
    )


# ============================================================================
# MODERATION & AUDIT
# ============================================================================


class ModerationJob(Base):
    """Tracks the automated screening of one uploaded document."""

    __tablename__ = "moderation_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    moderation_status = Column(String(20), nullable=False, default="queued", index=True)  # queued, processing, completed, failed
    moderation_score = Column(Float, nullable=True)
    moderation_flags = Column(JSON, nullable=True)
    extracted_text_preview = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    """Staff action trail."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
