"""initial sharebuddy schema

Revision ID: 202501010001
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "202501010001"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(index: bool = False) -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
        index=index,
    )


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def _user_fk(name: str = "user_id", ondelete: str = "CASCADE", nullable: bool = False, index: bool = True) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable, index=index)


def _document_fk(ondelete: str = "CASCADE", nullable: bool = False, index: bool = True) -> sa.Column:
    return sa.Column(
        "document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete=ondelete), nullable=nullable, index=index
    )


def upgrade() -> None:
    # ------------------------------------------------------------------ users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=True),
        sa.Column("university", sa.String(length=200), nullable=True, index=True),
        sa.Column("major", sa.String(length=200), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user", index=True),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_verified_author", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(index=True),
        _updated_at(),
        sa.CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        _created_at(),
    )
    op.create_index("ix_refresh_tokens_token_hash", "refresh_tokens", ["token_hash"], unique=True)

    # -------------------------------------------------------------- documents
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("author_id"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject", sa.String(length=200), nullable=True, index=True),
        sa.Column("university", sa.String(length=200), nullable=True, index=True),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_type", sa.String(length=20), nullable=False, index=True),
        sa.Column("credit_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending", index=True),
        sa.Column("moderation_score", sa.Float(), nullable=True),
        sa.Column("moderation_flags", sa.JSON(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("moderated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0", index=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default="0", index=True),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("preview_path", sa.String(length=500), nullable=True),
        sa.Column("preview_pages", sa.Integer(), nullable=True),
        sa.Column("thumbnail_path", sa.String(length=500), nullable=True),
        _created_at(index=True),
        _updated_at(),
        sa.CheckConstraint("credit_cost >= 0", name="ck_documents_credit_cost_non_negative"),
    )
    op.create_index("ix_documents_status_created", "documents", ["status", "created_at"])
    # Full-text search over title, description and subject
    if op.get_bind().dialect.name == "postgresql":
        op.execute(
            "CREATE INDEX IF NOT EXISTS ix_documents_search ON documents USING GIN ("
            "to_tsvector('simple', coalesce(title, '') || ' ' || coalesce(description, '') "
            "|| ' ' || coalesce(subject, '')))"
        )

    op.create_table(
        "document_tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        _document_fk(),
        sa.Column("tag_name", sa.String(length=50), nullable=False, index=True),
        sa.UniqueConstraint("document_id", "tag_name", name="uq_document_tag"),
    )

    op.create_table(
        "downloads",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        _document_fk(),
        sa.Column("credits_spent", sa.Integer(), nullable=False, server_default="0"),
        _created_at(index=True),
        sa.UniqueConstraint("user_id", "document_id", name="uq_download_user_document"),
    )

    # --------------------------------------------------------------- feedback
    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        _document_fk(),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _created_at(index=True),
        _updated_at(),
        sa.UniqueConstraint("user_id", "document_id", name="uq_rating_user_document"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        _document_fk(),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(index=True),
        _updated_at(),
    )

    op.create_table(
        "comment_likes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column("comment_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True),
        _created_at(),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_comment_like"),
    )

    op.create_table(
        "bookmarks",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        _document_fk(),
        _created_at(index=True),
        sa.UniqueConstraint("user_id", "document_id", name="uq_bookmark_user_document"),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("reporter_id"),
        sa.Column("report_type", sa.String(length=20), nullable=False, index=True),
        _document_fk(nullable=True, index=False),
        sa.Column("rating_id", sa.Integer(), sa.ForeignKey("ratings.id", ondelete="CASCADE"), nullable=True),
        sa.Column("comment_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True),
        sa.Column("reason", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending", index=True),
        sa.Column("admin_note", sa.Text(), nullable=True),
        _user_fk("resolved_by", ondelete="SET NULL", nullable=True, index=False),
        _created_at(index=True),
        _updated_at(),
    )

    # ----------------------------------------------------------------- social
    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        _created_at(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follow_pair"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_no_self_follow"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column(
            "related_document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
        ),
        _user_fk("related_user_id", ondelete="SET NULL", nullable=True, index=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(index=True),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])

    # ---------------------------------------------------------------- credits
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=30), nullable=False, index=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("reference_id", sa.String(length=255), nullable=True, index=True),
        sa.Column(
            "related_document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        _created_at(index=True),
    )

    op.create_table(
        "credit_packages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("bonus_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_usd", sa.Numeric(10, 2), nullable=False),
        sa.Column("price_vnd", sa.Integer(), nullable=False),
        sa.Column("is_popular", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column(
            "package_id", sa.Integer(), sa.ForeignKey("credit_packages.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=False),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True, index=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="usd"),
        sa.Column("credits_purchased", sa.Integer(), nullable=False),
        sa.Column("payment_status", sa.String(length=30), nullable=False, server_default="pending", index=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _created_at(index=True),
        _updated_at(),
    )
    op.create_index(
        "ix_payment_transactions_stripe_payment_intent_id",
        "payment_transactions",
        ["stripe_payment_intent_id"],
        unique=True,
    )

    op.create_table(
        "verified_author_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("criteria_snapshot", sa.JSON(), nullable=True),
        _created_at(),
    )

    # -------------------------------------------------------------------- Q&A
    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _document_fk(),
        _user_fk(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("vote_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("answer_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_answer_id", sa.Integer(), nullable=True),
        _created_at(index=True),
        _updated_at(),
    )

    op.create_table(
        "answers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("question_id", sa.Integer(), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True),
        _user_fk(),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("vote_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(index=True),
        _updated_at(),
    )

    op.create_table(
        "question_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(index=False),
        sa.Column("question_id", sa.Integer(), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("vote", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "question_id", name="uq_question_vote"),
    )

    op.create_table(
        "answer_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(index=False),
        sa.Column("answer_id", sa.Integer(), sa.ForeignKey("answers.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("vote", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "answer_id", name="uq_answer_vote"),
    )

    # -------------------------------------------------------- recommendations
    op.create_table(
        "user_document_interactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk(),
        _document_fk(),
        sa.Column("interaction_type", sa.String(length=20), nullable=False),
        sa.Column("interaction_value", sa.Float(), nullable=True),
        _created_at(index=True),
    )
    op.create_index(
        "ix_interactions_user_type", "user_document_interactions", ["user_id", "interaction_type"]
    )

    op.create_table(
        "user_similarity",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id_1"),
        _user_fk("user_id_2"),
        sa.Column("similarity_score", sa.Float(), nullable=False),
        sa.Column("common_interactions", sa.Integer(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id_1", "user_id_2", name="uq_user_similarity_pair"),
        sa.CheckConstraint("user_id_1 < user_id_2", name="ck_user_similarity_ordered"),
    )

    # ------------------------------------------------------ moderation, audit
    op.create_table(
        "moderation_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("moderation_status", sa.String(length=20), nullable=False, server_default="queued", index=True),
        sa.Column("moderation_score", sa.Float(), nullable=True),
        sa.Column("moderation_flags", sa.JSON(), nullable=True),
        sa.Column("extracted_text_preview", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_moderation_jobs_document_id", "moderation_jobs", ["document_id"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("actor_id", ondelete="SET NULL", nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False, index=True),
        sa.Column("target_type", sa.String(length=50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        _created_at(index=True),
    )


def downgrade() -> None:
    for table in (
        "audit_logs",
        "moderation_jobs",
        "user_similarity",
        "user_document_interactions",
        "answer_votes",
        "question_votes",
        "answers",
        "questions",
        "verified_author_requests",
        "payment_transactions",
        "credit_packages",
        "credit_transactions",
        "notifications",
        "follows",
        "reports",
        "bookmarks",
        "comment_likes",
        "comments",
        "ratings",
        "downloads",
        "document_tags",
        "documents",
        "refresh_tokens",
        "users",
    ):
        op.drop_table(table)
