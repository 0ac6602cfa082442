"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subject_id", sa.String(length=255), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("profile_photo", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_subject_id"), "users", ["subject_id"], unique=True)
    op.create_index(op.f("ix_users_user_name"), "users", ["user_name"], unique=True)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Create video_posts table
    op.create_table(
        "video_posts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.String(length=1000), nullable=False),
        sa.Column("cover_image_url", sa.String(length=1000), nullable=False),
        sa.Column("count_likes", sa.Integer(), nullable=False),
        sa.Column("count_collections", sa.Integer(), nullable=False),
        sa.Column("count_comments", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("count_likes >= 0", name="non_negative_count_likes"),
        sa.CheckConstraint("count_collections >= 0", name="non_negative_count_collections"),
        sa.CheckConstraint("count_comments >= 0", name="non_negative_count_comments"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_video_posts_owner_id"), "video_posts", ["owner_id"], unique=False)
    op.create_index(op.f("ix_video_posts_created_at"), "video_posts", ["created_at"], unique=False)

    # Create video_comments table
    op.create_table(
        "video_comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("video_post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["video_post_id"], ["video_posts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_video_comments_video_post_id"), "video_comments", ["video_post_id"], unique=False)
    op.create_index(op.f("ix_video_comments_author_id"), "video_comments", ["author_id"], unique=False)

    # Create video_memberships table (video_post_id is intentionally not a foreign key)
    op.create_table(
        "video_memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("video_post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("kind IN ('collection', 'like')", name="valid_membership_kind"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "video_post_id", "kind", name="unique_user_video_membership"),
    )
    op.create_index(op.f("ix_video_memberships_user_id"), "video_memberships", ["user_id"], unique=False)
    op.create_index(op.f("ix_video_memberships_video_post_id"), "video_memberships", ["video_post_id"], unique=False)

    # Create saga_journal table
    op.create_table(
        "saga_journal",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("operation", sa.String(length=100), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("completed_steps", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("context", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_saga_journal_operation"), "saga_journal", ["operation"], unique=False)
    op.create_index(op.f("ix_saga_journal_key"), "saga_journal", ["key"], unique=True)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("saga_journal")
    op.drop_table("video_memberships")
    op.drop_table("video_comments")
    op.drop_table("video_posts")
    op.drop_table("users")
