"""Initial schema: identity, topics, clips, engagement and moderation tables.

Creates the Echo Garden schema in FK-dependency order:

1. profiles               : device-pseudonymous identity
2. admins                 : moderator marker (FK -> profiles)
3. follows                : follow graph (FK -> profiles)
4. topics
5. topic_subscriptions    : (FK -> profiles, topics)
6. clips                  : counters + cached trending_score (FK -> profiles, topics, clips)
7. listens                : playback events (FK -> clips, profiles)
8. clip_reactions         : one row per (clip, profile, emoji)
9. topic_comments         : comments and spotlight questions (FK -> topics, profiles)
10. topic_comment_upvotes
11. moderation_items      : flags and reports (FK -> clips, profiles, admins)
12. moderation_history    : append-only audit log (FK -> moderation_items)

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def _profile_fk(name: str, *, primary_key: bool = False, nullable: bool = False,
                ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        name,
        sa.UUID(),
        sa.ForeignKey("profiles.id", ondelete=ondelete),
        primary_key=primary_key,
        nullable=nullable,
    )


# ---------------------------------------------------------------------------
# upgrade
# ---------------------------------------------------------------------------

def upgrade() -> None:
    """Create all tables and indexes."""

    # ------------------------------------------------------------------
    # 1-3. identity
    # ------------------------------------------------------------------
    op.create_table(
        "profiles",
        _id(),
        sa.Column("handle", sa.String(64), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column("emoji_avatar", sa.String(16), nullable=True),
        _created_at(),
    )
    op.create_index("ix_profiles_handle", "profiles", ["handle"], unique=True)
    op.create_index("ix_profiles_device_id", "profiles", ["device_id"], unique=True)

    op.create_table(
        "admins",
        _profile_fk("profile_id", primary_key=True),
        _created_at(),
    )

    op.create_table(
        "follows",
        _profile_fk("follower_id", primary_key=True),
        _profile_fk("following_id", primary_key=True),
        _created_at(),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
    )
    op.create_index("ix_follows_following_id", "follows", ["following_id"])

    # ------------------------------------------------------------------
    # 4-5. topics
    # ------------------------------------------------------------------
    op.create_table(
        "topics",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("trending_score", sa.Float, nullable=False, server_default=sa.text("0")),
        _created_at(),
    )

    op.create_table(
        "topic_subscriptions",
        _profile_fk("profile_id", primary_key=True),
        sa.Column(
            "topic_id",
            sa.UUID(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _created_at(),
    )
    op.create_index("ix_topic_subscriptions_topic_id", "topic_subscriptions", ["topic_id"])

    # ------------------------------------------------------------------
    # 6-8. clips and engagement
    # ------------------------------------------------------------------
    op.create_table(
        "clips",
        _id(),
        _profile_fk("profile_id"),
        sa.Column(
            "topic_id",
            sa.UUID(),
            sa.ForeignKey("topics.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'processing'")),
        sa.Column("listens_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("reactions", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("reply_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("remix_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column(
            "parent_clip_id",
            sa.UUID(),
            sa.ForeignKey("clips.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "remix_of_clip_id",
            sa.UUID(),
            sa.ForeignKey("clips.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "content_rating", sa.String(20), nullable=False, server_default=sa.text("'general'")
        ),
        sa.Column("moderation", JSONB, nullable=True),
        sa.Column("quality_score", sa.Float, nullable=True),
        sa.Column("trending_score", sa.Float, nullable=False, server_default=sa.text("0")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('draft', 'processing', 'live', 'removed')", name="ck_clips_status"
        ),
    )
    op.create_index("ix_clips_profile_id", "clips", ["profile_id"])
    op.create_index("ix_clips_topic_id", "clips", ["topic_id"])
    op.create_index("ix_clips_parent_clip_id", "clips", ["parent_clip_id"])
    op.create_index("ix_clips_remix_of_clip_id", "clips", ["remix_of_clip_id"])
    op.create_index(
        "idx_clips_live_trending",
        "clips",
        ["trending_score", "created_at"],
        postgresql_where=sa.text("status = 'live'"),
    )

    op.create_table(
        "listens",
        _id(),
        sa.Column(
            "clip_id",
            sa.UUID(),
            sa.ForeignKey("clips.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("profile_id", nullable=True, ondelete="SET NULL"),
        sa.Column("completion_percentage", sa.Float, nullable=True),
        sa.Column(
            "listened_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "completion_percentage IS NULL OR "
            "(completion_percentage >= 0 AND completion_percentage <= 100)",
            name="ck_listens_completion_range",
        ),
    )
    op.create_index("ix_listens_clip_id", "listens", ["clip_id"])
    op.create_index("ix_listens_profile_id", "listens", ["profile_id"])

    op.create_table(
        "clip_reactions",
        sa.Column(
            "clip_id",
            sa.UUID(),
            sa.ForeignKey("clips.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _profile_fk("profile_id", primary_key=True),
        sa.Column("emoji", sa.String(16), primary_key=True),
        _created_at(),
    )

    # ------------------------------------------------------------------
    # 9-10. community questions
    # ------------------------------------------------------------------
    op.create_table(
        "topic_comments",
        _id(),
        sa.Column(
            "topic_id",
            sa.UUID(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("profile_id", nullable=True, ondelete="SET NULL"),
        sa.Column(
            "parent_comment_id",
            sa.UUID(),
            sa.ForeignKey("topic_comments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("is_question", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("is_answered", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("upvotes_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("replies_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("spotlight_score", sa.Float, nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_topic_comments_topic_id", "topic_comments", ["topic_id"])
    op.create_index("ix_topic_comments_parent_comment_id", "topic_comments", ["parent_comment_id"])
    op.create_index(
        "idx_topic_comments_spotlight",
        "topic_comments",
        ["spotlight_score"],
        postgresql_where=sa.text(
            "is_question AND deleted_at IS NULL AND parent_comment_id IS NULL"
        ),
    )

    op.create_table(
        "topic_comment_upvotes",
        sa.Column(
            "comment_id",
            sa.UUID(),
            sa.ForeignKey("topic_comments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _profile_fk("profile_id", primary_key=True),
        _created_at(),
    )

    # ------------------------------------------------------------------
    # 11-12. moderation
    # ------------------------------------------------------------------
    op.create_table(
        "moderation_items",
        _id(),
        sa.Column("item_type", sa.String(10), nullable=False),
        sa.Column("target_type", sa.String(10), nullable=False),
        sa.Column(
            "clip_id",
            sa.UUID(),
            sa.ForeignKey("clips.id", ondelete="CASCADE"),
            nullable=True,
        ),
        _profile_fk("profile_id", nullable=True),
        sa.Column("source", sa.String(10), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("risk", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("priority", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column(
            "workflow_state", sa.String(20), nullable=False, server_default=sa.text("'pending'")
        ),
        sa.Column(
            "assigned_to",
            sa.UUID(),
            sa.ForeignKey("admins.profile_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("moderation_notes", sa.Text, nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "reviewed_by",
            sa.UUID(),
            sa.ForeignKey("admins.profile_id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "workflow_state IN ('pending', 'in_review', 'resolved', 'actioned')",
            name="ck_moderation_items_workflow_state",
        ),
        sa.CheckConstraint("item_type IN ('flag', 'report')", name="ck_moderation_items_type"),
        sa.CheckConstraint(
            "priority >= 0 AND priority <= 100", name="ck_moderation_items_priority"
        ),
    )
    op.create_index("ix_moderation_items_clip_id", "moderation_items", ["clip_id"])
    op.create_index("ix_moderation_items_profile_id", "moderation_items", ["profile_id"])
    op.create_index("ix_moderation_items_assigned_to", "moderation_items", ["assigned_to"])
    op.create_index(
        "idx_moderation_items_queue",
        "moderation_items",
        ["workflow_state", "priority", "created_at"],
    )

    op.create_table(
        "moderation_history",
        _id(),
        sa.Column(
            "item_id",
            sa.UUID(),
            sa.ForeignKey("moderation_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(50), nullable=False),
        _profile_fk("admin_profile_id", nullable=True, ondelete="SET NULL"),
        sa.Column("previous_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("ix_moderation_history_item_id", "moderation_history", ["item_id"])


# ---------------------------------------------------------------------------
# downgrade
# ---------------------------------------------------------------------------

def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("moderation_history")
    op.drop_table("moderation_items")
    op.drop_table("topic_comment_upvotes")
    op.drop_table("topic_comments")
    op.drop_table("clip_reactions")
    op.drop_table("listens")
    op.drop_table("clips")
    op.drop_table("topic_subscriptions")
    op.drop_table("topics")
    op.drop_table("follows")
    op.drop_table("admins")
    op.drop_table("profiles")
