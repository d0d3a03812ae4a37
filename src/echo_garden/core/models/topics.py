"""Topic, subscription and community-question ORM models.

Covers:
- Topic: a discussion area with its own cached trending score.
- TopicSubscription: viewer -> topic affinity used by personalization.
- TopicComment: a comment on a topic; ``is_question`` comments are spotlight
  candidates and carry a cached ``spotlight_score``.
- TopicCommentUpvote: one upvote per (comment, profile).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from echo_garden.core.models.base import Base, uuid_pk


class Topic(Base):
    """A discussion topic clips and questions attach to."""

    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=True,
        server_default=sa.text("true"),
    )
    trending_score: Mapped[float] = mapped_column(
        sa.Float,
        nullable=False,
        default=0.0,
        server_default=sa.text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


class TopicSubscription(Base):
    """A profile's subscription to a topic."""

    __tablename__ = "topic_subscriptions"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    topic_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("topics.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


class TopicComment(Base):
    """A comment posted on a topic.

    Top-level comments (``parent_comment_id IS NULL``) flagged with
    ``is_question`` compete for the spotlight.  Replies point at their parent
    via ``parent_comment_id`` and bump the parent's ``replies_count``.
    ``spotlight_score`` is recomputed by the write path that changes any of
    its inputs and is never edited directly.
    """

    __tablename__ = "topic_comments"

    id: Mapped[uuid.UUID] = uuid_pk()
    topic_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("topics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    parent_comment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("topic_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    content: Mapped[str] = mapped_column(sa.Text, nullable=False)
    is_question: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("false")
    )
    is_answered: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("false")
    )
    upvotes_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    replies_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    spotlight_score: Mapped[float] = mapped_column(
        sa.Float, nullable=False, default=0.0, server_default=sa.text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        sa.Index(
            "idx_topic_comments_spotlight",
            "spotlight_score",
            postgresql_where=sa.text(
                "is_question AND deleted_at IS NULL AND parent_comment_id IS NULL"
            ),
        ),
    )


class TopicCommentUpvote(Base):
    """One upvote by one profile on one comment."""

    __tablename__ = "topic_comment_upvotes"

    comment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("topic_comments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
