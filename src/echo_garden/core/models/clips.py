"""Clip and engagement-event ORM models.

Covers:
- Clip: a published audio clip with its engagement counters and cached
  ``trending_score``.
- Listen: one playback, optionally with a completion percentage.
- ClipReaction: one emoji reaction by one profile.

``Clip.reactions`` mirrors the reaction rows as an ``{emoji: count}`` JSONB
map so the trending recompute reads a single row.  The counters are
maintained by :mod:`echo_garden.ranking.activity`; the trending score is a
pure function of them and is never written anywhere else.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from echo_garden.core.models.base import Base, TimestampMixin, uuid_pk


class ClipStatus(str, enum.Enum):
    """Lifecycle status of a clip.  Only ``live`` clips are ranked."""

    DRAFT = "draft"
    PROCESSING = "processing"
    LIVE = "live"
    REMOVED = "removed"


class ContentRating(str, enum.Enum):
    GENERAL = "general"
    SENSITIVE = "sensitive"


class Clip(TimestampMixin, Base):
    """A published audio clip.

    ``moderation`` holds the automated review payload; only its ``risk`` key
    (0..1 after clamping) feeds the trending quality factor.
    """

    __tablename__ = "clips"

    id: Mapped[uuid.UUID] = uuid_pk()
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    topic_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("topics.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[Optional[str]] = mapped_column(sa.String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default=ClipStatus.PROCESSING.value,
        server_default=sa.text("'processing'"),
    )
    listens_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    reactions: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=sa.text("'{}'::jsonb"),
    )
    reply_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    remix_count: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    parent_clip_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("clips.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    remix_of_clip_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("clips.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    content_rating: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default=ContentRating.GENERAL.value,
        server_default=sa.text("'general'"),
    )
    moderation: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    quality_score: Mapped[Optional[float]] = mapped_column(sa.Float, nullable=True)
    trending_score: Mapped[float] = mapped_column(
        sa.Float, nullable=False, default=0.0, server_default=sa.text("0")
    )

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('draft', 'processing', 'live', 'removed')",
            name="ck_clips_status",
        ),
        sa.Index(
            "idx_clips_live_trending",
            "trending_score",
            "created_at",
            postgresql_where=sa.text("status = 'live'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Clip id={self.id} status={self.status} trending={self.trending_score}>"


class Listen(Base):
    """One playback of a clip.  Soft-deleted rows are ignored by every aggregate."""

    __tablename__ = "listens"

    id: Mapped[uuid.UUID] = uuid_pk()
    clip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("clips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    completion_percentage: Mapped[Optional[float]] = mapped_column(
        sa.Float, nullable=True
    )
    listened_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        sa.CheckConstraint(
            "completion_percentage IS NULL OR "
            "(completion_percentage >= 0 AND completion_percentage <= 100)",
            name="ck_listens_completion_range",
        ),
    )


class ClipReaction(Base):
    """One emoji reaction by one profile on one clip."""

    __tablename__ = "clip_reactions"

    clip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("clips.id", ondelete="CASCADE"),
        primary_key=True,
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    emoji: Mapped[str] = mapped_column(sa.String(16), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
