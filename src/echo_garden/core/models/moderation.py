"""Moderation queue ORM models.

Covers:
- ModerationItem: a flag (raised by the AI pipeline or a moderator) or a
  report (raised by a user) targeting a clip or a profile, with its
  workflow state, priority and assignment.
- ModerationHistoryEntry: append-only audit row written on every
  assignment, state or note change.  Never updated or deleted.

Workflow::

    pending ──► in_review ──► resolved
        │            └──────► actioned
        └──────────────────► resolved / actioned

``resolved`` and ``actioned`` are terminal.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from echo_garden.core.models.base import Base, TimestampMixin, uuid_pk


class WorkflowState(str, enum.Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    ACTIONED = "actioned"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.RESOLVED, WorkflowState.ACTIONED)


OPEN_STATES: tuple[str, ...] = (WorkflowState.PENDING.value, WorkflowState.IN_REVIEW.value)
TERMINAL_STATES: tuple[str, ...] = (
    WorkflowState.RESOLVED.value,
    WorkflowState.ACTIONED.value,
)


class ItemType(str, enum.Enum):
    FLAG = "flag"
    REPORT = "report"


class ModerationSource(str, enum.Enum):
    AI = "ai"
    USER = "user"
    MANUAL = "manual"


class TargetType(str, enum.Enum):
    CLIP = "clip"
    PROFILE = "profile"


class ModerationItem(TimestampMixin, Base):
    """A flag or report awaiting (or past) moderator review.

    ``risk`` is the 0..10 severity attached by whoever raised the item;
    ``priority`` (0..100) orders the queue and is raised by auto-escalation.
    """

    __tablename__ = "moderation_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_type: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    target_type: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    clip_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("clips.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    source: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    risk: Mapped[float] = mapped_column(
        sa.Float, nullable=False, default=0.0, server_default=sa.text("0")
    )
    priority: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    workflow_state: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default=WorkflowState.PENDING.value,
        server_default=sa.text("'pending'"),
    )
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("admins.profile_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    moderation_notes: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("admins.profile_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        sa.CheckConstraint(
            "workflow_state IN ('pending', 'in_review', 'resolved', 'actioned')",
            name="ck_moderation_items_workflow_state",
        ),
        sa.CheckConstraint("item_type IN ('flag', 'report')", name="ck_moderation_items_type"),
        sa.CheckConstraint(
            "priority >= 0 AND priority <= 100", name="ck_moderation_items_priority"
        ),
        sa.Index("idx_moderation_items_queue", "workflow_state", "priority", "created_at"),
    )


class ModerationHistoryEntry(Base):
    """Append-only audit row for one change to a :class:`ModerationItem`."""

    __tablename__ = "moderation_history"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("moderation_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    admin_profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    previous_value: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )
