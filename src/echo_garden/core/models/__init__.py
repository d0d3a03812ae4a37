"""SQLAlchemy ORM models for Echo Garden.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do `from echo_garden.core.models import Clip`
   without knowing which sub-module a model lives in.
3. Foreign keys between modules resolve at import time.
"""

from __future__ import annotations

from echo_garden.core.models.base import Base, TimestampMixin
from echo_garden.core.models.clips import (
    Clip,
    ClipReaction,
    ClipStatus,
    ContentRating,
    Listen,
)
from echo_garden.core.models.moderation import (
    ItemType,
    ModerationHistoryEntry,
    ModerationItem,
    ModerationSource,
    TargetType,
    WorkflowState,
)
from echo_garden.core.models.profiles import Admin, Follow, Profile
from echo_garden.core.models.topics import (
    Topic,
    TopicComment,
    TopicCommentUpvote,
    TopicSubscription,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Profiles
    "Admin",
    "Follow",
    "Profile",
    # Clips
    "Clip",
    "ClipReaction",
    "ClipStatus",
    "ContentRating",
    "Listen",
    # Topics
    "Topic",
    "TopicComment",
    "TopicCommentUpvote",
    "TopicSubscription",
    # Moderation
    "ItemType",
    "ModerationHistoryEntry",
    "ModerationItem",
    "ModerationSource",
    "TargetType",
    "WorkflowState",
]
