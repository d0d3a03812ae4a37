"""Engagement aggregation for a single clip.

Reduces a clip's raw interaction facts to the scalar inputs every scorer
consumes.  Read-only; a clip with no engagement yields an all-zero
aggregate, and a missing clip yields ``None`` so scorers can fall back to
their neutral value.

Reaction counts arrive as a JSONB ``{emoji: count}`` map written by older
clients as well as by :mod:`echo_garden.ranking.activity`.  Values that are
not non-negative whole numbers (``null``, ``-1``, ``"lots"``,
``{"n": 2}``) count as zero rather than failing the recompute.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.core.models.clips import Clip, Listen


@dataclass(frozen=True)
class EngagementAggregate:
    """Scalar engagement inputs for one clip.

    Attributes:
        listens: Total listens.
        reaction_total: Sum of all emoji reaction counts.
        reply_count: Replies to the clip.
        remix_count: Remixes and duets of the clip.
        completion_rate: Mean completion in [0, 1] across listens that
            recorded one, or ``None`` when none did.
    """

    listens: int = 0
    reaction_total: int = 0
    reply_count: int = 0
    remix_count: int = 0
    completion_rate: Optional[float] = None

    def completion_or(self, default: float) -> float:
        """Return the completion rate, substituting *default* when none was recorded."""
        return default if self.completion_rate is None else self.completion_rate


def coerce_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip()
        return int(value) if value.isdigit() else 0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        return 0
    return value


def reaction_total(reactions: Any) -> int:
    """Sum every emoji count in a reactions map, treating malformed values as 0.

    Args:
        reactions: The ``Clip.reactions`` JSON value; anything that is not
            a dict sums to 0.

    Returns:
        Non-negative total reaction count.
    """
    if not isinstance(reactions, dict):
        return 0
    return sum(coerce_count(v) for v in reactions.values())


def aggregate_clip(clip: Clip, completion_rate: Optional[float] = None) -> EngagementAggregate:
    """Build an aggregate from a loaded clip row and a pre-computed completion rate."""
    return EngagementAggregate(
        listens=max(clip.listens_count or 0, 0),
        reaction_total=reaction_total(clip.reactions),
        reply_count=max(clip.reply_count or 0, 0),
        remix_count=max(clip.remix_count or 0, 0),
        completion_rate=completion_rate,
    )


async def average_completion(
    session: AsyncSession,
    clip_id: uuid.UUID,
    profile_id: Optional[uuid.UUID] = None,
) -> Optional[float]:
    """Mean completion percentage (0-100) of non-deleted listens on a clip.

    Args:
        session: Open async session.
        clip_id: Clip to aggregate.
        profile_id: When given, restrict to that listener's listens.

    Returns:
        The average percentage, or ``None`` when no listen recorded one.
    """
    stmt = select(func.avg(Listen.completion_percentage)).where(
        Listen.clip_id == clip_id,
        Listen.completion_percentage.is_not(None),
        Listen.deleted_at.is_(None),
    )
    if profile_id is not None:
        stmt = stmt.where(Listen.profile_id == profile_id)
    value = (await session.execute(stmt)).scalar_one_or_none()
    return None if value is None else float(value)


async def aggregate(session: AsyncSession, clip_id: uuid.UUID) -> Optional[EngagementAggregate]:
    """Load a clip and aggregate its engagement.

    Returns:
        The aggregate, or ``None`` if the clip does not exist.
    """
    clip = await session.get(Clip, clip_id)
    if clip is None:
        return None
    pct = await average_completion(session, clip_id)
    return aggregate_clip(clip, None if pct is None else pct / 100.0)
