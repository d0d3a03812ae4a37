"""Per-viewer relevance scoring ("for you").

Relevance is an additive sum of independent signals layered on the clip's
trending score::

    base            0.4 × min(1, trending / 1000)
    topic follow    +0.3 if the viewer subscribes to the clip's topic
    creator follow  +0.2 if the viewer follows the clip's creator
    own completion  +0.2 × rate / 100    when the viewer's completion of this
                                         clip exceeds 70 %
    similar creator +0.1 × avg / 100     when the viewer's average completion
                                         of the creator's *other* clips over
                                         the last 30 days exceeds 70 %

An anonymous viewer gets ``anonymous_weight × min(1, trending / 1000)`` and
nothing else.  Totals above 1.0 are expected; the value is a ranking key.
Every weight comes from :class:`~echo_garden.config.ranking.RelevanceWeights`.

Signals are always derived from listens, follows and subscriptions at
scoring time.  :meth:`PersonalizationService.signals_for` loads them for a
whole candidate list in four queries so the feed does not issue per-clip
lookups.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.ranking import DEFAULT_RELEVANCE_WEIGHTS, RelevanceWeights
from echo_garden.core.models.clips import Clip, ClipStatus, Listen
from echo_garden.core.models.profiles import Follow
from echo_garden.core.models.topics import TopicSubscription


@dataclass(frozen=True)
class AffinitySignals:
    """Viewer-specific inputs for one clip.

    Completion values are percentages (0-100) or ``None`` when the viewer
    has no qualifying listens.
    """

    follows_topic: bool = False
    follows_creator: bool = False
    own_completion: Optional[float] = None
    creator_completion: Optional[float] = None


NO_SIGNALS = AffinitySignals()


def normalised_trending(
    trending: float,
    weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
) -> float:
    """Map a stored trending score onto [0, 1]."""
    return min(1.0, max(trending or 0.0, 0.0) / weights.trending_scale)


def anonymous_relevance(
    trending: float,
    weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
) -> float:
    return weights.anonymous * normalised_trending(trending, weights)


def relevance_from_signals(
    trending: float,
    signals: Optional[AffinitySignals],
    weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
) -> float:
    """Combine a trending score and viewer signals into a relevance score.

    Args:
        trending: The clip's stored trending score.
        signals: Viewer signals, or ``None`` for an anonymous viewer.
        weights: Relevance weights.

    Returns:
        The relevance score (>= 0, possibly above 1).
    """
    if signals is None:
        return anonymous_relevance(trending, weights)

    score = weights.trending * normalised_trending(trending, weights)
    if signals.follows_topic:
        score += weights.topic_follow
    if signals.follows_creator:
        score += weights.creator_follow
    own = signals.own_completion
    if own is not None and own > weights.completion_threshold:
        score += weights.own_completion * own / 100.0
    similar = signals.creator_completion
    if similar is not None and similar > weights.completion_threshold:
        score += weights.similar_creator * similar / 100.0
    return score


class PersonalizationService:
    """Loads viewer signals and scores clips for one viewer.

    Args:
        session: Open async session.
        weights: Relevance weights.
        similar_creator_window_days: Look-back for the similar-creator signal.
    """

    def __init__(
        self,
        session: AsyncSession,
        weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
        similar_creator_window_days: int = 30,
    ) -> None:
        self.session = session
        self.weights = weights
        self.similar_creator_window = timedelta(days=similar_creator_window_days)

    async def signals_for(
        self,
        viewer_id: uuid.UUID,
        clips: Sequence[Clip],
        now: Optional[datetime] = None,
    ) -> dict[uuid.UUID, AffinitySignals]:
        """Load affinity signals for every clip in *clips*.

        Returns:
            Mapping of clip id to signals; clips with no signal map to
            :data:`NO_SIGNALS`.
        """
        if not clips:
            return {}
        now = now or datetime.now(tz=timezone.utc)
        clip_ids = [c.id for c in clips]
        creator_ids = {c.profile_id for c in clips}
        topic_ids = {c.topic_id for c in clips if c.topic_id is not None}

        subscribed: set[uuid.UUID] = set()
        if topic_ids:
            subscribed = set(
                (
                    await self.session.execute(
                        select(TopicSubscription.topic_id).where(
                            TopicSubscription.profile_id == viewer_id,
                            TopicSubscription.topic_id.in_(topic_ids),
                        )
                    )
                ).scalars().all()
            )

        followed = set(
            (
                await self.session.execute(
                    select(Follow.following_id).where(
                        Follow.follower_id == viewer_id,
                        Follow.following_id.in_(creator_ids),
                    )
                )
            ).scalars().all()
        )

        own_rows = (
            await self.session.execute(
                select(Listen.clip_id, func.avg(Listen.completion_percentage))
                .where(
                    Listen.profile_id == viewer_id,
                    Listen.clip_id.in_(clip_ids),
                    Listen.completion_percentage.is_not(None),
                    Listen.deleted_at.is_(None),
                )
                .group_by(Listen.clip_id)
            )
        ).all()
        own = {clip_id: float(avg) for clip_id, avg in own_rows if avg is not None}

        # Per (creator, clip) sums so each candidate can exclude its own listens.
        creator_rows = (
            await self.session.execute(
                select(
                    Clip.profile_id,
                    Listen.clip_id,
                    func.sum(Listen.completion_percentage),
                    func.count(Listen.completion_percentage),
                )
                .join(Clip, Clip.id == Listen.clip_id)
                .where(
                    Listen.profile_id == viewer_id,
                    Clip.profile_id.in_(creator_ids),
                    Listen.listened_at >= now - self.similar_creator_window,
                    Listen.completion_percentage.is_not(None),
                    Listen.deleted_at.is_(None),
                )
                .group_by(Clip.profile_id, Listen.clip_id)
            )
        ).all()
        per_clip: dict[uuid.UUID, tuple[float, int]] = {}
        per_creator: dict[uuid.UUID, list[float]] = defaultdict(lambda: [0.0, 0])
        for creator_id, clip_id, total, count in creator_rows:
            per_clip[clip_id] = (float(total or 0.0), int(count or 0))
            per_creator[creator_id][0] += float(total or 0.0)
            per_creator[creator_id][1] += int(count or 0)

        signals: dict[uuid.UUID, AffinitySignals] = {}
        for clip in clips:
            creator_total, creator_count = per_creator.get(clip.profile_id, (0.0, 0))
            own_total, own_count = per_clip.get(clip.id, (0.0, 0))
            other_count = creator_count - own_count
            signals[clip.id] = AffinitySignals(
                follows_topic=clip.topic_id in subscribed,
                follows_creator=clip.profile_id in followed,
                own_completion=own.get(clip.id),
                creator_completion=(
                    (creator_total - own_total) / other_count if other_count > 0 else None
                ),
            )
        return signals

    async def personalized_relevance(
        self,
        clip_id: uuid.UUID,
        viewer_id: Optional[uuid.UUID] = None,
    ) -> float:
        """Relevance of one clip for one viewer (or an anonymous viewer).

        A missing or non-live clip scores 0.
        """
        clip = await self.session.get(Clip, clip_id)
        if clip is None or clip.status != ClipStatus.LIVE.value:
            return 0.0
        if viewer_id is None:
            return anonymous_relevance(clip.trending_score, self.weights)
        signals = await self.signals_for(viewer_id, [clip])
        return relevance_from_signals(
            clip.trending_score, signals.get(clip.id, NO_SIGNALS), self.weights
        )
