"""Topic trending score: how busy a topic is right now.

The score sums the activity of the topic's live clips and divides by the
topic's age, so a young topic with a burst of clips outranks an old one
with the same totals::

    raw   = 10·live_clips + 0.1·Σlistens + Σreactions + 20·clips_in_last_24h
    score = raw / max(hours_since_topic_created + 1, 1)

Only ``live`` clips count.  The spotlight scorer reads the stored value as
its topic boost, so every clip write that changes one of these inputs
refreshes the clip's topic in the same transaction (see
:mod:`echo_garden.ranking.activity`), and a periodic pass lets the age
divisor reach topics nobody is posting to.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.ranking import DEFAULT_TOPIC_TRENDING_WEIGHTS, TopicTrendingWeights
from echo_garden.core.models.clips import Clip, ClipStatus
from echo_garden.core.models.topics import Topic
from echo_garden.ranking.engagement import coerce_count, reaction_total
from echo_garden.ranking.trending import hours_since

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def topic_trending_score(
    live_clips: int,
    total_listens: int,
    total_reactions: int,
    recent_clips: int,
    hours_since_created: float,
    weights: TopicTrendingWeights = DEFAULT_TOPIC_TRENDING_WEIGHTS,
) -> float:
    """Compute a topic's trending score from its aggregated clip activity."""
    raw = (
        weights.live_clip * live_clips
        + weights.listen * total_listens
        + weights.reaction * total_reactions
        + weights.recent_clip * recent_clips
    )
    return raw / max(hours_since_created + 1.0, 1.0)


def score_from_clips(
    rows: Iterable[tuple],
    topic_created_at: Optional[datetime],
    now: datetime,
    weights: TopicTrendingWeights = DEFAULT_TOPIC_TRENDING_WEIGHTS,
) -> float:
    """Reduce ``(listens_count, reactions, created_at)`` rows of live clips to a score."""
    live = listens = reactions = recent = 0
    for listens_count, reaction_map, created_at in rows:
        live += 1
        listens += coerce_count(listens_count)
        reactions += reaction_total(reaction_map)
        if created_at is not None and hours_since(created_at, now) < weights.recent_window_hours:
            recent += 1
    return topic_trending_score(
        live, listens, reactions, recent, hours_since(topic_created_at, now), weights
    )


class TopicTrendingService:
    """Computes and persists topic trending scores.

    Args:
        session: Open async session.
        weights: Formula constants.
    """

    def __init__(
        self,
        session: AsyncSession,
        weights: TopicTrendingWeights = DEFAULT_TOPIC_TRENDING_WEIGHTS,
    ) -> None:
        self.session = session
        self.weights = weights

    async def _live_clip_rows(self, topic_id: uuid.UUID) -> list[tuple]:
        stmt = select(Clip.listens_count, Clip.reactions, Clip.created_at).where(
            Clip.topic_id == topic_id,
            Clip.status == ClipStatus.LIVE.value,
        )
        return list((await self.session.execute(stmt)).all())

    async def recompute_topic(
        self,
        topic_id: uuid.UUID,
        now: Optional[datetime] = None,
        *,
        commit: bool = True,
    ) -> float:
        """Recompute and store one topic's score under ``SELECT ... FOR UPDATE``.

        Args:
            topic_id: Topic to refresh.
            now: Clock time; defaults to the current UTC time.
            commit: Commit after writing.  Clip write paths pass ``False``
                and commit themselves.

        Returns:
            The stored score, or 0.0 if the topic does not exist.
        """
        stmt = select(Topic).where(Topic.id == topic_id).with_for_update()
        topic = (await self.session.execute(stmt)).scalar_one_or_none()
        if topic is None:
            return 0.0
        rows = await self._live_clip_rows(topic_id)
        score = score_from_clips(rows, topic.created_at, now or _utcnow(), self.weights)
        topic.trending_score = score
        await self.session.flush()
        if commit:
            await self.session.commit()
        return score

    async def recompute_all_topic_scores(self, now: Optional[datetime] = None) -> int:
        """Refresh every active topic's score, one savepoint per topic.

        Returns:
            Number of topics whose score was written.
        """
        now = now or _utcnow()
        topic_ids = (
            await self.session.execute(select(Topic.id).where(Topic.is_active.is_(True)))
        ).scalars().all()

        updated = 0
        for topic_id in topic_ids:
            try:
                async with self.session.begin_nested():
                    await self.recompute_topic(topic_id, now, commit=False)
                updated += 1
            except Exception:
                logger.exception(
                    "topic_trending_recompute_failed",
                    extra={"topic_id": str(topic_id)},
                )
        await self.session.commit()
        logger.info(
            "topic_trending_recompute_complete",
            extra={"updated": updated, "candidates": len(topic_ids)},
        )
        return updated
