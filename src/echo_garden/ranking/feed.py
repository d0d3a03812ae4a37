"""Feed assembly: candidate generation, scoring, filtering and pagination.

Pipeline for ``get_feed(viewer, limit, offset)``:

1. Candidates: live clips created within ``candidate_window_days`` *or*
   already above ``trending_threshold``, ordered by trending score then
   recency, capped at ``candidate_multiplier × (limit + offset)`` rows.
2. Score every candidate with the personalization scorer (anonymous
   viewers get the trending floor).
3. Drop scores <= 0.
4. Sort by score desc, then creation time desc.
5. Apply offset/limit.

The cap bounds the cost of every request.  When filtering leaves fewer
rows than requested the page is simply short; there is no second round.

``limit`` is clamped to ``[1, max_limit]`` and a negative ``offset`` is
treated as 0 so that client paging bugs degrade to a valid page.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.ranking import DEFAULT_RELEVANCE_WEIGHTS, RelevanceWeights
from echo_garden.config.settings import Settings
from echo_garden.core.models.clips import Clip, ClipStatus
from echo_garden.ranking.personalization import (
    NO_SIGNALS,
    AffinitySignals,
    PersonalizationService,
    relevance_from_signals,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class FeedConfig:
    candidate_window_days: int = 30
    trending_threshold: float = 100.0
    candidate_multiplier: int = 3
    max_limit: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeedConfig":
        return cls(
            candidate_window_days=settings.feed_candidate_window_days,
            trending_threshold=settings.feed_trending_threshold,
            candidate_multiplier=settings.feed_candidate_multiplier,
            max_limit=settings.feed_max_limit,
        )


@dataclass(frozen=True)
class FeedEntry:
    clip_id: uuid.UUID
    score: float
    created_at: Optional[datetime] = None


def _sort_key(entry: FeedEntry) -> tuple[float, datetime]:
    created = entry.created_at or _EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return entry.score, created


def rank_entries(entries: Sequence[FeedEntry], limit: int, offset: int) -> list[FeedEntry]:
    """Filter non-positive scores, order and paginate already-scored entries."""
    kept = [e for e in entries if e.score > 0]
    kept.sort(key=_sort_key, reverse=True)
    return kept[offset : offset + limit]


def score_candidates(
    candidates: Sequence[Clip],
    signals: Optional[dict[uuid.UUID, AffinitySignals]],
    weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
) -> list[FeedEntry]:
    """Score candidates; ``signals=None`` means an anonymous viewer."""
    return [
        FeedEntry(
            clip_id=clip.id,
            score=relevance_from_signals(
                clip.trending_score,
                None if signals is None else signals.get(clip.id, NO_SIGNALS),
                weights,
            ),
            created_at=clip.created_at,
        )
        for clip in candidates
    ]


class FeedAssembler:
    """Builds ranked feed pages for a viewer.

    Args:
        session: Open async session.
        weights: Relevance weights.
        config: Candidate-pool parameters.
        similar_creator_window_days: Passed through to the personalization scorer.
    """

    def __init__(
        self,
        session: AsyncSession,
        weights: RelevanceWeights = DEFAULT_RELEVANCE_WEIGHTS,
        config: FeedConfig = FeedConfig(),
        similar_creator_window_days: int = 30,
    ) -> None:
        self.session = session
        self.weights = weights
        self.config = config
        self.personalization = PersonalizationService(
            session, weights, similar_creator_window_days
        )

    def clamp(self, limit: int, offset: int) -> tuple[int, int]:
        return min(max(limit, 1), self.config.max_limit), max(offset, 0)

    async def candidates(self, pool_size: int, now: datetime) -> list[Clip]:
        window_start = now - timedelta(days=self.config.candidate_window_days)
        stmt = (
            select(Clip)
            .where(
                Clip.status == ClipStatus.LIVE.value,
                or_(
                    Clip.created_at >= window_start,
                    Clip.trending_score > self.config.trending_threshold,
                ),
            )
            .order_by(Clip.trending_score.desc(), Clip.created_at.desc())
            .limit(pool_size)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_feed(
        self,
        viewer_id: Optional[uuid.UUID] = None,
        limit: int = 20,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> list[FeedEntry]:
        """Return one ranked page of ``(clip_id, score)`` entries.

        An empty list means there is nothing to show right now.
        """
        now = now or datetime.now(tz=timezone.utc)
        limit, offset = self.clamp(limit, offset)
        pool = await self.candidates(self.config.candidate_multiplier * (limit + offset), now)
        if not pool:
            return []
        signals = None
        if viewer_id is not None:
            signals = await self.personalization.signals_for(viewer_id, pool, now)
        return rank_entries(score_candidates(pool, signals, self.weights), limit, offset)
