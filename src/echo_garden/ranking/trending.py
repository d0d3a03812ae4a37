"""Trending score: the global, viewer-independent popularity signal.

Three independently bounded factors are multiplied and scaled::

    engagement = min(1, ln(1 + 2·reactions + 0.5·listens + 3·replies + 4·remixes) / ln(100))
    freshness  = exp(-hours_since_creation / 12)
    quality    = (0.5 + 0.5·completion_rate)
                 × 0.85              if content_rating == "sensitive"
                 × (1 − 0.3·risk)    if moderation risk > 0, risk = min(1, risk)

    score = engagement × freshness × quality × 1000

Clips that are not ``live`` score exactly 0.  When no listen recorded a
completion percentage the neutral midpoint 0.5 is used.

The score is a pure function of the stored counters and the clock passed in
as ``now``; callers that recompute many clips pass one ``now`` for the whole
pass.  :class:`TrendingService` persists the value under a row lock so two
overlapping recomputes of the same clip serialise instead of interleaving.

Usage::

    service = TrendingService(session)
    score = await service.compute_trending_score(clip_id)
    updated = await service.recompute_all_trending_scores()
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.ranking import DEFAULT_TRENDING_WEIGHTS, TrendingWeights
from echo_garden.core.models.clips import Clip, ClipStatus, ContentRating, Listen
from echo_garden.ranking.engagement import (
    EngagementAggregate,
    aggregate_clip,
    average_completion,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Pure factors
# ---------------------------------------------------------------------------


def engagement_factor(
    agg: EngagementAggregate,
    weights: TrendingWeights = DEFAULT_TRENDING_WEIGHTS,
) -> float:
    """Log-compressed weighted engagement in [0, 1]."""
    weighted = (
        weights.reaction * agg.reaction_total
        + weights.listen * agg.listens
        + weights.reply * agg.reply_count
        + weights.remix * agg.remix_count
    )
    if weighted <= 0:
        return 0.0
    return min(1.0, math.log1p(weighted) / math.log(weights.saturation))


def hours_since(created_at: Optional[datetime], now: datetime) -> float:
    """Non-negative hours between *created_at* and *now*.

    Naive datetimes are treated as UTC.  A missing or future timestamp
    counts as zero hours.
    """
    if created_at is None:
        return 0.0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max((now - created_at).total_seconds() / 3600.0, 0.0)


def freshness_factor(
    hours_old: float,
    weights: TrendingWeights = DEFAULT_TRENDING_WEIGHTS,
) -> float:
    """Exponential decay in (0, 1]."""
    return math.exp(-max(hours_old, 0.0) / weights.freshness_tau_hours)


def moderation_risk(moderation: Any) -> float:
    """Extract the automated review risk, clamped to [0, 1].

    Anything other than a positive number under ``moderation["risk"]``
    yields 0, which applies no penalty.
    """
    if not isinstance(moderation, dict):
        return 0.0
    raw = moderation.get("risk")
    if isinstance(raw, bool):
        return 0.0
    try:
        risk = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(risk) or risk <= 0:
        return 0.0
    return min(1.0, risk)


def quality_factor(
    completion_rate: float,
    content_rating: Optional[str] = None,
    moderation: Any = None,
    weights: TrendingWeights = DEFAULT_TRENDING_WEIGHTS,
) -> float:
    """Completion, sensitivity and moderation-risk adjustment in [0, 1]."""
    rate = min(max(completion_rate, 0.0), 1.0)
    quality = 0.5 + 0.5 * rate
    if content_rating == ContentRating.SENSITIVE.value:
        quality *= weights.sensitive_penalty
    risk = moderation_risk(moderation)
    if risk > 0:
        quality *= 1.0 - weights.risk_penalty * risk
    return quality


def trending_score(
    clip: Clip,
    completion_rate: Optional[float],
    now: datetime,
    weights: TrendingWeights = DEFAULT_TRENDING_WEIGHTS,
) -> float:
    """Compute the trending score of a loaded clip.

    Args:
        clip: The clip row (counters, status, rating, moderation payload).
        completion_rate: Mean completion in [0, 1], or ``None`` when no
            listen recorded one.
        now: Clock time for the freshness factor.
        weights: Formula constants.

    Returns:
        A score >= 0; exactly 0 for clips that are not live.
    """
    if clip.status != ClipStatus.LIVE.value:
        return 0.0
    agg = aggregate_clip(clip, completion_rate)
    engagement = engagement_factor(agg, weights)
    freshness = freshness_factor(hours_since(clip.created_at, now), weights)
    quality = quality_factor(
        agg.completion_or(weights.neutral_completion),
        clip.content_rating,
        clip.moderation,
        weights,
    )
    return engagement * freshness * quality * weights.scale


# ---------------------------------------------------------------------------
# TrendingService
# ---------------------------------------------------------------------------


class TrendingService:
    """Computes and persists clip trending scores.

    Args:
        session: Open async session.
        weights: Formula constants; the defaults are the shipped values.
    """

    def __init__(
        self,
        session: AsyncSession,
        weights: TrendingWeights = DEFAULT_TRENDING_WEIGHTS,
    ) -> None:
        self.session = session
        self.weights = weights

    async def _completion_rate(self, clip_id: uuid.UUID) -> Optional[float]:
        pct = await average_completion(self.session, clip_id)
        return None if pct is None else pct / 100.0

    async def compute_trending_score(
        self,
        clip_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> float:
        """Return the current trending score without writing it.

        A missing or non-live clip scores 0.
        """
        clip = await self.session.get(Clip, clip_id)
        if clip is None or clip.status != ClipStatus.LIVE.value:
            return 0.0
        completion = await self._completion_rate(clip_id)
        return trending_score(clip, completion, now or _utcnow(), self.weights)

    async def recompute_clip(
        self,
        clip_id: uuid.UUID,
        now: Optional[datetime] = None,
        *,
        completion_rate: Optional[float] = None,
        completion_known: bool = False,
        commit: bool = True,
    ) -> float:
        """Recompute and store one clip's trending score under ``SELECT ... FOR UPDATE``.

        Args:
            clip_id: Clip to refresh.
            now: Clock time; defaults to the current UTC time.
            completion_rate: Pre-computed completion rate (batch callers).
            completion_known: ``True`` when *completion_rate* was supplied,
                including a supplied ``None``.
            commit: Commit after writing.  Write paths that already hold a
                transaction pass ``False`` and commit themselves.

        Returns:
            The stored score, or 0.0 if the clip does not exist.
        """
        stmt = select(Clip).where(Clip.id == clip_id).with_for_update()
        clip = (await self.session.execute(stmt)).scalar_one_or_none()
        if clip is None:
            return 0.0
        if not completion_known:
            completion_rate = await self._completion_rate(clip_id)
        score = trending_score(clip, completion_rate, now or _utcnow(), self.weights)
        clip.trending_score = score
        await self.session.flush()
        if commit:
            await self.session.commit()
        return score

    async def _live_completion_rates(self) -> dict[uuid.UUID, float]:
        stmt = (
            select(Listen.clip_id, func.avg(Listen.completion_percentage))
            .join(Clip, Clip.id == Listen.clip_id)
            .where(
                Clip.status == ClipStatus.LIVE.value,
                Listen.completion_percentage.is_not(None),
                Listen.deleted_at.is_(None),
            )
            .group_by(Listen.clip_id)
        )
        rows = (await self.session.execute(stmt)).all()
        return {clip_id: float(avg) / 100.0 for clip_id, avg in rows if avg is not None}

    async def recompute_all_trending_scores(self, now: Optional[datetime] = None) -> int:
        """Refresh every live clip's trending score.

        Each clip is recomputed in its own savepoint; a failure on one clip
        is logged and the pass continues.  One ``now`` is used for the whole
        pass.

        Returns:
            Number of clips whose score was written.
        """
        now = now or _utcnow()
        clip_ids = (
            await self.session.execute(
                select(Clip.id).where(Clip.status == ClipStatus.LIVE.value)
            )
        ).scalars().all()
        completions = await self._live_completion_rates()

        updated = 0
        for clip_id in clip_ids:
            try:
                async with self.session.begin_nested():
                    await self.recompute_clip(
                        clip_id,
                        now,
                        completion_rate=completions.get(clip_id),
                        completion_known=True,
                        commit=False,
                    )
                updated += 1
            except Exception:
                logger.exception(
                    "trending_recompute_failed",
                    extra={"clip_id": str(clip_id)},
                )
        await self.session.commit()
        logger.info(
            "trending_recompute_complete",
            extra={"updated": updated, "candidates": len(clip_ids)},
        )
        return updated
