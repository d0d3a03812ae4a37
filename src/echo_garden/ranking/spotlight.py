"""Spotlight scoring and selection for community questions.

Score of a top-level question::

    (upvotes·5 + replies·10) × recency × answer_factor + topic_boost + activity_bonus

    recency        = 1 / max(ln(max(hours_old, 1) + 1) + 1, 0.1)
    answer_factor  = 1.5 while unanswered, else 1.0
    topic_boost    = 0.1 × parent topic trending score
    activity_bonus = +20 if the latest reply is under 24 h old, +10 under 48 h

The result is floored at 0.  ``TopicComment.spotlight_score`` caches it and
is rewritten by every write path that touches upvotes, replies or the
answered flag (see :mod:`echo_garden.ranking.activity`), plus the periodic
refresh that lets recency decay.

The spotlight is the highest cached score among eligible questions
(question, top-level, not deleted, parent topic active, score > 0), newest
first on ties.  The daily variant rotates through the top
``rotation_pool_size`` candidates by day of year.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.core.event_bus import SPOTLIGHT_SELECTED, NotificationDispatcher
from echo_garden.core.models.topics import Topic, TopicComment
from echo_garden.ranking.trending import hours_since

logger = logging.getLogger(__name__)

UPVOTE_WEIGHT = 5.0
REPLY_WEIGHT = 10.0
UNANSWERED_FACTOR = 1.5
TOPIC_BOOST_WEIGHT = 0.1


def recency_factor(hours_old: float) -> float:
    return 1.0 / max(math.log(max(hours_old, 1.0) + 1.0) + 1.0, 0.1)


def activity_bonus(hours_since_last_reply: Optional[float]) -> float:
    if hours_since_last_reply is None:
        return 0.0
    if hours_since_last_reply <= 24:
        return 20.0
    if hours_since_last_reply <= 48:
        return 10.0
    return 0.0


def spotlight_score(
    upvotes: int,
    replies: int,
    is_answered: bool,
    hours_old: float,
    topic_trending: Optional[float] = None,
    hours_since_last_reply: Optional[float] = None,
) -> float:
    """Score one question from its raw inputs.  Never negative."""
    engagement = max(upvotes or 0, 0) * UPVOTE_WEIGHT + max(replies or 0, 0) * REPLY_WEIGHT
    answer_factor = 1.0 if is_answered else UNANSWERED_FACTOR
    score = (
        engagement * recency_factor(hours_old) * answer_factor
        + TOPIC_BOOST_WEIGHT * (topic_trending or 0.0)
        + activity_bonus(hours_since_last_reply)
    )
    return max(score, 0.0)


def _eligible():
    """WHERE clauses shared by every spotlight selection query."""
    return (
        TopicComment.is_question.is_(True),
        TopicComment.deleted_at.is_(None),
        TopicComment.parent_comment_id.is_(None),
        Topic.is_active.is_(True),
        TopicComment.spotlight_score > 0,
    )


class SpotlightService:
    """Scores questions and selects the spotlight.

    Args:
        session: Open async session.
        notifier: Dispatcher for ``spotlight_selected``; ``None`` disables it.
        rotation_pool_size: Number of top questions the daily rotation uses.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
        rotation_pool_size: int = 3,
    ) -> None:
        self.session = session
        self.notifier = notifier
        self.rotation_pool_size = max(rotation_pool_size, 1)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def _score_loaded(self, question: TopicComment, now: datetime) -> float:
        if (
            not question.is_question
            or question.deleted_at is not None
            or question.parent_comment_id is not None
        ):
            return 0.0
        topic_trending = (
            await self.session.execute(
                select(Topic.trending_score).where(Topic.id == question.topic_id)
            )
        ).scalar_one_or_none()
        last_reply_at = (
            await self.session.execute(
                select(func.max(TopicComment.created_at)).where(
                    TopicComment.parent_comment_id == question.id,
                    TopicComment.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        return spotlight_score(
            upvotes=question.upvotes_count,
            replies=question.replies_count,
            is_answered=question.is_answered,
            hours_old=hours_since(question.created_at, now),
            topic_trending=topic_trending,
            hours_since_last_reply=(
                None if last_reply_at is None else hours_since(last_reply_at, now)
            ),
        )

    async def spotlight_score(
        self,
        question_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> float:
        """Return a question's current score without writing it.  Missing questions score 0."""
        question = await self.session.get(TopicComment, question_id)
        if question is None:
            return 0.0
        return await self._score_loaded(question, now or datetime.now(tz=timezone.utc))

    async def recompute_question(
        self,
        question_id: uuid.UUID,
        now: Optional[datetime] = None,
        *,
        commit: bool = True,
    ) -> float:
        """Recompute and store one question's score under a row lock."""
        stmt = select(TopicComment).where(TopicComment.id == question_id).with_for_update()
        question = (await self.session.execute(stmt)).scalar_one_or_none()
        if question is None:
            return 0.0
        score = await self._score_loaded(question, now or datetime.now(tz=timezone.utc))
        question.spotlight_score = score
        await self.session.flush()
        if commit:
            await self.session.commit()
        return score

    async def recompute_all_spotlight_scores(self, now: Optional[datetime] = None) -> int:
        """Refresh every live question's cached score so recency keeps decaying.

        Failures are logged per question and the pass continues.
        """
        now = now or datetime.now(tz=timezone.utc)
        question_ids = (
            await self.session.execute(
                select(TopicComment.id).where(
                    TopicComment.is_question.is_(True),
                    TopicComment.deleted_at.is_(None),
                    TopicComment.parent_comment_id.is_(None),
                )
            )
        ).scalars().all()
        updated = 0
        for question_id in question_ids:
            try:
                async with self.session.begin_nested():
                    await self.recompute_question(question_id, now, commit=False)
                updated += 1
            except Exception:
                logger.exception(
                    "spotlight_recompute_failed",
                    extra={"question_id": str(question_id)},
                )
        await self.session.commit()
        logger.info("spotlight_recompute_complete", extra={"updated": updated})
        return updated

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _ranked(self, exclude_id: Optional[uuid.UUID] = None) -> sa.Select:
        stmt = (
            select(TopicComment.id)
            .join(Topic, Topic.id == TopicComment.topic_id)
            .where(*_eligible())
            .order_by(TopicComment.spotlight_score.desc(), TopicComment.created_at.desc())
        )
        if exclude_id is not None:
            stmt = stmt.where(TopicComment.id != exclude_id)
        return stmt

    async def get_spotlight_question(
        self,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[uuid.UUID]:
        """Return the id of the highest-scoring eligible question, or ``None``."""
        result = await self.session.execute(self._ranked(exclude_id).limit(1))
        return result.scalar_one_or_none()

    async def get_daily_spotlight_question(
        self,
        today: Optional[date] = None,
    ) -> Optional[uuid.UUID]:
        """Pick today's question from the top of the ranking by day of year.

        Falls back to the top question when fewer candidates than the
        rotation offset exist.
        """
        today = today or datetime.now(tz=timezone.utc).date()
        pool = (
            await self.session.execute(self._ranked().limit(self.rotation_pool_size))
        ).scalars().all()
        if not pool:
            return None
        offset = today.timetuple().tm_yday % self.rotation_pool_size
        return pool[offset] if offset < len(pool) else pool[0]

    async def select_daily_spotlight(self, today: Optional[date] = None) -> Optional[uuid.UUID]:
        """Choose today's spotlight and announce it."""
        today = today or datetime.now(tz=timezone.utc).date()
        question_id = await self.get_daily_spotlight_question(today)
        if question_id is not None and self.notifier is not None:
            self.notifier.dispatch(
                SPOTLIGHT_SELECTED,
                {"question_id": str(question_id), "date": today.isoformat()},
            )
        logger.info(
            "spotlight_selected",
            extra={"question_id": str(question_id) if question_id else None},
        )
        return question_id
