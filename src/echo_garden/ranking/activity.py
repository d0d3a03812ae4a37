"""Engagement write paths.

Every write that changes an input of a cached score calls the matching
recompute in the same transaction before committing, so a caller that
reads the score after the write always sees the new value.  Clip writes
also refresh the trending score of the clip's topic, when it has one:

==========================  =====================================
Write                       Recompute
==========================  =====================================
record_listen               clip trending score
set_reaction / clear        clip trending score
record_reply                parent clip trending score
record_remix                source clip trending score
set_clip_status             clip trending score (0 unless live)
upvote / remove_upvote      question spotlight score
add_question_reply          question spotlight score
set_answered                question spotlight score
==========================  =====================================

Targets are locked with ``SELECT ... FOR UPDATE`` before counters change.
Missing targets raise :class:`~echo_garden.core.exceptions.NotFoundError`.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.core.exceptions import InvalidArgumentError, NotFoundError
from echo_garden.core.models.clips import Clip, ClipReaction, ClipStatus, Listen
from echo_garden.core.models.topics import TopicComment, TopicCommentUpvote
from echo_garden.ranking.engagement import coerce_count
from echo_garden.ranking.spotlight import SpotlightService
from echo_garden.ranking.topics import TopicTrendingService
from echo_garden.ranking.trending import TrendingService

logger = logging.getLogger(__name__)

_CLIP_STATUSES = {s.value for s in ClipStatus}


class EngagementActivityService:
    """Applies engagement writes and keeps cached scores current.

    Args:
        session: Open async session.
        trending: Trending service bound to the same session.
        spotlight: Spotlight service bound to the same session.
        topics: Topic trending service bound to the same session.
    """

    def __init__(
        self,
        session: AsyncSession,
        trending: Optional[TrendingService] = None,
        spotlight: Optional[SpotlightService] = None,
        topics: Optional[TopicTrendingService] = None,
    ) -> None:
        self.session = session
        self.trending = trending or TrendingService(session)
        self.spotlight = spotlight or SpotlightService(session)
        self.topics = topics or TopicTrendingService(session)

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------

    async def _locked_clip(self, clip_id: uuid.UUID) -> Clip:
        stmt = select(Clip).where(Clip.id == clip_id).with_for_update()
        clip = (await self.session.execute(stmt)).scalar_one_or_none()
        if clip is None:
            raise NotFoundError("clip", clip_id)
        return clip

    async def _locked_question(self, question_id: uuid.UUID) -> TopicComment:
        stmt = select(TopicComment).where(TopicComment.id == question_id).with_for_update()
        question = (await self.session.execute(stmt)).scalar_one_or_none()
        if question is None or question.deleted_at is not None:
            raise NotFoundError("question", question_id)
        return question

    async def _finish_clip(self, clip: Clip) -> float:
        await self.session.flush()
        score = await self.trending.recompute_clip(clip.id, commit=False)
        if clip.topic_id is not None:
            await self.topics.recompute_topic(clip.topic_id, commit=False)
        await self.session.commit()
        return score

    async def _finish_question(self, question_id: uuid.UUID) -> float:
        await self.session.flush()
        score = await self.spotlight.recompute_question(question_id, commit=False)
        await self.session.commit()
        return score

    # ------------------------------------------------------------------
    # Clip engagement
    # ------------------------------------------------------------------

    async def record_listen(
        self,
        clip_id: uuid.UUID,
        profile_id: Optional[uuid.UUID] = None,
        completion_percentage: Optional[float] = None,
    ) -> float:
        """Record one listen and return the clip's new trending score.

        Raises:
            InvalidArgumentError: If *completion_percentage* is outside 0-100.
            NotFoundError: If the clip does not exist.
        """
        if completion_percentage is not None and not 0 <= completion_percentage <= 100:
            raise InvalidArgumentError(
                f"completion_percentage must be between 0 and 100, got {completion_percentage}"
            )
        clip = await self._locked_clip(clip_id)
        self.session.add(
            Listen(
                clip_id=clip_id,
                profile_id=profile_id,
                completion_percentage=completion_percentage,
            )
        )
        clip.listens_count = (clip.listens_count or 0) + 1
        return await self._finish_clip(clip)

    async def set_reaction(self, clip_id: uuid.UUID, profile_id: uuid.UUID, emoji: str) -> float:
        """Add *profile_id*'s *emoji* reaction once; repeated calls are no-ops."""
        clip = await self._locked_clip(clip_id)
        result = await self.session.execute(
            pg_insert(ClipReaction)
            .values(clip_id=clip_id, profile_id=profile_id, emoji=emoji)
            .on_conflict_do_nothing()
        )
        if result.rowcount:
            counts = dict(clip.reactions or {})
            counts[emoji] = coerce_count(counts.get(emoji)) + 1
            clip.reactions = counts
        return await self._finish_clip(clip)

    async def clear_reaction(self, clip_id: uuid.UUID, profile_id: uuid.UUID, emoji: str) -> float:
        """Remove a reaction if present and return the new trending score."""
        clip = await self._locked_clip(clip_id)
        result = await self.session.execute(
            delete(ClipReaction).where(
                ClipReaction.clip_id == clip_id,
                ClipReaction.profile_id == profile_id,
                ClipReaction.emoji == emoji,
            )
        )
        if result.rowcount:
            counts = dict(clip.reactions or {})
            remaining = coerce_count(counts.get(emoji)) - 1
            if remaining > 0:
                counts[emoji] = remaining
            else:
                counts.pop(emoji, None)
            clip.reactions = counts
        return await self._finish_clip(clip)

    async def record_reply(self, parent_clip_id: uuid.UUID) -> float:
        """Count a reply clip against its parent."""
        clip = await self._locked_clip(parent_clip_id)
        clip.reply_count = (clip.reply_count or 0) + 1
        return await self._finish_clip(clip)

    async def record_remix(self, source_clip_id: uuid.UUID) -> float:
        """Count a remix or duet against its source clip."""
        clip = await self._locked_clip(source_clip_id)
        clip.remix_count = (clip.remix_count or 0) + 1
        return await self._finish_clip(clip)

    async def set_clip_status(self, clip_id: uuid.UUID, status: str) -> float:
        """Change lifecycle status; anything but ``live`` drops the score to 0.

        Raises:
            InvalidArgumentError: If *status* is not a known clip status.
        """
        if status not in _CLIP_STATUSES:
            raise InvalidArgumentError(f"Invalid clip status '{status}'")
        clip = await self._locked_clip(clip_id)
        previous = clip.status
        clip.status = status
        score = await self._finish_clip(clip)
        logger.info(
            "clip_status_changed",
            extra={"clip_id": str(clip_id), "previous_status": previous, "new_status": status},
        )
        return score

    # ------------------------------------------------------------------
    # Question engagement
    # ------------------------------------------------------------------

    async def upvote_question(self, question_id: uuid.UUID, profile_id: uuid.UUID) -> float:
        """Add one upvote per profile and return the new spotlight score."""
        question = await self._locked_question(question_id)
        result = await self.session.execute(
            pg_insert(TopicCommentUpvote)
            .values(comment_id=question_id, profile_id=profile_id)
            .on_conflict_do_nothing()
        )
        if result.rowcount:
            question.upvotes_count = (question.upvotes_count or 0) + 1
        return await self._finish_question(question_id)

    async def remove_upvote(self, question_id: uuid.UUID, profile_id: uuid.UUID) -> float:
        question = await self._locked_question(question_id)
        result = await self.session.execute(
            delete(TopicCommentUpvote).where(
                TopicCommentUpvote.comment_id == question_id,
                TopicCommentUpvote.profile_id == profile_id,
            )
        )
        if result.rowcount:
            question.upvotes_count = max((question.upvotes_count or 0) - 1, 0)
        return await self._finish_question(question_id)

    async def add_question_reply(
        self,
        question_id: uuid.UUID,
        profile_id: Optional[uuid.UUID],
        content: str,
    ) -> TopicComment:
        """Post a reply under a question and refresh the question's score."""
        question = await self._locked_question(question_id)
        reply = TopicComment(
            topic_id=question.topic_id,
            profile_id=profile_id,
            parent_comment_id=question_id,
            content=content,
        )
        self.session.add(reply)
        question.replies_count = (question.replies_count or 0) + 1
        await self._finish_question(question_id)
        return reply

    async def set_answered(self, question_id: uuid.UUID, answered: bool = True) -> float:
        question = await self._locked_question(question_id)
        question.is_answered = answered
        return await self._finish_question(question_id)
