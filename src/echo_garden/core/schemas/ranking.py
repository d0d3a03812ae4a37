"""Pydantic response schemas for feed, trending, relevance and spotlight routes."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeedItemRead(BaseModel):
    """One ranked feed entry.

    Attributes:
        clip_id: The ranked clip.
        score: Relevance score (a ranking key, may exceed 1.0).
        created_at: Clip creation time, the tie-breaker.
    """

    model_config = ConfigDict(from_attributes=True)

    clip_id: uuid.UUID
    score: float
    created_at: Optional[datetime] = None


class FeedPage(BaseModel):
    items: list[FeedItemRead]
    limit: int
    offset: int
    personalized: bool


class ScoreRead(BaseModel):
    """A single score for one target."""

    id: uuid.UUID
    score: float


class RecomputeSummary(BaseModel):
    updated: int


class ChainNodeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    clip_id: uuid.UUID
    parent_id: Optional[uuid.UUID]
    depth: int
    profile_id: uuid.UUID
    trending_score: float


class ListenCreate(BaseModel):
    completion_percentage: Optional[float] = Field(default=None, ge=0, le=100)


class SpotlightRead(BaseModel):
    """The selected spotlight question, or ``question_id=None`` when none qualifies."""

    question_id: Optional[uuid.UUID]
    day: Optional[date] = None


class SlotGranted(BaseModel):
    action: str
    allowed: bool = True


class AnsweredUpdate(BaseModel):
    answered: bool = True


class ClipStatusUpdate(BaseModel):
    status: str = Field(min_length=1, max_length=20)


class QuestionReplyCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class QuestionReplyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    topic_id: uuid.UUID
    parent_comment_id: uuid.UUID
    content: str
