"""Spotlight question routes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from echo_garden.api.dependencies import (
    get_activity_service,
    get_current_profile,
    get_spotlight_service,
    require_admin,
)
from echo_garden.core.models.profiles import Profile
from echo_garden.core.schemas.ranking import (
    AnsweredUpdate,
    QuestionReplyCreate,
    QuestionReplyRead,
    ScoreRead,
    SpotlightRead,
)
from echo_garden.ranking.activity import EngagementActivityService
from echo_garden.ranking.spotlight import SpotlightService

router = APIRouter()


@router.get("", response_model=SpotlightRead)
async def get_spotlight(
    spotlight: Annotated[SpotlightService, Depends(get_spotlight_service)],
    exclude: Annotated[Optional[uuid.UUID], Query()] = None,
) -> SpotlightRead:
    """The highest-scoring eligible question, or ``question_id: null``."""
    return SpotlightRead(question_id=await spotlight.get_spotlight_question(exclude))


@router.get("/daily", response_model=SpotlightRead)
async def get_daily_spotlight(
    spotlight: Annotated[SpotlightService, Depends(get_spotlight_service)],
) -> SpotlightRead:
    """Today's rotation pick from the top of the ranking."""
    today = datetime.now(tz=timezone.utc).date()
    return SpotlightRead(
        question_id=await spotlight.get_daily_spotlight_question(today),
        day=today,
    )


@router.get("/questions/{question_id}/score", response_model=ScoreRead)
async def get_question_score(
    question_id: uuid.UUID,
    spotlight: Annotated[SpotlightService, Depends(get_spotlight_service)],
) -> ScoreRead:
    return ScoreRead(id=question_id, score=await spotlight.spotlight_score(question_id))


@router.post("/questions/{question_id}/upvote", response_model=ScoreRead)
async def upvote_question(
    question_id: uuid.UUID,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> ScoreRead:
    """Idempotently upvote; returns the refreshed score."""
    return ScoreRead(id=question_id, score=await activity.upvote_question(question_id, profile.id))


@router.delete("/questions/{question_id}/upvote", response_model=ScoreRead)
async def remove_question_upvote(
    question_id: uuid.UUID,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> ScoreRead:
    return ScoreRead(id=question_id, score=await activity.remove_upvote(question_id, profile.id))


@router.post(
    "/questions/{question_id}/replies",
    response_model=QuestionReplyRead,
    status_code=status.HTTP_201_CREATED,
)
async def reply_to_question(
    question_id: uuid.UUID,
    payload: QuestionReplyCreate,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> QuestionReplyRead:
    reply = await activity.add_question_reply(question_id, profile.id, payload.content)
    return QuestionReplyRead.model_validate(reply)


@router.post("/questions/{question_id}/answered", response_model=ScoreRead)
async def mark_answered(
    question_id: uuid.UUID,
    payload: AnsweredUpdate,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    _admin: Annotated[Profile, Depends(require_admin)],
) -> ScoreRead:
    """Set or clear the answered flag (admins only)."""
    score = await activity.set_answered(question_id, payload.answered)
    return ScoreRead(id=question_id, score=score)
