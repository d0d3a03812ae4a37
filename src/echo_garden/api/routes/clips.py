"""Clip scoring, engagement and upload-slot routes.

Engagement writes (listens, reactions) recompute the clip's trending score
in the same transaction and return it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.api.dependencies import (
    get_activity_service,
    get_current_profile,
    get_personalization_service,
    get_rate_guard,
    get_trending_service,
    get_viewer,
    require_admin,
)
from echo_garden.api.limiter import limiter
from echo_garden.core.database import get_db
from echo_garden.core.models.profiles import Profile
from echo_garden.core.rate_limiter import RateCooldownGuard
from echo_garden.core.schemas.ranking import (
    ChainNodeRead,
    ClipStatusUpdate,
    ListenCreate,
    RecomputeSummary,
    ScoreRead,
    SlotGranted,
)
from echo_garden.ranking.activity import EngagementActivityService
from echo_garden.ranking.chains import MAX_CHAIN_DEPTH, remix_chain
from echo_garden.ranking.personalization import PersonalizationService
from echo_garden.ranking.trending import TrendingService

logger = logging.getLogger(__name__)

router = APIRouter()

Emoji = Annotated[str, Path(min_length=1, max_length=16)]


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


@router.get("/{clip_id}/trending-score", response_model=ScoreRead)
async def get_trending_score(
    clip_id: uuid.UUID,
    trending: Annotated[TrendingService, Depends(get_trending_service)],
) -> ScoreRead:
    """Live trending score.  Missing or non-live clips score 0."""
    return ScoreRead(id=clip_id, score=await trending.compute_trending_score(clip_id))


@router.post("/trending/recompute", response_model=RecomputeSummary)
@limiter.limit("2/minute")
async def recompute_trending(
    request: Request,
    trending: Annotated[TrendingService, Depends(get_trending_service)],
    _admin: Annotated[Profile, Depends(require_admin)],
) -> RecomputeSummary:
    """Refresh every live clip's cached trending score."""
    updated = await trending.recompute_all_trending_scores()
    try:
        from echo_garden.api.metrics import trending_recomputes_total  # noqa: PLC0415

        trending_recomputes_total.labels(scope="batch").inc(updated)
    except Exception as _metrics_exc:  # noqa: BLE001
        logger.debug("metrics recording failed: %s", _metrics_exc)
    return RecomputeSummary(updated=updated)


@router.get("/{clip_id}/relevance", response_model=ScoreRead)
async def get_relevance(
    clip_id: uuid.UUID,
    personalization: Annotated[PersonalizationService, Depends(get_personalization_service)],
    viewer: Annotated[Optional[Profile], Depends(get_viewer)],
) -> ScoreRead:
    score = await personalization.personalized_relevance(
        clip_id, viewer.id if viewer else None
    )
    return ScoreRead(id=clip_id, score=score)


@router.get("/{clip_id}/chain", response_model=list[ChainNodeRead])
async def get_remix_chain(
    clip_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[ChainNodeRead]:
    """The clip and its live remixes, breadth-first, at most 10 levels deep."""
    nodes = await remix_chain(db, clip_id, MAX_CHAIN_DEPTH)
    return [ChainNodeRead.model_validate(n) for n in nodes]


# ---------------------------------------------------------------------------
# Engagement writes
# ---------------------------------------------------------------------------


@router.post("/{clip_id}/listens", response_model=ScoreRead, status_code=status.HTTP_201_CREATED)
async def record_listen(
    clip_id: uuid.UUID,
    payload: ListenCreate,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    viewer: Annotated[Optional[Profile], Depends(get_viewer)],
) -> ScoreRead:
    score = await activity.record_listen(
        clip_id,
        viewer.id if viewer else None,
        payload.completion_percentage,
    )
    return ScoreRead(id=clip_id, score=score)


@router.put("/{clip_id}/reactions/{emoji}", response_model=ScoreRead)
async def add_reaction(
    clip_id: uuid.UUID,
    emoji: Emoji,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> ScoreRead:
    """Idempotently add the caller's reaction."""
    return ScoreRead(id=clip_id, score=await activity.set_reaction(clip_id, profile.id, emoji))


@router.delete("/{clip_id}/reactions/{emoji}", response_model=ScoreRead)
async def remove_reaction(
    clip_id: uuid.UUID,
    emoji: Emoji,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> ScoreRead:
    return ScoreRead(id=clip_id, score=await activity.clear_reaction(clip_id, profile.id, emoji))


@router.put("/{clip_id}/status", response_model=ScoreRead)
async def update_clip_status(
    clip_id: uuid.UUID,
    payload: ClipStatusUpdate,
    activity: Annotated[EngagementActivityService, Depends(get_activity_service)],
    _admin: Annotated[Profile, Depends(require_admin)],
) -> ScoreRead:
    """Change a clip's lifecycle status (admins only); non-live clips score 0."""
    return ScoreRead(id=clip_id, score=await activity.set_clip_status(clip_id, payload.status))


# ---------------------------------------------------------------------------
# Upload slot
# ---------------------------------------------------------------------------


@router.post("/upload-slot", response_model=SlotGranted)
async def claim_upload_slot(
    request: Request,
    guard: Annotated[RateCooldownGuard, Depends(get_rate_guard)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> SlotGranted:
    """Admit one upload for the caller or answer 429 with ``Retry-After``."""
    ip_address = request.client.host if request.client else None
    await guard.check_upload(profile.id, ip_address)
    return SlotGranted(action="upload")
