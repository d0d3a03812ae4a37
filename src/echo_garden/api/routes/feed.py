"""Ranked "for you" feed."""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from echo_garden.api.dependencies import get_feed_assembler, get_viewer
from echo_garden.api.limiter import limiter
from echo_garden.core.models.profiles import Profile
from echo_garden.core.schemas.ranking import FeedItemRead, FeedPage
from echo_garden.ranking.feed import FeedAssembler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=FeedPage)
@limiter.limit("120/minute")
async def get_feed(
    request: Request,
    assembler: Annotated[FeedAssembler, Depends(get_feed_assembler)],
    viewer: Annotated[Optional[Profile], Depends(get_viewer)],
    limit: Annotated[int, Query()] = 20,
    offset: Annotated[int, Query()] = 0,
) -> FeedPage:
    """Return one page of the viewer's feed.

    Anonymous callers get the trending-based ranking.  ``limit`` is clamped
    to ``[1, feed_max_limit]`` and a negative ``offset`` is treated as 0.
    """
    limit, offset = assembler.clamp(limit, offset)
    entries = await assembler.get_feed(
        viewer_id=viewer.id if viewer else None,
        limit=limit,
        offset=offset,
    )
    try:
        from echo_garden.api.metrics import (  # noqa: PLC0415
            feed_items_returned,
            feed_requests_total,
        )

        feed_requests_total.labels(personalized=str(viewer is not None).lower()).inc()
        feed_items_returned.observe(len(entries))
    except Exception as _metrics_exc:  # noqa: BLE001
        logger.debug("metrics recording failed: %s", _metrics_exc)
    return FeedPage(
        items=[FeedItemRead.model_validate(e) for e in entries],
        limit=limit,
        offset=offset,
        personalized=viewer is not None,
    )
