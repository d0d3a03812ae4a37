"""FastAPI dependency injection providers.

Identity is device-pseudonymous: a client sends its device id in the
``X-Device-ID`` header and the profile bound to that device is the viewer.

Dependency hierarchy::

    get_viewer            : Profile or None (anonymous)
    get_current_profile   : requires a known device, else 401
    require_admin         : additionally requires an ``admins`` row, else 403

Service providers bind a service to the request's database session and
build its tunables from :func:`~echo_garden.config.settings.get_settings`.
"""

from __future__ import annotations

from typing import Annotated, AsyncGenerator, Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.ranking import relevance_weights_from_settings
from echo_garden.config.settings import Settings, get_settings
from echo_garden.core.database import get_db
from echo_garden.core.event_bus import NotificationDispatcher, get_notification_dispatcher
from echo_garden.core.models.profiles import Admin, Profile
from echo_garden.core.rate_limiter import RateCooldownGuard, RateLimiter
from echo_garden.moderation.queue import EscalationPolicy, ModerationQueueService
from echo_garden.ranking.activity import EngagementActivityService
from echo_garden.ranking.feed import FeedAssembler, FeedConfig
from echo_garden.ranking.personalization import PersonalizationService
from echo_garden.ranking.spotlight import SpotlightService
from echo_garden.ranking.trending import TrendingService

DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


async def get_viewer(
    db: DbSession,
    x_device_id: Annotated[Optional[str], Header()] = None,
) -> Optional[Profile]:
    """Return the profile bound to ``X-Device-ID``, or ``None``.

    A missing header or an unknown device both mean an anonymous viewer.
    """
    if not x_device_id:
        return None
    result = await db.execute(select(Profile).where(Profile.device_id == x_device_id))
    return result.scalar_one_or_none()


async def get_current_profile(
    viewer: Annotated[Optional[Profile], Depends(get_viewer)],
) -> Profile:
    """Require a known device.

    Raises:
        HTTPException 401: If the request carries no known ``X-Device-ID``.
    """
    if viewer is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="A registered X-Device-ID header is required.",
        )
    return viewer


async def require_admin(
    profile: Annotated[Profile, Depends(get_current_profile)],
    db: DbSession,
) -> Profile:
    """Require a profile with an ``admins`` row.

    Raises:
        HTTPException 403: If the profile is not an admin.
    """
    found = (
        await db.execute(select(Admin.profile_id).where(Admin.profile_id == profile.id))
    ).scalar_one_or_none()
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required.",
        )
    return profile


# ---------------------------------------------------------------------------
# Redis / notifications
# ---------------------------------------------------------------------------


async def get_redis(settings: AppSettings) -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a per-request async Redis client and close it on teardown."""
    client: aioredis.Redis = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    try:
        yield client
    finally:
        await client.aclose()


def get_notifier() -> NotificationDispatcher:
    return get_notification_dispatcher()


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------


async def get_trending_service(db: DbSession) -> TrendingService:
    return TrendingService(db)


async def get_personalization_service(
    db: DbSession, settings: AppSettings
) -> PersonalizationService:
    return PersonalizationService(
        db,
        relevance_weights_from_settings(settings),
        settings.similar_creator_window_days,
    )


async def get_feed_assembler(db: DbSession, settings: AppSettings) -> FeedAssembler:
    return FeedAssembler(
        db,
        relevance_weights_from_settings(settings),
        FeedConfig.from_settings(settings),
        settings.similar_creator_window_days,
    )


async def get_spotlight_service(
    db: DbSession,
    settings: AppSettings,
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
) -> SpotlightService:
    return SpotlightService(db, notifier, settings.spotlight_rotation_pool_size)


async def get_activity_service(
    db: DbSession,
    spotlight: Annotated[SpotlightService, Depends(get_spotlight_service)],
) -> EngagementActivityService:
    return EngagementActivityService(db, TrendingService(db), spotlight)


async def get_moderation_service(
    db: DbSession,
    settings: AppSettings,
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
) -> ModerationQueueService:
    return ModerationQueueService(db, notifier, EscalationPolicy.from_settings(settings))


async def get_rate_guard(
    redis_client: Annotated[aioredis.Redis, Depends(get_redis)],
    settings: AppSettings,
) -> RateCooldownGuard:
    return RateCooldownGuard(RateLimiter(redis_client), settings)
