"""Internal async helpers for the periodic tasks.

The synchronous Celery tasks in ``workers/tasks.py`` call these through
``asyncio.run()``.  Each helper opens its own ``AsyncSessionLocal`` session
and, where it notifies, its own Redis client: both are bound to the event
loop of the current ``asyncio.run()`` and must not outlive it.  Pending
notifications are drained before the helper returns.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from echo_garden.config.settings import get_settings
from echo_garden.core.database import AsyncSessionLocal
from echo_garden.core.event_bus import NotificationDispatcher
from echo_garden.moderation.queue import EscalationPolicy, ModerationQueueService
from echo_garden.ranking.spotlight import SpotlightService
from echo_garden.ranking.topics import TopicTrendingService
from echo_garden.ranking.trending import TrendingService


@asynccontextmanager
async def _task_notifier() -> AsyncIterator[NotificationDispatcher]:
    settings = get_settings()
    client: aioredis.Redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    notifier = NotificationDispatcher(client, settings.notification_channel)
    try:
        yield notifier
    finally:
        await notifier.drain()
        await client.aclose()


async def recompute_trending(now: Optional[datetime] = None) -> int:
    """Refresh every live clip's trending score.  Returns clips written."""
    async with AsyncSessionLocal() as db:
        return await TrendingService(db).recompute_all_trending_scores(now)


async def recompute_topic_trending(now: Optional[datetime] = None) -> int:
    """Refresh every active topic's trending score.  Returns topics written."""
    async with AsyncSessionLocal() as db:
        return await TopicTrendingService(db).recompute_all_topic_scores(now)


async def escalate_moderation_items(now: Optional[datetime] = None) -> int:
    """Run one auto-escalation sweep.  Returns items escalated."""
    settings = get_settings()
    async with _task_notifier() as notifier, AsyncSessionLocal() as db:
        service = ModerationQueueService(db, notifier, EscalationPolicy.from_settings(settings))
        return await service.auto_escalate(now)


async def recompute_spotlight(now: Optional[datetime] = None) -> int:
    """Refresh every question's cached spotlight score.  Returns questions written."""
    async with AsyncSessionLocal() as db:
        return await SpotlightService(db).recompute_all_spotlight_scores(now)


async def choose_daily_spotlight(today: Optional[date] = None) -> Optional[str]:
    """Select and announce today's spotlight.  Returns its id as a string."""
    settings = get_settings()
    async with _task_notifier() as notifier, AsyncSessionLocal() as db:
        service = SpotlightService(db, notifier, settings.spotlight_rotation_pool_size)
        question_id = await service.select_daily_spotlight(today)
    return str(question_id) if question_id is not None else None
