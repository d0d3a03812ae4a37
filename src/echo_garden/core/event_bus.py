"""Redis pub/sub notification bus.

Moderation history entries and new spotlight selections produce
notifications for the out-of-process delivery workers (push, in-app).
Delivery is decoupled from the operation that triggered it: a slow or
failed publish is logged at WARNING and never reaches the caller.

Channel::

    settings.notification_channel   (default ``echo_garden:notifications``)

Message shape::

    {
        "event": "moderation_escalated_item",
        "severity": "high",           # low | medium | high | critical
        "priority": 75,
        "payload": {...},
        "emitted_at": "2026-01-01T12:00:00+00:00"
    }

:class:`NotificationDispatcher` is used from async services and from the
Celery helpers inside ``asyncio.run()``; ``dispatch()`` schedules the
publish on the running loop and returns immediately.

Usage::

    dispatcher = get_notification_dispatcher()
    dispatcher.dispatch(
        "moderation_assigned_item",
        {"item_id": str(item.id), "admin_id": str(admin_id)},
        risk=item.risk,
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------

MODERATION_ASSIGNED = "moderation_assigned_item"
MODERATION_STATE_CHANGED = "moderation_state_changed"
MODERATION_ESCALATED = "moderation_escalated_item"
MODERATION_HIGH_RISK_FLAG = "moderation_high_risk_flag"
MODERATION_NOTE_ADDED = "moderation_note_added"
SPOTLIGHT_SELECTED = "spotlight_selected"


# ---------------------------------------------------------------------------
# Severity mapping
# ---------------------------------------------------------------------------


def severity_for_risk(risk: Optional[float]) -> tuple[str, int]:
    """Map a 0..10 moderation risk onto a (severity, notification priority) pair.

    Args:
        risk: Risk score, or ``None`` when the event has no associated risk.

    Returns:
        ``("critical", 100)`` for risk >= 9, ``("high", 75)`` for >= 7,
        ``("medium", 50)`` for >= 5, otherwise ``("low", 25)``.
    """
    value = float(risk or 0.0)
    if value >= 9:
        return "critical", 100
    if value >= 7:
        return "high", 75
    if value >= 5:
        return "medium", 50
    return "low", 25


def build_message(event: str, payload: dict[str, Any], risk: Optional[float] = None) -> str:
    """Serialise one notification message as JSON."""
    severity, priority = severity_for_risk(risk)
    return json.dumps(
        {
            "event": event,
            "severity": severity,
            "priority": priority,
            "payload": payload,
            "emitted_at": datetime.now(tz=timezone.utc).isoformat(),
        },
        default=str,
    )


# ---------------------------------------------------------------------------
# Async fire-and-forget dispatcher (services)
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Schedules notification publishes without awaiting them.

    Pending publish tasks are held in ``_pending`` so they are not garbage
    collected mid-flight; each removes itself when done.

    Attributes:
        redis_client: An async Redis client.
        channel: Pub/sub channel name.
    """

    def __init__(self, redis_client: aioredis.Redis, channel: str) -> None:
        self.redis_client = redis_client
        self.channel = channel
        self._pending: set[asyncio.Task[None]] = set()

    async def _publish(self, event: str, message: str) -> None:
        try:
            await self.redis_client.publish(self.channel, message)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event_bus: notification dropped",
                extra={"notification_event": event, "error": str(exc)},
            )

    def dispatch(
        self,
        event: str,
        payload: dict[str, Any],
        risk: Optional[float] = None,
    ) -> None:
        """Schedule a publish on the running loop and return immediately.

        Outside a running loop the notification is logged and dropped.
        """
        message = build_message(event, payload, risk)
        try:
            task = asyncio.get_running_loop().create_task(self._publish(event, message))
        except RuntimeError:
            logger.warning(
                "event_bus: no running loop, notification dropped",
                extra={"notification_event": event},
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight publishes.  Used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Return the process-wide dispatcher, creating it from settings on first use."""
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is None:
        from echo_garden.config.settings import get_settings  # noqa: PLC0415

        settings = get_settings()
        client: aioredis.Redis = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        _dispatcher = NotificationDispatcher(client, settings.notification_channel)
    return _dispatcher
