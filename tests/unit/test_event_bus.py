"""Unit tests for the notification bus.

Delivery must never fail the caller: every test that breaks Redis asserts
the call still returns normally.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from echo_garden.core.event_bus import (
    MODERATION_ESCALATED,
    NotificationDispatcher,
    build_message,
    severity_for_risk,
)


class TestSeverity:
    @pytest.mark.parametrize(
        ("risk", "expected"),
        [
            (None, ("low", 25)),
            (0.0, ("low", 25)),
            (5.0, ("medium", 50)),
            (7.0, ("high", 75)),
            (8.9, ("high", 75)),
            (9.0, ("critical", 100)),
        ],
    )
    def test_risk_bands(self, risk, expected) -> None:
        assert severity_for_risk(risk) == expected


class TestBuildMessage:
    def test_message_shape(self) -> None:
        message = json.loads(build_message(MODERATION_ESCALATED, {"item_id": "abc"}, risk=7.5))

        assert message["event"] == MODERATION_ESCALATED
        assert message["severity"] == "high"
        assert message["priority"] == 75
        assert message["payload"] == {"item_id": "abc"}
        assert message["emitted_at"].endswith("+00:00")


class TestNotificationDispatcher:
    async def test_dispatch_publishes_after_drain(self) -> None:
        client = MagicMock()
        client.publish = AsyncMock(return_value=1)
        dispatcher = NotificationDispatcher(client, "echo_garden:test")

        dispatcher.dispatch("spotlight_selected", {"question_id": "q1"})
        await dispatcher.drain()

        channel, raw = client.publish.call_args.args
        assert channel == "echo_garden:test"
        assert json.loads(raw)["payload"] == {"question_id": "q1"}
        assert dispatcher._pending == set()

    async def test_publish_failure_is_swallowed(self) -> None:
        client = MagicMock()
        client.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        dispatcher = NotificationDispatcher(client, "echo_garden:test")

        dispatcher.dispatch(MODERATION_ESCALATED, {"item_id": "x"})
        await dispatcher.drain()

        client.publish.assert_awaited_once()

    def test_dispatch_without_running_loop_is_dropped(self) -> None:
        client = MagicMock()
        client.publish = AsyncMock()
        dispatcher = NotificationDispatcher(client, "echo_garden:test")

        dispatcher.dispatch(MODERATION_ESCALATED, {"item_id": "x"})

        client.publish.assert_not_called()
        assert dispatcher._pending == set()

    async def test_drain_with_nothing_pending(self) -> None:
        await NotificationDispatcher(MagicMock(), "c").drain()
