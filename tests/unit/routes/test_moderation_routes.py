"""Route tests for /moderation.

The queue service is replaced by a mock; these tests cover access control,
request validation and the domain-error to HTTP mapping.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from echo_garden.api.dependencies import get_moderation_service
from echo_garden.api.main import app
from echo_garden.core.exceptions import (
    AdminNotFoundError,
    InvalidTransitionError,
    InvalidWorkflowStateError,
    NotFoundError,
)
from echo_garden.core.models.moderation import ModerationItem
from echo_garden.core.schemas.moderation import ModerationStatistics
from tests.factories.moderation import ModerationItemFactory


def _queue() -> MagicMock:
    queue = MagicMock()
    app.dependency_overrides[get_moderation_service] = lambda: queue
    return queue


def _item(**overrides) -> ModerationItem:
    return ModerationItem(**ModerationItemFactory.build(**overrides))


class TestAccess:
    async def test_anonymous_queue_is_401(self, app_client) -> None:
        _queue()
        response = await app_client.get("/moderation/queue")
        assert response.status_code == 401

    async def test_member_queue_is_403(self, app_client, member) -> None:
        _queue()
        response = await app_client.get("/moderation/queue")
        assert response.status_code == 403


class TestQueue:
    async def test_lists_items(self, app_client, admin) -> None:
        queue = _queue()
        items = [_item(priority=40), _item(priority=10)]
        queue.list_queue = AsyncMock(return_value=items)

        response = await app_client.get("/moderation/queue", params={"limit": 10})

        assert response.status_code == 200
        assert [i["priority"] for i in response.json()] == [40, 10]
        queue.list_queue.assert_awaited_once_with(None, 10, 0)

    async def test_limit_out_of_range(self, app_client, admin) -> None:
        _queue()
        response = await app_client.get("/moderation/queue", params={"limit": 500})
        assert response.status_code == 422


class TestReports:
    async def test_member_files_report(self, app_client, member) -> None:
        queue = _queue()
        clip_id = uuid.uuid4()
        queue.open_item = AsyncMock(
            return_value=_item(item_type="report", source="user", clip_id=clip_id, risk=0.0)
        )

        response = await app_client.post(
            "/moderation/reports",
            json={"target_type": "clip", "clip_id": str(clip_id), "reason": "spam"},
        )

        assert response.status_code == 201
        kwargs = queue.open_item.await_args.kwargs
        assert kwargs["item_type"] == "report"
        assert kwargs["source"] == "user"
        assert kwargs["clip_id"] == clip_id

    async def test_anonymous_report_is_401(self, app_client) -> None:
        _queue()
        response = await app_client.post(
            "/moderation/reports", json={"target_type": "clip", "clip_id": str(uuid.uuid4())}
        )
        assert response.status_code == 401


class TestFlags:
    async def test_risk_out_of_range(self, app_client, admin) -> None:
        _queue()
        response = await app_client.post(
            "/moderation/flags",
            json={"target_type": "profile", "profile_id": str(uuid.uuid4()), "risk": 11},
        )
        assert response.status_code == 422

    async def test_manual_flag(self, app_client, admin) -> None:
        queue = _queue()
        queue.open_item = AsyncMock(return_value=_item(source="manual", risk=8.0, priority=80))

        response = await app_client.post(
            "/moderation/flags",
            json={"target_type": "clip", "clip_id": str(uuid.uuid4()), "risk": 8},
        )

        assert response.status_code == 201
        assert queue.open_item.await_args.kwargs["risk"] == 8.0
        assert queue.open_item.await_args.kwargs["source"] == "manual"


class TestTransition:
    async def test_transition_as_calling_admin(self, app_client, admin) -> None:
        queue = _queue()
        item = _item(workflow_state="resolved", reviewed_by=admin.id)
        queue.transition = AsyncMock(return_value=item)

        response = await app_client.post(
            f"/moderation/items/{item.id}/transition",
            json={"workflow_state": "resolved", "notes": "ok"},
        )

        assert response.status_code == 200
        assert response.json()["workflow_state"] == "resolved"
        queue.transition.assert_awaited_once_with(item.id, "resolved", admin.id, "ok")

    async def test_unknown_state_is_422(self, app_client, admin) -> None:
        queue = _queue()
        queue.transition = AsyncMock(side_effect=InvalidWorkflowStateError("archived"))

        response = await app_client.post(
            f"/moderation/items/{uuid.uuid4()}/transition", json={"workflow_state": "archived"}
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidWorkflowStateError"

    async def test_leaving_terminal_state_is_422(self, app_client, admin) -> None:
        queue = _queue()
        queue.transition = AsyncMock(side_effect=InvalidTransitionError("actioned", "pending"))

        response = await app_client.post(
            f"/moderation/items/{uuid.uuid4()}/transition", json={"workflow_state": "pending"}
        )

        assert response.status_code == 422

    async def test_missing_item_is_404(self, app_client, admin) -> None:
        queue = _queue()
        item_id = uuid.uuid4()
        queue.transition = AsyncMock(side_effect=NotFoundError("moderation_item", item_id))

        response = await app_client.post(
            f"/moderation/items/{item_id}/transition", json={"workflow_state": "in_review"}
        )

        assert response.status_code == 404


class TestAssignAndNotes:
    async def test_non_admin_assignee_is_403(self, app_client, admin) -> None:
        queue = _queue()
        assignee = uuid.uuid4()
        queue.assign = AsyncMock(side_effect=AdminNotFoundError(assignee))

        response = await app_client.post(
            f"/moderation/items/{uuid.uuid4()}/assign", json={"admin_id": str(assignee)}
        )

        assert response.status_code == 403

    async def test_note_appended_by_caller(self, app_client, admin) -> None:
        queue = _queue()
        item = _item(moderation_notes="first look")
        queue.add_note = AsyncMock(return_value=item)

        response = await app_client.post(
            f"/moderation/items/{item.id}/notes", json={"notes": "first look"}
        )

        assert response.status_code == 200
        queue.add_note.assert_awaited_once_with(item.id, admin.id, "first look")

    async def test_empty_note_rejected(self, app_client, admin) -> None:
        _queue()
        response = await app_client.post(
            f"/moderation/items/{uuid.uuid4()}/notes", json={"notes": ""}
        )
        assert response.status_code == 422


class TestEscalateAndStatistics:
    async def test_escalate(self, app_client, admin) -> None:
        queue = _queue()
        queue.auto_escalate = AsyncMock(return_value=4)

        response = await app_client.post("/moderation/escalate")

        assert response.json() == {"escalated": 4}

    async def test_statistics_default_window_is_seven_days(self, app_client, admin) -> None:
        queue = _queue()
        end = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        queue.get_statistics = AsyncMock(
            return_value=ModerationStatistics(
                window_start=end - timedelta(days=7),
                window_end=end,
                items_older_than_24h=3,
            )
        )

        response = await app_client.get(
            "/moderation/statistics", params={"window_end": "2026-03-02T12:00:00"}
        )

        assert response.status_code == 200
        assert response.json()["items_older_than_24h"] == 3
        window_start, window_end, _now = queue.get_statistics.await_args.args
        assert window_end == end
        assert window_start == end - timedelta(days=7)
