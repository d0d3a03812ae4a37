"""Unit tests for ModerationQueueService.

Tests cover:
- open_item() validation and risk-derived priority
- assign(), transition() and add_note() audit entries, admin checks and
  notifications
- terminal-state protection, the first review stamp and unknown workflow states
- auto_escalate() step, cap, savepoint isolation and state preservation
- get_statistics() window validation and result assembly

Sessions are mocked; the notifier is a MagicMock so dispatched events can
be inspected without Redis.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from echo_garden.core.event_bus import (
    MODERATION_ASSIGNED,
    MODERATION_ESCALATED,
    MODERATION_HIGH_RISK_FLAG,
    MODERATION_NOTE_ADDED,
    MODERATION_STATE_CHANGED,
)
from echo_garden.core.exceptions import (
    AdminNotFoundError,
    InvalidArgumentError,
    InvalidTransitionError,
    InvalidWorkflowStateError,
    NotFoundError,
)
from echo_garden.core.models.moderation import ModerationHistoryEntry, ModerationItem
from echo_garden.moderation.queue import (
    EscalationPolicy,
    ModerationQueueService,
    escalated_priority,
    parse_workflow_state,
)
from tests.conftest import make_mock_session
from tests.factories.moderation import ModerationItemFactory

NOW = datetime(2026, 9, 10, 15, 0, tzinfo=timezone.utc)


def _item(**overrides) -> ModerationItem:
    return ModerationItem(**ModerationItemFactory.build(**overrides))


def _history(session: MagicMock) -> list[ModerationHistoryEntry]:
    return [
        c.args[0]
        for c in session.add.call_args_list
        if isinstance(c.args[0], ModerationHistoryEntry)
    ]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestEscalatedPriority:
    @pytest.mark.parametrize(
        ("priority", "expected"),
        [(0, 10), (None, 10), (45, 55), (95, 100), (100, 100)],
    )
    def test_step_and_cap(self, priority, expected) -> None:
        assert escalated_priority(priority) == expected

    def test_repeated_escalation_never_exceeds_cap(self) -> None:
        priority = 0
        for _ in range(25):
            priority = escalated_priority(priority)
        assert priority == 100


class TestParseWorkflowState:
    @pytest.mark.parametrize("state", ["pending", "in_review", "resolved", "actioned"])
    def test_known_states(self, state: str) -> None:
        assert parse_workflow_state(state).value == state

    @pytest.mark.parametrize("state", ["closed", "PENDING", ""])
    def test_unknown_state_rejected(self, state: str) -> None:
        with pytest.raises(InvalidWorkflowStateError) as exc_info:
            parse_workflow_state(state)
        assert exc_info.value.state == state


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class TestOpenItem:
    async def test_priority_derived_from_risk(self) -> None:
        session = make_mock_session()
        service = ModerationQueueService(session)

        item = await service.open_item(
            item_type="report", target_type="clip", source="user",
            clip_id=uuid.uuid4(), risk=4.6,
        )

        assert item.priority == 46
        assert item.workflow_state == "pending"
        session.add.assert_called_once_with(item)
        session.commit.assert_awaited_once()

    async def test_high_risk_flag_announced(self) -> None:
        notifier = MagicMock()
        service = ModerationQueueService(make_mock_session(), notifier)

        await service.open_item(
            item_type="flag", target_type="clip", source="ai",
            clip_id=uuid.uuid4(), risk=8.5,
        )

        assert notifier.dispatch.call_args.args[0] == MODERATION_HIGH_RISK_FLAG
        assert notifier.dispatch.call_args.kwargs["risk"] == 8.5

    async def test_low_risk_flag_is_quiet(self) -> None:
        notifier = MagicMock()
        service = ModerationQueueService(make_mock_session(), notifier)

        await service.open_item(
            item_type="flag", target_type="profile", source="manual",
            profile_id=uuid.uuid4(), risk=2.0,
        )

        notifier.dispatch.assert_not_called()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"item_type": "complaint", "target_type": "clip", "source": "ai"},
            {"item_type": "flag", "target_type": "topic", "source": "ai"},
            {"item_type": "flag", "target_type": "clip", "source": "robot"},
            {"item_type": "flag", "target_type": "clip", "source": "ai", "risk": 11.0},
            {"item_type": "flag", "target_type": "profile", "source": "ai"},
        ],
    )
    async def test_invalid_input_rejected(self, kwargs) -> None:
        kwargs.setdefault("clip_id", uuid.uuid4())
        session = make_mock_session()

        with pytest.raises(InvalidArgumentError):
            await ModerationQueueService(session).open_item(**kwargs)

        session.add.assert_not_called()


# ---------------------------------------------------------------------------
# Admin actions
# ---------------------------------------------------------------------------


class TestAssign:
    async def test_assign_records_history_and_notifies(self) -> None:
        admin = uuid.uuid4()
        item = _item()
        notifier = MagicMock()
        session = make_mock_session([admin, item])

        result = await ModerationQueueService(session, notifier).assign(item.id, admin)

        assert result.assigned_to == admin
        (entry,) = _history(session)
        assert entry.action == "assigned"
        assert entry.new_value == str(admin)
        assert entry.previous_value is None
        session.commit.assert_awaited_once()
        assert notifier.dispatch.call_args.args[0] == MODERATION_ASSIGNED
        assert notifier.dispatch.call_args.args[1]["admin_id"] == str(admin)

    async def test_non_admin_rejected(self) -> None:
        session = make_mock_session([None])
        with pytest.raises(AdminNotFoundError):
            await ModerationQueueService(session).assign(uuid.uuid4(), uuid.uuid4())
        session.commit.assert_not_awaited()

    async def test_missing_item_rejected(self) -> None:
        admin = uuid.uuid4()
        session = make_mock_session([admin, None])
        with pytest.raises(NotFoundError):
            await ModerationQueueService(session).assign(uuid.uuid4(), admin)


class TestTransition:
    async def test_pending_to_in_review(self) -> None:
        admin = uuid.uuid4()
        item = _item()
        notifier = MagicMock()
        session = make_mock_session([admin, item])

        await ModerationQueueService(session, notifier).transition(item.id, "in_review", admin)

        assert item.workflow_state == "in_review"
        assert item.reviewed_at is None
        (entry,) = _history(session)
        assert (entry.action, entry.previous_value, entry.new_value) == (
            "state_changed",
            "pending",
            "in_review",
        )
        event, payload = notifier.dispatch.call_args.args
        assert event == MODERATION_STATE_CHANGED
        assert payload["previous_state"] == "pending"

    async def test_terminal_state_stamps_reviewer_and_notes(self) -> None:
        admin = uuid.uuid4()
        item = _item(workflow_state="in_review")
        session = make_mock_session([admin, item])

        await ModerationQueueService(session).transition(
            item.id, "actioned", admin, notes="clip removed"
        )

        assert item.workflow_state == "actioned"
        assert item.reviewed_by == admin
        assert item.reviewed_at is not None
        assert item.moderation_notes == "clip removed"
        assert _history(session)[0].notes == "clip removed"

    async def test_unknown_state_rejected_before_any_query(self) -> None:
        session = make_mock_session()
        with pytest.raises(InvalidWorkflowStateError):
            await ModerationQueueService(session).transition(
                uuid.uuid4(), "archived", uuid.uuid4()
            )
        assert session.executed == []

    async def test_cannot_leave_terminal_state(self) -> None:
        admin = uuid.uuid4()
        item = _item(workflow_state="resolved")
        session = make_mock_session([admin, item])

        with pytest.raises(InvalidTransitionError):
            await ModerationQueueService(session).transition(item.id, "pending", admin)

        assert item.workflow_state == "resolved"
        assert _history(session) == []
        session.commit.assert_not_awaited()

    async def test_reapplying_terminal_state_is_logged(self) -> None:
        admin = uuid.uuid4()
        item = _item(workflow_state="resolved")
        session = make_mock_session([admin, item])

        await ModerationQueueService(session).transition(item.id, "resolved", admin)

        assert _history(session)[0].previous_value == "resolved"

    async def test_reapplying_terminal_state_keeps_first_review_stamp(self) -> None:
        first_reviewer, admin = uuid.uuid4(), uuid.uuid4()
        reviewed_at = NOW - timedelta(days=2)
        item = _item(
            workflow_state="actioned",
            reviewed_by=first_reviewer,
            reviewed_at=reviewed_at,
        )
        session = make_mock_session([admin, item])

        await ModerationQueueService(session).transition(item.id, "actioned", admin)

        assert item.reviewed_by == first_reviewer
        assert item.reviewed_at == reviewed_at
        assert _history(session)[0].admin_profile_id == admin

    async def test_missing_admin_rejected(self) -> None:
        session = make_mock_session([None])
        with pytest.raises(AdminNotFoundError):
            await ModerationQueueService(session).transition(
                uuid.uuid4(), "resolved", uuid.uuid4()
            )


class TestAddNote:
    async def test_blank_note_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError):
            await ModerationQueueService(make_mock_session()).add_note(
                uuid.uuid4(), uuid.uuid4(), "   "
            )

    async def test_note_logged(self) -> None:
        admin = uuid.uuid4()
        item = _item(moderation_notes="first look")
        session = make_mock_session([admin, item])

        await ModerationQueueService(session).add_note(item.id, admin, "second look")

        (entry,) = _history(session)
        assert (entry.action, entry.previous_value, entry.new_value) == (
            "note_added",
            "first look",
            "second look",
        )

    async def test_note_notifies_and_logs(self, caplog) -> None:
        admin = uuid.uuid4()
        item = _item(moderation_notes="first look")
        notifier = MagicMock()
        session = make_mock_session([admin, item])

        with caplog.at_level("INFO", logger="echo_garden.moderation.queue"):
            await ModerationQueueService(session, notifier).add_note(
                item.id, admin, "second look"
            )

        event, payload = notifier.dispatch.call_args.args
        assert event == MODERATION_NOTE_ADDED
        assert payload["item_id"] == str(item.id)
        assert payload["admin_id"] == str(admin)
        assert "moderation_item_note_added" in caplog.messages


# ---------------------------------------------------------------------------
# Auto-escalation
# ---------------------------------------------------------------------------


class TestAutoEscalate:
    async def test_stale_pending_item_escalated_once(self) -> None:
        item = _item(priority=0, created_at=NOW - timedelta(hours=25))
        notifier = MagicMock()
        session = make_mock_session([[item.id], item])

        escalated = await ModerationQueueService(session, notifier).auto_escalate(NOW)

        assert escalated == 1
        assert item.priority == 10
        assert item.workflow_state == "pending"
        (entry,) = _history(session)
        assert entry.action == "auto_escalated"
        assert entry.admin_profile_id is None
        assert (entry.previous_value, entry.new_value) == ("0", "10")
        assert notifier.dispatch.call_args.args[0] == MODERATION_ESCALATED
        session.commit.assert_awaited_once()

    async def test_priority_capped(self) -> None:
        item = _item(priority=95)
        session = make_mock_session([[item.id], item])

        await ModerationQueueService(session).auto_escalate(NOW)

        assert item.priority == 100

    async def test_custom_policy(self) -> None:
        item = _item(priority=10)
        session = make_mock_session([[item.id], item])
        policy = EscalationPolicy(step=25, cap=30)

        await ModerationQueueService(session, policy=policy).auto_escalate(NOW)

        assert item.priority == 30

    async def test_failure_on_one_item_does_not_stop_sweep(self) -> None:
        good = _item(priority=20)
        session = make_mock_session(
            [[uuid.uuid4(), good.id], RuntimeError("lock timeout"), good]
        )

        escalated = await ModerationQueueService(session).auto_escalate(NOW)

        assert escalated == 1
        assert good.priority == 30

    async def test_nothing_stale(self) -> None:
        notifier = MagicMock()
        session = make_mock_session([[]])

        assert await ModerationQueueService(session, notifier).auto_escalate(NOW) == 0
        notifier.dispatch.assert_not_called()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestListQueue:
    async def test_returns_items(self) -> None:
        items = [_item(priority=50), _item(priority=10)]
        session = make_mock_session([items])
        assert await ModerationQueueService(session).list_queue() == items

    async def test_invalid_state_filter(self) -> None:
        with pytest.raises(InvalidWorkflowStateError):
            await ModerationQueueService(make_mock_session()).list_queue("closed")


class TestStatistics:
    async def test_start_after_end_rejected(self) -> None:
        session = make_mock_session()
        with pytest.raises(InvalidArgumentError):
            await ModerationQueueService(session).get_statistics(NOW, NOW - timedelta(days=1))
        assert session.executed == []

    async def test_assembles_counts(self) -> None:
        session = make_mock_session(
            [
                1350.0,  # avg seconds to review
                4,  # reviewed today
                17,  # reviewed in window
                3,  # high-risk pending
                6,  # open and older than 24 h
                [("ai", 9), ("manual", 2)],
                [("clip", 5)],
                [("pending", 12), ("in_review", 4)],
            ]
        )

        stats = await ModerationQueueService(session).get_statistics(
            NOW - timedelta(days=7), NOW, NOW
        )

        assert stats.avg_time_to_review_minutes == 22.5
        assert stats.items_reviewed_today == 4
        assert stats.items_reviewed_period == 17
        assert stats.high_risk_items_pending == 3
        assert stats.items_older_than_24h == 6
        assert stats.flags_by_source == {"ai": 9, "manual": 2}
        assert stats.reports_by_type == {"clip": 5}
        assert stats.items_by_workflow_state == {"pending": 12, "in_review": 4}

    async def test_no_reviews_gives_null_average(self) -> None:
        session = make_mock_session([None, 0, 0, 0, 0, [], [], []])

        stats = await ModerationQueueService(session).get_statistics(
            NOW - timedelta(days=1), NOW, NOW
        )

        assert stats.avg_time_to_review_minutes is None
        assert stats.flags_by_source == {}
