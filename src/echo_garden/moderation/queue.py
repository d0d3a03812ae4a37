"""Moderation queue workflow: assignment, transitions, escalation and statistics.

Workflow::

    pending ──► in_review ──► resolved
        │            └──────► actioned
        └──────────────────► resolved / actioned

Every assignment, state change and note appends a
:class:`~echo_garden.core.models.moderation.ModerationHistoryEntry` in the
same transaction as the change itself, then publishes a fire-and-forget
notification.  A notification that cannot be delivered never fails the
operation.

Mutations reject bad input explicitly:

- unknown workflow state   -> ``InvalidWorkflowStateError``
- leaving a terminal state -> ``InvalidTransitionError``
- non-admin actor          -> ``AdminNotFoundError``
- missing item             -> ``NotFoundError``

``auto_escalate`` is a batch job meant to run hourly.  It raises the
priority of every open item older than ``age_hours`` by ``step``, capped
at ``cap``.  Repeated runs keep escalating until the cap is reached.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.config.settings import Settings
from echo_garden.core.event_bus import (
    MODERATION_ASSIGNED,
    MODERATION_ESCALATED,
    MODERATION_HIGH_RISK_FLAG,
    MODERATION_NOTE_ADDED,
    MODERATION_STATE_CHANGED,
    NotificationDispatcher,
)
from echo_garden.core.exceptions import (
    AdminNotFoundError,
    InvalidArgumentError,
    InvalidTransitionError,
    InvalidWorkflowStateError,
    NotFoundError,
)
from echo_garden.core.models.moderation import (
    OPEN_STATES,
    ItemType,
    ModerationHistoryEntry,
    ModerationItem,
    ModerationSource,
    TargetType,
    WorkflowState,
)
from echo_garden.core.models.profiles import Admin
from echo_garden.core.schemas.moderation import ModerationStatistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscalationPolicy:
    age_hours: int = 24
    step: int = 10
    cap: int = 100
    high_risk_threshold: float = 7.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EscalationPolicy":
        return cls(
            age_hours=settings.moderation_escalation_age_hours,
            step=settings.moderation_escalation_step,
            cap=settings.moderation_priority_cap,
            high_risk_threshold=settings.moderation_high_risk_threshold,
        )


def escalated_priority(priority: Optional[int], step: int = 10, cap: int = 100) -> int:
    """Return *priority* raised by *step* and clamped to *cap*."""
    return min((priority or 0) + step, cap)


def parse_workflow_state(value: str) -> WorkflowState:
    """Validate a workflow state string.

    Raises:
        InvalidWorkflowStateError: If *value* is not one of the four states.
    """
    try:
        return WorkflowState(value)
    except ValueError:
        raise InvalidWorkflowStateError(str(value)) from None


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ModerationQueueService:
    """Admin-facing operations on the moderation queue.

    Args:
        session: Open async session.
        notifier: Dispatcher for moderation notifications; ``None`` disables them.
        policy: Escalation and risk thresholds.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
        policy: EscalationPolicy = EscalationPolicy(),
    ) -> None:
        self.session = session
        self.notifier = notifier
        self.policy = policy

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify(self, event: str, item: ModerationItem, **extra: object) -> None:
        if self.notifier is None:
            return
        payload = {
            "item_id": str(item.id),
            "item_type": item.item_type,
            "workflow_state": item.workflow_state,
            "priority": item.priority,
        }
        payload.update({k: str(v) if isinstance(v, uuid.UUID) else v for k, v in extra.items()})
        self.notifier.dispatch(event, payload, risk=item.risk)

    async def _require_admin(self, admin_id: uuid.UUID) -> None:
        found = (
            await self.session.execute(
                select(Admin.profile_id).where(Admin.profile_id == admin_id)
            )
        ).scalar_one_or_none()
        if found is None:
            raise AdminNotFoundError(admin_id)

    async def _locked_item(self, item_id: uuid.UUID) -> ModerationItem:
        stmt = select(ModerationItem).where(ModerationItem.id == item_id).with_for_update()
        item = (await self.session.execute(stmt)).scalar_one_or_none()
        if item is None:
            raise NotFoundError("moderation_item", item_id)
        return item

    def _history(
        self,
        item: ModerationItem,
        action: str,
        admin_id: Optional[uuid.UUID],
        previous: Optional[str] = None,
        new: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ModerationHistoryEntry:
        entry = ModerationHistoryEntry(
            item_id=item.id,
            action=action,
            admin_profile_id=admin_id,
            previous_value=previous,
            new_value=new,
            notes=notes,
        )
        self.session.add(entry)
        return entry

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def open_item(
        self,
        *,
        item_type: str,
        target_type: str,
        source: str,
        clip_id: Optional[uuid.UUID] = None,
        profile_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        risk: float = 0.0,
        priority: Optional[int] = None,
    ) -> ModerationItem:
        """Create a pending flag or report.

        When *priority* is omitted it is derived from *risk* (``risk × 10``,
        capped).  Flags at or above the high-risk threshold are announced
        immediately.

        Raises:
            InvalidArgumentError: On an unknown type, target or source, a
                risk outside 0-10, or a target id that does not match
                *target_type*.
        """
        try:
            item_type = ItemType(item_type).value
            target_type = TargetType(target_type).value
            source = ModerationSource(source).value
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from None
        if not 0 <= risk <= 10:
            raise InvalidArgumentError(f"risk must be between 0 and 10, got {risk}")
        if target_type == TargetType.CLIP.value and clip_id is None:
            raise InvalidArgumentError("clip_id is required for clip targets")
        if target_type == TargetType.PROFILE.value and profile_id is None:
            raise InvalidArgumentError("profile_id is required for profile targets")
        if priority is None:
            priority = int(round(risk * 10))
        item = ModerationItem(
            item_type=item_type,
            target_type=target_type,
            clip_id=clip_id,
            profile_id=profile_id,
            source=source,
            reason=reason,
            risk=risk,
            priority=max(0, min(priority, self.policy.cap)),
            workflow_state=WorkflowState.PENDING.value,
        )
        self.session.add(item)
        await self.session.flush()
        await self.session.commit()
        logger.info(
            "moderation_item_opened",
            extra={"item_id": str(item.id), "item_type": item_type, "source": source},
        )
        if item_type == ItemType.FLAG.value and risk >= self.policy.high_risk_threshold:
            self._notify(MODERATION_HIGH_RISK_FLAG, item)
        return item

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    async def assign(self, item_id: uuid.UUID, admin_id: uuid.UUID) -> ModerationItem:
        """Assign an item to an admin and record an ``assigned`` history entry.

        Raises:
            AdminNotFoundError: If *admin_id* is not an admin.
            NotFoundError: If the item does not exist.
        """
        await self._require_admin(admin_id)
        item = await self._locked_item(item_id)
        previous = item.assigned_to
        item.assigned_to = admin_id
        self._history(
            item,
            "assigned",
            admin_id,
            previous=str(previous) if previous else None,
            new=str(admin_id),
        )
        await self.session.commit()
        logger.info(
            "moderation_item_assigned",
            extra={"item_id": str(item_id), "admin_id": str(admin_id)},
        )
        self._notify(MODERATION_ASSIGNED, item, admin_id=admin_id)
        return item

    async def transition(
        self,
        item_id: uuid.UUID,
        new_state: str,
        admin_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> ModerationItem:
        """Move an item to *new_state* and log the before/after states.

        Entering ``resolved`` or ``actioned`` stamps ``reviewed_at`` and
        ``reviewed_by``.  Re-applying the current state is accepted and
        still logged; a terminal item keeps its first review stamp.

        Raises:
            InvalidWorkflowStateError: If *new_state* is not a known state.
            InvalidTransitionError: If the item is terminal and *new_state*
                differs from its current state.
            AdminNotFoundError: If *admin_id* is not an admin.
            NotFoundError: If the item does not exist.
        """
        target = parse_workflow_state(new_state)
        await self._require_admin(admin_id)
        item = await self._locked_item(item_id)

        current = WorkflowState(item.workflow_state)
        if current.is_terminal and target is not current:
            raise InvalidTransitionError(current.value, target.value)

        item.workflow_state = target.value
        if target.is_terminal and not current.is_terminal:
            item.reviewed_at = _utcnow()
            item.reviewed_by = admin_id
        if notes:
            item.moderation_notes = notes
        self._history(
            item,
            "state_changed",
            admin_id,
            previous=current.value,
            new=target.value,
            notes=notes,
        )
        await self.session.commit()
        logger.info(
            "moderation_item_transitioned",
            extra={
                "item_id": str(item_id),
                "previous_state": current.value,
                "new_state": target.value,
            },
        )
        self._notify(
            MODERATION_STATE_CHANGED,
            item,
            previous_state=current.value,
            admin_id=admin_id,
        )
        return item

    async def add_note(self, item_id: uuid.UUID, admin_id: uuid.UUID, notes: str) -> ModerationItem:
        """Replace the item's notes and log a ``note_added`` entry."""
        if not notes or not notes.strip():
            raise InvalidArgumentError("notes must not be empty")
        await self._require_admin(admin_id)
        item = await self._locked_item(item_id)
        previous = item.moderation_notes
        item.moderation_notes = notes
        self._history(item, "note_added", admin_id, previous=previous, new=notes)
        await self.session.commit()
        logger.info(
            "moderation_item_note_added",
            extra={"item_id": str(item_id), "admin_id": str(admin_id)},
        )
        self._notify(MODERATION_NOTE_ADDED, item, admin_id=admin_id)
        return item

    # ------------------------------------------------------------------
    # Batch escalation
    # ------------------------------------------------------------------

    async def auto_escalate(self, now: Optional[datetime] = None) -> int:
        """Raise the priority of every stale open item.

        Each item is escalated in its own savepoint; a failure is logged and
        the sweep continues.

        Returns:
            Number of items escalated.
        """
        now = now or _utcnow()
        cutoff = now - timedelta(hours=self.policy.age_hours)
        stmt = select(ModerationItem.id).where(
            ModerationItem.workflow_state.in_(OPEN_STATES),
            ModerationItem.created_at < cutoff,
            ModerationItem.priority < self.policy.cap,
        )
        item_ids = (await self.session.execute(stmt)).scalars().all()

        escalated: list[ModerationItem] = []
        for item_id in item_ids:
            try:
                async with self.session.begin_nested():
                    item = await self._locked_item(item_id)
                    previous = item.priority
                    item.priority = escalated_priority(
                        previous, self.policy.step, self.policy.cap
                    )
                    self._history(
                        item,
                        "auto_escalated",
                        None,
                        previous=str(previous),
                        new=str(item.priority),
                    )
                escalated.append(item)
            except Exception:
                logger.exception(
                    "moderation_escalation_failed",
                    extra={"item_id": str(item_id)},
                )
        await self.session.commit()
        for item in escalated:
            self._notify(MODERATION_ESCALATED, item)
        logger.info(
            "moderation_escalation_complete",
            extra={"escalated": len(escalated), "candidates": len(item_ids)},
        )
        return len(escalated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_queue(
        self,
        state: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ModerationItem]:
        """List items, highest priority first and oldest first within a priority.

        Without *state* only open items are listed.
        """
        stmt = select(ModerationItem)
        if state is None:
            stmt = stmt.where(ModerationItem.workflow_state.in_(OPEN_STATES))
        else:
            stmt = stmt.where(ModerationItem.workflow_state == parse_workflow_state(state).value)
        stmt = (
            stmt.order_by(ModerationItem.priority.desc(), ModerationItem.created_at.asc())
            .limit(max(limit, 1))
            .offset(max(offset, 0))
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_history(self, item_id: uuid.UUID) -> list[ModerationHistoryEntry]:
        stmt = (
            select(ModerationHistoryEntry)
            .where(ModerationHistoryEntry.item_id == item_id)
            .order_by(ModerationHistoryEntry.created_at.asc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def _count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(ModerationItem).where(*criteria)
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def _breakdown(self, column, *criteria) -> dict[str, int]:
        stmt = (
            select(column, func.count())
            .select_from(ModerationItem)
            .where(*criteria)
            .group_by(column)
        )
        return {str(key): int(count) for key, count in (await self.session.execute(stmt)).all()}

    async def get_statistics(
        self,
        window_start: datetime,
        window_end: datetime,
        now: Optional[datetime] = None,
    ) -> ModerationStatistics:
        """Aggregate queue health for ``[window_start, window_end]``.  Read-only.

        Raises:
            InvalidArgumentError: If *window_start* is after *window_end*.
        """
        if window_start > window_end:
            raise InvalidArgumentError("window_start must not be after window_end")
        now = now or _utcnow()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        is_open = ModerationItem.workflow_state.in_(OPEN_STATES)
        reviewed_in_window = and_(
            ModerationItem.reviewed_at.is_not(None),
            ModerationItem.reviewed_at >= window_start,
            ModerationItem.reviewed_at <= window_end,
        )
        created_in_window = and_(
            ModerationItem.created_at >= window_start,
            ModerationItem.created_at <= window_end,
        )
        threshold = self.policy.high_risk_threshold

        avg_seconds = (
            await self.session.execute(
                select(
                    func.avg(
                        func.extract(
                            "epoch", ModerationItem.reviewed_at - ModerationItem.created_at
                        )
                    )
                ).where(reviewed_in_window)
            )
        ).scalar_one_or_none()

        return ModerationStatistics(
            window_start=window_start,
            window_end=window_end,
            items_reviewed_today=await self._count(ModerationItem.reviewed_at >= today_start),
            items_reviewed_period=await self._count(reviewed_in_window),
            avg_time_to_review_minutes=(
                None if avg_seconds is None else round(float(avg_seconds) / 60.0, 2)
            ),
            high_risk_items_pending=await self._count(
                is_open,
                or_(
                    and_(
                        ModerationItem.item_type == ItemType.FLAG.value,
                        ModerationItem.risk >= threshold,
                    ),
                    and_(
                        ModerationItem.item_type == ItemType.REPORT.value,
                        ModerationItem.priority >= threshold,
                    ),
                ),
            ),
            items_older_than_24h=await self._count(
                is_open, ModerationItem.created_at < now - timedelta(hours=24)
            ),
            flags_by_source=await self._breakdown(
                ModerationItem.source,
                ModerationItem.item_type == ItemType.FLAG.value,
                created_in_window,
            ),
            reports_by_type=await self._breakdown(
                ModerationItem.target_type,
                ModerationItem.item_type == ItemType.REPORT.value,
                created_in_window,
            ),
            items_by_workflow_state=await self._breakdown(ModerationItem.workflow_state, is_open),
        )
