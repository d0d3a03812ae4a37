"""Moderation queue routes.

Any registered profile may file a report; everything else is admin-only.
The acting admin is the caller; ``assign`` takes the assignee in the body.
Domain errors map to HTTP in ``main.py``: unknown state or terminal
re-transition 422, non-admin assignee 403, missing item 404.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from echo_garden.api.dependencies import (
    get_current_profile,
    get_moderation_service,
    require_admin,
)
from echo_garden.api.limiter import limiter
from echo_garden.core.models.moderation import ItemType, ModerationSource
from echo_garden.core.models.profiles import Profile
from echo_garden.core.schemas.moderation import (
    AssignRequest,
    EscalationSummary,
    FlagCreate,
    ModerationHistoryRead,
    ModerationItemRead,
    ModerationStatistics,
    NoteCreate,
    ReportCreate,
    TransitionRequest,
)
from echo_garden.moderation.queue import ModerationQueueService

logger = logging.getLogger(__name__)

router = APIRouter()

AdminProfile = Annotated[Profile, Depends(require_admin)]
Queue = Annotated[ModerationQueueService, Depends(get_moderation_service)]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get("/queue", response_model=list[ModerationItemRead])
async def list_queue(
    queue: Queue,
    _admin: AdminProfile,
    workflow_state: Annotated[Optional[str], Query()] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ModerationItemRead]:
    """Open items (or items in *workflow_state*), highest priority first."""
    items = await queue.list_queue(workflow_state, limit, offset)
    return [ModerationItemRead.model_validate(i) for i in items]


@router.post("/reports", response_model=ModerationItemRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/hour")
async def create_report(
    request: Request,
    payload: ReportCreate,
    queue: Queue,
    _reporter: Annotated[Profile, Depends(get_current_profile)],
) -> ModerationItemRead:
    """File a user report.  Reports enter the queue at priority 0."""
    item = await queue.open_item(
        item_type=ItemType.REPORT.value,
        target_type=payload.target_type,
        source=ModerationSource.USER.value,
        clip_id=payload.clip_id,
        profile_id=payload.profile_id,
        reason=payload.reason,
    )
    return ModerationItemRead.model_validate(item)


@router.post("/flags", response_model=ModerationItemRead, status_code=status.HTTP_201_CREATED)
async def create_flag(
    payload: FlagCreate,
    queue: Queue,
    _admin: AdminProfile,
) -> ModerationItemRead:
    """Raise a manual flag; its priority follows from ``risk``."""
    item = await queue.open_item(
        item_type=ItemType.FLAG.value,
        target_type=payload.target_type,
        source=ModerationSource.MANUAL.value,
        clip_id=payload.clip_id,
        profile_id=payload.profile_id,
        reason=payload.reason,
        risk=payload.risk,
    )
    return ModerationItemRead.model_validate(item)


@router.get("/items/{item_id}/history", response_model=list[ModerationHistoryRead])
async def get_history(
    item_id: uuid.UUID,
    queue: Queue,
    _admin: AdminProfile,
) -> list[ModerationHistoryRead]:
    entries = await queue.get_history(item_id)
    return [ModerationHistoryRead.model_validate(e) for e in entries]


@router.post("/items/{item_id}/assign", response_model=ModerationItemRead)
async def assign_item(
    item_id: uuid.UUID,
    payload: AssignRequest,
    queue: Queue,
    _admin: AdminProfile,
) -> ModerationItemRead:
    item = await queue.assign(item_id, payload.admin_id)
    return ModerationItemRead.model_validate(item)


@router.post("/items/{item_id}/transition", response_model=ModerationItemRead)
async def transition_item(
    item_id: uuid.UUID,
    payload: TransitionRequest,
    queue: Queue,
    admin: AdminProfile,
) -> ModerationItemRead:
    """Move an item through the workflow as the calling admin."""
    item = await queue.transition(item_id, payload.workflow_state, admin.id, payload.notes)
    try:
        from echo_garden.api.metrics import moderation_transitions_total  # noqa: PLC0415

        moderation_transitions_total.labels(to_state=item.workflow_state).inc()
    except Exception as _metrics_exc:  # noqa: BLE001
        logger.debug("metrics recording failed: %s", _metrics_exc)
    return ModerationItemRead.model_validate(item)


@router.post("/items/{item_id}/notes", response_model=ModerationItemRead)
async def add_note(
    item_id: uuid.UUID,
    payload: NoteCreate,
    queue: Queue,
    admin: AdminProfile,
) -> ModerationItemRead:
    item = await queue.add_note(item_id, admin.id, payload.notes)
    return ModerationItemRead.model_validate(item)


@router.post("/escalate", response_model=EscalationSummary)
@limiter.limit("5/minute")
async def escalate(
    request: Request,
    queue: Queue,
    _admin: AdminProfile,
) -> EscalationSummary:
    """Run the auto-escalation sweep now."""
    return EscalationSummary(escalated=await queue.auto_escalate())


@router.get("/statistics", response_model=ModerationStatistics)
async def get_statistics(
    queue: Queue,
    _admin: AdminProfile,
    window_start: Annotated[Optional[datetime], Query()] = None,
    window_end: Annotated[Optional[datetime], Query()] = None,
) -> ModerationStatistics:
    """Queue statistics; the window defaults to the last 7 days."""
    now = datetime.now(tz=timezone.utc)
    window_end = _aware(window_end) or now
    window_start = _aware(window_start)
    window_start = window_start or window_end - timedelta(days=7)
    return await queue.get_statistics(window_start, window_end, now)
