"""Pydantic request/response schemas for the moderation queue.

Kept separate from the ORM models in ``core/models/moderation.py``.
``workflow_state`` on the transition payload is a plain string on purpose:
the service validates it and raises
:class:`~echo_garden.core.exceptions.InvalidWorkflowStateError`, so HTTP
and Python callers get the same error.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ModerationItemRead(BaseModel):
    """Queue row as returned by list endpoints.

    Attributes:
        id: Item id.
        item_type: ``'flag'`` or ``'report'``.
        target_type: ``'clip'`` or ``'profile'``.
        source: ``'ai'``, ``'user'`` or ``'manual'``.
        risk: 0..10 severity supplied when the item was raised.
        priority: 0..100 queue priority, raised by auto-escalation.
        workflow_state: ``pending``, ``in_review``, ``resolved`` or ``actioned``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_type: str
    target_type: str
    clip_id: Optional[uuid.UUID]
    profile_id: Optional[uuid.UUID]
    source: str
    reason: Optional[str]
    risk: float
    priority: int
    workflow_state: str
    assigned_to: Optional[uuid.UUID]
    moderation_notes: Optional[str]
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[uuid.UUID]
    created_at: datetime


class ModerationHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_id: uuid.UUID
    action: str
    admin_profile_id: Optional[uuid.UUID]
    previous_value: Optional[str]
    new_value: Optional[str]
    notes: Optional[str]
    created_at: datetime


class ReportCreate(BaseModel):
    """A user report against a clip or a profile.

    Exactly the id matching ``target_type`` must be set; the service
    rejects a missing one.
    """

    target_type: str
    clip_id: Optional[uuid.UUID] = None
    profile_id: Optional[uuid.UUID] = None
    reason: Optional[str] = Field(default=None, max_length=2000)


class FlagCreate(ReportCreate):
    """A moderator-raised flag; carries an explicit 0..10 risk."""

    risk: float = Field(default=0.0, ge=0, le=10)


class NoteCreate(BaseModel):
    notes: str = Field(min_length=1, max_length=4000)


class AssignRequest(BaseModel):
    admin_id: uuid.UUID


class TransitionRequest(BaseModel):
    workflow_state: str
    notes: Optional[str] = Field(default=None, max_length=4000)


class EscalationSummary(BaseModel):
    escalated: int


class ModerationStatistics(BaseModel):
    """Aggregate queue health for a reporting window.

    Attributes:
        window_start: Inclusive start of the reporting window.
        window_end: Inclusive end of the reporting window.
        items_reviewed_today: Items reviewed since 00:00 UTC today.
        items_reviewed_period: Items reviewed inside the window.
        avg_time_to_review_minutes: Mean creation-to-review time of items
            reviewed inside the window, ``None`` if none were.
        high_risk_items_pending: Open flags with risk >= threshold plus open
            reports with priority >= threshold.
        items_older_than_24h: Open items created more than 24 hours ago.
        flags_by_source: Flags created in the window, keyed by source.
        reports_by_type: Reports created in the window, keyed by target type.
        items_by_workflow_state: Open items keyed by state (pending, in_review).
    """

    window_start: datetime
    window_end: datetime
    items_reviewed_today: int = 0
    items_reviewed_period: int = 0
    avg_time_to_review_minutes: Optional[float] = None
    high_risk_items_pending: int = 0
    items_older_than_24h: int = 0
    flags_by_source: dict[str, int] = Field(default_factory=dict)
    reports_by_type: dict[str, int] = Field(default_factory=dict)
    items_by_workflow_state: dict[str, int] = Field(default_factory=dict)
