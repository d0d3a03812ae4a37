"""Factory Boy factories for ModerationItem dicts."""

from __future__ import annotations

import datetime
import uuid

import factory


class ModerationItemFactory(factory.Factory):
    """Pending AI flag on a clip with zero priority.

    Override ``item_type="report"`` and ``source="user"`` for user reports.
    """

    class Meta:
        model = dict

    id = factory.LazyFunction(uuid.uuid4)
    item_type = "flag"
    target_type = "clip"
    clip_id = factory.LazyFunction(uuid.uuid4)
    profile_id = None
    source = "ai"
    reason = "possible harassment"
    risk = 3.0
    priority = 0
    workflow_state = "pending"
    assigned_to = None
    moderation_notes = None
    reviewed_at = None
    reviewed_by = None
    created_at = factory.LazyFunction(
        lambda: datetime.datetime.now(tz=datetime.timezone.utc)
    )
