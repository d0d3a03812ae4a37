"""Application-wide exception hierarchy for Echo Garden.

All custom exceptions subclass ``EchoGardenError``, enabling consistent
error handling and structured logging across the application.

Scoring and feed paths never raise for missing rows; they return a neutral
value instead.  The exceptions below are raised by mutation paths
(moderation workflow, rate-guarded writes) where a silent failure would
corrupt the audit trail.

Hierarchy::

    EchoGardenError
    ├── NotFoundError              (entity, entity_id)
    ├── InvalidArgumentError
    │   ├── InvalidWorkflowStateError   (state)
    │   └── InvalidTransitionError      (current, requested)
    ├── AdminNotFoundError         (admin_id)
    └── RateLimitExceededError     (action, reason, retry_after)
"""

from __future__ import annotations


class EchoGardenError(Exception):
    """Base class for all Echo Garden exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Lookup / validation exceptions
# ---------------------------------------------------------------------------


class NotFoundError(EchoGardenError):
    """Raised when a mutation targets a row that does not exist.

    Args:
        entity: Human-readable entity name (e.g. ``"moderation_item"``).
        entity_id: Identifier that was looked up.
    """

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidArgumentError(EchoGardenError):
    """Raised when a caller supplies a malformed or out-of-range argument."""


class InvalidWorkflowStateError(InvalidArgumentError):
    """Raised when a moderation transition names an unknown workflow state.

    Args:
        state: The rejected state string, exactly as supplied.
    """

    def __init__(self, state: str) -> None:
        super().__init__(
            f"Invalid workflow state '{state}'. "
            "Must be one of: pending, in_review, resolved, actioned"
        )
        self.state = state


class InvalidTransitionError(InvalidArgumentError):
    """Raised when a moderation item in a terminal state is moved to another state.

    Args:
        current: The item's terminal state.
        requested: The state the caller asked for.
    """

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move a '{current}' item to '{requested}'; '{current}' is terminal"
        )
        self.current = current
        self.requested = requested


class AdminNotFoundError(EchoGardenError):
    """Raised when a moderation action references a profile that is not an admin.

    Args:
        admin_id: The profile id that has no ``admins`` row.
    """

    def __init__(self, admin_id: object) -> None:
        super().__init__(f"Admin '{admin_id}' not found")
        self.admin_id = admin_id


# ---------------------------------------------------------------------------
# Rate / cooldown guard
# ---------------------------------------------------------------------------


class RateLimitExceededError(EchoGardenError):
    """Raised when the rate/cooldown guard rejects a write-heavy action.

    Args:
        action: Guarded action name (``"upload"`` or ``"profile_update"``).
        reason: Which limit tripped (e.g. ``"hourly_limit"``, ``"cooldown"``).
        retry_after: Seconds until the caller may retry.
    """

    def __init__(self, action: str, reason: str, retry_after: float = 0.0) -> None:
        super().__init__(
            f"Rate limit exceeded for {action} ({reason}); retry after {retry_after:.0f}s"
        )
        self.action = action
        self.reason = reason
        self.retry_after = retry_after
