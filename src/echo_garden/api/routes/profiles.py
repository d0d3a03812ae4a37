"""Profile routes.

Only the edit-slot check and the admin quota reset live here; profile CRUD
is handled elsewhere.
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status

from echo_garden.api.dependencies import get_current_profile, get_rate_guard, require_admin
from echo_garden.core.models.profiles import Profile
from echo_garden.core.rate_limiter import RateCooldownGuard
from echo_garden.core.schemas.ranking import SlotGranted

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/me/edit-slot", response_model=SlotGranted)
async def claim_edit_slot(
    guard: Annotated[RateCooldownGuard, Depends(get_rate_guard)],
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> SlotGranted:
    """Admit one profile edit or answer 429 with ``Retry-After``."""
    await guard.check_profile_update(profile.id)
    return SlotGranted(action="profile_update")


@router.delete("/{profile_id}/rate-limits", status_code=status.HTTP_204_NO_CONTENT)
async def reset_rate_limits(
    profile_id: uuid.UUID,
    guard: Annotated[RateCooldownGuard, Depends(get_rate_guard)],
    admin: Annotated[Profile, Depends(require_admin)],
) -> None:
    """Clear a profile's upload and edit quotas and its upload cooldown."""
    await guard.reset_profile(profile_id)
    logger.info(
        "rate_limits_reset",
        extra={"profile_id": str(profile_id), "admin_id": str(admin.id)},
    )
