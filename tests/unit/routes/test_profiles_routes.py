"""Route tests for /profiles."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

from echo_garden.api.dependencies import get_rate_guard
from echo_garden.api.main import app
from echo_garden.core.exceptions import RateLimitExceededError


def _guard() -> MagicMock:
    guard = MagicMock()
    app.dependency_overrides[get_rate_guard] = lambda: guard
    return guard


class TestEditSlot:
    async def test_granted(self, app_client, member) -> None:
        guard = _guard()
        guard.check_profile_update = AsyncMock()

        response = await app_client.post("/profiles/me/edit-slot")

        assert response.json() == {"action": "profile_update", "allowed": True}
        guard.check_profile_update.assert_awaited_once_with(member.id)

    async def test_daily_quota_exhausted(self, app_client, member) -> None:
        guard = _guard()
        guard.check_profile_update = AsyncMock(
            side_effect=RateLimitExceededError("profile_update", "daily_limit", 3600)
        )

        response = await app_client.post("/profiles/me/edit-slot")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3600"
        assert response.json()["reason"] == "daily_limit"


class TestResetRateLimits:
    async def test_admin_reset(self, app_client, admin) -> None:
        guard = _guard()
        guard.reset_profile = AsyncMock()
        profile_id = uuid.uuid4()

        response = await app_client.delete(f"/profiles/{profile_id}/rate-limits")

        assert response.status_code == 204
        guard.reset_profile.assert_awaited_once_with(profile_id)

    async def test_member_cannot_reset(self, app_client, member) -> None:
        guard = _guard()
        guard.reset_profile = AsyncMock()

        response = await app_client.delete(f"/profiles/{uuid.uuid4()}/rate-limits")

        assert response.status_code == 403
        guard.reset_profile.assert_not_awaited()
