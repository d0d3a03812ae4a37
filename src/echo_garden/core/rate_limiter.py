"""Redis-backed rate and cooldown guard for write-heavy actions.

Uploads and profile edits are the two actions that can flood the
engagement data the scorers read.  They are gated by:

- sliding windows implemented with Redis sorted sets (ZADD /
  ZREMRANGEBYSCORE / ZCARD inside a Lua script so the check and the record
  are atomic across API workers);
- a per-profile cooldown key between consecutive uploads
  (``SET key 1 NX EX seconds``).

Limits (all configurable through settings)::

    upload          10 / hour / profile, 50 / day / profile,
                    20 / hour / client IP, 30 s cooldown
    profile_update  5 / hour / profile

When Redis is unreachable the guard fails open and logs a warning.

Typical usage::

    guard = RateCooldownGuard(RateLimiter(redis_client), settings)
    await guard.check_upload(profile.id, ip_address=request.client.host)
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field

import redis.asyncio as aioredis

from echo_garden.config.settings import Settings
from echo_garden.core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lua scripts
# ---------------------------------------------------------------------------

# Atomic sliding-window check-and-acquire.
#
# KEYS[1]  sorted-set key for the window
# ARGV[1]  current timestamp (float string)
# ARGV[2]  window size in seconds
# ARGV[3]  maximum calls allowed in the window
# ARGV[4]  unique member id for this call
# ARGV[5]  key TTL in seconds (slightly longer than the window)
#
# Returns 1 if the slot was acquired, 0 if the window is full.
_LUA_CHECK_AND_ACQUIRE = """
local key    = KEYS[1]
local now    = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit  = tonumber(ARGV[3])
local member = ARGV[4]
local ttl    = tonumber(ARGV[5])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
if redis.call('ZCARD', key) < limit then
    redis.call('ZADD', key, now, member)
    redis.call('EXPIRE', key, ttl)
    return 1
end
return 0
"""

# Score (timestamp) of the oldest entry, or -1 when the set is empty.
_LUA_OLDEST_ENTRY = """
local items = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
if #items == 0 then
    return '-1'
end
return items[2]
"""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WindowLimit:
    """One sliding window applied to one key.

    Attributes:
        reason: Label reported when this window rejects (e.g. ``"hourly_limit"``).
        key: Fully-qualified Redis key.
        max_calls: Calls allowed inside the window.
        window_seconds: Window length.
    """

    reason: str
    key: str
    max_calls: int
    window_seconds: int


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


@dataclass
class RateLimiter:
    """Sliding-window primitive over Redis sorted sets.

    Attributes:
        redis_client: An initialised ``redis.asyncio.Redis`` connection.
    """

    redis_client: aioredis.Redis
    _sha_acquire: str = field(default="", init=False, repr=False)
    _sha_oldest: str = field(default="", init=False, repr=False)

    async def _ensure_scripts_loaded(self) -> None:
        """Upload the Lua scripts on first use and cache their SHA1 hashes."""
        if self._sha_acquire:
            return
        self._sha_acquire = await self.redis_client.script_load(_LUA_CHECK_AND_ACQUIRE)
        self._sha_oldest = await self.redis_client.script_load(_LUA_OLDEST_ENTRY)

    async def _run_acquire(self, window: WindowLimit, member: str) -> bool:
        result = await self.redis_client.evalsha(  # type: ignore[attr-defined]
            self._sha_acquire,
            1,
            window.key,
            str(time.time()),
            str(window.window_seconds),
            str(window.max_calls),
            member,
            str(window.window_seconds + 10),
        )
        return bool(result)

    async def get_wait_time(self, window: WindowLimit) -> float:
        """Seconds until the oldest entry in *window* slides out, or ``0.0``."""
        oldest = float(
            await self.redis_client.evalsha(  # type: ignore[attr-defined]
                self._sha_oldest, 1, window.key
            )
        )
        if oldest < 0:
            return 0.0
        return max(0.0, oldest + window.window_seconds - time.time())

    async def acquire_all(self, windows: list[WindowLimit]) -> WindowLimit | None:
        """Record one call in every window, or in none of them.

        Windows are acquired in order.  When one is full the slots already
        taken in earlier windows are removed again.

        Args:
            windows: Windows that must all have capacity.

        Returns:
            ``None`` when the call was admitted, otherwise the first window
            that rejected it.

        Raises:
            redis.RedisError: Propagated so the guard can decide to fail open.
        """
        await self._ensure_scripts_loaded()
        member = str(uuid.uuid4())
        acquired: list[WindowLimit] = []
        for window in windows:
            if not await self._run_acquire(window, member):
                for taken in acquired:
                    try:
                        await self.redis_client.zrem(taken.key, member)
                    except Exception:  # noqa: BLE001
                        logger.debug(
                            "Failed to roll back rate-limit slot",
                            extra={"key": taken.key},
                        )
                return window
            acquired.append(window)
        return None

    async def reset(self, keys: list[str]) -> None:
        """Delete the given window and cooldown keys.  Used by admin overrides and tests."""
        if keys:
            await self.redis_client.delete(*keys)
            logger.info("Rate limit counters reset", extra={"keys": keys})


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class RateCooldownGuard:
    """Applies the upload and profile-edit policies on top of :class:`RateLimiter`.

    Args:
        limiter: The sliding-window primitive.
        settings: Source of the per-action limits.
    """

    def __init__(self, limiter: RateLimiter, settings: Settings) -> None:
        self.limiter = limiter
        self.settings = settings

    @staticmethod
    def _cooldown_key(action: str, profile_id: object) -> str:
        return f"cooldown:{action}:{profile_id}"

    def upload_windows(self, profile_id: object, ip_address: str | None) -> list[WindowLimit]:
        s = self.settings
        windows = [
            WindowLimit("hourly_limit", f"ratelimit:upload:profile:{profile_id}:hour",
                        s.upload_limit_per_hour, 3600),
            WindowLimit("daily_limit", f"ratelimit:upload:profile:{profile_id}:day",
                        s.upload_limit_per_day, 86400),
        ]
        if ip_address:
            windows.append(
                WindowLimit("ip_hourly_limit", f"ratelimit:upload:ip:{ip_address}:hour",
                            s.upload_limit_per_ip_hour, 3600)
            )
        return windows

    def profile_update_windows(self, profile_id: object) -> list[WindowLimit]:
        return [
            WindowLimit(
                "hourly_limit",
                f"ratelimit:profile_update:profile:{profile_id}:hour",
                self.settings.profile_update_limit_per_hour,
                3600,
            )
        ]

    async def _claim_cooldown(self, action: str, profile_id: object, seconds: int) -> None:
        """Claim the cooldown key or raise with the remaining TTL."""
        key = self._cooldown_key(action, profile_id)
        claimed = await self.limiter.redis_client.set(key, "1", nx=True, ex=seconds)
        if not claimed:
            ttl = await self.limiter.redis_client.ttl(key)
            raise RateLimitExceededError(action, "cooldown", retry_after=float(max(ttl, 1)))

    async def _guard(
        self,
        action: str,
        profile_id: object,
        windows: list[WindowLimit],
        cooldown_seconds: int | None = None,
    ) -> None:
        try:
            if cooldown_seconds:
                await self._claim_cooldown(action, profile_id, cooldown_seconds)
            rejected = await self.limiter.acquire_all(windows)
            if rejected is not None:
                retry_after = await self.limiter.get_wait_time(rejected)
                if cooldown_seconds:
                    await self.limiter.redis_client.delete(
                        self._cooldown_key(action, profile_id)
                    )
                raise RateLimitExceededError(action, rejected.reason, retry_after=retry_after)
        except RateLimitExceededError as exc:
            logger.info(
                "rate_guard_rejected",
                extra={"action": action, "reason": exc.reason, "profile_id": str(profile_id)},
            )
            raise
        except Exception:
            logger.warning(
                "Redis unavailable, allowing action without rate limiting",
                extra={"action": action, "profile_id": str(profile_id)},
                exc_info=True,
            )

    async def check_upload(self, profile_id: object, ip_address: str | None = None) -> None:
        """Admit one clip upload or raise :class:`RateLimitExceededError`."""
        await self._guard(
            "upload",
            profile_id,
            self.upload_windows(profile_id, ip_address),
            cooldown_seconds=self.settings.upload_cooldown_seconds,
        )

    async def check_profile_update(self, profile_id: object) -> None:
        """Admit one profile edit or raise :class:`RateLimitExceededError`."""
        await self._guard("profile_update", profile_id, self.profile_update_windows(profile_id))

    async def reset_profile(self, profile_id: object) -> None:
        keys = [w.key for w in self.upload_windows(profile_id, None)]
        keys += [w.key for w in self.profile_update_windows(profile_id)]
        keys.append(self._cooldown_key("upload", profile_id))
        await self.limiter.reset(keys)
