"""Shared slowapi rate-limiter singleton.

Keeping the ``Limiter`` instance in its own module breaks the circular
import that would arise if route modules imported directly from ``main.py``
(which itself imports every route module).

Usage in route modules::

    from echo_garden.api.limiter import limiter

    @router.post("/trending/recompute")
    @limiter.limit("2/minute")
    async def recompute(request: Request, ...):
        ...

The ``request`` parameter **must** be present in the route function
signature for slowapi to resolve the rate-limit key.

This is the coarse per-IP HTTP throttle.  The per-profile upload and
profile-edit quotas live in :mod:`echo_garden.core.rate_limiter`.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter: Limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["300/minute"],
)
"""Global rate-limiter instance.

Default limit: 300 requests/minute per IP address (enforced globally via
``SlowAPIMiddleware`` registered in ``main.create_app()``).
"""
