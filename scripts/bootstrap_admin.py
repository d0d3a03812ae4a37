#!/usr/bin/env python
"""Grant moderator rights to an existing profile.

Run after the Alembic migrations have been applied::

    python scripts/bootstrap_admin.py <handle>

Idempotent: re-running for a profile that is already an admin changes
nothing.

Exit codes:
    0 : Success (admin row created or already present).
    1 : Missing argument or unknown handle.
"""

from __future__ import annotations

import asyncio
import sys


async def _bootstrap(handle: str) -> int:
    from sqlalchemy import select  # noqa: PLC0415
    from sqlalchemy.dialects.postgresql import insert as pg_insert  # noqa: PLC0415

    from echo_garden.core.database import AsyncSessionLocal  # noqa: PLC0415
    from echo_garden.core.models.profiles import Admin, Profile  # noqa: PLC0415

    async with AsyncSessionLocal() as session:
        async with session.begin():
            profile_id = (
                await session.execute(select(Profile.id).where(Profile.handle == handle))
            ).scalar_one_or_none()
            if profile_id is None:
                print(f"[bootstrap_admin] ERROR: no profile with handle '{handle}'.", file=sys.stderr)
                return 1
            result = await session.execute(
                pg_insert(Admin).values(profile_id=profile_id).on_conflict_do_nothing()
            )
    if result.rowcount:
        print(f"[bootstrap_admin] '{handle}' ({profile_id}) is now an admin.")
    else:
        print(f"[bootstrap_admin] '{handle}' is already an admin.  Nothing to do.")
    return 0


def main() -> None:
    if len(sys.argv) != 2:
        print("usage: python scripts/bootstrap_admin.py <handle>", file=sys.stderr)
        sys.exit(1)
    sys.exit(asyncio.run(_bootstrap(sys.argv[1])))


if __name__ == "__main__":
    main()
