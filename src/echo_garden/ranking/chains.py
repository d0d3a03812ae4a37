"""Remix / duet chain traversal.

A clip's remixes point back at it through ``remix_of_clip_id``; a remix can
itself be remixed.  The chain below a root is walked breadth-first one
level per query, stopping at ``max_depth`` levels.  A visited set makes the
walk terminate even if a cycle slipped past the schema.  Only live clips
below the root are returned, and the walk does not descend through
non-live clips.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from echo_garden.core.models.clips import Clip, ClipStatus

MAX_CHAIN_DEPTH = 10


@dataclass(frozen=True)
class ChainNode:
    clip_id: uuid.UUID
    parent_id: Optional[uuid.UUID]
    depth: int
    profile_id: uuid.UUID
    trending_score: float


async def remix_chain(
    session: AsyncSession,
    root_id: uuid.UUID,
    max_depth: int = MAX_CHAIN_DEPTH,
) -> list[ChainNode]:
    """Return the root followed by its live descendants in breadth-first order.

    Args:
        session: Open async session.
        root_id: Clip at the top of the chain.
        max_depth: Deepest level returned (the root is depth 0).

    Returns:
        ``[]`` when the root does not exist, otherwise the root node and
        every live descendant down to *max_depth*.
    """
    root = await session.get(Clip, root_id)
    if root is None:
        return []

    nodes = [ChainNode(root.id, None, 0, root.profile_id, root.trending_score or 0.0)]
    visited = {root.id}
    frontier = [root.id]
    depth = 0
    while frontier and depth < max_depth:
        depth += 1
        stmt = (
            select(Clip)
            .where(
                Clip.remix_of_clip_id.in_(frontier),
                Clip.status == ClipStatus.LIVE.value,
            )
            .order_by(Clip.created_at.asc())
        )
        children = (await session.execute(stmt)).scalars().all()
        frontier = []
        for child in children:
            if child.id in visited:
                continue
            visited.add(child.id)
            frontier.append(child.id)
            nodes.append(
                ChainNode(
                    child.id,
                    child.remix_of_clip_id,
                    depth,
                    child.profile_id,
                    child.trending_score or 0.0,
                )
            )
    return nodes
