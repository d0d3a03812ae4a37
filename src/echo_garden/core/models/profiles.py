"""Profile, admin and follow-graph ORM models.

Covers:
- Profile: the device-pseudonymous identity every clip and listen hangs off.
- Admin: marks a profile as a moderator.  An admin reference is valid iff a
  row exists here.
- Follow: directed follow edge between two profiles.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from echo_garden.core.models.base import Base, uuid_pk


class Profile(Base):
    """A pseudonymous platform identity.

    ``device_id`` is the opaque identifier the client sends in the
    ``X-Device-ID`` header; it is unique when present.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    handle: Mapped[str] = mapped_column(sa.String(64), unique=True, nullable=False)
    device_id: Mapped[Optional[str]] = mapped_column(
        sa.String(128),
        unique=True,
        nullable=True,
        index=True,
    )
    emoji_avatar: Mapped[Optional[str]] = mapped_column(sa.String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} handle={self.handle!r}>"


class Admin(Base):
    """Moderator marker row keyed by profile id."""

    __tablename__ = "admins"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


class Follow(Base):
    """``follower_id`` follows ``following_id``."""

    __tablename__ = "follows"

    follower_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    following_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )

    __table_args__ = (
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
    )
