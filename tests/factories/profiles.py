"""Factory Boy factories for Profile dicts.

Usage in tests::

    from tests.factories.profiles import ProfileFactory

    profile = Profile(**ProfileFactory.build(handle="wren"))
"""

from __future__ import annotations

import datetime
import uuid

import factory


class ProfileFactory(factory.Factory):
    """Factory for :class:`echo_garden.core.models.profiles.Profile` dicts."""

    class Meta:
        model = dict

    id = factory.LazyFunction(uuid.uuid4)
    handle = factory.Sequence(lambda n: f"listener{n}")
    device_id = factory.LazyFunction(lambda: uuid.uuid4().hex)
    emoji_avatar = "🎧"
    created_at = factory.LazyFunction(
        lambda: datetime.datetime.now(tz=datetime.timezone.utc)
    )
