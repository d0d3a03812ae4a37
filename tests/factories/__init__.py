"""Factory Boy model factories for test data generation.

Available factories
-------------------
ProfileFactory          profile dict with a device id
ClipFactory             live clip dict with zeroed counters
TopicFactory            active topic dict
QuestionFactory         top-level question (topic comment) dict
ModerationItemFactory   pending flag dict targeting a clip
"""

from __future__ import annotations

from tests.factories.clips import ClipFactory
from tests.factories.moderation import ModerationItemFactory
from tests.factories.profiles import ProfileFactory
from tests.factories.topics import QuestionFactory, TopicFactory

__all__ = [
    "ClipFactory",
    "ModerationItemFactory",
    "ProfileFactory",
    "QuestionFactory",
    "TopicFactory",
]
