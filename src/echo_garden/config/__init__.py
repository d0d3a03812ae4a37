"""Configuration package for Echo Garden.

Re-exports the most commonly used configuration symbols so that
callers can write::

    from echo_garden.config import get_settings, RelevanceWeights

without needing to know which sub-module each symbol lives in.
"""

from __future__ import annotations

from echo_garden.config.ranking import (
    DEFAULT_RELEVANCE_WEIGHTS,
    DEFAULT_TRENDING_WEIGHTS,
    RelevanceWeights,
    TrendingWeights,
    relevance_weights_from_settings,
)
from echo_garden.config.settings import Settings, get_settings

__all__ = [
    # settings
    "Settings",
    "get_settings",
    # ranking
    "DEFAULT_RELEVANCE_WEIGHTS",
    "DEFAULT_TRENDING_WEIGHTS",
    "RelevanceWeights",
    "TrendingWeights",
    "relevance_weights_from_settings",
]
