"""Ranking weight definitions shared by the scorers.

The trending formula constants are fixed product decisions and live as
defaults on :class:`TrendingWeights`.  The relevance weights are tunable per
deployment; :func:`relevance_weights_from_settings` builds them from
:class:`~echo_garden.config.settings.Settings` so that scorers receive their
weights explicitly instead of reading settings themselves.

Usage::

    from echo_garden.config.ranking import relevance_weights_from_settings

    weights = relevance_weights_from_settings(get_settings())
    score = relevance_from_signals(clip.trending_score, signals, weights)
"""

from __future__ import annotations

from dataclasses import dataclass

from echo_garden.config.settings import Settings


@dataclass(frozen=True)
class TrendingWeights:
    """Constants for the freshness-decayed trending score.

    Attributes:
        reaction: Weight of one reaction inside the engagement log term.
        listen: Weight of one listen.
        reply: Weight of one reply.
        remix: Weight of one remix or duet.
        saturation: Weighted engagement at which the engagement factor
            reaches 1.0 (``ln(1 + x) / ln(saturation)``).
        freshness_tau_hours: Time constant of the exponential freshness decay.
        neutral_completion: Completion rate assumed when no listen recorded one.
        sensitive_penalty: Quality multiplier for content rated sensitive.
        risk_penalty: Maximum quality reduction applied at moderation risk 1.0.
        scale: Final multiplier so the stored score keeps useful precision.
    """

    reaction: float = 2.0
    listen: float = 0.5
    reply: float = 3.0
    remix: float = 4.0
    saturation: float = 100.0
    freshness_tau_hours: float = 12.0
    neutral_completion: float = 0.5
    sensitive_penalty: float = 0.85
    risk_penalty: float = 0.3
    scale: float = 1000.0


DEFAULT_TRENDING_WEIGHTS = TrendingWeights()


@dataclass(frozen=True)
class TopicTrendingWeights:
    """Constants for the topic trending score.

    Attributes:
        live_clip: Points per live clip in the topic.
        listen: Points per listen across those clips.
        reaction: Points per reaction across those clips.
        recent_clip: Extra points per live clip created in the recent window.
        recent_window_hours: Width of the recent window.
    """

    live_clip: float = 10.0
    listen: float = 0.1
    reaction: float = 1.0
    recent_clip: float = 20.0
    recent_window_hours: float = 24.0


DEFAULT_TOPIC_TRENDING_WEIGHTS = TopicTrendingWeights()


@dataclass(frozen=True)
class RelevanceWeights:
    """Weights for the per-viewer relevance sum.

    Attributes:
        anonymous: Multiplier on the normalised trending score for anonymous viewers.
        trending: Weight of the normalised trending score for signed-in viewers.
        topic_follow: Flat bonus when the viewer subscribes to the clip's topic.
        creator_follow: Flat bonus when the viewer follows the clip's creator.
        own_completion: Maximum bonus for the viewer's completion of this clip.
        similar_creator: Maximum bonus for the viewer's completion of the
            creator's other recent clips.
        completion_threshold: Percentage a completion rate must exceed before
            either completion bonus applies.
        trending_scale: Divisor that maps a stored trending score onto [0, 1].
    """

    anonymous: float = 0.4
    trending: float = 0.4
    topic_follow: float = 0.3
    creator_follow: float = 0.2
    own_completion: float = 0.2
    similar_creator: float = 0.1
    completion_threshold: float = 70.0
    trending_scale: float = 1000.0


DEFAULT_RELEVANCE_WEIGHTS = RelevanceWeights()


def relevance_weights_from_settings(settings: Settings) -> RelevanceWeights:
    """Build :class:`RelevanceWeights` from the tunable settings fields."""
    return RelevanceWeights(
        anonymous=settings.anonymous_relevance_weight,
        trending=settings.trending_relevance_weight,
        topic_follow=settings.topic_follow_bonus,
        creator_follow=settings.creator_follow_bonus,
        own_completion=settings.own_completion_bonus,
        similar_creator=settings.similar_creator_bonus,
        completion_threshold=settings.completion_bonus_threshold,
    )
