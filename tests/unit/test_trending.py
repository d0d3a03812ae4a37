"""Unit tests for the trending scorer.

Tests cover:
- engagement_factor() log compression and saturation at 1.0
- freshness_factor() exponential decay and future timestamps
- quality_factor() completion, sensitive and moderation-risk multipliers
- moderation_risk() tolerance of malformed moderation payloads
- trending_score() end-to-end values, idempotence, decay with age,
  per-counter monotonicity and non-live clips
- TrendingService read, single-clip write and batch recompute paths

Sessions are mocked; no database is required.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from echo_garden.core.models.clips import Clip
from echo_garden.ranking.engagement import EngagementAggregate
from echo_garden.ranking.trending import (
    TrendingService,
    engagement_factor,
    freshness_factor,
    hours_since,
    moderation_risk,
    quality_factor,
    trending_score,
)
from tests.conftest import make_mock_session
from tests.factories.clips import ClipFactory

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def _clip(**overrides) -> Clip:
    overrides.setdefault("created_at", NOW)
    return Clip(**ClipFactory.build(**overrides))


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


class TestEngagementFactor:
    def test_zero_engagement_is_zero(self) -> None:
        assert engagement_factor(EngagementAggregate()) == 0.0

    def test_weighted_sum_is_log_compressed(self) -> None:
        agg = EngagementAggregate(listens=5, reaction_total=10, reply_count=2)
        expected = math.log(1 + 20 + 2.5 + 6) / math.log(100)
        assert engagement_factor(agg) == pytest.approx(expected)

    def test_remix_outweighs_listen(self) -> None:
        remix = engagement_factor(EngagementAggregate(remix_count=1))
        listen = engagement_factor(EngagementAggregate(listens=1))
        assert remix > listen

    def test_saturates_at_one(self) -> None:
        agg = EngagementAggregate(listens=10_000_000, reaction_total=10_000_000)
        assert engagement_factor(agg) == 1.0


class TestFreshnessFactor:
    def test_brand_new_clip_is_fully_fresh(self) -> None:
        assert freshness_factor(0.0) == 1.0

    def test_twelve_hours_is_one_time_constant(self) -> None:
        assert freshness_factor(12.0) == pytest.approx(math.exp(-1))

    def test_decays_monotonically(self) -> None:
        values = [freshness_factor(h) for h in (0, 1, 6, 24, 72)]
        assert values == sorted(values, reverse=True)

    def test_future_creation_counts_as_zero_hours(self) -> None:
        assert hours_since(NOW + timedelta(hours=3), NOW) == 0.0

    def test_naive_timestamp_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
        assert hours_since(naive, NOW) == pytest.approx(2.0)


class TestQualityFactor:
    def test_zero_completion_keeps_half_credit(self) -> None:
        assert quality_factor(0.0) == 0.5

    def test_full_completion_is_one(self) -> None:
        assert quality_factor(1.0) == 1.0

    def test_sensitive_content_penalised(self) -> None:
        assert quality_factor(1.0, "sensitive") == pytest.approx(0.85)

    def test_moderation_risk_penalty(self) -> None:
        assert quality_factor(1.0, "general", {"risk": 0.5}) == pytest.approx(0.85)

    def test_risk_above_one_is_clamped(self) -> None:
        assert quality_factor(1.0, "general", {"risk": 7}) == pytest.approx(0.7)

    def test_penalties_compound(self) -> None:
        assert quality_factor(1.0, "sensitive", {"risk": 1.0}) == pytest.approx(0.85 * 0.7)


class TestModerationRisk:
    @pytest.mark.parametrize(
        "payload",
        [None, {}, {"risk": None}, {"risk": "high"}, {"risk": -0.4}, {"risk": True}, ["risk"]],
    )
    def test_malformed_or_absent_risk_is_zero(self, payload) -> None:
        assert moderation_risk(payload) == 0.0

    def test_numeric_string_is_accepted(self) -> None:
        assert moderation_risk({"risk": "0.25"}) == pytest.approx(0.25)


# ---------------------------------------------------------------------------
# trending_score
# ---------------------------------------------------------------------------


class TestTrendingScore:
    def test_new_clip_without_engagement_scores_zero(self) -> None:
        assert trending_score(_clip(), None, NOW) == 0.0

    def test_hour_old_clip_with_engagement_scores_about_676(self) -> None:
        clip = _clip(
            listens_count=5,
            reactions={"🔥": 6, "😂": 4},
            reply_count=2,
            created_at=NOW - timedelta(hours=1),
        )
        assert trending_score(clip, 1.0, NOW) == pytest.approx(676.1, abs=1.0)

    def test_missing_completion_uses_neutral_midpoint(self) -> None:
        clip = _clip(listens_count=5, reactions={"🔥": 10}, reply_count=2)
        assert trending_score(clip, None, NOW) == pytest.approx(
            trending_score(clip, 0.5, NOW)
        )

    @pytest.mark.parametrize("status", ["draft", "processing", "removed"])
    def test_non_live_clip_scores_exactly_zero(self, status: str) -> None:
        clip = _clip(status=status, listens_count=500, reactions={"🔥": 200})
        assert trending_score(clip, 1.0, NOW) == 0.0

    def test_recompute_is_idempotent_for_fixed_now(self) -> None:
        clip = _clip(listens_count=40, reactions={"🔥": 3}, created_at=NOW - timedelta(hours=5))
        assert trending_score(clip, 0.7, NOW) == trending_score(clip, 0.7, NOW)

    def test_more_engagement_never_scores_lower(self) -> None:
        base = dict(created_at=NOW - timedelta(hours=2))
        low = trending_score(_clip(listens_count=3, **base), 0.6, NOW)
        high = trending_score(_clip(listens_count=30, reply_count=1, **base), 0.6, NOW)
        assert high >= low

    def test_older_clip_scores_strictly_lower(self) -> None:
        engagement = dict(listens_count=12, reactions={"🔥": 3}, reply_count=1)
        newer = _clip(created_at=NOW - timedelta(hours=1), **engagement)
        older = _clip(created_at=NOW - timedelta(hours=7), **engagement)

        assert trending_score(older, 0.8, NOW) < trending_score(newer, 0.8, NOW)

    @pytest.mark.parametrize(
        "counter", ["listens_count", "reactions", "reply_count", "remix_count"]
    )
    def test_each_counter_alone_raises_score(self, counter: str) -> None:
        base = dict(
            listens_count=4,
            reactions={"🔥": 2},
            reply_count=1,
            remix_count=1,
            created_at=NOW - timedelta(hours=2),
        )
        bumped = dict(base)
        if counter == "reactions":
            bumped["reactions"] = {"🔥": 3}
        else:
            bumped[counter] += 1

        assert trending_score(_clip(**bumped), 0.6, NOW) > trending_score(_clip(**base), 0.6, NOW)

    def test_score_bounded_by_scale_for_viral_clip(self) -> None:
        clip = _clip(listens_count=10_000_000, reactions={"🔥": 10_000_000})
        score = trending_score(clip, 1.0, NOW)
        assert 0 < score <= 1000.0

    def test_malformed_reaction_counts_ignored(self) -> None:
        clean = _clip(reactions={"🔥": 4})
        messy = _clip(reactions={"🔥": 4, "😂": "lots", "🎧": None, "💀": -3})
        assert trending_score(messy, 0.5, NOW) == trending_score(clean, 0.5, NOW)


# ---------------------------------------------------------------------------
# TrendingService
# ---------------------------------------------------------------------------


class TestTrendingService:
    async def test_compute_missing_clip_returns_zero(self) -> None:
        session = make_mock_session(get_returns=None)
        score = await TrendingService(session).compute_trending_score(uuid.uuid4(), NOW)
        assert score == 0.0

    async def test_compute_does_not_write(self) -> None:
        clip = _clip(listens_count=10)
        session = make_mock_session([80.0], get_returns=clip)

        score = await TrendingService(session).compute_trending_score(clip.id, NOW)

        assert score > 0
        assert clip.trending_score == 0.0
        session.commit.assert_not_awaited()

    async def test_recompute_clip_stores_score_and_commits(self) -> None:
        clip = _clip(listens_count=10, reply_count=1)
        session = make_mock_session([clip, 90.0])

        score = await TrendingService(session).recompute_clip(clip.id, NOW)

        assert clip.trending_score == score
        assert score == pytest.approx(trending_score(clip, 0.9, NOW))
        session.commit.assert_awaited_once()

    async def test_recompute_clip_missing_returns_zero(self) -> None:
        session = make_mock_session([None])
        assert await TrendingService(session).recompute_clip(uuid.uuid4(), NOW) == 0.0
        session.commit.assert_not_awaited()

    async def test_recompute_clip_without_commit(self) -> None:
        clip = _clip(listens_count=1)
        session = make_mock_session([clip])

        await TrendingService(session).recompute_clip(
            clip.id, NOW, completion_rate=None, completion_known=True, commit=False
        )

        session.flush.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_recompute_all_continues_past_failing_clip(self) -> None:
        good = _clip(listens_count=8)
        bad_id = uuid.uuid4()
        session = make_mock_session(
            [
                [bad_id, good.id],  # live clip ids
                [],  # completion averages
                RuntimeError("row lock timeout"),  # bad clip's SELECT ... FOR UPDATE
                good,
            ]
        )

        updated = await TrendingService(session).recompute_all_trending_scores(NOW)

        assert updated == 1
        assert good.trending_score > 0
        session.commit.assert_awaited_once()
