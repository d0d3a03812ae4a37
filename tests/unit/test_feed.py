"""Unit tests for feed assembly.

Tests cover:
- rank_entries() filtering, ordering, tie-breaking and pagination
- FeedAssembler.clamp() for out-of-range limit/offset
- anonymous feed ordered purely by trending score (five-clip fixture)
- signed-in feed re-ranked by affinity signals
- candidate pool sizing
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from echo_garden.config.settings import get_settings
from echo_garden.core.models.clips import Clip
from echo_garden.ranking.feed import FeedAssembler, FeedConfig, FeedEntry, rank_entries
from tests.conftest import make_mock_session
from tests.factories.clips import ClipFactory

NOW = datetime(2026, 7, 1, 18, 0, tzinfo=timezone.utc)


def _entry(score: float, hours_ago: float = 0.0) -> FeedEntry:
    return FeedEntry(uuid.uuid4(), score, NOW - timedelta(hours=hours_ago))


class TestRankEntries:
    def test_drops_non_positive_scores(self) -> None:
        kept = rank_entries([_entry(0.0), _entry(-1.0), _entry(0.3)], limit=10, offset=0)
        assert [e.score for e in kept] == [0.3]

    def test_orders_by_score_then_newest(self) -> None:
        older = _entry(0.5, hours_ago=5)
        newer = _entry(0.5, hours_ago=1)
        best = _entry(0.9, hours_ago=40)
        assert rank_entries([older, best, newer], limit=10, offset=0) == [best, newer, older]

    def test_paginates_after_sorting(self) -> None:
        entries = [_entry(s) for s in (0.1, 0.5, 0.3, 0.4, 0.2)]
        page = rank_entries(entries, limit=2, offset=1)
        assert [e.score for e in page] == [0.4, 0.3]

    def test_offset_past_end_is_empty(self) -> None:
        assert rank_entries([_entry(0.2)], limit=5, offset=3) == []

    def test_missing_created_at_sorts_last_on_ties(self) -> None:
        undated = FeedEntry(uuid.uuid4(), 0.5, None)
        dated = _entry(0.5)
        assert rank_entries([undated, dated], limit=2, offset=0) == [dated, undated]


class TestClamp:
    @pytest.mark.parametrize(
        ("limit", "offset", "expected"),
        [(20, 0, (20, 0)), (0, 0, (1, 0)), (-4, -9, (1, 0)), (5000, 7, (100, 7))],
    )
    def test_clamps_to_valid_page(self, limit, offset, expected) -> None:
        assert FeedAssembler(make_mock_session()).clamp(limit, offset) == expected

    def test_config_from_settings(self) -> None:
        assert FeedConfig.from_settings(get_settings()) == FeedConfig()


class TestGetFeed:
    async def test_anonymous_feed_follows_trending_order(self) -> None:
        trending = [120.0, 850.0, 40.0, 400.0, 999.0]
        clips = [
            Clip(**ClipFactory.build(trending_score=t, created_at=NOW - timedelta(hours=i)))
            for i, t in enumerate(trending)
        ]
        session = make_mock_session([clips])

        feed = await FeedAssembler(session).get_feed(None, limit=10, offset=0, now=NOW)

        by_id = {c.id: c.trending_score for c in clips}
        assert [by_id[e.clip_id] for e in feed] == [999.0, 850.0, 400.0, 120.0, 40.0]
        assert feed[0].score == pytest.approx(0.4 * 0.999)
        assert len(session.executed) == 1

    async def test_clips_with_zero_trending_are_filtered_for_anonymous(self) -> None:
        clips = [
            Clip(**ClipFactory.build(trending_score=0.0)),
            Clip(**ClipFactory.build(trending_score=10.0)),
        ]
        session = make_mock_session([clips])

        feed = await FeedAssembler(session).get_feed(None, now=NOW)

        assert [e.clip_id for e in feed] == [clips[1].id]

    async def test_no_candidates_returns_empty_list(self) -> None:
        session = make_mock_session([[]])
        assert await FeedAssembler(session).get_feed(uuid.uuid4(), now=NOW) == []
        assert len(session.executed) == 1

    async def test_followed_creator_outranks_more_trending_clip(self) -> None:
        followed_creator = uuid.uuid4()
        popular = Clip(**ClipFactory.build(trending_score=400.0))
        niche = Clip(**ClipFactory.build(trending_score=100.0, profile_id=followed_creator))
        session = make_mock_session(
            [
                [popular, niche],  # candidates
                [followed_creator],  # followed creators
                [],  # own completion
                [],  # creator completion
            ]
        )

        feed = await FeedAssembler(session).get_feed(uuid.uuid4(), now=NOW)

        assert [e.clip_id for e in feed] == [niche.id, popular.id]
        assert feed[0].score == pytest.approx(0.04 + 0.2)

    async def test_pool_is_multiplier_times_requested_window(self) -> None:
        session = make_mock_session([[]])
        assembler = FeedAssembler(session, config=FeedConfig(candidate_multiplier=3))

        await assembler.get_feed(None, limit=10, offset=5, now=NOW)

        compiled = session.executed[0].compile()
        assert 45 in compiled.params.values()
