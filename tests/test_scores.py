"""
Tests for ranking/scores.py — the individual scoring formulas.
"""
import math
from datetime import datetime, timedelta, timezone
from types import MappingProxyType

import pytest

from buchat.ranking import scores
from buchat.ranking.models import CommunityStats, InterestProfile

from conftest import NOW, make_community, make_item


def _profile(**weights) -> InterestProfile:
    return InterestProfile(weights=MappingProxyType(weights))


# ── Timestamps ─────────────────────────────────────────────────────────────

def test_parse_timestamp_accepts_common_forms():
    iso = scores.parse_timestamp("2024-06-01T10:00:00Z")
    assert iso == datetime(2024, 6, 1, 10, tzinfo=timezone.utc)

    naive = scores.parse_timestamp(datetime(2024, 6, 1, 10))
    assert naive.tzinfo is not None and naive == iso

    epoch = scores.parse_timestamp(iso.timestamp())
    assert epoch == iso


@pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-45", object(), True])
def test_parse_timestamp_rejects_garbage(value):
    assert scores.parse_timestamp(value) is None


def test_age_hours_clamps_future_and_malformed_to_zero():
    assert scores.age_hours(NOW + timedelta(hours=5), NOW) == 0.0
    assert scores.age_hours("not-a-date", NOW) == 0.0
    assert scores.age_hours(None, NOW) == 0.0
    assert scores.age_hours(NOW - timedelta(hours=3), NOW) == pytest.approx(3.0)


def test_data_quality_issues():
    clean = make_item("ok")
    assert scores.data_quality_issues(clean, NOW) == []

    bad = make_item("bad", created_at="garbage", upvotes=-3)
    assert scores.data_quality_issues(bad, NOW) == ["malformed_timestamp", "negative_upvotes"]

    future = make_item("future", created_at=NOW + timedelta(days=1))
    assert scores.data_quality_issues(future, NOW) == ["future_timestamp"]


# ── Hot / Top / Controversial / Trending ──────────────────────────────────

def test_hot_fresh_post_beats_old_post_with_same_score():
    a = make_item("a", hours_ago=1, score=10)
    b = make_item("b", hours_ago=48, score=10)

    assert scores.hot(a, NOW) == pytest.approx(10 / 3 ** 1.5)     # ≈ 1.92
    assert scores.hot(b, NOW) == pytest.approx(10 / 50 ** 1.5)    # ≈ 0.028
    assert scores.hot(a, NOW) > scores.hot(b, NOW)


@pytest.mark.parametrize("score", [0, 1, 25, 1000])
def test_hot_decays_monotonically_for_non_negative_score(score):
    values = [scores.hot(make_item("x", hours_ago=h, score=score), NOW) for h in (0, 1, 5, 24, 200)]
    assert values == sorted(values, reverse=True)


def test_hot_decay_inverts_for_negative_score():
    # Older negative posts approach zero from below, so they sort above fresh ones
    fresh = scores.hot(make_item("n1", hours_ago=1, score=-10), NOW)
    old = scores.hot(make_item("n2", hours_ago=100, score=-10), NOW)
    assert fresh < old < 0


def test_hot_with_unusable_timestamp_uses_zero_age():
    expected = 8 / 2 ** 1.5
    for created_at in ("nonsense", None, NOW + timedelta(hours=10)):
        item = make_item("x", score=8, created_at=created_at)
        assert scores.hot(item, NOW) == pytest.approx(expected)


def test_top_is_net_score():
    assert scores.top(make_item("x", score=-4)) == -4.0
    assert scores.top(make_item("y", score=42)) == 42.0


def test_controversial_scores():
    assert scores.controversial(make_item("a", upvotes=50, downvotes=50)) == 5000.0
    assert scores.controversial(make_item("b", upvotes=90, downvotes=10)) == 1000.0


@pytest.mark.parametrize("up,down", [(0, 0), (0, 500), (300, 0)])
def test_controversial_is_zero_when_one_side_is_empty(up, down):
    assert scores.controversial(make_item("x", upvotes=up, downvotes=down)) == 0.0


def test_trending_formula():
    item = make_item("t", hours_ago=2, score=10, comment_count=5, view_count=100)
    # (10 + 5*2 + 100*0.1) / (2 + 2)^1.5 = 30 / 8
    assert scores.trending(item, NOW) == pytest.approx(3.75)


def test_negative_counts_are_treated_as_zero():
    item = make_item("x", upvotes=-5, downvotes=7)
    assert scores.controversial(item) == 0.0


# ── Personalized ───────────────────────────────────────────────────────────

def test_personalized_components():
    item = make_item(
        "p", hours_ago=0, community="python", tags=["async", "web"],
        upvotes=10, comment_count=2, downvotes=4,
    )
    profile = _profile(python=5, **{"async": 20, "web": 15})

    score = scores.personalized(item, NOW, profile, {"python"}, set())
    # community 40*5/10 + tags min(30, 35) + engagement (20+6-4)/10 + recency 10
    assert score == pytest.approx(20 + 30 + 2.2 + 10)

    seen = scores.personalized(item, NOW, profile, {"python"}, {"p"})
    assert seen == pytest.approx(score * 0.5)


def test_personalized_joined_community_without_history_weighs_one():
    item = make_item("p", hours_ago=240, community="rust")
    assert scores.personalized(item, NOW, _profile(), {"rust"}, set()) == pytest.approx(4.0)


def test_personalized_caps_engagement_and_floors_recency():
    item = make_item("p", hours_ago=300, community="go", upvotes=1000)
    assert scores.personalized(item, NOW, _profile(), set(), set()) == pytest.approx(20.0)


def test_personalized_hot_adds_hot_term():
    item = make_item("p", hours_ago=3, score=12, community="python")
    profile = _profile(python=2)
    blended = scores.personalized_hot(item, NOW, profile, {"python"}, set())
    expected = scores.personalized(item, NOW, profile, {"python"}, set()) + scores.hot(item, NOW)
    assert blended == pytest.approx(expected)


# ── Similarity / Discovery ─────────────────────────────────────────────────

def test_similarity_score():
    item = make_item("s", hours_ago=2, community="python", tags=["asyncio", "web", "db"], score=0)
    score = scores.similarity(item, NOW, {"asyncio", "web", "ml"}, {"python"})
    assert score == pytest.approx(2 * 3 + 5 + 2 + 0)

    older = make_item("o", hours_ago=30, community="go", score=math.e - 1)
    assert scores.similarity(older, NOW, set(), set()) == pytest.approx(1.0)


def test_similarity_never_fails_on_negative_score():
    item = make_item("neg", hours_ago=30, score=-50)
    assert scores.similarity(item, NOW, set(), set()) == 0.0


def test_community_discovery_new_community_boost():
    old = make_community("old", days_old=60, post_count=3, member_count=10)
    new = make_community("new", days_old=10, post_count=3, member_count=10)
    assert scores.community_discovery(old, NOW) == 16.0
    assert scores.community_discovery(new, NOW) == 26.0


def test_community_discovery_unknown_age_counts_as_new():
    c = CommunityStats(name="c", post_count=1, member_count=1, created_at="??")
    assert scores.community_discovery(c, NOW) == 13.0


# ── Non-finite and naive inputs ────────────────────────────────────────────

@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_values_count_as_zero(value):
    assert scores.count(value) == 0
    assert scores.net_score(value) == 0.0


def test_data_quality_issues_flags_non_finite_fields():
    item = make_item("x", upvotes=float("inf"), score=float("nan"))
    assert scores.data_quality_issues(item, NOW) == ["malformed_score", "malformed_upvotes"]


def test_naive_now_is_taken_as_utc():
    naive_now = NOW.replace(tzinfo=None)
    created = NOW - timedelta(hours=6)
    assert scores.age_hours(created, naive_now) == pytest.approx(6.0)
    assert scores.age_hours(created.replace(tzinfo=None), naive_now) == pytest.approx(6.0)
