"""
Ranking pipeline — filter, score, sort, truncate.

  Stage 1 │ Filter      drop non-active items (always), then mode-specific
          │             exclusions (trending window, personalization fallback)
  Stage 2 │ Score       one ScoreFunction per mode, evaluated against a single
          │             `now` so ordering is deterministic within a call
  Stage 3 │ Sort        descending by score; Python's sort is stable, so ties
          │             keep their input order
  Stage 4 │ Truncate    to `limit`

Personalized requests resolve their context first: either every input is
present (Personalized) or the call degrades to hot ranking (Fallback) and
the result carries the reason.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

from opentelemetry import trace

from buchat.ranking import scores
from buchat.ranking.models import (
    CommunityStats,
    ContentItem,
    InterestProfile,
    RankedCommunity,
    RankedItem,
    RankedResult,
    RankMode,
    Timeframe,
)
from buchat.telemetry import (
    RANKING_DATA_QUALITY_TOTAL,
    RANKING_FALLBACK_TOTAL,
    RANKING_LATENCY,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# ─────────────────────── Personalization context ──────────────────────────

@dataclass(frozen=True)
class Personalized:
    profile: InterestProfile
    joined: frozenset
    seen: frozenset


@dataclass(frozen=True)
class Fallback:
    reason: str
    seen: frozenset = frozenset()


PersonalizationContext = Union[Personalized, Fallback]


def resolve_personalization(
    profile: Optional[InterestProfile],
    joined_communities: Optional[Iterable[str]],
    seen_item_ids: Optional[Iterable[str]],
) -> PersonalizationContext:
    seen = frozenset(seen_item_ids or ())
    if profile is None:
        return Fallback("missing_interest_profile", seen)
    if joined_communities is None:
        return Fallback("missing_joined_communities", seen)
    if seen_item_ids is None:
        return Fallback("missing_interaction_history", seen)
    return Personalized(profile, frozenset(joined_communities), seen)


# ─────────────────────── Helpers ──────────────────────────────────────────

def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")


def _active(items: Iterable[ContentItem]) -> list[ContentItem]:
    return [item for item in items if item.is_active]


def _collect_warnings(items: Sequence[ContentItem], now: datetime) -> tuple:
    warnings = []
    for item in items:
        for issue in scores.data_quality_issues(item, now):
            RANKING_DATA_QUALITY_TOTAL.labels(issue=issue).inc()
            logger.warning("Data quality issue on item %s: %s", item.item_id, issue)
            warnings.append(f"{item.item_id}:{issue}")
    return tuple(warnings)


def _sorted_desc(entries: list) -> list:
    return sorted(entries, key=lambda e: e.score, reverse=True)


def _newest_first(items: list[ContentItem], now: datetime) -> list[ContentItem]:
    """Reverse an oldest-first batch; leave any other order untouched."""
    ages = [scores.age_hours(item.created_at, now) for item in items]
    oldest_first = all(a >= b for a, b in zip(ages, ages[1:]))
    newest_first = all(a <= b for a, b in zip(ages, ages[1:]))
    if oldest_first and not newest_first:
        return list(reversed(items))
    return items


def in_window(item: ContentItem, now: datetime, timeframe: Timeframe) -> bool:
    return scores.age_hours(item.created_at, now) < timeframe.hours


# ─────────────────────── Main pipeline ────────────────────────────────────

def rank(
    items: Sequence[ContentItem],
    mode: RankMode,
    limit: int,
    now: datetime,
    profile: Optional[InterestProfile] = None,
    joined_communities: Optional[Iterable[str]] = None,
    seen_item_ids: Optional[Iterable[str]] = None,
    user_id: Optional[str] = None,
    timeframe: Timeframe = Timeframe.DAY,
) -> RankedResult:
    """
    Rank a batch of content items.

    `profile`, `joined_communities` and `seen_item_ids` are only read in
    personalized mode. If any is None that mode falls back to hot ranking
    over items the user neither authored (`user_id`) nor already saw.
    """
    _check_limit(limit)
    mode = RankMode(mode)
    timeframe = Timeframe(timeframe)

    with tracer.start_as_current_span("rank_items") as span:
        t0 = time.perf_counter()
        span.set_attribute("ranking.mode", mode.value)
        span.set_attribute("batch.size", len(items))

        candidates = _active(items)
        warnings = _collect_warnings(candidates, now)
        fallback_reason = None

        if mode == RankMode.NEW:
            ordered = _newest_first(candidates, now)[:limit]
            entries = tuple(RankedItem(item, 0.0) for item in ordered)

        else:
            if mode == RankMode.PERSONALIZED:
                context = resolve_personalization(profile, joined_communities, seen_item_ids)
                if isinstance(context, Fallback):
                    fallback_reason = context.reason
                    RANKING_FALLBACK_TOTAL.labels(reason=context.reason).inc()
                    logger.info(
                        "Personalized ranking degraded to hot (%s) for user %s",
                        context.reason,
                        user_id,
                    )
                    candidates = [
                        item for item in candidates
                        if item.item_id not in context.seen
                        and (user_id is None or item.author_id != user_id)
                    ]
                    score_fn = scores.hot
                else:
                    def score_fn(item, now, ctx=context):
                        return scores.personalized_hot(
                            item, now, ctx.profile, ctx.joined, ctx.seen
                        )

            elif mode == RankMode.TRENDING:
                candidates = [c for c in candidates if in_window(c, now, timeframe)]
                score_fn = scores.trending
            else:
                score_fn = _MODE_SCORES[mode]

            scored = [RankedItem(item, score_fn(item, now)) for item in candidates]
            entries = tuple(_sorted_desc(scored)[:limit])

        latency = time.perf_counter() - t0
        RANKING_LATENCY.labels(mode=mode.value).observe(latency)
        span.set_attribute("ranking.returned", len(entries))
        if fallback_reason:
            span.set_attribute("ranking.fallback_reason", fallback_reason)

        return RankedResult(
            entries=entries,
            mode=mode.value,
            fallback_reason=fallback_reason,
            warnings=warnings,
        )


_MODE_SCORES = {
    RankMode.HOT: scores.hot,
    RankMode.TOP: scores.top,
    RankMode.CONTROVERSIAL: scores.controversial,
}


# ─────────────────────── Recommendation pipelines ─────────────────────────

def rank_by_similarity(
    items: Sequence[ContentItem],
    limit: int,
    now: datetime,
    user_tags: Iterable[str],
    user_communities: Iterable[str],
    exclude_ids: Iterable[str] = (),
) -> RankedResult:
    """Content-based recommendations: items resembling what the user upvoted."""
    _check_limit(limit)
    excluded = set(exclude_ids)
    tags, communities = set(user_tags), set(user_communities)

    candidates = [i for i in _active(items) if i.item_id not in excluded]
    warnings = _collect_warnings(candidates, now)
    scored = [
        RankedItem(item, scores.similarity(item, now, tags, communities))
        for item in candidates
    ]
    return RankedResult(
        entries=tuple(_sorted_desc(scored)[:limit]),
        mode="similarity",
        warnings=warnings,
    )


def rank_communities(
    communities: Sequence[CommunityStats],
    limit: int,
    now: datetime,
    exclude_names: Iterable[str] = (),
) -> list[RankedCommunity]:
    _check_limit(limit)
    excluded = set(exclude_names)
    scored = [
        RankedCommunity(c, scores.community_discovery(c, now))
        for c in communities
        if c.name not in excluded
    ]
    return _sorted_desc(scored)[:limit]


def rank_communities_by_members(
    communities: Sequence[CommunityStats],
    limit: int,
    exclude_names: Iterable[str] = (),
) -> list[RankedCommunity]:
    _check_limit(limit)
    excluded = set(exclude_names)
    scored = [
        RankedCommunity(c, float(scores.count(c.member_count)))
        for c in communities
        if c.name not in excluded
    ]
    return _sorted_desc(scored)[:limit]


def trending_tags(
    items: Sequence[ContentItem],
    now: datetime,
    timeframe: Timeframe,
    limit: int,
) -> list[tuple[str, int]]:
    """Tag frequency among active items inside the window; ties keep first-seen order."""
    _check_limit(limit)
    timeframe = Timeframe(timeframe)
    counts: dict[str, int] = {}
    for item in _active(items):
        if not in_window(item, now, timeframe):
            continue
        for tag in item.tags:
            counts[tag] = counts.get(tag, 0) + 1
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:limit]
