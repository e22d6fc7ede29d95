"""
Recommendation endpoints:
  GET /recommendations?type=posts        — posts similar to what the user upvoted
  GET /recommendations?type=communities  — biggest communities not yet joined
  GET /trending/topics                   — most used tags in a timeframe
"""
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Union

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace

from buchat.config import settings
from buchat.ranking.models import RankMode, Timeframe
from buchat.ranking.pipeline import (
    rank,
    rank_by_similarity,
    rank_communities_by_members,
    trending_tags,
)
from buchat.schemas import (
    BasedOn,
    CommunityOut,
    CommunityRecommendationsResponse,
    PostOut,
    PostRecommendationsResponse,
    TopicCount,
    TrendingTopicsResponse,
)
from buchat.store import ContentStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

BASED_ON_TAGS = 5


class RecommendationType(str, Enum):
    POSTS = "posts"
    COMMUNITIES = "communities"


@router.get(
    "/recommendations",
    response_model=Union[PostRecommendationsResponse, CommunityRecommendationsResponse],
)
async def recommendations(
    user_id: str = Query(..., alias="userId"),
    type: RecommendationType = Query(RecommendationType.POSTS),
    limit: int = Query(settings.recommendations_page_size, ge=1, le=100),
    store: ContentStore = Depends(get_store),
):
    with tracer.start_as_current_span("recommendations") as span:
        span.set_attribute("user.id", user_id)
        span.set_attribute("recommendations.type", type.value)

        if type == RecommendationType.COMMUNITIES:
            joined = await store.list_joined_communities(user_id)
            communities = await store.list_communities(settings.community_scan_limit)
            ranked = rank_communities_by_members(communities, limit, exclude_names=joined)
            return CommunityRecommendationsResponse(
                recommendations=[CommunityOut.from_ranked(r, with_score=False) for r in ranked]
            )

        return await _recommend_posts(store, user_id, limit)


async def _recommend_posts(
    store: ContentStore, user_id: str, limit: int
) -> PostRecommendationsResponse:
    """
    Content-based recommendations from the user's upvotes. Users without
    any upvote get the top-scoring recent posts instead.
    """
    now = datetime.now(timezone.utc)
    upvoted_ids = await store.list_upvoted_post_ids(user_id, settings.vote_history_limit)

    if not upvoted_ids:
        candidates = await store.list_active_posts(limit)
        result = rank(candidates, RankMode.TOP, limit, now)
        return PostRecommendationsResponse(
            posts=[PostOut.from_ranked(e) for e in result],
            reason="trending_for_new_user",
        )

    upvoted = await store.get_posts(upvoted_ids[: settings.upvoted_posts_resolved])
    user_tags = list(dict.fromkeys(tag for post in upvoted for tag in post.tags))
    user_communities = list(dict.fromkeys(post.community for post in upvoted))

    candidates = await store.list_active_posts(settings.recommendation_candidate_limit)
    result = rank_by_similarity(
        candidates,
        limit,
        now,
        user_tags=user_tags,
        user_communities=user_communities,
        exclude_ids=upvoted_ids,
    )
    logger.debug(
        "Recommended %d posts for %s from %d upvotes", len(result), user_id, len(upvoted_ids)
    )
    return PostRecommendationsResponse(
        posts=[PostOut.from_ranked(e) for e in result],
        reason="personalized",
        based_on=BasedOn(tags=user_tags[:BASED_ON_TAGS], communities=user_communities),
    )


@router.get("/trending/topics", response_model=TrendingTopicsResponse)
async def trending_topics(
    timeframe: Timeframe = Query(Timeframe.DAY),
    limit: int = Query(settings.trending_topics_page_size, ge=1, le=100),
    store: ContentStore = Depends(get_store),
):
    now = datetime.now(timezone.utc)
    posts = await store.list_active_posts(
        settings.trending_candidate_limit,
        since=now - timedelta(hours=timeframe.hours),
    )
    counts = trending_tags(posts, now, timeframe, limit)
    return TrendingTopicsResponse(
        trending=[TopicCount(tag=tag, count=n) for tag, n in counts],
        timeframe=timeframe.value,
    )
