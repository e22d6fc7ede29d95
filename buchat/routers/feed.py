"""
Personalized feed — GET /feed/personalized?userId=<id>

  Stage 1 │ History       up to 500 recent interactions + joined communities
  Stage 2 │ Profile       fold interactions into tag/community interest counts
  Stage 3 │ Candidates    up to 200 recent active posts
  Stage 4 │ Ranking       personalized score + hot, seen posts halved

A user with no interaction history gets an empty interest profile, so
joined communities (weight 1) and recency still drive the order.
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace

from buchat.config import settings
from buchat.ranking.models import RankMode
from buchat.ranking.pipeline import rank
from buchat.ranking.profile import build_profile
from buchat.schemas import PersonalizedFeedResponse, PostOut
from buchat.store import ContentStore, get_store
from buchat.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

PERSONALIZED_ALGORITHM = "collaborative_filtering_with_hot_ranking"
FALLBACK_ALGORITHM = "hot_ranking_fallback"


@router.get("/personalized", response_model=PersonalizedFeedResponse)
async def personalized_feed(
    user_id: str = Query(..., alias="userId", description="ID of the requesting user"),
    limit: int = Query(settings.personalized_page_size, ge=1, le=100),
    store: ContentStore = Depends(get_store),
):
    t0 = time.perf_counter()

    with tracer.start_as_current_span("personalized_feed") as span:
        span.set_attribute("user.id", user_id)

        with tracer.start_as_current_span("stage1_history"):
            interactions = await store.list_interactions(
                user_id, settings.interaction_history_limit
            )
            joined = await store.list_joined_communities(user_id)

        profile = build_profile(interactions)
        seen = {i.item_id for i in interactions if i.item_id}
        span.set_attribute("profile.interactions", len(interactions))
        span.set_attribute("profile.keys", len(profile))

        with tracer.start_as_current_span("stage3_candidates"):
            candidates = await store.list_active_posts(
                settings.personalized_candidate_limit
            )

        result = rank(
            candidates,
            RankMode.PERSONALIZED,
            limit,
            datetime.now(timezone.utc),
            profile=profile,
            joined_communities=joined,
            seen_item_ids=seen,
            user_id=user_id,
        )

        latency = time.perf_counter() - t0
        FEED_LATENCY.labels(route="personalized").observe(latency)
        span.set_attribute("feed.posts_returned", len(result))

        return PersonalizedFeedResponse(
            posts=[PostOut.from_ranked(e) for e in result],
            count=len(result),
            algorithm=FALLBACK_ALGORITHM if result.degraded else PERSONALIZED_ALGORITHM,
            reason=result.fallback_reason,
            warnings=list(result.warnings),
        )
