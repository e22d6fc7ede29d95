"""
Post endpoints:
  GET  /posts/trending  — trending posts inside a timeframe window
  GET  /posts/{id}      — fetch a single post (counts as a view)
  POST /posts/{id}/vote — up, down or withdraw a vote
"""
import logging
import time
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace

from buchat.config import settings
from buchat.ranking.models import RankMode, Timeframe
from buchat.ranking.pipeline import rank
from buchat.schemas import PostOut, TrendingPostsResponse, VoteRequest
from buchat.store import ContentStore, get_store
from buchat.telemetry import CONTENT_WRITES_TOTAL, FEED_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("/trending", response_model=TrendingPostsResponse)
async def trending_posts(
    timeframe: Timeframe = Query(Timeframe.DAY),
    limit: int = Query(settings.trending_page_size, ge=1, le=100),
    store: ContentStore = Depends(get_store),
):
    t0 = time.perf_counter()
    with tracer.start_as_current_span("trending_posts") as span:
        span.set_attribute("trending.timeframe", timeframe.value)
        now = datetime.now(timezone.utc)

        candidates = await store.list_active_posts(
            settings.trending_candidate_limit,
            since=now - timedelta(hours=timeframe.hours),
        )
        result = rank(candidates, RankMode.TRENDING, limit, now, timeframe=timeframe)

        FEED_LATENCY.labels(route="trending").observe(time.perf_counter() - t0)
        return TrendingPostsResponse(
            posts=[PostOut.from_ranked(e) for e in result],
            timeframe=timeframe.value,
        )


@router.get("/{post_id}", response_model=PostOut)
async def get_post(post_id: str, store: ContentStore = Depends(get_store)):
    item = await store.view_post(post_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return PostOut.from_item(item)


@router.post("/{post_id}/vote", response_model=PostOut)
async def vote_post(
    post_id: str,
    body: VoteRequest,
    store: ContentStore = Depends(get_store),
):
    """Set the user's vote to up, down or none; returns the updated counters."""
    with tracer.start_as_current_span("vote_post") as span:
        span.set_attribute("post.id", post_id)
        span.set_attribute("vote.type", body.vote_type.value)

        item = await store.vote(post_id, body.user_id, body.vote_type)
        if item is None:
            raise HTTPException(status_code=404, detail="Post not found")

        CONTENT_WRITES_TOTAL.labels(action="vote").inc()
        return PostOut.from_item(item)
