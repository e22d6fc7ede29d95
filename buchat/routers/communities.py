"""
Community endpoints:
  GET  /communities/discover      — communities the user has not joined yet
  GET  /communities/{name}/posts  — one page of posts, sorted new/hot/top/controversial
  POST /communities/{name}/posts  — create a post
  POST /communities/{name}/join   — join (memberCount +1)
  POST /communities/{name}/leave  — leave (memberCount -1)
"""
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace

from buchat.config import settings
from buchat.ranking.models import RankMode
from buchat.ranking.pipeline import rank, rank_communities
from buchat.schemas import (
    CommunityOut,
    CommunityPostsResponse,
    DiscoverCommunitiesResponse,
    MembershipRequest,
    MembershipResponse,
    PostCreate,
    PostOut,
)
from buchat.store import ContentStore, get_store
from buchat.telemetry import CONTENT_WRITES_TOTAL, FEED_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


class CommunitySort(str, Enum):
    NEW = RankMode.NEW.value
    HOT = RankMode.HOT.value
    TOP = RankMode.TOP.value
    CONTROVERSIAL = RankMode.CONTROVERSIAL.value


@router.get("/discover", response_model=DiscoverCommunitiesResponse)
async def discover_communities(
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(settings.discover_page_size, ge=1, le=50),
    store: ContentStore = Depends(get_store),
):
    """
    Rank communities by activity (2·posts + members), boosting ones younger
    than a month. Communities the user already joined are left out.
    """
    with tracer.start_as_current_span("discover_communities"):
        joined = await store.list_joined_communities(user_id) if user_id else []
        communities = await store.list_communities(settings.community_scan_limit)

        ranked = rank_communities(
            communities, limit, datetime.now(timezone.utc), exclude_names=joined
        )
        return DiscoverCommunitiesResponse(
            communities=[CommunityOut.from_ranked(r) for r in ranked]
        )


@router.get("/{name}/posts", response_model=CommunityPostsResponse)
async def list_community_posts(
    name: str,
    sort: CommunitySort = Query(CommunitySort.NEW),
    limit: int = Query(settings.community_posts_page_size, ge=1, le=100),
    last_key: Optional[str] = Query(None, alias="lastKey"),
    store: ContentStore = Depends(get_store),
):
    """
    Sorting applies within the fetched page only: the store pages newest
    first and the ranking pipeline reorders that page.
    """
    t0 = time.perf_counter()
    with tracer.start_as_current_span("list_community_posts") as span:
        span.set_attribute("community.name", name)
        span.set_attribute("community.sort", sort.value)

        items, next_key = await store.list_community_posts(name, limit, last_key)
        result = rank(items, RankMode(sort.value), limit, datetime.now(timezone.utc))

        FEED_LATENCY.labels(route="community_posts").observe(time.perf_counter() - t0)
        return CommunityPostsResponse(
            posts=[PostOut.from_ranked(e) for e in result],
            last_key=next_key,
            sort=sort.value,
            warnings=list(result.warnings),
        )


@router.post(
    "/{name}/posts", response_model=PostOut, status_code=status.HTTP_201_CREATED
)
async def create_post(
    name: str,
    body: PostCreate,
    store: ContentStore = Depends(get_store),
):
    with tracer.start_as_current_span("create_post") as span:
        span.set_attribute("community.name", name)
        item = await store.create_post(
            name,
            body.user_id,
            body.title,
            body=body.body,
            tags=body.tags,
            media_key=body.media_key,
        )
        if item is None:
            raise HTTPException(status_code=404, detail="Community not found")

        span.set_attribute("post.id", item.item_id)
        CONTENT_WRITES_TOTAL.labels(action="post_created").inc()
        return PostOut.from_item(item)


@router.post("/{name}/join", response_model=MembershipResponse)
async def join_community(
    name: str,
    body: MembershipRequest,
    store: ContentStore = Depends(get_store),
):
    """Idempotent: joining twice leaves memberCount unchanged."""
    joined = await store.join_community(name, body.user_id)
    if joined is None:
        raise HTTPException(status_code=404, detail="Community not found")
    if joined:
        CONTENT_WRITES_TOTAL.labels(action="join").inc()
    return MembershipResponse(
        message="joined successfully" if joined else "already a member",
        community=name,
        member=True,
    )


@router.post("/{name}/leave", response_model=MembershipResponse)
async def leave_community(
    name: str,
    body: MembershipRequest,
    store: ContentStore = Depends(get_store),
):
    left = await store.leave_community(name, body.user_id)
    if left is None:
        raise HTTPException(status_code=404, detail="Community not found")
    if left:
        CONTENT_WRITES_TOTAL.labels(action="leave").inc()
    return MembershipResponse(
        message="left successfully" if left else "not a member",
        community=name,
        member=False,
    )
