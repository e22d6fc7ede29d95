"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models and ranking value objects to avoid coupling
transport to storage. Wire names are camelCase for the web client.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from buchat.ranking.models import (
    CommunityStats,
    ContentItem,
    RankedCommunity,
    RankedItem,
    VoteDirection,
)
from buchat.ranking.scores import parse_timestamp


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────── Posts ───────────────────────────────────────

class PostOut(CamelModel):
    post_id: str
    community: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    media_key: Optional[str] = None
    tags: list[str] = []
    score: int
    upvotes: int
    downvotes: int
    comment_count: int
    view_count: int
    share_count: int
    status: str
    created_at: Optional[str] = None
    # Ranking signal exposed for debugging; absent on unranked responses
    rank_score: Optional[float] = None

    @classmethod
    def from_item(cls, item: ContentItem, rank_score: Optional[float] = None) -> "PostOut":
        created = parse_timestamp(item.created_at)
        return cls(
            post_id=item.item_id,
            community=item.community,
            user_id=item.author_id,
            title=item.title,
            body=item.body,
            media_key=item.media_key,
            tags=list(item.tags),
            score=item.score or 0,
            upvotes=item.upvotes or 0,
            downvotes=item.downvotes or 0,
            comment_count=item.comment_count or 0,
            view_count=item.view_count or 0,
            share_count=item.share_count or 0,
            status=item.status,
            created_at=created.isoformat() if created else None,
            rank_score=rank_score,
        )

    @classmethod
    def from_ranked(cls, entry: RankedItem) -> "PostOut":
        return cls.from_item(entry.item, round(entry.score, 6))


class PostCreate(CamelModel):
    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=300)
    body: Optional[str] = None
    tags: list[str] = []
    media_key: Optional[str] = None


class VoteRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    # "none" withdraws an earlier vote
    vote_type: VoteDirection


class CommunityPostsResponse(CamelModel):
    posts: list[PostOut]
    last_key: Optional[str] = None
    sort: str
    warnings: list[str] = []


class TrendingPostsResponse(CamelModel):
    posts: list[PostOut]
    timeframe: str


class PersonalizedFeedResponse(CamelModel):
    posts: list[PostOut]
    count: int
    algorithm: str
    reason: Optional[str] = None
    warnings: list[str] = []


class BasedOn(CamelModel):
    tags: list[str]
    communities: list[str]


class PostRecommendationsResponse(CamelModel):
    posts: list[PostOut]
    reason: str
    based_on: Optional[BasedOn] = None


# ──────────────────────────── Communities ─────────────────────────────────

class CommunityOut(CamelModel):
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    member_count: int
    post_count: int
    created_at: Optional[str] = None
    discover_score: Optional[float] = None

    @classmethod
    def from_stats(cls, c: CommunityStats, discover_score: Optional[float] = None) -> "CommunityOut":
        created = parse_timestamp(c.created_at)
        return cls(
            name=c.name,
            display_name=c.display_name,
            description=c.description,
            member_count=c.member_count or 0,
            post_count=c.post_count or 0,
            created_at=created.isoformat() if created else None,
            discover_score=discover_score,
        )

    @classmethod
    def from_ranked(cls, entry: RankedCommunity, with_score: bool = True) -> "CommunityOut":
        return cls.from_stats(entry.community, entry.score if with_score else None)


class CommunityRecommendationsResponse(CamelModel):
    recommendations: list[CommunityOut]
    type: str = "communities"


class DiscoverCommunitiesResponse(CamelModel):
    communities: list[CommunityOut]
    message: str = "discover new communities"


class MembershipRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class MembershipResponse(CamelModel):
    message: str
    community: str
    member: bool


# ──────────────────────────── Trending topics ─────────────────────────────

class TopicCount(CamelModel):
    tag: str
    count: int


class TrendingTopicsResponse(CamelModel):
    trending: list[TopicCount]
    timeframe: str


# ──────────────────────────── Media ───────────────────────────────────────

class PresignRequest(CamelModel):
    filename: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)
    size: int = Field(..., gt=0)
    media_type: Optional[str] = None


class PresignResponse(CamelModel):
    upload_url: str
    s3_key: str
    file_id: str
    media_type: str
    expires_in: int


class DownloadUrlResponse(CamelModel):
    download_url: str
    expires_in: int
