"""
Value objects consumed and produced by the ranking module.

All inputs are read-only snapshots handed over by the store layer; the
ranking code never mutates them. Scores live only on the output pairs
(RankedItem / RankedCommunity) wrapped in a RankedResult.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class ContentStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    NONE = "none"


class RankMode(str, Enum):
    NEW = "new"
    HOT = "hot"
    TOP = "top"
    CONTROVERSIAL = "controversial"
    TRENDING = "trending"
    PERSONALIZED = "personalized"


class Timeframe(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def hours(self) -> int:
        return _TIMEFRAME_HOURS[self]


_TIMEFRAME_HOURS = {
    Timeframe.HOUR: 1,
    Timeframe.DAY: 24,
    Timeframe.WEEK: 168,
    Timeframe.MONTH: 720,
}


@dataclass(frozen=True)
class ContentItem:
    """A post snapshot. `created_at` is kept raw so bad data can be detected."""
    item_id: str
    community: str
    created_at: Any
    score: int = 0
    upvotes: int = 0
    downvotes: int = 0
    comment_count: int = 0
    view_count: int = 0
    share_count: int = 0
    tags: tuple = ()                    # unique, in stored order
    status: str = ContentStatus.ACTIVE.value
    author_id: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    media_key: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ContentStatus.ACTIVE.value


@dataclass(frozen=True)
class InteractionRecord:
    user_id: str
    item_id: Optional[str] = None
    kind: str = "view"                  # 'vote' | 'comment' | 'view'
    community: Optional[str] = None
    tags: tuple = ()
    vote: VoteDirection = VoteDirection.NONE


@dataclass(frozen=True)
class CommunityStats:
    name: str
    member_count: int = 0
    post_count: int = 0
    created_at: Any = None
    display_name: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class InterestProfile:
    """Interest key (tag or community name) → interaction count."""
    weights: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def weight(self, key: str) -> int:
        return self.weights.get(key, 0)

    def as_dict(self) -> dict[str, int]:
        return dict(self.weights)

    def __len__(self) -> int:
        return len(self.weights)


@dataclass(frozen=True)
class RankedItem:
    item: ContentItem
    score: float


@dataclass(frozen=True)
class RankedCommunity:
    community: CommunityStats
    score: float


@dataclass(frozen=True)
class RankedResult:
    """
    Ordered output of a ranking call.

    `fallback_reason` is set when a personalized request degraded to hot
    ranking; `warnings` lists data-quality issues met while scoring.
    """
    entries: tuple = ()
    mode: str = RankMode.NEW.value
    fallback_reason: Optional[str] = None
    warnings: tuple = ()

    @property
    def degraded(self) -> bool:
        return self.fallback_reason is not None

    def items(self) -> list:
        return [e.item for e in self.entries]

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)
