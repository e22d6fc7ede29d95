import os

# Keep the test process from exporting spans to a collector
os.environ.setdefault("OTEL_ENABLED", "false")

import dataclasses
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from buchat.ranking.models import CommunityStats, ContentItem, InteractionRecord, VoteDirection
from buchat.ranking.scores import parse_timestamp
from buchat.store import decode_page_key, encode_page_key, vote_deltas


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str, hours_ago: float = 1, now: datetime = NOW, **kwargs) -> ContentItem:
    """Minimal active post created `hours_ago` before `now`."""
    kwargs.setdefault("community", "python")
    kwargs.setdefault("created_at", now - timedelta(hours=hours_ago))
    if "tags" in kwargs:
        kwargs["tags"] = tuple(kwargs["tags"])
    return ContentItem(item_id=item_id, **kwargs)


def make_community(name: str, days_old: float = 90, now: datetime = NOW, **kwargs) -> CommunityStats:
    return CommunityStats(name=name, created_at=now - timedelta(days=days_old), **kwargs)


def upvote(user_id: str, item: ContentItem) -> InteractionRecord:
    return InteractionRecord(
        user_id=user_id,
        item_id=item.item_id,
        kind="vote",
        community=item.community,
        tags=item.tags,
        vote=VoteDirection.UP,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


class FakeStore:
    """In-memory stand-in for ContentStore with the same async surface."""

    def __init__(self, posts=(), communities=(), interactions=(), memberships=None):
        self.posts = list(posts)
        self.communities = list(communities)
        self.interactions = list(interactions)
        self.memberships = memberships or {}

    @staticmethod
    def _created(item):
        return parse_timestamp(item.created_at) or datetime.min.replace(tzinfo=timezone.utc)

    async def list_community_posts(self, community, limit, last_key=None):
        items = [p for p in self.posts if p.community == community]
        items.sort(key=lambda p: (self._created(p), p.item_id), reverse=True)
        if last_key:
            cursor = decode_page_key(last_key)
            items = [p for p in items if (self._created(p), p.item_id) < cursor]
        page = items[:limit]
        next_key = None
        if len(page) == limit:
            next_key = encode_page_key(self._created(page[-1]), page[-1].item_id)
        return page, next_key

    async def list_active_posts(self, limit, since=None):
        items = [p for p in self.posts if p.is_active]
        if since is not None:
            items = [p for p in items if self._created(p) > since]
        items.sort(key=self._created, reverse=True)
        return items[:limit]

    async def get_posts(self, post_ids):
        by_id = {p.item_id: p for p in self.posts}
        return [by_id[pid] for pid in post_ids if pid in by_id]

    async def view_post(self, post_id):
        for i, p in enumerate(self.posts):
            if p.item_id == post_id:
                self.posts[i] = dataclasses.replace(p, view_count=p.view_count + 1)
                return self.posts[i]
        return None

    async def list_interactions(self, user_id, limit):
        return [r for r in self.interactions if r.user_id == user_id][:limit]

    async def list_upvoted_post_ids(self, user_id, limit):
        ids = [
            r.item_id for r in self.interactions
            if r.user_id == user_id and r.kind == "vote" and r.vote == VoteDirection.UP
        ]
        return list(dict.fromkeys(ids))[:limit]

    async def list_joined_communities(self, user_id):
        return list(self.memberships.get(user_id, []))

    async def list_communities(self, limit):
        return self.communities[:limit]

    # ── Writes ────────────────────────────────────────────────────────────

    def _community_index(self, name):
        for i, c in enumerate(self.communities):
            if c.name == name:
                return i
        return None

    async def create_post(self, community, user_id, title, body=None, tags=None, media_key=None):
        idx = self._community_index(community)
        if idx is None:
            return None
        item = ContentItem(
            item_id=str(uuid.uuid4()),
            community=community,
            created_at=datetime.now(timezone.utc),
            tags=tuple(dict.fromkeys(t for t in (tags or []) if t)),
            author_id=user_id,
            title=title,
            body=body or "",
            media_key=media_key,
        )
        self.posts.append(item)
        comm = self.communities[idx]
        self.communities[idx] = dataclasses.replace(comm, post_count=comm.post_count + 1)
        return item

    async def vote(self, post_id, user_id, direction):
        for i, p in enumerate(self.posts):
            if p.item_id == post_id:
                break
        else:
            return None

        previous = VoteDirection.NONE
        for j, r in enumerate(self.interactions):
            if r.user_id == user_id and r.item_id == post_id and r.kind == "vote":
                previous = r.vote
                self.interactions[j] = dataclasses.replace(r, vote=direction)
                break
        else:
            self.interactions.append(
                InteractionRecord(
                    user_id=user_id, item_id=post_id, kind="vote",
                    community=p.community, tags=p.tags, vote=direction,
                )
            )

        up, down = vote_deltas(previous, direction)
        self.posts[i] = dataclasses.replace(
            p, upvotes=p.upvotes + up, downvotes=p.downvotes + down, score=p.score + up - down
        )
        return self.posts[i]

    async def join_community(self, name, user_id):
        idx = self._community_index(name)
        if idx is None:
            return None
        joined = self.memberships.setdefault(user_id, [])
        if name in joined:
            return False
        joined.append(name)
        comm = self.communities[idx]
        self.communities[idx] = dataclasses.replace(comm, member_count=comm.member_count + 1)
        return True

    async def leave_community(self, name, user_id):
        idx = self._community_index(name)
        if idx is None:
            return None
        joined = self.memberships.get(user_id, [])
        if name not in joined:
            return False
        joined.remove(name)
        comm = self.communities[idx]
        self.communities[idx] = dataclasses.replace(comm, member_count=max(0, comm.member_count - 1))
        return True


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient

    from buchat.main import app
    from buchat.store import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
