"""
Content store — reads posts, communities, memberships and interaction
history from TiDB and hands them to the ranking module as value snapshots.
It also owns the writes that produce those inputs: new posts, votes and
community membership.

Pagination for community listings uses an opaque `lastKey` token: a
urlsafe-base64 JSON pair of (created_at, post_id) for keyset paging over
the (community, created_at) index, newest first.
"""
import base64
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buchat.database import get_db
from buchat.models import Community, Interaction, Membership, Post, utc_now
from buchat.ranking.models import (
    CommunityStats,
    ContentItem,
    ContentStatus,
    InteractionRecord,
    VoteDirection,
)

logger = logging.getLogger(__name__)


def _unique_tags(tags: Optional[list]) -> tuple:
    return tuple(dict.fromkeys(t for t in (tags or []) if t))


def to_content_item(post: Post) -> ContentItem:
    return ContentItem(
        item_id=post.post_id,
        community=post.community,
        created_at=post.created_at,
        score=post.score,
        upvotes=post.upvotes,
        downvotes=post.downvotes,
        comment_count=post.comment_count,
        view_count=post.view_count,
        share_count=post.share_count,
        tags=_unique_tags(post.tags),
        status=post.status,
        author_id=post.user_id,
        title=post.title,
        body=post.body,
        media_key=post.media_key,
    )


def to_community_stats(community: Community) -> CommunityStats:
    return CommunityStats(
        name=community.name,
        member_count=community.member_count,
        post_count=community.post_count,
        created_at=community.created_at,
        display_name=community.display_name,
        description=community.description,
    )


def _parse_vote(value: Optional[str]) -> VoteDirection:
    try:
        return VoteDirection(value) if value else VoteDirection.NONE
    except ValueError:
        return VoteDirection.NONE


_VOTE_COUNTS = {
    VoteDirection.UP: (1, 0),
    VoteDirection.DOWN: (0, 1),
    VoteDirection.NONE: (0, 0),
}


def vote_deltas(previous: VoteDirection, current: VoteDirection) -> tuple[int, int]:
    """(upvotes, downvotes) change when a user's vote moves from `previous` to `current`."""
    prev_up, prev_down = _VOTE_COUNTS[previous]
    up, down = _VOTE_COUNTS[current]
    return up - prev_up, down - prev_down


def to_interaction(row: Interaction) -> InteractionRecord:
    return InteractionRecord(
        user_id=row.user_id,
        item_id=row.post_id,
        kind=row.kind,
        community=row.community,
        tags=_unique_tags(row.tags),
        vote=_parse_vote(row.vote_type),
    )


def encode_page_key(created_at: datetime, post_id: str) -> str:
    raw = json.dumps([created_at.isoformat(), post_id]).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_page_key(token: str) -> tuple[datetime, str]:
    try:
        created_at, post_id = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        return datetime.fromisoformat(created_at), str(post_id)
    except (ValueError, TypeError) as exc:
        raise HTTPException(status_code=400, detail="Invalid lastKey") from exc


class ContentStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ── Posts ─────────────────────────────────────────────────────────────

    async def list_community_posts(
        self,
        community: str,
        limit: int,
        last_key: Optional[str] = None,
    ) -> tuple[list[ContentItem], Optional[str]]:
        """One page of a community's posts, newest first, any status."""
        stmt = select(Post).where(Post.community == community)
        if last_key:
            created_at, post_id = decode_page_key(last_key)
            stmt = stmt.where(
                or_(
                    Post.created_at < created_at,
                    and_(Post.created_at == created_at, Post.post_id < post_id),
                )
            )
        stmt = stmt.order_by(Post.created_at.desc(), Post.post_id.desc()).limit(limit)

        rows = (await self.db.execute(stmt)).scalars().all()
        next_key = None
        if len(rows) == limit:
            next_key = encode_page_key(rows[-1].created_at, rows[-1].post_id)
        return [to_content_item(p) for p in rows], next_key

    async def list_active_posts(
        self,
        limit: int,
        since: Optional[datetime] = None,
    ) -> list[ContentItem]:
        stmt = select(Post).where(Post.status == ContentStatus.ACTIVE.value)
        if since is not None:
            # created_at columns hold naive UTC
            if since.tzinfo is not None:
                since = since.astimezone(timezone.utc).replace(tzinfo=None)
            stmt = stmt.where(Post.created_at > since)
        stmt = stmt.order_by(Post.created_at.desc()).limit(limit)
        rows = (await self.db.execute(stmt)).scalars().all()
        return [to_content_item(p) for p in rows]

    async def get_posts(self, post_ids: list[str]) -> list[ContentItem]:
        if not post_ids:
            return []
        rows = (
            await self.db.execute(select(Post).where(Post.post_id.in_(post_ids)))
        ).scalars().all()
        by_id = {p.post_id: p for p in rows}
        return [to_content_item(by_id[pid]) for pid in post_ids if pid in by_id]

    async def view_post(self, post_id: str) -> Optional[ContentItem]:
        """Fetch one post and bump its view counter."""
        post = await self.db.get(Post, post_id)
        if post is None:
            return None
        await self.db.execute(
            update(Post)
            .where(Post.post_id == post_id)
            .values(view_count=Post.view_count + 1)
        )
        await self.db.refresh(post)
        logger.debug("Post %s viewed (%d views)", post_id, post.view_count)
        return to_content_item(post)

    # ── Users ─────────────────────────────────────────────────────────────

    async def list_interactions(self, user_id: str, limit: int) -> list[InteractionRecord]:
        rows = (
            await self.db.execute(
                select(Interaction)
                .where(Interaction.user_id == user_id)
                .order_by(Interaction.created_at.desc())
                .limit(limit)
            )
        ).scalars().all()
        return [to_interaction(r) for r in rows]

    async def list_upvoted_post_ids(self, user_id: str, limit: int) -> list[str]:
        """Posts the user upvoted, most recent vote first."""
        rows = await self.db.execute(
            select(Interaction.post_id)
            .where(
                Interaction.user_id == user_id,
                Interaction.kind == "vote",
                Interaction.vote_type == VoteDirection.UP.value,
                Interaction.post_id.is_not(None),
            )
            .order_by(Interaction.created_at.desc())
            .limit(limit)
        )
        return list(dict.fromkeys(r[0] for r in rows.all()))

    async def list_joined_communities(self, user_id: str) -> list[str]:
        rows = await self.db.execute(
            select(Membership.community).where(Membership.user_id == user_id)
        )
        return [r[0] for r in rows.all()]

    # ── Communities ───────────────────────────────────────────────────────

    async def list_communities(self, limit: int) -> list[CommunityStats]:
        rows = (
            await self.db.execute(
                select(Community).order_by(Community.created_at.desc()).limit(limit)
            )
        ).scalars().all()
        return [to_community_stats(c) for c in rows]

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_post(
        self,
        community: str,
        user_id: str,
        title: str,
        body: Optional[str] = None,
        tags: Optional[list[str]] = None,
        media_key: Optional[str] = None,
    ) -> Optional[ContentItem]:
        """Insert an active post and bump the community's post count."""
        comm = await self.db.get(Community, community)
        if comm is None:
            return None

        post = Post(
            community=community,
            user_id=user_id,
            title=title,
            body=body or "",
            tags=list(_unique_tags(tags)),
            media_key=media_key,
            status=ContentStatus.ACTIVE.value,
        )
        self.db.add(post)
        comm.post_count = (comm.post_count or 0) + 1
        await self.db.flush()
        await self.db.refresh(post)
        logger.info("Post %s created in %s by %s", post.post_id, community, user_id)
        return to_content_item(post)

    async def vote(
        self,
        post_id: str,
        user_id: str,
        direction: VoteDirection,
    ) -> Optional[ContentItem]:
        """
        Record the user's current vote on a post.

        One vote row per (user, post): a repeat vote replaces the previous
        direction and the counters move by the difference. The row carries
        the post's community and tags so it feeds the interest profile.
        """
        post = await self.db.get(Post, post_id)
        if post is None:
            return None

        existing = (
            await self.db.execute(
                select(Interaction).where(
                    Interaction.user_id == user_id,
                    Interaction.post_id == post_id,
                    Interaction.kind == "vote",
                )
            )
        ).scalars().first()
        previous = _parse_vote(existing.vote_type) if existing else VoteDirection.NONE

        up, down = vote_deltas(previous, direction)
        post.upvotes = (post.upvotes or 0) + up
        post.downvotes = (post.downvotes or 0) + down
        post.score = (post.score or 0) + up - down

        if existing is None:
            self.db.add(
                Interaction(
                    user_id=user_id,
                    post_id=post_id,
                    kind="vote",
                    community=post.community,
                    tags=list(_unique_tags(post.tags)),
                    vote_type=direction.value,
                )
            )
        else:
            existing.vote_type = direction.value
            existing.created_at = utc_now()

        await self.db.flush()
        logger.debug(
            "Vote %s -> %s on %s by %s", previous.value, direction.value, post_id, user_id
        )
        return to_content_item(post)

    async def join_community(self, name: str, user_id: str) -> Optional[bool]:
        """True if the user joined, False if already a member, None if no such community."""
        comm = await self.db.get(Community, name)
        if comm is None:
            return None
        if await self.db.get(Membership, (user_id, name)) is not None:
            return False

        self.db.add(Membership(user_id=user_id, community=name))
        comm.member_count = (comm.member_count or 0) + 1
        await self.db.flush()
        logger.info("User %s joined %s", user_id, name)
        return True

    async def leave_community(self, name: str, user_id: str) -> Optional[bool]:
        """True if the user left, False if not a member, None if no such community."""
        comm = await self.db.get(Community, name)
        if comm is None:
            return None
        membership = await self.db.get(Membership, (user_id, name))
        if membership is None:
            return False

        await self.db.delete(membership)
        comm.member_count = max(0, (comm.member_count or 0) - 1)
        await self.db.flush()
        logger.info("User %s left %s", user_id, name)
        return True


async def get_store(db: AsyncSession = Depends(get_db)) -> ContentStore:
    """FastAPI dependency; tests override it with an in-memory store."""
    return ContentStore(db)
