"""
Score functions — the single home of every ranking formula.

Each function is pure: one item (plus `now`, and where needed the user's
interest data) in, one float out. Bad input never raises here; ages that
cannot be computed collapse to 0 hours and negative counts to 0. The
pipeline is responsible for reporting those cases (see data_quality_issues).

  Hot            score / (age_h + 2) ^ 1.5
  Top            score
  Controversial  min(up, down) * (up + down)
  Trending       (score + 2*comments + 0.1*views) / (age_h + 2) ^ 1.5
  Personalized   community(≤40·w/10) + tags(≤30) + engagement(≤20)
                 + recency(≤10), halved for already-seen items
  Similarity     3·shared_tags + 5·community + ln(score + 1) + 2·fresh
  Discovery      2·posts + members + 10·(age < 1 month)
"""
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from buchat.ranking.models import CommunityStats, ContentItem, InterestProfile

HOT_GRAVITY = 1.5
HOT_AGE_OFFSET_HOURS = 2

PERSONAL_COMMUNITY_WEIGHT = 40
PERSONAL_TAG_CAP = 30
PERSONAL_ENGAGEMENT_CAP = 20
PERSONAL_RECENCY_MAX = 10
SEEN_PENALTY = 0.5

SIMILARITY_TAG_WEIGHT = 3
SIMILARITY_COMMUNITY_BONUS = 5
SIMILARITY_FRESH_BONUS = 2
SIMILARITY_FRESH_HOURS = 24

DISCOVERY_NEW_BONUS = 10
HOURS_PER_MONTH = 30 * 24


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    Unix epoch seconds. Returns None when the value cannot be interpreted.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def raw_age_hours(created_at: Any, now: datetime) -> Optional[float]:
    """Signed age in hours, or None if the timestamp is unusable."""
    created = parse_timestamp(created_at)
    if created is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - created).total_seconds() / 3600


def age_hours(created_at: Any, now: datetime) -> float:
    """Age in hours, clamped to 0 for future-dated or malformed timestamps."""
    age = raw_age_hours(created_at, now)
    if age is None or age < 0:
        return 0.0
    return age


def count(value: Any) -> int:
    """Non-negative integer view of a stored counter."""
    try:
        n = int(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0
    return n if n > 0 else 0


def net_score(value: Any) -> float:
    try:
        n = float(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def data_quality_issues(item: ContentItem, now: datetime) -> list[str]:
    """List what is wrong with an item's stored data; empty when clean."""
    issues = []
    age = raw_age_hours(item.created_at, now)
    if age is None:
        issues.append("malformed_timestamp")
    elif age < 0:
        issues.append("future_timestamp")

    try:
        if not math.isfinite(float(item.score or 0)):
            issues.append("malformed_score")
    except (TypeError, ValueError, OverflowError):
        issues.append("malformed_score")

    for name in ("upvotes", "downvotes", "comment_count", "view_count", "share_count"):
        value = getattr(item, name)
        try:
            if int(value or 0) < 0:
                issues.append(f"negative_{name}")
        except (TypeError, ValueError, OverflowError):
            issues.append(f"malformed_{name}")
    return issues


def _decay(age: float) -> float:
    return math.pow(age + HOT_AGE_OFFSET_HOURS, HOT_GRAVITY)


# ── Post scores ────────────────────────────────────────────────────────────

def hot(item: ContentItem, now: datetime) -> float:
    return net_score(item.score) / _decay(age_hours(item.created_at, now))


def top(item: ContentItem, now: Optional[datetime] = None) -> float:
    return net_score(item.score)


def controversial(item: ContentItem, now: Optional[datetime] = None) -> float:
    up, down = count(item.upvotes), count(item.downvotes)
    return float(min(up, down) * (up + down))


def trending(item: ContentItem, now: datetime) -> float:
    activity = (
        net_score(item.score)
        + count(item.comment_count) * 2
        + count(item.view_count) * 0.1
    )
    return activity / _decay(age_hours(item.created_at, now))


def personalized(
    item: ContentItem,
    now: datetime,
    profile: InterestProfile,
    joined_communities: Iterable[str],
    seen_item_ids: Iterable[str],
) -> float:
    score = 0.0

    # Community weight defaults to 1 for joined communities with no history
    if item.community in joined_communities:
        weight = profile.weight(item.community) or 1
        score += PERSONAL_COMMUNITY_WEIGHT * weight / 10

    tag_score = sum(profile.weight(tag) for tag in item.tags)
    score += min(PERSONAL_TAG_CAP, tag_score)

    engagement = (
        count(item.upvotes) * 2
        + count(item.comment_count) * 3
        - count(item.downvotes)
    )
    score += min(PERSONAL_ENGAGEMENT_CAP, engagement / 10)

    score += max(0.0, PERSONAL_RECENCY_MAX - age_hours(item.created_at, now) / 24)

    if item.item_id in seen_item_ids:
        score *= SEEN_PENALTY
    return score


def personalized_hot(
    item: ContentItem,
    now: datetime,
    profile: InterestProfile,
    joined_communities: Iterable[str],
    seen_item_ids: Iterable[str],
) -> float:
    # NOTE: the two terms live on very different scales (0–100 vs ~0–2), so
    # hot mostly breaks ties between similar personalized scores.
    return personalized(item, now, profile, joined_communities, seen_item_ids) + hot(item, now)


def similarity(
    item: ContentItem,
    now: datetime,
    user_tags: Iterable[str],
    user_communities: Iterable[str],
) -> float:
    shared = len(set(item.tags) & set(user_tags))
    score = float(shared * SIMILARITY_TAG_WEIGHT)
    if item.community in user_communities:
        score += SIMILARITY_COMMUNITY_BONUS
    if age_hours(item.created_at, now) < SIMILARITY_FRESH_HOURS:
        score += SIMILARITY_FRESH_BONUS
    # ln is undefined below score = -1; net-negative posts get no boost
    score += math.log(max(net_score(item.score), 0.0) + 1)
    return score


# ── Community scores ───────────────────────────────────────────────────────

def community_discovery(community: CommunityStats, now: datetime) -> float:
    score = count(community.post_count) * 2 + count(community.member_count)
    age_months = age_hours(community.created_at, now) / HOURS_PER_MONTH
    if age_months < 1:
        score += DISCOVERY_NEW_BONUS
    return float(score)
