"""
Interest profile builder.

Folds a user's interaction history into tag/community counts. The fold is
order-independent: any permutation of the same records yields the same
profile. Duplicate records are counted as many times as they appear; the
caller owns deduplication.
"""
from collections import Counter
from functools import reduce
from types import MappingProxyType
from typing import Iterable

from buchat.ranking.models import InteractionRecord, InterestProfile


def interest_keys(record: InteractionRecord) -> Counter:
    """Keys referenced by one record, each counted at most once per role."""
    keys: Counter = Counter()
    if record.community:
        keys[record.community] += 1
    for tag in set(record.tags or ()):
        if tag:
            keys[tag] += 1
    return keys


def _accumulate(acc: Counter, record: InteractionRecord) -> Counter:
    return acc + interest_keys(record)


def build_profile(interactions: Iterable[InteractionRecord]) -> InterestProfile:
    counts = reduce(_accumulate, interactions, Counter())
    return InterestProfile(weights=MappingProxyType(dict(counts)))
