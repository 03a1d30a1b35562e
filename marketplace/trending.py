"""Trending admission rule.

``should_be_trending`` is pure: it only looks at the listing and at a
``TrendingPopulation`` snapshot the caller read beforehand. The snapshot
may already be stale when it is used; the periodic sweep corrects
whatever that gets wrong.
"""
from typing import NamedTuple, Optional

from .config import TrendingThresholds


class TrendingPopulation(NamedTuple):
    count: int = 0
    min_view_count: Optional[int] = None


def is_disqualified(listing) -> bool:
    return bool(listing.is_deleted or listing.is_disable or listing.is_sold)


def should_be_trending(listing, thresholds: TrendingThresholds, population: TrendingPopulation) -> bool:
    views = listing.view_count or 0
    if views < thresholds.min_views:
        return False
    if is_disqualified(listing):
        return False
    slots = thresholds.max_trending_slots
    if slots is not None and population.count >= slots:
        # a full board only admits a strictly higher view count than its weakest member
        if population.min_view_count is None:
            return False
        return views > population.min_view_count
    return True
