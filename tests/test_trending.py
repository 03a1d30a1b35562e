from types import SimpleNamespace

import pytest

from marketplace.config import TrendingThresholds
from marketplace.trending import TrendingPopulation, should_be_trending


def listing(views, **flags):
    base = {"view_count": views, "is_deleted": False, "is_disable": False, "is_sold": False}
    base.update(flags)
    return SimpleNamespace(**base)


UNBOUNDED = TrendingThresholds(min_views=10)
EMPTY = TrendingPopulation()


def test_below_threshold_is_not_trending():
    assert should_be_trending(listing(9), UNBOUNDED, EMPTY) is False
    assert should_be_trending(listing(10), UNBOUNDED, EMPTY) is True


@pytest.mark.parametrize("flag", ["is_deleted", "is_disable", "is_sold"])
def test_any_disqualifying_flag_wins_over_views(flag):
    assert should_be_trending(listing(10_000, **{flag: True}), UNBOUNDED, EMPTY) is False


def test_unbounded_slots_ignore_population():
    crowded = TrendingPopulation(count=10 ** 9, min_view_count=10 ** 6)
    assert should_be_trending(listing(11), UNBOUNDED, crowded) is True


def test_full_board_admits_only_strictly_higher_views():
    one_slot = TrendingThresholds(min_views=10, max_trending_slots=1)
    board = TrendingPopulation(count=1, min_view_count=50)
    assert should_be_trending(listing(40), one_slot, board) is False
    assert should_be_trending(listing(50), one_slot, board) is False
    assert should_be_trending(listing(60), one_slot, board) is True


def test_open_slot_admits_any_qualifying_listing():
    two_slots = TrendingThresholds(min_views=10, max_trending_slots=2)
    board = TrendingPopulation(count=1, min_view_count=500)
    assert should_be_trending(listing(12), two_slots, board) is True


def test_missing_view_count_counts_as_zero():
    assert should_be_trending(listing(None), UNBOUNDED, EMPTY) is False
