"""Unit tests for rake and payout arithmetic."""

import pytest

from parimutuel.ledger.calculations import calculate_payout, calculate_rake


def test_rake_is_three_percent_of_full_pool() -> None:
    assert calculate_rake(100) == 3
    assert calculate_rake(10_000) == 300


def test_rake_floors_small_pools() -> None:
    # 33 * 300 / 10000 = 0.99 -> 0
    assert calculate_rake(33) == 0
    assert calculate_rake(34) == 1
    assert calculate_rake(0) == 0


def test_rake_custom_bps() -> None:
    assert calculate_rake(1_000, rake_bps=0) == 0
    assert calculate_rake(1_000, rake_bps=10_000) == 1_000
    assert calculate_rake(1_000, rake_bps=250) == 25


@pytest.mark.parametrize("bps", [-1, 10_001])
def test_rake_rejects_out_of_range_bps(bps: int) -> None:
    with pytest.raises(ValueError):
        calculate_rake(100, rake_bps=bps)


def test_payout_sole_winner_takes_net_pool() -> None:
    assert calculate_payout(10, net_pool=97, winning_pool=10) == 97


def test_payout_is_proportional_and_floored() -> None:
    # 1/3 of 100 -> 33.33 floors to 33
    assert calculate_payout(1, net_pool=100, winning_pool=3) == 33
    assert calculate_payout(2, net_pool=100, winning_pool=3) == 66


def test_payout_can_be_below_stake_with_thin_losing_side() -> None:
    # Two winners with 50 each, one unit on the losing side: pool 101, rake 3.
    net = 101 - calculate_rake(101)
    assert calculate_payout(50, net_pool=net, winning_pool=100) == 49


def test_payout_rejects_empty_winning_pool() -> None:
    with pytest.raises(ValueError):
        calculate_payout(0, net_pool=100, winning_pool=0)


def test_payout_rejects_stake_above_winning_pool() -> None:
    with pytest.raises(ValueError):
        calculate_payout(11, net_pool=100, winning_pool=10)
