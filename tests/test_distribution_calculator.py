"""
Tests for the distribution calculator: proportional shares, residual policy, empty pool.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_dividends.core.exceptions import NoEligibleHoldersError
from backend_dividends.distribution import compute_distribution, distribution_pool


def test_distribution_pool_floors_to_lamports():
    assert distribution_pool(10_000_000_000, Decimal("30")) == 3_000_000_000
    assert distribution_pool(1_000_000_001, Decimal("33.33")) == 333_300_000
    assert distribution_pool(7, Decimal("50")) == 3
    assert distribution_pool(0, Decimal("30")) == 0


def test_single_holder_gets_everything():
    shares = compute_distribution([("A", 700)], 3_000_000_000)
    assert len(shares) == 1
    assert shares[0].amount == 3_000_000_000
    assert shares[0].share_percentage == Decimal("100.000000")


def test_shares_are_renormalized_over_eligible_set():
    """Percentages are relative to the eligible pool, not total supply."""
    shares = compute_distribution([("A", 600), ("B", 200)], 1_000)
    by_addr = {s.address: s for s in shares}
    assert by_addr["A"].amount == 750
    assert by_addr["B"].amount == 250
    assert by_addr["A"].share_percentage == Decimal("75.000000")


def test_residual_goes_to_largest_holder_and_sum_is_exact():
    shares = compute_distribution([("A", 1), ("B", 1), ("C", 2)], 10)
    # floors: A=2, B=2, C=5 -> residual 1 to C (largest)
    by_addr = {s.address: s.amount for s in shares}
    assert by_addr == {"A": 2, "B": 2, "C": 6}
    assert sum(by_addr.values()) == 10


def test_residual_tie_broken_by_address():
    shares = compute_distribution([("Z", 1), ("M", 1), ("B", 1)], 100)
    by_addr = {s.address: s.amount for s in shares}
    assert by_addr == {"B": 34, "M": 33, "Z": 33}
    assert shares[0].address == "B"


def test_conservation_many_holders():
    holders = [(f"H{i:04d}", 1_000 + i * 37) for i in range(1500)]
    pool = 987_654_321
    shares = compute_distribution(holders, pool)
    assert sum(s.amount for s in shares) == pool
    assert all(s.amount >= 0 for s in shares)


def test_empty_eligible_set_raises():
    with pytest.raises(NoEligibleHoldersError):
        compute_distribution([], 1_000)


def test_zero_balances_count_as_no_eligible_holders():
    with pytest.raises(NoEligibleHoldersError):
        compute_distribution([("A", 0)], 1_000)


def test_zero_pool_yields_zero_shares():
    shares = compute_distribution([("A", 10), ("B", 5)], 0)
    assert [s.amount for s in shares] == [0, 0]
