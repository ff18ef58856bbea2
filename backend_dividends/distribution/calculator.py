"""
Distribution Calculator: proportional split of the distribution pool.

All amounts are integer lamports. Weights are re-normalized over the eligible
subset so excluded holders do not shrink the pool. Each share is floored; the
residual (always fewer lamports than there are holders) goes to the largest
holder, ties broken by address, so the shares sum to the pool exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable

from backend_dividends.core.exceptions import NoEligibleHoldersError

SHARE_PERCENT_QUANT = Decimal("0.000001")


@dataclass(frozen=True)
class HolderShare:
    address: str
    token_balance: int
    share_percentage: Decimal
    amount: int
    """Lamports."""


def distribution_pool(claimed_amount: int, distribution_percentage: Decimal) -> int:
    """floor(claimed * pct / 100) lamports."""
    if claimed_amount <= 0:
        return 0
    pool = Decimal(claimed_amount) * Decimal(distribution_percentage) / 100
    return int(pool.to_integral_value(rounding=ROUND_FLOOR))


def compute_distribution(eligible: Iterable[tuple[str, int]], distribution_amount: int) -> list[HolderShare]:
    """
    eligible: (address, token_balance) pairs. Returns one share per holder,
    largest balance first. Raises NoEligibleHoldersError when there is nobody
    (or no weight) to distribute to.
    """
    holders = sorted(((a, int(b)) for a, b in eligible if int(b) > 0), key=lambda x: (-x[1], x[0]))
    if not holders:
        raise NoEligibleHoldersError("No eligible holders to distribute to")
    if distribution_amount < 0:
        raise ValueError("distribution_amount must be >= 0")
    total_weight = sum(b for _, b in holders)
    amounts = [distribution_amount * b // total_weight for _, b in holders]
    residual = distribution_amount - sum(amounts)
    # holders[0] is the largest balance, lowest address on ties
    amounts[0] += residual
    return [
        HolderShare(
            address=address,
            token_balance=balance,
            share_percentage=(Decimal(balance) * 100 / Decimal(total_weight)).quantize(SHARE_PERCENT_QUANT),
            amount=amount,
        )
        for (address, balance), amount in zip(holders, amounts)
    ]
