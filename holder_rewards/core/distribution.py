"""
Proportional payout calculation.

Balances are converted into whole shares (floor of balance / unit size) and
the reward pool is split evenly per share, rounding down.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from holder_rewards.trackers.holder_tracker import Holder
from holder_rewards.utils.errors import EmptyResultError

NO_SHARES = "no shares"
POOL_TOO_SMALL = "pool empty or payout-per-share too small"


@dataclass(frozen=True)
class DistributionRow:
    address: str
    share_count: int
    payout_amount: int

    def to_request(self) -> Dict[str, object]:
        return {"address": self.address, "amount": self.payout_amount}


@dataclass(frozen=True)
class DistributionPlan:
    pool_balance: float
    unit_size: float
    total_shares: int
    payout_per_share: int
    rows: Tuple[DistributionRow, ...]

    @property
    def total_payout(self) -> int:
        return sum(row.payout_amount for row in self.rows)

    def to_requests(self) -> List[Dict[str, object]]:
        return [row.to_request() for row in self.rows]


def share_count(balance: float, unit_size: float) -> int:
    """Whole shares held; a balance just under a share boundary earns nothing for that unit."""
    if unit_size <= 0:
        raise ValueError("unit size must be positive")
    if not balance > 0:
        return 0
    return math.floor(balance / unit_size)


def count_shares(holders: Sequence[Holder], unit_size: float) -> List[Tuple[str, int]]:
    """(address, shares) for holders with at least one share, in holder order."""
    counted = [(h.address, share_count(h.balance, unit_size)) for h in holders]
    return [(address, shares) for address, shares in counted if shares > 0]


def plan_distribution(holders: Sequence[Holder], pool_balance: float, unit_size: float) -> DistributionPlan:
    """
    Split `pool_balance` across `holders` by share count.

    Raises:
        EmptyResultError: no holder owns a share, or the pool cannot pay at least
            one unit per share
    """
    shares = count_shares(holders, unit_size)
    total_shares = sum(count for _, count in shares)
    if total_shares <= 0:
        raise EmptyResultError(NO_SHARES, {"holders": len(holders)})

    payout_per_share = math.floor(pool_balance / total_shares) if pool_balance > 0 else 0
    if not pool_balance > 0 or payout_per_share <= 0:
        raise EmptyResultError(POOL_TOO_SMALL, {"pool": pool_balance, "totalShares": total_shares})

    rows = tuple(
        DistributionRow(address=address, share_count=count, payout_amount=payout_per_share * count)
        for address, count in shares
    )
    return DistributionPlan(
        pool_balance=pool_balance,
        unit_size=unit_size,
        total_shares=total_shares,
        payout_per_share=payout_per_share,
        rows=tuple(row for row in rows if row.payout_amount > 0),
    )
