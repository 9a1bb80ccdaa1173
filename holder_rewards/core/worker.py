"""
Phase actions run by the cycle scheduler.

Phase A (claim) asks the action service to claim accrued creator rewards and
swap most of them into the tracked token. Phase B (airdrop) snapshots holders,
reads the reward wallet's pool and airdrops it pro rata by share count.
"""

from typing import Any, Dict, Optional

from holder_rewards.config.settings import Settings
from holder_rewards.core.actions import ExternalActionClient, OpsReporter
from holder_rewards.core.cycle import Cycle
from holder_rewards.core.distribution import DistributionPlan, plan_distribution
from holder_rewards.core.state import TxRef, utc_now_iso
from holder_rewards.trackers.holder_tracker import HolderSnapshotCache
from holder_rewards.trackers.market_tracker import to_number
from holder_rewards.utils.errors import ConfigurationError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)

CLAIM = "claim"
AIRDROP = "airdrop"


def _field(body: Any, name: str) -> Any:
    """Read `name` from `body["data"]`, falling back to the top level."""
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict) and data.get(name) is not None:
        return data[name]
    return body.get(name)


def parse_claim_result(body: Any) -> Dict[str, Any]:
    return {
        "claimed": to_number(_field(body, "claimed")) or 0.0,
        "swapped": to_number(_field(body, "swapped")) or 0.0,
        "claimTx": _field(body, "claimTx") or None,
        "swapTx": _field(body, "swapTx") or None,
    }


class RewardWorker:
    def __init__(
        self,
        settings: Settings,
        holders: HolderSnapshotCache,
        actions: ExternalActionClient,
        reporter: OpsReporter,
    ):
        self.settings = settings
        self.holders = holders
        self.actions = actions
        self.reporter = reporter

    def _require(self, path_setting: str) -> None:
        missing = self.settings.missing_identifiers() + self.settings.missing_action_config()
        # Only the path for this phase matters
        missing = [name for name in missing if not name.startswith("PATH_") or name == path_setting]
        if missing:
            raise ConfigurationError(f"Missing required env(s): {', '.join(missing)}")

    async def claim_and_swap(self, cycle: Cycle) -> Dict[str, Any]:
        """Phase A: claim creator rewards and swap them into the tracked token."""
        self._require("PATH_CLAIM_SWAP")
        body = {
            "mint": self.settings.tracked_mint,
            "fromWallet": self.settings.reward_wallet,
            "swapPercent": self.settings.swap_percent,
            "mode": "market",
        }
        result = await self.actions.invoke(CLAIM, self.settings.path_claim_swap, body, cycle.id)
        outcome = parse_claim_result(result.body)

        now = utc_now_iso()
        await self.reporter.record(
            TxRef(at=now, amount=outcome["claimed"], tx=outcome["claimTx"]),
            TxRef(at=now, amount=outcome["swapped"], tx=outcome["swapTx"]),
        )
        logger.info(
            f"Cycle {cycle.id}: claimed {outcome['claimed']}, swapped {outcome['swapped']} "
            f"(claimTx={outcome['claimTx']}, swapTx={outcome['swapTx']})"
        )
        return outcome

    async def plan(self, mint: Optional[str] = None, force: bool = False) -> DistributionPlan:
        """Build the distribution plan for `mint` without calling the action service."""
        mint = mint or self.settings.tracked_mint
        if not mint or not self.settings.reward_wallet:
            raise ConfigurationError("Missing required env(s): TRACKED_MINT, REWARD_WALLET")

        holders = await self.holders.get_holders(mint, force=force)
        pool = await self.holders.get_pool_balance(mint, self.settings.reward_wallet)
        logger.info(f"Pool for {mint}: {pool} across {len(holders)} holders")
        return plan_distribution(holders, pool, self.settings.tokens_per_share)

    async def snapshot_and_distribute(self, cycle: Cycle) -> Dict[str, Any]:
        """Phase B: fresh snapshot, then airdrop the pool by share count."""
        self._require("PATH_AIRDROP_SPL")
        plan = await self.plan(force=True)

        body = {
            "mint": self.settings.tracked_mint,
            "fromWallet": self.settings.reward_wallet,
            "distributions": plan.to_requests(),
            "priorityFee": "auto",
            "skipMissingAta": True,
        }
        await self.actions.invoke(AIRDROP, self.settings.path_airdrop, body, cycle.id)
        logger.info(
            f"Cycle {cycle.id}: airdropped {plan.total_payout} to {len(plan.rows)} holders "
            f"({plan.total_shares} shares at {plan.payout_per_share} per share)"
        )
        return {
            "recipients": len(plan.rows),
            "totalShares": plan.total_shares,
            "payoutPerShare": plan.payout_per_share,
            "totalPayout": plan.total_payout,
        }
