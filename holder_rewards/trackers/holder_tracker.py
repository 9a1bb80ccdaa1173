import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from holder_rewards.config.api_keys import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from holder_rewards.config.settings import CACHE_MAX_MINTS, HOLDERS_TTL_SECONDS, TOKEN_ACCOUNT_SIZE
from holder_rewards.core.state import Metrics
from holder_rewards.trackers.single_flight import SingleFlight
from holder_rewards.utils.api_client import UpstreamClient
from holder_rewards.utils.errors import HolderSnapshotError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Holder:
    address: str
    balance: float

    def to_dict(self) -> dict:
        return {"address": self.address, "balance": self.balance}


@dataclass(frozen=True)
class HoldersCacheEntry:
    mint: str
    fetched_at: float
    holders: Tuple[Holder, ...]


def coerce_accounts(result: Any) -> List[dict]:
    """RPC account lists arrive either bare or wrapped in a `value` member."""
    if isinstance(result, list):
        return result
    if isinstance(result, dict) and isinstance(result.get("value"), list):
        return result["value"]
    return []


def ui_amount(token_amount: Any) -> float:
    """Read a parsed tokenAmount as a float, preferring uiAmount over uiAmountString."""
    if not isinstance(token_amount, dict):
        return 0.0
    value = token_amount.get("uiAmount")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(token_amount.get("uiAmountString") or 0)
    except (TypeError, ValueError):
        return 0.0


def parsed_info(account: Any) -> dict:
    try:
        info = account["account"]["data"]["parsed"]["info"]
    except (KeyError, TypeError):
        return {}
    return info if isinstance(info, dict) else {}


def parse_owner_balances(accounts: Iterable[dict]) -> Dict[str, float]:
    """Fold jsonParsed token accounts into an owner -> balance map."""
    out: Dict[str, float] = {}
    for account in accounts:
        info = parsed_info(account)
        owner = info.get("owner")
        amount = ui_amount(info.get("tokenAmount"))
        if not owner or not amount > 0:
            continue
        out[owner] = out.get(owner, 0.0) + amount
    return out


def merge_balances(*partials: Mapping[str, float]) -> Dict[str, float]:
    merged: Dict[str, float] = {}
    for partial in partials:
        for owner, balance in partial.items():
            merged[owner] = merged.get(owner, 0.0) + float(balance)
    return merged


def build_holder_list(balances: Mapping[str, float], excluded: str = "") -> Tuple[Holder, ...]:
    """Drop the excluded address and non-positive balances, largest holder first."""
    holders = [
        Holder(address=address, balance=float(balance))
        for address, balance in balances.items()
        if address != excluded and balance > 0
    ]
    holders.sort(key=lambda h: (-h.balance, h.address))
    return tuple(holders)


class HolderSnapshotCache:
    """
    TTL-bounded, single-flight view of every current holder of a mint.

    A refresh scans the classic token program (165-byte accounts) and the
    Token-2022 program, sums balances per owner and swaps the cached entry in
    one assignment. A failed refresh leaves the previous entry in place.
    """

    def __init__(
        self,
        client: UpstreamClient,
        excluded_address: str = "",
        ttl: float = HOLDERS_TTL_SECONDS,
        metrics: Optional[Metrics] = None,
        clock: Callable[[], float] = time.time,
        max_mints: int = CACHE_MAX_MINTS,
    ):
        self.client = client
        self.excluded_address = excluded_address
        self.ttl = ttl
        self.metrics = metrics or Metrics()
        self.clock = clock
        self.max_mints = max_mints
        self._entries: "OrderedDict[str, HoldersCacheEntry]" = OrderedDict()
        self._flight = SingleFlight()

    def peek(self, mint: str) -> Optional[HoldersCacheEntry]:
        return self._entries.get(mint)

    def _is_fresh(self, entry: Optional[HoldersCacheEntry]) -> bool:
        return bool(entry and entry.holders and self.clock() - entry.fetched_at < self.ttl)

    async def get_holders(self, mint: str, force: bool = False) -> Sequence[Holder]:
        """
        Return holders of `mint` sorted by balance, descending.

        Args:
            mint: Token mint address
            force: Skip the freshness check (an in-flight refresh is still shared)

        Raises:
            HolderSnapshotError: both account scans failed
        """
        entry = self._entries.get(mint)
        if not force and self._is_fresh(entry):
            self.metrics.record_hit()
            return entry.holders

        if self._flight.in_flight(mint):
            self.metrics.record_hit()
        return await self._flight.do(mint, lambda: self._refresh(mint))

    async def _refresh(self, mint: str) -> Tuple[Holder, ...]:
        started = time.perf_counter()
        logger.info(f"Refreshing holder snapshot for {mint}")

        results = await asyncio.gather(
            self.scan_program(mint, TOKEN_PROGRAM_ID, account_size=TOKEN_ACCOUNT_SIZE),
            self.scan_program(mint, TOKEN_2022_PROGRAM_ID),
            return_exceptions=True,
        )

        partials = []
        errors = []
        for program_id, result in zip((TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID), results):
            if isinstance(result, Exception):
                logger.warning(f"Holder scan failed for program {program_id}: {result}")
                errors.append(result)
                continue
            partials.append(result)

        if not partials:
            raise HolderSnapshotError(f"All holder scans failed for {mint}: {errors[-1]}") from errors[-1]

        holders = build_holder_list(merge_balances(*partials), self.excluded_address)
        self._store(HoldersCacheEntry(mint=mint, fetched_at=self.clock(), holders=holders))

        duration_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_refresh(duration_ms)
        logger.info(f"Holder snapshot for {mint}: {len(holders)} holders in {duration_ms:.0f}ms")
        return holders

    def _store(self, entry: HoldersCacheEntry) -> None:
        self._entries[entry.mint] = entry
        self._entries.move_to_end(entry.mint)
        while len(self._entries) > self.max_mints:
            self._entries.popitem(last=False)

    async def scan_program(self, mint: str, program_id: str, account_size: Optional[int] = None) -> Dict[str, float]:
        """Owner -> balance for every token account of `mint` under one token program."""
        filters: List[dict] = [{"memcmp": {"offset": 0, "bytes": mint}}]
        if account_size:
            filters.insert(0, {"dataSize": account_size})

        result = await self.client.call(
            "getProgramAccounts",
            [program_id, {"encoding": "jsonParsed", "commitment": "confirmed", "filters": filters}],
        )
        return parse_owner_balances(coerce_accounts(result))

    async def get_pool_balance(self, mint: str, owner: str) -> float:
        """Token balance of `mint` held by the wallet `owner` across its token accounts."""
        result = await self.client.call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        )
        total = 0.0
        for account in coerce_accounts(result):
            total += ui_amount(parsed_info(account).get("tokenAmount"))
        return total
