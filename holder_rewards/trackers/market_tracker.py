import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from holder_rewards.config.api_keys import birdeye_headers, market_data_url, price_url
from holder_rewards.config.settings import CACHE_MAX_MINTS, MARKET_TTL_SECONDS, SUPPLY_ATTEMPTS
from holder_rewards.trackers.single_flight import SingleFlight
from holder_rewards.utils.api_client import UpstreamClient
from holder_rewards.utils.errors import MarketDataError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def pick_number(*values: Any) -> Optional[float]:
    """First value that parses as a finite, positive number."""
    for value in values:
        number = to_number(value)
        if number is not None and number > 0:
            return number
    return None


@dataclass(frozen=True)
class MarketQuote:
    price: Optional[float] = None
    cap: Optional[float] = None

    def merge(self, other: "MarketQuote") -> "MarketQuote":
        """Fill unset fields from `other`; values already present win."""
        return MarketQuote(
            price=self.price if self.price is not None else other.price,
            cap=self.cap if self.cap is not None else other.cap,
        )

    def missing(self, field_name: str) -> bool:
        return getattr(self, field_name) is None


@dataclass(frozen=True)
class MarketCacheEntry:
    mint: str
    fetched_at: float
    price: Optional[float]
    cap: Optional[float]

    @property
    def quote(self) -> MarketQuote:
        return MarketQuote(price=self.price, cap=self.cap)


Resolver = Callable[[str, MarketQuote, Optional[Sequence[Any]]], Awaitable[MarketQuote]]


@dataclass(frozen=True)
class ResolverStep:
    """One source in the fallback chain.

    The step runs only while one of `fills` is unset and every field in
    `requires` is already known.
    """
    name: str
    fills: Tuple[str, ...]
    resolve: Resolver
    requires: Tuple[str, ...] = ()

    def applies(self, quote: MarketQuote) -> bool:
        return any(quote.missing(f) for f in self.fills) and not any(quote.missing(f) for f in self.requires)


def _holder_balance(holder: Any) -> float:
    balance = getattr(holder, "balance", None)
    if balance is None and isinstance(holder, dict):
        balance = holder.get("balance")
    return to_number(balance) or 0.0


class MarketDataCache:
    """
    TTL-bounded, single-flight price and market-cap lookup.

    Fields are last-known-good: a refresh that cannot resolve a field keeps
    the previous value for that mint instead of clearing it.
    """

    def __init__(
        self,
        client: UpstreamClient,
        api_key: str = "",
        ttl: float = MARKET_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        steps: Optional[List[ResolverStep]] = None,
        max_mints: int = CACHE_MAX_MINTS,
    ):
        self.client = client
        self.api_key = api_key
        self.ttl = ttl
        self.clock = clock
        self.max_mints = max_mints
        self.steps = steps if steps is not None else self.default_steps()
        self._entries: "OrderedDict[str, MarketCacheEntry]" = OrderedDict()
        self._flight = SingleFlight()

    def default_steps(self) -> List[ResolverStep]:
        return [
            ResolverStep("market-data", ("price", "cap"), self._from_market_data),
            ResolverStep("price", ("price",), self._from_price_endpoint),
            ResolverStep("supply", ("cap",), self._cap_from_supply, requires=("price",)),
            ResolverStep("holders", ("cap",), self._cap_from_holders, requires=("price",)),
        ]

    def peek(self, mint: str) -> Optional[MarketCacheEntry]:
        return self._entries.get(mint)

    async def get_price_and_cap(self, mint: str, fallback_holders: Optional[Sequence[Any]] = None) -> MarketQuote:
        entry = self._entries.get(mint)
        if entry is not None and self.clock() - entry.fetched_at < self.ttl:
            return entry.quote
        return await self._flight.do(mint, lambda: self._refresh(mint, fallback_holders))

    async def _refresh(self, mint: str, fallback_holders: Optional[Sequence[Any]]) -> MarketQuote:
        resolved = await self.resolve(mint, fallback_holders)

        previous = self._entries.get(mint)
        merged = resolved.merge(previous.quote) if previous else resolved
        entry = MarketCacheEntry(mint=mint, fetched_at=self.clock(), price=merged.price, cap=merged.cap)
        self._entries[mint] = entry
        self._entries.move_to_end(mint)
        while len(self._entries) > self.max_mints:
            self._entries.popitem(last=False)
        return entry.quote

    async def resolve(self, mint: str, fallback_holders: Optional[Sequence[Any]] = None) -> MarketQuote:
        """
        Walk the resolver chain once, without touching the cache.

        Raises:
            MarketDataError: every step that ran raised
        """
        quote = MarketQuote()
        attempted = 0
        failures = []
        for step in self.steps:
            if not step.applies(quote):
                continue
            attempted += 1
            try:
                partial = await step.resolve(mint, quote, fallback_holders)
            except Exception as e:
                logger.warning(f"Market step '{step.name}' failed for {mint}: {e}")
                failures.append(e)
                continue
            quote = quote.merge(partial)

        if attempted and len(failures) == attempted:
            raise MarketDataError(f"All market data sources failed for {mint}: {failures[-1]}") from failures[-1]
        return quote

    async def _from_market_data(self, mint: str, quote: MarketQuote, holders: Optional[Sequence[Any]]) -> MarketQuote:
        result = await self.client.fetch_json(market_data_url(mint), headers=birdeye_headers(self.api_key))
        data = (result.body or {}).get("data") or {}
        return MarketQuote(
            price=pick_number(data.get("price"), data.get("last_price"), data.get("priceUsd"), data.get("usd_price")),
            cap=pick_number(
                data.get("marketcap"), data.get("market_cap"),
                data.get("circulating_marketcap"), data.get("marketCap"),
            ),
        )

    async def _from_price_endpoint(self, mint: str, quote: MarketQuote, holders: Optional[Sequence[Any]]) -> MarketQuote:
        result = await self.client.fetch_json(price_url(mint), headers=birdeye_headers(self.api_key))
        data = (result.body or {}).get("data") or {}
        return MarketQuote(price=pick_number(data.get("value"), data.get("price")))

    async def _cap_from_supply(self, mint: str, quote: MarketQuote, holders: Optional[Sequence[Any]]) -> MarketQuote:
        supply = await self.get_token_supply(mint)
        if not supply or supply <= 0:
            return MarketQuote()
        return MarketQuote(cap=pick_number(quote.price * supply))

    async def _cap_from_holders(self, mint: str, quote: MarketQuote, holders: Optional[Sequence[Any]]) -> MarketQuote:
        if not holders:
            return MarketQuote()
        circulating = sum(_holder_balance(h) for h in holders)
        return MarketQuote(cap=pick_number(quote.price * circulating))

    async def get_token_supply(self, mint: str) -> Optional[float]:
        """Total supply of `mint` in UI units, or None if the node does not report it."""
        result = await self.client.call("getTokenSupply", [mint, {"commitment": "confirmed"}], attempts=SUPPLY_ATTEMPTS)
        value = (result or {}).get("value") if isinstance(result, dict) else None
        if not value:
            return None

        ui_amount = to_number(value.get("uiAmount"))
        if ui_amount is not None:
            return ui_amount
        ui_amount = to_number(value.get("uiAmountString"))
        if ui_amount is not None:
            return ui_amount

        amount = to_number(value.get("amount"))
        decimals = to_number(value.get("decimals"))
        if amount is not None and decimals is not None:
            return amount / (10 ** decimals)
        return None
