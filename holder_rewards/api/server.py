"""
Read-path HTTP surface: holder snapshot, ops side channel and liveness.
"""

import asyncio
import hmac
import json
import re

from aiohttp import web

from holder_rewards.config.settings import SNAPSHOT_S_MAXAGE, SNAPSHOT_STALE_REVALIDATE, Settings
from holder_rewards.core.state import Metrics, OpsState, utc_now_iso
from holder_rewards.trackers.holder_tracker import HolderSnapshotCache
from holder_rewards.trackers.market_tracker import MarketDataCache, MarketQuote
from holder_rewards.utils.errors import MarketDataError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)

MINT_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

SNAPSHOT_CACHE_CONTROL = (
    f"public, max-age=0, s-maxage={SNAPSHOT_S_MAXAGE}, stale-while-revalidate={SNAPSHOT_STALE_REVALIDATE}"
)


def resolve_mint(requested, default: str) -> str:
    requested = (requested or "").strip()
    return requested if MINT_PATTERN.match(requested) else default


class SnapshotAPI:
    """Request handlers bound to the process-wide caches and state."""

    def __init__(
        self,
        settings: Settings,
        holders: HolderSnapshotCache,
        market: MarketDataCache,
        ops: OpsState,
        metrics: Metrics,
    ):
        self.settings = settings
        self.holders = holders
        self.market = market
        self.ops = ops
        self.metrics = metrics

    async def _quote(self, mint: str, holders) -> MarketQuote:
        try:
            return await self.market.get_price_and_cap(mint, holders)
        except MarketDataError as e:
            logger.warning(f"Market data unavailable for {mint}: {e}")
            entry = self.market.peek(mint)
            return entry.quote if entry else MarketQuote()

    async def snapshot(self, request: web.Request) -> web.Response:
        mint = resolve_mint(request.query.get("mint"), self.settings.tracked_mint)
        try:
            self.settings.require_rpc()
            self.settings.require_snapshot_config()
            holders = await self.holders.get_holders(mint)
            pool, quote = await asyncio.gather(
                self.holders.get_pool_balance(mint, self.settings.reward_wallet),
                self._quote(mint, holders),
            )
        except Exception as e:
            logger.error(f"Snapshot failed for {mint or '<unset>'}: {e}")
            return web.json_response(
                {"error": str(e) or "snapshot failed"},
                status=500,
                headers={"Cache-Control": "no-store"},
            )

        payload = {
            "updatedAt": utc_now_iso(),
            "mint": mint,
            "holders": [h.to_dict() for h in holders],
            "rewardPool": pool,
            "tokensPerShare": self.settings.tokens_per_share,
            "counts": {"total": len(holders)},
            "priceUsd": quote.price,
            "marketCapUsd": quote.cap,
            "ops": self.ops.to_dict(),
            "metrics": self.metrics.to_dict(),
        }
        return web.json_response(payload, headers={"Cache-Control": SNAPSHOT_CACHE_CONTROL})

    async def record_ops(self, request: web.Request) -> web.Response:
        secret = self.settings.admin_secret
        supplied = request.headers.get("x-admin-secret") or request.query.get("k") or ""
        if not secret or not hmac.compare_digest(supplied.encode(), secret.encode()):
            return web.Response(status=403, text="forbidden")

        try:
            body = await request.json()
        except (ValueError, UnicodeDecodeError) as e:
            return web.json_response({"ok": False, "error": f"invalid JSON: {e}"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"ok": False, "error": "expected a JSON object"}, status=400)

        if self.ops.update(body):
            logger.info(f"Ops updated: {json.dumps(self.ops.to_dict())}")
        return web.json_response({"ok": True, "ops": self.ops.to_dict()})

    async def healthz(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})


def create_app(
    settings: Settings,
    holders: HolderSnapshotCache,
    market: MarketDataCache,
    ops: OpsState,
    metrics: Metrics,
) -> web.Application:
    api = SnapshotAPI(settings, holders, market, ops, metrics)
    app = web.Application()
    app.router.add_get("/api/snapshot", api.snapshot)
    app.router.add_post("/api/admin/ops", api.record_ops)
    app.router.add_get("/healthz", api.healthz)
    return app
