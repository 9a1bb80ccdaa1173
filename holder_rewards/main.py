import asyncio
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from aiohttp import web

from holder_rewards.api.server import create_app
from holder_rewards.config.settings import Settings, load_settings
from holder_rewards.core.actions import ExternalActionClient, OpsReporter
from holder_rewards.core.scheduler import CycleScheduler, Phase
from holder_rewards.core.state import Metrics, OpsState
from holder_rewards.core.worker import RewardWorker
from holder_rewards.trackers.holder_tracker import HolderSnapshotCache
from holder_rewards.trackers.market_tracker import MarketDataCache
from holder_rewards.utils.api_client import UpstreamClient
from holder_rewards.utils.errors import ConfigurationError
from holder_rewards.utils.logger import get_logger, setup_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Every long-lived object of the process, built once at startup."""
    settings: Settings
    upstream: UpstreamClient
    ops: OpsState
    metrics: Metrics
    holders: HolderSnapshotCache
    market: MarketDataCache
    actions: ExternalActionClient
    reporter: OpsReporter
    worker: RewardWorker

    async def close(self) -> None:
        await self.upstream.close()


def build_services(settings: Settings, upstream: Optional[UpstreamClient] = None) -> Services:
    """
    Wire the caches, clients and worker together.

    Raises:
        ConfigurationError: no RPC endpoint is configured
    """
    rpc_url = settings.require_rpc()
    upstream = upstream or UpstreamClient(rpc_url, timeout=settings.request_timeout)
    ops = OpsState()
    metrics = Metrics()
    holders = HolderSnapshotCache(
        upstream, excluded_address=settings.excluded_wallet, ttl=settings.holders_ttl, metrics=metrics
    )
    market = MarketDataCache(upstream, api_key=settings.birdeye_api_key, ttl=settings.market_ttl)
    actions = ExternalActionClient(upstream, settings.external_api_base, settings.external_api_key)
    reporter = OpsReporter(upstream, ops, url=settings.admin_ops_url, secret=settings.admin_secret)
    worker = RewardWorker(settings, holders, actions, reporter)
    return Services(
        settings=settings, upstream=upstream, ops=ops, metrics=metrics, holders=holders,
        market=market, actions=actions, reporter=reporter, worker=worker,
    )


def build_scheduler(services: Services) -> CycleScheduler:
    settings = services.settings
    return CycleScheduler(
        window_seconds=settings.window_seconds,
        phase_a=Phase("claim", settings.claim_offset_seconds, services.worker.claim_and_swap),
        phase_b=Phase("airdrop", settings.distribute_offset_seconds, services.worker.snapshot_and_distribute),
        poll_interval=settings.poll_interval,
    )


def warn_missing_config(settings: Settings) -> None:
    missing = settings.missing_identifiers()
    if missing:
        logger.warning(f"Missing {', '.join(missing)}: phases will no-op")
    if settings.missing_action_config():
        logger.warning("External API config missing: claim/swap/airdrop will no-op")
    if not (settings.admin_ops_url and settings.admin_secret):
        logger.warning("Admin ops wiring missing: ops readout will only reflect this process")


class ServiceOrchestrator:
    """Runs the cycle scheduler and, optionally, the HTTP surface until a shutdown signal."""

    def __init__(self, services: Services, run_scheduler: bool = True, serve: bool = False,
                 host: Optional[str] = None, port: Optional[int] = None):
        self.services = services
        self.scheduler = build_scheduler(services) if run_scheduler else None
        self.serve = serve
        self.host = host or services.settings.host
        self.port = port or services.settings.port
        self.running = True
        self._runner: Optional[web.AppRunner] = None

    def handle_shutdown(self, signum, frame):
        logger.info("Shutdown signal received. Stopping services...")
        self.running = False
        if self.scheduler:
            self.scheduler.stop()

    async def start_server(self) -> None:
        s = self.services
        app = create_app(s.settings, s.holders, s.market, s.ops, s.metrics)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"HTTP surface listening on http://{self.host}:{self.port}")

    async def _idle(self) -> None:
        while self.running:
            await asyncio.sleep(1)

    async def run(self) -> None:
        signal.signal(signal.SIGINT, self.handle_shutdown)
        signal.signal(signal.SIGTERM, self.handle_shutdown)

        warn_missing_config(self.services.settings)
        try:
            if self.serve:
                await self.start_server()
            if self.scheduler:
                await self.scheduler.run()
            else:
                await self._idle()
        finally:
            if self._runner is not None:
                await self._runner.cleanup()
            await self.services.close()
            logger.info("All services stopped")


async def main(serve: bool = False, run_scheduler: bool = True,
               host: Optional[str] = None, port: Optional[int] = None) -> None:
    settings = load_settings()
    setup_logger(level=settings.log_level)
    if serve and not run_scheduler:
        # The read path alone is useless without its identifiers
        settings.require_snapshot_config()
    services = build_services(settings)
    orchestrator = ServiceOrchestrator(services, run_scheduler=run_scheduler, serve=serve, host=host, port=port)
    await orchestrator.run()


if __name__ == "__main__":
    try:
        asyncio.run(main(serve=True))
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        sys.exit(0)
