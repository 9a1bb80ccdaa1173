"""
General settings and configuration for the holder rewards worker.
"""

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from holder_rewards.config.api_keys import helius_rpc_url
from holder_rewards.utils.errors import ConfigurationError

# Cache freshness (seconds)
HOLDERS_TTL_SECONDS = 5.0
MARKET_TTL_SECONDS = 3.0
CACHE_MAX_MINTS = 16

# Snapshot response caching hints for CDNs/browsers
SNAPSHOT_S_MAXAGE = 5
SNAPSHOT_STALE_REVALIDATE = 25

# Cycle timing
CYCLE_MINUTES = 5
CLAIM_OFFSET_SECONDS = 60     # claim+swap fires at T-1m
DISTRIBUTE_OFFSET_SECONDS = 10  # snapshot+distribute fires at T-10s
POLL_INTERVAL_SECONDS = 1.0

# Retry budgets
RPC_ATTEMPTS = 6
SUPPLY_ATTEMPTS = 4
MARKET_ATTEMPTS = 3
ACTION_ATTEMPTS = 3

# Backoff: base_ms * attempt + random(0, jitter_ms)
RPC_BACKOFF_MS = 300
RPC_JITTER_MS = 250
ACTION_BACKOFF_MS = 500
ACTION_JITTER_MS = 200

# Distribution
TOKENS_PER_SHARE = 100_000
SWAP_PERCENT = 0.90
TOKEN_ACCOUNT_SIZE = 165

# Time intervals
REQUEST_TIMEOUT = 30  # 30 seconds timeout for API requests

# Server
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


def _env(env: Mapping[str, str], *names: str, default: str = "") -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return default


@dataclass
class Settings:
    rpc_url: str = ""
    birdeye_api_key: str = ""
    tracked_mint: str = ""
    reward_wallet: str = ""
    excluded_wallet: str = ""
    tokens_per_share: float = TOKENS_PER_SHARE
    cycle_minutes: float = CYCLE_MINUTES
    claim_offset_seconds: float = CLAIM_OFFSET_SECONDS
    distribute_offset_seconds: float = DISTRIBUTE_OFFSET_SECONDS
    poll_interval: float = POLL_INTERVAL_SECONDS
    holders_ttl: float = HOLDERS_TTL_SECONDS
    market_ttl: float = MARKET_TTL_SECONDS
    swap_percent: float = SWAP_PERCENT
    external_api_base: str = ""
    external_api_key: str = ""
    path_claim_swap: str = ""
    path_airdrop: str = ""
    admin_ops_url: str = ""
    admin_secret: str = ""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    request_timeout: float = REQUEST_TIMEOUT

    @property
    def window_seconds(self) -> float:
        return self.cycle_minutes * 60

    def require_rpc(self) -> str:
        """Return the RPC URL, or fail startup when none is configured."""
        if not self.rpc_url:
            raise ConfigurationError("Missing HELIUS_RPC / HELIUS_API_KEY")
        return self.rpc_url

    def missing_identifiers(self) -> List[str]:
        missing = []
        if not self.tracked_mint:
            missing.append("TRACKED_MINT")
        if not self.reward_wallet:
            missing.append("REWARD_WALLET")
        return missing

    def missing_action_config(self) -> List[str]:
        missing = []
        if not self.external_api_base:
            missing.append("EXTERNAL_API_BASE")
        if not self.external_api_key:
            missing.append("EXTERNAL_API_KEY")
        if not self.path_claim_swap:
            missing.append("PATH_CLAIM_SWAP")
        if not self.path_airdrop:
            missing.append("PATH_AIRDROP_SPL")
        return missing

    def require_snapshot_config(self) -> None:
        """The read path needs every identifier up front."""
        missing = self.missing_identifiers()
        if not self.excluded_wallet:
            missing.append("EXCLUDED_WALLET")
        if missing:
            raise ConfigurationError(f"Missing required env(s): {', '.join(missing)}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the process environment (after loading .env) or an explicit mapping."""
    if env is None:
        load_dotenv()
        env = os.environ

    rpc_url = _env(env, "HELIUS_RPC") or helius_rpc_url(_env(env, "HELIUS_API_KEY"))

    try:
        return Settings(
            rpc_url=rpc_url,
            birdeye_api_key=_env(env, "BIRDEYE_API_KEY"),
            tracked_mint=_env(env, "TRACKED_MINT"),
            reward_wallet=_env(env, "REWARD_WALLET"),
            excluded_wallet=_env(env, "EXCLUDED_WALLET", "PUMPFUN_AMM_WALLET"),
            tokens_per_share=float(_env(env, "TOKENS_PER_SHARE", "TOKENS_PER_APE", default=str(TOKENS_PER_SHARE))),
            cycle_minutes=float(_env(env, "CYCLE_MINUTES", default=str(CYCLE_MINUTES))),
            claim_offset_seconds=float(_env(env, "CLAIM_OFFSET_SECONDS", default=str(CLAIM_OFFSET_SECONDS))),
            distribute_offset_seconds=float(
                _env(env, "DISTRIBUTE_OFFSET_SECONDS", default=str(DISTRIBUTE_OFFSET_SECONDS))
            ),
            external_api_base=_env(env, "EXTERNAL_API_BASE"),
            external_api_key=_env(env, "EXTERNAL_API_KEY"),
            path_claim_swap=_env(env, "PATH_CLAIM_SWAP"),
            path_airdrop=_env(env, "PATH_AIRDROP_SPL"),
            admin_ops_url=_env(env, "ADMIN_OPS_URL"),
            admin_secret=_env(env, "ADMIN_SECRET"),
            host=_env(env, "HOST", default=DEFAULT_HOST),
            port=int(_env(env, "PORT", default=str(DEFAULT_PORT))),
            log_level=_env(env, "LOG_LEVEL", default="INFO").upper(),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}") from e
