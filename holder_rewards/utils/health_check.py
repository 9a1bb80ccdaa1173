"""
Connectivity check for the chain RPC node and the market data provider.
"""

from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from holder_rewards.config.api_keys import birdeye_headers, price_url
from holder_rewards.config.settings import Settings
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)

HEALTH_TIMEOUT = 10


def create_session() -> requests.Session:
    """Create a requests session with retry logic."""
    session = requests.Session()
    retry_strategy = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "OPTIONS", "POST"]
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def check_rpc(session: requests.Session, rpc_url: str) -> bool:
    try:
        response = session.post(
            rpc_url,
            json={"jsonrpc": "2.0", "id": "getHealth", "method": "getHealth"},
            timeout=HEALTH_TIMEOUT,
        )
        body = response.json() if response.status_code == 200 else None
        ok = isinstance(body, dict) and body.get("result") == "ok"
    except (requests.RequestException, ValueError) as e:
        logger.error(f"RPC health check failed: {e}")
        return False
    if not ok:
        logger.error(f"RPC unhealthy: HTTP {response.status_code}")
    return ok


def check_market(session: requests.Session, api_key: str, mint: str) -> Optional[bool]:
    """None when there is nothing to check (no key or no mint)."""
    if not api_key or not mint:
        return None
    try:
        response = session.get(price_url(mint), headers=birdeye_headers(api_key), timeout=HEALTH_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"Market data health check failed: {e}")
        return False
    return response.status_code == 200


def run_health_check(settings: Settings, session: Optional[requests.Session] = None) -> Dict[str, Optional[bool]]:
    session = session or create_session()
    try:
        return {
            "rpc": check_rpc(session, settings.require_rpc()),
            "market": check_market(session, settings.birdeye_api_key, settings.tracked_mint),
        }
    finally:
        session.close()
