"""
Calls to the external claim/swap/airdrop service and the ops side channel.
"""

from dataclasses import asdict
from typing import Any, Dict, Optional

from holder_rewards.config.settings import ACTION_ATTEMPTS, ACTION_BACKOFF_MS, ACTION_JITTER_MS
from holder_rewards.core.state import OpsState, TxRef
from holder_rewards.utils.api_client import FetchResult, UpstreamClient
from holder_rewards.utils.errors import ConfigurationError, UpstreamError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)


def idempotency_key(kind: str, cycle_id: str) -> str:
    return f"{kind}:{cycle_id}"


class ExternalActionClient:
    """
    Authenticated POSTs to the action service.

    Every request carries an Idempotency-Key derived from the action kind and
    the cycle id, so a retried or duplicated request for the same cycle is
    recognised by the service.
    """

    def __init__(self, upstream: UpstreamClient, base_url: str, api_key: str,
                 attempts: int = ACTION_ATTEMPTS,
                 backoff_ms: float = ACTION_BACKOFF_MS,
                 jitter_ms: float = ACTION_JITTER_MS):
        self.upstream = upstream
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.attempts = attempts
        self.backoff_ms = backoff_ms
        self.jitter_ms = jitter_ms

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def headers(self, kind: str, cycle_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Idempotency-Key": idempotency_key(kind, cycle_id),
        }

    async def invoke(self, kind: str, path: str, body: Dict[str, Any], cycle_id: str) -> FetchResult:
        """
        POST `body` to `path` on the action service.

        Raises:
            ConfigurationError: base URL, key or path not configured
            TransientUpstreamError: still failing after the attempt budget
            FatalUpstreamError: rejected by the service
        """
        if not self.configured or not path:
            raise ConfigurationError(f"External API config missing for '{kind}'")

        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.info(f"Invoking {kind} for cycle {cycle_id}")
        result = await self.upstream.post_json(
            url, body,
            headers=self.headers(kind, cycle_id),
            attempts=self.attempts,
            backoff_ms=self.backoff_ms,
            jitter_ms=self.jitter_ms,
        )
        logger.info(f"{kind} for cycle {cycle_id} accepted (HTTP {result.status})")
        return result


class OpsReporter:
    """Records the latest claim/swap locally and forwards it to the ops endpoint."""

    def __init__(self, upstream: UpstreamClient, ops: OpsState, url: str = "", secret: str = ""):
        self.upstream = upstream
        self.ops = ops
        self.url = url
        self.secret = secret

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.secret)

    async def record(self, last_claim: Optional[TxRef], last_swap: Optional[TxRef]) -> bool:
        """Returns True when the remote side channel accepted the report."""
        payload = {
            "lastClaim": asdict(last_claim) if last_claim else None,
            "lastSwap": asdict(last_swap) if last_swap else None,
        }
        self.ops.update(payload)

        if not self.enabled:
            return False
        try:
            await self.upstream.request_once(
                "POST", self.url, body=payload,
                headers={"Content-Type": "application/json", "x-admin-secret": self.secret},
            )
        except UpstreamError as e:
            logger.warning(f"Failed to report ops to side channel: {e}")
            return False
        return True
