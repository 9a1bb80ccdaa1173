"""
Centralized API client utilities for the chain RPC, market data and action endpoints.
"""

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, List, Optional

import aiohttp
import backoff

from holder_rewards.config.settings import (
    MARKET_ATTEMPTS,
    REQUEST_TIMEOUT,
    RPC_ATTEMPTS,
    RPC_BACKOFF_MS,
    RPC_JITTER_MS,
)
from holder_rewards.utils.errors import FatalUpstreamError, TransientUpstreamError, UpstreamError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)

TRANSIENT_PATTERN = re.compile(
    r"rate ?limit|too many|timeout|timed out|temporar(?:il)?y unavailable|gateway|network"
    r"|connection reset|ECONNRESET|ETIMEDOUT",
    re.IGNORECASE,
)


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or status >= 500)


def looks_transient(message: str) -> bool:
    return bool(TRANSIENT_PATTERN.search(message or ""))


def classify_failure(message: str, status: Optional[int] = None) -> UpstreamError:
    """Map a failed response to the retryable or the terminal error class."""
    if is_retryable_status(status) or looks_transient(message):
        return TransientUpstreamError(message, status)
    return FatalUpstreamError(message, status)


def linear_backoff(base_ms: float = RPC_BACKOFF_MS) -> Generator[Optional[float], None, None]:
    """backoff wait generator yielding base_ms * attempt, in seconds."""
    # Advance past backoff's initial send(None)
    yield None
    attempt = 1
    while True:
        yield base_ms * attempt / 1000.0
        attempt += 1


def add_jitter(jitter_ms: float) -> Callable[[float], float]:
    def jitter(value: float) -> float:
        return value + random.uniform(0, jitter_ms) / 1000.0
    return jitter


async def with_retries(func, *args, attempts: int, backoff_ms: float, jitter_ms: float, **kwargs):
    """
    Await func(*args, **kwargs), retrying TransientUpstreamError up to `attempts`
    total tries. Any other exception propagates on the first occurrence; after the
    last try the final error is raised.
    """
    retrying = backoff.on_exception(
        linear_backoff,
        TransientUpstreamError,
        max_tries=attempts,
        jitter=add_jitter(jitter_ms),
        logger=logger,
        backoff_log_level=logging.WARNING,
        giveup_log_level=logging.ERROR,
        base_ms=backoff_ms,
    )(func)
    return await retrying(*args, **kwargs)


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {status}"


@dataclass
class FetchResult:
    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class UpstreamClient:
    """
    Async JSON client for the chain RPC node and HTTP providers.

    Owns an aiohttp session unless one is injected; every request is classified
    as transient or fatal and retried with linear backoff plus jitter.
    """

    def __init__(
        self,
        rpc_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = REQUEST_TIMEOUT,
        backoff_ms: float = RPC_BACKOFF_MS,
        jitter_ms: float = RPC_JITTER_MS,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.backoff_ms = backoff_ms
        self.jitter_ms = jitter_ms
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def request_once(
        self,
        method: str,
        url: str,
        body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResult:
        """Issue a single HTTP request; raise a classified UpstreamError on failure."""
        session = await self._get_session()
        try:
            async with session.request(method, url, json=body, headers=headers) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientUpstreamError(f"network error: {type(e).__name__}: {e}") from e

        try:
            parsed = json.loads(text) if text else {}
        except ValueError:
            if 200 <= status < 300:
                raise FatalUpstreamError(f"Malformed JSON from {url}", status)
            parsed = {}

        if status >= 400:
            raise classify_failure(_error_message(parsed, status), status)
        return FetchResult(status=status, body=parsed)

    async def _rpc_once(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": method, "method": method, "params": params}
        result = await self.request_once(
            "POST", self.rpc_url, body=payload, headers={"Content-Type": "application/json"}
        )
        body = result.body if isinstance(result.body, dict) else {}
        if body.get("error"):
            raise classify_failure(_error_message(body, result.status), result.status)
        return body.get("result")

    async def call(self, method: str, params: List[Any], attempts: int = RPC_ATTEMPTS) -> Any:
        """JSON-RPC call returning the `result` member."""
        logger.debug(f"RPC {method} (budget {attempts} attempts)")
        return await with_retries(
            self._rpc_once, method, params,
            attempts=attempts, backoff_ms=self.backoff_ms, jitter_ms=self.jitter_ms,
        )

    async def fetch_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        attempts: int = MARKET_ATTEMPTS,
    ) -> FetchResult:
        """GET a JSON document with the transient-retry policy."""
        return await with_retries(
            self.request_once, "GET", url, headers=headers,
            attempts=attempts, backoff_ms=self.backoff_ms, jitter_ms=self.jitter_ms,
        )

    async def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]] = None,
        attempts: int = RPC_ATTEMPTS,
        backoff_ms: Optional[float] = None,
        jitter_ms: Optional[float] = None,
    ) -> FetchResult:
        """POST a JSON body with the transient-retry policy."""
        return await with_retries(
            self.request_once, "POST", url, body=body, headers=headers,
            attempts=attempts,
            backoff_ms=self.backoff_ms if backoff_ms is None else backoff_ms,
            jitter_ms=self.jitter_ms if jitter_ms is None else jitter_ms,
        )
