"""
Shared fixtures: an in-memory stand-in for aiohttp.ClientSession and helpers
for building RPC / market responses.
"""

import json
import logging

import pytest

from holder_rewards.config.settings import Settings
from holder_rewards.utils.api_client import UpstreamClient

# Configure test logging
logging.basicConfig(level=logging.INFO)

RPC_URL = "https://rpc.test/"
ACTIONS_BASE = "https://actions.test"
TRACKED_MINT = "Mint" + "1" * 40
REWARD_WALLET = "Reward" + "1" * 38
EXCLUDED_WALLET = "Amm" + "1" * 41


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._text = body if isinstance(body, str) else json.dumps(body)

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """
    Routes every request to `handler(call)`, which returns `(status, body)` or
    an exception instance to raise. Each call is recorded as a dict.
    """

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False

    def request(self, method, url, json=None, headers=None):
        call = {"method": method, "url": url, "json": json, "headers": headers or {}}
        self.calls.append(call)
        result = self.handler(call)
        if isinstance(result, Exception):
            raise result
        status, body = result
        return FakeResponse(status, body)

    async def close(self):
        self.closed = True

    def rpc_calls(self, method=None):
        return [
            c for c in self.calls
            if c["url"] == RPC_URL and (method is None or c["json"]["method"] == method)
        ]


def rpc_ok(result):
    return 200, {"jsonrpc": "2.0", "id": "x", "result": result}


def rpc_error(message, code=-32000):
    return 200, {"jsonrpc": "2.0", "id": "x", "error": {"code": code, "message": message}}


def token_account(owner, amount):
    return {
        "pubkey": f"acct-{owner}",
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "owner": owner,
                        "tokenAmount": {"uiAmount": amount, "uiAmountString": str(amount)},
                    }
                }
            }
        },
    }


def make_client(handler):
    """UpstreamClient over a FakeSession with zero backoff delays."""
    session = FakeSession(handler)
    return UpstreamClient(RPC_URL, session=session, backoff_ms=0, jitter_ms=0), session


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def settings():
    return Settings(
        rpc_url=RPC_URL,
        birdeye_api_key="birdeye-key",
        tracked_mint=TRACKED_MINT,
        reward_wallet=REWARD_WALLET,
        excluded_wallet=EXCLUDED_WALLET,
        external_api_base=ACTIONS_BASE,
        external_api_key="action-key",
        path_claim_swap="/v1/creator/claim-swap",
        path_airdrop="/v1/airdrop/spl",
        admin_secret="s3cret",
    )
