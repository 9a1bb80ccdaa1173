"""
Tests for the HTTP snapshot and ops routes.
"""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from holder_rewards.api.server import SNAPSHOT_CACHE_CONTROL, create_app, resolve_mint
from holder_rewards.config.api_keys import TOKEN_PROGRAM_ID
from holder_rewards.main import build_services
from tests.conftest import REWARD_WALLET, RPC_URL, TRACKED_MINT, make_client, rpc_ok, token_account

OTHER_MINT = "So11111111111111111111111111111111111111112"


def chain(holders, pool, market=(200, {"data": {"price": 0.5, "marketcap": 50_000}}), scans_fail=False):
    def handler(call):
        if call["url"] == RPC_URL:
            method = call["json"]["method"]
            if method == "getProgramAccounts":
                if scans_fail:
                    return 400, {"error": {"message": "scan rejected"}}
                accounts = holders if call["json"]["params"][0] == TOKEN_PROGRAM_ID else []
                return rpc_ok([token_account(o, a) for o, a in accounts])
            if method == "getTokenAccountsByOwner":
                return rpc_ok({"value": [token_account(REWARD_WALLET, pool)]})
            return 400, {"error": {"message": "unexpected"}}
        return market
    return handler


def make_app(settings, handler):
    upstream, session = make_client(handler)
    services = build_services(settings, upstream=upstream)
    app = create_app(services.settings, services.holders, services.market, services.ops, services.metrics)
    return app, services, session


def test_resolve_mint_falls_back_to_tracked():
    assert resolve_mint(OTHER_MINT, TRACKED_MINT) == OTHER_MINT
    assert resolve_mint(f"  {OTHER_MINT} ", TRACKED_MINT) == OTHER_MINT
    assert resolve_mint("not-a-mint", TRACKED_MINT) == TRACKED_MINT
    assert resolve_mint("0" * 40, TRACKED_MINT) == TRACKED_MINT
    assert resolve_mint(None, TRACKED_MINT) == TRACKED_MINT


@pytest.mark.asyncio
async def test_snapshot_payload_and_cache_headers(settings):
    app, services, session = make_app(settings, chain([("A", 300_000), ("B", 20)], 1234.5))

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/snapshot", params={"mint": "bogus"})
        assert resp.status == 200
        assert resp.headers["Cache-Control"] == SNAPSHOT_CACHE_CONTROL
        body = await resp.json()

    assert body["mint"] == TRACKED_MINT
    assert body["holders"] == [{"address": "A", "balance": 300_000}, {"address": "B", "balance": 20}]
    assert body["counts"] == {"total": 2}
    assert body["rewardPool"] == 1234.5
    assert body["tokensPerShare"] == settings.tokens_per_share
    assert body["priceUsd"] == 0.5
    assert body["marketCapUsd"] == 50_000
    assert body["ops"] == {"lastClaim": None, "lastSwap": None}
    assert body["metrics"]["cacheMisses"] == 1
    assert "updatedAt" in body


@pytest.mark.asyncio
async def test_snapshot_survives_market_outage(settings):
    app, services, session = make_app(settings, chain([("A", 1)], 0, market=(400, {"message": "no"})))

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/snapshot")
        body = await resp.json()

    assert resp.status == 200
    assert body["priceUsd"] is None
    assert body["marketCapUsd"] is None


@pytest.mark.asyncio
async def test_snapshot_failure_is_not_cacheable(settings):
    app, services, session = make_app(settings, chain([], 0, scans_fail=True))

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/snapshot")
        body = await resp.json()

    assert resp.status == 500
    assert resp.headers["Cache-Control"] == "no-store"
    assert "error" in body


@pytest.mark.asyncio
async def test_ops_requires_secret(settings):
    app, services, session = make_app(settings, chain([], 0))

    async with TestClient(TestServer(app)) as client:
        assert (await client.post("/api/admin/ops", json={})).status == 403
        wrong = await client.post("/api/admin/ops", json={}, headers={"x-admin-secret": "nope"})
        assert wrong.status == 403


@pytest.mark.asyncio
async def test_ops_forbidden_when_secret_unset(settings):
    settings.admin_secret = ""
    app, services, session = make_app(settings, chain([], 0))

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/api/admin/ops", json={}, headers={"x-admin-secret": ""})
        assert resp.status == 403


@pytest.mark.asyncio
async def test_ops_update_via_header_and_query(settings):
    app, services, session = make_app(settings, chain([], 0))
    claim = {"at": "2024-01-01T00:00:00Z", "amount": 5, "tx": "sig"}

    async with TestClient(TestServer(app)) as client:
        resp = await client.post("/api/admin/ops", json={"lastClaim": claim}, headers={"x-admin-secret": "s3cret"})
        assert resp.status == 200
        body = await resp.json()
        assert body["ok"] is True
        assert body["ops"]["lastClaim"] == claim

        resp = await client.post(
            "/api/admin/ops", params={"k": "s3cret"}, json={"lastSwap": {"at": "x", "amount": "lots"}}
        )
        body = await resp.json()
        assert body["ops"]["lastSwap"] is None

    assert services.ops.last_claim.tx == "sig"


@pytest.mark.asyncio
async def test_ops_rejects_invalid_json(settings):
    app, services, session = make_app(settings, chain([], 0))

    async with TestClient(TestServer(app)) as client:
        resp = await client.post(
            "/api/admin/ops", data="{not json", headers={"x-admin-secret": "s3cret"}
        )
        assert resp.status == 400


@pytest.mark.asyncio
async def test_healthz(settings):
    app, services, session = make_app(settings, chain([], 0))

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.json() == {"ok": True}
