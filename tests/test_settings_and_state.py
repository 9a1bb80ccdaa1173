"""
Tests for configuration loading and the side-channel state.
"""

import pytest

from holder_rewards.config.settings import TOKENS_PER_SHARE, load_settings
from holder_rewards.core.state import Metrics, OpsState, TxRef
from holder_rewards.utils.errors import ConfigurationError


def test_rpc_url_built_from_api_key():
    settings = load_settings({"HELIUS_API_KEY": "abc"})
    assert settings.rpc_url == "https://mainnet.helius-rpc.com/?api-key=abc"


def test_explicit_rpc_wins():
    settings = load_settings({"HELIUS_RPC": "https://rpc.example/", "HELIUS_API_KEY": "abc"})
    assert settings.rpc_url == "https://rpc.example/"


def test_defaults_and_aliases():
    settings = load_settings({"PUMPFUN_AMM_WALLET": " amm ", "TOKENS_PER_APE": "50000"})
    assert settings.excluded_wallet == "amm"
    assert settings.tokens_per_share == 50_000
    assert settings.window_seconds == 300
    assert load_settings({}).tokens_per_share == TOKENS_PER_SHARE


def test_invalid_number_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        load_settings({"CYCLE_MINUTES": "soon"})


def test_require_rpc():
    with pytest.raises(ConfigurationError):
        load_settings({}).require_rpc()


def test_missing_config_reporting():
    settings = load_settings({"TRACKED_MINT": "m", "PATH_AIRDROP_SPL": "/a"})
    assert settings.missing_identifiers() == ["REWARD_WALLET"]
    assert settings.missing_action_config() == ["EXTERNAL_API_BASE", "EXTERNAL_API_KEY", "PATH_CLAIM_SWAP"]
    with pytest.raises(ConfigurationError) as excinfo:
        settings.require_snapshot_config()
    assert "EXCLUDED_WALLET" in str(excinfo.value)


def test_ops_state_accepts_only_numeric_amounts():
    ops = OpsState()
    assert ops.update({"lastClaim": {"at": "t1", "amount": 3, "tx": "sig"}}) is True
    assert ops.update({"lastClaim": {"at": "t2", "amount": "3"}}) is False
    assert ops.update({"lastSwap": {"at": "t2", "amount": True}}) is False
    assert ops.last_claim == TxRef(at="t1", amount=3, tx="sig")
    assert ops.to_dict() == {"lastClaim": {"at": "t1", "amount": 3, "tx": "sig"}, "lastSwap": None}


def test_metrics_record_refresh():
    metrics = Metrics()
    metrics.record_hit()
    metrics.record_refresh(12.345)
    snapshot = metrics.to_dict()
    assert snapshot["cacheHits"] == 1
    assert snapshot["cacheMisses"] == 1
    assert snapshot["lastRpcMs"] == 12.3
    assert snapshot["lastSnapshotAt"].endswith("Z")
