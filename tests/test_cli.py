"""
Tests for the click command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from holder_rewards import cli as cli_module
from holder_rewards.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def env(tmp_path):
    return {
        "HELIUS_RPC": "https://rpc.test/",
        "HELIUS_API_KEY": None,
        "CYCLE_MINUTES": "5",
        "CLAIM_OFFSET_SECONDS": None,
        "DISTRIBUTE_OFFSET_SECONDS": None,
        "LOG_LEVEL": "WARNING",
    }


def test_cycle_prints_window_and_phases(runner, env):
    result = runner.invoke(cli, ["cycle"], env=env)
    assert result.exit_code == 0, result.output
    assert "Cycle:" in result.output
    assert "Claim:" in result.output
    assert "Airdrop:" in result.output


def test_cycle_rejects_bad_number(runner, env):
    env["CYCLE_MINUTES"] = "five"
    result = runner.invoke(cli, ["cycle"], env=env)
    assert result.exit_code != 0
    assert "Invalid numeric setting" in result.output


def test_snapshot_without_rpc_fails_cleanly(runner, env):
    env["HELIUS_RPC"] = None
    result = runner.invoke(cli, ["snapshot", "--mint", "Mint" + "1" * 40], env=env)
    assert result.exit_code == 1
    assert "HELIUS_RPC" in result.output


def test_health_reports_each_check(runner, env, monkeypatch):
    monkeypatch.setattr(cli_module, "run_health_check", lambda settings: {"rpc": True, "market": None})
    result = runner.invoke(cli, ["health"], env=env)
    assert result.exit_code == 0
    assert "rpc: ok" in result.output
    assert "market: skipped" in result.output


def test_health_exit_code_on_failure(runner, env, monkeypatch):
    monkeypatch.setattr(cli_module, "run_health_check", lambda settings: {"rpc": False, "market": True})
    result = runner.invoke(cli, ["health"], env=env)
    assert result.exit_code == 1
    assert "rpc: FAILED" in result.output


def test_serve_refuses_to_start_without_identifiers(runner, env):
    env.update({"TRACKED_MINT": None, "REWARD_WALLET": None, "EXCLUDED_WALLET": None, "PUMPFUN_AMM_WALLET": None})
    result = runner.invoke(cli, ["serve", "--port", "0"], env=env)
    assert result.exit_code == 1
    assert "TRACKED_MINT" in result.output
    assert "EXCLUDED_WALLET" in result.output


def test_cycle_as_json(runner, env):
    result = runner.invoke(cli, ["cycle", "--json"], env=env)
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert set(payload) == {"id", "windowStart", "windowEnd", "phaseAAt", "phaseBAt"}
    assert payload["windowEnd"].endswith("Z")
