#!/usr/bin/env python3
"""
Command-line interface for the holder rewards worker.
"""

import asyncio
import json
import sys
import time

import click

from holder_rewards.config.settings import load_settings
from holder_rewards.core.cycle import current_cycle, to_iso
from holder_rewards.main import build_services, main
from holder_rewards.utils.errors import ConfigurationError, HolderRewardsError
from holder_rewards.utils.health_check import run_health_check
from holder_rewards.utils.logger import setup_logger


def _settings():
    try:
        settings = load_settings()
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    setup_logger(level=settings.log_level)
    return settings


def _run(coro_factory):
    """Build services, await coro_factory(services), always close the HTTP session."""
    settings = _settings()

    async def runner():
        services = build_services(settings)
        try:
            return await coro_factory(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except HolderRewardsError as e:
        raise click.ClickException(str(e))


@click.group()
def cli():
    """Holder Rewards CLI - run the reward cycle worker and inspect holders."""


@cli.command()
@click.option('--serve/--no-serve', default=False, help='Also expose the HTTP snapshot surface')
@click.option('--host', default=None, help='Bind address for the HTTP surface')
@click.option('--port', type=int, default=None, help='Port for the HTTP surface')
def run(serve, host, port):
    """Run the cycle scheduler until interrupted."""
    try:
        asyncio.run(main(serve=serve, host=host, port=port))
    except ConfigurationError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', type=int, default=None, help='Port')
def serve(host, port):
    """Serve the HTTP snapshot surface without running the scheduler."""
    try:
        asyncio.run(main(serve=True, run_scheduler=False, host=host, port=port))
    except ConfigurationError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the cycle as JSON')
def cycle(as_json):
    """Show the current cycle and when each phase fires."""
    try:
        settings = load_settings()
        current = current_cycle(
            time.time(),
            settings.window_seconds,
            settings.claim_offset_seconds,
            settings.distribute_offset_seconds,
        )
    except (ConfigurationError, ValueError) as e:
        raise click.ClickException(str(e))
    if as_json:
        click.echo(json.dumps(current.to_dict()))
        return
    click.echo(f"Cycle:   {current.id}")
    click.echo(f"Window:  {to_iso(current.window_start)} -> {to_iso(current.window_end)}")
    click.echo(f"Claim:   {to_iso(current.phase_a_at)}")
    click.echo(f"Airdrop: {to_iso(current.phase_b_at)}")


@cli.command()
@click.option('--mint', default=None, help='Mint to snapshot (defaults to TRACKED_MINT)')
@click.option('--top', type=int, default=10, help='Number of holders to print')
def snapshot(mint, top):
    """Print the largest holders of a mint."""
    async def fetch(services):
        target = mint or services.settings.tracked_mint
        if not target:
            raise ConfigurationError("Missing TRACKED_MINT (or pass --mint)")
        return target, await services.holders.get_holders(target)

    target, holders = _run(fetch)
    click.echo(f"{len(holders)} holders of {target}")
    for rank, holder in enumerate(holders[:top], 1):
        click.echo(f"{rank:>4}. {holder.address}  {holder.balance:,.2f}")


@cli.command()
@click.option('--mint', default=None, help='Mint to plan for (defaults to TRACKED_MINT)')
def plan(mint):
    """Dry-run the distribution for the current pool; nothing is sent."""
    result = _run(lambda services: services.worker.plan(mint))
    click.echo(f"Pool: {result.pool_balance:,.2f}")
    click.echo(f"Shares: {result.total_shares} at {result.payout_per_share} per share")
    for row in result.rows:
        click.echo(f"  {row.address}  shares={row.share_count}  amount={row.payout_amount}")
    click.echo(f"Total payout: {result.total_payout}")


@cli.command()
def health():
    """Check connectivity to the RPC node and market data provider."""
    settings = _settings()
    try:
        results = run_health_check(settings)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    for name, ok in results.items():
        label = "skipped" if ok is None else ("ok" if ok else "FAILED")
        click.echo(f"{name}: {label}")
    if any(ok is False for ok in results.values()):
        sys.exit(1)


if __name__ == '__main__':
    cli()
