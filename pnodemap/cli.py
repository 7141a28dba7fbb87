"""CLI entry point for the pnodemap tool."""

import asyncio
import ipaddress
import logging
import sys
from datetime import UTC, datetime

import click

from pnodemap.config import ConfigError, PnodemapConfig, load_config
from pnodemap.models import PNodeSnapshot
from pnodemap.output import (
    FORMATS,
    render_location,
    render_nodes,
    render_stats,
    stats_line,
)
from pnodemap.pipeline import open_pipeline
from pnodemap.rpc import RpcError

logger = logging.getLogger(__name__)

STATUSES = ("online", "syncing", "offline")

# Dashboard refresh cadence, in seconds.
DEFAULT_WATCH_INTERVAL = 30.0

_format_option = click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.pnodemap/config.yaml).",
)
@click.option(
    "--rpc-url",
    default=None,
    help="JSON-RPC endpoint (overrides config file and $PNODEMAP_RPC_URL).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(
    ctx: click.Context, config_path: str | None, rpc_url: str | None, verbose: bool
) -> None:
    """Map the pNodes of a cluster: status, geography and regional health."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if rpc_url:
        cfg.rpc_url = rpc_url

    logger.debug("Config loaded: %s", cfg)
    ctx.obj = cfg


@main.command()
@_format_option
@click.option(
    "--status",
    "status_filter",
    default=None,
    type=click.Choice(STATUSES, case_sensitive=False),
    help="Only show nodes with this status.",
)
@click.pass_obj
def nodes(cfg: PnodemapConfig, output_format: str, status_filter: str | None) -> None:
    """List every pNode with its status and location."""
    snapshot = _run(_fetch_snapshot(cfg))
    if status_filter:
        snapshot = PNodeSnapshot(
            nodes=[n for n in snapshot.nodes if n.status == status_filter.lower()],
            stats=snapshot.stats,
        )
    render_nodes(snapshot, output_format.lower())


@main.command()
@_format_option
@click.pass_obj
def stats(cfg: PnodemapConfig, output_format: str) -> None:
    """Show network totals and per-country health."""
    snapshot, regions = _run(_fetch_stats(cfg))
    render_stats(snapshot.stats, regions, output_format.lower())


def _validate_ip(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise click.BadParameter(f"{value!r} is not an IP address") from None


@main.command()
@click.argument("ip", callback=_validate_ip)
@_format_option
@click.pass_obj
def locate(cfg: PnodemapConfig, ip: str, output_format: str) -> None:
    """Look up the location of a single IP address."""
    location = asyncio.run(_locate(cfg, ip))
    if location is None:
        click.echo(f"Error: Could not determine location for {ip}", err=True)
        sys.exit(1)
    render_location(location, output_format.lower())


@main.command()
@click.option(
    "--interval",
    default=DEFAULT_WATCH_INTERVAL,
    type=click.FloatRange(min=0),
    show_default=True,
    help="Seconds between refreshes.",
)
@click.option(
    "--count",
    default=None,
    type=click.IntRange(min=1),
    help="Stop after this many refreshes (default: run until interrupted).",
)
@click.pass_obj
def watch(cfg: PnodemapConfig, interval: float, count: int | None) -> None:
    """Refresh the node summary periodically."""
    try:
        asyncio.run(_watch(cfg, interval, count))
    except KeyboardInterrupt:
        pass


# ------------------------------------------------------------------
# Async bodies
# ------------------------------------------------------------------


def _run(coro):
    """Run *coro*, turning an ``RpcError`` into a CLI error exit."""
    try:
        return asyncio.run(coro)
    except RpcError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


async def _fetch_snapshot(cfg: PnodemapConfig) -> PNodeSnapshot:
    async with open_pipeline(cfg) as pipeline:
        return await pipeline.fetch_all_pnodes()


async def _fetch_stats(cfg: PnodemapConfig):
    async with open_pipeline(cfg) as pipeline:
        snapshot = await pipeline.fetch_all_pnodes()
        return snapshot, await pipeline.region_stats()


async def _locate(cfg: PnodemapConfig, ip: str):
    async with open_pipeline(cfg) as pipeline:
        return await pipeline.locate(ip)


async def _watch(cfg: PnodemapConfig, interval: float, count: int | None) -> None:
    """Refresh loop: a failed refresh is logged and retried on the next tick."""
    async with open_pipeline(cfg) as pipeline:
        tick = 0
        while count is None or tick < count:
            if tick:
                await asyncio.sleep(interval)
            tick += 1

            try:
                snapshot = await pipeline.fetch_all_pnodes()
            except RpcError as exc:
                logger.error("Refresh failed: %s", exc)
            else:
                now = datetime.now(UTC).strftime("%H:%M:%S")
                click.echo(f"[{now}] {stats_line(snapshot.stats)}")

            pipeline.cache.cleanup()
