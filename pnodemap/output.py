"""Output renderer: rich tables and JSON for nodes, stats and IP locations."""

import dataclasses
import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.table import Table

from pnodemap.aggregator import top_countries
from pnodemap.models import GeoLocation, NetworkStats, PNodeSnapshot, RegionStats

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")

_STATUS_STYLE = {
    "online": "green",
    "syncing": "yellow",
    "offline": "red",
}

_LOCATION_FIELDS = [
    ("IP", "ip"),
    ("Country", "country"),
    ("Code", "country_code"),
    ("Region", "region_name"),
    ("City", "city"),
    ("Latitude", "lat"),
    ("Longitude", "lon"),
    ("Timezone", "timezone"),
    ("ISP", "isp"),
]


def render_nodes(
    snapshot: PNodeSnapshot,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render the enriched node list.

    Args:
        snapshot: Pipeline output to render.
        fmt: ``"table"`` or ``"json"``.
        file: Writable file object (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is not a known format.
    """
    _check_format(fmt)
    if fmt == "json":
        _dump_json(
            {
                "nodes": [dataclasses.asdict(n) for n in snapshot.nodes],
                "stats": dataclasses.asdict(snapshot.stats),
            },
            file,
        )
        return

    console = _console(file, width)
    table = Table(title=f"pNodes — {len(snapshot.nodes)} nodes")
    for header in ("ID", "Address", "Status", "Version", "Country", "City", "Public"):
        table.add_column(header)

    for node in snapshot.nodes:
        loc = node.location
        style = _STATUS_STYLE.get(node.status, "")
        table.add_row(
            node.id,
            f"{node.ip_address}:{node.port}",
            f"[{style}]{node.status}[/{style}]" if style else node.status,
            _fmt(node.version),
            _fmt(loc.country if loc else None),
            _fmt(loc.city if loc else None),
            "yes" if node.is_public else "no",
        )

    console.print(table)
    console.print(f"  {stats_line(snapshot.stats)}")


def render_stats(
    stats: NetworkStats,
    regions: list[RegionStats],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render network stats plus the per-country breakdown.

    Table mode shows the top countries only; JSON carries every region.
    """
    _check_format(fmt)
    if fmt == "json":
        _dump_json(
            {
                "network_stats": dataclasses.asdict(stats),
                "region_stats": [dataclasses.asdict(r) for r in regions],
                "top_countries": [
                    dataclasses.asdict(r) for r in top_countries(regions)
                ],
            },
            file,
        )
        return

    console = _console(file, width)

    t = Table(title="Network")
    t.add_column("Status")
    t.add_column("Nodes", justify="right")
    t.add_row("Online", str(stats.online_nodes))
    t.add_row("Syncing", str(stats.syncing_nodes))
    t.add_row("Offline", str(stats.offline_nodes))
    t.add_row("Total", str(stats.total_nodes))
    console.print(t)

    if not regions:
        console.print("  No region data available.")
        return

    t = Table(title="Top countries")
    for header in ("Country", "Code", "Nodes", "Online", "Syncing", "Offline", "Health"):
        t.add_column(header, justify="left" if header in ("Country", "Code") else "right")
    for r in top_countries(regions):
        t.add_row(
            r.country,
            r.country_code,
            str(r.total_nodes),
            str(r.online_nodes),
            str(r.syncing_nodes),
            str(r.offline_nodes),
            f"{r.health_score}%",
        )
    console.print(t)


def render_location(
    location: GeoLocation,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render a single IP location as a two-column table or JSON object."""
    _check_format(fmt)
    if fmt == "json":
        _dump_json(dataclasses.asdict(location), file)
        return

    console = _console(file, width)
    t = Table(title=f"Location of {location.ip}", show_header=False)
    t.add_column("Field")
    t.add_column("Value")
    for label, attr in _LOCATION_FIELDS:
        t.add_row(label, _fmt(getattr(location, attr)))
    console.print(t)


def render_to_string(render_fn, *args: object, width: int = 200) -> str:
    """Run one of the ``render_*`` functions into a string, e.g. for tests.

    Args:
        render_fn: ``render_nodes``, ``render_stats`` or ``render_location``.
        *args: Positional arguments for *render_fn*, format last.
        width: Console width for table rendering (default: 200).

    Returns:
        The rendered output as a string.
    """
    buf = StringIO()
    render_fn(*args, file=buf, width=width)
    return buf.getvalue()


def stats_line(stats: NetworkStats) -> str:
    """One-line status summary, e.g. ``"3 nodes: 1 online, 1 syncing, 1 offline"``."""
    return (
        f"{stats.total_nodes} nodes: {stats.online_nodes} online, "
        f"{stats.syncing_nodes} syncing, {stats.offline_nodes} offline"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_format(fmt: str) -> None:
    if fmt not in FORMATS:
        raise ValueError(f"Unknown output format: {fmt!r}")


def _console(file: object | None, width: int | None) -> Console:
    return Console(file=file or sys.stdout, highlight=False, width=width)


def _dump_json(payload: object, file: object | None) -> None:
    out = file or sys.stdout
    json.dump(payload, out, indent=2, default=str)
    out.write("\n")  # type: ignore[union-attr]


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` becomes ``"—"``, everything else is stringified.
    """
    if value is None:
        return "—"
    return str(value)
