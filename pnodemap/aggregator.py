"""Aggregator: network-wide status counts and per-country region stats."""

import logging

from pnodemap.models import EnrichedNode, NetworkStats, RegionStats

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "Unknown"
UNKNOWN_COUNTRY_CODE = "XX"

# Rows shown in "top countries" views.
TOP_N = 10


def aggregate(nodes: list[EnrichedNode]) -> NetworkStats:
    """Count *nodes* by status.

    Args:
        nodes: Enriched nodes.

    Returns:
        A ``NetworkStats`` whose status counts always sum to the total.
    """
    counts = _count_statuses(nodes)
    return NetworkStats(
        total_nodes=len(nodes),
        online_nodes=counts["online"],
        syncing_nodes=counts["syncing"],
        offline_nodes=counts["offline"],
        nodes_reporting=0,
    )


def region_stats(nodes: list[EnrichedNode]) -> list[RegionStats]:
    """Group *nodes* by country and count statuses per group.

    Nodes without a location fall into the ``"Unknown"`` group.  The
    country code comes from the first node of each group; the health
    score is the rounded percentage of online nodes.

    Args:
        nodes: Enriched nodes.

    Returns:
        One ``RegionStats`` per country, sorted by node count descending.
    """
    groups: dict[str, list[EnrichedNode]] = {}
    for node in nodes:
        country = (node.location.country if node.location else None) or UNKNOWN_COUNTRY
        groups.setdefault(country, []).append(node)

    regions = []
    for country, members in groups.items():
        counts = _count_statuses(members)
        first = members[0]
        country_code = (
            first.location.country_code if first.location else None
        ) or UNKNOWN_COUNTRY_CODE
        regions.append(
            RegionStats(
                country=country,
                country_code=country_code,
                total_nodes=len(members),
                online_nodes=counts["online"],
                offline_nodes=counts["offline"],
                syncing_nodes=counts["syncing"],
                health_score=health_score(counts["online"], len(members)),
            )
        )

    # sorted() is stable, so ties keep first-seen order.
    return sorted(regions, key=lambda r: r.total_nodes, reverse=True)


def top_countries(regions: list[RegionStats], limit: int = TOP_N) -> list[RegionStats]:
    """Return the first *limit* rows of an already-sorted region list."""
    return regions[:limit]


def health_score(online: int, total: int) -> int:
    """Rounded online percentage in 0..100; 0 for an empty group."""
    if total <= 0:
        return 0
    return round(100 * online / total)


def _count_statuses(nodes: list[EnrichedNode]) -> dict[str, int]:
    counts = {"online": 0, "syncing": 0, "offline": 0}
    for node in nodes:
        counts[node.status] += 1
    return counts
