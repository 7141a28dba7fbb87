"""Enrichment: gossip-address parsing, status classification, geo lookup fan-out.

Status is derived from what a node *advertises*, not from probing it:

* an RPC address  -> ``online``
* only a gossip address -> ``syncing``
* neither -> ``offline``

A node that advertises RPC but is unreachable still counts as online.
Replacing this with active health checks means redefining the three states.
"""

import dataclasses
import ipaddress
import logging
from datetime import UTC, datetime
from typing import Protocol

from pnodemap.concurrency import run_concurrent
from pnodemap.models import EnrichedNode, GeoLocation, NodeStatus, RawNode

logger = logging.getLogger(__name__)

# Caps simultaneous geo lookups (ip-api.com rate-limits free clients).
ENRICH_CONCURRENCY = 5

DEFAULT_IP = "0.0.0.0"
DEFAULT_PORT = 0

ID_LENGTH = 8


class Resolver(Protocol):
    async def resolve(self, ip: str) -> GeoLocation | None: ...


def parse_gossip_address(gossip: str | None) -> tuple[str, int]:
    """Split a ``host:port`` (or ``[v6]:port``) gossip address.

    Args:
        gossip: The advertised gossip address, possibly ``None``.

    Returns:
        ``(ip, port)``, or ``("0.0.0.0", 0)`` if the address is absent or
        malformed (missing/non-numeric/out-of-range port, non-IP host).
    """
    default = (DEFAULT_IP, DEFAULT_PORT)
    if not gossip:
        return default

    host, sep, port_str = gossip.strip().rpartition(":")
    if not sep or not host:
        return default
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        ip = ipaddress.ip_address(host)
        port = int(port_str)
    except ValueError:
        logger.debug("Malformed gossip address %r", gossip)
        return default

    if not 0 <= port <= 65535:
        return default
    return str(ip), port


def classify_status(node: RawNode) -> NodeStatus:
    """Classify *node* as online / syncing / offline from its addresses.

    An address counts as present when it is not ``None``, the same test
    ``is_public`` uses.
    """
    if node.rpc is not None:
        return "online"
    if node.gossip is not None:
        return "syncing"
    return "offline"


async def enrich_node(node: RawNode, resolver: Resolver) -> EnrichedNode:
    """Produce the ``EnrichedNode`` for a single roster entry.

    A resolver that raises (instead of returning ``None``) is logged and
    the node simply gets no location.
    """
    ip, port = parse_gossip_address(node.gossip)

    location: GeoLocation | None = None
    if ip != DEFAULT_IP:
        try:
            location = await resolver.resolve(ip)
        except Exception:
            logger.warning(
                "Geo lookup for %s raised; continuing without location",
                ip,
                exc_info=True,
            )

    return EnrichedNode(
        **_raw_fields(node),
        id=node.pubkey[:ID_LENGTH],
        ip_address=ip,
        port=port,
        status=classify_status(node),
        location=location,
        last_seen=datetime.now(UTC),
        is_registered=True,
        is_public=node.rpc is not None,
    )


async def enrich(nodes: list[RawNode], resolver: Resolver) -> list[EnrichedNode]:
    """Enrich a roster with at most ``ENRICH_CONCURRENCY`` lookups in flight.

    Nodes whose enrichment fails outright are dropped, so the result may be
    shorter than *nodes*.  The result is sorted by pubkey.
    """
    enriched = await run_concurrent(
        nodes, ENRICH_CONCURRENCY, lambda node: enrich_node(node, resolver)
    )

    dropped = len(nodes) - len(enriched)
    if dropped:
        logger.warning("Dropped %d node(s) that failed enrichment", dropped)
    located = sum(1 for n in enriched if n.location is not None)
    logger.info("Enriched %d node(s), %d with location", len(enriched), located)

    return sorted(enriched, key=lambda n: n.pubkey)


def _raw_fields(node: RawNode) -> dict[str, object]:
    return {f.name: getattr(node, f.name) for f in dataclasses.fields(RawNode)}
