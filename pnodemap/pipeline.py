"""Pipeline facade: cache check -> roster fetch -> enrich -> aggregate -> cache store."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from pnodemap.aggregator import aggregate, region_stats
from pnodemap.cache import NODES_KEY, NODES_TTL, STATS_KEY, STATS_TTL, TTLCache
from pnodemap.config import REQUEST_TIMEOUT_SECONDS, PnodemapConfig
from pnodemap.enrichment import Resolver, enrich
from pnodemap.geoip import GeoResolver, MaxMindReader
from pnodemap.models import GeoLocation, PNodeSnapshot, RegionStats
from pnodemap.rpc import RpcClient

logger = logging.getLogger(__name__)


class PNodePipeline:
    """Single entry point for reading the enriched pNode dataset.

    All collaborators are injected so each instance (and each test) can
    run against its own cache.

    Args:
        cache: Cache holding the node list, stats and geo entries.
        rpc: Client for the roster endpoint.
        resolver: Geo resolver, normally sharing *cache*.
    """

    def __init__(self, cache: TTLCache, rpc: RpcClient, resolver: Resolver) -> None:
        self.cache = cache
        self.rpc = rpc
        self.resolver = resolver

    async def fetch_all_pnodes(self) -> PNodeSnapshot:
        """Return the enriched node list and network stats.

        Served from cache when both entries are live.  Otherwise the roster
        is fetched, enriched and aggregated again, and both entries are
        re-cached with their own TTLs.

        Raises:
            RpcError: If the roster can't be fetched.  Nothing is cached.
        """
        cached_nodes = self.cache.get(NODES_KEY)
        cached_stats = self.cache.get(STATS_KEY)
        if cached_nodes is not None and cached_stats is not None:
            logger.debug("Serving %d node(s) from cache", len(cached_nodes))
            return PNodeSnapshot(nodes=cached_nodes, stats=cached_stats)

        raw_nodes = await self.rpc.get_cluster_nodes()
        nodes = await enrich(raw_nodes, self.resolver)
        stats = aggregate(nodes)

        self.cache.set(NODES_KEY, nodes, NODES_TTL)
        self.cache.set(STATS_KEY, stats, STATS_TTL)

        logger.info(
            "Refreshed pNodes: %d total, %d online, %d syncing, %d offline",
            stats.total_nodes,
            stats.online_nodes,
            stats.syncing_nodes,
            stats.offline_nodes,
        )
        return PNodeSnapshot(nodes=nodes, stats=stats)

    async def region_stats(self) -> list[RegionStats]:
        """Per-country stats over the current snapshot."""
        snapshot = await self.fetch_all_pnodes()
        return region_stats(snapshot.nodes)

    async def locate(self, ip: str) -> GeoLocation | None:
        """Resolve a single IP address (scan-by-IP).  Never raises."""
        try:
            return await self.resolver.resolve(ip)
        except Exception:
            logger.warning("Lookup for %s raised", ip, exc_info=True)
            return None


@asynccontextmanager
async def open_pipeline(
    config: PnodemapConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[PNodePipeline]:
    """Wire up a pipeline for *config* and tear it down afterwards.

    One cache and one HTTP client (with ``REQUEST_TIMEOUT_SECONDS``) are
    shared by the roster client and the geo resolver.  If the config names
    a usable GeoLite2-City database, geo lookups are served from it.

    Args:
        config: Loaded configuration.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """
    cache = TTLCache()
    reader = None
    if config.maxmind_city_db:
        reader = MaxMindReader(config.maxmind_city_db, config.maxmind_asn_db)

    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS),
            transport=transport,
        ) as client:
            resolver = GeoResolver(
                cache,
                client,
                reader=reader if reader is not None and reader.available else None,
            )
            yield PNodePipeline(cache, RpcClient(config.rpc_url, client), resolver)
    finally:
        if reader is not None:
            reader.close()
