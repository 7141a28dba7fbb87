"""Data models: RawNode, GeoLocation, EnrichedNode and the stats dataclasses."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

NodeStatus = Literal["online", "syncing", "offline"]

# RPC roster key -> RawNode field, for the optional address/metadata fields.
_RPC_KEY_TO_FIELD: dict[str, str] = {
    "gossip": "gossip",
    "rpc": "rpc",
    "tpu": "tpu",
    "tpuForwards": "tpu_forwards",
    "tpuVote": "tpu_vote",
    "serveRepair": "serve_repair",
    "tpuQuic": "tpu_quic",
    "tpuForwardsQuic": "tpu_forwards_quic",
    "version": "version",
    "featureSet": "feature_set",
}


@dataclass(frozen=True)
class RawNode:
    """One entry of the ``getClusterNodes`` roster, as reported upstream.

    Attributes:
        pubkey: Node identity public key (opaque base58 string).
        gossip: Gossip address as ``host:port``; may be absent or malformed.
        rpc: JSON-RPC address.  Its presence means the node serves RPC.
        tpu: Transaction-processing address.
        tpu_forwards: TPU forwards address.
        tpu_vote: TPU vote address.
        serve_repair: Repair service address.
        tpu_quic: TPU QUIC address.
        tpu_forwards_quic: TPU forwards QUIC address.
        version: Software version string, if advertised.
        feature_set: Numeric feature-set identifier, if advertised.
        shred_version: Protocol shred version.
    """

    pubkey: str
    gossip: str | None = None
    rpc: str | None = None
    tpu: str | None = None
    tpu_forwards: str | None = None
    tpu_vote: str | None = None
    serve_repair: str | None = None
    tpu_quic: str | None = None
    tpu_forwards_quic: str | None = None
    version: str | None = None
    feature_set: int | None = None
    shred_version: int = 0

    @classmethod
    def from_rpc(cls, entry: dict) -> "RawNode":
        """Build a ``RawNode`` from a camelCase roster entry.

        Unknown keys are ignored; missing optional keys default to ``None``.

        Raises:
            ValueError: If *entry* has no string ``pubkey``.
        """
        pubkey = entry.get("pubkey")
        if not isinstance(pubkey, str) or not pubkey:
            raise ValueError(f"Roster entry has no pubkey: {entry!r}")

        kwargs: dict[str, object] = {
            field_name: entry[rpc_key]
            for rpc_key, field_name in _RPC_KEY_TO_FIELD.items()
            if rpc_key in entry
        }
        shred_version = entry.get("shredVersion")
        if shred_version is not None:
            kwargs["shred_version"] = shred_version

        return cls(pubkey=pubkey, **kwargs)


@dataclass(frozen=True)
class GeoLocation:
    """Geographic metadata for one IP address.

    Attributes:
        ip: The canonical IP the lookup service answered for.
        country: Country name.
        country_code: ISO 3166-1 alpha-2 country code.
        region: Short region code (e.g. "CA").
        region_name: Long region name (e.g. "California").
        city: City name.
        lat: Latitude.
        lon: Longitude.
        timezone: IANA timezone name.
        isp: ISP or AS organisation name.
    """

    ip: str
    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    region_name: str | None = None
    city: str | None = None
    lat: float | None = None
    lon: float | None = None
    timezone: str | None = None
    isp: str | None = None


@dataclass(frozen=True)
class EnrichedNode(RawNode):
    """A ``RawNode`` plus derived status, address and geography.

    Attributes:
        id: Short identifier (pubkey prefix).
        ip_address: IP parsed from the gossip address (``0.0.0.0`` if unusable).
        port: Port parsed from the gossip address (``0`` if unusable).
        status: Capability-based liveness classification.
        location: Resolved geography, or ``None`` when the lookup failed.
        last_seen: When this record was produced (UTC).
        is_registered: Always ``True``: the roster is the registered set.
        is_public: Whether the node advertises an RPC address.
    """

    id: str = ""
    ip_address: str = "0.0.0.0"
    port: int = 0
    status: NodeStatus = "offline"
    location: GeoLocation | None = None
    last_seen: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_registered: bool = True
    is_public: bool = False


@dataclass(frozen=True)
class NetworkStats:
    """Network-wide status counts.

    ``nodes_reporting`` is reserved for live telemetry and is always 0.
    """

    total_nodes: int
    online_nodes: int
    syncing_nodes: int
    offline_nodes: int
    nodes_reporting: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class RegionStats:
    """Status counts for the nodes of one country."""

    country: str
    country_code: str
    total_nodes: int
    online_nodes: int
    offline_nodes: int
    syncing_nodes: int
    health_score: int


@dataclass(frozen=True)
class PNodeSnapshot:
    """What the pipeline hands out: enriched nodes and their stats.

    Both values are shared with the cache and must not be mutated.
    """

    nodes: list[EnrichedNode]
    stats: NetworkStats
