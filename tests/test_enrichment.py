"""Tests for pnodemap.enrichment — parsing, status, and the enrichment fan-out."""

import asyncio
from datetime import UTC, datetime

import pytest

from pnodemap import enrichment
from pnodemap.enrichment import (
    ENRICH_CONCURRENCY,
    classify_status,
    enrich,
    enrich_node,
    parse_gossip_address,
)
from pnodemap.models import GeoLocation, RawNode


class StubResolver:
    """Resolver returning canned locations and recording calls."""

    def __init__(self, locations: dict[str, GeoLocation | None] | None = None) -> None:
        self.locations = locations or {}
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0

    async def resolve(self, ip: str) -> GeoLocation | None:
        self.calls.append(ip)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0)
            return self.locations.get(ip)
        finally:
            self.active -= 1


class RaisingResolver:
    async def resolve(self, ip: str) -> GeoLocation | None:
        raise RuntimeError("geo backend exploded")


def _node(pubkey: str = "PubKey1111111111", **overrides: object) -> RawNode:
    fields: dict = {"gossip": "1.2.3.4:8001", "rpc": None}
    fields.update(overrides)
    return RawNode(pubkey=pubkey, **fields)


class TestParseGossipAddress:
    """parse_gossip_address() falls back to 0.0.0.0:0 on bad input."""

    @pytest.mark.parametrize(
        ("gossip", "expected"),
        [
            ("1.2.3.4:8001", ("1.2.3.4", 8001)),
            ("  10.0.0.7:9000 ", ("10.0.0.7", 9000)),
            ("[2001:db8::1]:8001", ("2001:db8::1", 8001)),
            ("1.2.3.4:0", ("1.2.3.4", 0)),
        ],
    )
    def test_valid(self, gossip: str, expected: tuple[str, int]) -> None:
        assert parse_gossip_address(gossip) == expected

    @pytest.mark.parametrize(
        "gossip",
        [
            None,
            "",
            "1.2.3.4",
            ":8001",
            "1.2.3.4:",
            "1.2.3.4:port",
            "1.2.3.4:70000",
            "1.2.3.4:-1",
            "node.example.com:8001",
            "999.1.1.1:8001",
        ],
    )
    def test_malformed_defaults(self, gossip: str | None) -> None:
        assert parse_gossip_address(gossip) == ("0.0.0.0", 0)


class TestClassifyStatus:
    """Status precedence: rpc -> online, gossip -> syncing, else offline."""

    @pytest.mark.parametrize(
        ("rpc", "gossip", "expected"),
        [
            ("1.2.3.4:8899", "1.2.3.4:8001", "online"),
            ("1.2.3.4:8899", None, "online"),
            (None, "1.2.3.4:8001", "syncing"),
            (None, None, "offline"),
            ("", "1.2.3.4:8001", "online"),
            (None, "", "syncing"),
        ],
    )
    def test_all_combinations(
        self, rpc: str | None, gossip: str | None, expected: str
    ) -> None:
        assert classify_status(_node(rpc=rpc, gossip=gossip)) == expected


class TestEnrichNode:
    """enrich_node() derives every field of EnrichedNode."""

    @pytest.mark.asyncio
    async def test_derived_fields(self) -> None:
        loc = GeoLocation(ip="1.2.3.4", country="United States", country_code="US")
        raw = _node(
            pubkey="ABCDEFGHJKLMNPQRSTUV",
            rpc="1.2.3.4:8899",
            version="2.0.14",
            shred_version=48698,
        )
        before = datetime.now(UTC)

        node = await enrich_node(raw, StubResolver({"1.2.3.4": loc}))

        assert node.id == "ABCDEFGH"
        assert node.ip_address == "1.2.3.4"
        assert node.port == 8001
        assert node.status == "online"
        assert node.location is loc
        assert node.is_registered is True
        assert node.is_public is True
        assert node.last_seen >= before
        # Raw fields carried over unchanged.
        assert node.pubkey == "ABCDEFGHJKLMNPQRSTUV"
        assert node.version == "2.0.14"
        assert node.shred_version == 48698

    @pytest.mark.asyncio
    async def test_not_public_without_rpc(self) -> None:
        node = await enrich_node(_node(rpc=None), StubResolver())
        assert node.is_public is False
        assert node.status == "syncing"

    @pytest.mark.asyncio
    async def test_empty_rpc_is_online_and_public(self) -> None:
        node = await enrich_node(_node(rpc=""), StubResolver())
        assert node.status == "online"
        assert node.is_public is True

    @pytest.mark.asyncio
    async def test_unresolved_location_is_none(self) -> None:
        node = await enrich_node(_node(), StubResolver({"1.2.3.4": None}))
        assert node.location is None

    @pytest.mark.asyncio
    async def test_placeholder_address_skips_lookup(self) -> None:
        resolver = StubResolver()
        node = await enrich_node(_node(gossip=None), resolver)

        assert resolver.calls == []
        assert node.ip_address == "0.0.0.0"
        assert node.port == 0
        assert node.status == "offline"

    @pytest.mark.asyncio
    async def test_resolver_exception_is_contained(self, caplog) -> None:
        with caplog.at_level("WARNING"):
            node = await enrich_node(_node(rpc="1.2.3.4:8899"), RaisingResolver())

        assert node.location is None
        assert node.status == "online"
        assert "1.2.3.4" in caplog.text


class TestEnrich:
    """enrich() fans out with bounded concurrency."""

    @pytest.mark.asyncio
    async def test_enriches_every_node_sorted_by_pubkey(self) -> None:
        raw = [_node(pubkey=p, gossip=f"1.1.1.{i}:8001") for i, p in enumerate("CAB")]
        nodes = await enrich(raw, StubResolver())

        assert [n.pubkey for n in nodes] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_geo_lookups_are_bounded(self) -> None:
        raw = [_node(pubkey=f"n{i:02d}", gossip=f"9.9.9.{i}:8001") for i in range(30)]
        resolver = StubResolver()

        nodes = await enrich(raw, resolver)

        assert len(nodes) == 30
        assert len(resolver.calls) == 30
        assert resolver.peak <= ENRICH_CONCURRENCY

    @pytest.mark.asyncio
    async def test_failed_node_is_dropped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        original = enrichment.enrich_node

        async def flaky(node: RawNode, resolver) -> object:
            if node.pubkey == "bad":
                raise RuntimeError("cannot enrich")
            return await original(node, resolver)

        monkeypatch.setattr(enrichment, "enrich_node", flaky)
        raw = [_node(pubkey="good1"), _node(pubkey="bad"), _node(pubkey="good2")]

        nodes = await enrich(raw, StubResolver())

        assert [n.pubkey for n in nodes] == ["good1", "good2"]

    @pytest.mark.asyncio
    async def test_resolver_failures_do_not_drop_nodes(self) -> None:
        raw = [_node(pubkey=f"n{i}") for i in range(4)]
        nodes = await enrich(raw, RaisingResolver())

        assert len(nodes) == 4
        assert all(n.location is None for n in nodes)

    @pytest.mark.asyncio
    async def test_empty_roster(self) -> None:
        assert await enrich([], StubResolver()) == []
