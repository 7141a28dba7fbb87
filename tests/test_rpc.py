"""Tests for pnodemap.rpc — the JSON-RPC roster client."""

import json

import httpx
import pytest

from pnodemap.rpc import RpcClient, RpcError

URL = "http://rpc.test:8899"


def _client(handler) -> httpx.AsyncClient:
    """An ``httpx.AsyncClient`` served by *handler*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _rpc_result(result: object) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


class TestCall:
    """RpcClient.call() request shape and error mapping."""

    @pytest.mark.asyncio
    async def test_request_envelope(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return _rpc_result("ok")

        async with _client(handler) as http:
            result = await RpcClient(URL, http).call("getClusterNodes")

        assert result == "ok"
        request = captured[0]
        assert request.method == "POST"
        assert request.url.host == "rpc.test"
        assert request.url.port == 8899
        assert json.loads(request.content) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getClusterNodes",
            "params": [],
        }

    @pytest.mark.asyncio
    async def test_params_are_passed(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return _rpc_result(None)

        async with _client(handler) as http:
            await RpcClient(URL, http).call("getBalance", ["abc"])

        assert bodies[0]["params"] == ["abc"]

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="HTTP 503"):
                await RpcClient(URL, http).call("getClusterNodes")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="ConnectError") as exc_info:
                await RpcClient(URL, http).call("getClusterNodes")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert exc_info.value.method == "getClusterNodes"

    @pytest.mark.asyncio
    async def test_timeout_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="ReadTimeout"):
                await RpcClient(URL, http).call("getClusterNodes")

    @pytest.mark.asyncio
    async def test_rpc_error_object_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {"code": -32601, "message": "Method not found"},
                },
            )

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="Method not found") as exc_info:
                await RpcClient(URL, http).call("nope")

        assert exc_info.value.code == -32601

    @pytest.mark.asyncio
    async def test_empty_error_object_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {}, "result": "x"}
            )

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="RPC error"):
                await RpcClient(URL, http).call("getVersion")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="not valid JSON"):
                await RpcClient(URL, http).call("getClusterNodes")


class TestGetClusterNodes:
    """get_cluster_nodes() parses the roster."""

    @pytest.mark.asyncio
    async def test_parses_entries(self) -> None:
        roster = [
            {"pubkey": "A" * 44, "gossip": "1.2.3.4:8001", "rpc": "1.2.3.4:8899"},
            {"pubkey": "B" * 44, "gossip": "5.6.7.8:8001", "rpc": None},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return _rpc_result(roster)

        async with _client(handler) as http:
            nodes = await RpcClient(URL, http).get_cluster_nodes()

        assert [n.pubkey for n in nodes] == ["A" * 44, "B" * 44]
        assert nodes[0].rpc == "1.2.3.4:8899"
        assert nodes[1].rpc is None

    @pytest.mark.asyncio
    async def test_skips_unparsable_entries(self) -> None:
        roster = [{"pubkey": "good"}, {"gossip": "1.1.1.1:1"}, "junk"]

        def handler(request: httpx.Request) -> httpx.Response:
            return _rpc_result(roster)

        async with _client(handler) as http:
            nodes = await RpcClient(URL, http).get_cluster_nodes()

        assert [n.pubkey for n in nodes] == ["good"]

    @pytest.mark.asyncio
    async def test_non_list_result_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _rpc_result({"unexpected": True})

        async with _client(handler) as http:
            with pytest.raises(RpcError, match="expected a list"):
                await RpcClient(URL, http).get_cluster_nodes()

    @pytest.mark.asyncio
    async def test_empty_roster(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _rpc_result([])

        async with _client(handler) as http:
            assert await RpcClient(URL, http).get_cluster_nodes() == []


class TestInfoMethods:
    """The thin wrappers call the right methods."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("attr", "method", "result"),
        [
            ("get_version", "getVersion", {"solana-core": "2.0.14", "feature-set": 1}),
            ("get_epoch_info", "getEpochInfo", {"epoch": 7, "slotIndex": 3}),
            ("get_slot_leader", "getSlotLeader", "Leader111"),
        ],
    )
    async def test_method_names(self, attr: str, method: str, result: object) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(json.loads(request.content)["method"])
            return _rpc_result(result)

        async with _client(handler) as http:
            got = await getattr(RpcClient(URL, http), attr)()

        assert methods == [method]
        assert got == result
