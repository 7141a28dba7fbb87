"""JSON-RPC client for the pNode network (cluster roster and node info)."""

import logging
from typing import Any

import httpx

from pnodemap.models import RawNode

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """Raised when a JSON-RPC call fails.

    Covers transport failures (timeouts included), non-2xx responses,
    unparsable bodies, and error objects in the response envelope.

    Attributes:
        method: The RPC method that failed.
        code: The JSON-RPC error code, when the server sent one.
    """

    def __init__(self, message: str, *, method: str, code: int | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code


class RpcClient:
    """Minimal JSON-RPC 2.0 client over a shared ``httpx.AsyncClient``.

    Args:
        url: The RPC endpoint URL.
        client: HTTP client to send requests with.  Its timeout applies.
    """

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self.url = url
        self._client = client

    async def call(self, method: str, params: list | None = None) -> Any:
        """Invoke *method* and return the ``result`` member of the response.

        Raises:
            RpcError: On any transport, HTTP or RPC-level failure.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC %s -> %s", method, self.url)

        try:
            resp = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise RpcError(
                f"RPC request {method} failed: {type(exc).__name__}: {exc}",
                method=method,
            ) from exc

        if not resp.is_success:
            raise RpcError(
                f"RPC request {method} failed: HTTP {resp.status_code} "
                f"{resp.reason_phrase}",
                method=method,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise RpcError(
                f"RPC response for {method} is not valid JSON", method=method
            ) from exc

        if not isinstance(body, dict):
            raise RpcError(
                f"RPC response for {method} is not a JSON object", method=method
            )

        error = body.get("error")
        if error is not None:
            message = error.get("message") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise RpcError(f"RPC error: {message}", method=method, code=code)

        return body.get("result")

    async def get_cluster_nodes(self) -> list[RawNode]:
        """Fetch the cluster-node roster.

        Entries that can't be parsed are logged and skipped.

        Raises:
            RpcError: If the call fails or the result is not a list.
        """
        result = await self.call("getClusterNodes")
        if not isinstance(result, list):
            raise RpcError(
                f"getClusterNodes returned {type(result).__name__}, expected a list",
                method="getClusterNodes",
            )

        nodes: list[RawNode] = []
        for entry in result:
            if not isinstance(entry, dict):
                logger.warning("Skipping non-object roster entry: %r", entry)
                continue
            try:
                nodes.append(RawNode.from_rpc(entry))
            except ValueError as exc:
                logger.warning("Skipping roster entry: %s", exc)

        logger.info("Fetched %d cluster node(s) from %s", len(nodes), self.url)
        return nodes

    async def get_version(self) -> dict:
        """Return the node software version (``solana-core``, ``feature-set``)."""
        return await self.call("getVersion")

    async def get_epoch_info(self) -> dict:
        """Return the current epoch, slot index and slots-per-epoch."""
        return await self.call("getEpochInfo")

    async def get_slot_leader(self) -> str:
        """Return the pubkey of the current slot leader."""
        return await self.call("getSlotLeader")
