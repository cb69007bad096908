"""Async JSON-RPC client for a NEAR chain node."""

from __future__ import annotations

import asyncio
import base64
import itertools
import logging
import time
from typing import TYPE_CHECKING, Any

import aiohttp
import msgspec

from .errors import NetworkUnavailable, RpcError, RpcTimeout
from .metrics import RPC_DURATION_SECONDS, RPC_ERRORS_TOTAL, RPC_REQUESTS_TOTAL
from .networks import rpc_url

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RpcErrorBody(msgspec.Struct):
    """JSON-RPC error object as returned by nearcore."""

    message: str = ""
    name: str | None = None
    cause: dict[str, Any] | None = None
    data: Any = None


class RpcResponse(msgspec.Struct):
    """JSON-RPC 2.0 response envelope."""

    jsonrpc: str = "2.0"
    id: Any = None
    result: Any = None
    error: RpcErrorBody | None = None


_response_decoder = msgspec.json.Decoder(RpcResponse)


class NearRpcClient:
    """Minimal JSON-RPC client over aiohttp.

    Use as an async context manager, or pass an existing session which the
    client will then not close.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @classmethod
    def for_network(cls, network: str | None, timeout: float = DEFAULT_TIMEOUT) -> NearRpcClient:
        return cls(rpc_url(network), timeout=timeout)

    @property
    def url(self) -> str:
        return self._url

    async def __aenter__(self) -> NearRpcClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def call(self, method: str, params: Any) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Raises:
            RpcTimeout: If the node did not answer in time
            NetworkUnavailable: If the node is unreachable or the reply is not JSON-RPC
            RpcError: If the node answered with an error object

        """
        payload = msgspec.json.encode(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        )
        RPC_REQUESTS_TOTAL.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            session = self._get_session()
            async with session.post(
                self._url,
                data=payload,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            ) as resp:
                body = await resp.read()
                status = resp.status
        except asyncio.TimeoutError as e:
            RPC_ERRORS_TOTAL.labels(error_type="timeout").inc()
            raise RpcTimeout(f"RPC {method} timed out after {self._timeout.total}s") from e
        except aiohttp.ClientError as e:
            RPC_ERRORS_TOTAL.labels(error_type="unreachable").inc()
            raise NetworkUnavailable(f"RPC {method} failed: {e}") from e
        finally:
            RPC_DURATION_SECONDS.labels(method=method).observe(time.perf_counter() - start_time)

        try:
            response = _response_decoder.decode(body)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            RPC_ERRORS_TOTAL.labels(error_type="bad_response").inc()
            raise NetworkUnavailable(
                f"RPC {method} returned an invalid response (HTTP {status}): {e}"
            ) from e

        if response.error is not None:
            RPC_ERRORS_TOTAL.labels(error_type="rpc_error").inc()
            cause = (response.error.cause or {}).get("name")
            message = response.error.message or "RPC error"
            if response.error.data is not None:
                message = f"{message}: {response.error.data}"
            logger.debug(f"RPC {method} error: {message}")
            raise RpcError(message, name=response.error.name, cause=cause)

        return response.result

    async def block(self, finality: str = "final") -> dict[str, Any]:
        result: dict[str, Any] = await self.call("block", {"finality": finality})
        return result

    async def query(self, params: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = await self.call("query", params)
        # nearcore reports some query failures inside a successful result
        if isinstance(result, dict) and "error" in result:
            RPC_ERRORS_TOTAL.labels(error_type="query_error").inc()
            raise RpcError(str(result["error"]), name="QUERY_ERROR")
        return result

    async def view_access_key(self, account_id: str, public_key: str) -> dict[str, Any]:
        """Return ``{nonce, permission, block_hash, block_height}`` for the key."""
        return await self.query(
            {
                "request_type": "view_access_key",
                "finality": "final",
                "account_id": account_id,
                "public_key": public_key,
            }
        )

    async def call_function(self, account_id: str, method_name: str, args: bytes) -> bytes:
        """Run a view function and return its raw result bytes."""
        result = await self.query(
            {
                "request_type": "call_function",
                "finality": "final",
                "account_id": account_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(args).decode("ascii"),
            }
        )
        return bytes(result.get("result", []))

    async def broadcast_tx_commit(self, signed_tx: bytes) -> dict[str, Any]:
        """Submit a signed transaction and wait for its final execution outcome."""
        result: dict[str, Any] = await self.call(
            "broadcast_tx_commit", [base64.b64encode(signed_tx).decode("ascii")]
        )
        return result
