"""Test fixtures and utilities."""

import asyncio
import threading
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import base58
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from litestar.testing import AsyncTestClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from nearauth.config import Config
from nearauth.executor import SignedCallExecutor
from nearauth.flow import AuthenticationFlow
from nearauth.keypair import KeyPair, generate_key_pair
from nearauth.resolver import AccountResolver
from nearauth.server import create_app
from nearauth.storage import CredentialStore, MemorySecretStorage

# RFC 8032 test vector 1
RFC8032_SEED = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")
RFC8032_PUBLIC_KEY = bytes.fromhex(
    "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
)

BLOCK_HASH = bytes(range(32))
BLOCK_HASH_B58 = base58.b58encode(BLOCK_HASH).decode("ascii")

ACCESS_KEY_NONCE = 7


class FakeRpc:
    """In-process JSON-RPC node.

    ``results`` maps a method to its result, or to a callable taking the
    request params. ``errors`` maps a method to a JSON-RPC error object.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.results: dict[str, Any] = {
            "block": {"header": {"hash": BLOCK_HASH_B58, "height": 100}},
            "query": self._default_query,
            "broadcast_tx_commit": {
                "status": {"SuccessValue": ""},
                "transaction": {"hash": "FakeTxHash"},
                "receipts_outcome": [],
            },
        }
        self.errors: dict[str, dict[str, Any]] = {}
        self.view_results: dict[str, bytes] = {}
        self.raw_body: str | None = None
        self.delay = 0.0
        self.server: TestServer | None = None

    @property
    def url(self) -> str:
        assert self.server is not None
        return str(self.server.make_url("/"))

    def requests_for(self, method: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if r["method"] == method]

    def _default_query(self, params: dict[str, Any]) -> dict[str, Any]:
        if params["request_type"] == "view_access_key":
            return {
                "nonce": ACCESS_KEY_NONCE,
                "permission": "FullAccess",
                "block_hash": BLOCK_HASH_B58,
                "block_height": 100,
            }
        if params["request_type"] == "call_function":
            raw = self.view_results.get(params["method_name"], b"")
            return {"result": list(raw), "logs": [], "block_height": 100}
        return {"error": f"unsupported request_type {params['request_type']}"}

    async def handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.requests.append(body)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, status=502)

        method = body["method"]
        if method in self.errors:
            return web.json_response(
                {"jsonrpc": "2.0", "id": body["id"], "error": self.errors[method]}
            )
        result = self.results.get(method)
        if callable(result):
            result = result(body["params"])
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": result})


class IndexFixture:
    """SQLite file standing in for the explorer indexer."""

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn

    async def create(self) -> None:
        engine = create_async_engine(self.dsn)
        async with engine.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE access_keys ("
                    "public_key TEXT NOT NULL, account_id TEXT NOT NULL)"
                )
            )
        await engine.dispose()

    async def add(self, public_key: str, account_id: str) -> None:
        engine = create_async_engine(self.dsn)
        async with engine.begin() as conn:
            await conn.execute(
                text("INSERT INTO access_keys (public_key, account_id) VALUES (:pk, :acc)"),
                {"pk": public_key, "acc": account_id},
            )
        await engine.dispose()


class RecordingOpener:
    """Collects the URLs the flow asks to open."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    def open_external(self, url: str) -> None:
        self.urls.append(url)


class FailingSecretStorage:
    """Secret storage whose backend is gone."""

    async def store(self, key: str, value: str) -> None:
        raise OSError("keychain unavailable")

    async def get(self, key: str) -> str | None:
        raise OSError("keychain unavailable")


class WriteFailingSecretStorage(MemorySecretStorage):
    """Memory storage that refuses writes to the named keys."""

    def __init__(self, initial: dict[str, str] | None = None, *, fail_on: set[str]) -> None:
        super().__init__(initial)
        self.fail_on = fail_on

    async def store(self, key: str, value: str) -> None:
        if key in self.fail_on:
            raise OSError(f"keychain refused {key}")
        await super().store(key, value)


@pytest.fixture
def config() -> Config:
    """Create a test configuration."""
    return Config(network="testnet", host="127.0.0.1", port=8080, log_level="DEBUG")


@pytest.fixture
def secrets() -> MemorySecretStorage:
    return MemorySecretStorage()


@pytest.fixture
def credentials(secrets: MemorySecretStorage) -> CredentialStore:
    """Create a fresh credential store."""
    return CredentialStore(secrets)


@pytest.fixture
def rfc_key_pair() -> KeyPair:
    return generate_key_pair(RFC8032_SEED)


@pytest.fixture
async def fake_rpc() -> AsyncGenerator[FakeRpc]:
    """Start an in-process JSON-RPC node."""
    # The node runs on its own loop in a background thread: Litestar's
    # AsyncTestClient blocks the pytest loop while the app handles a request.
    rpc = FakeRpc()
    app = web.Application()
    app.router.add_post("/", rpc.handle)
    server = TestServer(app)
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    asyncio.run_coroutine_threadsafe(server.start_server(), loop).result()
    rpc.server = server
    try:
        yield rpc
    finally:
        asyncio.run_coroutine_threadsafe(server.close(), loop).result()
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()


@pytest.fixture
async def index(tmp_path: Path) -> IndexFixture:
    """Create an empty access_keys index."""
    fixture = IndexFixture(f"sqlite+aiosqlite:///{tmp_path / 'index.db'}")
    await fixture.create()
    return fixture


@pytest.fixture
async def resolver(index: IndexFixture) -> AsyncGenerator[AccountResolver]:
    resolver = AccountResolver(dsn=index.dsn, timeout=5.0)
    yield resolver
    await resolver.dispose()


@pytest.fixture
def opener() -> RecordingOpener:
    return RecordingOpener()


@pytest.fixture
def flow_factory(
    credentials: CredentialStore,
    resolver: AccountResolver,
    opener: RecordingOpener,
    fake_rpc: FakeRpc,
) -> Callable[..., AuthenticationFlow]:
    """Build flows sharing the test credentials, index and RPC node."""

    def factory(**kwargs: Any) -> AuthenticationFlow:
        options: dict[str, Any] = {
            "opener": opener,
            "network": "testnet",
            "rpc_endpoint": fake_rpc.url,
            "rpc_timeout": 5.0,
        }
        options.update(kwargs)
        return AuthenticationFlow(credentials, resolver, **options)

    return factory


@pytest.fixture
def flow(flow_factory: Callable[..., AuthenticationFlow]) -> AuthenticationFlow:
    """Create an authentication flow on testnet."""
    return flow_factory()


@pytest.fixture
def executor(credentials: CredentialStore, fake_rpc: FakeRpc) -> SignedCallExecutor:
    """Create a call executor against the fake RPC node."""
    return SignedCallExecutor(credentials, rpc_endpoint=fake_rpc.url, timeout=5.0)


@pytest.fixture
async def client(
    flow: AuthenticationFlow,
    executor: SignedCallExecutor,
) -> AsyncGenerator[AsyncTestClient]:
    """Create a test client."""
    app = create_app(flow=flow, executor=executor)
    async with AsyncTestClient(app) as client:
        yield client
