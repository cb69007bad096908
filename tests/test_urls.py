"""Tests for wallet login and sign links."""

import base64
from urllib.parse import parse_qs, unquote, urlparse

import msgspec
import pytest

from nearauth.borsh import deserialize
from nearauth.errors import NetworkUnavailable, RpcError, SerializationError
from nearauth.keypair import KeyPair, generate_key_pair
from nearauth.rpc import NearRpcClient
from nearauth.transactions import FunctionCall, Transaction
from nearauth.urls import build_login_url, build_sign_url

from .conftest import BLOCK_HASH, RFC8032_SEED, FakeRpc


def _decode_transactions(url: str) -> list[Transaction]:
    query = parse_qs(urlparse(url).query)
    return [deserialize(base64.b64decode(part)) for part in query["transactions"][0].split(",")]


class TestLoginUrl:
    def test_fixed_seed_testnet(self) -> None:
        public_key = str(generate_key_pair(RFC8032_SEED).public_key)
        encoded = public_key.replace(":", "%3A")

        url = build_login_url("testnet", public_key, "Ext", "v1.social08.testnet")

        assert url == (
            "https://wallet.testnet.near.org/login/?title=Ext"
            f"&public_key={encoded}&contract_id=v1.social08.testnet"
        )

    def test_parses_and_public_key_decodes_to_input(self) -> None:
        public_key = str(generate_key_pair().public_key)
        url = build_login_url("mainnet", public_key, "Ext")

        parsed = urlparse(url)
        assert parsed.scheme == "https"
        assert parsed.netloc == "wallet.mainnet.near.org"
        assert parsed.path == "/login/"
        assert parse_qs(parsed.query)["public_key"] == [public_key]
        assert "contract_id" not in parse_qs(parsed.query)

    def test_contract_id_is_lowercased(self) -> None:
        url = build_login_url("testnet", "ed25519:abc", "Ext", "V1.Social08.Testnet")
        assert url.endswith("&contract_id=v1.social08.testnet")

    def test_title_is_not_encoded(self) -> None:
        url = build_login_url("testnet", "ed25519:abc", "My Ext")
        assert "title=My Ext&" in url

    @pytest.mark.parametrize("network", [None, ""])
    def test_empty_network_means_mainnet(self, network: str | None) -> None:
        url = build_login_url(network, "ed25519:abc", "Ext")
        assert url.startswith("https://wallet.mainnet.near.org/login/")

    def test_public_key_percent_encoded(self) -> None:
        url = build_login_url("testnet", "ed25519:a/b+c", "Ext")
        assert "public_key=ed25519%3Aa%2Fb%2Bc" in url
        assert unquote("ed25519%3Aa%2Fb%2Bc") == "ed25519:a/b+c"


class TestSignUrl:
    async def test_decodes_back_to_transaction(self, fake_rpc: FakeRpc) -> None:
        async with NearRpcClient(fake_rpc.url) as rpc:
            url = await build_sign_url(
                "alice.testnet",
                "set",
                {"data": {"alice.testnet": {}}},
                "5",
                "30000000000000",
                "v1.social08.testnet",
                meta="m1",
                callback_url="https://example.org/cb",
                network="testnet",
                rpc=rpc,
            )

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://wallet.testnet.near.org/sign"
        )
        query = parse_qs(parsed.query)
        assert query["callbackUrl"] == ["https://example.org/cb"]
        assert query["meta"] == ["m1"]

        [tx] = _decode_transactions(url)
        assert tx.signer_id == "alice.testnet"
        assert tx.receiver_id == "v1.social08.testnet"
        assert tx.nonce == 1
        assert tx.block_hash == BLOCK_HASH
        [action] = tx.actions
        assert isinstance(action, FunctionCall)
        assert action.method_name == "set"
        assert msgspec.json.decode(action.args) == {"data": {"alice.testnet": {}}}
        assert action.gas == 30_000_000_000_000
        assert action.deposit == 5

        [block_request] = fake_rpc.requests_for("block")
        assert block_request["params"] == {"finality": "final"}

    async def test_human_deposit_is_converted(self, fake_rpc: FakeRpc) -> None:
        async with NearRpcClient(fake_rpc.url) as rpc:
            url = await build_sign_url(
                "alice.testnet", "m", {}, 1.5, 100, "c.testnet", network="testnet", rpc=rpc
            )
        [tx] = _decode_transactions(url)
        assert tx.actions[0].deposit == 1_500_000_000_000_000_000_000_000

    async def test_unconvertible_human_deposit_defaults_to_zero(self, fake_rpc: FakeRpc) -> None:
        async with NearRpcClient(fake_rpc.url) as rpc:
            url = await build_sign_url(
                "alice.testnet", "m", {}, float("nan"), 100, "c.testnet", rpc=rpc
            )
        [tx] = _decode_transactions(url)
        assert tx.actions[0].deposit == 0

    async def test_defaults(self, fake_rpc: FakeRpc, rfc_key_pair: KeyPair) -> None:
        async with NearRpcClient(fake_rpc.url) as rpc:
            url = await build_sign_url(
                "alice.near",
                "m",
                {},
                None,
                100,
                "c.near",
                rpc=rpc,
                public_key=rfc_key_pair.public_key,
            )
        assert url.startswith("https://wallet.mainnet.near.org/sign?")
        query = parse_qs(urlparse(url).query, keep_blank_values=True)
        assert query["callbackUrl"] == [""]
        assert "meta" not in query
        [tx] = _decode_transactions(url)
        assert tx.public_key == rfc_key_pair.public_key

    async def test_malformed_raw_deposit(self, fake_rpc: FakeRpc) -> None:
        async with NearRpcClient(fake_rpc.url) as rpc:
            with pytest.raises(SerializationError):
                await build_sign_url("alice.near", "m", {}, "1.5", 100, "c.near", rpc=rpc)

    async def test_rpc_error_propagates(self, fake_rpc: FakeRpc) -> None:
        fake_rpc.errors["block"] = {
            "code": -32000,
            "message": "Server error",
            "name": "HANDLER_ERROR",
        }
        async with NearRpcClient(fake_rpc.url) as rpc:
            with pytest.raises(RpcError):
                await build_sign_url("alice.near", "m", {}, "0", 100, "c.near", rpc=rpc)

    async def test_unreachable_rpc_has_no_fallback(self) -> None:
        async with NearRpcClient("http://127.0.0.1:1/", timeout=2.0) as rpc:
            with pytest.raises(NetworkUnavailable):
                await build_sign_url("alice.near", "m", {}, "0", 100, "c.near", rpc=rpc)
