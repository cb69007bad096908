"""Tests for signed and read-only contract calls."""

import base64
import hashlib

import msgspec
import pytest

from nearauth.borsh import deserialize_signed, serialize
from nearauth.errors import (
    InvalidCredentials,
    MissingCredentials,
    NetworkUnavailable,
    RpcError,
    SerializationError,
    TransactionExecutionFailure,
)
from nearauth.executor import SignedCallExecutor, TransactionOutcome
from nearauth.keypair import KeyPair
from nearauth.storage import ACCOUNT_ID, PRIVATE_KEY, CredentialStore
from nearauth.transactions import FunctionCall, SignedTransaction

from .conftest import ACCESS_KEY_NONCE, BLOCK_HASH, FakeRpc

FAILURE = {
    "ActionError": {
        "index": 0,
        "kind": {"FunctionCallError": {"ExecutionError": "Smart contract panicked"}},
    }
}


@pytest.fixture
async def logged_in(credentials: CredentialStore, rfc_key_pair: KeyPair) -> CredentialStore:
    await credentials.store_key_pair(str(rfc_key_pair.public_key), rfc_key_pair.secret_key)
    await credentials.store(ACCOUNT_ID, "alice.testnet")
    return credentials


def _broadcast_transaction(fake_rpc: FakeRpc) -> SignedTransaction:
    [request] = fake_rpc.requests_for("broadcast_tx_commit")
    return deserialize_signed(base64.b64decode(request["params"][0]))


class TestCall:
    async def test_signs_and_submits(
        self,
        executor: SignedCallExecutor,
        logged_in: CredentialStore,
        fake_rpc: FakeRpc,
        rfc_key_pair: KeyPair,
    ) -> None:
        outcome = await executor.call(
            "testnet", "alice.testnet", "v1.social08.testnet", "set", {"data": {}}
        )

        assert outcome.is_success
        assert outcome.transaction_hash == "FakeTxHash"

        [view] = fake_rpc.requests_for("query")
        assert view["params"]["request_type"] == "view_access_key"
        assert view["params"]["account_id"] == "alice.testnet"
        assert view["params"]["public_key"] == str(rfc_key_pair.public_key)

        signed = _broadcast_transaction(fake_rpc)
        tx = signed.transaction
        assert tx.signer_id == "alice.testnet"
        assert tx.public_key == rfc_key_pair.public_key
        assert tx.nonce == ACCESS_KEY_NONCE + 1
        assert tx.receiver_id == "v1.social08.testnet"
        assert tx.block_hash == BLOCK_HASH
        assert tx.actions == [
            FunctionCall(
                method_name="set", args=b'{"data":{}}', gas=30_000_000_000_000, deposit=0
            )
        ]
        digest = hashlib.sha256(serialize(tx)).digest()
        assert rfc_key_pair.verify(digest, signed.signature.data)

    async def test_gas_and_deposit(
        self, executor: SignedCallExecutor, logged_in: CredentialStore, fake_rpc: FakeRpc
    ) -> None:
        await executor.call(
            "testnet", "alice.testnet", "c.testnet", "m", {}, gas="100", deposit=10**24
        )
        [action] = _broadcast_transaction(fake_rpc).transaction.actions
        assert isinstance(action, FunctionCall)
        assert action.gas == 100
        assert action.deposit == 10**24

    async def test_failed_execution_is_an_outcome(
        self, executor: SignedCallExecutor, logged_in: CredentialStore, fake_rpc: FakeRpc
    ) -> None:
        fake_rpc.results["broadcast_tx_commit"] = {
            "status": {"Failure": FAILURE},
            "transaction": {"hash": "FailedTx"},
            "receipts_outcome": [{"id": "r1"}],
        }

        outcome = await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})

        assert not outcome.is_success
        assert outcome.failure == FAILURE
        assert outcome.receipts_outcome == [{"id": "r1"}]
        with pytest.raises(TransactionExecutionFailure, match="FailedTx") as exc_info:
            outcome.raise_for_status()
        assert exc_info.value.failure == FAILURE

    async def test_missing_private_key(self, executor: SignedCallExecutor) -> None:
        with pytest.raises(MissingCredentials):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})

    async def test_missing_account(
        self, executor: SignedCallExecutor, logged_in: CredentialStore
    ) -> None:
        with pytest.raises(MissingCredentials):
            await executor.call("testnet", "", "c.testnet", "m", {})

    async def test_cleared_private_key(
        self, executor: SignedCallExecutor, logged_in: CredentialStore
    ) -> None:
        await logged_in.clear()
        with pytest.raises(MissingCredentials):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})

    async def test_malformed_private_key(
        self, executor: SignedCallExecutor, credentials: CredentialStore, fake_rpc: FakeRpc
    ) -> None:
        await credentials.store(PRIVATE_KEY, "ed25519:notakey")
        with pytest.raises(InvalidCredentials):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})
        assert fake_rpc.requests == []

    async def test_unknown_access_key(
        self, executor: SignedCallExecutor, logged_in: CredentialStore, fake_rpc: FakeRpc
    ) -> None:
        fake_rpc.results["query"] = {"error": "access key does not exist while viewing"}
        with pytest.raises(RpcError):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})
        assert fake_rpc.requests_for("broadcast_tx_commit") == []

    async def test_unreachable_rpc(self, logged_in: CredentialStore) -> None:
        executor = SignedCallExecutor(logged_in, rpc_endpoint="http://127.0.0.1:1/", timeout=2.0)
        with pytest.raises(NetworkUnavailable):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {})

    async def test_unserializable_args(
        self, executor: SignedCallExecutor, logged_in: CredentialStore
    ) -> None:
        with pytest.raises(SerializationError):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {"x": object()})

    @pytest.mark.parametrize(
        "amounts", [{"deposit": 1.5}, {"deposit": 1.0}, {"gas": True}, {"gas": "3e13"}]
    )
    async def test_non_integral_amounts_rejected(
        self,
        executor: SignedCallExecutor,
        logged_in: CredentialStore,
        fake_rpc: FakeRpc,
        amounts: dict,
    ) -> None:
        with pytest.raises(SerializationError):
            await executor.call("testnet", "alice.testnet", "c.testnet", "m", {}, **amounts)
        assert fake_rpc.requests_for("broadcast_tx_commit") == []


class TestView:
    async def test_returns_decoded_json(
        self, executor: SignedCallExecutor, fake_rpc: FakeRpc
    ) -> None:
        fake_rpc.view_results["get"] = b'{"alice.testnet":{"profile":{"name":"Alice"}}}'

        result = await executor.view(
            "testnet", "v1.social08.testnet", "get", {"keys": ["alice.testnet/profile/**"]}
        )

        assert result == {"alice.testnet": {"profile": {"name": "Alice"}}}
        params = fake_rpc.requests_for("query")[0]["params"]
        assert params["method_name"] == "get"
        assert msgspec.json.decode(base64.b64decode(params["args_base64"])) == {
            "keys": ["alice.testnet/profile/**"]
        }

    async def test_empty_result(self, executor: SignedCallExecutor) -> None:
        assert await executor.view("testnet", "c.testnet", "nothing", {}) is None

    async def test_non_json_result(self, executor: SignedCallExecutor, fake_rpc: FakeRpc) -> None:
        fake_rpc.view_results["raw"] = b"\xff\x00"
        with pytest.raises(SerializationError):
            await executor.view("testnet", "c.testnet", "raw", {})


class TestTransactionOutcome:
    def test_success_value(self) -> None:
        encoded = base64.b64encode(b'{"ok":1}').decode()
        outcome = TransactionOutcome.from_rpc({"status": {"SuccessValue": encoded}}, "h1")
        assert outcome.is_success
        assert outcome.success_value == {"ok": 1}
        assert outcome.transaction_hash == "h1"
        outcome.raise_for_status()

    def test_receipt_id_is_success(self) -> None:
        outcome = TransactionOutcome.from_rpc({"status": {"SuccessReceiptId": "r"}}, "h")
        assert outcome.is_success
        assert outcome.success_value is None

    def test_string_status_is_not_success(self) -> None:
        outcome = TransactionOutcome.from_rpc({"status": "NotStarted"}, "h")
        assert not outcome.is_success
        assert outcome.failure is None
