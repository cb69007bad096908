"""Signed and read-only contract calls made directly against the chain RPC."""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any

import base58
import msgspec

from .borsh import serialize_signed
from .errors import (
    MissingCredentials,
    NearAuthError,
    SerializationError,
    TransactionExecutionFailure,
)
from .keypair import KeyPair
from .metrics import SIGNED_CALLS_TOTAL
from .networks import rpc_url
from .rpc import DEFAULT_TIMEOUT, NearRpcClient
from .storage import PRIVATE_KEY
from .transactions import (
    DEFAULT_GAS,
    build_unsigned_transaction,
    encode_args,
    function_call,
    sign_transaction,
)

if TYPE_CHECKING:
    from .storage import CredentialStore

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("SuccessValue", "SuccessReceiptId")


class TransactionOutcome(msgspec.Struct, frozen=True):
    """Final execution outcome of a submitted transaction.

    A submitted transaction can still have failed on chain; check
    :attr:`is_success` (or call :meth:`raise_for_status`) before treating
    the call as applied.
    """

    transaction_hash: str
    status: dict[str, Any]
    receipts_outcome: list[dict[str, Any]] = msgspec.field(default_factory=list)

    @classmethod
    def from_rpc(cls, result: dict[str, Any], transaction_hash: str) -> TransactionOutcome:
        status = result.get("status", {})
        if isinstance(status, str):
            status = {status: None}
        tx_hash = (result.get("transaction") or {}).get("hash") or transaction_hash
        return cls(
            transaction_hash=tx_hash,
            status=status,
            receipts_outcome=list(result.get("receipts_outcome", [])),
        )

    @property
    def is_success(self) -> bool:
        return any(key in self.status for key in SUCCESS_STATUSES)

    @property
    def failure(self) -> Any:
        """The ``Failure`` payload, or None when the call did not fail."""
        return self.status.get("Failure")

    @property
    def success_value(self) -> Any:
        """Decoded JSON return value of a successful call, None when empty."""
        raw = self.status.get("SuccessValue")
        if not raw:
            return None
        data = base64.b64decode(raw)
        try:
            return msgspec.json.decode(data)
        except msgspec.DecodeError:
            return data.decode("utf-8", errors="replace")

    def raise_for_status(self) -> None:
        """Raise TransactionExecutionFailure unless the execution succeeded."""
        if not self.is_success:
            raise TransactionExecutionFailure(
                f"Transaction {self.transaction_hash} failed: {self.failure or self.status}",
                failure=self.failure,
            )


class SignedCallExecutor:
    """Signs function calls with the stored access key and submits them.

    Args:
        credentials: Credential store holding the private key
        rpc_endpoint: RPC URL used for every network (defaults to the public node)
        timeout: RPC timeout in seconds

    """

    def __init__(
        self,
        credentials: CredentialStore,
        rpc_endpoint: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._credentials = credentials
        self._rpc_endpoint = rpc_endpoint
        self._timeout = timeout

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def client(self, network: str | None) -> NearRpcClient:
        return NearRpcClient(self._rpc_endpoint or rpc_url(network), timeout=self._timeout)

    async def _load_key_pair(self) -> KeyPair:
        private_key = await self._credentials.get(PRIVATE_KEY)
        if not private_key:
            raise MissingCredentials("No private key stored, log in first")
        return KeyPair.from_string(private_key)

    async def call(
        self,
        network: str,
        account_id: str,
        contract_id: str,
        method_name: str,
        args: Any,
        gas: int | str | None = None,
        deposit: int | str | None = None,
    ) -> TransactionOutcome:
        """Sign and submit a function call as account_id.

        Returns:
            The final execution outcome, which may carry a failure status

        Raises:
            MissingCredentials: If no private key is stored
            InvalidCredentials: If the stored private key is malformed
            NetworkUnavailable: If the RPC is unreachable or times out
            RpcError: If the node rejects the request
            SerializationError: On malformed args, gas or deposit

        """
        if not account_id:
            raise MissingCredentials("No account id stored, log in first")

        try:
            key_pair = await self._load_key_pair()
            action = function_call(
                method_name,
                args,
                gas=gas if gas is not None else DEFAULT_GAS,
                deposit=deposit if deposit is not None else 0,
            )
        except NearAuthError:
            SIGNED_CALLS_TOTAL.labels(status="error").inc()
            raise
        logger.info(
            f"Calling {contract_id}.{method_name} as {account_id}, signed with {key_pair.public_key}"
        )

        try:
            async with self.client(network) as rpc:
                access_key = await rpc.view_access_key(account_id, str(key_pair.public_key))
                try:
                    nonce = int(access_key["nonce"]) + 1
                    block_hash = base58.b58decode(access_key["block_hash"])
                except (KeyError, TypeError, ValueError) as e:
                    raise SerializationError(f"Malformed access key response: {e}") from e

                tx = build_unsigned_transaction(
                    account_id, key_pair.public_key, contract_id, [action], block_hash, nonce=nonce
                )
                tx_hash, signed = sign_transaction(tx, key_pair)
                result = await rpc.broadcast_tx_commit(serialize_signed(signed))
        except NearAuthError:
            SIGNED_CALLS_TOTAL.labels(status="error").inc()
            raise

        outcome = TransactionOutcome.from_rpc(result, tx_hash)
        if outcome.is_success:
            SIGNED_CALLS_TOTAL.labels(status="success").inc()
            logger.info(f"Transaction {outcome.transaction_hash} succeeded")
        else:
            SIGNED_CALLS_TOTAL.labels(status="failure").inc()
            logger.warning(f"Transaction {outcome.transaction_hash} failed: {outcome.status}")
        return outcome

    async def view(self, network: str, contract_id: str, method_name: str, args: Any) -> Any:
        """Call a view method; no key is needed.

        Raises:
            NetworkUnavailable: If the RPC is unreachable or times out
            RpcError: If the node rejects the query

        """
        async with self.client(network) as rpc:
            raw = await rpc.call_function(contract_id, method_name, encode_args(args))
        if not raw:
            return None
        try:
            return msgspec.json.decode(raw)
        except msgspec.DecodeError as e:
            raise SerializationError(f"View result is not JSON: {e}") from e

