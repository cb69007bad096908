"""Transaction and action types for the NEAR chain.

The structs mirror the chain's Borsh schema one to one; field declaration
order here is the wire order used by :mod:`nearauth.borsh`.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Any

import base58
import msgspec

from .errors import SerializationError
from .keypair import ED25519, SIGNATURE_LENGTH, KeyPair, PublicKey

if TYPE_CHECKING:
    from .rpc import NearRpcClient

logger = logging.getLogger(__name__)

# The wallet replaces this with the access key's real nonce before signing.
PLACEHOLDER_NONCE = 1

BLOCK_HASH_LENGTH = 32

DEFAULT_GAS = 30_000_000_000_000


class CreateAccount(msgspec.Struct, frozen=True):
    pass


class DeployContract(msgspec.Struct, frozen=True):
    code: bytes


class FunctionCall(msgspec.Struct, frozen=True):
    """Invoke method_name on the receiver with JSON args, gas and a deposit."""

    method_name: str
    args: bytes
    gas: int
    deposit: int


class Transfer(msgspec.Struct, frozen=True):
    deposit: int


class Stake(msgspec.Struct, frozen=True):
    stake: int
    public_key: PublicKey


class FunctionCallPermission(msgspec.Struct, frozen=True):
    """Access key limited to calling methods of one receiver."""

    allowance: int | None
    receiver_id: str
    method_names: list[str]


class FullAccessPermission(msgspec.Struct, frozen=True):
    pass


class AccessKey(msgspec.Struct, frozen=True):
    nonce: int
    permission: FunctionCallPermission | FullAccessPermission


class AddKey(msgspec.Struct, frozen=True):
    public_key: PublicKey
    access_key: AccessKey


class DeleteKey(msgspec.Struct, frozen=True):
    public_key: PublicKey


class DeleteAccount(msgspec.Struct, frozen=True):
    beneficiary_id: str


Action = (
    CreateAccount
    | DeployContract
    | FunctionCall
    | Transfer
    | Stake
    | AddKey
    | DeleteKey
    | DeleteAccount
)

# Enum variant index of each action on the wire.
ACTION_TYPES: tuple[type, ...] = (
    CreateAccount,
    DeployContract,
    FunctionCall,
    Transfer,
    Stake,
    AddKey,
    DeleteKey,
    DeleteAccount,
)


class Transaction(msgspec.Struct, frozen=True):
    """An unsigned transaction."""

    signer_id: str
    public_key: PublicKey
    nonce: int
    receiver_id: str
    block_hash: bytes
    actions: list[Action]


class Signature(msgspec.Struct, frozen=True):
    data: bytes
    key_type: int = ED25519

    def __post_init__(self) -> None:
        if self.key_type != ED25519:
            raise ValueError(f"Unsupported signature type {self.key_type}")
        if len(self.data) != SIGNATURE_LENGTH:
            raise ValueError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(self.data)}")


class SignedTransaction(msgspec.Struct, frozen=True):
    transaction: Transaction
    signature: Signature


def encode_args(args: Any) -> bytes:
    """Encode call arguments as compact JSON bytes; bytes pass through.

    Raises:
        SerializationError: If args cannot be encoded as JSON

    """
    if isinstance(args, bytes | bytearray):
        return bytes(args)
    try:
        return msgspec.json.encode(args)
    except (msgspec.EncodeError, TypeError, OverflowError) as e:
        raise SerializationError(f"Arguments are not JSON serializable: {e}") from e


def _parse_amount(name: str, value: int | str) -> int:
    """Accept a non-negative int or a string of decimal digits, nothing else."""
    if isinstance(value, int) and not isinstance(value, bool):
        amount = value
    elif isinstance(value, str) and value.isdecimal():
        amount = int(value)
    else:
        raise SerializationError(f"{name} must be an integer or a digit string, got {value!r}")
    if amount < 0:
        raise SerializationError(f"{name} must be non-negative")
    return amount


def function_call(
    method_name: str,
    args: Any,
    gas: int | str = DEFAULT_GAS,
    deposit: int | str = 0,
) -> FunctionCall:
    """Build a FunctionCall action, accepting integer strings for gas/deposit.

    Raises:
        SerializationError: On an empty method name or non-integer amounts

    """
    if not method_name:
        raise SerializationError("method_name must not be empty")
    gas_value = _parse_amount("gas", gas)
    deposit_value = _parse_amount("deposit", deposit)
    return FunctionCall(
        method_name=method_name,
        args=encode_args(args),
        gas=gas_value,
        deposit=deposit_value,
    )


def build_unsigned_transaction(
    signer_id: str,
    public_key: PublicKey,
    receiver_id: str,
    actions: list[Action],
    block_hash: bytes,
    nonce: int = PLACEHOLDER_NONCE,
) -> Transaction:
    """Assemble a transaction; nonce defaults to the redirect-flow placeholder.

    Raises:
        SerializationError: If block_hash is not 32 bytes

    """
    if len(block_hash) != BLOCK_HASH_LENGTH:
        raise SerializationError(
            f"block_hash must be {BLOCK_HASH_LENGTH} bytes, got {len(block_hash)}"
        )
    return Transaction(
        signer_id=signer_id,
        public_key=public_key,
        nonce=nonce,
        receiver_id=receiver_id,
        block_hash=block_hash,
        actions=list(actions),
    )


def sign_transaction(transaction: Transaction, key_pair: KeyPair) -> tuple[str, SignedTransaction]:
    """Sign sha256(borsh(transaction)).

    Returns:
        Tuple of (base58 transaction hash, signed transaction)

    """
    from .borsh import serialize

    digest = hashlib.sha256(serialize(transaction)).digest()
    signature = Signature(data=key_pair.sign(digest))
    tx_hash = base58.b58encode(digest).decode("ascii")
    logger.debug(f"Signed transaction {tx_hash} for {transaction.signer_id}")
    return tx_hash, SignedTransaction(transaction=transaction, signature=signature)


async def fetch_recent_block_hash(rpc: NearRpcClient) -> bytes:
    """Return the 32-byte hash of the latest final block.

    Failures from the RPC propagate unchanged; there is no fallback hash.
    """
    block = await rpc.block(finality="final")
    try:
        block_hash = base58.b58decode(block["header"]["hash"])
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"Malformed block response: {e}") from e
    if len(block_hash) != BLOCK_HASH_LENGTH:
        raise SerializationError(f"Unexpected block hash length: {len(block_hash)}")
    return block_hash
