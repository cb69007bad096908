"""Borsh serialization of NEAR transactions.

The chain's transaction schema is declared with ``construct``:

- integers are little-endian at their declared width (u8, u32, u64, u128)
- strings and ``Vec<u8>`` are a u32 byte length followed by the bytes
- ``Vec<T>`` is a u32 element count followed by the elements
- fixed arrays (``[u8; 32]``, ``[u8; 64]``) are written raw
- ``Option<T>`` is a u8 flag (0 or 1) followed by the value when present
- enums are a u8 variant index followed by the variant's fields

The output must be byte-identical to what the wallet produces, so
:func:`deserialize` is kept as the exact inverse and rejects trailing bytes.
"""

from typing import Any

import msgspec
from construct import (
    Adapter,
    BytesInteger,
    Construct,
    ConstructError,
    Error,
    FocusedSeq,
    GreedyBytes,
    If,
    Int8ul,
    Int32ul,
    Int64ul,
    PascalString,
    Prefixed,
    PrefixedArray,
    Struct,
    Switch,
    Terminated,
    ValidationError,
    this,
)
from construct import Bytes as FixedBytes

from .errors import SerializationError
from .keypair import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH, PublicKey
from .transactions import (
    ACTION_TYPES,
    BLOCK_HASH_LENGTH,
    AccessKey,
    AddKey,
    CreateAccount,
    DeleteAccount,
    DeleteKey,
    DeployContract,
    FullAccessPermission,
    FunctionCall,
    FunctionCallPermission,
    Signature,
    SignedTransaction,
    Stake,
    Transaction,
    Transfer,
)

U8 = Int8ul
U32 = Int32ul
U64 = Int64ul
U128 = BytesInteger(16, swapped=True)
String = PascalString(U32, "utf8")
Bytes = Prefixed(U32, GreedyBytes)


def Vec(subcon: Construct) -> Construct:  # noqa: N802
    return PrefixedArray(U32, subcon)


class Option(Adapter):  # type: ignore[misc]
    """``Option<T>``: a u8 presence flag, then the value when the flag is 1."""

    def __init__(self, subcon: Construct) -> None:
        super().__init__(Struct("flag" / U8, "value" / If(this.flag == 1, subcon)))

    def _decode(self, obj: Any, context: Any, path: str) -> Any:
        if obj.flag not in (0, 1):
            raise ValidationError(f"invalid Option flag {obj.flag}", path=path)
        return obj.value

    def _encode(self, obj: Any, context: Any, path: str) -> dict[str, Any]:
        return {"flag": 0 if obj is None else 1, "value": obj}


class Record(Adapter):  # type: ignore[misc]
    """Maps a msgspec struct to a Borsh struct with the same field names, in order."""

    def __init__(self, struct_type: type[msgspec.Struct], *fields: Construct) -> None:
        super().__init__(Struct(*fields))
        self.struct_type = struct_type

    def _decode(self, obj: Any, context: Any, path: str) -> msgspec.Struct:
        values = {}
        for name in self.struct_type.__struct_fields__:
            value = obj[name]
            values[name] = list(value) if isinstance(value, list) else value
        try:
            return self.struct_type(**values)
        except ValueError as e:
            raise ValidationError(str(e), path=path) from e

    def _encode(self, obj: Any, context: Any, path: str) -> dict[str, Any]:
        if not isinstance(obj, self.struct_type):
            raise ValidationError(
                f"expected {self.struct_type.__name__}, got {type(obj).__name__}", path=path
            )
        return {name: getattr(obj, name) for name in self.struct_type.__struct_fields__}


class TaggedUnion(Adapter):  # type: ignore[misc]
    """Borsh enum whose variants are msgspec structs; the tag is the variant position."""

    def __init__(self, variants: tuple[type, ...], schemas: dict[type, Construct]) -> None:
        cases = {tag: schemas[variant] for tag, variant in enumerate(variants)}
        super().__init__(Struct("tag" / U8, "value" / Switch(this.tag, cases, default=Error)))
        self.variants = variants

    def _decode(self, obj: Any, context: Any, path: str) -> Any:
        return obj.value

    def _encode(self, obj: Any, context: Any, path: str) -> dict[str, Any]:
        if type(obj) not in self.variants:
            raise ValidationError(f"unknown variant {type(obj).__name__}", path=path)
        return {"tag": self.variants.index(type(obj)), "value": obj}


# Schema

PUBLIC_KEY = Record(PublicKey, "key_type" / U8, "data" / FixedBytes(PUBLIC_KEY_LENGTH))

SIGNATURE = Record(Signature, "key_type" / U8, "data" / FixedBytes(SIGNATURE_LENGTH))

PERMISSION_TYPES = (FunctionCallPermission, FullAccessPermission)

ACCESS_KEY = Record(
    AccessKey,
    "nonce" / U64,
    "permission"
    / TaggedUnion(
        PERMISSION_TYPES,
        {
            FunctionCallPermission: Record(
                FunctionCallPermission,
                "allowance" / Option(U128),
                "receiver_id" / String,
                "method_names" / Vec(String),
            ),
            FullAccessPermission: Record(FullAccessPermission),
        },
    ),
)

ACTION = TaggedUnion(
    ACTION_TYPES,
    {
        CreateAccount: Record(CreateAccount),
        DeployContract: Record(DeployContract, "code" / Bytes),
        FunctionCall: Record(
            FunctionCall,
            "method_name" / String,
            "args" / Bytes,
            "gas" / U64,
            "deposit" / U128,
        ),
        Transfer: Record(Transfer, "deposit" / U128),
        Stake: Record(Stake, "stake" / U128, "public_key" / PUBLIC_KEY),
        AddKey: Record(AddKey, "public_key" / PUBLIC_KEY, "access_key" / ACCESS_KEY),
        DeleteKey: Record(DeleteKey, "public_key" / PUBLIC_KEY),
        DeleteAccount: Record(DeleteAccount, "beneficiary_id" / String),
    },
)

TRANSACTION = Record(
    Transaction,
    "signer_id" / String,
    "public_key" / PUBLIC_KEY,
    "nonce" / U64,
    "receiver_id" / String,
    "block_hash" / FixedBytes(BLOCK_HASH_LENGTH),
    "actions" / Vec(ACTION),
)

SIGNED_TRANSACTION = Record(
    SignedTransaction,
    "transaction" / TRANSACTION,
    "signature" / SIGNATURE,
)


def _exact(subcon: Construct) -> Construct:
    return FocusedSeq("value", "value" / subcon, Terminated)


_CODEC_ERRORS = (ConstructError, OverflowError, TypeError, ValueError)

_TRANSACTION = _exact(TRANSACTION)
_SIGNED_TRANSACTION = _exact(SIGNED_TRANSACTION)


def _build(schema: Construct, obj: Any) -> bytes:
    try:
        data: bytes = schema.build(obj)
    except _CODEC_ERRORS as e:
        raise SerializationError(f"Cannot serialize {type(obj).__name__}: {e}") from e
    return data


def _parse(schema: Construct, data: bytes) -> Any:
    try:
        return schema.parse(data)
    except _CODEC_ERRORS as e:
        raise SerializationError(f"Malformed transaction data: {e}") from e


def serialize(tx: Transaction) -> bytes:
    """Serialize an unsigned transaction.

    Raises:
        SerializationError: If a field is out of range or of the wrong type

    """
    return _build(_TRANSACTION, tx)


def serialize_signed(signed: SignedTransaction) -> bytes:
    """Serialize a signed transaction (transaction followed by signature)."""
    return _build(_SIGNED_TRANSACTION, signed)


def deserialize(data: bytes) -> Transaction:
    """Decode bytes produced by :func:`serialize`.

    Raises:
        SerializationError: On truncated, trailing or malformed data

    """
    tx: Transaction = _parse(_TRANSACTION, data)
    return tx


def deserialize_signed(data: bytes) -> SignedTransaction:
    """Decode bytes produced by :func:`serialize_signed`."""
    signed: SignedTransaction = _parse(_SIGNED_TRANSACTION, data)
    return signed
