"""Ed25519 access-key pairs in the NEAR text encoding."""

import logging

import base58
import msgspec
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .errors import InvalidCredentials, KeyGenerationFailure

logger = logging.getLogger(__name__)

ED25519 = 0
ED25519_PREFIX = "ed25519"

SEED_LENGTH = 32
PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def _split_key_string(text: str) -> tuple[str, bytes]:
    """Split ``curve:base58`` into (curve, raw bytes); no prefix means ed25519."""
    curve, sep, encoded = text.partition(":")
    if not sep:
        curve, encoded = ED25519_PREFIX, text
    if curve.lower() != ED25519_PREFIX:
        raise ValueError(f"Unsupported key type: {curve}")
    try:
        return ED25519_PREFIX, base58.b58decode(encoded)
    except ValueError as e:
        raise ValueError(f"Invalid base58 key data: {e}") from e


class PublicKey(msgspec.Struct, frozen=True):
    """A public key as carried on the wire: key type tag plus raw bytes."""

    data: bytes
    key_type: int = ED25519

    def __post_init__(self) -> None:
        if self.key_type != ED25519:
            raise ValueError(f"Unsupported key type: {self.key_type}")
        if len(self.data) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(self.data)}")

    @classmethod
    def from_string(cls, text: str) -> "PublicKey":
        """Parse ``ed25519:<base58>``."""
        _, data = _split_key_string(text)
        return cls(data=data)

    def __str__(self) -> str:
        return f"{ED25519_PREFIX}:{base58.b58encode(self.data).decode('ascii')}"

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            VerifyKey(self.data).verify(message, signature)
        except BadSignatureError:
            return False
        return True


class KeyPair:
    """An ed25519 signing key with its public key."""

    def __init__(self, signing_key: SigningKey) -> None:
        self._signing_key = signing_key
        self._public_key = PublicKey(data=bytes(signing_key.verify_key))

    @classmethod
    def from_seed(cls, seed: bytes) -> "KeyPair":
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Seed must be {SEED_LENGTH} bytes, got {len(seed)}")
        return cls(SigningKey(seed))

    @classmethod
    def from_string(cls, text: str) -> "KeyPair":
        """Parse a stored secret key.

        Accepts the 64-byte (seed || public key) form written by
        :attr:`secret_key` and a bare 32-byte seed.

        Raises:
            InvalidCredentials: If the text is not a valid ed25519 secret key

        """
        try:
            _, raw = _split_key_string(text)
        except ValueError as e:
            raise InvalidCredentials(f"Invalid secret key: {e}") from e

        if len(raw) == SEED_LENGTH + PUBLIC_KEY_LENGTH:
            key_pair = cls.from_seed(raw[:SEED_LENGTH])
            if key_pair.public_key.data != raw[SEED_LENGTH:]:
                raise InvalidCredentials("Secret key does not match its embedded public key")
            return key_pair
        if len(raw) == SEED_LENGTH:
            return cls.from_seed(raw)
        raise InvalidCredentials(f"Invalid secret key length: {len(raw)}")

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    @property
    def secret_key(self) -> str:
        """Text form of the secret key, ``ed25519:<base58 seed+public key>``."""
        raw = bytes(self._signing_key) + self._public_key.data
        return f"{ED25519_PREFIX}:{base58.b58encode(raw).decode('ascii')}"

    def sign(self, message: bytes) -> bytes:
        """Return the detached 64-byte signature of message."""
        return self._signing_key.sign(message).signature

    def verify(self, message: bytes, signature: bytes) -> bool:
        return self._public_key.verify(message, signature)

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self._public_key})"


def generate_key_pair(seed: bytes | None = None) -> KeyPair:
    """Generate a fresh key pair from the OS CSPRNG, or from seed if given.

    Raises:
        KeyGenerationFailure: If the randomness source is unavailable

    """
    if seed is not None:
        return KeyPair.from_seed(seed)
    try:
        signing_key = SigningKey.generate()
    except Exception as e:
        logger.critical(f"Key generation failed: {e!r}")
        raise KeyGenerationFailure(f"Key generation failed: {e}") from e
    key_pair = KeyPair(signing_key)
    logger.debug(f"Generated key pair {str(key_pair.public_key)[:20]}...")
    return key_pair
