"""Type definitions for nearauth.

Domain-specific NewTypes that keep account ids and text-encoded keys apart.
"""

from typing import NewType

AccountId = NewType("AccountId", str)
"""NEAR account id, e.g. ``alice.near``."""

PublicKeyStr = NewType("PublicKeyStr", str)
"""Text form of a public key, ``ed25519:<base58>``."""

SecretKeyStr = NewType("SecretKeyStr", str)
"""Text form of a secret key, ``ed25519:<base58 seed+public key>``."""
