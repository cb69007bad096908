"""Data classes for nearauth.

This module contains dataclasses and structured types used across the codebase.
"""

from dataclasses import dataclass, field

from .types import AccountId, PublicKeyStr, SecretKeyStr


@dataclass(frozen=True, slots=True)
class Identity:
    """The single authenticated identity held by the credential store.

    Attributes:
        account_id: Resolved account id, set only after the index lookup
        public_key: Public half of the disposable access key
        private_key: Secret half, only ever used as a local signer

    """

    account_id: AccountId | None = None
    public_key: PublicKeyStr | None = None
    private_key: SecretKeyStr | None = field(default=None, repr=False)

    @property
    def has_key_pair(self) -> bool:
        return self.public_key is not None and self.private_key is not None

    @property
    def is_resolved(self) -> bool:
        return self.account_id is not None and self.has_key_pair


@dataclass(frozen=True, slots=True)
class AccountDetails:
    """Payload of the ``account-details`` notification.

    Attributes:
        network: Network the identity belongs to
        account_id: Account id, or None when not resolved / signed out
        public_key: Access key public half, or None when signed out

    """

    network: str
    account_id: AccountId | None = None
    public_key: PublicKeyStr | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "network": self.network,
            "account_id": self.account_id,
            "public_key": self.public_key,
        }
