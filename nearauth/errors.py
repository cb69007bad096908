"""Error taxonomy shared by the authentication flow and the call executor."""


class NearAuthError(Exception):
    """Base class for all nearauth errors."""


class SecretStoreFailure(NearAuthError):
    """Reading or writing the secret storage failed."""


class MissingCredentials(SecretStoreFailure):
    """A required credential is not stored (or was cleared by sign-out)."""


class InvalidCredentials(SecretStoreFailure):
    """A stored credential could not be parsed."""


class KeyGenerationFailure(NearAuthError):
    """The randomness source for key generation is unavailable."""


class NetworkUnavailable(NearAuthError):
    """The chain RPC or the indexer could not be reached."""


class RpcTimeout(NetworkUnavailable):
    """The chain RPC did not answer within the configured timeout."""


class IndexUnavailable(NetworkUnavailable):
    """The read-only account index could not be queried."""


class RpcError(NearAuthError):
    """The chain RPC answered with a JSON-RPC error object."""

    def __init__(self, message: str, name: str | None = None, cause: str | None = None) -> None:
        super().__init__(message)
        self.name = name
        self.cause = cause


class AccountNotFound(NearAuthError):
    """The index has no account holding the given public key."""


class TransactionExecutionFailure(NearAuthError):
    """A transaction was submitted but its execution failed on chain."""

    def __init__(self, message: str, failure: dict | None = None) -> None:
        super().__init__(message)
        self.failure = failure


class SerializationError(NearAuthError):
    """Malformed transaction, action or argument input."""


class InvalidStateError(NearAuthError):
    """A command was issued in a state that does not accept it."""
