"""Delegated login state machine.

The flow runs in discrete steps, each triggered by a user command::

    UNAUTHENTICATED --login--> KEY_ISSUED --(login URL opened)--> AWAITING_EXTERNAL_APPROVAL
    AWAITING_EXTERNAL_APPROVAL --confirm_login--> ACCOUNT_RESOLVED
    ACCOUNT_RESOLVED --(grant URL opened)--> PERMISSION_REQUESTED --> AUTHENTICATED

``sign_out`` returns to UNAUTHENTICATED from any state. The wallet's UI
cannot be observed, so the step after the login redirect is an explicit
confirmation rather than polling; a failed confirmation leaves the flow
waiting so the user can retry.
"""

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from .errors import AccountNotFound, InvalidStateError, MissingCredentials, NearAuthError
from .keypair import generate_key_pair
from .metrics import LOGIN_TRANSITIONS_TOTAL
from .models import AccountDetails
from .networks import normalize_network, rpc_url, social_contract_id
from .rpc import DEFAULT_TIMEOUT, NearRpcClient
from .storage import ACCOUNT_ID, PUBLIC_KEY
from .urls import build_login_url, build_sign_url

if TYPE_CHECKING:
    from .resolver import AccountResolver
    from .storage import CredentialStore

logger = logging.getLogger(__name__)

GRANT_METHOD = "grant_write_permission"
GRANT_DEPOSIT = "1"  # one yoctoNEAR, raw
GRANT_GAS = "30000000000000"

AccountDetailsListener = Callable[[AccountDetails], None]


class AuthState(Enum):
    """States of the delegated login flow."""

    UNAUTHENTICATED = "unauthenticated"
    KEY_ISSUED = "key_issued"
    AWAITING_EXTERNAL_APPROVAL = "awaiting_external_approval"
    ACCOUNT_RESOLVED = "account_resolved"
    PERMISSION_REQUESTED = "permission_requested"
    AUTHENTICATED = "authenticated"


_PRE_RESOLUTION_STATES = frozenset(
    {AuthState.UNAUTHENTICATED, AuthState.KEY_ISSUED, AuthState.AWAITING_EXTERNAL_APPROVAL}
)


class ExternalOpener(Protocol):
    """Capability to open a URL in a separate, trusted surface."""

    def open_external(self, url: str) -> None: ...


class LoggingOpener:
    """Leaves opening to the caller; the URL is only logged."""

    def open_external(self, url: str) -> None:
        logger.info(f"Open in the wallet: {url}")


class BrowserOpener:
    """Opens URLs in the user's default web browser."""

    def open_external(self, url: str) -> None:
        if not webbrowser.open(url):
            logger.warning(f"Could not open a browser, open manually: {url}")


@dataclass(frozen=True, slots=True)
class LoginConfirmation:
    """Result of a successful confirm-login.

    Attributes:
        account_id: Account the access key belongs to
        sign_url: Wallet link requesting write permission for the account

    """

    account_id: str
    sign_url: str


class AuthenticationFlow:
    """Authentication context for the single active identity.

    Created on activation and passed to whatever needs the identity; all
    key material lives in the credential store, never on this object.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        resolver: AccountResolver,
        opener: ExternalOpener | None = None,
        network: str | None = None,
        app_name: str = "Ext",
        contract_id: str | None = None,
        rpc_endpoint: str | None = None,
        rpc_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._credentials = credentials
        self._resolver = resolver
        self._opener = opener or LoggingOpener()
        self._network = normalize_network(network)
        self._app_name = app_name
        self._contract_id = contract_id or social_contract_id(self._network)
        self._rpc_endpoint = rpc_endpoint
        self._rpc_timeout = rpc_timeout
        self._listeners: list[AccountDetailsListener] = []
        self._state = AuthState.UNAUTHENTICATED

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def network(self) -> str:
        return self._network

    @property
    def contract_id(self) -> str:
        return self._contract_id

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def add_listener(self, listener: AccountDetailsListener) -> None:
        """Subscribe to ``account-details`` notifications."""
        self._listeners.append(listener)

    def _set_state(self, state: AuthState) -> None:
        if state is not self._state:
            logger.debug(f"Auth state {self._state.value} -> {state.value}")
        self._state = state
        LOGIN_TRANSITIONS_TOTAL.labels(state=state.value).inc()

    def _rpc_client(self) -> NearRpcClient:
        return NearRpcClient(self._rpc_endpoint or rpc_url(self._network), timeout=self._rpc_timeout)

    async def account_details(self) -> AccountDetails:
        """Current account details read from the credential store."""
        return AccountDetails(
            network=self._network,
            account_id=await self._credentials.get(ACCOUNT_ID) or None,
            public_key=await self._credentials.get(PUBLIC_KEY) or None,
        )

    async def notify(self) -> AccountDetails:
        """Send the current account details to every listener."""
        details = await self.account_details()
        for listener in self._listeners:
            try:
                listener(details)
            except Exception:
                logger.exception("Account details listener failed")
        return details

    async def restore(self) -> AuthState:
        """Derive the state from credentials persisted by an earlier session."""
        identity = await self._credentials.identity()
        if identity.is_resolved:
            self._set_state(AuthState.AUTHENTICATED)
        elif identity.has_key_pair:
            self._set_state(AuthState.AWAITING_EXTERNAL_APPROVAL)
        else:
            self._set_state(AuthState.UNAUTHENTICATED)
        logger.info(f"Restored auth state: {self._state.value}")
        return self._state

    async def login(self) -> str:
        """Issue a fresh access key and open the wallet login link.

        Returns:
            The login URL handed to the opener

        Raises:
            SecretStoreFailure: If the key pair cannot be persisted
            KeyGenerationFailure: If no secure randomness is available

        """
        key_pair = generate_key_pair()
        public_key = str(key_pair.public_key)
        try:
            await self._credentials.store_key_pair(public_key, key_pair.secret_key)
            await self._credentials.store(ACCOUNT_ID, "")
        except NearAuthError:
            await self._discard_partial_key_pair()
            self._set_state(AuthState.UNAUTHENTICATED)
            raise
        self._set_state(AuthState.KEY_ISSUED)
        logger.info(f"Stored new access key {public_key[:20]}...")

        url = build_login_url(self._network, public_key, self._app_name, self._contract_id)
        self._opener.open_external(url)
        self._set_state(AuthState.AWAITING_EXTERNAL_APPROVAL)
        await self.notify()
        return url

    async def _discard_partial_key_pair(self) -> None:
        try:
            await self._credentials.clear()
        except NearAuthError as e:
            logger.error(f"Could not discard partially stored key pair: {e}")

    async def confirm_login(self) -> LoginConfirmation:
        """Resolve the account that approved the stored key, then request permission.

        Raises:
            MissingCredentials: If no key was issued
            AccountNotFound: If the index has no account for the key yet
            IndexUnavailable: If the index could not be queried
            NetworkUnavailable: If the permission link could not be built

        """
        public_key = await self._credentials.get(PUBLIC_KEY)
        if not public_key:
            raise MissingCredentials("No access key issued, log in first")

        account_id = await self._resolver.resolve_account_by_public_key(self._network, public_key)
        if account_id is None:
            if self._state in _PRE_RESOLUTION_STATES:
                self._set_state(AuthState.AWAITING_EXTERNAL_APPROVAL)
            raise AccountNotFound(
                "Login details were not found on the NEAR blockchain. Please try again later"
            )

        await self._credentials.store(ACCOUNT_ID, account_id)
        self._set_state(AuthState.ACCOUNT_RESOLVED)
        logger.info(f"NEAR account {account_id} successfully logged in")

        sign_url = await self.grant_permission(account_id)
        return LoginConfirmation(account_id=account_id, sign_url=sign_url)

    async def grant_permission(self, account_id: str) -> str:
        """Open a sign link granting the social contract write permission.

        The flow does not wait for the grant to land on chain; it reports
        the account as authenticated once the link is handed off.

        Raises:
            InvalidStateError: If no access key has been issued

        """
        public_key = await self._credentials.get(PUBLIC_KEY)
        if not public_key:
            raise InvalidStateError("No access key issued, log in before requesting permission")
        args = {"public_key": public_key, "keys": [account_id]}

        async with self._rpc_client() as rpc:
            url = await build_sign_url(
                account_id,
                GRANT_METHOD,
                args,
                GRANT_DEPOSIT,
                GRANT_GAS,
                self._contract_id,
                network=self._network,
                rpc=rpc,
            )
        self._opener.open_external(url)
        self._set_state(AuthState.PERMISSION_REQUESTED)

        self._set_state(AuthState.AUTHENTICATED)
        await self.notify()
        return url

    async def sign_out(self) -> AccountDetails:
        """Clear every credential and notify listeners. Safe to repeat.

        The flow is signed out even when some entries could not be cleared.

        Raises:
            SecretStoreFailure: After listeners were notified, if an entry could not be cleared

        """
        try:
            await self._credentials.clear()
        finally:
            self._set_state(AuthState.UNAUTHENTICATED)
            details = await self.notify()
        logger.info("Signed out")
        return details
