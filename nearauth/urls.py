"""Redirect URLs for the external NEAR wallet.

Two kinds of links are produced:

- a login link asking the wallet to add a public key to the user's account
- a sign link carrying Borsh-serialized, base64-encoded transactions for
  the wallet to sign and submit
"""

from __future__ import annotations

import base64
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode, urljoin

from .borsh import serialize
from .keypair import generate_key_pair
from .networks import normalize_network, wallet_url
from .rpc import NearRpcClient
from .transactions import (
    DEFAULT_GAS,
    Transaction,
    build_unsigned_transaction,
    fetch_recent_block_hash,
    function_call,
)
from .units import resolve_deposit

if TYPE_CHECKING:
    from .keypair import PublicKey

logger = logging.getLogger(__name__)

# Characters left alone by JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_login_url(
    network: str | None,
    public_key: str,
    app_name: str,
    contract_id: str | None = None,
) -> str:
    """Build the wallet login link.

    Only ``public_key`` is percent-encoded; ``title`` is passed as given,
    which is what the wallet expects. ``contract_id`` is lowercased and
    omitted when not provided.
    """
    url = (
        f"{wallet_url(network)}login/?title={app_name}"
        f"&public_key={quote(public_key, safe=_URI_COMPONENT_SAFE)}"
    )
    if contract_id:
        url += f"&contract_id={contract_id.lower()}"
    return url


def encode_sign_url(
    transactions: list[Transaction],
    network: str | None = None,
    callback_url: str | None = None,
    meta: str | None = None,
) -> str:
    """Build the wallet sign link for already constructed transactions."""
    encoded = ",".join(base64.b64encode(serialize(tx)).decode("ascii") for tx in transactions)
    params = {"transactions": encoded, "callbackUrl": callback_url or ""}
    if meta:
        params["meta"] = meta
    return f"{urljoin(wallet_url(network), 'sign')}?{urlencode(params)}"


async def build_sign_url(
    account_id: str,
    method_name: str,
    args: Any,
    deposit: str | int | float | Decimal | None,
    gas: str | int,
    receiver_id: str,
    meta: str | None = None,
    callback_url: str | None = None,
    network: str | None = None,
    rpc: NearRpcClient | None = None,
    public_key: PublicKey | None = None,
) -> str:
    """Build a sign link for a single function call.

    A fresh block hash is fetched before the transaction is serialized. The
    signer public key is a throwaway key unless one is given, since the
    wallet substitutes the key it signs with.

    ``deposit`` is either a raw yoctoNEAR integer string or a human NEAR
    amount; a human amount that cannot be converted becomes zero (see
    :func:`nearauth.units.resolve_deposit`).

    Raises:
        NetworkUnavailable: If the block hash cannot be fetched
        SerializationError: On malformed arguments, gas or raw deposit

    """
    network = normalize_network(network)
    action = function_call(
        method_name,
        args,
        gas=gas if gas is not None else DEFAULT_GAS,
        deposit=resolve_deposit(deposit),
    )
    signer_key = public_key or generate_key_pair().public_key

    if rpc is None:
        async with NearRpcClient.for_network(network) as client:
            block_hash = await fetch_recent_block_hash(client)
    else:
        block_hash = await fetch_recent_block_hash(rpc)

    tx = build_unsigned_transaction(account_id, signer_key, receiver_id, [action], block_hash)
    url = encode_sign_url([tx], network=network, callback_url=callback_url, meta=meta)
    logger.debug(f"Built sign URL for {account_id} -> {receiver_id}.{method_name}")
    return url
