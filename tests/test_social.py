"""Tests for widget publishing on the social contract."""

import base64

import msgspec

from nearauth.borsh import deserialize_signed
from nearauth.executor import SignedCallExecutor
from nearauth.keypair import KeyPair
from nearauth.social import build_widget_args, publish_widget, widget_key
from nearauth.storage import CredentialStore

from .conftest import FakeRpc


def test_widget_key() -> None:
    assert widget_key("My Cool Widget") == "mycoolwidget"


def test_build_widget_args() -> None:
    assert build_widget_args("alice.near", "Hello World", "app", "return <div/>;") == {
        "data": {
            "alice.near": {
                "widget": {
                    "helloworld": {
                        "": "return <div/>;",
                        "metadata": {"name": "Hello World", "tags": {"app": ""}},
                    }
                }
            }
        }
    }


async def test_publish_widget_calls_set(
    executor: SignedCallExecutor,
    credentials: CredentialStore,
    rfc_key_pair: KeyPair,
    fake_rpc: FakeRpc,
) -> None:
    await credentials.store_key_pair(str(rfc_key_pair.public_key), rfc_key_pair.secret_key)

    outcome = await publish_widget(
        executor, "testnet", "alice.testnet", "Hello", "app", "return 1;"
    )

    assert outcome.is_success
    [request] = fake_rpc.requests_for("broadcast_tx_commit")
    tx = deserialize_signed(base64.b64decode(request["params"][0])).transaction
    assert tx.receiver_id == "v1.social08.testnet"
    [action] = tx.actions
    assert action.method_name == "set"
    assert msgspec.json.decode(action.args) == build_widget_args(
        "alice.testnet", "Hello", "app", "return 1;"
    )
