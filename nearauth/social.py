"""Publishing widgets to the social-graph contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .networks import social_contract_id

if TYPE_CHECKING:
    from .executor import SignedCallExecutor, TransactionOutcome


def widget_key(name: str) -> str:
    """Storage key of a widget: lowercased name with spaces removed."""
    return name.lower().replace(" ", "")


def build_widget_args(account_id: str, name: str, tag: str, code: str) -> dict[str, Any]:
    """Arguments of the social contract's ``set`` call for one widget."""
    return {
        "data": {
            account_id: {
                "widget": {
                    widget_key(name): {
                        "": code,
                        "metadata": {
                            "name": name,
                            "tags": {tag: ""},
                        },
                    }
                }
            }
        }
    }


async def publish_widget(
    executor: SignedCallExecutor,
    network: str,
    account_id: str,
    name: str,
    tag: str,
    code: str,
    contract_id: str | None = None,
) -> TransactionOutcome:
    """Store widget source under the account on the social contract."""
    return await executor.call(
        network,
        account_id,
        contract_id or social_contract_id(network),
        "set",
        build_widget_args(account_id, name, tag, code),
    )
