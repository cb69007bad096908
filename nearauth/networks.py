"""Fixed public endpoints per network.

The wallet, RPC node and explorer indexer all follow the
``<service>.<network>.near.org`` naming. Anything that is not ``testnet``
is treated as ``mainnet`` for the indexer and the social contract.
"""

DEFAULT_NETWORK = "mainnet"

INDEX_USER = "public_readonly"
INDEX_PASSWORD = "nearprotocol"
INDEX_PORT = 5432

SOCIAL_CONTRACTS = {
    "mainnet": "social.near",
    "testnet": "v1.social08.testnet",
}


def normalize_network(network: str | None) -> str:
    """Return the network name, defaulting to mainnet when unset."""
    return network or DEFAULT_NETWORK


def rpc_url(network: str | None) -> str:
    return f"https://rpc.{normalize_network(network)}.near.org"


def wallet_url(network: str | None) -> str:
    """Base URL of the external wallet, with a trailing slash."""
    return f"https://wallet.{normalize_network(network)}.near.org/"


def index_dsn(network: str | None) -> str:
    """SQLAlchemy DSN of the read-only explorer indexer for a network."""
    name = "testnet" if network == "testnet" else "mainnet"
    return (
        f"postgresql+asyncpg://{INDEX_USER}:{INDEX_PASSWORD}"
        f"@{name}.db.explorer.indexer.near.dev:{INDEX_PORT}/{name}_explorer"
    )


def social_contract_id(network: str | None) -> str:
    return SOCIAL_CONTRACTS["testnet" if network == "testnet" else "mainnet"]
