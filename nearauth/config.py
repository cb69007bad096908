"""Configuration management using msgspec Struct."""

import argparse
import os
from pathlib import Path

import msgspec

from .networks import social_contract_id

VALID_NETWORKS = {"mainnet", "testnet"}


class Config(msgspec.Struct, frozen=True):
    """Application configuration using msgspec Struct."""

    # Chain settings
    network: str = "mainnet"
    app_name: str = "Ext"
    contract_id: str | None = None

    # Endpoint overrides (self-hosted nodes, tests)
    rpc_url: str | None = None
    index_dsn: str | None = None

    # Timeouts in seconds for external calls
    rpc_timeout: float = 30.0
    index_timeout: float = 15.0

    # Control server settings
    host: str = "127.0.0.1"
    port: int = 8080

    # Logging
    log_level: str = "INFO"

    # Metrics settings
    metrics_host: str = "127.0.0.1"
    metrics_port: int = 8081

    # Secret storage location; in-memory when unset
    data_dir: Path | None = None

    # Open wallet URLs in the local browser
    open_browser: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.network not in VALID_NETWORKS:
            raise ValueError(f"network must be one of {VALID_NETWORKS}, got {self.network}")

        if not self.app_name:
            raise ValueError("app_name must not be empty")

        if self.port < 1 or self.port > 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")

        if self.metrics_port < 1 or self.metrics_port > 65535:
            raise ValueError(f"metrics_port must be between 1 and 65535, got {self.metrics_port}")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {self.log_level}")

        if self.rpc_timeout <= 0:
            raise ValueError(f"rpc_timeout must be positive, got {self.rpc_timeout}")

        if self.index_timeout <= 0:
            raise ValueError(f"index_timeout must be positive, got {self.index_timeout}")

        if self.data_dir is not None:
            if not self.data_dir.exists():
                raise ValueError(f"data_dir does not exist: {self.data_dir}")
            if not self.data_dir.is_dir():
                raise ValueError(f"data_dir must be a directory: {self.data_dir}")

    @property
    def normalized_log_level(self) -> str:
        """Return normalized uppercase log level."""
        return self.log_level.upper()

    @property
    def target_contract_id(self) -> str:
        """Contract the login and permission grant are scoped to."""
        return self.contract_id or social_contract_id(self.network)


def get_config() -> Config:
    """Parse command line arguments and return configuration.

    When NEARAUTH_FROM_ENV is set (container deployments), configuration is
    loaded from NEARAUTH_* environment variables instead of CLI args.
    """
    if os.environ.get("NEARAUTH_FROM_ENV") is not None:
        return _get_config_from_env()

    parser = argparse.ArgumentParser(
        description="nearauth - delegated NEAR wallet login and signed contract calls",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--network", choices=sorted(VALID_NETWORKS), default="mainnet")
    parser.add_argument("--app-name", default="Ext", help="Title shown by the wallet on login")
    parser.add_argument(
        "--contract-id",
        default=None,
        help="Contract the access key is scoped to (default: social contract of the network)",
    )
    parser.add_argument("--rpc-url", default=None, help="Override the chain RPC endpoint")
    parser.add_argument("--index-dsn", default=None, help="Override the indexer database DSN")
    parser.add_argument("--rpc-timeout", type=float, default=30.0, help="RPC timeout in seconds")
    parser.add_argument(
        "--index-timeout", type=float, default=15.0, help="Indexer query timeout in seconds"
    )
    parser.add_argument("--host", default="127.0.0.1", help="Control server host")
    parser.add_argument("-p", "--port", type=int, default=8080, help="Control server port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level",
    )
    parser.add_argument("--metrics-host", default="127.0.0.1", help="Host for metrics server")
    parser.add_argument("--metrics-port", type=int, default=8081, help="Port for metrics server")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the secret storage file (in-memory when omitted)",
    )
    parser.add_argument(
        "--open-browser",
        action="store_true",
        default=False,
        help="Open wallet URLs in the local browser",
    )

    args = parser.parse_args()

    config_dict: dict[str, object] = {
        "network": args.network,
        "app_name": args.app_name,
        "contract_id": args.contract_id,
        "rpc_url": args.rpc_url,
        "index_dsn": args.index_dsn,
        "rpc_timeout": args.rpc_timeout,
        "index_timeout": args.index_timeout,
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level,
        "metrics_host": args.metrics_host,
        "metrics_port": args.metrics_port,
        "data_dir": args.data_dir,
        "open_browser": args.open_browser,
    }

    return _build_config(config_dict)


def _get_config_from_env() -> Config:
    """Load configuration from NEARAUTH_* environment variables."""
    config_dict: dict[str, object] = {
        "network": os.getenv("NEARAUTH_NETWORK", "mainnet"),
        "app_name": os.getenv("NEARAUTH_APP_NAME", "Ext"),
        "contract_id": os.getenv("NEARAUTH_CONTRACT_ID"),
        "rpc_url": os.getenv("NEARAUTH_RPC_URL"),
        "index_dsn": os.getenv("NEARAUTH_INDEX_DSN"),
        "rpc_timeout": float(os.getenv("NEARAUTH_RPC_TIMEOUT", "30")),
        "index_timeout": float(os.getenv("NEARAUTH_INDEX_TIMEOUT", "15")),
        "host": os.getenv("NEARAUTH_HOST", "0.0.0.0"),
        "port": int(os.getenv("NEARAUTH_PORT", "8080")),
        "log_level": os.getenv("NEARAUTH_LOG_LEVEL", "INFO"),
        "metrics_host": os.getenv("NEARAUTH_METRICS_HOST", "127.0.0.1"),
        "metrics_port": int(os.getenv("NEARAUTH_METRICS_PORT", "8081")),
        "data_dir": Path(os.environ["NEARAUTH_DATA_DIR"]) if os.getenv("NEARAUTH_DATA_DIR") else None,
        "open_browser": os.getenv("NEARAUTH_OPEN_BROWSER", "").lower() in {"1", "true", "yes"},
    }

    return _build_config(config_dict)


def _build_config(config_dict: dict[str, object]) -> Config:
    # Path values are not msgspec builtins, so they are passed through
    # the constructor; __post_init__ performs the validation.
    try:
        return Config(**config_dict)  # type: ignore[arg-type]
    except TypeError as e:
        raise ValueError(f"Configuration validation error: {e}") from e
