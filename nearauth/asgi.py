"""ASGI entry point for Granian.

This module provides the ASGI application for Granian. Configuration is
loaded from the NEARAUTH_CONFIG environment variable set by the main process.
"""

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import Config
from .server import create_app

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar import Litestar
    from litestar.types import LifeSpanScope, Scope

logger = logging.getLogger(__name__)

CONFIG_ENV = "NEARAUTH_CONFIG"


def load_config_from_env() -> Config | None:
    """Load configuration from environment variable."""
    config_json = os.environ.get(CONFIG_ENV)
    if not config_json:
        return None

    try:
        config_dict = json.loads(config_json)
        if config_dict.get("data_dir"):
            config_dict["data_dir"] = Path(config_dict["data_dir"])
        return Config(**config_dict)
    except Exception as e:
        logger.error(f"Failed to load config from environment: {e}")
        return None


def store_config_in_env(config: Config) -> None:
    """Store configuration in environment variable for the worker process."""
    config_dict = {
        "network": config.network,
        "app_name": config.app_name,
        "contract_id": config.contract_id,
        "rpc_url": config.rpc_url,
        "index_dsn": config.index_dsn,
        "rpc_timeout": config.rpc_timeout,
        "index_timeout": config.index_timeout,
        "host": config.host,
        "port": config.port,
        "log_level": config.log_level,
        "metrics_host": config.metrics_host,
        "metrics_port": config.metrics_port,
        "data_dir": str(config.data_dir) if config.data_dir else None,
        "open_browser": config.open_browser,
    }
    os.environ[CONFIG_ENV] = json.dumps(config_dict)


# Global app instance (created once per worker)
_app_instance: "Litestar | None" = None


def get_app() -> "Litestar":
    """Get or create the Litestar app instance."""
    global _app_instance
    if _app_instance is None:
        config = load_config_from_env()
        if config is None:
            raise RuntimeError(
                "Configuration not found. Use 'nearauth' to start the server properly.",
            )

        logging.basicConfig(
            level=getattr(logging, config.normalized_log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        _app_instance = create_app(config)

    return _app_instance


async def app(
    scope: "Scope | LifeSpanScope",
    receive: "Callable[..., Any]",
    send: "Callable[..., Any]",
) -> None:
    """ASGI application entry point."""
    litestar_app = get_app()
    await litestar_app(scope, receive, send)
