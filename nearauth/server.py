"""Litestar control server setup with Granian ASGI server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from granian import Granian
from granian.constants import Interfaces
from litestar import Litestar
from litestar.datastructures import State
from litestar.di import Provide

from .config import Config
from .executor import SignedCallExecutor
from .flow import AuthenticationFlow, BrowserOpener, LoggingOpener
from .handlers import get_routers
from .metrics import MetricsController, MetricsServer
from .resolver import AccountResolver
from .storage import CredentialStore, create_secret_storage

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


# Dependency providers for Litestar DI


def provide_flow(state: State) -> AuthenticationFlow:
    """Provide the AuthenticationFlow from application state."""
    result: AuthenticationFlow = state["flow"]
    return result


def provide_executor(state: State) -> SignedCallExecutor:
    """Provide the SignedCallExecutor from application state."""
    result: SignedCallExecutor = state["executor"]
    return result


def build_components(
    config: Config,
    credentials: CredentialStore | None = None,
) -> tuple[AuthenticationFlow, SignedCallExecutor, AccountResolver]:
    """Wire storage, resolver, flow and executor from configuration.

    The flow and executor always share one credential store, created from
    config unless one is passed in.
    """
    if credentials is None:
        credentials = CredentialStore(create_secret_storage(config.data_dir))
    resolver = AccountResolver(dsn=config.index_dsn, timeout=config.index_timeout)
    opener = BrowserOpener() if config.open_browser else LoggingOpener()
    flow = AuthenticationFlow(
        credentials,
        resolver,
        opener=opener,
        network=config.network,
        app_name=config.app_name,
        contract_id=config.target_contract_id,
        rpc_endpoint=config.rpc_url,
        rpc_timeout=config.rpc_timeout,
    )
    executor = SignedCallExecutor(
        credentials,
        rpc_endpoint=config.rpc_url,
        timeout=config.rpc_timeout,
    )
    return flow, executor, resolver


def create_app(
    config: Config | None = None,
    flow: AuthenticationFlow | None = None,
    executor: SignedCallExecutor | None = None,
) -> Litestar:
    """Create and configure the Litestar application.

    Components are built from config unless passed in directly (tests).
    A missing component is built around the credentials of the one given.
    """
    resolver: AccountResolver | None = None
    if flow is None or executor is None:
        credentials = None
        if flow is not None:
            credentials = flow.credentials
        elif executor is not None:
            credentials = executor.credentials
        built_flow, built_executor, resolver = build_components(config or Config(), credentials)
        flow = flow or built_flow
        executor = executor or built_executor

    @asynccontextmanager
    async def lifespan(_app: Litestar) -> AsyncGenerator[None]:
        """Lifespan context manager for startup/shutdown."""
        logger.info("Starting nearauth control server")
        await flow.restore()
        yield
        if resolver is not None:
            await resolver.dispose()
        logger.info("Stopping nearauth control server")

    return Litestar(
        route_handlers=[*get_routers(), MetricsController],
        lifespan=[lifespan],
        debug=False,
        state=State(
            {
                "flow": flow,
                "executor": executor,
            },
        ),
        dependencies={
            "flow": Provide(provide_flow, sync_to_thread=False),
            "executor": Provide(provide_executor, sync_to_thread=False),
        },
    )


def run_server(config: Config) -> None:
    """Run the control server with Granian.

    A single worker is used: the process owns exactly one identity.
    """
    logger.info(f"Starting nearauth on {config.host}:{config.port} ({config.network})")

    from . import asgi

    asgi.store_config_in_env(config)

    server = Granian(
        target="nearauth.asgi:app",
        address=config.host,
        port=config.port,
        interface=Interfaces.ASGI,
        workers=1,
        log_level=config.log_level.lower(),
    )

    metrics_server = MetricsServer(host=config.metrics_host, port=config.metrics_port)
    metrics_server.start()

    try:
        server.serve()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        metrics_server.stop()
