"""Prometheus metrics for nearauth with standalone HTTP server.

This module defines and exposes all Prometheus metrics used by nearauth.
Metrics are served on a separate port using prometheus_client's built-in
HTTP server, and also through :class:`MetricsController` on the control app.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from litestar import Controller, get
from litestar.response import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from . import __version__

if TYPE_CHECKING:
    from http.server import ThreadingHTTPServer
    from wsgiref.simple_server import WSGIServer

logger = logging.getLogger(__name__)

# Single identity per process, so a single-process registry is enough.
REGISTRY = CollectorRegistry()

APP_INFO = Info(
    "nearauth_build_info",
    "Build information about nearauth",
    registry=REGISTRY,
)
APP_INFO.info({"version": __version__, "name": "nearauth"})

# Chain RPC metrics
RPC_REQUESTS_TOTAL = Counter(
    "rpc_requests_total",
    "Total number of JSON-RPC requests sent to the chain node",
    ["method"],
    registry=REGISTRY,
)

RPC_ERRORS_TOTAL = Counter(
    "rpc_errors_total",
    "Total number of failed JSON-RPC requests",
    ["error_type"],
    registry=REGISTRY,
)

RPC_DURATION_SECONDS = Histogram(
    "rpc_duration_seconds",
    "Time spent waiting for JSON-RPC responses",
    ["method"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

# Indexer metrics
INDEX_LOOKUPS_TOTAL = Counter(
    "index_lookups_total",
    "Account lookups against the read-only index",
    ["result"],
    registry=REGISTRY,
)

# Authentication flow metrics
LOGIN_TRANSITIONS_TOTAL = Counter(
    "login_transitions_total",
    "State transitions of the authentication flow",
    ["state"],
    registry=REGISTRY,
)

SIGNED_CALLS_TOTAL = Counter(
    "signed_calls_total",
    "Signed function calls submitted to the chain",
    ["status"],
    registry=REGISTRY,
)


def get_metrics_output() -> bytes:
    """Generate Prometheus-formatted metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


class MetricsController(Controller):  # type: ignore[misc]
    """Prometheus metrics HTTP endpoint on the control app."""

    path = "/"

    @get("/metrics")  # type: ignore[untyped-decorator]
    async def metrics(self) -> Response:
        """Handler for the /metrics endpoint."""
        return Response(
            content=get_metrics_output(),
            headers={"Content-Type": get_metrics_content_type()},
        )


class MetricsServer:
    """Standalone Prometheus metrics HTTP server using prometheus_client.start_http_server.

    This runs the metrics endpoint on a separate port from the control API,
    allowing metrics to be scraped independently.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8081) -> None:
        self._host = host
        self._port = port
        self._httpd: WSGIServer | ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the metrics server in a background thread."""
        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"Metrics server started at http://{self._host}:{self._port}/metrics",
        )

    def _run_server(self) -> None:
        """Run the HTTP server (called in background thread)."""
        try:
            server, _ = start_http_server(
                port=self._port,
                addr=self._host,
                registry=REGISTRY,
            )
            self._httpd = server
        except Exception:
            logger.exception("Failed to start metrics server")
            raise

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._httpd is not None:
            try:
                self._httpd.shutdown()
                self._httpd.server_close()
            except Exception:
                logger.exception("Error stopping metrics server")
            finally:
                self._httpd = None

        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

        logger.info("Metrics server stopped")
