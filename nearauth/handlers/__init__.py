"""HTTP route handlers for the control API with Litestar.

This package provides controller modules for different API endpoints:
- health: Health check endpoint
- commands: login, confirm-login, sign-out, publish and account-details
"""

from litestar import Router

from .commands import AuthController
from .health import HealthController


def get_routers() -> list[Router]:
    """Get all routers for the application."""
    return [
        Router(path="/", route_handlers=[HealthController]),
        Router(path="/", route_handlers=[AuthController]),
    ]


__all__ = [
    "AuthController",
    "HealthController",
    "get_routers",
]
