"""Health check endpoint."""

from __future__ import annotations

from litestar import Controller, get

from nearauth.flow import AuthenticationFlow  # noqa: TC001

from .base import HealthResponse


class HealthController(Controller):  # type: ignore[misc]
    """Health check endpoint."""

    path = "/"

    @get("/health")  # type: ignore[untyped-decorator]
    async def health(self, flow: AuthenticationFlow) -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", auth_state=flow.state.value)
