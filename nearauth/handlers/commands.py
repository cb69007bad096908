"""Commands from the host application and the account-details notification."""

from __future__ import annotations

import logging
from typing import Any

from litestar import Controller, get, post
from litestar.exceptions import NotAuthorizedException
from litestar.status_codes import HTTP_200_OK

from nearauth.errors import NearAuthError
from nearauth.executor import SignedCallExecutor  # noqa: TC001
from nearauth.flow import AuthenticationFlow  # noqa: TC001
from nearauth.social import publish_widget

from .base import (
    AccountDetailsResponse,
    ConfirmLoginResponse,
    LoginResponse,
    PublishResponse,
    to_http_exception,
    validate_publish_request,
)

logger = logging.getLogger(__name__)


async def _details_response(flow: AuthenticationFlow) -> AccountDetailsResponse:
    details = await flow.account_details()
    return AccountDetailsResponse(
        network=details.network,
        account_id=details.account_id,
        public_key=details.public_key,
        state=flow.state.value,
    )


class AuthController(Controller):  # type: ignore[misc]
    """Login, confirmation, sign-out and publishing commands."""

    path = "/"

    @post("/login", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def login(self, flow: AuthenticationFlow) -> LoginResponse:
        """POST /login - Issue a key and return the wallet login link."""
        try:
            url = await flow.login()
        except NearAuthError as e:
            raise to_http_exception(e) from e
        return LoginResponse(url=url, state=flow.state.value)

    @post("/confirm-login", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def confirm_login(self, flow: AuthenticationFlow) -> ConfirmLoginResponse:
        """POST /confirm-login - Resolve the account and request write permission."""
        try:
            confirmation = await flow.confirm_login()
        except NearAuthError as e:
            raise to_http_exception(e) from e
        return ConfirmLoginResponse(
            account_id=confirmation.account_id,
            url=confirmation.sign_url,
            state=flow.state.value,
        )

    @post("/sign-out", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def sign_out(self, flow: AuthenticationFlow) -> AccountDetailsResponse:
        """POST /sign-out - Clear credentials."""
        try:
            await flow.sign_out()
        except NearAuthError as e:
            raise to_http_exception(e) from e
        return await _details_response(flow)

    @get("/account-details")  # type: ignore[untyped-decorator]
    async def account_details(self, flow: AuthenticationFlow) -> AccountDetailsResponse:
        """GET /account-details - Current network, account id and public key."""
        try:
            return await _details_response(flow)
        except NearAuthError as e:
            raise to_http_exception(e) from e

    @post("/publish", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def publish(
        self,
        data: dict[str, Any],
        flow: AuthenticationFlow,
        executor: SignedCallExecutor,
    ) -> PublishResponse:
        """POST /publish - Store widget code on the social contract."""
        request = validate_publish_request(data)

        try:
            details = await flow.account_details()
            if details.account_id is None:
                raise NotAuthorizedException(detail="Not logged in")

            outcome = await publish_widget(
                executor,
                flow.network,
                details.account_id,
                request.name,
                request.tag,
                request.code,
                contract_id=flow.contract_id,
            )
            outcome.raise_for_status()
        except NearAuthError as e:
            raise to_http_exception(e) from e

        logger.info(f"Published widget {request.name!r} in {outcome.transaction_hash}")
        return PublishResponse(transaction_hash=outcome.transaction_hash, status=outcome.status)
