"""Base types, structs and error translation for handlers."""

import logging
from typing import Any

import msgspec
from litestar.exceptions import (
    HTTPException,
    NotAuthorizedException,
    NotFoundException,
    ValidationException,
)
from litestar.status_codes import (
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from nearauth.errors import (
    AccountNotFound,
    InvalidStateError,
    MissingCredentials,
    NearAuthError,
    NetworkUnavailable,
    RpcError,
    SerializationError,
    TransactionExecutionFailure,
)

logger = logging.getLogger(__name__)


# Request/Response structs


class PublishRequest(msgspec.Struct):
    """Request struct for publishing a widget."""

    name: str
    tag: str
    code: str

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("name must not be empty")


class LoginResponse(msgspec.Struct):
    """Response for the login command."""

    url: str
    state: str


class ConfirmLoginResponse(msgspec.Struct):
    """Response for the confirm-login command."""

    account_id: str
    url: str
    state: str


class AccountDetailsResponse(msgspec.Struct):
    """Payload of the account-details notification."""

    network: str
    account_id: str | None
    public_key: str | None
    state: str


class PublishResponse(msgspec.Struct):
    """Response for the publish command."""

    transaction_hash: str
    status: dict[str, Any]


class HealthResponse(msgspec.Struct):
    """Health check response."""

    status: str
    auth_state: str


# Validation helpers


def validate_publish_request(data: dict[str, Any]) -> PublishRequest:
    """Validate and parse a publish request.

    Raises:
        ValidationException: If validation fails

    """
    try:
        return msgspec.convert(data, PublishRequest)
    except (msgspec.ValidationError, msgspec.DecodeError) as e:
        raise ValidationException(detail=f"Validation error: {e}") from e
    except ValueError as e:
        raise ValidationException(detail=str(e)) from e


def to_http_exception(error: NearAuthError) -> HTTPException:
    """Translate a flow or executor error into the matching HTTP error."""
    detail = str(error)
    if isinstance(error, AccountNotFound):
        return NotFoundException(detail=detail)
    if isinstance(error, MissingCredentials):
        return NotAuthorizedException(detail=detail)
    if isinstance(error, InvalidStateError):
        return HTTPException(status_code=HTTP_409_CONFLICT, detail=detail)
    if isinstance(error, SerializationError):
        return ValidationException(detail=detail)
    if isinstance(error, NetworkUnavailable):
        return HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    if isinstance(error, RpcError | TransactionExecutionFailure):
        return HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=detail)
    logger.error(f"Unhandled nearauth error: {error!r}")
    return HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
