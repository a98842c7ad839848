"""
Translate ``PaymentError`` values into HTTP responses.

Only ``public_message`` ever reaches the caller.
"""
from fastapi import HTTPException, status

from .errors import (
    NotFoundError,
    PaymentError,
    ProviderError,
    ProviderErrorKind,
    ProviderNotConfiguredError,
    StateConflictError,
    ValidationError,
)
from .logging_config import get_logger

logger = get_logger(__name__)


def status_for(error: PaymentError) -> int:
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, StateConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, ProviderNotConfiguredError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, ProviderError):
        if error.kind == ProviderErrorKind.REJECTED:
            return status.HTTP_402_PAYMENT_REQUIRED
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(error: PaymentError) -> HTTPException:
    code = status_for(error)
    log = logger.error if code >= 500 else logger.info
    log("request_error", error_code=error.code, status_code=code, error=error.message)
    return HTTPException(status_code=code, detail={"error": error.public_message, "code": error.code})

