"""Translation of domain exceptions into HTTP responses.

Responses keep FastAPI's ``{"detail": ...}`` shape and add an ``error`` code;
redemption rejections also carry their ``reason``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from core.exceptions import (
    AuthenticationError,
    ConflictError,
    InviteGateError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    RedemptionError,
    ValidationError,
)
from utils.user_manager import UserAlreadyExistsError

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (RedemptionError, status.HTTP_400_BAD_REQUEST, "REDEMPTION_ERROR"),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED, "AUTHENTICATION_ERROR"),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN, "PERMISSION_DENIED"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (UserAlreadyExistsError, status.HTTP_409_CONFLICT, "ALREADY_EXISTS"),
    (ConflictError, status.HTTP_409_CONFLICT, "CONFLICT"),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"),
)


def create_error_response(error_code: str, message: str, status_code: int, **extra) -> JSONResponse:
    content = {"detail": message, "error": error_code}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def invite_gate_exception_handler(request: Request, exc: InviteGateError) -> JSONResponse:
    """Map a domain exception to its HTTP status."""
    for exc_type, status_code, error_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            break
    else:
        status_code, error_code = status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"

    if status_code >= 500:
        # Details stay in the log
        logger.error("Request failed: %s %s: %r", request.method, request.url.path, exc)
        return create_error_response(error_code, "Internal server error", status_code)

    extra = {}
    if isinstance(exc, RedemptionError):
        extra["reason"] = exc.reason
    return create_error_response(error_code, str(exc), status_code, **extra)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InviteGateError, invite_gate_exception_handler)
