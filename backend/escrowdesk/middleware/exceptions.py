"""Error types and handlers for the wizard API.

Every error leaves the service as ``{"error": {"code", "message", "details"?}}``.
Operation failures inside a wizard (validation, upstream save errors) are not
errors here: they come back as an ``OperationResult`` with ``ok: false``.
Only requests that cannot reach a wizard at all end up in these handlers.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class EscrowDeskException(Exception):
    """Base exception for EscrowDesk application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)

    def details(self) -> dict | None:
        return None


class BusinessLogicError(EscrowDeskException):
    """The request is well-formed but cannot be honoured (e.g. view without a record)."""

    def __init__(self, message: str, error_code: str = "BUSINESS_LOGIC_ERROR"):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, error_code)


class ResourceNotFoundError(EscrowDeskException):
    """Unknown wizard kind, session or collection."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            status.HTTP_404_NOT_FOUND,
            "RESOURCE_NOT_FOUND",
        )


class GatewayError(EscrowDeskException):
    """The upstream REST API rejected a call or could not be reached.

    ``upstream_status`` is 0 when no response was received at all.
    """

    def __init__(self, message: str, upstream_status: int = 0):
        self.upstream_status = upstream_status
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, "UPSTREAM_ERROR")

    def details(self) -> dict | None:
        return {"upstream_status": self.upstream_status}


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    details: dict | None = None,
) -> JSONResponse:
    content = {"error": {"code": error_code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def escrowdesk_exception_handler(request: Request, exc: EscrowDeskException) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.error_code, "path": request.url.path},
    )
    return error_response(exc.status_code, exc.message, exc.error_code, exc.details())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and methods; FastAPI's own HTTPException subclasses this one."""
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies (bad mode, negative step index, ...)."""
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info(
        f"Rejected request body on {request.url.path}",
        extra={"path": request.url.path, "fields": [e["field"] for e in errors]},
    )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    # Internal details stay in the log
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    app.add_exception_handler(EscrowDeskException, escrowdesk_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
