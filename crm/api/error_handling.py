"""
Exception handlers that render every error in one envelope::

    {"error": "<CODE>", "message": "...", "status": <http status>}
"""
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm.core.errors import AuthenticationError, ServiceError

logger = logging.getLogger(__name__)

_STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def error_response(
    status_code: int,
    error: str,
    message: str,
    details=None,
    headers=None,
) -> JSONResponse:
    payload = {"error": error, "message": message, "status": status_code}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def service_error_response(exc: ServiceError) -> JSONResponse:
    """Render a ServiceError; 401s carry a ``WWW-Authenticate`` challenge."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return error_response(exc.status_code, exc.error_code, exc.message, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for domain, validation and unexpected errors."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        logger.warning(
            "%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.error_code
        )
        return service_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(
            422, "VALIDATION_ERROR", "Invalid input", details={"errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _STATUS_TO_CODE.get(exc.status_code, "HTTP_ERROR")
        return error_response(exc.status_code, code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc
        )
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")
