"""
Exception handlers rendering every failure as ``{"error": "<message>"}``.

Handlers raise ``HTTPException`` with a display-ready message; anything that
escapes a handler is logged here and answered with a generic 500.
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.auth_utils import AuthBackendError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Error interno del servidor"
INVALID_REQUEST_MESSAGE = "Solicitud inválida"


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def unauthorized(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)


def forbidden(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else INVALID_REQUEST_MESSAGE
    return _error_response(exc.status_code, message, getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON, wrong field types and non-numeric ids."""
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return _error_response(status.HTTP_400_BAD_REQUEST, INVALID_REQUEST_MESSAGE)


async def auth_backend_exception_handler(request: Request, exc: AuthBackendError) -> JSONResponse:
    logger.error("Authentication backend failure on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


# PUBLIC_INTERFACE
def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to the application."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AuthBackendError, auth_backend_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
