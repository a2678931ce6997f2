"""
Tether Error Handlers

Translates relay exceptions into HTTP responses. Every error body has the
same shape, ``{"error": "<message>"}``; codes and context stay in the logs.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tether.exceptions import (
    ConcurrencyError,
    InvalidKeyError,
    MalformedBodyError,
    MessageLimitExceededError,
    PayloadTooLargeError,
    RelayError,
    SessionExpiredError,
    SessionInitError,
    SessionNotFoundError,
    StorageError,
)

logger = logging.getLogger('tether.exceptions.handlers')

# Map exception types to HTTP status codes
status_mapping = {
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    SessionExpiredError: status.HTTP_410_GONE,
    InvalidKeyError: status.HTTP_403_FORBIDDEN,
    PayloadTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    MessageLimitExceededError: status.HTTP_429_TOO_MANY_REQUESTS,
    MalformedBodyError: status.HTTP_400_BAD_REQUEST,
    SessionInitError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ConcurrencyError: status.HTTP_409_CONFLICT,
}


def create_error_response(message: str, status_code: int) -> JSONResponse:
    """Build the single error body shape used on the wire."""
    return JSONResponse(status_code=status_code, content={"error": message})


async def relay_exception_handler(request: Request, exc: RelayError) -> JSONResponse:
    """
    Handle all relay exceptions.

    Args:
        request: FastAPI request object
        exc: Relay exception instance

    Returns:
        JSON error response with the status mapped from the exception type
    """
    if exc.recoverable:
        logger.warning(f"Recoverable error in {request.url.path}: {exc}",
                       extra={"error_code": exc.error_code, "context": exc.context})
    else:
        logger.error(f"Non-recoverable error in {request.url.path}: {exc}",
                     extra={"error_code": exc.error_code, "context": exc.context})

    http_status = status_mapping.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return create_error_response(exc.message, http_status)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors as a plain 400."""
    logger.warning(f"Validation error in {request.url.path}: {exc.errors()}")
    return create_error_response("Invalid request", status.HTTP_400_BAD_REQUEST)


async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]) -> JSONResponse:
    """
    Handle standard HTTP exceptions.

    Unknown paths and unsupported methods both answer 404 ``Not found``;
    the relay exposes no route table beyond its three endpoints.
    """
    logger.info(f"HTTP error {exc.status_code} in {request.method} {request.url.path}: {exc.detail}")

    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return create_error_response("Not found", status.HTTP_404_NOT_FOUND)

    return create_error_response(str(exc.detail), exc.status_code)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error in {request.url.path}: {exc!r}", exc_info=exc)
    return create_error_response("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def setup_error_handlers(app):
    """
    Setup all error handlers for a FastAPI application.

    Args:
        app: FastAPI application instance
    """
    # Relay exceptions
    app.add_exception_handler(RelayError, relay_exception_handler)

    # FastAPI validation errors
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Standard HTTP exceptions
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Catch-all for unexpected exceptions
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Error handlers configured")
