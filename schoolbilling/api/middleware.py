"""Middleware and exception handlers for the FastAPI application."""

import time
import traceback
import uuid
from typing import Union

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError

from schoolbilling.core.config import settings
from schoolbilling.core.exceptions import (
    BillingConfigurationError,
    BillingValidationError,
    ConflictError,
    ExternalServiceError,
    NotFoundException,
    PermissionException,
    SchoolBillingException,
    TransientStoreError,
    UnverifiedSignatureError,
    unpack_validation_error,
)
from schoolbilling.core.logging import logger

# Most specific match wins, see _status_code_for
STATUS_CODES = {
    BillingValidationError: 400,
    UnverifiedSignatureError: 400,
    PermissionException: 403,
    NotFoundException: 404,
    ConflictError: 409,
    BillingConfigurationError: 500,
    ExternalServiceError: 502,
    TransientStoreError: 503,
}


async def add_request_id(request: Request, call_next: callable) -> Response:
    """Middleware to generate a request ID for tracing and echo it in the response.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    request.state.request_id = str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


async def log_requests(request: Request, call_next: callable) -> Response:
    """Middleware to log handled requests with their duration."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info(
        f"Handled request {request.method} {request.url.path} in {duration:.2f} seconds. "
        f"Response code: {response.status_code}"
    )
    return response


async def exception_logging_middleware(request: Request, call_next: callable) -> Response:
    """Middleware to log unhandled exceptions and answer them with a 500.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}\n{traceback.format_exc()}")

        response_content = {"detail": "Internal Server Error"}
        if settings.DEBUG:
            response_content["detail"] = f"Internal Server Error: {exc.__class__.__name__}: {exc}"
            response_content["trace"] = traceback.format_exc()

        return JSONResponse(status_code=500, content=response_content)


def _status_code_for(exc: SchoolBillingException) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODES:
            return STATUS_CODES[exc_type]
    return 500


# Exception handlers
async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """Exception handler for request bodies and models that fail validation.

    Returns:
    -------
        JSONResponse: A 422 response listing each invalid field, e.g.
            {"errors": [{"body.plan_id": "Input should be a valid UUID"}]}

    """
    error_messages = unpack_validation_error(exc)
    logger.warning(f"Validation error on {request.method} {request.url.path}: {error_messages}")
    return JSONResponse(status_code=422, content=error_messages)


async def school_billing_exception_handler(
    request: Request, exc: SchoolBillingException
) -> JSONResponse:
    """Map billing exceptions to HTTP status codes.

    4xx responses tell the payment gateway not to retry a webhook; 5xx
    responses ask it to redeliver.
    """
    status_code = _status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def database_unavailable_handler(
    request: Request, exc: Union[OperationalError, InterfaceError]
) -> JSONResponse:
    """Answer lost database connections with a 503 so callers retry."""
    logger.error(f"Database unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503, content={"detail": "Service temporarily unavailable, retry later"}
    )
