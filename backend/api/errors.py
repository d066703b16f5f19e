"""Exception handlers mapping service errors onto HTTP responses."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from core.errors import InternalError, ServiceError

logger = logging.getLogger(__name__)

GENERIC_INTERNAL_MESSAGE = "Something went wrong. Please retry later."


def _internal_response(exc: Exception, request: Request) -> JSONResponse:
    correlation_id = uuid4().hex
    logger.error(
        "Internal error while handling %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
        extra={"correlation_id": correlation_id},
    )
    return JSONResponse(
        {
            "detail": GENERIC_INTERNAL_MESSAGE,
            "code": InternalError.code,
            "correlation_id": correlation_id,
        },
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, ServiceError) or isinstance(exc, InternalError):
        return _internal_response(exc, request)
    body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        {
            "detail": f"{location}: {message}" if location else message,
            "code": "VALIDATION_ERROR",
        },
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return _internal_response(exc, request)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return _internal_response(exc, request)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DBAPIError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
