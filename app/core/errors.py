"""
Tagged service errors and their HTTP translation.

Services raise ``ServiceError`` with an ``ErrorKind`` and a stable machine
code; the route layer never inspects the message text.
"""

from __future__ import annotations

from enum import Enum

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rita_shared.schemas.common import ErrorResponse

log = structlog.get_logger()


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    CANNOT_MODIFY_SELF = "cannot_modify_self"
    CANNOT_REMOVE_SELF = "cannot_remove_self"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    LAST_OWNER = "last_owner"
    CONFLICT = "conflict"
    GONE = "gone"
    NOT_IMPLEMENTED = "not_implemented"
    UPSTREAM = "upstream"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.CANNOT_MODIFY_SELF: 400,
    ErrorKind.CANNOT_REMOVE_SELF: 400,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.LAST_OWNER: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GONE: 410,
    ErrorKind.NOT_IMPLEMENTED: 501,
    ErrorKind.UPSTREAM: 502,
}


class ServiceError(Exception):
    """A business-rule failure with a kind and a machine-readable code."""

    def __init__(self, kind: ErrorKind, message: str, code: str, /, **extra):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.extra = extra

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_body(self) -> dict:
        body = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND[ErrorKind.VALIDATION],
        content={
            "error": "Request validation failed",
            "code": "VALIDATION_ERROR",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "request.unhandled_error",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def error_responses(*status_codes: int) -> dict:
    """OpenAPI ``responses`` entries for the flat error body."""
    return {status: {"model": ErrorResponse} for status in status_codes}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
