"""Translate helpdesk errors into stable JSON error responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.errors import (
    AccessDenied,
    Conflict,
    HelpdeskError,
    InvalidState,
    NotFound,
    Unauthenticated,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: tuple[tuple[type[HelpdeskError], int], ...] = (
    (ValidationError, 400),
    (InvalidState, 400),
    (Conflict, 400),
    (Unauthenticated, 401),
    (AccessDenied, 403),
    (NotFound, 404),
)

_HTTP_KINDS = {
    400: "validation_error",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    503: "unavailable",
}


def status_code_for(exc: HelpdeskError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_body(kind: str, message: str, *, field: str | None = None) -> dict[str, dict[str, str]]:
    error = {"kind": kind, "message": message}
    if field:
        error["field"] = field
    return {"error": error}


async def helpdesk_error_handler(request: Request, exc: HelpdeskError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("Unclassified helpdesk error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=error_body("internal_error", "Internal server error"))
    field = exc.field if isinstance(exc, ValidationError) else None
    return JSONResponse(status_code=status_code, content=error_body(exc.kind, exc.message, field=field))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or None
    message = str(first.get("msg", "Invalid input"))
    return JSONResponse(status_code=400, content=error_body("validation_error", message, field=field))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = _HTTP_KINDS.get(exc.status_code, "error")
    return JSONResponse(status_code=exc.status_code, content=error_body(kind, str(exc.detail)))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("internal_error", "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HelpdeskError, helpdesk_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
