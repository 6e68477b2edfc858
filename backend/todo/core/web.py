"""
FastAPI glue shared by module routers.

Error bodies have one shape everywhere:

    {"error": "<CODE>", "message": "<text>", "details": {...}}
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from todo.core.contracts import CapabilityError, CapabilityErrorKind
from todo.core.errors import TodoError
from todo.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_KIND = {
    CapabilityErrorKind.VALIDATION: 400,
    CapabilityErrorKind.NOT_FOUND: 404,
    CapabilityErrorKind.UNAVAILABLE: 503,
    CapabilityErrorKind.UNEXPECTED: 500,
}

CODE_BY_KIND = {
    CapabilityErrorKind.VALIDATION: "VALIDATION_ERROR",
    CapabilityErrorKind.NOT_FOUND: "NOT_FOUND",
    CapabilityErrorKind.UNAVAILABLE: "SERVICE_UNAVAILABLE",
    CapabilityErrorKind.UNEXPECTED: "UNEXPECTED_ERROR",
}


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"error": code, "message": message, "details": details or {}}


def capability_error_response(error: CapabilityError) -> JSONResponse:
    details: dict[str, Any] = {}
    if error.field is not None:
        details["field"] = error.field
    if error.resource_id is not None:
        details["resource_id"] = error.resource_id
    return JSONResponse(
        status_code=STATUS_BY_KIND[error.kind],
        content=error_body(CODE_BY_KIND[error.kind], error.message, details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render framework and backend exceptions in the shared error shape."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = [str(part) for part in first.get("loc", ()) if part != "body"]
        details: dict[str, Any] = {"errors": [str(e.get("msg")) for e in errors]}
        if location:
            details["field"] = ".".join(location)
        return JSONResponse(
            status_code=400,
            content=error_body(
                "VALIDATION_ERROR", first.get("msg", "Invalid request"), details
            ),
        )

    @app.exception_handler(TodoError)
    async def todo_error_handler(request: Request, exc: TodoError):
        body = exc.to_dict()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(body["error"], body["message"], body.get("details")),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error in request",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=error_body("UNEXPECTED_ERROR", "An error occurred"),
        )


__all__ = [
    "CODE_BY_KIND",
    "STATUS_BY_KIND",
    "capability_error_response",
    "error_body",
    "register_exception_handlers",
]
