from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from chirpy.api.schemas import ErrorBody
from chirpy.logging import get_logger
from chirpy.service.errors import ServiceError
from chirpy.storage.errors import ConstraintViolation, StoreIOError

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    500: "server_error",
}


def _error_code_for_status(status_code: int) -> str:
    return _STATUS_TO_CODE.get(status_code, "server_error")


def _error_response(status_code: int, message: str, code: str | None = None) -> JSONResponse:
    """Render the ``{"error": ..., "code": ...}`` body clients expect."""
    body = ErrorBody(error=message, code=code or _error_code_for_status(status_code))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent exception handlers for domain and storage errors."""

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(409, exc.message, code="conflict")

    @app.exception_handler(StoreIOError)
    async def handle_store_io_error(request: Request, exc: StoreIOError):
        logger.error(
            "store_io_error",
            path=request.url.path,
            method=request.method,
            message=exc.message,
        )
        return _error_response(500, "storage unavailable", code="store_io_error")

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.message, code=exc.error_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(err.get("type") == "json_invalid" for err in errors):
            message = "Invalid JSON body"
        elif errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            detail = first.get("msg", "invalid value")
            message = f"{location}: {detail}" if location else detail
        else:
            message = "invalid request"
        logger.warning(
            "request_validation_error",
            path=request.url.path,
            method=request.method,
            message=message,
        )
        return _error_response(400, message, code="validation_error")

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        # Raised from _http_error() in routes, or by the framework itself
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            message = exc.detail.get("error", "http error")
            code = exc.detail.get("code")
        else:
            message = str(exc.detail) if exc.detail else "http error"
            code = None
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "http_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=code,
            message=message,
        )
        response = _error_response(exc.status_code, message, code=code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, "internal server error", code="server_error")
