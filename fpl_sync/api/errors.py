"""API error boundary.

Routes let domain and service errors propagate; the handlers registered here
translate them once (domain -> service -> api), log the full cause chain
server-side and render only {"error": {"code", "message"}} to the client.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fpl_sync.errors import (
    APIError,
    ErrorKind,
    ServiceError,
    SyncError,
    domain_to_service,
    service_to_api,
)
from fpl_sync.monitoring import get_logger

log = get_logger()

_HTTP_CODES = {
    400: "VALIDATION_ERROR",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def to_api_error(error: SyncError) -> APIError:
    """Translate any envelope into an APIError, hopping through every layer."""
    if isinstance(error, APIError):
        return error
    if isinstance(error, ServiceError):
        return service_to_api(error)
    # Domain, store, cache and integration envelopes
    return service_to_api(domain_to_service(error))


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def handle_sync_error(request: Request, exc: SyncError) -> JSONResponse:
    api_error = to_api_error(exc)
    log_method = log.error if api_error.status_code >= 500 else log.warning
    log_method(
        "api_request_failed",
        status_code=api_error.status_code,
        code=api_error.code,
        chain=api_error.to_dict(),
    )
    return JSONResponse(status_code=api_error.status_code, content=api_error.to_response())


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    log.warning("api_request_invalid", errors=len(errors), message=message)
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", message))


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "INTERNAL_SERVER_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
    return JSONResponse(status_code=exc.status_code, content=error_body(code, str(exc.detail)))


def validation_error(message: str, **details) -> APIError:
    return APIError(ErrorKind.VALIDATION, message, details=details)


def not_found(message: str, **details) -> APIError:
    return APIError(ErrorKind.NOT_FOUND, message, details=details)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SyncError, handle_sync_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
