"""
Error envelope: every failure leaves the service as

    {"error": {"code": ..., "message": ...}, "request_id": ...}

  - ServiceError        -> its own status and stable code
  - validation errors   -> 400 invalid_request
  - other HTTP errors   -> their status, code "http_error"
  - anything unexpected -> 500 internal_error, logged with traceback here
"""
import logging
from collections.abc import Awaitable, Callable

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from identity.exceptions import InvalidRequest, ServiceError

logger = logging.getLogger(__name__)


def _envelope(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message},
            "request_id": getattr(request.state, "request_id", None),
        },
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return _envelope(request, exc.status_code, exc.code, exc.detail)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Only field locations go back to the client, never the submitted values.
    fields = sorted(
        {".".join(str(p) for p in err.get("loc", ())[1:]) or "body" for err in exc.errors()}
    )
    message = f"{InvalidRequest.message} Invalid or missing: {', '.join(fields)}."
    return _envelope(request, InvalidRequest.status_code_default, InvalidRequest.code, message)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _envelope(request, exc.status_code, "http_error", message)


async def error_envelope_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _envelope(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "An unexpected error occurred",
        )
