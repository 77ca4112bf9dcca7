from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

# Seconds a client should wait before repeating a call that failed transiently
RETRY_AFTER_SECONDS = 1


class AppError(Exception):
    """Base application error with consistent schema.

    ``retryable`` tells API consumers that repeating the same request may succeed.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


def _envelope(request: Request, message: str, code: str, details: dict[str, Any], retryable: bool = False) -> dict:
    body: dict[str, Any] = {
        "error": {
            "message": message,
            "code": code,
            "details": details,
            "retryable": retryable,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.message, exc.code, exc.details, exc.retryable),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_envelope(request, "Validation error", "VALIDATION_ERROR", {"errors": exc.errors()}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "Internal server error", "INTERNAL_ERROR", {}),
    )
