"""Domain errors and their HTTP rendering.

Services raise these; the API layer maps them to JSON responses of the form
``{"error": <message>, ...}``. Anything else becomes a generic 500.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mediaforge.logging_config import get_logger

logger = get_logger(__name__)


class MediaForgeError(Exception):
    """Base class for errors with a stable HTTP mapping."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class UnauthorizedError(MediaForgeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(MediaForgeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class InvalidInputError(MediaForgeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundError(MediaForgeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class NotConfiguredError(MediaForgeError):
    """An external provider has no credentials."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Service not configured"


class InsufficientCreditsError(MediaForgeError):
    """Raised when user has insufficient credits."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            "Insufficient credits",
            required=required,
            available=available,
        )


async def mediaforge_error_handler(request: Request, exc: MediaForgeError) -> JSONResponse:
    logger.info(
        "request_failed",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request_invalid", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and hide its details from the caller."""
    logger.exception("unhandled_exception", path=request.url.path, exc_type=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the error handlers on an application."""
    app.add_exception_handler(MediaForgeError, mediaforge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
