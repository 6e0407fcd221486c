"""Centralized error handling for market data API endpoints."""

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from marketdata.models.errors import InvalidInputError, NoProviderError, ProviderError
from marketdata.utils.logger import StructuredLogger

logger = StructuredLogger("ErrorHandlers")


class MarketError:
    """Standard error codes returned by the market data API."""

    PROVIDER_ERROR = "PROVIDER_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    UNSUPPORTED_INSTRUMENT_CLASS = "UNSUPPORTED_INSTRUMENT_CLASS"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse:
    """Standardized error response format."""

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        provider: str | None = None,
    ):
        """
        Initialize error response.

        Args:
            error_code: Standard error code from MarketError
            message: Human-readable error message
            status_code: HTTP status code
            provider: Provider that produced the failure, if any
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.timestamp = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        response: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }
        if self.provider:
            response["provider"] = self.provider
        return response

    def to_json_response(self) -> JSONResponse:
        """Convert to a FastAPI JSONResponse."""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def create_provider_error(error: ProviderError) -> ErrorResponse:
    """Upstream failure: 502 naming the provider that failed last."""
    return ErrorResponse(
        error_code=MarketError.PROVIDER_ERROR,
        message=str(error),
        status_code=status.HTTP_502_BAD_GATEWAY,
        provider=error.provider.value,
    )


def create_internal_error(message: str = "An unexpected error occurred") -> ErrorResponse:
    """
    Create internal server error.

    Args:
        message: Error message (should be generic for security)

    Returns:
        ErrorResponse with internal error
    """
    return ErrorResponse(
        error_code=MarketError.INTERNAL_ERROR,
        message=message,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def provider_exception_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error(
        "Provider failure",
        context={"path": request.url.path, "provider": exc.provider.value, "reason": exc.reason},
    )
    return create_provider_error(exc).to_json_response()


async def invalid_input_exception_handler(
    request: Request, exc: InvalidInputError
) -> JSONResponse:
    logger.warning("Invalid input", context={"path": request.url.path, "reason": str(exc)})
    return ErrorResponse(MarketError.INVALID_INPUT, str(exc)).to_json_response()


async def no_provider_exception_handler(request: Request, exc: NoProviderError) -> JSONResponse:
    logger.warning(
        "Unsupported instrument class",
        context={"path": request.url.path, "instrument_class": exc.instrument_class.value},
    )
    return ErrorResponse(MarketError.UNSUPPORTED_INSTRUMENT_CLASS, str(exc)).to_json_response()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error while serving request",
        context={"path": request.url.path},
        exception=exc,
    )
    return create_internal_error().to_json_response()


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every market data exception handler to ``app``."""
    app.add_exception_handler(ProviderError, provider_exception_handler)
    app.add_exception_handler(InvalidInputError, invalid_input_exception_handler)
    app.add_exception_handler(NoProviderError, no_provider_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
