"""Centralized error handling for the analysis and portfolio API."""

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from portfolio_engine.utils.errors import (
    ErrorCode,
    InsufficientData,
    InvalidSeries,
    PortfolioEngineError,
    PriceUnavailable,
    ProviderFailure,
)

STATUS_BY_ERROR: dict[type[PortfolioEngineError], int] = {
    InvalidSeries: 422,  # Unprocessable Content
    InsufficientData: 422,
    PriceUnavailable: status.HTTP_404_NOT_FOUND,
    ProviderFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ErrorResponse:
    """Standardized error response format."""

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | list[str] | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        """
        Initialize error response.

        Args:
            error_code: Standard error code from ErrorCode
            message: Human-readable error message
            details: Additional error details (field-specific errors, etc.)
            status_code: HTTP status code
        """
        self.error_code = error_code
        self.message = message
        self.details = details
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        response = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def error_response_for(error: PortfolioEngineError) -> ErrorResponse:
    """Map an engine error to its HTTP status and body."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return ErrorResponse(
        error_code=error.error_code,
        message=error.message,
        details=error.details or None,
        status_code=status_code,
    )


def create_not_found_error(resource: str, message: str) -> ErrorResponse:
    return ErrorResponse(
        error_code=ErrorCode.NOT_FOUND,
        message=message,
        details={"resource": resource},
        status_code=status.HTTP_404_NOT_FOUND,
    )


async def engine_exception_handler(request: Request, exc: PortfolioEngineError) -> JSONResponse:
    return error_response_for(exc).to_json_response()


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle FastAPI validation errors with the standardized format.

    Args:
        request: FastAPI request object
        exc: RequestValidationError exception

    Returns:
        JSONResponse with field-specific errors
    """
    field_errors = {}
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors[field_path] = error["msg"]

    return ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR,
        message="Validation failed for one or more fields",
        details=field_errors,
        status_code=status.HTTP_400_BAD_REQUEST,
    ).to_json_response()


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortfolioEngineError, engine_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
