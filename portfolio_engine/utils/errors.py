"""Error taxonomy shared by the analysis, valuation and advisory services."""

from typing import Any


class ErrorCode:
    """Standard error codes surfaced in logs and API error bodies."""

    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    INVALID_SERIES = "INVALID_SERIES"
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    PROVIDER_FAILURE = "PROVIDER_FAILURE"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PortfolioEngineError(Exception):
    """Base class for engine errors."""

    error_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InsufficientData(PortfolioEngineError):
    """
    Series shorter than a calculation's window.

    Indicator functions degrade to neutral values instead of raising this;
    it exists for callers that require a hard precondition.
    """

    error_code = ErrorCode.INSUFFICIENT_DATA


class InvalidSeries(PortfolioEngineError, ValueError):
    """Empty, unordered or otherwise structurally invalid input."""

    error_code = ErrorCode.INVALID_SERIES


class PriceUnavailable(PortfolioEngineError):
    """No live price for a holding; valuation falls back to a cached price."""

    error_code = ErrorCode.PRICE_UNAVAILABLE

    def __init__(self, symbol: str, message: str | None = None):
        super().__init__(message or f"No live price available for {symbol}", {"symbol": symbol})
        self.symbol = symbol


class ProviderFailure(PortfolioEngineError):
    """A network provider (prices or advisory text) failed or returned garbage."""

    error_code = ErrorCode.PROVIDER_FAILURE

    def __init__(self, provider: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, {"provider": provider, **(details or {})})
        self.provider = provider
