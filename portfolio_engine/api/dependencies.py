"""FastAPI dependencies for service instances and the calling user."""

from functools import lru_cache

from fastapi import Header, HTTPException, status

from portfolio_engine.services.advisory_service import AdvisoryService
from portfolio_engine.services.analysis_engine import AnalysisEngine
from portfolio_engine.services.market_data_aggregator import MarketDataAggregator


@lru_cache
def get_aggregator() -> MarketDataAggregator:
    """Shared provider client so its response cache is process-wide."""
    return MarketDataAggregator()


@lru_cache
def get_analysis_engine() -> AnalysisEngine:
    return AnalysisEngine()


@lru_cache
def get_advisory_service() -> AdvisoryService:
    return AdvisoryService()


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Identify the portfolio owner from the ``X-User-Id`` header.

    Authentication happens upstream; this service trusts the header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "X-User-Id header is required"},
        )
    return x_user_id.strip()
