"""API routes for technical analysis, market cycle, valuation and holdings."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from portfolio_engine.api.dependencies import (
    get_advisory_service,
    get_aggregator,
    get_analysis_engine,
    get_user_id,
)
from portfolio_engine.api.error_handlers import ErrorResponse, create_not_found_error
from portfolio_engine.database.db import get_db
from portfolio_engine.models.analysis import TechnicalAnalysis
from portfolio_engine.models.portfolio import valuation_payload
from portfolio_engine.services.advisory_service import AdvisoryService
from portfolio_engine.services.analysis_engine import AnalysisEngine
from portfolio_engine.services.holdings_service import HoldingsService
from portfolio_engine.services.market_data_aggregator import MarketDataAggregator
from portfolio_engine.services.scheduler_service import value_portfolio
from portfolio_engine.services.signal_aggregator import determine_market_cycle
from portfolio_engine.services.valuation import generate_historical_series
from portfolio_engine.utils.errors import ErrorCode

router = APIRouter()


class AddAssetRequest(BaseModel):
    """Request model for adding a holding."""
    symbol: str = Field(min_length=1, max_length=20)
    quantity: float = Field(ge=0)
    purchase_price: Optional[float] = Field(default=None, ge=0, alias="purchasePrice")
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


def _analyze(
    symbol: str,
    days: int | None,
    aggregator: MarketDataAggregator,
    engine: AnalysisEngine,
) -> TechnicalAnalysis:
    series = aggregator.fetch_price_series(symbol, days)
    return engine.analyze(symbol.upper(), series)


@router.get("/analysis/{symbol}")
def get_analysis(
    symbol: str,
    days: Optional[int] = Query(None, ge=1, le=365, description="History window in days"),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    engine: AnalysisEngine = Depends(get_analysis_engine),
):
    """
    Technical analysis of one asset's price history.

    Returns:
        Indicator payload: RSI, moving averages, MACD, Bollinger Bands,
        support/resistance, patterns, overall signal and confidence
    """
    analysis = _analyze(symbol, days, aggregator, engine)
    return {"symbol": symbol.upper(), **analysis.to_dict()}


@router.get("/analysis/{symbol}/insight")
async def get_insight(
    symbol: str,
    days: Optional[int] = Query(None, ge=1, le=365),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    engine: AnalysisEngine = Depends(get_analysis_engine),
    advisory: AdvisoryService = Depends(get_advisory_service),
):
    """Advisory commentary for one asset, rule-based when no provider answers."""
    analysis = await run_in_threadpool(_analyze, symbol, days, aggregator, engine)
    insight = await advisory.generate_insight(symbol.upper(), analysis)
    return insight.to_dict()


@router.get("/market/cycle")
def get_market_cycle(aggregator: MarketDataAggregator = Depends(get_aggregator)):
    """
    Market cycle voted from the Fear & Greed Index and macro figures.

    Returns:
        fearGreed, macroIndicators and the resulting marketCycle
    """
    fear_greed = aggregator.fetch_fear_greed()
    macro_indicators = aggregator.macro_indicators()
    cycle = determine_market_cycle(fear_greed.value, macro_indicators)
    return {
        "fearGreed": fear_greed.to_dict(),
        "macroIndicators": [m.to_dict() for m in macro_indicators],
        "marketCycle": cycle.to_dict(),
    }


@router.get("/portfolio/valuation")
def get_valuation(
    days: int = Query(30, ge=1, le=365, description="Length of the chart series"),
    user_id: str = Depends(get_user_id),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    db: Session = Depends(get_db),
):
    """
    Current valuation of the caller's portfolio.

    The historical series is an estimate derived from current prices and is
    flagged with ``historicalSeriesEstimated``.
    """
    snapshot = value_portfolio(HoldingsService(db), aggregator, user_id)
    series = generate_historical_series(snapshot, days=days)
    return valuation_payload(snapshot, series)


@router.get("/portfolio/advice")
async def get_portfolio_advice(
    user_id: str = Depends(get_user_id),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    advisory: AdvisoryService = Depends(get_advisory_service),
    db: Session = Depends(get_db),
):
    """Diversification and risk commentary for the caller's portfolio."""
    snapshot = await run_in_threadpool(value_portfolio, HoldingsService(db), aggregator, user_id)
    advice = await advisory.generate_portfolio_advice(snapshot)
    return advice.to_dict()


@router.post("/portfolio/assets", status_code=status.HTTP_201_CREATED)
def add_asset(
    request: AddAssetRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """Add a holding; adding a held symbol again increases its quantity."""
    try:
        holding = HoldingsService(db).add_asset(
            user_id,
            request.symbol,
            request.quantity,
            purchase_price=request.purchase_price,
            name=request.name,
        )
    except ValueError as e:
        raise ErrorResponse(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=str(e),
            status_code=status.HTTP_400_BAD_REQUEST,
        ).to_http_exception() from e
    return {
        "symbol": holding.symbol,
        "name": holding.name,
        "quantity": holding.quantity,
        "purchasePrice": holding.purchase_price,
    }


@router.delete("/portfolio/assets/{symbol}", status_code=status.HTTP_204_NO_CONTENT)
def remove_asset(
    symbol: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """Remove a holding."""
    if not HoldingsService(db).remove_asset(user_id, symbol):
        raise create_not_found_error(
            "holding", f"{symbol.upper()} is not in the portfolio"
        ).to_http_exception()
