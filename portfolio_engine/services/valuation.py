"""Portfolio valuation: holdings + price quotes -> snapshot and chart series."""

import math
import random
from datetime import date, timedelta

from portfolio_engine.models.market_data import PriceQuote, PriceSeries
from portfolio_engine.models.portfolio import (
    AssetValuation,
    HistoricalPoint,
    HistoricalSeries,
    Holding,
    ValuationSnapshot,
)
from portfolio_engine.utils.errors import PriceUnavailable
from portfolio_engine.utils.logger import StructuredLogger
from portfolio_engine.utils.trace_context import get_current_trace

structured_logger = StructuredLogger("PortfolioValuation")

SYMBOL_TO_ID: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "ADA": "cardano",
    "SOL": "solana",
    "DOT": "polkadot",
    "AVAX": "avalanche-2",
    "MATIC": "polygon",
    "DOGE": "dogecoin",
    "SHIB": "shiba-inu",
    "LTC": "litecoin",
    "TRX": "tron",
    "UNI": "uniswap",
    "LINK": "chainlink",
    "ATOM": "cosmos",
    "ETC": "ethereum-classic",
    "XLM": "stellar",
    "BCH": "bitcoin-cash",
    "NEAR": "near",
    "APT": "aptos",
    "FIL": "filecoin",
    "VET": "vechain",
    "IMX": "immutable-x",
    "HBAR": "hedera-hashgraph",
    "QNT": "quant-network",
    "ALGO": "algorand",
    "MANA": "decentraland",
    "SAND": "the-sandbox",
}

# Synthetic series shape: ±10% sinusoid plus ±2.5% noise, floored at 30%.
SYNTHETIC_WAVE_AMPLITUDE = 0.1
SYNTHETIC_NOISE_AMPLITUDE = 0.05
SYNTHETIC_FLOOR_RATIO = 0.3


def map_symbol_to_id(symbol: str) -> str:
    """Map a ticker symbol to the provider coin id; unknown symbols are lower-cased."""
    return SYMBOL_TO_ID.get(symbol.upper(), symbol.lower())


def _resolve_price(holding: Holding, quote: PriceQuote | None) -> tuple[float, float, str]:
    """Return (price, change_24h, price_source) for a holding."""
    if quote is not None:
        return quote.price, quote.price_change_24h, "live"
    if holding.last_price is not None:
        return holding.last_price, 0.0, "cached"
    if holding.purchase_price is not None:
        return holding.purchase_price, 0.0, "purchase"
    return 0.0, 0.0, "none"


def reconcile(holdings: list[Holding], quotes: dict[str, PriceQuote]) -> ValuationSnapshot:
    """
    Value every holding and aggregate the portfolio.

    Holdings without a live quote fall back to the last-seen price, then the
    purchase price, then zero. Such assets are marked stale and contribute no
    24h change; reconciliation itself never fails.

    Args:
        holdings: Holdings to value
        quotes: Live quotes keyed by upper-case symbol

    Returns:
        ValuationSnapshot
    """
    per_asset: list[AssetValuation] = []
    total_value = 0.0
    total_change = 0.0

    for holding in holdings:
        quote = quotes.get(holding.symbol)
        price, change_24h, source = _resolve_price(holding, quote)
        if source != "live":
            unavailable = PriceUnavailable(holding.symbol)
            structured_logger.warning(
                unavailable.message,
                context={
                    "trace_id": get_current_trace(),
                    "symbol": holding.symbol,
                    "error_code": unavailable.error_code,
                    "fallback": source,
                    "price": price,
                },
            )

        value = holding.quantity * price
        per_asset.append(
            AssetValuation(
                holding=holding,
                current_price=price,
                price_change_24h=change_24h,
                value=value,
                price_source=source,
            )
        )
        total_value += value
        total_change += change_24h / 100 * value

    base_value = total_value - total_change
    change_percent = total_change / base_value * 100 if base_value != 0 else 0.0

    return ValuationSnapshot(
        total_value=total_value,
        total_change=total_change,
        change_percent=change_percent,
        per_asset=per_asset,
    )


def _label(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}"


def _change_percent(value: float, previous: float) -> float:
    return (value - previous) / previous * 100 if previous else 0.0


def generate_historical_series(
    snapshot: ValuationSnapshot,
    days: int = 30,
    rng: random.Random | None = None,
    today: date | None = None,
) -> HistoricalSeries:
    """
    Estimate a backward value series from the current valuation.

    There is no stored portfolio history, so each asset's past price is
    approximated as ``current × (1 + wave + noise)`` where the wave is a
    10% sinusoid over the window and the noise is uniform within ±2.5%.
    Daily totals are floored at 30% of the current value. The result is
    flagged ``estimated``; pass a seeded *rng* for reproducible output.
    """
    if days < 1:
        raise ValueError(f"days must be positive, got {days}")
    if not snapshot.per_asset:
        return HistoricalSeries(points=[], estimated=True)

    rng = rng or random.Random()
    today = today or date.today()
    floor = snapshot.total_value * SYNTHETIC_FLOOR_RATIO
    points: list[HistoricalPoint] = []

    for days_back in range(days - 1, -1, -1):
        wave = math.sin(days_back / days * math.pi * 2) * SYNTHETIC_WAVE_AMPLITUDE
        day_value = 0.0
        for asset in snapshot.per_asset:
            noise = (rng.random() - 0.5) * SYNTHETIC_NOISE_AMPLITUDE
            day_value += asset.holding.quantity * asset.current_price * (1 + wave + noise)
        day_value = max(day_value, floor)

        change = _change_percent(day_value, points[-1].value) if points else 0.0
        points.append(
            HistoricalPoint(
                label=_label(today - timedelta(days=days_back)),
                value=day_value,
                change_percent=change,
            )
        )

    return HistoricalSeries(points=points, estimated=True)


def build_historical_series(series: PriceSeries) -> HistoricalSeries:
    """Wrap a real provider value series as chart points (not estimated)."""
    points: list[HistoricalPoint] = []
    for point in series.points:
        day = date.fromtimestamp(point.timestamp / 1000)
        change = _change_percent(point.price, points[-1].value) if points else 0.0
        points.append(HistoricalPoint(label=_label(day), value=point.price, change_percent=change))
    return HistoricalSeries(points=points, estimated=False)
