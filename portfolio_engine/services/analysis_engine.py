"""Analysis engine combining indicators into a full technical analysis."""

import time

from portfolio_engine.models.analysis import TechnicalAnalysis
from portfolio_engine.models.market_data import PriceSeries
from portfolio_engine.services import indicators
from portfolio_engine.services.indicators import MACD_SIGNAL, MACD_SLOW, Prices
from portfolio_engine.services.signal_aggregator import (
    aggregate_signals,
    vote_from_comparison,
    vote_from_signal,
)
from portfolio_engine.utils.logger import StructuredLogger
from portfolio_engine.utils.trace_context import get_current_trace


def perform_comprehensive_analysis(prices: Prices) -> TechnicalAnalysis:
    """
    Run every indicator once and derive the overall signal.

    The overall signal is a majority vote over four inputs: the RSI signal,
    price vs SMA20, price vs SMA50 and MACD vs its signal line. Averages that
    the history is too short for abstain.

    Raises:
        InvalidSeries: If the series is empty or malformed
    """
    values = indicators.as_prices(prices)
    current_price = values[-1]

    rsi = indicators.calculate_rsi(values)
    sma20 = indicators.calculate_sma(values, 20)
    sma50 = indicators.calculate_sma(values, 50)
    macd = indicators.calculate_macd(values)

    votes = [
        vote_from_signal(rsi),
        vote_from_comparison(current_price, sma20, available=len(values) >= 20),
        vote_from_comparison(current_price, sma50, available=len(values) >= 50),
        vote_from_comparison(
            macd.macd, macd.signal, available=len(values) >= MACD_SLOW + MACD_SIGNAL
        ),
    ]
    overall_signal, confidence = aggregate_signals(votes)

    return TechnicalAnalysis(
        current_price=round(current_price, 4),
        rsi=rsi,
        sma20=sma20,
        sma50=sma50,
        sma200=indicators.calculate_sma(values, 200),
        ema12=indicators.calculate_ema(values, 12),
        ema26=indicators.calculate_ema(values, 26),
        macd=macd,
        bollinger_bands=indicators.calculate_bollinger_bands(values),
        support_resistance=indicators.calculate_support_resistance(values),
        patterns=indicators.detect_patterns(values),
        overall_signal=overall_signal,
        confidence=round(confidence, 2),
    )


class AnalysisEngine:
    """Runs technical analysis on price series with structured logging."""

    def __init__(self):
        self.logger = StructuredLogger("AnalysisEngine")

    def analyze(self, symbol: str, series: PriceSeries) -> TechnicalAnalysis:
        """
        Analyze one symbol's price series.

        Args:
            symbol: Asset symbol, used for logging only
            series: Price history, oldest first

        Returns:
            TechnicalAnalysis payload

        Raises:
            InvalidSeries: If the series is empty
        """
        trace_id = get_current_trace()
        start_time = time.time()

        try:
            analysis = perform_comprehensive_analysis(series)
        except Exception as e:
            self.logger.error(
                f"Technical analysis failed for {symbol}",
                context={
                    "trace_id": trace_id,
                    "symbol": symbol,
                    "samples": len(series),
                    "error_type": type(e).__name__,
                },
                exception=e,
            )
            raise

        self.logger.info(
            f"Technical analysis completed for {symbol}",
            context={
                "trace_id": trace_id,
                "symbol": symbol,
                "samples": len(series),
                "overall_signal": analysis.overall_signal.value,
                "confidence": analysis.confidence,
                "patterns": [p.pattern for p in analysis.patterns],
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return analysis

    def analyze_many(self, series_by_symbol: dict[str, PriceSeries]) -> dict[str, TechnicalAnalysis]:
        """
        Analyze several symbols, skipping those whose series is unusable.

        Returns:
            Mapping of symbol to analysis for every symbol that succeeded
        """
        results = {}
        for symbol, series in series_by_symbol.items():
            if not len(series):
                self.logger.warning(
                    f"Skipping analysis for {symbol}: empty price series",
                    context={"trace_id": get_current_trace(), "symbol": symbol},
                )
                continue
            results[symbol] = self.analyze(symbol, series)
        return results
