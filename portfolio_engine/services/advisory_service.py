"""Advisory facade: natural-language commentary with a rule-based fallback."""

import json
import math
from typing import Any

import httpx

from portfolio_engine.models.advisory import (
    AdvisoryErr,
    AdvisoryInsight,
    AdvisoryOk,
    AdvisoryResult,
    PortfolioAdvice,
    RebalanceAdvice,
)
from portfolio_engine.models.analysis import TechnicalAnalysis
from portfolio_engine.models.portfolio import ValuationSnapshot
from portfolio_engine.utils.config import AdvisoryConfig, config
from portfolio_engine.utils.errors import ProviderFailure
from portfolio_engine.utils.logger import StructuredLogger
from portfolio_engine.utils.trace_context import get_current_trace

SENTIMENTS = ("bullish", "bearish", "neutral")
TIMEFRAMES = ("short", "medium", "long")
RISK_LEVELS = ("low", "medium", "high")


def _fmt(value: float) -> str:
    return f"{value:,.4f}".rstrip("0").rstrip(".")


def build_analysis_prompt(symbol: str, analysis: TechnicalAnalysis) -> str:
    """Build the request text for a single-asset insight."""
    levels = analysis.support_resistance
    patterns = ", ".join(p.pattern for p in analysis.patterns) or "none detected"
    return f"""Analyze {symbol} cryptocurrency with the following data:
Current Price: ${_fmt(analysis.current_price)}
RSI: {analysis.rsi.value} ({analysis.rsi.signal.value}, {analysis.rsi.strength.value})
SMA20 / SMA50 / SMA200: {_fmt(analysis.sma20)} / {_fmt(analysis.sma50)} / {_fmt(analysis.sma200)}
MACD: {analysis.macd.macd} (signal {analysis.macd.signal}, histogram {analysis.macd.histogram})
Bollinger Bands: {_fmt(analysis.bollinger_bands.lower)} - {_fmt(analysis.bollinger_bands.upper)}
Support Levels: {", ".join(_fmt(s) for s in levels.support) or "N/A"}
Resistance Levels: {", ".join(_fmt(r) for r in levels.resistance) or "N/A"}
Patterns: {patterns}
Overall Signal: {analysis.overall_signal.value} ({analysis.confidence:.0f}% confidence)

Respond with a JSON object containing:
- type: "bullish", "bearish", or "neutral"
- confidence: number (0-100)
- signal: brief signal description
- reasoning: detailed analysis reasoning
- timeframe: "short", "medium", or "long"
- keyLevels: {{"support": [], "resistance": []}}
- riskLevel: "low", "medium", or "high"
"""


def build_portfolio_prompt(snapshot: ValuationSnapshot) -> str:
    """Build the request text for whole-portfolio advice."""
    holdings = "\n".join(
        f"{a.holding.symbol}: {a.holding.quantity} coins, ${a.value:,.2f} value"
        for a in snapshot.per_asset
    )
    return f"""Analyze this crypto portfolio:
Total Value: ${snapshot.total_value:,.2f}
24h Change: {snapshot.change_percent:+.2f}%
Holdings:
{holdings or "(empty)"}

Respond with a JSON object containing:
- overallSentiment: "bullish", "bearish", or "neutral"
- diversificationScore: number (0-100)
- riskScore: number (0-100)
- recommendations: list of strings
- rebalanceAdvice: list of {{"action": "buy"|"sell"|"hold", "asset": symbol, "reasoning": text}}
"""


def fallback_insight(symbol: str, analysis: TechnicalAnalysis) -> AdvisoryInsight:
    """
    Deterministic insight from RSI thresholds and price vs key levels.

    RSI below 30 reads as oversold (bullish), above 70 as overbought
    (bearish), anything else as neutral.
    """
    rsi = analysis.rsi.value
    price = analysis.current_price

    if rsi < 30:
        sentiment, confidence = "bullish", 75
        signal = "Potential buying opportunity"
        reasoning = "RSI indicates oversold conditions, suggesting a potential reversal."
    elif rsi > 70:
        sentiment, confidence = "bearish", 70
        signal = "Consider taking profits"
        reasoning = "RSI indicates overbought conditions, price may face resistance."
    else:
        sentiment, confidence = "neutral", 50
        signal = "Hold position"
        reasoning = "Technical indicators show mixed signals."

    support = list(analysis.support_resistance.support)
    resistance = list(analysis.support_resistance.resistance)

    supports_below = [s for s in support if s <= price]
    resistances_above = [r for r in resistance if r >= price]
    if supports_below:
        reasoning += f" Nearest support at {_fmt(max(supports_below))}."
    elif support:
        reasoning += " Price is trading below all detected support levels."
    if resistances_above:
        reasoning += f" Nearest resistance at {_fmt(min(resistances_above))}."
    elif resistance:
        reasoning += " Price has broken above all detected resistance levels."
    if analysis.sma20:
        position = "above" if price >= analysis.sma20 else "below"
        reasoning += f" Price is {position} the 20-period average ({_fmt(analysis.sma20)})."

    if not support:
        support = [round(price * 0.95, 4), round(price * 0.90, 4)]
    if not resistance:
        resistance = [round(price * 1.05, 4), round(price * 1.10, 4)]

    return AdvisoryInsight(
        symbol=symbol,
        type=sentiment,
        confidence=confidence,
        signal=signal,
        reasoning=reasoning,
        timeframe="short",
        support=support,
        resistance=resistance,
        risk_level="low" if confidence > 70 else "medium",
        source="fallback",
    )


def fallback_portfolio_advice(snapshot: ValuationSnapshot) -> PortfolioAdvice:
    """Rule-based diversification and risk scoring."""
    symbols = set(snapshot.symbols)
    has_multiple = len(symbols) > 1
    has_bitcoin = "BTC" in symbols
    has_ethereum = "ETH" in symbols

    diversification = 30
    if has_multiple:
        diversification += 30
    if has_bitcoin and has_ethereum:
        diversification += 20
    if len(symbols) >= 5:
        diversification += 20

    recommendations = [
        "Good diversification across multiple assets"
        if has_multiple
        else "Consider diversifying into more cryptocurrencies",
        "Bitcoin provides good portfolio stability"
        if has_bitcoin
        else "Consider adding Bitcoin for stability",
        "Ethereum adds smart contract exposure"
        if has_ethereum
        else "Consider Ethereum for DeFi exposure",
    ]

    return PortfolioAdvice(
        overall_sentiment="neutral",
        diversification_score=min(diversification, 100),
        risk_score=80 if len(symbols) == 1 else 50,
        recommendations=recommendations,
        rebalance_advice=[
            RebalanceAdvice(action="hold", asset="BTC", reasoning="Maintain current Bitcoin position")
        ],
        source="fallback",
    )


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return number


def _clamp_score(value: Any) -> int:
    return max(0, min(100, int(round(_finite(value)))))


def _float_list(values: Any) -> list[float]:
    return [_finite(v) for v in values or []]


def parse_insight(symbol: str, payload: dict[str, Any]) -> AdvisoryInsight:
    """
    Convert a provider JSON document into an insight.

    Raises:
        ValueError: If a required field is missing or out of range
    """
    try:
        sentiment = str(payload["type"]).lower()
        if sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment: {sentiment}")
        timeframe = str(payload.get("timeframe", "short")).lower()
        risk_level = str(payload.get("riskLevel", "medium")).lower()
        key_levels = payload.get("keyLevels") or {}
        return AdvisoryInsight(
            symbol=symbol,
            type=sentiment,
            confidence=_clamp_score(payload["confidence"]),
            signal=str(payload["signal"]),
            reasoning=str(payload["reasoning"]),
            timeframe=timeframe if timeframe in TIMEFRAMES else "short",
            support=_float_list(key_levels.get("support")),
            resistance=_float_list(key_levels.get("resistance")),
            risk_level=risk_level if risk_level in RISK_LEVELS else "medium",
            source="provider",
        )
    except (KeyError, TypeError, AttributeError, OverflowError) as e:
        raise ValueError(f"Malformed insight payload: {e}") from e


def parse_portfolio_advice(payload: dict[str, Any]) -> PortfolioAdvice:
    """
    Convert a provider JSON document into portfolio advice.

    Raises:
        ValueError: If a required field is missing or out of range
    """
    try:
        sentiment = str(payload["overallSentiment"]).lower()
        if sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment: {sentiment}")
        rebalance = []
        for item in payload.get("rebalanceAdvice") or []:
            action = str(item["action"]).lower()
            if action not in ("buy", "sell", "hold"):
                continue
            rebalance.append(
                RebalanceAdvice(action=action, asset=str(item["asset"]), reasoning=str(item["reasoning"]))
            )
        return PortfolioAdvice(
            overall_sentiment=sentiment,
            diversification_score=_clamp_score(payload["diversificationScore"]),
            risk_score=_clamp_score(payload["riskScore"]),
            recommendations=[str(r) for r in payload.get("recommendations") or []],
            rebalance_advice=rebalance,
            source="provider",
        )
    except (KeyError, TypeError, AttributeError, OverflowError) as e:
        raise ValueError(f"Malformed portfolio advice payload: {e}") from e


class AdvisoryService:
    """Requests commentary from an LLM endpoint, falling back to rules."""

    def __init__(self, settings: AdvisoryConfig | None = None):
        """
        Initialize the advisory service.

        Args:
            settings: Provider settings (defaults to the global config)
        """
        self.settings = settings or config.advisory
        self.logger = StructuredLogger("AdvisoryService")

    @property
    def is_available(self) -> bool:
        return self.settings.enabled

    async def _call_provider(self, prompt: str) -> dict[str, Any]:
        """
        Send a prompt and return the JSON document from the reply.

        Raises:
            ProviderFailure: On transport errors, non-200 answers or non-JSON content
        """
        request_body = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": "You are a cautious crypto market analyst. Reply with JSON only."},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.settings.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
                response = await client.post(self.settings.api_url, json=request_body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderFailure("advisory", f"Advisory request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderFailure(
                "advisory",
                f"Advisory provider returned {response.status_code}",
                {"status_code": response.status_code},
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
            document = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderFailure("advisory", f"Unreadable advisory response: {e}") from e

        if not isinstance(document, dict):
            raise ProviderFailure("advisory", "Advisory response is not a JSON object")
        return document

    async def request(self, prompt: str) -> AdvisoryResult:
        """Call the provider and fold every failure into an AdvisoryErr."""
        if not self.is_available:
            return AdvisoryErr(reason="advisory provider not configured")
        try:
            return AdvisoryOk(payload=await self._call_provider(prompt))
        except ProviderFailure as e:
            self.logger.warning(
                "Advisory provider failed, using fallback",
                context={"trace_id": get_current_trace(), "error_code": e.error_code},
                exception=e,
            )
            return AdvisoryErr(reason=e.message)

    async def generate_insight(self, symbol: str, analysis: TechnicalAnalysis) -> AdvisoryInsight:
        """
        Commentary for one asset. Never raises; falls back to rules.

        Args:
            symbol: Asset symbol
            analysis: Technical analysis of the asset

        Returns:
            AdvisoryInsight with ``source`` telling which path produced it
        """
        result = await self.request(build_analysis_prompt(symbol, analysis))
        if isinstance(result, AdvisoryOk):
            try:
                return parse_insight(symbol, result.payload)
            except ValueError as e:
                self.logger.warning(
                    "Discarding malformed advisory insight",
                    context={"trace_id": get_current_trace(), "symbol": symbol, "reason": str(e)},
                )
        return fallback_insight(symbol, analysis)

    async def generate_portfolio_advice(self, snapshot: ValuationSnapshot) -> PortfolioAdvice:
        """Commentary for a portfolio. Never raises; falls back to rules."""
        result = await self.request(build_portfolio_prompt(snapshot))
        if isinstance(result, AdvisoryOk):
            try:
                return parse_portfolio_advice(result.payload)
            except ValueError as e:
                self.logger.warning(
                    "Discarding malformed portfolio advice",
                    context={"trace_id": get_current_trace(), "reason": str(e)},
                )
        return fallback_portfolio_advice(snapshot)
