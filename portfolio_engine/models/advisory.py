"""Advisory insight models and the tagged result returned by the text provider."""

from dataclasses import dataclass, field
from typing import Any, Literal

Sentiment = Literal["bullish", "bearish", "neutral"]
InsightSource = Literal["provider", "fallback"]


@dataclass(frozen=True)
class AdvisoryInsight:
    """Commentary for a single asset."""

    symbol: str
    type: Sentiment
    confidence: int  # 0-100
    signal: str
    reasoning: str
    timeframe: Literal["short", "medium", "long"] = "short"
    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)
    risk_level: Literal["low", "medium", "high"] = "medium"
    source: InsightSource = "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "type": self.type,
            "confidence": self.confidence,
            "signal": self.signal,
            "reasoning": self.reasoning,
            "timeframe": self.timeframe,
            "keyLevels": {"support": list(self.support), "resistance": list(self.resistance)},
            "riskLevel": self.risk_level,
            "source": self.source,
        }


@dataclass(frozen=True)
class RebalanceAdvice:
    action: Literal["buy", "sell", "hold"]
    asset: str
    reasoning: str


@dataclass(frozen=True)
class PortfolioAdvice:
    """Commentary for a whole portfolio."""

    overall_sentiment: Sentiment
    diversification_score: int  # 0-100
    risk_score: int  # 0-100
    recommendations: list[str] = field(default_factory=list)
    rebalance_advice: list[RebalanceAdvice] = field(default_factory=list)
    source: InsightSource = "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallSentiment": self.overall_sentiment,
            "diversificationScore": self.diversification_score,
            "riskScore": self.risk_score,
            "recommendations": list(self.recommendations),
            "rebalanceAdvice": [
                {"action": r.action, "asset": r.asset, "reasoning": r.reasoning}
                for r in self.rebalance_advice
            ],
            "source": self.source,
        }


@dataclass(frozen=True)
class AdvisoryOk:
    """Provider returned a parseable JSON document."""

    payload: dict[str, Any]


@dataclass(frozen=True)
class AdvisoryErr:
    """Provider was unavailable or answered with something unusable."""

    reason: str


AdvisoryResult = AdvisoryOk | AdvisoryErr
