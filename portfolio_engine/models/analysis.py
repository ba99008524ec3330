"""Technical analysis result models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Signal(str, Enum):
    """Trading action suggested by a single indicator."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Strength(str, Enum):
    """How strongly an indicator supports its signal."""

    STRONG = "STRONG"
    WEAK = "WEAK"
    NEUTRAL = "NEUTRAL"


class Direction(str, Enum):
    """Market direction used by votes, patterns and the overall signal."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


FIBONACCI_RATIOS: dict[str, float] = {
    "0%": 0.0,
    "23.6%": 0.236,
    "38.2%": 0.382,
    "50%": 0.5,
    "61.8%": 0.618,
    "78.6%": 0.786,
    "100%": 1.0,
}


@dataclass(frozen=True)
class IndicatorResult:
    """Value of an oscillator together with its signal."""

    value: float
    signal: Signal
    strength: Strength

    @classmethod
    def neutral(cls, value: float = 50.0) -> "IndicatorResult":
        return cls(value=value, signal=Signal.HOLD, strength=Strength.NEUTRAL)

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "signal": self.signal.value, "strength": self.strength.value}


@dataclass(frozen=True)
class MACDResult:
    """MACD line, signal line and histogram."""

    macd: float
    signal: float
    histogram: float

    def to_dict(self) -> dict[str, float]:
        return {"macd": self.macd, "signal": self.signal, "histogram": self.histogram}


@dataclass(frozen=True)
class BollingerBands:
    """Volatility envelope around a simple moving average."""

    upper: float
    middle: float
    lower: float

    def to_dict(self) -> dict[str, float]:
        return {"upper": self.upper, "middle": self.middle, "lower": self.lower}


@dataclass(frozen=True)
class FibonacciLevels:
    """Retracement levels between a high and a low, keyed by ratio label."""

    high: float
    low: float
    levels: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        return {"high": self.high, "low": self.low, "levels": dict(self.levels)}


@dataclass(frozen=True)
class SupportResistance:
    """Clustered reversal levels, most-touched first, at most three per side."""

    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[float]]:
        return {"support": list(self.support), "resistance": list(self.resistance)}


@dataclass(frozen=True)
class PatternResult:
    """A chart pattern candidate."""

    pattern: str
    probability: int  # 0-100
    direction: Direction
    target: float
    stop_loss: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "probability": self.probability,
            "direction": self.direction.value,
            "target": self.target,
            "stopLoss": self.stop_loss,
        }


@dataclass(frozen=True)
class TechnicalAnalysis:
    """Full indicator payload for one price series."""

    current_price: float
    rsi: IndicatorResult
    sma20: float
    sma50: float
    sma200: float
    ema12: float
    ema26: float
    macd: MACDResult
    bollinger_bands: BollingerBands
    support_resistance: SupportResistance
    patterns: list[PatternResult]
    overall_signal: Direction
    confidence: float  # 0-100

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase payload consumed by the dashboard."""
        return {
            "currentPrice": self.current_price,
            "rsi": self.rsi.to_dict(),
            "sma20": self.sma20,
            "sma50": self.sma50,
            "sma200": self.sma200,
            "ema12": self.ema12,
            "ema26": self.ema26,
            "macd": self.macd.to_dict(),
            "bollingerBands": self.bollinger_bands.to_dict(),
            "supportResistance": self.support_resistance.to_dict(),
            "patterns": [p.to_dict() for p in self.patterns],
            "overallSignal": self.overall_signal.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class MarketCycle:
    """Broad market phase voted from sentiment and macro readings."""

    cycle: Direction
    confidence: int  # 0-90
    indicators: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle.value,
            "confidence": self.confidence,
            "indicators": list(self.indicators),
        }
