"""Technical indicators: SMA, EMA, RSI, MACD, Bollinger Bands, Fibonacci,
support/resistance and chart patterns. Pure functions, no I/O.

Every function accepts either a ``PriceSeries`` or a plain list of prices.
Empty or non-finite input raises ``InvalidSeries``; a series that is merely
too short for the requested window yields the documented neutral value so
that composite analysis never fails on sparse history.
"""

import math
from collections.abc import Sequence

from portfolio_engine.models.analysis import (
    FIBONACCI_RATIOS,
    BollingerBands,
    Direction,
    FibonacciLevels,
    IndicatorResult,
    MACDResult,
    PatternResult,
    Signal,
    Strength,
    SupportResistance,
)
from portfolio_engine.models.market_data import PriceSeries
from portfolio_engine.utils.errors import InvalidSeries

Prices = PriceSeries | Sequence[float]

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


def as_prices(prices: Prices) -> list[float]:
    """
    Flatten and validate a price input.

    Raises:
        InvalidSeries: If the input is empty or contains non-finite values
    """
    if isinstance(prices, PriceSeries):
        values = prices.prices
    else:
        try:
            values = [float(p) for p in prices]
        except (TypeError, ValueError) as e:
            raise InvalidSeries(f"Prices must be numeric: {e}") from e
        if not all(math.isfinite(v) for v in values):
            raise InvalidSeries("Prices must be finite numbers")
    if not values:
        raise InvalidSeries("Price series is empty")
    return values


def _check_period(period: int, name: str = "period") -> None:
    if period < 1:
        raise InvalidSeries(f"{name} must be a positive integer, got {period}")


def _ema(values: list[float], period: int) -> float:
    """Unrounded EMA seeded with the first value, over the whole slice."""
    k = 2 / (period + 1)
    ema = values[0]
    for value in values[1:]:
        ema = value * k + ema * (1 - k)
    return ema


def calculate_sma(prices: Prices, period: int) -> float:
    """Mean of the last *period* prices, rounded to 4 dp; 0.0 if too short."""
    values = as_prices(prices)
    _check_period(period)
    if len(values) < period:
        return 0.0
    return round(sum(values[-period:]) / period, 4)


def calculate_ema(prices: Prices, period: int) -> float:
    """Calculate an Exponential Moving Average.

    Uses ``EMA = price × k + EMA_prev × (1 - k)`` with ``k = 2 / (period + 1)``,
    seeded with the first price and applied over the entire input, so the
    caller chooses the window by slicing. Returns the last value rounded to
    4 dp, or 0.0 when fewer than *period* prices are given.
    """
    values = as_prices(prices)
    _check_period(period)
    if len(values) < period:
        return 0.0
    return round(_ema(values, period), 4)


def _rsi_signal(rsi: float) -> tuple[Signal, Strength]:
    if rsi <= 30:
        return Signal.BUY, Strength.STRONG if rsi <= 20 else Strength.WEAK
    if rsi >= 70:
        return Signal.SELL, Strength.STRONG if rsi >= 80 else Strength.WEAK
    return Signal.HOLD, Strength.NEUTRAL


def calculate_rsi(prices: Prices, period: int = 14) -> IndicatorResult:
    """Calculate Wilder's Relative Strength Index.

    Algorithm:
        1. Seed average gain/loss with the mean of the first *period* deltas.
        2. Smooth each later delta: ``avg = (avg × (period-1) + current) / period``.
        3. ``RS = avg_gain / avg_loss``; ``RSI = 100 - 100 / (1 + RS)``.

    With no losses RSI is 100 (50 if there were no gains either). Fewer than
    ``period + 1`` prices yields a neutral 50/HOLD.
    """
    values = as_prices(prices)
    _check_period(period)
    if len(values) < period + 1:
        return IndicatorResult.neutral()

    deltas = [values[i] - values[i - 1] for i in range(1, len(values))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [max(-d, 0.0) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    for gain, loss in zip(gains[period:], losses[period:], strict=True):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        rsi = 100.0 if avg_gain > 0 else 50.0
    else:
        rs = avg_gain / avg_loss
        rsi = 100.0 - 100.0 / (1.0 + rs)

    rsi = min(100.0, max(0.0, round(rsi, 2)))
    signal, strength = _rsi_signal(rsi)
    return IndicatorResult(value=rsi, signal=signal, strength=strength)


def calculate_macd(prices: Prices) -> MACDResult:
    """Calculate MACD (12/26) with a 9-period signal line.

    The signal line is the EMA of the MACD history, where each history entry
    is ``EMA12 - EMA26`` of the prefix ending at index 26, 27, ... Because
    each EMA is seeded with the first price, the prefix EMA equals the
    running EMA state, so the history is built in one pass.

    Fewer than 26 prices yields an all-zero result. While the history is
    shorter than 9 entries the signal line is 0.0.
    """
    values = as_prices(prices)
    if len(values) < MACD_SLOW:
        return MACDResult(macd=0.0, signal=0.0, histogram=0.0)

    k_fast = 2 / (MACD_FAST + 1)
    k_slow = 2 / (MACD_SLOW + 1)
    ema_fast = ema_slow = values[0]
    history: list[float] = []

    for i, value in enumerate(values):
        if i > 0:
            ema_fast = value * k_fast + ema_fast * (1 - k_fast)
            ema_slow = value * k_slow + ema_slow * (1 - k_slow)
        if i >= MACD_SLOW:
            history.append(round(ema_fast, 4) - round(ema_slow, 4))

    macd = round(ema_fast, 4) - round(ema_slow, 4)
    signal = round(_ema(history, MACD_SIGNAL), 4) if len(history) >= MACD_SIGNAL else 0.0

    return MACDResult(
        macd=round(macd, 4),
        signal=signal,
        histogram=round(macd - signal, 4),
    )


def calculate_bollinger_bands(
    prices: Prices, period: int = 20, multiplier: float = 2.0
) -> BollingerBands:
    """SMA ± multiplier × population standard deviation over *period*."""
    values = as_prices(prices)
    _check_period(period)
    if multiplier < 0:
        raise InvalidSeries(f"multiplier must not be negative, got {multiplier}")
    if len(values) < period:
        return BollingerBands(upper=0.0, middle=0.0, lower=0.0)

    middle = calculate_sma(values, period)
    window = values[-period:]
    variance = sum((p - middle) ** 2 for p in window) / period
    std_dev = math.sqrt(variance)

    return BollingerBands(
        upper=round(middle + std_dev * multiplier, 4),
        middle=middle,
        lower=round(middle - std_dev * multiplier, 4),
    )


def calculate_fibonacci_retracement(high: float, low: float) -> FibonacciLevels:
    """Retracement levels ``high - (high - low) × ratio``.

    The 0% and 100% levels are *high* and *low* themselves.

    Raises:
        InvalidSeries: If either bound is non-finite or high < low
    """
    if not (math.isfinite(high) and math.isfinite(low)):
        raise InvalidSeries("Fibonacci bounds must be finite")
    if high < low:
        raise InvalidSeries(f"high ({high}) must not be below low ({low})")

    price_range = high - low
    levels = {}
    for label, ratio in FIBONACCI_RATIOS.items():
        if ratio == 0.0:
            levels[label] = high
        elif ratio == 1.0:
            levels[label] = low
        else:
            levels[label] = high - price_range * ratio

    return FibonacciLevels(high=high, low=low, levels=levels)


def _group_levels(levels: list[float], min_touches: int) -> list[float]:
    """Cluster levels within 1% of a group and keep the most-touched three.

    A level joins the first group within 1% of the group's current level;
    the group level becomes the average of the old level and the newcomer.
    """
    groups: list[list[float]] = []  # [level, count]

    for level in levels:
        for group in groups:
            if group[0] == 0:
                close = level == 0
            else:
                close = abs(group[0] - level) / group[0] < 0.01
            if close:
                group[0] = (group[0] + level) / 2
                group[1] += 1
                break
        else:
            groups.append([level, 1])

    kept = [g for g in groups if g[1] >= min_touches]
    kept.sort(key=lambda g: g[1], reverse=True)
    return [g[0] for g in kept[:3]]


def calculate_support_resistance(prices: Prices, min_touches: int = 2) -> SupportResistance:
    """Support and resistance from swing points.

    A swing low (high) is a price ``<=`` (``>=``) the two prices on each
    side. Swing prices are clustered by ``_group_levels``.
    """
    values = as_prices(prices)
    _check_period(min_touches, "min_touches")

    support: list[float] = []
    resistance: list[float] = []

    for i in range(2, len(values) - 2):
        price = values[i]
        neighbours = (values[i - 2], values[i - 1], values[i + 1], values[i + 2])
        if all(price <= n for n in neighbours):
            support.append(round(price, 4))
        if all(price >= n for n in neighbours):
            resistance.append(round(price, 4))

    return SupportResistance(
        support=_group_levels(support, min_touches),
        resistance=_group_levels(resistance, min_touches),
    )


def _head_and_shoulders(values: list[float], current_price: float) -> PatternResult | None:
    recent = values[-20:]
    head_index = recent.index(max(recent))
    if not 5 <= head_index <= 15:
        return None

    head = recent[head_index]
    left_shoulder = max(recent[: head_index - 2])
    right_shoulder = max(recent[head_index + 2 :])
    if left_shoulder == 0:
        return None

    if (
        head > left_shoulder
        and head > right_shoulder
        and abs(left_shoulder - right_shoulder) / left_shoulder < 0.05
    ):
        return PatternResult(
            pattern="Head and Shoulders",
            probability=75,
            direction=Direction.BEARISH,
            target=round(current_price * 0.95, 4),
            stop_loss=round(head * 1.02, 4),
        )
    return None


def _double_top_bottom(values: list[float], current_price: float) -> list[PatternResult]:
    # Only the two most recent extrema are compared; earlier pairs are ignored.
    highs: list[float] = []
    lows: list[float] = []
    for i in range(2, len(values) - 2):
        if values[i] > values[i - 1] and values[i] > values[i + 1]:
            highs.append(values[i])
        if values[i] < values[i - 1] and values[i] < values[i + 1]:
            lows.append(values[i])

    patterns = []
    if len(highs) >= 2:
        first, second = highs[-2:]
        if first != 0 and abs(first - second) / first < 0.02:
            patterns.append(
                PatternResult(
                    pattern="Double Top",
                    probability=70,
                    direction=Direction.BEARISH,
                    target=round(current_price * 0.94, 4),
                    stop_loss=round(max(first, second) * 1.02, 4),
                )
            )
    if len(lows) >= 2:
        first, second = lows[-2:]
        if first != 0 and abs(first - second) / first < 0.02:
            patterns.append(
                PatternResult(
                    pattern="Double Bottom",
                    probability=70,
                    direction=Direction.BULLISH,
                    target=round(current_price * 1.06, 4),
                    stop_loss=round(min(first, second) * 0.98, 4),
                )
            )
    return patterns


def detect_patterns(prices: Prices) -> list[PatternResult]:
    """Heuristic chart patterns; every check runs independently.

    Head and Shoulders needs 20 prices, Double Top/Bottom needs 30.
    """
    values = as_prices(prices)
    current_price = values[-1]
    patterns: list[PatternResult] = []

    if len(values) >= 20:
        pattern = _head_and_shoulders(values, current_price)
        if pattern:
            patterns.append(pattern)

    if len(values) >= 30:
        patterns.extend(_double_top_bottom(values, current_price))

    return patterns
