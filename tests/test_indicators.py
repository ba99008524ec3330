"""Tests for technical indicator calculations."""

import math

import pytest
from hypothesis import given, strategies as st

from conftest import make_series
from portfolio_engine.models.analysis import Direction, Signal, Strength
from portfolio_engine.services import indicators
from portfolio_engine.services.indicators import (
    as_prices,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_fibonacci_retracement,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_support_resistance,
    detect_patterns,
)
from portfolio_engine.utils.errors import InvalidSeries

price_lists = st.lists(
    st.floats(min_value=0.01, max_value=1_000_000, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=120,
)

HEAD_AND_SHOULDERS = [
    100, 101, 102, 105, 103, 102, 104, 108, 112, 110,
    120, 111, 106, 104, 107, 105, 103, 102, 101, 100,
]

DOUBLE_TOP = (
    [50, 51, 52, 53, 54, 60]
    + [54, 53, 52, 51, 50, 49, 48, 47, 46, 45]
    + [46, 47, 48, 49, 50, 51, 52, 53, 54, 60.5]
    + [54, 53, 52, 51]
)


class TestInputValidation:
    """Empty and malformed input is rejected by every indicator."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda p: calculate_sma(p, 5),
            lambda p: calculate_ema(p, 5),
            calculate_rsi,
            calculate_macd,
            calculate_bollinger_bands,
            calculate_support_resistance,
            detect_patterns,
        ],
    )
    def test_empty_series_raises(self, call):
        with pytest.raises(InvalidSeries):
            call([])

    def test_non_finite_price_raises(self):
        with pytest.raises(InvalidSeries):
            as_prices([1.0, float("nan"), 3.0])

    def test_non_numeric_price_raises(self):
        with pytest.raises(InvalidSeries):
            as_prices([1.0, "abc"])

    def test_non_positive_period_raises(self):
        with pytest.raises(InvalidSeries):
            calculate_sma([1.0, 2.0], 0)

    def test_price_series_is_accepted(self):
        series = make_series([1.0, 2.0, 3.0, 4.0, 5.0])
        assert calculate_sma(series, 3) == calculate_sma([1.0, 2.0, 3.0, 4.0, 5.0], 3)


class TestMovingAverages:
    """Tests for SMA and EMA."""

    def test_sma_of_last_window(self):
        assert calculate_sma([1, 2, 3, 4, 5], 3) == 4.0

    def test_sma_short_series_is_zero(self):
        assert calculate_sma([1, 2], 3) == 0.0

    @given(prices=price_lists, period=st.integers(min_value=1, max_value=50))
    def test_sma_equals_window_mean(self, prices, period):
        """
        **Feature: moving-averages, Property: SMA is the mean of the trailing window**

        For any series at least as long as the period, the SMA SHALL equal the
        arithmetic mean of the last *period* prices to 4 decimal places.
        """
        result = calculate_sma(prices, period)
        if len(prices) < period:
            assert result == 0.0
        else:
            expected = sum(prices[-period:]) / period
            assert result == pytest.approx(expected, abs=1e-4, rel=1e-9)

    @given(
        price=st.floats(min_value=0.01, max_value=1_000_000, allow_nan=False, allow_infinity=False),
        length=st.integers(min_value=12, max_value=60),
    )
    def test_ema_of_constant_series_is_constant(self, price, length):
        assert calculate_ema([price] * length, 12) == pytest.approx(price, abs=1e-4, rel=1e-9)

    def test_ema_short_series_is_zero(self):
        assert calculate_ema([1, 2, 3], 12) == 0.0


class TestRSI:
    """Tests for Wilder RSI."""

    def test_rising_series_is_overbought(self):
        result = calculate_rsi([float(i) for i in range(1, 21)])
        assert result.value == 100.0
        assert result.signal == Signal.SELL
        assert result.strength == Strength.STRONG

    def test_falling_series_is_oversold(self):
        result = calculate_rsi([float(i) for i in range(20, 0, -1)])
        assert result.value == 0.0
        assert result.signal == Signal.BUY
        assert result.strength == Strength.STRONG

    def test_flat_series_is_neutral(self):
        result = calculate_rsi([100.0] * 30)
        assert result.value == 50.0
        assert result.signal == Signal.HOLD

    def test_short_series_is_neutral(self):
        result = calculate_rsi([float(i) for i in range(14)])
        assert result.value == 50.0
        assert result.signal == Signal.HOLD
        assert result.strength == Strength.NEUTRAL

    @given(prices=price_lists)
    def test_rsi_is_bounded(self, prices):
        """
        **Feature: oscillators, Property: RSI stays within 0-100**

        For any finite series, the RSI value SHALL be within [0, 100] and its
        signal SHALL agree with the 30/70 thresholds.
        """
        result = calculate_rsi(prices)
        assert 0.0 <= result.value <= 100.0
        if result.value <= 30:
            assert result.signal == Signal.BUY
        elif result.value >= 70:
            assert result.signal == Signal.SELL
        else:
            assert result.signal == Signal.HOLD


class TestMACD:
    """Tests for MACD and its signal line."""

    def test_short_series_is_zero(self):
        result = calculate_macd([float(i) for i in range(25)])
        assert (result.macd, result.signal, result.histogram) == (0.0, 0.0, 0.0)

    def test_signal_is_zero_until_nine_history_entries(self):
        result = calculate_macd([float(i) for i in range(1, 31)])
        assert result.signal == 0.0
        assert result.histogram == result.macd

    @given(
        prices=st.lists(
            st.floats(min_value=1, max_value=10_000, allow_nan=False, allow_infinity=False),
            min_size=26,
            max_size=80,
        )
    )
    def test_matches_prefix_replay(self, prices):
        """
        **Feature: oscillators, Property: MACD history equals per-prefix EMAs**

        The one-pass MACD SHALL equal recomputing EMA12 - EMA26 on every
        prefix and smoothing that history with a 9-period EMA.
        """
        history = [
            calculate_ema(prices[: i + 1], 12) - calculate_ema(prices[: i + 1], 26)
            for i in range(26, len(prices))
        ]
        expected_macd = calculate_ema(prices, 12) - calculate_ema(prices, 26)
        expected_signal = round(indicators._ema(history, 9), 4) if len(history) >= 9 else 0.0

        result = calculate_macd(prices)
        assert result.macd == pytest.approx(round(expected_macd, 4), abs=1e-9)
        assert result.signal == pytest.approx(expected_signal, abs=1e-9)
        assert result.histogram == pytest.approx(result.macd - result.signal, abs=2e-4)


class TestBollingerBands:
    """Tests for Bollinger Bands."""

    @given(prices=price_lists)
    def test_band_ordering(self, prices):
        """
        **Feature: volatility, Property: lower <= middle <= upper**
        """
        bands = calculate_bollinger_bands(prices)
        assert bands.lower <= bands.middle <= bands.upper

    def test_flat_series_collapses(self):
        bands = calculate_bollinger_bands([50.0] * 20)
        assert bands.upper == bands.middle == bands.lower == 50.0

    def test_known_values(self):
        prices = [2, 4, 4, 4, 5, 5, 7, 9]
        bands = calculate_bollinger_bands(prices, period=8, multiplier=2.0)
        # mean 5, population std dev 2
        assert bands.middle == 5.0
        assert bands.upper == 9.0
        assert bands.lower == 1.0

    def test_short_series_is_zero(self):
        bands = calculate_bollinger_bands([1.0] * 19)
        assert (bands.upper, bands.middle, bands.lower) == (0.0, 0.0, 0.0)

    def test_negative_multiplier_raises(self):
        with pytest.raises(InvalidSeries):
            calculate_bollinger_bands([1.0] * 20, multiplier=-1)


class TestFibonacci:
    """Tests for Fibonacci retracement levels."""

    def test_levels_between_100_and_50(self):
        levels = calculate_fibonacci_retracement(100, 50).levels
        assert levels["0%"] == 100
        assert levels["23.6%"] == pytest.approx(88.2)
        assert levels["38.2%"] == pytest.approx(80.9)
        assert levels["50%"] == pytest.approx(75.0)
        assert levels["61.8%"] == pytest.approx(69.1)
        assert levels["78.6%"] == pytest.approx(60.7)
        assert levels["100%"] == 50

    def test_levels_keep_full_precision(self):
        levels = calculate_fibonacci_retracement(1.00001, 0).levels
        assert levels["23.6%"] == pytest.approx(0.76400764, abs=1e-12)
        assert levels["23.6%"] != 0.764

    @given(
        low=st.floats(min_value=0, max_value=1_000_000, allow_nan=False, allow_infinity=False),
        spread=st.floats(min_value=0, max_value=1_000_000, allow_nan=False, allow_infinity=False),
    )
    def test_levels_are_monotonic_and_bounded(self, low, spread):
        """
        **Feature: retracements, Property: levels descend from high to low**
        """
        high = low + spread
        values = list(calculate_fibonacci_retracement(high, low).levels.values())
        assert values[0] == high
        assert values[-1] == low
        assert all(a >= b for a, b in zip(values, values[1:]))

    def test_inverted_bounds_raise(self):
        with pytest.raises(InvalidSeries):
            calculate_fibonacci_retracement(50, 100)

    def test_non_finite_bounds_raise(self):
        with pytest.raises(InvalidSeries):
            calculate_fibonacci_retracement(math.inf, 0)


class TestSupportResistance:
    """Tests for swing-point support and resistance."""

    def test_clusters_repeated_swings(self):
        prices = [10, 9, 5, 9, 10, 9, 5.02, 9, 10, 9, 5, 9, 10]
        levels = calculate_support_resistance(prices)
        assert levels.support == [pytest.approx(5.005)]
        assert levels.resistance == [pytest.approx(10.0)]

    def test_single_touch_is_dropped(self):
        prices = [10, 9, 5, 9, 10, 11, 12]
        levels = calculate_support_resistance(prices)
        assert levels.support == []

    def test_short_series_has_no_levels(self):
        levels = calculate_support_resistance([1, 2, 3, 4])
        assert levels.support == []
        assert levels.resistance == []

    @given(prices=price_lists)
    def test_at_most_three_levels(self, prices):
        levels = calculate_support_resistance(prices)
        assert len(levels.support) <= 3
        assert len(levels.resistance) <= 3


class TestPatterns:
    """Tests for chart pattern heuristics."""

    def test_head_and_shoulders(self):
        patterns = detect_patterns(HEAD_AND_SHOULDERS)
        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern == "Head and Shoulders"
        assert pattern.direction == Direction.BEARISH
        assert pattern.probability == 75
        assert pattern.target == 95.0
        assert pattern.stop_loss == 122.4

    def test_head_at_edge_is_ignored(self):
        assert detect_patterns([float(i) for i in range(1, 21)]) == []

    def test_double_top(self):
        patterns = {p.pattern: p for p in detect_patterns(DOUBLE_TOP)}
        assert "Double Top" in patterns
        assert "Double Bottom" not in patterns
        top = patterns["Double Top"]
        assert top.direction == Direction.BEARISH
        assert top.probability == 70
        assert top.target == pytest.approx(47.94)
        assert top.stop_loss == pytest.approx(61.71)

    def test_double_patterns_need_thirty_samples(self):
        names = [p.pattern for p in detect_patterns(DOUBLE_TOP[-29:])]
        assert "Double Top" not in names

    @given(prices=price_lists)
    def test_patterns_are_well_formed(self, prices):
        for pattern in detect_patterns(prices):
            assert 0 <= pattern.probability <= 100
            assert pattern.direction in (Direction.BULLISH, Direction.BEARISH)
