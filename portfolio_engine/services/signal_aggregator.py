"""Majority-vote aggregation of indicator signals and market cycle readings."""

from collections.abc import Iterable

from portfolio_engine.models.analysis import Direction, IndicatorResult, MarketCycle, Signal
from portfolio_engine.models.market_data import MacroIndicator

GREED_THRESHOLD = 70
FEAR_THRESHOLD = 30
MAX_CYCLE_CONFIDENCE = 90

# name fragment -> (bullish test, bearish test, bullish label, bearish label)
MACRO_RULES = (
    ("Interest Rate", lambda v: v < 3, lambda v: v > 5, "Low interest rates", "High interest rates"),
    ("Inflation", lambda v: v < 2, lambda v: v > 4, "Low inflation", "High inflation"),
    ("GDP", lambda v: v > 3, lambda v: v < 1, "Strong GDP growth", "Weak GDP growth"),
)


def vote_from_signal(result: IndicatorResult) -> Direction:
    """BUY votes bullish, SELL votes bearish, HOLD abstains."""
    if result.signal == Signal.BUY:
        return Direction.BULLISH
    if result.signal == Signal.SELL:
        return Direction.BEARISH
    return Direction.NEUTRAL


def vote_from_comparison(value: float, reference: float, available: bool = True) -> Direction:
    """
    Bullish when *value* is above *reference*, bearish when below.

    Equal values, or a reference that could not be computed, abstain.
    """
    if not available or value == reference:
        return Direction.NEUTRAL
    return Direction.BULLISH if value > reference else Direction.BEARISH


def aggregate_signals(votes: Iterable[Direction]) -> tuple[Direction, float]:
    """
    Combine votes into an overall direction and a confidence.

    Neutral votes count for neither side. Ties (including no decisive
    votes at all) resolve to NEUTRAL.

    Args:
        votes: Individual indicator votes

    Returns:
        Tuple of (overall direction, confidence in [0, 100])
    """
    bullish = 0
    bearish = 0
    for vote in votes:
        if vote == Direction.BULLISH:
            bullish += 1
        elif vote == Direction.BEARISH:
            bearish += 1

    if bullish > bearish:
        overall = Direction.BULLISH
    elif bearish > bullish:
        overall = Direction.BEARISH
    else:
        overall = Direction.NEUTRAL

    decisive = bullish + bearish
    confidence = abs(bullish - bearish) / decisive * 100 if decisive else 0.0
    return overall, confidence


def _find_macro(indicators: list[MacroIndicator], fragment: str) -> MacroIndicator | None:
    return next((i for i in indicators if fragment in i.name), None)


def determine_market_cycle(
    fear_greed: float, macro_indicators: Iterable[MacroIndicator]
) -> MarketCycle:
    """
    Vote the broad market cycle from the Fear & Greed Index and macro figures.

    Fear & Greed at or above 70 is two bullish votes, at or below 30 two
    bearish votes. Interest rate, inflation and GDP growth each add one vote
    when outside their neutral band. The winning side's share of the votes
    is the confidence, capped at 90; a tie is NEUTRAL at 50.

    Args:
        fear_greed: Index value, 0-100
        macro_indicators: Figures matched by name ("Interest Rate",
            "Inflation", "GDP"); missing ones are skipped

    Returns:
        MarketCycle with the readings that cast votes
    """
    indicators = list(macro_indicators)
    notes: list[str] = []
    bullish = 0
    bearish = 0

    if fear_greed >= GREED_THRESHOLD:
        bullish += 2
        notes.append("High Fear & Greed Index")
    elif fear_greed <= FEAR_THRESHOLD:
        bearish += 2
        notes.append("Low Fear & Greed Index")
    else:
        notes.append("Neutral Fear & Greed Index")

    for fragment, is_bullish, is_bearish, bullish_note, bearish_note in MACRO_RULES:
        indicator = _find_macro(indicators, fragment)
        if indicator is None:
            continue
        if is_bullish(indicator.value):
            bullish += 1
            notes.append(bullish_note)
        elif is_bearish(indicator.value):
            bearish += 1
            notes.append(bearish_note)

    if bullish == bearish:
        return MarketCycle(cycle=Direction.NEUTRAL, confidence=50, indicators=notes)

    cycle = Direction.BULLISH if bullish > bearish else Direction.BEARISH
    share = max(bullish, bearish) / (bullish + bearish) * 100
    return MarketCycle(
        cycle=cycle,
        confidence=round(min(MAX_CYCLE_CONFIDENCE, share)),
        indicators=notes,
    )
