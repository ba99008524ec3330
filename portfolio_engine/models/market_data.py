"""Market data models for price series and live quotes."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from portfolio_engine.utils.errors import InvalidSeries


@dataclass(frozen=True)
class DataSource:
    """Represents the source of market data."""

    name: str
    url: str
    fetched_at: datetime


@dataclass(frozen=True)
class PricePoint:
    """A single price sample."""

    timestamp: int  # ms since epoch
    price: float


@dataclass(frozen=True)
class PriceSeries:
    """
    Ordered price samples with an optional parallel volume series.

    Timestamps are strictly increasing; construction rejects anything else.
    """

    points: tuple[PricePoint, ...] = ()
    volumes: tuple[PricePoint, ...] = ()
    source: DataSource | None = None

    def __post_init__(self):
        previous = None
        for point in self.points:
            if not math.isfinite(point.price):
                raise InvalidSeries(
                    "Price series contains a non-finite price",
                    {"timestamp": point.timestamp},
                )
            if previous is not None and point.timestamp <= previous:
                raise InvalidSeries(
                    "Price series timestamps must be strictly increasing",
                    {"timestamp": point.timestamp, "previous": previous},
                )
            previous = point.timestamp
        if self.volumes and len(self.volumes) != len(self.points):
            raise InvalidSeries(
                "Volume series must be the same length as the price series",
                {"prices": len(self.points), "volumes": len(self.volumes)},
            )

    @classmethod
    def from_pairs(
        cls,
        prices: Iterable[Sequence[float]],
        volumes: Iterable[Sequence[float]] | None = None,
        source: DataSource | None = None,
    ) -> "PriceSeries":
        """
        Build a series from provider ``[timestampMs, value]`` pairs.

        Raises:
            InvalidSeries: If a pair is malformed or timestamps are unordered
        """
        try:
            points = tuple(PricePoint(int(ts), float(price)) for ts, price in prices)
            volume_points = tuple(PricePoint(int(ts), float(vol)) for ts, vol in volumes or ())
        except (TypeError, ValueError) as e:
            raise InvalidSeries(f"Malformed price pair: {e}") from e
        return cls(points=points, volumes=volume_points, source=source)

    @property
    def prices(self) -> list[float]:
        return [p.price for p in self.points]

    @property
    def timestamps(self) -> list[int]:
        return [p.timestamp for p in self.points]

    @property
    def latest(self) -> PricePoint | None:
        return self.points[-1] if self.points else None

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class PriceQuote:
    """Current price and 24h change for one symbol."""

    symbol: str
    price: float
    price_change_24h: float = 0.0  # percent
    fetched_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FearGreedReading:
    """Latest Crypto Fear & Greed Index value (0 = extreme fear, 100 = extreme greed)."""

    value: int
    classification: str
    timestamp: int  # seconds since epoch

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "classification": self.classification,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class MacroIndicator:
    """A macroeconomic figure such as an interest or inflation rate."""

    name: str
    value: float
    unit: str = "%"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "unit": self.unit}
