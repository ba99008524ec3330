"""Portfolio holding and valuation models."""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class Holding:
    """A user's quantity of one asset symbol."""

    symbol: str
    quantity: float
    purchase_price: float | None = None
    name: str | None = None
    last_price: float | None = None  # last price seen by a previous refresh

    def __post_init__(self):
        if self.quantity < 0:
            raise ValueError(f"Quantity must not be negative, got {self.quantity}")
        object.__setattr__(self, "symbol", self.symbol.upper())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Holding":
        """Build a holding from a storage record (camelCase or snake_case keys)."""
        purchase_price = data.get("purchasePrice", data.get("purchase_price"))
        last_price = data.get("currentPrice", data.get("current_price"))
        return cls(
            symbol=str(data["symbol"]),
            quantity=float(data["quantity"]),
            purchase_price=float(purchase_price) if purchase_price is not None else None,
            name=data.get("name"),
            last_price=float(last_price) if last_price is not None else None,
        )


PriceSource = Literal["live", "cached", "purchase", "none"]


@dataclass(frozen=True)
class AssetValuation:
    """One holding priced at a point in time."""

    holding: Holding
    current_price: float
    price_change_24h: float
    value: float
    price_source: PriceSource = "live"

    @property
    def stale(self) -> bool:
        return self.price_source != "live"

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.holding.symbol,
            "quantity": self.holding.quantity,
            "currentPrice": self.current_price,
            "priceChange24h": self.price_change_24h,
            "totalValue": self.value,
            "stale": self.stale,
            "priceSource": self.price_source,
        }


@dataclass(frozen=True)
class ValuationSnapshot:
    """Point-in-time value of a portfolio."""

    total_value: float
    total_change: float
    change_percent: float
    per_asset: list[AssetValuation] = field(default_factory=list)

    @property
    def stale_symbols(self) -> list[str]:
        return [a.holding.symbol for a in self.per_asset if a.stale]

    @property
    def symbols(self) -> list[str]:
        return [a.holding.symbol for a in self.per_asset]


@dataclass(frozen=True)
class HistoricalPoint:
    """One point of a chart-ready portfolio value series."""

    label: str
    value: float
    change_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "value": self.value, "changePercent": self.change_percent}


@dataclass(frozen=True)
class HistoricalSeries:
    """
    Portfolio value series for charting.

    ``estimated`` is True when the points were synthesized from the current
    value rather than aggregated from provider history.
    """

    points: list[HistoricalPoint]
    estimated: bool


def valuation_payload(
    snapshot: ValuationSnapshot, series: HistoricalSeries | None = None
) -> dict[str, Any]:
    """Convert a snapshot and its chart series to the dashboard payload."""
    return {
        "assets": [a.to_dict() for a in snapshot.per_asset],
        "totalValue": snapshot.total_value,
        "totalChange": snapshot.total_change,
        "changePercent": snapshot.change_percent,
        "staleSymbols": snapshot.stale_symbols,
        "historicalSeries": [p.to_dict() for p in series.points] if series else [],
        "historicalSeriesEstimated": series.estimated if series else False,
    }
