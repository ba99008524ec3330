"""Market data aggregator: CoinGecko quotes and price history, plus market sentiment."""

import math
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import requests

from portfolio_engine.models.market_data import (
    DataSource,
    FearGreedReading,
    MacroIndicator,
    PriceQuote,
    PriceSeries,
)
from portfolio_engine.services.valuation import map_symbol_to_id
from portfolio_engine.utils.cache import TTLCache
from portfolio_engine.utils.config import config
from portfolio_engine.utils.errors import InvalidSeries, ProviderFailure
from portfolio_engine.utils.logger import StructuredLogger
from portfolio_engine.utils.trace_context import get_current_trace

PROVIDER_NAME = "CoinGecko"
PROVIDER_URL = "https://www.coingecko.com"
FEAR_GREED_PROVIDER = "alternative.me"


class MarketDataAggregator:
    """Fetches live quotes and historical series from CoinGecko and the Fear & Greed Index."""

    def __init__(self, cache: TTLCache | None = None):
        """
        Initialize the aggregator.

        Args:
            cache: Response cache; defaults to a TTLCache using CACHE_TTL
        """
        self.base_url = config.market_data.base_url.rstrip("/")
        self.api_key = config.market_data.api_key
        self.vs_currency = config.market_data.vs_currency
        self.timeout = config.market_data.request_timeout
        self.fear_greed_url = config.market_data.fear_greed_url
        self.cache = cache or TTLCache(config.market_data.cache_ttl)
        self.logger = StructuredLogger("MarketDataAggregator")

    def _request(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str] | None = None,
        provider: str = PROVIDER_NAME,
    ) -> Any:
        try:
            response = requests.get(url, params=params, headers=headers or {}, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise ProviderFailure(provider, f"Request to {url} failed: {e}", {"url": url}) from e
        except ValueError as e:
            raise ProviderFailure(provider, f"Invalid JSON from {url}", {"url": url}) from e

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else {}
        return self._cached(f"{self.base_url}{path}", params, headers)

    def _cached(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str] | None = None,
        provider: str = PROVIDER_NAME,
    ) -> Any:
        key = f"{url}?{urlencode(sorted(params.items()))}"
        return self.cache.get_or_fetch(key, lambda: self._request(url, params, headers, provider))

    def fetch_quotes(self, symbols: list[str]) -> dict[str, PriceQuote]:
        """
        Fetch current prices and 24h change for several symbols in one call.

        Args:
            symbols: Ticker symbols (e.g., ["BTC", "ETH"])

        Returns:
            Quotes keyed by upper-case symbol; symbols the provider does not
            know are omitted

        Raises:
            ProviderFailure: If the request fails
        """
        if not symbols:
            return {}

        trace_id = get_current_trace()
        ids_by_symbol = {s.upper(): map_symbol_to_id(s) for s in symbols}
        params = {
            "ids": ",".join(sorted(set(ids_by_symbol.values()))),
            "vs_currencies": self.vs_currency,
            "include_24hr_change": "true",
        }

        self.logger.info(
            "Fetching live quotes",
            context={"trace_id": trace_id, "source": PROVIDER_NAME, "symbols": sorted(ids_by_symbol)},
        )
        try:
            data = self._get("/simple/price", params)
        except ProviderFailure as e:
            self.logger.error(
                "Failed to fetch live quotes",
                context={"trace_id": trace_id, "source": PROVIDER_NAME, "result": "failed"},
                exception=e,
            )
            raise

        fetched_at = datetime.now()
        quotes: dict[str, PriceQuote] = {}
        for symbol, coin_id in ids_by_symbol.items():
            entry = data.get(coin_id) if isinstance(data, dict) else None
            price = entry.get(self.vs_currency) if isinstance(entry, dict) else None
            if price is None:
                self.logger.warning(
                    "Symbol not found in price response",
                    context={"trace_id": trace_id, "symbol": symbol, "coin_id": coin_id},
                )
                continue
            try:
                price = float(price)
                change = float(entry.get(f"{self.vs_currency}_24h_change") or 0.0)
                valid = math.isfinite(price) and math.isfinite(change)
            except (TypeError, ValueError, OverflowError):
                valid = False
            if not valid:
                self.logger.warning(
                    "Malformed price in response",
                    context={"trace_id": trace_id, "symbol": symbol, "coin_id": coin_id},
                )
                continue
            quotes[symbol] = PriceQuote(
                symbol=symbol, price=price, price_change_24h=change, fetched_at=fetched_at
            )
        return quotes

    def fetch_price_series(self, symbol: str, days: int | None = None) -> PriceSeries:
        """
        Fetch historical prices and volumes for a symbol.

        Args:
            symbol: Ticker symbol
            days: Lookback in days (defaults to HISTORY_DAYS)

        Returns:
            PriceSeries ordered by timestamp

        Raises:
            ProviderFailure: If the request fails or the payload is malformed
        """
        days = days or config.market_data.history_days
        coin_id = map_symbol_to_id(symbol)
        trace_id = get_current_trace()

        data = self._get(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": self.vs_currency, "days": days},
        )
        if not isinstance(data, dict):
            raise ProviderFailure(PROVIDER_NAME, f"Unexpected market chart payload for {symbol}")

        source = DataSource(name=PROVIDER_NAME, url=PROVIDER_URL, fetched_at=datetime.now())
        try:
            series = PriceSeries.from_pairs(
                data.get("prices", []), data.get("total_volumes"), source=source
            )
        except InvalidSeries as e:
            # A volume list of a different length is dropped, not fatal
            if e.details.get("volumes") is None:
                raise ProviderFailure(PROVIDER_NAME, f"Malformed price history for {symbol}: {e}") from e
            series = PriceSeries.from_pairs(data.get("prices", []), source=source)

        self.logger.info(
            f"Fetched price history for {symbol}",
            context={
                "trace_id": trace_id,
                "source": PROVIDER_NAME,
                "coin_id": coin_id,
                "days": days,
                "samples": len(series),
            },
        )
        return series

    def fetch_fear_greed(self) -> FearGreedReading:
        """
        Fetch the latest Crypto Fear & Greed Index reading.

        Returns:
            FearGreedReading for the most recent day

        Raises:
            ProviderFailure: If the request fails or the payload is malformed
        """
        trace_id = get_current_trace()
        data = self._cached(self.fear_greed_url, {"limit": 1}, provider=FEAR_GREED_PROVIDER)

        try:
            latest = data["data"][0]
            reading = FearGreedReading(
                value=int(latest["value"]),
                classification=str(latest["value_classification"]),
                timestamp=int(latest.get("timestamp") or 0),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderFailure(
                FEAR_GREED_PROVIDER, f"Invalid Fear & Greed data format: {e}"
            ) from e

        self.logger.info(
            "Fetched Fear & Greed Index",
            context={
                "trace_id": trace_id,
                "source": FEAR_GREED_PROVIDER,
                "value": reading.value,
                "classification": reading.classification,
            },
        )
        return reading

    def macro_indicators(self) -> list[MacroIndicator]:
        """Macroeconomic figures from configuration (MACRO_* settings)."""
        macro = config.macro
        return [
            MacroIndicator("US Interest Rate", macro.interest_rate),
            MacroIndicator("US Inflation Rate", macro.inflation_rate),
            MacroIndicator("US GDP Growth", macro.gdp_growth),
            MacroIndicator("US Unemployment Rate", macro.unemployment_rate),
        ]
