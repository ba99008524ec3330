"""Tests for market data aggregator service."""

from unittest.mock import Mock, patch

import pytest
import requests

from portfolio_engine.models.market_data import PriceSeries
from portfolio_engine.services.market_data_aggregator import (
    FEAR_GREED_PROVIDER,
    PROVIDER_NAME,
    MarketDataAggregator,
)
from portfolio_engine.utils.cache import TTLCache
from portfolio_engine.utils.errors import ProviderFailure

REQUESTS_GET = "portfolio_engine.services.market_data_aggregator.requests.get"


def mock_response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        response.raise_for_status.return_value = None
    return response


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestFetchQuotes:
    """Tests for live quote fetching."""

    def test_quotes_are_keyed_by_symbol(self):
        payload = {
            "bitcoin": {"usd": 65000.5, "usd_24h_change": 2.5},
            "ethereum": {"usd": 3200, "usd_24h_change": -1.25},
        }
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)) as get:
            quotes = aggregator.fetch_quotes(["btc", "ETH"])

        assert set(quotes) == {"BTC", "ETH"}
        assert quotes["BTC"].price == 65000.5
        assert quotes["BTC"].price_change_24h == 2.5
        assert quotes["ETH"].price_change_24h == -1.25

        params = get.call_args.kwargs["params"]
        assert params["ids"] == "bitcoin,ethereum"
        assert params["vs_currencies"] == aggregator.vs_currency
        assert params["include_24hr_change"] == "true"

    def test_unknown_symbols_are_omitted(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response({"bitcoin": {"usd": 1.0}})):
            quotes = aggregator.fetch_quotes(["BTC", "NOPE"])
        assert list(quotes) == ["BTC"]
        assert quotes["BTC"].price_change_24h == 0.0

    def test_malformed_prices_are_omitted(self):
        payload = {
            "bitcoin": {"usd": "n/a"},
            "ethereum": {"usd": 10, "usd_24h_change": 1.5},
            "solana": {"usd": 150, "usd_24h_change": "unknown"},
            "cardano": {"usd": float("inf")},
        }
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)):
            quotes = aggregator.fetch_quotes(["BTC", "ETH", "SOL", "ADA"])
        assert list(quotes) == ["ETH"]
        assert quotes["ETH"].price == 10.0

    def test_empty_symbol_list_makes_no_request(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET) as get:
            assert aggregator.fetch_quotes([]) == {}
        get.assert_not_called()

    def test_http_error_raises_provider_failure(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response({}, status_code=429)):
            with pytest.raises(ProviderFailure) as exc_info:
                aggregator.fetch_quotes(["BTC"])
        assert exc_info.value.provider == PROVIDER_NAME

    def test_timeout_raises_provider_failure(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, side_effect=requests.Timeout("timed out")):
            with pytest.raises(ProviderFailure):
                aggregator.fetch_quotes(["BTC"])

    def test_invalid_json_raises_provider_failure(self):
        response = mock_response(None)
        response.json.side_effect = ValueError("not json")
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=response):
            with pytest.raises(ProviderFailure):
                aggregator.fetch_quotes(["BTC"])


class TestCaching:
    """Responses are served from cache until the TTL expires."""

    def test_repeat_request_is_cached(self):
        clock = FakeClock()
        aggregator = MarketDataAggregator(cache=TTLCache(60, clock=clock))
        with patch(REQUESTS_GET, return_value=mock_response({"bitcoin": {"usd": 1.0}})) as get:
            aggregator.fetch_quotes(["BTC"])
            clock.now = 59
            aggregator.fetch_quotes(["BTC"])
            assert get.call_count == 1

            clock.now = 60
            aggregator.fetch_quotes(["BTC"])
            assert get.call_count == 2

    def test_failures_are_not_cached(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, side_effect=requests.ConnectionError("down")):
            with pytest.raises(ProviderFailure):
                aggregator.fetch_quotes(["BTC"])
        with patch(REQUESTS_GET, return_value=mock_response({"bitcoin": {"usd": 2.0}})):
            assert aggregator.fetch_quotes(["BTC"])["BTC"].price == 2.0


class TestFetchPriceSeries:
    """Tests for historical series fetching."""

    def test_series_from_market_chart(self):
        payload = {
            "prices": [[1000, 10.0], [2000, 11.0], [3000, 12.5]],
            "total_volumes": [[1000, 5.0], [2000, 6.0], [3000, 7.0]],
        }
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)) as get:
            series = aggregator.fetch_price_series("BTC", days=7)

        assert isinstance(series, PriceSeries)
        assert series.prices == [10.0, 11.0, 12.5]
        assert [v.price for v in series.volumes] == [5.0, 6.0, 7.0]
        assert series.source.name == PROVIDER_NAME
        assert get.call_args.args[0].endswith("/coins/bitcoin/market_chart")
        assert get.call_args.kwargs["params"]["days"] == 7

    def test_mismatched_volumes_are_dropped(self):
        payload = {"prices": [[1000, 10.0], [2000, 11.0]], "total_volumes": [[1000, 5.0]]}
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)):
            series = aggregator.fetch_price_series("ETH")
        assert len(series) == 2
        assert series.volumes == ()

    def test_unordered_prices_raise_provider_failure(self):
        payload = {"prices": [[2000, 10.0], [1000, 11.0]]}
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)):
            with pytest.raises(ProviderFailure):
                aggregator.fetch_price_series("ETH")

    def test_unexpected_payload_raises_provider_failure(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(["not", "a", "dict"])):
            with pytest.raises(ProviderFailure):
                aggregator.fetch_price_series("ETH")


class TestFetchFearGreed:
    """Tests for the Fear & Greed Index reading."""

    def test_latest_reading(self):
        payload = {
            "name": "Fear and Greed Index",
            "data": [{"value": "72", "value_classification": "Greed", "timestamp": "1700000000"}],
        }
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)) as get:
            reading = aggregator.fetch_fear_greed()

        assert reading.value == 72
        assert reading.classification == "Greed"
        assert reading.timestamp == 1_700_000_000
        assert get.call_args.args[0] == aggregator.fear_greed_url
        assert get.call_args.kwargs["params"] == {"limit": 1}
        assert "x-cg-demo-api-key" not in get.call_args.kwargs["headers"]

    def test_reading_is_cached(self):
        payload = {"data": [{"value": "20", "value_classification": "Extreme Fear"}]}
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response(payload)) as get:
            aggregator.fetch_fear_greed()
            assert aggregator.fetch_fear_greed().value == 20
        assert get.call_count == 1

    def test_empty_data_raises_provider_failure(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response({"data": []})):
            with pytest.raises(ProviderFailure) as exc_info:
                aggregator.fetch_fear_greed()
        assert exc_info.value.provider == FEAR_GREED_PROVIDER

    def test_http_error_raises_provider_failure(self):
        aggregator = MarketDataAggregator(cache=TTLCache(60))
        with patch(REQUESTS_GET, return_value=mock_response({}, status_code=500)):
            with pytest.raises(ProviderFailure) as exc_info:
                aggregator.fetch_fear_greed()
        assert exc_info.value.provider == FEAR_GREED_PROVIDER

    def test_macro_indicators_come_from_config(self):
        names = [m.name for m in MarketDataAggregator(cache=TTLCache(60)).macro_indicators()]
        assert names == ["US Interest Rate", "US Inflation Rate", "US GDP Growth", "US Unemployment Rate"]
