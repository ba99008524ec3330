"""Pytest configuration and fixtures."""

import os
import tempfile

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from main import app
from portfolio_engine.api.dependencies import get_advisory_service, get_aggregator
from portfolio_engine.database.db import get_db
from portfolio_engine.database.models import Base
from portfolio_engine.models.market_data import (
    FearGreedReading,
    MacroIndicator,
    PriceQuote,
    PriceSeries,
)
from portfolio_engine.services.advisory_service import AdvisoryService
from portfolio_engine.utils.config import AdvisoryConfig
from portfolio_engine.utils.errors import ProviderFailure


class FakeAggregator:
    """In-memory stand-in for MarketDataAggregator."""

    def __init__(self, quotes=None, series=None, fail=False):
        self.quotes = quotes or {}
        self.series = series or {}
        self.fear_greed = FearGreedReading(value=50, classification="Neutral", timestamp=1_700_000_000)
        self.macro = [MacroIndicator("US Interest Rate", 4.0)]
        self.fail = fail
        self.quote_calls = []

    def fetch_quotes(self, symbols):
        self.quote_calls.append(list(symbols))
        if self.fail:
            raise ProviderFailure("CoinGecko", "provider down")
        return {s.upper(): self.quotes[s.upper()] for s in symbols if s.upper() in self.quotes}

    def fetch_price_series(self, symbol, days=None):
        if self.fail:
            raise ProviderFailure("CoinGecko", "provider down")
        return self.series[symbol.upper()]

    def fetch_fear_greed(self):
        if self.fail:
            raise ProviderFailure("alternative.me", "provider down")
        return self.fear_greed

    def macro_indicators(self):
        return list(self.macro)


def make_series(prices, start=1_700_000_000_000, step=86_400_000):
    """Daily price series starting at *start* (ms)."""
    return PriceSeries.from_pairs([[start + i * step, p] for i, p in enumerate(prices)])


def make_quote(symbol, price, change=0.0):
    return PriceQuote(symbol=symbol, price=price, price_change_24h=change)


@pytest.fixture(scope="function")
def test_db():
    """Create a file-based test database."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False}
    )

    # Enable foreign keys
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    yield engine

    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(test_db):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db)


@pytest.fixture
def test_session(session_factory):
    """Create a test database session."""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def fake_aggregator():
    return FakeAggregator()


@pytest.fixture
def test_client(test_session, fake_aggregator):
    """Create a test client with a test database and no network providers."""
    def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_aggregator] = lambda: fake_aggregator
    app.dependency_overrides[get_advisory_service] = lambda: AdvisoryService(AdvisoryConfig(api_key=None))

    from fastapi.testclient import TestClient
    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
