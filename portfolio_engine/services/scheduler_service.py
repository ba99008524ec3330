"""Scheduler service for periodic portfolio valuation refreshes."""

import time

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from portfolio_engine.database.db import SessionLocal, session_scope
from portfolio_engine.models.market_data import PriceQuote
from portfolio_engine.models.portfolio import ValuationSnapshot
from portfolio_engine.services.holdings_service import HoldingsService
from portfolio_engine.services.market_data_aggregator import MarketDataAggregator
from portfolio_engine.services.valuation import reconcile
from portfolio_engine.utils.config import config
from portfolio_engine.utils.errors import ProviderFailure
from portfolio_engine.utils.logger import StructuredLogger
from portfolio_engine.utils.trace_context import get_current_trace, traced

structured_logger = StructuredLogger("SchedulerService")


def value_portfolio(
    holdings_service: HoldingsService,
    aggregator: MarketDataAggregator,
    user_id: str,
) -> ValuationSnapshot:
    """
    Load holdings, price them and persist the prices that were live.

    A provider outage does not fail the valuation: every asset falls back to
    its last-seen or purchase price and the snapshot reports them as stale.
    """
    holdings = holdings_service.list_holdings(user_id)
    quotes: dict[str, PriceQuote] = {}
    if holdings:
        try:
            quotes = aggregator.fetch_quotes([h.symbol for h in holdings])
        except ProviderFailure as e:
            structured_logger.warning(
                "Price provider unavailable, valuing with cached prices",
                context={"trace_id": get_current_trace(), "user_id": user_id},
                exception=e,
            )

    snapshot = reconcile(holdings, quotes)
    holdings_service.record_prices(user_id, snapshot)
    return snapshot


class RefreshScheduler:
    """Re-values configured portfolios on a fixed interval."""

    JOB_ID = "portfolio_refresh"

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        aggregator: MarketDataAggregator | None = None,
        interval_seconds: int | None = None,
    ):
        """
        Initialize scheduler service.

        Args:
            session_factory: Factory for per-run database sessions
            aggregator: Price provider client
            interval_seconds: Refresh period (defaults to REFRESH_INTERVAL_SECONDS)
        """
        self.scheduler = BackgroundScheduler()
        self.session_factory = session_factory
        self.aggregator = aggregator or MarketDataAggregator()
        self.interval_seconds = interval_seconds or config.refresh.interval_seconds
        self.is_running = False

    def refresh(self, user_id: str) -> ValuationSnapshot:
        """Run one valuation for a user in its own session and trace."""
        with traced() as trace_id:
            start_time = time.time()
            with session_scope(self.session_factory) as session:
                snapshot = value_portfolio(HoldingsService(session), self.aggregator, user_id)

            structured_logger.info(
                "Portfolio refresh completed",
                context={
                    "trace_id": trace_id,
                    "user_id": user_id,
                    "total_value": snapshot.total_value,
                    "stale_symbols": snapshot.stale_symbols,
                    "duration_ms": (time.time() - start_time) * 1000,
                },
            )
            return snapshot

    def refresh_all(self, user_ids: list[str] | None = None) -> dict[str, ValuationSnapshot]:
        """
        Refresh several users; one user's failure does not stop the others.

        Returns:
            Snapshots for the users that refreshed successfully
        """
        snapshots = {}
        for user_id in user_ids if user_ids is not None else config.refresh.user_ids:
            try:
                snapshots[user_id] = self.refresh(user_id)
            except Exception as e:
                structured_logger.error(
                    "Portfolio refresh failed",
                    context={"user_id": user_id, "error_type": type(e).__name__},
                    exception=e,
                )
        return snapshots

    def start(self, user_ids: list[str] | None = None) -> None:
        """
        Register the interval job and start the background scheduler.

        Overlapping runs are skipped and missed runs coalesce into one.
        """
        self.scheduler.add_job(
            self.refresh_all,
            IntervalTrigger(seconds=self.interval_seconds),
            args=[user_ids],
            id=self.JOB_ID,
            name="Portfolio valuation refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        structured_logger.info(
            f"Scheduled portfolio refresh every {self.interval_seconds}s",
            context={"user_ids": user_ids if user_ids is not None else config.refresh.user_ids},
        )

        if not self.is_running:
            self.scheduler.start()
            self.is_running = True

    def stop(self) -> None:
        """Shut down the background scheduler without waiting for running jobs."""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            structured_logger.info("Scheduler stopped")
