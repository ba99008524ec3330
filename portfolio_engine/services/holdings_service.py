"""Holdings management: one portfolio per user, one row per symbol."""

import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from portfolio_engine.database.models import PortfolioAssetRecord, PortfolioRecord
from portfolio_engine.models.portfolio import Holding, ValuationSnapshot
from portfolio_engine.utils.logger import StructuredLogger


def to_holding(record: PortfolioAssetRecord) -> Holding:
    """Convert a database row to the valuation model."""
    return Holding(
        symbol=record.symbol,
        quantity=record.quantity,
        purchase_price=record.purchase_price,
        name=record.name,
        last_price=record.current_price,
    )


class HoldingsService:
    """Service for reading and updating a user's holdings."""

    def __init__(self, db_session: Session):
        """Initialize holdings service with a database session."""
        self.db_session = db_session
        self.logger = StructuredLogger("HoldingsService")

    def get_or_create_portfolio(self, user_id: str, currency: str = "usd") -> PortfolioRecord:
        """
        Return the user's portfolio, creating a default one on first use.

        Args:
            user_id: Owner of the portfolio
            currency: Display currency for a newly created portfolio
        """
        portfolio = (
            self.db_session.query(PortfolioRecord)
            .filter(PortfolioRecord.user_id == user_id)
            .order_by(PortfolioRecord.created_at)
            .first()
        )
        if portfolio:
            return portfolio

        portfolio = PortfolioRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name="My Portfolio",
            currency=currency,
        )
        self.db_session.add(portfolio)
        self.db_session.commit()
        self.logger.info("Created default portfolio", context={"user_id": user_id})
        return portfolio

    def _find_asset(self, portfolio_id: str, symbol: str) -> PortfolioAssetRecord | None:
        return (
            self.db_session.query(PortfolioAssetRecord)
            .filter(
                PortfolioAssetRecord.portfolio_id == portfolio_id,
                PortfolioAssetRecord.symbol == symbol.upper(),
            )
            .first()
        )

    def list_holdings(self, user_id: str) -> list[Holding]:
        """Return the user's holdings ordered by symbol."""
        portfolio = self.get_or_create_portfolio(user_id)
        records = (
            self.db_session.query(PortfolioAssetRecord)
            .filter(PortfolioAssetRecord.portfolio_id == portfolio.id)
            .order_by(PortfolioAssetRecord.symbol)
            .all()
        )
        return [to_holding(r) for r in records]

    def add_asset(
        self,
        user_id: str,
        symbol: str,
        quantity: float,
        purchase_price: float | None = None,
        name: str | None = None,
    ) -> Holding:
        """
        Add a holding, or increase the quantity of an existing one.

        A repeat add keeps the original purchase price unless none was set.

        Args:
            user_id: Owner of the portfolio
            symbol: Ticker symbol (stored upper-case)
            quantity: Amount to add, must not be negative
            purchase_price: Optional price paid per unit
            name: Optional display name

        Returns:
            The resulting holding

        Raises:
            ValueError: If quantity or purchase price is negative or symbol is blank
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("Symbol must not be empty")
        if quantity < 0:
            raise ValueError(f"Quantity must not be negative, got {quantity}")
        if purchase_price is not None and purchase_price < 0:
            raise ValueError(f"Purchase price must not be negative, got {purchase_price}")

        portfolio = self.get_or_create_portfolio(user_id)
        record = self._find_asset(portfolio.id, symbol)

        if record:
            record.quantity += quantity
            if record.purchase_price is None:
                record.purchase_price = purchase_price
            if record.current_price is not None:
                record.total_value = record.quantity * record.current_price
            record.updated_at = datetime.utcnow()
        else:
            record = PortfolioAssetRecord(
                id=str(uuid.uuid4()),
                portfolio_id=portfolio.id,
                symbol=symbol,
                name=name or symbol,
                quantity=quantity,
                purchase_price=purchase_price,
                current_price=purchase_price,
                total_value=quantity * purchase_price if purchase_price is not None else None,
            )
            self.db_session.add(record)

        self.db_session.commit()
        self.logger.info(
            f"Added {symbol} to portfolio",
            context={"user_id": user_id, "symbol": symbol, "quantity": record.quantity},
        )
        return to_holding(record)

    def remove_asset(self, user_id: str, symbol: str) -> bool:
        """
        Delete a holding.

        Returns:
            True if a holding was removed, False if the symbol was not held
        """
        portfolio = self.get_or_create_portfolio(user_id)
        record = self._find_asset(portfolio.id, symbol)
        if not record:
            return False

        self.db_session.delete(record)
        self.db_session.commit()
        self.logger.info(
            f"Removed {symbol.upper()} from portfolio",
            context={"user_id": user_id, "symbol": symbol.upper()},
        )
        return True

    def record_prices(self, user_id: str, snapshot: ValuationSnapshot) -> int:
        """
        Persist the live prices of a snapshot as each asset's last-seen price.

        Stale assets are left untouched so a fallback never overwrites a
        real price.

        Returns:
            Number of assets updated
        """
        portfolio = self.get_or_create_portfolio(user_id)
        updated = 0
        for asset in snapshot.per_asset:
            if asset.stale:
                continue
            record = self._find_asset(portfolio.id, asset.holding.symbol)
            if not record:
                continue
            record.current_price = asset.current_price
            record.total_value = asset.value
            updated += 1
        self.db_session.commit()
        return updated
