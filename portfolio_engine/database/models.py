"""SQLAlchemy database models for portfolios and their holdings."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class PortfolioRecord(Base):
    """Database model for a user's portfolio (one per user)."""
    __tablename__ = "portfolios"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="My Portfolio")
    currency = Column(String, nullable=False, default="usd")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    assets = relationship(
        "PortfolioAssetRecord", back_populates="portfolio", cascade="all, delete-orphan"
    )


class PortfolioAssetRecord(Base):
    """Database model for one holding inside a portfolio."""
    __tablename__ = "portfolio_assets"
    __table_args__ = (UniqueConstraint("portfolio_id", "symbol", name="uq_portfolio_symbol"),)

    id = Column(String, primary_key=True)
    portfolio_id = Column(String, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String, nullable=False)  # upper-case ticker
    name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False)
    purchase_price = Column(Float, nullable=True)
    current_price = Column(Float, nullable=True)  # last price seen by a refresh
    total_value = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    portfolio = relationship("PortfolioRecord", back_populates="assets")
