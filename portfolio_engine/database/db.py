"""Database connection and session management."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from portfolio_engine.database.models import Base
from portfolio_engine.utils.config import config

engine = create_engine(
    config.database.database_url,
    echo=config.database.echo,
    connect_args={"check_same_thread": False} if "sqlite" in config.database.database_url else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create the portfolio tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Iterator[Session]:
    """Request-scoped session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Session for background jobs: commit on success, roll back on error.

    Args:
        factory: Session factory (tests pass one bound to a temp database)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
