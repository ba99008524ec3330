"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_engine.api.error_handlers import register_exception_handlers
from portfolio_engine.api.routes import router
from portfolio_engine.database.db import init_db
from portfolio_engine.services.scheduler_service import RefreshScheduler
from portfolio_engine.utils.config import config
from portfolio_engine.utils.logger import StructuredLogger

logger = StructuredLogger("App")

# Initialize database
init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and run the background refresh while serving."""
    try:
        config.validate()
    except ValueError as e:
        logger.critical("Configuration error", context={"error": str(e)})
        raise

    scheduler = None
    if config.refresh.user_ids:
        scheduler = RefreshScheduler()
        scheduler.start()
    yield
    if scheduler:
        scheduler.stop()


app = FastAPI(
    title="Portfolio Engine",
    description="Technical analysis and portfolio valuation for crypto holdings",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(router, prefix="/api", tags=["portfolio"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
