"""Configuration management for the application."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class MarketDataConfig:
    """Price provider configuration."""

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str | None = None
    vs_currency: str = "usd"
    cache_ttl: int = 60  # Cache time-to-live in seconds
    request_timeout: int = 10
    history_days: int = 90
    fear_greed_url: str = "https://api.alternative.me/fng/"


@dataclass
class MacroConfig:
    """Macroeconomic figures fed into the market cycle vote, in percent."""

    interest_rate: float = 5.25
    inflation_rate: float = 3.1
    gdp_growth: float = 2.4
    unemployment_rate: float = 3.7


@dataclass
class AdvisoryConfig:
    """Advisory text generator configuration."""

    api_key: str | None = None
    api_url: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "openai/gpt-4o-mini"
    timeout: float = 20.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class RefreshConfig:
    """Periodic valuation refresh configuration."""

    interval_seconds: int = 300
    user_ids: list[str] = None

    def __post_init__(self):
        if self.user_ids is None:
            self.user_ids = []


@dataclass
class DatabaseConfig:
    """Database configuration."""

    database_url: str
    echo: bool = False


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.market_data = MarketDataConfig(
            base_url=os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
            api_key=os.getenv("COINGECKO_API_KEY"),
            vs_currency=os.getenv("VS_CURRENCY", "usd").lower(),
            cache_ttl=int(os.getenv("CACHE_TTL", "60")),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "10")),
            history_days=int(os.getenv("HISTORY_DAYS", "90")),
            fear_greed_url=os.getenv("FEAR_GREED_URL", "https://api.alternative.me/fng/"),
        )

        self.macro = MacroConfig(
            interest_rate=float(os.getenv("MACRO_INTEREST_RATE", "5.25")),
            inflation_rate=float(os.getenv("MACRO_INFLATION_RATE", "3.1")),
            gdp_growth=float(os.getenv("MACRO_GDP_GROWTH", "2.4")),
            unemployment_rate=float(os.getenv("MACRO_UNEMPLOYMENT_RATE", "3.7")),
        )

        self.advisory = AdvisoryConfig(
            api_key=os.getenv("ADVISORY_API_KEY"),
            api_url=os.getenv(
                "ADVISORY_API_URL", "https://openrouter.ai/api/v1/chat/completions"
            ),
            model=os.getenv("ADVISORY_MODEL", "openai/gpt-4o-mini"),
            timeout=float(os.getenv("ADVISORY_TIMEOUT", "20")),
        )

        refresh_users = os.getenv("REFRESH_USER_IDS", "")
        self.refresh = RefreshConfig(
            interval_seconds=int(os.getenv("REFRESH_INTERVAL_SECONDS", "300")),
            user_ids=[u.strip() for u in refresh_users.split(",") if u.strip()],
        )

        self.database = DatabaseConfig(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./portfolio.db"),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE"),
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if self.market_data.cache_ttl < 0:
            raise ValueError("CACHE_TTL must not be negative")
        if self.market_data.request_timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive")
        if self.market_data.history_days <= 0:
            raise ValueError("HISTORY_DAYS must be positive")
        if self.advisory.timeout <= 0:
            raise ValueError("ADVISORY_TIMEOUT must be positive")
        if self.refresh.interval_seconds <= 0:
            raise ValueError("REFRESH_INTERVAL_SECONDS must be positive")
        if self.logging.level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL: {self.logging.level}. Use one of {', '.join(LOG_LEVELS)}"
            )

        return True


# Global config instance
config = Config()
