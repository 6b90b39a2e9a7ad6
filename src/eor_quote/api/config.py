"""Configuration for the quote engine HTTP service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP service settings loaded from environment variables."""

    # Model endpoint (optional: every stage runs deterministically without it)
    OPENAI_API_KEY: str = ""
    OPENAI_CHAT_MODEL: str = "gpt-4.1-mini"
    OPENAI_BASE_URL: str = ""

    # Currency conversion (optional: same-currency conversions only without it)
    CURRENCY_API_URL: str = ""

    # Reference data
    LEGAL_DATA_DIR: str = "data/legal"

    # Reconciliation / acid test
    RECONCILIATION_THRESHOLD: float = 0.04
    REFERENCE_CURRENCY: str = "USD"
    MIN_PROFIT_THRESHOLD: float = 1000.0

    # Session cache
    ENHANCEMENT_CACHE_TTL_SECONDS: float = 1800.0


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
