"""
Configuration management for the EOR quote engine.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # OpenAI-compatible model endpoint
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_CHAT_MODEL: str = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
    OPENAI_BASE_URL: str = os.getenv('OPENAI_BASE_URL', '')

    # Model call budgets (seconds)
    MODEL_REQUEST_TIMEOUT_SECONDS: float = float(os.getenv('MODEL_REQUEST_TIMEOUT_SECONDS', '30'))
    MODEL_STAGE_BUDGET_SECONDS: float = float(os.getenv('MODEL_STAGE_BUDGET_SECONDS', '60'))
    MODEL_MAX_ATTEMPTS: int = int(os.getenv('MODEL_MAX_ATTEMPTS', '3'))

    # Currency conversion
    CURRENCY_API_URL: str = os.getenv('CURRENCY_API_URL', '')
    CURRENCY_TIMEOUT_SECONDS: float = float(os.getenv('CURRENCY_TIMEOUT_SECONDS', '10'))
    REFERENCE_CURRENCY: str = os.getenv('REFERENCE_CURRENCY', 'USD')

    # Reconciliation / acid test
    RECONCILIATION_THRESHOLD: float = float(os.getenv('RECONCILIATION_THRESHOLD', '0.04'))
    MIN_PROFIT_THRESHOLD: float = float(os.getenv('MIN_PROFIT_THRESHOLD', '1000'))

    # Caching
    ENHANCEMENT_CACHE_TTL_SECONDS: float = float(os.getenv('ENHANCEMENT_CACHE_TTL_SECONDS', '1800'))

    # Reference data
    LEGAL_DATA_DIR: str = os.getenv('LEGAL_DATA_DIR', str(_project_root / 'data' / 'legal'))

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.OPENAI_API_KEY:
            missing.append('OPENAI_API_KEY')
        return missing


# Singleton config instance
config = Config()
