"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Dairy Books"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/dairy_books"
    )

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FILE: str | None = os.getenv("LOG_FILE") or None

    # Accounting
    # All books are kept in a single base currency. Amounts are stored
    # as integers in the currency's minor unit (paise for INR).
    BASE_CURRENCY: str = os.getenv("BASE_CURRENCY", "INR")
    CURRENCY_DECIMALS: int = int(os.getenv("CURRENCY_DECIMALS", "2"))

    # How many times the HTTP layer retries a posting that lost a
    # race (conflict) before reporting it to the client.
    POSTING_MAX_RETRIES: int = int(os.getenv("POSTING_MAX_RETRIES", "3"))

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls.
    """
    return Settings()
