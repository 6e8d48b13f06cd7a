"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Rental Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/rental_ledger"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Bookkeeping
    # Tolerance used both when posting and when checking the
    # balance-sheet identity. Absorbs floating-point rounding
    # carried in from upstream systems.
    BALANCE_EPSILON: Decimal = Decimal(os.getenv("BALANCE_EPSILON", "0.01"))
    RECEIVABLES_ACCOUNT_CODE: str = os.getenv("RECEIVABLES_ACCOUNT_CODE", "1100")
    PAYABLES_ACCOUNT_CODE: str = os.getenv("PAYABLES_ACCOUNT_CODE", "2000")

    # Legacy parents whose children are still discovered by code prefix
    # ("1100-<debtor>") when no explicit parent link exists.
    PREFIX_ROLLUP_PARENTS: tuple[str, ...] = tuple(
        code.strip()
        for code in os.getenv("PREFIX_ROLLUP_PARENTS", "1100,2000").split(",")
        if code.strip()
    )

    BALANCE_CACHE_ENABLED: bool = (
        os.getenv("BALANCE_CACHE_ENABLED", "false").lower() == "true"
    )

    # Optional JSON file with display names for payments, expenses,
    # debtors, vendors and residences. See services/directory.py.
    DIRECTORY_FILE: str | None = os.getenv("DIRECTORY_FILE") or None


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
