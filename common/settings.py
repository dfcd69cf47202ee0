"""
Application configuration using Pydantic Settings.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "Flyer Rewards API"
    LOG_LEVEL: str = "INFO"

    # Auth (tokens are issued by the account service; we only verify them)
    JWT_SECRET: str = "dev-only-secret-change-me-in-production"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Wallets
    DEFAULT_CURRENCY: str = "TOKEN"

    # Optimistic transactions
    TRANSACTION_MAX_ATTEMPTS: int = 5
    TRANSACTION_RETRY_BASE_DELAY: float = 0.01
    TRANSACTION_RETRY_MAX_DELAY: float = 0.5

    # Lottery
    LOTTERY_LAZY_POOL_INIT: bool = True

    # Flyers
    EVENT_COST_DISTRIBUTION_ENABLED: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
