from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Supabase auth
    # Placeholder keeps local/test runs from failing when no real project is wired.
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_PUBLIC_KEY: str = ""
    PAYSTACK_API_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CALLBACK_URL: str = ""

    # Checkout
    STORE_CURRENCY: str = "GHS"
    VERIFY_PAYMENT_URL: str = "http://localhost:8010/store/checkout/verify"
    PAYMENT_WINDOW_SECONDS: float = 900.0
    VERIFICATION_TIMEOUT_SECONDS: float = 15.0

    # Delivery premiums on top of the dynamic logistics fee (normal is free)
    DELIVERY_EXPRESS_PREMIUM: Decimal = Decimal("30")
    DELIVERY_SAME_DAY_PREMIUM: Decimal = Decimal("50")

    # Logistics rate quotes (used when no admin_settings record exists)
    LOGISTICS_API_ENDPOINT: str = ""
    LOGISTICS_ENABLED: bool = False
    RATE_QUOTE_TIMEOUT_SECONDS: float = 12.0

    # Device-local persistence for guest carts
    LOCAL_STORAGE_DIR: str = ".storefront"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
