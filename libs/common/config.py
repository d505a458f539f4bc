from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Africa/Lagos"
    FRONTEND_URL: str = "http://localhost:5173"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Supabase
    # Default placeholder values keep local/test runs from failing when Supabase
    # credentials are not required. Real deployments should override via env.
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = "test-anon-key"
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Paystack
    PAYSTACK_SECRET_KEY: str = "sk_test_placeholder"
    PAYSTACK_API_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CALLBACK_URL: Optional[str] = None

    # Redis (arq worker + distributed rate limits)
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Resilient request layer (seconds unless suffixed)
    REQUEST_TIMEOUT_SECONDS: float = 15.0
    REQUEST_MAX_RETRIES: int = 3
    REQUEST_RETRY_DELAYS_SECONDS: List[float] = [1.0, 3.0, 5.0]
    HEALTH_LATENCY_THRESHOLD_MS: float = 5000.0
    HEALTH_CACHE_SECONDS: float = 10.0
    CONNECTIVITY_PROBE_ENABLED: bool = True
    CONNECTIVITY_PROBE_HOST: str = "api.paystack.co"
    CONNECTIVITY_PROBE_PORT: int = 443

    # Checkout
    QUOTE_SIGNING_SECRET: str = "test-quote-secret"
    DELIVERY_QUOTE_TTL_MINUTES: int = 30
    STALE_ORDER_MINUTES: int = 60
    PENDING_PAYMENT_RECONCILE_MINUTES: int = 2

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
