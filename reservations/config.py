"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Reservations"
    app_version: str = "1.0.0"
    environment: Literal["development", "test", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "reservations"
    postgres_password: str = Field(default="reservations_secret")
    postgres_db: str = "reservations"
    database_uri: Optional[str] = None  # Full override, e.g. sqlite+aiosqlite:///./dev.db
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_uri:
            return self.database_uri
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT Authentication
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Payment Gateways
    default_payment_gateway: Literal["stripe", "manual"] = "manual"
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    payment_success_url: str = "http://localhost:3000/reservations/paid"
    manual_payment_url: str = "http://localhost:3000/payments/bank-transfer"
    currency: str = "BRL"

    # Reservation windows
    checkout_payment_window_minutes: int = 30
    price_confirmation_payment_window_hours: int = 24
    admin_payment_link_days: int = 3
    default_slot_duration_minutes: int = 120
    confirmation_code_prefix: str = "RSV"

    # Sweeper
    expiry_sweep_minutes: int = 5
    no_show_sweep_hour: int = 3  # local time, see celery timezone
    run_scheduler_in_process: bool = False
    scheduler_interval_seconds: int = 60

    # Outbox
    outbox_batch_size: int = 50
    outbox_max_attempts: int = 5
    outbox_backoff_seconds: int = 30

    # Notifications
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
