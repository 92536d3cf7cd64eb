"""
Configuration management for the fulfillment and loyalty backend.

Values come from environment variables (or a local ``.env`` file) so that
deployments can override the database, tax rate and retry policy without
code changes.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database Configuration
    database_url: str = "sqlite:///./kitchensync.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    log_sql_queries: bool = False
    slow_query_threshold_seconds: float = 1.0
    create_tables_on_startup: bool = True

    # Environment Settings
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Order pricing
    order_tax_rate: Decimal = Decimal("0.08")
    delivery_fee: Decimal = Decimal("5.00")
    order_number_date_format: str = "%Y%m%d"
    order_number_width: int = 4

    # Retry policy for conflicts and transient store failures
    db_max_retries: int = 3
    db_retry_initial_delay: float = 0.05
    db_retry_max_delay: float = 1.0
    db_retry_backoff_factor: float = 2.0
    status_cas_max_attempts: int = 5

    # Loyalty
    loyalty_recent_transactions_limit: int = 20
    default_tier_thresholds: Dict[str, int] = {
        "silver": 500,
        "gold": 1000,
        "platinum": 2500,
    }

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @field_validator("order_tax_rate")
    @classmethod
    def validate_tax_rate(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("order_tax_rate must be between 0 and 1")
        return v

    @field_validator("delivery_fee")
    @classmethod
    def validate_delivery_fee(cls, v):
        if v < 0:
            raise ValueError("delivery_fee must be non-negative")
        return v

    @field_validator("db_max_retries")
    @classmethod
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("db_max_retries must be non-negative")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Returns:
        Settings instance with environment variables loaded
    """
    return Settings()


# Export settings instance for easy import
settings = get_settings()


def validate_production_config():
    """Validate configuration for production deployment."""
    if settings.is_production:
        issues = []

        if settings.debug:
            issues.append("DEBUG is enabled in production")

        if settings.database_url.startswith("sqlite"):
            issues.append("SQLite is not supported in production")

        if issues:
            raise ValueError(
                f"Production configuration issues detected: {', '.join(issues)}"
            )


# Validate on import if in production
if settings.is_production:
    validate_production_config()
