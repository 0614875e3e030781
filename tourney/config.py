"""Application configuration."""
from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - required, read from the environment
    database_url: str = Field(
        ...,
        description="Database connection URL (required)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )
    db_echo: bool = Field(
        default=False,
        description="Log every SQL statement",
    )

    # Redis - optional, used for change-feed fan-out only
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL for change notifications (optional)",
    )

    # Transaction retry policy for infrastructure faults
    tx_max_attempts: int = Field(
        default=3,
        description="Attempts per transaction before giving up with TransientError",
    )
    tx_retry_min_wait: float = Field(
        default=0.05,
        description="Minimum backoff between attempts in seconds",
    )
    tx_retry_max_wait: float = Field(
        default=1.0,
        description="Maximum backoff between attempts in seconds",
    )

    # Tournament defaults
    default_commission_rate: Decimal = Field(
        default=Decimal("20"),
        description="Commission percentage when a tournament does not set one",
    )
    default_max_participants: int = Field(
        default=100,
        description="Slot count when a tournament does not set one",
    )

    # Simulated wallet operations
    simulated_deposit_amount: Decimal = Decimal("100")
    simulated_withdrawal_amount: Decimal = Decimal("50")
    currency_symbol: str = "₹"

    @field_validator("default_commission_rate")
    @classmethod
    def validate_commission_rate(cls, v: Decimal) -> Decimal:
        """Validate commission rate is a percentage."""
        if v < 0 or v > 100:
            raise ValueError("default_commission_rate must be between 0 and 100")
        return v

    @field_validator("simulated_deposit_amount", "simulated_withdrawal_amount")
    @classmethod
    def validate_simulated_amount(cls, v: Decimal) -> Decimal:
        """Validate simulated wallet amounts."""
        if v <= 0:
            raise ValueError("simulated wallet amounts must be positive")
        return v

    @field_validator("tx_max_attempts")
    @classmethod
    def validate_tx_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("tx_max_attempts must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            # SQLite cannot hold row locks across concurrent writers
            if self.database_url.startswith("sqlite"):
                raise ValueError(
                    "SQLite is not supported in production environment. "
                    "Use a PostgreSQL database_url."
                )

            if self.log_level == "DEBUG":
                import warnings
                warnings.warn(
                    "DEBUG log level in production may expose sensitive information"
                )

        return self

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
