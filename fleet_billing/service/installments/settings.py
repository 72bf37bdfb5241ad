"""
Installment Settings for the Fleet Billing plan engine.

This module contains the configurable defaults for installment plans:
allowed installment counts, retry policy, grace period, and reminder lead
time. Per-plan overrides are stored in each plan's config; these values
only fill the gaps.

Environment variables use the INSTALLMENT_ prefix:
    INSTALLMENT_MAX_RETRY_ATTEMPTS=3
    INSTALLMENT_RETRY_INTERVAL_DAYS=1
    INSTALLMENT_PROCESSING_TIMEOUT_MINUTES=15
    INSTALLMENT_REMINDER_DAYS_AHEAD=3

Usage:
    from fleet_billing.service.installments.settings import installment_settings

    # Use default settings (loaded from env)
    retries = installment_settings.max_retry_attempts

    # Or create custom settings for testing
    custom = InstallmentSettings(max_installments=6)
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class InstallmentSettings(BaseSettings):
    """
    Configurable parameters for installment plans.

    All settings can be overridden via environment variables with INSTALLMENT_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="INSTALLMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Plan Shape ===
    min_installments: int = Field(
        default=2,
        ge=1,
        description="Smallest number of installments a plan may have",
    )
    max_installments: int = Field(
        default=12,
        ge=1,
        description="Largest number of installments a plan may have",
    )

    # === Collection Policy ===
    grace_period_days: int = Field(
        default=0,
        ge=0,
        description="Days after a due date before an unpaid installment counts as overdue",
    )
    max_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Failed charges allowed before an installment stops being retried",
    )
    retry_interval_days: int = Field(
        default=1,
        ge=0,
        description="Minimum days between two charge attempts of the same installment",
    )
    processing_timeout_minutes: int = Field(
        default=15,
        ge=1,
        description="Minutes an installment may stay processing before the run looks it up again",
    )

    # === Reminders ===
    reminder_days_ahead: int = Field(
        default=3,
        ge=0,
        description="Days before the due date a payment reminder goes out",
    )

    @model_validator(mode="after")
    def validate_installment_bounds(self) -> "InstallmentSettings":
        if self.min_installments > self.max_installments:
            raise ValueError(
                f"min_installments ({self.min_installments}) > "
                f"max_installments ({self.max_installments})"
            )
        return self


@lru_cache
def get_installment_settings() -> InstallmentSettings:
    """Get cached installment settings instance."""
    return InstallmentSettings()


installment_settings = get_installment_settings()
