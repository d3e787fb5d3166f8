"""Configuration system for the budget engine.

This module provides Pydantic Settings-based configuration with environment
variable support and sensible defaults.

Usage:
    from budget_core.config import BudgetSettings

    # Load from environment variables and .env file
    settings = BudgetSettings()

    print(settings.tax_year)
    print(settings.state_tax_rate)
"""

from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .tax_tables import DEFAULT_TAX_YEAR, supported_tax_years


class BudgetSettings(BaseSettings):
    """Root configuration for the budget engine.

    Environment Variables:
        BUDGET_ENV: Environment name (development, staging, production, test)
        BUDGET_TAX_YEAR: Tax year whose tables are used for calculations
        BUDGET_STATE_TAX_RATE: Flat state income tax rate, in percent
        BUDGET_ROUNDING_TOLERANCE: Accepted drift between money totals
        BUDGET_SURPLUS_CATEGORY_NAME: Name of the auto-created surplus category
        BUDGET_EXCLUDED_CATEGORY_NAME: Name of the excluded system category

    Example:
        settings = BudgetSettings(state_tax_rate=Decimal("0"))
        calculator = TaxCalculator.from_settings(settings)
    """

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
    )
    tax_year: int = Field(
        default=DEFAULT_TAX_YEAR,
        description="Tax year whose tables are used for calculations",
    )
    state_tax_rate: Decimal = Field(
        default=Decimal("4.95"),
        ge=0,
        le=100,
        description="Flat state income tax rate in percent",
    )
    rounding_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Maximum drift accepted when comparing money totals",
    )
    surplus_category_name: str = Field(
        default="Surplus",
        description="Name given to the auto-created surplus category",
    )
    excluded_category_name: str = Field(
        default="Excluded",
        description="Name given to the excluded system category",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @field_validator("tax_year")
    @classmethod
    def validate_tax_year(cls, v: int) -> int:
        """Only years with tax tables are accepted."""
        if v not in supported_tax_years():
            raise ValueError(
                f"Unsupported tax year: {v}. Must be one of: {supported_tax_years()}"
            )
        return v

    @field_validator("surplus_category_name", "excluded_category_name")
    @classmethod
    def validate_category_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("System category names cannot be empty")
        return v.strip()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"
