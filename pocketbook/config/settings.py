"""
Configuration Management for Pocketbook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every section has working defaults except Google Sheets, which is only
needed when the spreadsheet backend is used.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RatesSettings(BaseSettings):
    """Exchange rate feed configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_url: str = Field(
        default=(
            "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest"
            "/v1/currencies/{home}.json"
        ),
        description="Rate feed URL; {home} is replaced by the lowercase home currency"
    )
    home_currency: str = Field(
        default="TWD",
        min_length=3,
        max_length=3,
        description="Currency every stored amount is normalized to"
    )
    supported_currencies: str = Field(
        default="USD,JPY,KRW,CNY",
        description="Comma-separated whitelist of foreign currencies to extract"
    )
    refresh_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="Age after which cached rates are considered stale"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for the rate download"
    )

    @field_validator("home_currency")
    @classmethod
    def normalize_home_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def supported_currency_list(self) -> list[str]:
        """Get the whitelist as a list of upper-case codes, minus the home currency."""
        codes = [code.strip().upper() for code in self.supported_currencies.split(",")]
        return [code for code in codes if code and code != self.home_currency]

    @property
    def resolved_api_url(self) -> str:
        return self.api_url.format(home=self.home_currency.lower())


class SchedulerSettings(BaseSettings):
    """Recurring expense check cadence."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    check_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between periodic due checks"
    )
    startup_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Delay before the first check after start"
    )
    upcoming_window_days: int = Field(
        default=7,
        ge=1,
        description="Window used for 'due soon' listings"
    )


class CacheSettings(BaseSettings):
    """Local key-value cache (exchange rate snapshot)."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    path: str = Field(
        default=str(Path.home() / ".pocketbook" / "cache.json"),
        description="JSON file holding cached values across restarts"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(default="Transactions")
    recurring_sheet_name: str = Field(default="RecurringExpenses")
    categories_sheet_name: str = Field(default="Categories")
    projects_sheet_name: str = Field(default="Projects")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    max_transaction_amount: int = Field(
        default=10_000_000,
        ge=1,
        description="Largest amount accepted for a single transaction"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a missing optional section
    # (Google Sheets) does not break the rest.

    @property
    def rates(self) -> RatesSettings:
        return RatesSettings()

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    "<setting_name>_error" entries for the failing ones.
    """
    results = {}
    settings = get_settings()

    for name in ("rates", "scheduler", "cache", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
