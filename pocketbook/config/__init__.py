"""Configuration package."""

from pocketbook.config.settings import (
    AppSettings,
    CacheSettings,
    GoogleSheetsSettings,
    RatesSettings,
    SchedulerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "GoogleSheetsSettings",
    "RatesSettings",
    "SchedulerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
