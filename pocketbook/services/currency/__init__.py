"""Currency services package."""

from pocketbook.services.currency.cache import (
    ExchangeRateCache,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from pocketbook.services.currency.rate_service import (
    FALLBACK_RATES,
    OFFLINE_RATES_MESSAGE,
    CurrencyConversionService,
    RateDecodeError,
    RateFetchError,
    RateServiceError,
    to_decimal,
)

__all__ = [
    "ExchangeRateCache",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "FALLBACK_RATES",
    "OFFLINE_RATES_MESSAGE",
    "CurrencyConversionService",
    "RateDecodeError",
    "RateFetchError",
    "RateServiceError",
    "to_decimal",
]
