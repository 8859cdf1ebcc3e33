"""
Currency Models for Pocketbook

Rates are expressed relative to the home currency:
"units of that currency per 1 unit of home currency".
The home currency itself is never stored in a snapshot; it is
implicitly 1.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Currency(str, Enum):
    """Currencies the app knows how to display."""
    TWD = "TWD"
    JPY = "JPY"
    USD = "USD"
    KRW = "KRW"
    CNY = "CNY"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    @property
    def fraction_digits(self) -> int:
        # Yen and won are shown without decimals
        return 0 if self in (Currency.JPY, Currency.KRW) else 2

    def format_amount(self, amount: Union[Decimal, float, int]) -> str:
        """Format an amount with this currency's symbol and precision."""
        return f"{self.symbol}{float(amount):,.{self.fraction_digits}f}"


_DISPLAY_NAMES = {
    Currency.TWD: "New Taiwan Dollar (TWD)",
    Currency.JPY: "Japanese Yen (JPY)",
    Currency.USD: "US Dollar (USD)",
    Currency.KRW: "South Korean Won (KRW)",
    Currency.CNY: "Chinese Yuan (CNY)",
}

_SYMBOLS = {
    Currency.TWD: "NT$",
    Currency.JPY: "JPY¥",
    Currency.USD: "US$",
    Currency.KRW: "KRW₩",
    Currency.CNY: "CNY¥",
}


def normalize_currency(value: Union[str, Currency]) -> str:
    """Upper-case 3-letter ISO 4217 code, or ValueError."""
    if isinstance(value, Currency):
        return value.value
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


class ExchangeRateSnapshot(BaseModel):
    """
    Last fetched (or fallback) rate table.

    Replaced wholesale, never patched.
    """
    model_config = ConfigDict(frozen=True)

    rates: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Currency code -> units per 1 unit of home currency"
    )
    fetched_at: datetime
    is_fallback: bool = False

    @field_validator('rates')
    @classmethod
    def validate_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        normalized = {}
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be positive")
            normalized[normalize_currency(code)] = rate
        return normalized

    def rate_for(self, currency: str) -> Optional[Decimal]:
        return self.rates.get(currency)


class RateFetchResult(BaseModel):
    """
    Outcome of a rate refresh.

    A failed download still yields a usable snapshot (the fallback
    table); `error` says why it was used.
    """

    snapshot: Optional[ExchangeRateSnapshot] = None
    used_fallback: bool = False
    skipped: bool = Field(
        default=False,
        description="True when another fetch was already in flight"
    )
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.snapshot is not None and not self.used_fallback
