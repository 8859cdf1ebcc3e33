"""
Currency Conversion Service

Downloads the daily rate table for the home currency, keeps the latest
snapshot in memory and in the local cache, and converts amounts.

Rate source (default):
    GET https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/twd.json
    -> {"date": "2025-01-10", "twd": {"usd": 0.0305, "jpy": 4.71, ...}}

Only the configured whitelist (USD, JPY, KRW, CNY by default) is kept.

CRITICAL: fetch_rates never raises. Any failure (network, bad status,
undecodable or empty payload) installs the built-in offline table and
sets error_message, so the UI always has something to convert with.

Conversion never touches the network. A currency without a usable rate
converts 1:1 and logs a warning.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketbook.audit.logger import AuditLogger
from pocketbook.config import get_settings
from pocketbook.config.settings import RatesSettings
from pocketbook.models.currency import (
    Currency,
    ExchangeRateSnapshot,
    RateFetchResult,
    normalize_currency,
)
from pocketbook.services.currency.cache import ExchangeRateCache


logger = structlog.get_logger(__name__)


# Offline tables, per home currency: units of foreign currency per 1 unit
# of home currency
FALLBACK_RATES: dict[str, dict[str, Decimal]] = {
    "TWD": {
        "USD": Decimal("0.031"),
        "JPY": Decimal("4.6"),
        "KRW": Decimal("42.0"),
        "CNY": Decimal("0.22"),
    },
}

OFFLINE_RATES_MESSAGE = "Exchange rate service unavailable, using offline rates"


class RateServiceError(Exception):
    """Base exception for rate download errors."""
    pass


class RateFetchError(RateServiceError):
    """The rate source could not be reached or answered with an error."""
    pass


class RateDecodeError(RateServiceError):
    """The rate source answered with a payload we can't use."""
    pass


AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """
    Parse an amount.

    Raises:
        ValueError: If the value is not a finite number
    """
    try:
        # str() first so floats don't carry binary noise
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


class CurrencyConversionService:
    """
    Exchange rates and conversion.

    Usage:
        service = CurrencyConversionService(ExchangeRateCache(store))
        await service.update_rates_if_needed()
        twd = service.convert_to_home(100, "USD")

    One instance per app, constructed by create_app_components and
    injected where needed.
    """

    def __init__(
        self,
        cache: ExchangeRateCache,
        settings: Optional[RatesSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the service and load the cached snapshot.

        Args:
            cache: Local snapshot persistence
            settings: Rate feed settings (defaults to environment)
            http_client: Client to use for downloads. If None, a
                         short-lived client is opened per download.
            audit_logger: Audit trail for refresh / fallback events
        """
        self._cache = cache
        self._settings = settings or get_settings().rates
        self._http_client = http_client
        self._audit = audit_logger or AuditLogger()

        self._snapshot: Optional[ExchangeRateSnapshot] = cache.load()
        self._error_message: Optional[str] = None
        self._is_loading = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def home_currency(self) -> str:
        return self._settings.home_currency

    @property
    def supported_currencies(self) -> list[str]:
        return self._settings.supported_currency_list

    @property
    def snapshot(self) -> Optional[ExchangeRateSnapshot]:
        return self._snapshot

    @property
    def exchange_rates(self) -> dict[str, Decimal]:
        """Current rate table (empty before the first fetch)."""
        return dict(self._snapshot.rates) if self._snapshot else {}

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._snapshot.fetched_at if self._snapshot else None

    @property
    def error_message(self) -> Optional[str]:
        """User-visible message when offline rates are in use."""
        return self._error_message

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def should_refresh(self, now: Optional[datetime] = None) -> bool:
        """True when there is no snapshot or it's older than the refresh interval."""
        if self._snapshot is None:
            return True
        now = now or datetime.now()
        max_age = timedelta(seconds=self._settings.refresh_interval_seconds)
        return now - self._snapshot.fetched_at > max_age

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _request(self, url: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(url)
        async with httpx.AsyncClient(timeout=self._settings.request_timeout_seconds) as client:
            return await client.get(url)

    def _parse_rates(self, payload: object) -> dict[str, Decimal]:
        """
        Extract whitelisted rates from the feed payload.

        Raises:
            RateDecodeError: If no usable whitelisted rate is present
        """
        home_key = self.home_currency.lower()
        if not isinstance(payload, dict) or not isinstance(payload.get(home_key), dict):
            raise RateDecodeError(f"Payload has no '{home_key}' rate table")

        table = payload[home_key]
        rates = {}
        for code in self.supported_currencies:
            value = table.get(code.lower())
            if value is None:
                continue
            try:
                rate = Decimal(str(value))
            except InvalidOperation:
                logger.warning("rate_value_invalid", currency=code, value=str(value))
                continue
            if not rate.is_finite() or rate <= 0:
                logger.warning("rate_value_invalid", currency=code, value=str(value))
                continue
            rates[code] = rate

        if not rates:
            raise RateDecodeError("Payload contains none of the supported currencies")
        return rates

    async def _download_rates(self) -> dict[str, Decimal]:
        url = self._settings.resolved_api_url
        try:
            response = await self._request(url)
        except httpx.HTTPError as e:
            raise RateFetchError(f"Rate request failed: {e}") from e

        if response.status_code != 200:
            raise RateFetchError(f"Rate source returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise RateDecodeError(f"Rate payload is not valid JSON: {e}") from e

        return self._parse_rates(payload)

    def _fallback_snapshot(self, now: datetime) -> ExchangeRateSnapshot:
        table = FALLBACK_RATES.get(self.home_currency, {})
        return ExchangeRateSnapshot(
            rates={
                code: rate for code, rate in table.items()
                if code in self.supported_currencies
            },
            fetched_at=now,
            is_fallback=True,
        )

    async def fetch_rates(self, now: Optional[datetime] = None) -> RateFetchResult:
        """
        Download rates now, falling back to the offline table on failure.

        A call made while another fetch is in flight returns immediately
        with skipped=True.
        """
        if self._is_loading:
            logger.info("rates_fetch_already_running")
            return RateFetchResult(snapshot=self._snapshot, skipped=True)

        self._is_loading = True
        now = now or datetime.now()
        try:
            try:
                rates = await self._download_rates()
            except RateServiceError as e:
                snapshot = self._fallback_snapshot(now)
                self._snapshot = snapshot
                self._cache.save(snapshot)
                self._error_message = OFFLINE_RATES_MESSAGE

                logger.warning("rates_fetch_failed", error=str(e))
                await self._audit.log_rates_fallback_used(
                    error_message=str(e),
                    currencies=sorted(snapshot.rates),
                )
                return RateFetchResult(snapshot=snapshot, used_fallback=True, error=str(e))

            snapshot = ExchangeRateSnapshot(rates=rates, fetched_at=now)
            self._snapshot = snapshot
            self._cache.save(snapshot)
            self._error_message = None

            logger.info("rates_refreshed", currencies=sorted(rates))
            await self._audit.log_rates_refreshed(sorted(rates))
            return RateFetchResult(snapshot=snapshot)
        finally:
            self._is_loading = False

    async def update_rates_if_needed(
        self,
        now: Optional[datetime] = None,
    ) -> Optional[RateFetchResult]:
        """Fetch only when the snapshot is missing or stale."""
        now = now or datetime.now()
        if not self.should_refresh(now):
            return None
        return await self.fetch_rates(now)

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def _rate(self, currency: str) -> Optional[Decimal]:
        if self._snapshot is None:
            return None
        rate = self._snapshot.rate_for(currency)
        if rate is None or rate <= 0:
            return None
        return rate

    def convert_to_home(
        self,
        amount: AmountLike,
        from_currency: Union[str, Currency],
    ) -> Decimal:
        """
        Convert an amount into the home currency.

        Without a usable rate the amount is returned unchanged.
        """
        value = to_decimal(amount)
        code = normalize_currency(from_currency)
        if code == self.home_currency:
            return value

        rate = self._rate(code)
        if rate is None:
            logger.warning("exchange_rate_missing", currency=code)
            return value
        return value / rate

    def convert(
        self,
        amount: AmountLike,
        from_currency: Union[str, Currency],
        to_currency: Union[str, Currency],
    ) -> Decimal:
        """
        Convert between any two currencies through the home currency.

        A missing rate on either leg returns the amount unchanged.
        """
        value = to_decimal(amount)
        source = normalize_currency(from_currency)
        target = normalize_currency(to_currency)

        if source == target:
            return value
        if target == self.home_currency:
            return self.convert_to_home(value, source)

        target_rate = self._rate(target)
        if source == self.home_currency:
            if target_rate is None:
                logger.warning("exchange_rate_missing", currency=target)
                return value
            return value * target_rate

        source_rate = self._rate(source)
        if source_rate is None or target_rate is None:
            logger.warning(
                "exchange_rate_missing",
                currency=source if source_rate is None else target,
            )
            return value
        return value / source_rate * target_rate

    def display_rate(self, currency: Union[str, Currency]) -> Optional[str]:
        """Units of `currency` per 1 home unit, four decimals, or None."""
        code = normalize_currency(currency)
        if code == self.home_currency:
            return "1.0000"
        rate = self._rate(code)
        return f"{rate:.4f}" if rate is not None else None
