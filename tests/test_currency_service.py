"""
Tests for exchange rate fetching, caching and conversion.

The rate feed is replaced with httpx.MockTransport; nothing leaves the
process.
"""

import asyncio
import json
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
import pytest

from pocketbook.config.settings import RatesSettings
from pocketbook.models.audit import AuditEventType
from pocketbook.models.currency import Currency, ExchangeRateSnapshot
from pocketbook.services.currency import (
    FALLBACK_RATES,
    OFFLINE_RATES_MESSAGE,
    CurrencyConversionService,
    ExchangeRateCache,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from pocketbook.services.currency.cache import RATES_KEY, UPDATED_KEY


NOW = datetime(2025, 1, 10, 9, 0)
CENT = Decimal("0.01")

FEED_PAYLOAD = {
    "date": "2025-01-10",
    "twd": {
        "usd": 0.031,
        "jpy": 4.6,
        "krw": 42.0,
        "cny": 0.22,
        "eur": 0.029,
    },
}


@pytest.fixture
def settings():
    return RatesSettings(
        home_currency="TWD",
        supported_currencies="USD,JPY,KRW,CNY",
        refresh_interval_seconds=3600,
    )


def feed(status_code=200, payload=FEED_PAYLOAD, content=None):
    """MockTransport handler answering every request the same way."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if content is not None:
            return httpx.Response(status_code, content=content)
        return httpx.Response(status_code, json=payload)

    handler.requests = requests
    return handler


def make_service(settings, handler, store=None, audit_logger=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cache = ExchangeRateCache(store or InMemoryKeyValueStore())
    return CurrencyConversionService(
        cache,
        settings=settings,
        http_client=client,
        audit_logger=audit_logger,
    )


class TestFetchRates:
    """Tests for fetch_rates and the offline fallback."""

    def test_success_keeps_whitelisted_rates(self, settings, audit_logger, audit_storage):
        handler = feed()
        store = InMemoryKeyValueStore()
        service = make_service(settings, handler, store, audit_logger)

        result = asyncio.run(service.fetch_rates(NOW))

        assert result.success is True
        assert service.exchange_rates == {
            "USD": Decimal("0.031"),
            "JPY": Decimal("4.6"),
            "KRW": Decimal("42.0"),
            "CNY": Decimal("0.22"),
        }
        assert service.last_updated == NOW
        assert service.error_message is None
        assert str(handler.requests[0].url).endswith("/currencies/twd.json")

        assert store.get(RATES_KEY)["USD"] == "0.031"
        assert store.get(UPDATED_KEY) == NOW.isoformat()

        events = asyncio.run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.RATES_REFRESHED

    @pytest.mark.parametrize(
        "handler",
        [
            feed(status_code=500),
            feed(content=b"<html>not json</html>"),
            feed(payload={"date": "2025-01-10", "usd": {"twd": 32.1}}),
            feed(payload={"date": "2025-01-10", "twd": {"eur": 0.029}}),
            feed(payload={"twd": {"usd": "NaN"}}),
            feed(payload={"twd": {"usd": "sNaN", "jpy": "Infinity", "krw": -1}}),
            feed(payload={"twd": {"usd": "abc"}}),
        ],
        ids=[
            "http_error",
            "bad_json",
            "missing_home_table",
            "no_supported_rates",
            "nan_rate",
            "non_finite_rates",
            "non_numeric_rate",
        ],
    )
    def test_failure_installs_offline_table(self, settings, handler):
        service = make_service(settings, handler)

        result = asyncio.run(service.fetch_rates(NOW))

        assert result.used_fallback is True
        assert result.error
        assert service.exchange_rates == FALLBACK_RATES["TWD"]
        assert service.snapshot.is_fallback is True
        assert service.error_message == OFFLINE_RATES_MESSAGE
        assert service.is_loading is False

    def test_unusable_rate_values_are_dropped(self, settings):
        payload = {"twd": {"usd": "NaN", "jpy": "Infinity", "krw": 42.0}}
        service = make_service(settings, feed(payload=payload))

        result = asyncio.run(service.fetch_rates(NOW))

        assert result.success is True
        assert service.exchange_rates == {"KRW": Decimal("42.0")}

    def test_home_currency_is_never_stored(self):
        settings = RatesSettings(home_currency="TWD", supported_currencies="TWD,USD")
        payload = {"twd": {"twd": 1, "usd": 0.031}}
        service = make_service(settings, feed(payload=payload))

        asyncio.run(service.fetch_rates(NOW))

        assert settings.supported_currency_list == ["USD"]
        assert service.exchange_rates == {"USD": Decimal("0.031")}

    def test_home_currency_is_never_stored_in_fallback(self):
        settings = RatesSettings(home_currency="TWD", supported_currencies="twd, usd")
        service = make_service(settings, feed(status_code=500))

        asyncio.run(service.fetch_rates(NOW))

        assert service.exchange_rates == {"USD": Decimal("0.031")}

    def test_fallback_is_audited(self, settings, audit_logger, audit_storage):
        service = make_service(settings, feed(status_code=503), audit_logger=audit_logger)

        asyncio.run(service.fetch_rates(NOW))

        event = asyncio.run(audit_storage.get_recent_events())[0]
        assert event.event_type == AuditEventType.RATES_FALLBACK_USED
        assert "503" in event.error_message

    def test_success_after_failure_clears_message(self, settings):
        responses = iter([httpx.Response(500), httpx.Response(200, json=FEED_PAYLOAD)])
        service = make_service(settings, lambda request: next(responses))

        asyncio.run(service.fetch_rates(NOW))
        assert service.error_message == OFFLINE_RATES_MESSAGE

        asyncio.run(service.fetch_rates(NOW + timedelta(minutes=5)))
        assert service.error_message is None
        assert service.snapshot.is_fallback is False

    def test_home_currency_without_offline_table(self):
        settings = RatesSettings(home_currency="EUR", supported_currencies="USD")
        service = make_service(settings, feed(status_code=500))

        asyncio.run(service.fetch_rates(NOW))

        assert service.exchange_rates == {}
        assert service.convert_to_home(10, "USD") == Decimal("10")

    def test_concurrent_fetch_is_skipped(self, settings):
        release = asyncio.Event()
        calls = []

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            await release.wait()
            return httpx.Response(200, json=FEED_PAYLOAD)

        service = make_service(settings, slow_handler)

        async def scenario():
            first = asyncio.create_task(service.fetch_rates(NOW))
            while not service.is_loading:
                await asyncio.sleep(0)
            second = await service.fetch_rates(NOW)
            release.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert second.skipped is True
        assert first.success is True
        assert len(calls) == 1


class TestRefreshPolicy:
    """Tests for should_refresh and update_rates_if_needed."""

    def test_refresh_without_snapshot(self, settings):
        service = make_service(settings, feed())
        assert service.should_refresh(NOW) is True

    def test_refresh_after_interval(self, settings):
        service = make_service(settings, feed())
        asyncio.run(service.fetch_rates(NOW))

        assert service.should_refresh(NOW + timedelta(minutes=59)) is False
        assert service.should_refresh(NOW + timedelta(minutes=61)) is True

    def test_fresh_rates_skip_network(self, settings):
        handler = feed()
        service = make_service(settings, handler)

        assert asyncio.run(service.update_rates_if_needed(NOW)) is not None
        assert asyncio.run(service.update_rates_if_needed(NOW + timedelta(minutes=10))) is None
        assert len(handler.requests) == 1

    def test_stale_rates_are_refetched(self, settings):
        handler = feed()
        service = make_service(settings, handler)
        asyncio.run(service.update_rates_if_needed(NOW))

        later = NOW + timedelta(hours=2)
        result = asyncio.run(service.update_rates_if_needed(later))

        assert result is not None and result.success is True
        assert service.last_updated == later
        assert len(handler.requests) == 2

    def test_cached_snapshot_loaded_on_start(self, settings):
        store = InMemoryKeyValueStore({
            RATES_KEY: {"USD": "0.03"},
            UPDATED_KEY: NOW.isoformat(),
        })
        handler = feed()
        service = make_service(settings, handler, store)

        assert service.exchange_rates == {"USD": Decimal("0.03")}
        assert asyncio.run(service.update_rates_if_needed(NOW + timedelta(minutes=1))) is None
        assert handler.requests == []


class TestConversion:
    """Tests for conversion arithmetic."""

    @pytest.fixture
    def service(self, settings):
        service = make_service(settings, feed())
        asyncio.run(service.fetch_rates(NOW))
        return service

    def test_usd_to_home(self, service):
        assert service.convert_to_home(100, "USD").quantize(CENT) == Decimal("3225.81")

    def test_home_is_identity(self, service):
        assert service.convert_to_home("250.5", Currency.TWD) == Decimal("250.5")

    def test_missing_rate_is_identity(self, service):
        assert service.convert_to_home(42, "EUR") == Decimal("42")

    def test_convert_from_home(self, service):
        assert service.convert(1000, "TWD", "USD") == Decimal("31.000")

    def test_cross_rate(self, service):
        # 460 JPY -> 100 TWD -> 3.1 USD
        assert service.convert(460, "JPY", "USD").quantize(CENT) == Decimal("3.10")

    def test_round_trip(self, service):
        home = service.convert_to_home(Decimal("12.34"), "USD")
        assert service.convert(home, "TWD", "USD").quantize(CENT) == Decimal("12.34")

    def test_invalid_currency(self, service):
        with pytest.raises(ValueError):
            service.convert_to_home(1, "DOLLARS")

    def test_display_rate(self, service):
        assert service.display_rate("TWD") == "1.0000"
        assert service.display_rate("USD") == "0.0310"
        assert service.display_rate("EUR") is None


class TestExchangeRateCache:
    """Tests for snapshot persistence."""

    def test_corrupt_values_read_as_missing(self):
        store = InMemoryKeyValueStore({
            RATES_KEY: {"USD": "not-a-number"},
            UPDATED_KEY: NOW.isoformat(),
        })
        assert ExchangeRateCache(store).load() is None

        store = InMemoryKeyValueStore({RATES_KEY: {"USD": "0.03"}, UPDATED_KEY: "yesterday"})
        assert ExchangeRateCache(store).load() is None

    def test_json_file_store(self, tmp_path):
        path = tmp_path / "nested" / "cache.json"
        cache = ExchangeRateCache(JsonFileKeyValueStore(path))
        snapshot = ExchangeRateSnapshot(
            rates={"USD": Decimal("0.031")},
            fetched_at=NOW,
            is_fallback=True,
        )

        cache.save(snapshot)

        assert json.loads(path.read_text(encoding="utf-8"))[RATES_KEY] == {"USD": "0.031"}
        assert ExchangeRateCache(JsonFileKeyValueStore(path)).load() == snapshot

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{broken", encoding="utf-8")

        store = JsonFileKeyValueStore(path)
        assert store.get(RATES_KEY) is None
        assert ExchangeRateCache(store).load() is None
