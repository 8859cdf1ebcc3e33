"""
Exchange Rate Cache

The last rate snapshot is kept in a small local key-value store so the
app has rates immediately after a restart, before (or without) any
network access.

Keys:
- ExchangeRatesCache: {"USD": "0.031", ...} (decimals as strings)
- LastExchangeRateUpdate: ISO timestamp of the snapshot
- ExchangeRatesFallback: whether the snapshot is the offline table

A missing or unreadable cache is treated as "no snapshot", never as an
error: the service then fetches or falls back.
"""

import json
import os
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from pocketbook.models.currency import ExchangeRateSnapshot


logger = structlog.get_logger(__name__)


RATES_KEY = "ExchangeRatesCache"
UPDATED_KEY = "LastExchangeRateUpdate"
FALLBACK_KEY = "ExchangeRatesFallback"


class KeyValueStore(ABC):
    """Tiny persistent key-value store of JSON-serializable values."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set_many(self, values: dict[str, Any]) -> None:
        """Write several keys at once."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store for tests and unconfigured runs."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._values = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def set_many(self, values: dict[str, Any]) -> None:
        self._values.update(values)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Whole-file JSON store.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("cache_file_unreadable", path=str(self._path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    def set_many(self, values: dict[str, Any]) -> None:
        data = self._read_all()
        data.update(values)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)


class ExchangeRateCache:
    """Persists ExchangeRateSnapshot objects in a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def load(self) -> Optional[ExchangeRateSnapshot]:
        """Last persisted snapshot, or None if there is none (or it's corrupt)."""
        raw_rates = self._store.get(RATES_KEY)
        raw_updated = self._store.get(UPDATED_KEY)
        if not raw_rates or not raw_updated:
            return None

        try:
            return ExchangeRateSnapshot(
                rates={code: Decimal(str(rate)) for code, rate in raw_rates.items()},
                fetched_at=datetime.fromisoformat(raw_updated),
                is_fallback=bool(self._store.get(FALLBACK_KEY)),
            )
        except (AttributeError, InvalidOperation, TypeError, ValueError, ValidationError) as e:
            logger.warning("rate_cache_corrupt", error=str(e))
            return None

    def save(self, snapshot: ExchangeRateSnapshot) -> None:
        """Replace the persisted snapshot."""
        try:
            self._store.set_many({
                RATES_KEY: {code: str(rate) for code, rate in snapshot.rates.items()},
                UPDATED_KEY: snapshot.fetched_at.isoformat(),
                FALLBACK_KEY: snapshot.is_fallback,
            })
        except OSError as e:
            # The in-memory snapshot is still valid; only persistence failed
            logger.warning("rate_cache_write_failed", error=str(e))
