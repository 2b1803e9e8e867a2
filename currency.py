"""currency.py

Exchange-rate lookup with a TTL cache for price display.

Rates come from the public exchangerate.host API and are cached in the
client-state store under ``@currency_rates`` as ``{base, rates, timestamp}``
(timestamp in epoch milliseconds). A cached entry is reused while it is
younger than the TTL *and* was fetched for the same base currency.

When the provider is unreachable we serve whatever rates are cached, even if
stale or for another base. ``convert`` never raises: with no rates at all it
falls back to a fixed NGN<->USD/EUR table, and to the unconverted amount for
any other pair.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Iterable, Optional

import requests

from constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_SYMBOLS,
    EXCHANGE_RATE_API_URL,
    FALLBACK_CONVERSIONS,
    RATES_HTTP_TIMEOUT_SECONDS,
    RATES_KEY,
    RATES_TTL_SECONDS,
)
from storage import KeyValueStore

logger = logging.getLogger(__name__)


class RatesUnavailable(Exception):
    """No fresh rates could be fetched and nothing is cached."""


def fallback_convert(amount: float, from_: str, to: str) -> float:
    """Naive conversion used when no rates are available at all."""
    rule = FALLBACK_CONVERSIONS.get((from_, to))
    if not rule:
        return amount
    op, factor = rule
    return amount / factor if op == "div" else amount * factor


def _coerce_rates(raw: Any) -> dict[str, float]:
    """Keep only finite numeric rates, as floats."""
    rates: dict[str, float] = {}
    if not isinstance(raw, dict):
        return rates
    for code, value in raw.items():
        if isinstance(value, bool):
            continue
        try:
            rate = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(rate):
            rates[str(code)] = rate
    return rates


class CurrencyRateCache:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        api_url: str = EXCHANGE_RATE_API_URL,
        access_key: Optional[str] = None,
        ttl_seconds: float = RATES_TTL_SECONDS,
        timeout: float = RATES_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.api_url = api_url
        self.access_key = access_key or None
        self.ttl_ms = float(ttl_seconds) * 1000.0
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: dict, store: KeyValueStore, **kwargs) -> "CurrencyRateCache":
        return cls(
            store,
            api_url=settings.get("exchange_rate_api_url") or EXCHANGE_RATE_API_URL,
            access_key=settings.get("exchange_rate_access_key") or None,
            ttl_seconds=float(settings.get("exchange_rate_ttl_seconds") or RATES_TTL_SECONDS),
            timeout=float(settings.get("exchange_rate_timeout_seconds") or RATES_HTTP_TIMEOUT_SECONDS),
            **kwargs,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _read_entry(self) -> Optional[dict[str, Any]]:
        raw = self.store.get(RATES_KEY)
        if not isinstance(raw, dict):
            return None
        rates = raw.get("rates")
        ts = raw.get("timestamp")
        if not isinstance(rates, dict) or not isinstance(ts, (int, float)):
            logger.debug("Ignoring malformed rates cache entry: %r", raw)
            return None
        return {**raw, "rates": _coerce_rates(rates)}

    def fetch_rates(self, base: str, symbols: Iterable[str]) -> dict[str, float]:
        """Fetch fresh rates for ``base``. Raises RatesUnavailable on any failure."""
        params = {"base": base, "symbols": ",".join(symbols)}
        if self.access_key:
            params["access_key"] = self.access_key
        try:
            resp = self.session.get(self.api_url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json() or {}
        except (requests.RequestException, ValueError) as e:
            raise RatesUnavailable(f"Failed to fetch exchange rates: {e}") from e

        if payload.get("success") is False:
            raise RatesUnavailable(f"Rate provider error: {payload.get('error')}")

        rates = _coerce_rates(payload.get("rates"))
        if not rates:
            raise RatesUnavailable("Rate provider returned no rates")
        return rates

    def get_cached_rates(
        self,
        base: str = DEFAULT_BASE_CURRENCY,
        symbols: Iterable[str] = DEFAULT_SYMBOLS,
    ) -> dict[str, float]:
        symbols = list(symbols)
        started = self._now_ms()

        entry = self._read_entry()
        if entry and entry.get("base") == base and (started - entry["timestamp"]) < self.ttl_ms:
            return dict(entry["rates"])

        try:
            rates = self.fetch_rates(base, symbols)
        except RatesUnavailable as e:
            stale = self._read_entry()
            if stale:
                logger.warning("%s; serving cached rates (base=%s)", e, stale.get("base"))
                return dict(stale["rates"])
            raise

        with self._lock:
            current = self._read_entry()
            # A fetch that started earlier must not clobber a newer entry.
            if current and current["timestamp"] > started:
                logger.debug("Skipping rates cache write; a newer entry exists")
            else:
                self.store.set(RATES_KEY, {"base": base, "rates": rates, "timestamp": self._now_ms()})
        return rates

    def convert(self, amount: float, from_: str = DEFAULT_BASE_CURRENCY, to: str = DEFAULT_BASE_CURRENCY) -> float:
        if from_ == to:
            return amount
        try:
            # base=from_ so rates[to] is the multiplier
            rates = self.get_cached_rates(from_, [to])
        except Exception as e:
            logger.warning("Currency conversion %s->%s fell back to fixed table: %s", from_, to, e)
            return fallback_convert(amount, from_, to)

        rate = rates.get(to)
        if not rate:
            return amount
        return amount * rate
