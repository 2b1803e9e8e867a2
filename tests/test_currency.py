import pytest

from conftest import FakeClock, FakeResponse, FakeSession
from constants import RATES_KEY
from currency import CurrencyRateCache, RatesUnavailable, fallback_convert
from storage import KeyValueStore

TTL = 60 * 60 * 12


@pytest.fixture
def clock():
    return FakeClock()


def _cache(store, session, clock, **kwargs):
    return CurrencyRateCache(store, session=session, clock=clock, ttl_seconds=TTL, **kwargs)


def _seed(store, clock, base="NGN", age_ms=0, rates=None):
    store.set(
        RATES_KEY,
        {
            "base": base,
            "rates": rates or {"USD": 0.001},
            "timestamp": int(clock() * 1000) - age_ms,
        },
    )


def test_fresh_entry_is_reused_without_fetch(clock):
    store, session = KeyValueStore(), FakeSession()
    _seed(store, clock, age_ms=1)

    rates = _cache(store, session, clock).get_cached_rates("NGN", ["USD"])

    assert rates == {"USD": 0.001}
    assert session.calls == []


def test_expired_entry_triggers_fetch(clock):
    store, session = KeyValueStore(), FakeSession(rates={"USD": 0.002})
    _seed(store, clock, age_ms=TTL * 1000 + 1)

    rates = _cache(store, session, clock).get_cached_rates("NGN", ["USD"])

    assert rates == {"USD": 0.002}
    assert len(session.calls) == 1
    assert session.calls[0]["params"] == {"base": "NGN", "symbols": "USD"}
    stored = store.get(RATES_KEY)
    assert stored["base"] == "NGN"
    assert stored["rates"] == {"USD": 0.002}
    assert stored["timestamp"] == int(clock() * 1000)


def test_base_mismatch_triggers_fetch(clock):
    store, session = KeyValueStore(), FakeSession(rates={"NGN": 1200.0})
    _seed(store, clock, base="NGN")

    rates = _cache(store, session, clock).get_cached_rates("USD", ["NGN"])

    assert rates == {"NGN": 1200.0}
    assert len(session.calls) == 1
    assert store.get(RATES_KEY)["base"] == "USD"


def test_fetch_failure_serves_stale_entry_of_any_base(clock):
    store, session = KeyValueStore(), FakeSession(fail=True)
    _seed(store, clock, base="EUR", age_ms=TTL * 1000 * 10, rates={"NGN": 1300.0})

    rates = _cache(store, session, clock).get_cached_rates("NGN", ["USD"])

    assert rates == {"NGN": 1300.0}
    assert len(session.calls) == 1


def test_fetch_failure_without_cache_raises(clock):
    cache = _cache(KeyValueStore(), FakeSession(fail=True), clock)
    with pytest.raises(RatesUnavailable):
        cache.get_cached_rates("NGN", ["USD"])


def test_provider_error_payload_counts_as_failure(clock):
    class ErrorSession(FakeSession):
        def get(self, url, params=None, timeout=None):
            super().get(url, params, timeout)
            return FakeResponse({"success": False, "error": {"type": "missing_access_key"}})

    with pytest.raises(RatesUnavailable):
        _cache(KeyValueStore(), ErrorSession(), clock).get_cached_rates("NGN", ["USD"])


def test_access_key_is_sent(clock):
    session = FakeSession()
    _cache(KeyValueStore(), session, clock, access_key="k123").get_cached_rates("NGN", ["USD", "EUR"])
    assert session.calls[0]["params"] == {"base": "NGN", "symbols": "USD,EUR", "access_key": "k123"}


def test_newer_entry_is_not_overwritten_by_slower_fetch(clock):
    store = KeyValueStore()

    class SlowSession(FakeSession):
        def get(self, url, params=None, timeout=None):
            # Another request finishes first and writes a newer entry.
            clock.advance(5)
            store.set(RATES_KEY, {"base": "NGN", "rates": {"USD": 0.5}, "timestamp": int(clock() * 1000)})
            return super().get(url, params, timeout)

    rates = _cache(store, SlowSession(rates={"USD": 0.1}), clock).get_cached_rates("NGN", ["USD"])

    assert rates == {"USD": 0.1}
    assert store.get(RATES_KEY)["rates"] == {"USD": 0.5}


@pytest.mark.parametrize("code", ["NGN", "USD", "XYZ"])
def test_convert_same_currency_is_identity(code, clock):
    session = FakeSession()
    cache = _cache(KeyValueStore(), session, clock)
    assert cache.convert(1234.5, code, code) == 1234.5
    assert session.calls == []


def test_convert_multiplies_by_rate(clock):
    cache = _cache(KeyValueStore(), FakeSession(rates={"USD": 0.0008}), clock)
    assert cache.convert(1000, "NGN", "USD") == pytest.approx(0.8)


def test_convert_missing_rate_returns_amount(clock):
    cache = _cache(KeyValueStore(), FakeSession(rates={"EUR": 0.0006}), clock)
    assert cache.convert(1000, "NGN", "USD") == 1000


@pytest.mark.parametrize(
    "from_,to,expected",
    [
        ("NGN", "USD", 1.0),
        ("NGN", "EUR", 1200 / 1300),
        ("USD", "NGN", 1_440_000.0),
        ("EUR", "NGN", 1_560_000.0),
        ("USD", "EUR", 1200.0),
    ],
)
def test_convert_falls_back_to_fixed_table(from_, to, expected, clock):
    cache = _cache(KeyValueStore(), FakeSession(fail=True), clock)
    assert cache.convert(1200.0, from_, to) == pytest.approx(expected)


def test_fallback_convert_unknown_pair_is_identity():
    assert fallback_convert(50.0, "GBP", "JPY") == 50.0


def test_malformed_cache_entry_is_ignored(clock):
    store, session = KeyValueStore(), FakeSession(rates={"USD": 0.001})
    store.set(RATES_KEY, {"base": "NGN", "rates": "garbage"})

    assert _cache(store, session, clock).get_cached_rates("NGN", ["USD"]) == {"USD": 0.001}
    assert len(session.calls) == 1


def test_from_settings_reads_ttl_and_url(settings):
    settings.update(exchange_rate_ttl_seconds=30, exchange_rate_api_url="https://rates.example/latest")
    cache = CurrencyRateCache.from_settings(settings, KeyValueStore(), session=FakeSession())
    assert cache.ttl_ms == 30_000
    assert cache.api_url == "https://rates.example/latest"


def test_non_numeric_cached_rate_does_not_break_convert(clock):
    store = KeyValueStore()
    _seed(store, clock, rates={"USD": "x", "EUR": 0.0006})
    cache = _cache(store, FakeSession(fail=True), clock)

    assert cache.get_cached_rates("NGN", ["USD"]) == {"EUR": 0.0006}
    assert cache.convert(1000, "NGN", "USD") == 1000
    assert cache.convert(1000, "NGN", "EUR") == pytest.approx(0.6)
