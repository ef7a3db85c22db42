"""Tests for the currency table and the exchange-rate provider."""

import json
import logging
from decimal import Decimal

import pytest
import requests

from linecalc import currency
from linecalc.currency import (
    DEFAULT_CURRENCY_TABLE,
    CurrencyTable,
    NumberingStyle,
    RateProvider,
    fetch_rates,
)
from linecalc.errors import CurrencyNotFound, RateFetchError

RATES_URL = "https://rates.example.test/latest/USD"


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    def json(self, **kwargs):
        return json.loads(self.text, **kwargs)


@pytest.fixture
def fake_get(monkeypatch):
    """Replaces requests.get; the test sets `fake_get.response` (or an exception to raise)."""

    class FakeGet:
        response = FakeResponse({"base": "USD", "rates": {"USD": 1, "EUR": 0.9, "INR": 80}})
        calls = []

        def __call__(self, url, timeout=None):
            self.calls.append((url, timeout))
            if isinstance(self.response, Exception):
                raise self.response
            return self.response

    getter = FakeGet()
    getter.calls = []
    monkeypatch.setattr(currency.requests, "get", getter)
    return getter


def test_default_table_lookups():
    assert DEFAULT_CURRENCY_TABLE.rate_to_base("USD") == Decimal(1)
    assert DEFAULT_CURRENCY_TABLE.symbol("INR") == "₹"
    assert DEFAULT_CURRENCY_TABLE.symbol("EUR") == "€"
    assert DEFAULT_CURRENCY_TABLE.numbering_style("INR") is NumberingStyle.INDIAN
    assert DEFAULT_CURRENCY_TABLE.numbering_style("USD") is NumberingStyle.WESTERN
    assert DEFAULT_CURRENCY_TABLE.get_currency("inr").code == "INR"


def test_unknown_currency_raises():
    with pytest.raises(CurrencyNotFound) as exc_info:
        DEFAULT_CURRENCY_TABLE.rate_to_base("XYZ")
    assert exc_info.value.code == "XYZ"
    assert str(exc_info.value) == "Unknown currency: XYZ"


def test_rate_to_base_is_usd_value_of_one_unit():
    table = CurrencyTable.from_quotes({"USD": Decimal(1), "INR": Decimal(80)})
    assert table.rate_to_base("INR") == Decimal("0.0125")


def test_quotes_round_trip_for_display():
    quotes = DEFAULT_CURRENCY_TABLE.quotes()
    assert str(quotes["USD"]) == "1"
    assert str(quotes["INR"]) == "83.5"
    assert str(quotes["EUR"]) == "0.92"
    assert str(quotes["JPY"]) == "108"
    assert list(quotes) == sorted(quotes)


def test_from_quotes_skips_bad_rates(caplog):
    with caplog.at_level(logging.WARNING, logger="linecalc.currency"):
        table = CurrencyTable.from_quotes(
            {"usd": Decimal(1), "EUR": Decimal("0.9"), "BAD": Decimal(0), "NEG": Decimal(-2), "WORD": "abc"}
        )
    assert set(table) == {"USD", "EUR"}
    assert "Ignoring" in caplog.text


def test_from_quotes_always_has_base_currency():
    table = CurrencyTable.from_quotes({"SEK": Decimal(10)})
    assert "USD" in table
    assert table.symbol("SEK") == "SEK"
    assert table.numbering_style("SEK") is NumberingStyle.WESTERN


def test_with_rates_returns_new_table():
    table = DEFAULT_CURRENCY_TABLE.with_rates({"inr": Decimal(80), "SEK": Decimal(10)})
    assert table is not DEFAULT_CURRENCY_TABLE
    assert table.quotes()["INR"] == Decimal(80)
    assert table.quotes()["EUR"] == Decimal("0.92")
    assert "SEK" in table
    assert "SEK" not in DEFAULT_CURRENCY_TABLE
    assert DEFAULT_CURRENCY_TABLE.quotes()["INR"] == Decimal("83.5")


def test_table_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_CURRENCY_TABLE["USD"] = None  # type: ignore[index]


def test_fetch_rates_parses_decimals(fake_get):
    fake_get.response = FakeResponse(text='{"base": "USD", "rates": {"USD": 1, "INR": 83.25, "XAU": "n/a"}}')
    rates = fetch_rates(RATES_URL, timeout=2)
    assert rates == {"USD": Decimal(1), "INR": Decimal("83.25")}
    assert fake_get.calls == [(RATES_URL, 2)]


@pytest.mark.parametrize(
    "response",
    [
        pytest.param(requests.ConnectionError("connection refused"), id="network"),
        pytest.param(FakeResponse(status_code=503, text="unavailable"), id="http-status"),
        pytest.param(FakeResponse(text="not json"), id="bad-json"),
        pytest.param(FakeResponse({"base": "USD"}), id="no-rates"),
        pytest.param(FakeResponse({"rates": {}}), id="empty-rates"),
    ],
)
def test_fetch_rates_failures(fake_get, response):
    fake_get.response = response
    with pytest.raises(RateFetchError):
        fetch_rates(RATES_URL)


def test_provider_starts_with_static_rates():
    provider = RateProvider(url=RATES_URL, offline=True)
    assert provider.current_table() is DEFAULT_CURRENCY_TABLE
    assert provider.source == "static"


def test_provider_refresh_loads_fetched_rates(fake_get):
    provider = RateProvider(url=RATES_URL, ttl=3600)
    assert provider.is_stale

    table = provider.refresh()
    assert provider.source == "fetched"
    assert provider.current_table() is table
    assert table.quotes()["INR"] == Decimal(80)
    assert not provider.is_stale

    # Fresh rates are not fetched again until forced
    provider.refresh()
    assert len(fake_get.calls) == 1
    provider.refresh(force=True)
    assert len(fake_get.calls) == 2


def test_provider_with_zero_ttl_is_always_stale(fake_get):
    provider = RateProvider(url=RATES_URL, ttl=0)
    provider.refresh()
    assert provider.is_stale


def test_provider_keeps_table_when_fetch_fails(fake_get, caplog):
    fake_get.response = requests.Timeout("timed out")
    provider = RateProvider(url=RATES_URL)
    with caplog.at_level(logging.WARNING, logger="linecalc.currency"):
        table = provider.refresh()
    assert table is DEFAULT_CURRENCY_TABLE
    assert provider.source == "static"
    assert "Failed to fetch exchange rates" in caplog.text


def test_offline_provider_never_fetches(fake_get):
    provider = RateProvider(url=RATES_URL, offline=True)
    assert not provider.is_stale
    assert provider.refresh(force=True) is DEFAULT_CURRENCY_TABLE
    assert fake_get.calls == []
