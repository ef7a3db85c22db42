"""
Currency table and exchange-rate fetching.

The table is the only thing the evaluator and formatter see: three read-only
lookups over an immutable mapping. Where the rates come from (the static
fallback below or an exchangerate-api style endpoint) is decided by
RateProvider, which hands out a fresh table on every successful refresh.
"""

import datetime
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

import requests

from linecalc.config import EXCHANGE_RATE_API_URL, EXCHANGE_RATE_CACHE_TTL, EXCHANGE_RATE_TIMEOUT
from linecalc.errors import CurrencyNotFound, RateFetchError

logger = logging.getLogger(__name__)

BASE_CURRENCY = "USD"


class NumberingStyle(enum.Enum):
    WESTERN = "western"
    INDIAN = "indian"


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    rate_to_base: Decimal  # value of one unit in BASE_CURRENCY
    numbering_style: NumberingStyle = NumberingStyle.WESTERN


# Display metadata; codes missing here display with the code as their symbol
CURRENCY_METADATA = {
    "USD": ("$", NumberingStyle.WESTERN),
    "EUR": ("€", NumberingStyle.WESTERN),
    "INR": ("₹", NumberingStyle.INDIAN),
    "GBP": ("£", NumberingStyle.WESTERN),
    "JPY": ("¥", NumberingStyle.WESTERN),
    "CAD": ("C$", NumberingStyle.WESTERN),
    "AUD": ("A$", NumberingStyle.WESTERN),
    "CHF": ("₣", NumberingStyle.WESTERN),
    "CNY": ("CN¥", NumberingStyle.WESTERN),
}

# Static exchange rates used when no fetched rates are available (units per 1 USD)
STATIC_RATES = {
    "USD": Decimal("1"),
    "EUR": Decimal("0.92"),
    "INR": Decimal("83.50"),
    "GBP": Decimal("0.75"),
    "JPY": Decimal("108.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
    "CHF": Decimal("0.92"),
    "CNY": Decimal("6.45"),
}


class CurrencyTable(Mapping[str, Currency]):
    """Immutable code -> Currency lookup."""

    def __init__(self, currencies: Mapping[str, Currency]):
        self._currencies = MappingProxyType(dict(currencies))

    @classmethod
    def from_quotes(cls, quotes: Mapping[str, Decimal]) -> "CurrencyTable":
        """Builds a table from rates quoted as units of each currency per one BASE_CURRENCY."""
        currencies = {}
        for code, quote in quotes.items():
            code = code.upper()
            try:
                quote = Decimal(quote)
            except (InvalidOperation, TypeError, ValueError):
                logger.warning(f"Ignoring malformed rate for {code}: {quote!r}")
                continue
            if not quote.is_finite() or quote <= 0:
                logger.warning(f"Ignoring non-positive rate for {code}: {quote}")
                continue
            symbol, style = CURRENCY_METADATA.get(code, (code, NumberingStyle.WESTERN))
            currencies[code] = Currency(code=code, symbol=symbol, rate_to_base=Decimal(1) / quote, numbering_style=style)
        if BASE_CURRENCY not in currencies:
            symbol, style = CURRENCY_METADATA[BASE_CURRENCY]
            currencies[BASE_CURRENCY] = Currency(code=BASE_CURRENCY, symbol=symbol, rate_to_base=Decimal(1), numbering_style=style)
        return cls(currencies)

    def with_rates(self, quotes: Mapping[str, Decimal]) -> "CurrencyTable":
        """A new table where `quotes` override this table's rates; codes not quoted keep theirs."""
        merged = {code: Decimal(1) / currency.rate_to_base for code, currency in self._currencies.items()}
        merged.update({code.upper(): quote for code, quote in quotes.items()})
        return CurrencyTable.from_quotes(merged)

    def __getitem__(self, code: str) -> Currency:
        return self._currencies[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._currencies)

    def __len__(self) -> int:
        return len(self._currencies)

    def get_currency(self, code: str) -> Currency:
        currency = self._currencies.get(code.upper())
        if currency is None:
            raise CurrencyNotFound(code)
        return currency

    def rate_to_base(self, code: str) -> Decimal:
        return self.get_currency(code).rate_to_base

    def symbol(self, code: str) -> str:
        return self.get_currency(code).symbol

    def numbering_style(self, code: str) -> NumberingStyle:
        return self.get_currency(code).numbering_style

    def quotes(self) -> Dict[str, Decimal]:
        """Units of each currency per one BASE_CURRENCY, rounded for display."""
        quotes = {}
        for code, currency in sorted(self._currencies.items()):
            quote = (Decimal(1) / currency.rate_to_base).quantize(Decimal("0.0001"))
            # 108.0000 -> 108 and 83.5000 -> 83.5, never 1.08E+2
            quotes[code] = quote.quantize(Decimal(1)) if quote == quote.to_integral_value() else quote.normalize()
        return quotes


DEFAULT_CURRENCY_TABLE = CurrencyTable.from_quotes(STATIC_RATES)


def fetch_rates(url: str = EXCHANGE_RATE_API_URL, timeout: float = EXCHANGE_RATE_TIMEOUT) -> Dict[str, Decimal]:
    """Fetches `{"rates": {code: units_per_usd}}` from an exchangerate-api style endpoint."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RateFetchError(str(e)) from e

    if response.status_code != 200:
        raise RateFetchError(f"HTTP {response.status_code}: {response.text[:200]}")

    try:
        # Parse floats straight into Decimal so quotes keep their published digits
        data = response.json(parse_float=Decimal)
    except ValueError as e:
        raise RateFetchError(f"Invalid JSON: {e}") from e

    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict) or not rates:
        raise RateFetchError("Response has no 'rates' object")

    return {code: Decimal(value) for code, value in rates.items() if isinstance(value, (int, Decimal))}


class RateProvider:
    """Serves the current currency table and refreshes it from the network at most once per TTL."""

    def __init__(
        self,
        url: str = EXCHANGE_RATE_API_URL,
        ttl: int = EXCHANGE_RATE_CACHE_TTL,
        timeout: float = EXCHANGE_RATE_TIMEOUT,
        offline: bool = False,
    ):
        self.url = url
        self.ttl = ttl
        self.timeout = timeout
        self.offline = offline
        self._table = DEFAULT_CURRENCY_TABLE
        self._fetched_at: Optional[float] = None
        self.source = "static"

    def current_table(self) -> CurrencyTable:
        return self._table

    @property
    def is_stale(self) -> bool:
        if self.offline:
            return False
        if self._fetched_at is None:
            return True
        return datetime.datetime.now().timestamp() - self._fetched_at >= self.ttl

    def refresh(self, force: bool = False) -> CurrencyTable:
        """Fetches new rates when stale; on failure keeps whatever table is cached."""
        if self.offline or not (force or self.is_stale):
            return self._table
        try:
            quotes = fetch_rates(self.url, self.timeout)
        except RateFetchError as e:
            logger.warning(f"{e}. Using {self.source} rates.")
            return self._table

        self._table = DEFAULT_CURRENCY_TABLE.with_rates(quotes)
        self._fetched_at = datetime.datetime.now().timestamp()
        self.source = "fetched"
        logger.info(f"Loaded {len(self._table)} exchange rates from {self.url}")
        return self._table
