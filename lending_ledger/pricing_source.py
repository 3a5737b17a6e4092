"""
pricing_source.py - Price feeds for account valuation

Provides the price input to the health engine. Prices are integers in the
base currency's smallest unit (8 decimals). Each quote carries a staleness
flag; health computations propagate it and actions that depend on prices
refuse to proceed when it is set.

Classes:
- PriceQuote: A price, when it was observed, and whether it is stale
- PricingSource: Protocol defining the pricing interface
- StaticPricingSource: Time-independent prices with a manual stale switch
- TimeSeriesPricingSource: Time-varying prices; quotes older than max_age are stale

Human-readable prices (str, Decimal, int in whole currency) are converted to
base units on the way in.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Set, Optional, List, Tuple, Protocol, Union, runtime_checkable
from bisect import bisect_right

from .core import StalePrice
from .fixed_point import to_base_currency


PriceInput = Union[int, str, Decimal]


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    Attributes:
        price: Price of one whole token in base units (8 decimals)
        as_of: When the price was observed (None for static prices)
        stale: True when the price must not be trusted
    """
    price: int
    as_of: Optional[datetime] = None
    stale: bool = False


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for pricing sources.

    get_quote() raises StalePrice when no price is available at all; a quote
    that exists but is too old comes back with stale=True.
    """
    base_currency: str

    def get_quote(self, symbol: str, timestamp: datetime) -> PriceQuote:
        """Get the quote for one asset at a specific timestamp."""
        ...


class StaticPricingSource:
    """
    Pricing source with static prices (time-independent).

    Prices remain constant regardless of timestamp until updated.
    set_stale() flips the staleness sentinel for some or all symbols.
    """

    def __init__(self, prices: Dict[str, PriceInput], base_currency: str = "USD"):
        """
        Args:
            prices: Mapping of asset symbol to price in whole base currency
            base_currency: The currency in which prices are quoted
        """
        self.base_currency = base_currency
        self.prices: Dict[str, int] = {
            symbol: to_base_currency(price) for symbol, price in prices.items()
        }
        self.stale_symbols: Set[str] = set()

    def get_price(self, symbol: str, timestamp: datetime) -> Optional[int]:
        """Get static price in base units (timestamp is ignored)."""
        return self.prices.get(symbol)

    def get_quote(self, symbol: str, timestamp: datetime) -> PriceQuote:
        price = self.get_price(symbol, timestamp)
        if price is None:
            raise StalePrice(f"No price available for {symbol}")
        return PriceQuote(price=price, as_of=None, stale=symbol in self.stale_symbols)

    def update_price(self, symbol: str, price: PriceInput):
        """Update the price of an asset."""
        self.prices[symbol] = to_base_currency(price)

    def update_prices(self, prices: Dict[str, PriceInput]):
        """Update multiple prices at once."""
        for symbol, price in prices.items():
            self.update_price(symbol, price)

    def set_stale(self, stale: bool = True, symbols: Optional[Set[str]] = None):
        """
        Mark prices as stale (or fresh again).

        Args:
            stale: New sentinel value
            symbols: Affected symbols; all known symbols when None
        """
        targets = set(self.prices) if symbols is None else set(symbols)
        if stale:
            self.stale_symbols |= targets
        else:
            self.stale_symbols -= targets

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices, base={self.base_currency})"


class TimeSeriesPricingSource:
    """
    Pricing source with time-varying prices.

    Uses the most recent price at or before the requested timestamp. When
    max_age is set, a quote observed more than max_age before the requested
    time is flagged stale.
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, PriceInput]]]] = None,
        base_currency: str = "USD",
        max_age: Optional[timedelta] = None,
    ):
        """
        Args:
            price_paths: Optional mapping of symbol to (timestamp, price) observations
            base_currency: Base currency for prices
            max_age: Oldest acceptable observation; None disables the check

        Example:
            pricer = TimeSeriesPricingSource({
                'WETH': [(t0, "2000"), (t1, "1950")],
                'USDC': [(t0, "1")],
            }, max_age=timedelta(hours=1))
        """
        self.base_currency = base_currency
        self.max_age = max_age
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for symbol, path in price_paths.items():
                if not path:
                    continue
                self.price_history[symbol] = sorted(
                    ((ts, to_base_currency(price)) for ts, price in path),
                    key=lambda x: x[0],
                )

    def add_price(self, symbol: str, timestamp: datetime, price: PriceInput):
        """Add a price observation for an asset at a specific time."""
        history = self.price_history.setdefault(symbol, [])
        history.append((timestamp, to_base_currency(price)))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, PriceInput], timestamp: datetime):
        """Add multiple price observations at the same timestamp."""
        for symbol, price in prices.items():
            self.add_price(symbol, timestamp, price)

    def _lookup(self, symbol: str, timestamp: datetime) -> Optional[Tuple[datetime, int]]:
        history = self.price_history.get(symbol)
        if not history:
            return None
        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return history[idx - 1]

    def get_price(self, symbol: str, timestamp: datetime) -> Optional[int]:
        """Get the price at or before the timestamp, in base units."""
        observation = self._lookup(symbol, timestamp)
        return None if observation is None else observation[1]

    def get_quote(self, symbol: str, timestamp: datetime) -> PriceQuote:
        observation = self._lookup(symbol, timestamp)
        if observation is None:
            raise StalePrice(f"No price available for {symbol} at {timestamp}")
        as_of, price = observation
        stale = self.max_age is not None and timestamp - as_of > self.max_age
        return PriceQuote(price=price, as_of=as_of, stale=stale)

    def get_all_timestamps(self, symbol: Optional[str] = None) -> List[datetime]:
        """Sorted observation timestamps for one symbol, or the union over all."""
        if symbol:
            return [ts for ts, _ in self.price_history.get(symbol, [])]
        all_times: Set[datetime] = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (f"TimeSeriesPricingSource({len(self.price_history)} assets, "
                f"{total_observations} observations, base={self.base_currency})")
