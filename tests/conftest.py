"""
conftest.py - Shared pytest fixtures for lending ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- A static pricing source (prices in whole USD)
- An empty pool at 2025-01-01
- A market with a liquidity provider already supplying the borrow asset
- A market with an open borrow
"""

import pytest
from typing import Tuple

from lending_ledger import LendingPool, StaticPricingSource

from tests.fake_view import START, make_listing, units


@pytest.fixture
def pricing():
    return StaticPricingSource({"X": "1", "Y": "1", "WETH": "2000", "USDC": "1", "ISO": "1"})


@pytest.fixture
def pool(pricing):
    """Empty pool at 2025-01-01."""
    return LendingPool("test", pricing, START)


@pytest.fixture
def market(pool) -> Tuple[LendingPool, int, int]:
    """
    Pool with X (collateral, 80% LTV, 85% threshold) and Y (borrowable),
    both 18 decimals at price 1.0. Account "lp" supplies 1,000,000 Y.
    """
    x = pool.list_asset(make_listing("X"))
    y = pool.list_asset(make_listing("Y"))
    pool.supply("lp", y, units(1_000_000))
    return pool, x, y


@pytest.fixture
def borrowed_market(market) -> Tuple[LendingPool, int, int]:
    """Market where alice supplies 10,000 X and borrows 5,000 Y."""
    pool, x, y = market
    pool.supply("alice", x, units(10_000))
    pool.borrow("alice", y, units(5_000))
    return pool, x, y
