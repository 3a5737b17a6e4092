"""
test_lending_scenarios.py - End-to-end lending scenarios

Tests complete account lifecycles against a LendingPool:
- Borrowing up to, and past, the liquidation threshold
- Liquidating an account after a price drop
- Interest, treasury minting and full exits over a year
- Time-series prices going stale and recovering
- E-mode and isolation mode side by side
"""

import pytest
from datetime import timedelta

from lending_ledger import (
    HEALTH_FACTOR_UNIT, WAD, EModeCategory, InsufficientHealth, LendingPool,
    StalePrice, TimeSeriesPricingSource, IsolationModeViolation, to_base_currency,
)

from tests.fake_view import START, build_market, later, make_listing, units


class TestBorrowLimits:
    """Borrowing against X at 80% LTV and 85% liquidation threshold."""

    def test_borrow_to_threshold(self, market):
        pool, x, y = market
        pool.supply("alice", x, units(1_000))

        pool.borrow("alice", y, units(799))
        data = pool.account_data("alice")
        # 850 / 799
        assert HEALTH_FACTOR_UNIT < data.health_factor < 107 * WAD // 100

        with pytest.raises(InsufficientHealth):
            pool.borrow("alice", y, units(52))

        assert pool.debt_balance("alice", y) == units(799)

    def test_remaining_borrowing_power(self, market):
        pool, x, y = market
        pool.supply("alice", x, units(1_000))
        pool.borrow("alice", y, units(500))

        data = pool.account_data("alice")
        assert data.total_collateral_base == to_base_currency(1_000)
        assert data.total_debt_base == to_base_currency(500)
        assert data.available_borrows_base == to_base_currency(300)

        pool.borrow("alice", y, units(300))
        assert pool.account_data("alice").available_borrows_base == 0


class TestLiquidationScenario:
    """An account slips to health factor 0.95 and is partly liquidated."""

    def test_half_debt_repaid_with_bonus(self, pricing, market):
        pool, x, y = market
        pool.supply("alice", x, units(10_000))
        pool.borrow("alice", y, units(8_000))

        pricing.update_price("X", "0.894")
        before = pool.account_data("alice")
        assert 949 * WAD // 1_000 < before.health_factor < 95 * WAD // 100

        result = pool.liquidate(x, y, "alice", liquidator="liq")

        assert result.debt_repaid == units(4_000)
        # 4,000 / 0.894 * 1.05
        assert units("4697.98") < result.collateral_seized < units("4697.99")
        assert result.collateral_seized <= units(10_000)
        assert result.health_factor_before == before.health_factor
        assert result.health_factor_after == pool.account_data("alice").health_factor
        assert result.health_factor_after > HEALTH_FACTOR_UNIT

        assert pool.debt_balance("alice", y) == units(4_000)
        assert pool.supply_balance("alice", x) == units(10_000) - result.collateral_seized

    def test_deep_underwater_account_loses_all_collateral(self, pricing, market):
        pool, x, y = market
        pool.supply("alice", x, units(10_000))
        pool.borrow("alice", y, units(8_000))

        # collateral worth 5,000 against 8,000 of debt
        pricing.update_price("X", "0.5")
        first = pool.liquidate(x, y, "alice", liquidator="liq")
        assert first.health_factor_after < HEALTH_FACTOR_UNIT

        second = pool.liquidate(x, y, "alice", liquidator="liq")
        assert first.collateral_seized + second.collateral_seized <= units(10_000)
        assert pool.debt_balance("alice", y) > 0


class TestYearLifecycle:
    """Several accounts over a year with a 10% reserve factor."""

    def test_interest_treasury_and_exit(self):
        pool, _, x, y = build_market(reserve_factor=1_000)
        pool.supply("alice", x, units(10_000))
        pool.supply("bob", x, units(20_000))
        pool.borrow("alice", y, units(6_000))
        pool.borrow("bob", y, units(12_000))

        pool.advance_time(later(days=182))
        pool.repay("alice", y, units(1_000))
        pool.advance_time(later(days=365))

        alice_debt = pool.debt_balance("alice", y)
        bob_debt = pool.debt_balance("bob", y)
        assert alice_debt > units(5_000)
        assert bob_debt > units(12_000)

        minted = pool.mint_to_treasury()
        assert minted[y] > 0
        treasury = pool.config.treasury_account
        assert pool.supply_balance(treasury, y) == minted[y]
        assert pool.get_reserve(y).accrued_to_treasury == 0

        assert pool.repay("alice", y) == alice_debt
        assert pool.repay("bob", y) == bob_debt
        assert pool.withdraw("alice", x) == units(10_000)
        assert pool.withdraw("bob", x) == units(20_000)

        assert pool.account_data("alice").total_debt_base == 0
        assert pool.supply_balance("lp", y) > units(1_000_000)
        assert pool.withdraw("lp", y, units(1_000_000)) == units(1_000_000)

        actions = [record.action for record in pool.action_log]
        assert actions.count("repay") == 3
        assert "mint_to_treasury" in actions


class TestStalePrices:
    """Time-series prices that stop updating."""

    @pytest.fixture
    def feed_pool(self):
        pricing = TimeSeriesPricingSource(
            {"WETH": [(START, "2000")], "USDC": [(START, "1")]},
            max_age=timedelta(days=1),
        )
        pool = LendingPool("feed", pricing, START)
        weth = pool.list_asset(make_listing("WETH", ltv=8000, liquidation_threshold=8250))
        usdc = pool.list_asset(make_listing("USDC", decimals=6))
        pool.supply("lp", usdc, units(1_000_000, 6))
        pool.supply("alice", weth, units(10))
        pool.borrow("alice", usdc, units(10_000, 6))
        return pool, pricing, weth, usdc

    def test_stale_feed_blocks_borrow_not_repay(self, feed_pool):
        pool, pricing, _, usdc = feed_pool
        pool.advance_time(later(days=2))

        with pytest.raises(StalePrice):
            pool.borrow("alice", usdc, units(100, 6))
        assert pool.repay("alice", usdc, units(1_000, 6)) == units(1_000, 6)

        pricing.add_prices({"WETH": "2000", "USDC": "1"}, later(days=2))
        assert pool.borrow("alice", usdc, units(100, 6)) == units(100, 6)

    def test_price_crash_liquidation(self, feed_pool):
        pool, pricing, weth, usdc = feed_pool
        pricing.add_prices({"WETH": "1200", "USDC": "1"}, later(days=3))
        pool.advance_time(later(days=3))

        assert pool.account_data("alice").health_factor < HEALTH_FACTOR_UNIT
        debt = pool.debt_balance("alice", usdc)

        result = pool.liquidate(weth, usdc, "alice", liquidator="bob")
        assert result.debt_repaid == debt // 2 or result.debt_repaid == (debt + 1) // 2
        assert 0 < result.collateral_seized < units(10)


class TestSpecialModes:
    """E-mode and isolation mode in one pool."""

    def test_emode_raises_limits_for_category_assets(self, pool):
        x = pool.list_asset(make_listing("X"))
        y = pool.list_asset(make_listing("Y"))
        pool.set_emode_category(EModeCategory(1, "pegged", 9_000, 9_500, 10_100))
        pool.set_asset_emode_category(x, 1)
        pool.set_asset_emode_category(y, 1)
        pool.supply("lp", y, units(1_000_000))
        pool.supply("alice", x, units(1_000))

        with pytest.raises(InsufficientHealth):
            pool.borrow("alice", y, units(890))

        pool.set_user_emode("alice", 1)
        pool.borrow("alice", y, units(890))
        assert pool.account_data("alice").ltv == 9_000

    def test_isolated_collateral_limits_borrowable_assets(self, pool):
        iso = pool.list_asset(make_listing("ISO", debt_ceiling=1_000_00))
        usdc = pool.list_asset(make_listing("USDC", decimals=6, borrowable_in_isolation=True))
        y = pool.list_asset(make_listing("Y"))
        pool.supply("lp", usdc, units(1_000_000, 6))
        pool.supply("lp", y, units(1_000_000))
        pool.supply("alice", iso, units(10_000))

        with pytest.raises(IsolationModeViolation):
            pool.borrow("alice", y, units(10))
        pool.borrow("alice", usdc, units(500, 6))
        assert pool.get_reserve(iso).isolation_mode_total_debt == 500_00
