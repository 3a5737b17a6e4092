"""
test_isolation_emode.py - Unit tests for isolation mode and e-mode

Tests:
- Isolated collateral: borrowable assets only, debt ceiling, ceiling release on repay
- Isolated assets cannot be mixed with other collateral
- E-mode: higher borrowing power, borrowing outside the category, leaving e-mode
"""

import pytest

from lending_ledger import (
    EModeCategory, CapExceeded, IsolationModeViolation, EModeViolation, InsufficientHealth,
    InsufficientCollateral,
)

from tests.fake_view import make_listing, units


@pytest.fixture
def isolated_market(pool):
    """ISO has a 1,000.00 debt ceiling; USDC (6 decimals) is borrowable in isolation."""
    iso = pool.list_asset(make_listing("ISO", debt_ceiling=1_000_00))
    usdc = pool.list_asset(make_listing("USDC", decimals=6, borrowable_in_isolation=True))
    y = pool.list_asset(make_listing("Y"))
    x = pool.list_asset(make_listing("X"))
    pool.supply("lp", usdc, units(100_000, 6))
    pool.supply("lp", y, units(100_000))
    return pool, iso, usdc, y, x


class TestIsolationMode:

    def test_borrow_books_isolated_debt(self, isolated_market):
        pool, iso, usdc, _, _ = isolated_market
        pool.supply("alice", iso, units(10_000))
        pool.borrow("alice", usdc, units(500, 6))
        assert pool.get_reserve(iso).isolation_mode_total_debt == 500_00

    def test_not_borrowable_in_isolation(self, isolated_market):
        pool, iso, _, y, _ = isolated_market
        pool.supply("alice", iso, units(10_000))
        with pytest.raises(IsolationModeViolation):
            pool.borrow("alice", y, units(1))

    def test_debt_ceiling(self, isolated_market):
        pool, iso, usdc, _, _ = isolated_market
        pool.supply("alice", iso, units(10_000))
        pool.borrow("alice", usdc, units(500, 6))
        with pytest.raises(CapExceeded) as exc_info:
            pool.borrow("alice", usdc, units(600, 6))
        assert exc_info.value.cap_kind == "debt_ceiling"

    def test_ceiling_shared_across_accounts(self, isolated_market):
        pool, iso, usdc, _, _ = isolated_market
        pool.supply("alice", iso, units(10_000))
        pool.supply("bob", iso, units(10_000))
        pool.borrow("alice", usdc, units(700, 6))
        with pytest.raises(CapExceeded):
            pool.borrow("bob", usdc, units(301, 6))
        pool.borrow("bob", usdc, units(300, 6))

    def test_repay_releases_ceiling(self, isolated_market):
        pool, iso, usdc, _, _ = isolated_market
        pool.supply("alice", iso, units(10_000))
        pool.borrow("alice", usdc, units(500, 6))
        pool.repay("alice", usdc)
        assert pool.get_reserve(iso).isolation_mode_total_debt == 0

    def test_isolated_asset_not_auto_enabled_next_to_other_collateral(self, isolated_market):
        pool, iso, _, _, x = isolated_market
        pool.supply("alice", x, units(1_000))
        pool.supply("alice", iso, units(1_000))
        config = pool.get_account("alice").user_configuration
        assert config.is_using_as_collateral(x)
        assert not config.is_using_as_collateral(iso)
        with pytest.raises(IsolationModeViolation):
            pool.set_use_as_collateral("alice", iso, True)

    def test_isolated_account_cannot_add_collateral(self, isolated_market):
        pool, iso, _, _, x = isolated_market
        pool.supply("alice", iso, units(1_000))
        pool.supply("alice", x, units(1_000))
        config = pool.get_account("alice").user_configuration
        assert config.is_using_as_collateral(iso)
        assert not config.is_using_as_collateral(x)
        with pytest.raises(IsolationModeViolation):
            pool.set_use_as_collateral("alice", x, True)

    def test_isolation_ends_when_collateral_disabled(self, isolated_market):
        pool, iso, _, y, x = isolated_market
        pool.supply("alice", iso, units(1_000))
        pool.supply("alice", x, units(1_000))
        pool.set_use_as_collateral("alice", iso, False)
        pool.set_use_as_collateral("alice", x, True)
        pool.borrow("alice", y, units(100))
        assert pool.debt_balance("alice", y) == units(100)


class TestEMode:

    CATEGORY = EModeCategory(1, "correlated", ltv=9000, liquidation_threshold=9500, liquidation_bonus=10100)

    @pytest.fixture
    def emode_market(self, market):
        pool, x, y = market
        weth = pool.list_asset(make_listing("WETH"))
        pool.supply("lp", weth, units(100))
        pool.set_emode_category(self.CATEGORY)
        pool.set_asset_emode_category(x, 1)
        pool.set_asset_emode_category(y, 1)
        pool.supply("alice", x, units(1_000))
        return pool, x, y, weth

    def test_higher_borrowing_power(self, emode_market):
        pool, x, y, _ = emode_market
        with pytest.raises(InsufficientCollateral):
            pool.borrow("alice", y, units(840))
        pool.set_user_emode("alice", 1)
        pool.borrow("alice", y, units(899))
        data = pool.account_data("alice")
        assert data.ltv == 9000
        assert data.current_liquidation_threshold == 9500

    def test_borrow_outside_category(self, emode_market):
        pool, _, _, weth = emode_market
        pool.set_user_emode("alice", 1)
        with pytest.raises(EModeViolation):
            pool.borrow("alice", weth, units(1, 15))

    def test_enter_with_outside_debt(self, emode_market):
        pool, _, _, weth = emode_market
        pool.borrow("alice", weth, units(1, 17))
        with pytest.raises(EModeViolation):
            pool.set_user_emode("alice", 1)

    def test_unknown_category(self, emode_market):
        pool, _, _, _ = emode_market
        with pytest.raises(EModeViolation):
            pool.set_user_emode("alice", 9)

    def test_leaving_checks_health(self, emode_market):
        pool, _, y, _ = emode_market
        pool.set_user_emode("alice", 1)
        pool.borrow("alice", y, units(899))
        with pytest.raises(InsufficientHealth):
            pool.set_user_emode("alice", 0)
        pool.repay("alice", y, units(200))
        pool.set_user_emode("alice", 0)
        assert pool.get_account("alice").emode_category == 0
