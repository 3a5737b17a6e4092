"""
Solvency Conformance Tests

INVARIANT: Supplier claims are backed by cash plus outstanding debt.

    ∀ reserve r, after any sequence of actions:
        supply_balance(r.total_scaled_supply + r.accrued_to_treasury, r.liquidity_index)
            <= r.available_liquidity + total_variable_debt(r) + ε

where ε is a few smallest units per action. Every rounding step favours
the pool, and suppliers earn at most what borrowers pay.

INVARIANT: A successful borrow or withdraw leaves the account healthy.

    borrow(a) succeeds ⟹ health_factor(a) >= 1
    withdraw(a) succeeds from a healthy account ⟹ health_factor(a) >= 1
"""

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from lending_ledger import (
    HEALTH_FACTOR_UNIT, LedgerError, supply_balance, total_variable_debt,
)

from tests.fake_view import build_market, later, units


# Rounding slack per action, in smallest units
EPSILON = 4


def assert_solvent(pool, actions: int):
    for asset_id in pool.list_reserves():
        reserve = pool.get_reserve(asset_id)
        claims = supply_balance(
            reserve.total_scaled_supply + reserve.accrued_to_treasury, reserve.liquidity_index
        )
        backing = reserve.available_liquidity + total_variable_debt(reserve)
        assert claims <= backing + EPSILON * (actions + 1), reserve.symbol


operations = st.lists(
    st.tuples(
        st.sampled_from([
            "supply", "withdraw", "borrow", "repay", "advance",
            "price", "liquidate", "mint",
        ]),
        st.integers(min_value=1, max_value=9_000),
        st.sampled_from(["alice", "bob"]),
    ),
    min_size=1, max_size=25,
)


class TestSolvencyProperties:
    """Property-based solvency tests."""

    @given(operations, st.sampled_from([0, 1000, 2500]))
    @settings(max_examples=60, deadline=None)
    def test_claims_backed(self, steps, reserve_factor):
        """
        PROPERTY: Claims never exceed cash plus debt, whatever the action mix.
        """
        pool, pricing, x, y = build_market(reserve_factor=reserve_factor, liquidity=20_000)
        pool.supply("alice", x, units(10_000))
        pool.supply("bob", x, units(5_000))

        day = 0
        for count, (op, amount, account) in enumerate(steps, start=1):
            try:
                if op == "supply":
                    pool.supply(account, x, units(amount))
                elif op == "withdraw":
                    pool.withdraw(account, x, units(amount))
                elif op == "borrow":
                    pool.borrow(account, y, units(amount))
                elif op == "repay":
                    pool.repay(account, y, units(amount))
                elif op == "advance":
                    day += amount % 200
                    pool.advance_time(later(days=day))
                elif op == "price":
                    pricing.update_price("X", ["0.6", "0.8", "0.9", "1", "1.2"][amount % 5])
                elif op == "liquidate":
                    pool.liquidate(x, y, account, liquidator="liq")
                else:
                    pool.mint_to_treasury()
            except LedgerError:
                pass
            assert_solvent(pool, count)

    @given(
        st.integers(min_value=1, max_value=12_000),
        st.sampled_from(["0.5", "0.8", "1", "1.5"]),
        st.integers(min_value=0, max_value=365),
    )
    @settings(max_examples=60, deadline=None)
    def test_borrow_leaves_account_healthy(self, amount, price, days):
        """
        PROPERTY: Whenever a borrow is accepted the health factor is >= 1.
        """
        pool, pricing, x, y = build_market()
        pool.supply("alice", x, units(10_000))
        pool.borrow("alice", y, units(2_000))
        pool.advance_time(later(days=days))
        pricing.update_price("X", price)

        try:
            pool.borrow("alice", y, units(amount))
        except LedgerError:
            return
        assert pool.account_data("alice").health_factor >= HEALTH_FACTOR_UNIT

    @given(
        st.sampled_from(["X", "Y"]),
        st.one_of(st.none(), st.integers(min_value=1, max_value=12_000)),
        st.sampled_from(["0.5", "0.8", "1", "1.5"]),
        st.sampled_from(["0.9", "1", "1.2"]),
        st.integers(min_value=0, max_value=365),
    )
    @settings(max_examples=80, deadline=None)
    def test_withdraw_leaves_account_healthy(self, symbol, amount, x_price, y_price, days):
        """
        PROPERTY: A withdraw from a healthy account is either rejected or
        leaves the health factor >= 1.
        """
        pool, pricing, x, y = build_market()
        pool.supply("alice", x, units(10_000))
        pool.supply("alice", y, units(2_000))
        pool.borrow("alice", y, units(4_000))
        pool.advance_time(later(days=days))
        pricing.update_price("X", x_price)
        pricing.update_price("Y", y_price)
        assume(pool.account_data("alice").health_factor >= HEALTH_FACTOR_UNIT)

        asset_id = x if symbol == "X" else y
        try:
            pool.withdraw("alice", asset_id, None if amount is None else units(amount))
        except LedgerError:
            return
        assert pool.account_data("alice").health_factor >= HEALTH_FACTOR_UNIT


class TestSolvencyExamples:
    """Explicit solvency examples."""

    def test_interest_year_backed(self, borrowed_market):
        pool, _, y = borrowed_market
        pool.advance_time(later(days=365))
        pool.accrue()
        assert_solvent(pool, 1)
        reserve = pool.get_reserve(y)
        assert total_variable_debt(reserve) > units(5_000)

    def test_full_exit_leaves_reserve_backed(self, borrowed_market):
        pool, x, y = borrowed_market
        pool.advance_time(later(days=200))
        pool.repay("alice", y)
        pool.withdraw("alice", x)
        reserve = pool.get_reserve(y)
        assert total_variable_debt(reserve) == 0
        # with no debt left, cash alone covers every supplier
        claims = supply_balance(reserve.total_scaled_supply, reserve.liquidity_index)
        assert claims <= reserve.available_liquidity + EPSILON
        assert pool.supply_balance("alice", x) == 0
