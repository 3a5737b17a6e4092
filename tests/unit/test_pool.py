"""
test_pool.py - Unit tests for the LendingPool store

Tests:
- PoolView conformance
- Logical clock
- execute(): stale-state rejection, future actions, audit log
- clone() independence
- accrue() and mint_to_treasury()
- Balance queries with projected interest
- Logging of commits and rejections
- Concurrent callers are serialized
"""

import logging
import threading
import pytest

from lending_ledger import (
    PoolView, StagedView, RAY, StaleState, InsufficientHealth,
    compute_supply, compute_withdraw,
)

from tests.fake_view import START, make_listing, units, later, pool_state


class TestPoolView:

    def test_pool_and_staged_view_conform(self, pool):
        assert isinstance(pool, PoolView)
        assert isinstance(StagedView(pool), PoolView)

    def test_empty_records(self, pool):
        assert pool.get_position("nobody", 0).is_empty()
        assert pool.get_account("nobody").user_configuration.is_empty()
        assert pool.get_emode_category(1) is None


class TestClock:

    def test_advance(self, pool):
        pool.advance_time(later(days=1))
        assert pool.current_time == later(days=1)

    def test_backwards(self, pool):
        pool.advance_time(later(days=1))
        with pytest.raises(ValueError):
            pool.advance_time(START)


class TestExecute:

    def test_stale_pending_rejected(self, market):
        pool, x, _ = market
        pool.supply("alice", x, units(100))
        first = compute_withdraw(pool, "alice", x, units(10))
        second = compute_withdraw(pool, "alice", x, units(10))
        pool.execute(first)
        before = pool_state(pool)
        with pytest.raises(StaleState):
            pool.execute(second)
        assert pool_state(pool) == before

    def test_future_pending_rejected(self, market):
        pool, x, _ = market
        future = pool.clone()
        future.advance_time(later(days=1))
        pending = compute_supply(future, "alice", x, units(1))
        with pytest.raises(ValueError):
            pool.execute(pending)

    def test_audit_log(self, market):
        pool, x, _ = market
        record = pool.execute(compute_supply(pool, "alice", x, units(1)))
        assert record.action == "supply"
        assert record.account == "alice"
        assert record.pool_name == "test"
        assert record.sequence_number == len(pool.action_log) - 1
        assert record.exec_id == f"exec:test:{record.sequence_number:012d}:1735689600"
        assert "Action: supply" in repr(record)

    def test_sequence_numbers_increase(self, market):
        pool, _, _ = market
        numbers = [r.sequence_number for r in pool.action_log]
        assert numbers == list(range(len(numbers)))


class TestClone:

    def test_clone_is_independent(self, borrowed_market):
        pool, x, y = borrowed_market
        copy = pool.clone()
        copy.repay("alice", y)
        assert pool.debt_balance("alice", y) == units(5_000)
        assert copy.debt_balance("alice", y) == 0
        assert len(copy.action_log) == len(pool.action_log) + 1

    def test_clone_same_state(self, borrowed_market):
        pool, _, _ = borrowed_market
        assert pool_state(pool.clone()) == pool_state(pool)


class TestAccrueAndTreasury:

    def test_accrue_without_time_is_empty(self, borrowed_market):
        pool, _, _ = borrowed_market
        assert pool.accrue().changes == ()

    def test_accrue_one_reserve(self, borrowed_market):
        pool, x, y = borrowed_market
        pool.advance_time(later(days=30))
        record = pool.accrue(y)
        assert [c.key for c in record.changes] == [y]
        assert pool.get_reserve(y).variable_borrow_index > RAY
        assert pool.get_reserve(x).last_update_timestamp == 1735689600

    def test_interest_visible_before_accrual(self, borrowed_market):
        pool, _, y = borrowed_market
        pool.advance_time(later(days=365))
        assert pool.debt_balance("alice", y) > units(5_000)
        assert pool.supply_balance("lp", y) > units(1_000_000)
        balances = pool.get_user_balances("alice")
        assert list(balances) == sorted(balances)

    def test_mint_to_treasury(self, borrowed_market):
        pool, _, y = borrowed_market
        pool.set_reserve_factor(y, 1000)
        pool.advance_time(later(days=365))
        pool.accrue()
        assert pool.get_reserve(y).accrued_to_treasury > 0

        minted = pool.mint_to_treasury()
        assert list(minted) == [y]
        assert minted[y] > 0
        assert pool.get_reserve(y).accrued_to_treasury == 0
        assert pool.supply_balance("treasury", y) == minted[y]

    def test_mint_nothing(self, market):
        pool, _, _ = market
        assert pool.mint_to_treasury() == {}


class TestLogging:

    def test_admin_action_logged_at_info(self, pool, caplog):
        with caplog.at_level(logging.INFO, logger="lending_ledger.pool"):
            pool.list_asset(make_listing("X"))
        assert "list_asset applied" in caplog.text

    def test_user_action_logged_at_debug(self, market, caplog):
        pool, x, _ = market
        with caplog.at_level(logging.INFO, logger="lending_ledger.pool"):
            pool.supply("alice", x, units(1))
        assert "supply applied" not in caplog.text
        with caplog.at_level(logging.DEBUG, logger="lending_ledger.pool"):
            pool.supply("alice", x, units(1))
        assert "supply applied" in caplog.text

    def test_rejection_logged_with_code(self, market, caplog):
        pool, _, y = market
        with caplog.at_level(logging.INFO, logger="lending_ledger.pool"):
            with pytest.raises(InsufficientHealth):
                pool.borrow("alice", y, units(1))
        assert "INSUFFICIENT_HEALTH" in caplog.text


class TestConcurrency:

    def test_concurrent_supplies_all_apply(self, market):
        pool, x, _ = market

        def worker(name):
            for _ in range(20):
                pool.supply(name, x, units(1))

        threads = [threading.Thread(target=worker, args=(f"acct{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reserve = pool.get_reserve(x)
        assert reserve.total_scaled_supply == units(80)
        assert reserve.available_liquidity == units(80)
