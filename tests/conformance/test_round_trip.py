"""
Round-Trip Conformance Tests

INVARIANT: A deposit can always be taken back out in full, and a full
withdrawal never pays out more than was deposited plus interest.

    ∀ deposit d at time t:
        t' == t and index == RAY ⟹ withdraw(None) == d
        t' == t                ⟹ withdraw(d) == d and the position is empty
        t' > t with borrowers  ⟹ withdraw(None) >= d

Borrowing and repaying everything at once costs at least the principal.

    ∀ borrow b, repay(None) at the same time ⟹ b <= repaid <= b + 2
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lending_ledger import RAY

from tests.fake_view import build_market, later, units


amounts = st.integers(min_value=1, max_value=10**24)
large_amounts = st.integers(min_value=10**6, max_value=10**24)


class TestRoundTripProperties:
    """Property-based round-trip tests."""

    @given(amounts)
    @settings(max_examples=100, deadline=None)
    def test_round_trip_at_unit_index(self, amount):
        """
        PROPERTY: At index RAY a supply/withdraw round trip is exact.
        """
        pool, _, x, _ = build_market()
        assert pool.get_reserve(x).liquidity_index == RAY

        pool.supply("alice", x, amount)
        assert pool.supply_balance("alice", x) == amount
        assert pool.withdraw("alice", x) == amount
        assert pool.supply_balance("alice", x) == 0

    @given(large_amounts, st.integers(min_value=1, max_value=730))
    @settings(max_examples=60, deadline=None)
    def test_round_trip_after_interest(self, amount, days):
        """
        PROPERTY: With an index above RAY the supplied amount comes back exactly.
        """
        pool, _, x, y = build_market()
        pool.supply("alice", x, units(10_000))
        pool.borrow("alice", y, units(6_000))
        pool.advance_time(later(days=days))
        pool.accrue()
        assert pool.get_reserve(y).liquidity_index > RAY

        pool.supply("bob", y, amount)
        assert pool.withdraw("bob", y, amount) == amount
        assert pool.get_position("bob", y).scaled_supply == 0

    @given(large_amounts, st.integers(min_value=1, max_value=730))
    @settings(max_examples=60, deadline=None)
    def test_deposit_held_through_time(self, amount, days):
        """
        PROPERTY: A deposit held while borrowers pay interest never loses value.
        """
        pool, _, x, y = build_market()
        pool.supply("alice", x, units(10_000))
        pool.borrow("alice", y, units(6_000))

        pool.supply("bob", y, amount)
        pool.advance_time(later(days=days))
        withdrawn = pool.withdraw("bob", y)
        assert withdrawn >= amount

    @given(st.integers(min_value=1, max_value=8_000), st.integers(min_value=0, max_value=365))
    @settings(max_examples=60, deadline=None)
    def test_borrow_repay_round_trip(self, amount, days):
        """
        PROPERTY: Repaying a fresh borrow in full costs its principal plus at most 2 units.
        """
        pool, _, x, y = build_market()
        pool.supply("alice", x, units(10_000))
        pool.supply("carol", x, units(10_000))
        pool.borrow("carol", y, units(4_000))
        pool.advance_time(later(days=days))

        borrowed = pool.borrow("alice", y, units(amount))
        repaid = pool.repay("alice", y)
        assert borrowed <= repaid <= borrowed + 2
        assert pool.debt_balance("alice", y) == 0


class TestRoundTripExamples:
    """Explicit round-trip examples."""

    def test_idle_reserve_round_trip_exact_over_time(self, market):
        pool, x, _ = market
        pool.supply("alice", x, units("1234.5"))
        pool.advance_time(later(days=365))
        assert pool.withdraw("alice", x) == units("1234.5")

    def test_interest_paid_to_supplier(self, borrowed_market):
        pool, _, y = borrowed_market
        pool.advance_time(later(days=365))
        withdrawn = pool.withdraw("lp", y, units(500_000))
        assert withdrawn == units(500_000)
        assert pool.supply_balance("lp", y) > units(500_000)
