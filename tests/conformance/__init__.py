"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. index_monotonicity.py - Liquidity and borrow indices never decrease
2. accrual_idempotency.py - Accruing twice at one timestamp is a no-op
3. rate_monotonicity.py - Rates are monotone in utilization
4. solvency.py - Supplier claims are covered by cash plus debt; borrows leave accounts healthy
5. atomicity.py - Rejected actions change nothing
6. liquidation_bounds.py - Liquidations respect close factor and balances
7. round_trip.py - Supply then full withdraw returns the deposit

These tests use hypothesis for property-based testing.
"""
