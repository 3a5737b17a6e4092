"""
test_core_types.py - Unit tests for core records and the staged view

Tests:
- Records are frozen
- Error codes and hierarchy
- RecordChange.changed_fields
- StagedView overlay reads, listing visibility and build()
"""

import pytest
from dataclasses import replace

from lending_ledger import (
    AccountPosition, ReserveData, RecordChange, StagedView, CapExceeded,
    LedgerError, InsufficientHealth, InsufficientCollateral, StalePrice,
)

from tests.fake_view import FakeView, DEFAULT_PARAMS, make_listing


def reserve(asset_id=0, symbol="X", **kwargs) -> ReserveData:
    return ReserveData(asset_id, symbol, make_listing(symbol).to_configuration(), DEFAULT_PARAMS, **kwargs)


class TestRecords:

    def test_frozen(self):
        position = AccountPosition("alice", 0)
        with pytest.raises(AttributeError):
            position.scaled_supply = 5

    def test_position_empty(self):
        assert AccountPosition("alice", 0).is_empty()
        assert not AccountPosition("alice", 0, scaled_variable_debt=1).is_empty()


class TestErrors:

    def test_codes(self):
        assert StalePrice.code == "STALE_PRICE"
        assert InsufficientCollateral.code == "INSUFFICIENT_COLLATERAL"

    def test_hierarchy(self):
        assert issubclass(InsufficientCollateral, InsufficientHealth)
        assert issubclass(StalePrice, LedgerError)

    def test_cap_kind(self):
        error = CapExceeded("too much", cap_kind="borrow")
        assert error.cap_kind == "borrow"
        assert str(error) == "too much"


class TestRecordChange:

    def test_changed_fields(self):
        old = AccountPosition("alice", 0, scaled_supply=1)
        new = replace(old, scaled_supply=5)
        assert RecordChange("position", ("alice", 0), old, new).changed_fields() == {
            "scaled_supply": (1, 5)
        }

    def test_created_record(self):
        new = AccountPosition("alice", 0)
        fields = RecordChange("position", ("alice", 0), None, new).changed_fields()
        assert fields["account"] == (None, "alice")


class TestStagedView:

    def test_reads_through_to_base(self):
        base = FakeView(reserves={0: reserve()})
        staged = StagedView(base)
        assert staged.get_reserve(0) is base.get_reserve(0)
        assert staged.list_reserves() == [0]

    def test_overlay_wins(self):
        base = FakeView(reserves={0: reserve()})
        staged = StagedView(base)
        staged.put_reserve(reserve(available_liquidity=10))
        assert staged.get_reserve(0).available_liquidity == 10
        assert base.get_reserve(0).available_liquidity == 0

    def test_dropped_hidden(self):
        base = FakeView(reserves={0: reserve()})
        staged = StagedView(base)
        staged.put_reserve(reserve(dropped=True))
        assert staged.list_reserves() == []
        assert staged.find_asset_id("X") is None

    def test_allocate_asset_id(self):
        staged = StagedView(FakeView(reserves={0: reserve()}))
        assert staged.allocate_asset_id() == 1
        assert staged.allocate_asset_id() == 2
        assert staged.next_asset_id == 3

    def test_build_skips_unchanged_records(self):
        base = FakeView(reserves={0: reserve()})
        staged = StagedView(base)
        staged.put_reserve(reserve())
        staged.put_position(AccountPosition("alice", 0, scaled_supply=7))
        pending = staged.build("supply", "alice", {"amount": 7})
        assert [c.kind for c in pending.changes] == ["position"]
        assert pending.changes[0].old == AccountPosition("alice", 0)
        assert pending.result == {"amount": 7}
        assert pending.timestamp == base.current_time

    def test_build_created_reserve(self):
        staged = StagedView(FakeView())
        staged.put_reserve(reserve(), created=True)
        pending = staged.build("list_asset")
        assert pending.changes[0].old is None
        assert pending.account is None
