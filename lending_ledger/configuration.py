"""
configuration.py - Packed bitsets for reserve and account configuration

ReserveConfiguration packs an asset's risk parameters and flags into one
integer. UserConfiguration packs, for every reserve, whether an account
borrows it and whether it uses it as collateral (2 bits per asset).

Both are immutable; every setter returns a new instance.

Reserve layout (bit ranges inclusive):
    0-15     LTV (bps)
    16-31    liquidation threshold (bps)
    32-47    liquidation bonus (bps, 10_000 + premium)
    48-55    decimals
    56       active
    57       frozen
    58       borrowing enabled
    60       paused
    61       borrowable in isolation
    64-79    reserve factor (bps)
    80-115   borrow cap (whole tokens, 0 = none)
    116-151  supply cap (whole tokens, 0 = none)
    152-167  liquidation protocol fee (bps)
    168-175  e-mode category
    212-251  debt ceiling (base currency, 2 decimals, 0 = not isolated)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple


MAX_RESERVES_COUNT = 128

# (start bit, width)
LTV_BITS = (0, 16)
LIQUIDATION_THRESHOLD_BITS = (16, 16)
LIQUIDATION_BONUS_BITS = (32, 16)
DECIMALS_BITS = (48, 8)
ACTIVE_BIT = (56, 1)
FROZEN_BIT = (57, 1)
BORROWING_ENABLED_BIT = (58, 1)
PAUSED_BIT = (60, 1)
BORROWABLE_IN_ISOLATION_BIT = (61, 1)
RESERVE_FACTOR_BITS = (64, 16)
BORROW_CAP_BITS = (80, 36)
SUPPLY_CAP_BITS = (116, 36)
LIQUIDATION_PROTOCOL_FEE_BITS = (152, 16)
EMODE_CATEGORY_BITS = (168, 8)
DEBT_CEILING_BITS = (212, 40)

MAX_VALID_LTV = (1 << 16) - 1
MAX_VALID_DECIMALS = (1 << 8) - 1
MAX_VALID_BORROW_CAP = (1 << 36) - 1
MAX_VALID_SUPPLY_CAP = (1 << 36) - 1
MAX_VALID_EMODE_CATEGORY = (1 << 8) - 1
MAX_VALID_DEBT_CEILING = (1 << 40) - 1


@dataclass(frozen=True, slots=True)
class ReserveConfiguration:
    """
    Risk parameters and flags of one reserve, packed into an integer.

    Example:
        config = (ReserveConfiguration()
                  .with_ltv(8000)
                  .with_liquidation_threshold(8500)
                  .with_liquidation_bonus(10500)
                  .with_decimals(18)
                  .with_active(True))
        config.collateral_enabled  # True
    """
    data: int = 0

    def _get(self, bits: Tuple[int, int]) -> int:
        start, width = bits
        return (self.data >> start) & ((1 << width) - 1)

    def _set(self, bits: Tuple[int, int], value: int, name: str) -> ReserveConfiguration:
        start, width = bits
        value = int(value)
        if value < 0 or value >= (1 << width):
            raise ValueError(f"{name} out of range for {width}-bit field: {value}")
        mask = ((1 << width) - 1) << start
        return ReserveConfiguration((self.data & ~mask) | (value << start))

    # Numeric fields ---------------------------------------------------------

    @property
    def ltv(self) -> int:
        return self._get(LTV_BITS)

    def with_ltv(self, value: int) -> ReserveConfiguration:
        return self._set(LTV_BITS, value, "ltv")

    @property
    def liquidation_threshold(self) -> int:
        return self._get(LIQUIDATION_THRESHOLD_BITS)

    def with_liquidation_threshold(self, value: int) -> ReserveConfiguration:
        return self._set(LIQUIDATION_THRESHOLD_BITS, value, "liquidation_threshold")

    @property
    def liquidation_bonus(self) -> int:
        return self._get(LIQUIDATION_BONUS_BITS)

    def with_liquidation_bonus(self, value: int) -> ReserveConfiguration:
        return self._set(LIQUIDATION_BONUS_BITS, value, "liquidation_bonus")

    @property
    def decimals(self) -> int:
        return self._get(DECIMALS_BITS)

    def with_decimals(self, value: int) -> ReserveConfiguration:
        return self._set(DECIMALS_BITS, value, "decimals")

    @property
    def reserve_factor(self) -> int:
        return self._get(RESERVE_FACTOR_BITS)

    def with_reserve_factor(self, value: int) -> ReserveConfiguration:
        return self._set(RESERVE_FACTOR_BITS, value, "reserve_factor")

    @property
    def borrow_cap(self) -> int:
        return self._get(BORROW_CAP_BITS)

    def with_borrow_cap(self, value: int) -> ReserveConfiguration:
        return self._set(BORROW_CAP_BITS, value, "borrow_cap")

    @property
    def supply_cap(self) -> int:
        return self._get(SUPPLY_CAP_BITS)

    def with_supply_cap(self, value: int) -> ReserveConfiguration:
        return self._set(SUPPLY_CAP_BITS, value, "supply_cap")

    @property
    def liquidation_protocol_fee(self) -> int:
        return self._get(LIQUIDATION_PROTOCOL_FEE_BITS)

    def with_liquidation_protocol_fee(self, value: int) -> ReserveConfiguration:
        return self._set(LIQUIDATION_PROTOCOL_FEE_BITS, value, "liquidation_protocol_fee")

    @property
    def emode_category(self) -> int:
        return self._get(EMODE_CATEGORY_BITS)

    def with_emode_category(self, value: int) -> ReserveConfiguration:
        return self._set(EMODE_CATEGORY_BITS, value, "emode_category")

    @property
    def debt_ceiling(self) -> int:
        return self._get(DEBT_CEILING_BITS)

    def with_debt_ceiling(self, value: int) -> ReserveConfiguration:
        return self._set(DEBT_CEILING_BITS, value, "debt_ceiling")

    # Flags ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return bool(self._get(ACTIVE_BIT))

    def with_active(self, flag: bool) -> ReserveConfiguration:
        return self._set(ACTIVE_BIT, int(bool(flag)), "active")

    @property
    def frozen(self) -> bool:
        return bool(self._get(FROZEN_BIT))

    def with_frozen(self, flag: bool) -> ReserveConfiguration:
        return self._set(FROZEN_BIT, int(bool(flag)), "frozen")

    @property
    def borrowing_enabled(self) -> bool:
        return bool(self._get(BORROWING_ENABLED_BIT))

    def with_borrowing_enabled(self, flag: bool) -> ReserveConfiguration:
        return self._set(BORROWING_ENABLED_BIT, int(bool(flag)), "borrowing_enabled")

    @property
    def paused(self) -> bool:
        return bool(self._get(PAUSED_BIT))

    def with_paused(self, flag: bool) -> ReserveConfiguration:
        return self._set(PAUSED_BIT, int(bool(flag)), "paused")

    @property
    def borrowable_in_isolation(self) -> bool:
        return bool(self._get(BORROWABLE_IN_ISOLATION_BIT))

    def with_borrowable_in_isolation(self, flag: bool) -> ReserveConfiguration:
        return self._set(BORROWABLE_IN_ISOLATION_BIT, int(bool(flag)), "borrowable_in_isolation")

    # Derived ----------------------------------------------------------------

    @property
    def collateral_enabled(self) -> bool:
        """An asset counts as collateral only with a nonzero liquidation threshold."""
        return self.liquidation_threshold != 0

    @property
    def is_isolated(self) -> bool:
        """An asset with a debt ceiling can only be used as collateral in isolation."""
        return self.debt_ceiling != 0

    def get_params(self) -> Tuple[int, int, int, int, int, int]:
        """Return (ltv, liquidation_threshold, liquidation_bonus, decimals, reserve_factor, emode_category)."""
        return (
            self.ltv,
            self.liquidation_threshold,
            self.liquidation_bonus,
            self.decimals,
            self.reserve_factor,
            self.emode_category,
        )

    def get_flags(self) -> Tuple[bool, bool, bool, bool]:
        """Return (active, frozen, borrowing_enabled, paused)."""
        return (self.active, self.frozen, self.borrowing_enabled, self.paused)


def _check_asset_id(asset_id: int) -> None:
    if not 0 <= asset_id < MAX_RESERVES_COUNT:
        raise ValueError(f"asset id must be in [0, {MAX_RESERVES_COUNT}), got {asset_id}")


@dataclass(frozen=True, slots=True)
class UserConfiguration:
    """
    Participation bitmap of one account.

    Bit 2*id is set when the account borrows asset `id`; bit 2*id+1 is set
    when it uses asset `id` as collateral. Iteration visits only the set
    pairs, so cost scales with participation and not with registry size.
    """
    data: int = 0

    def is_borrowing(self, asset_id: int) -> bool:
        _check_asset_id(asset_id)
        return bool((self.data >> (asset_id * 2)) & 1)

    def is_using_as_collateral(self, asset_id: int) -> bool:
        _check_asset_id(asset_id)
        return bool((self.data >> (asset_id * 2 + 1)) & 1)

    def is_using_as_collateral_or_borrowing(self, asset_id: int) -> bool:
        _check_asset_id(asset_id)
        return bool((self.data >> (asset_id * 2)) & 0b11)

    def with_borrowing(self, asset_id: int, flag: bool) -> UserConfiguration:
        _check_asset_id(asset_id)
        bit = 1 << (asset_id * 2)
        return UserConfiguration(self.data | bit if flag else self.data & ~bit)

    def with_using_as_collateral(self, asset_id: int, flag: bool) -> UserConfiguration:
        _check_asset_id(asset_id)
        bit = 1 << (asset_id * 2 + 1)
        return UserConfiguration(self.data | bit if flag else self.data & ~bit)

    @property
    def _borrowing_bits(self) -> int:
        return self.data & _BORROWING_MASK

    @property
    def _collateral_bits(self) -> int:
        return self.data & _COLLATERAL_MASK

    def is_empty(self) -> bool:
        return self.data == 0

    def is_borrowing_any(self) -> bool:
        return self._borrowing_bits != 0

    def is_borrowing_one(self) -> bool:
        bits = self._borrowing_bits
        return bits != 0 and (bits & (bits - 1)) == 0

    def is_using_as_collateral_any(self) -> bool:
        return self._collateral_bits != 0

    def is_using_as_collateral_one(self) -> bool:
        bits = self._collateral_bits
        return bits != 0 and (bits & (bits - 1)) == 0

    def iter_assets(self) -> Iterator[Tuple[int, bool, bool]]:
        """
        Yield (asset_id, using_as_collateral, borrowing) for each participated asset.

        Walks set bits only, lowest asset id first.
        """
        remaining = self.data
        while remaining:
            lowest = remaining & -remaining
            asset_id = (lowest.bit_length() - 1) // 2
            pair = (self.data >> (asset_id * 2)) & 0b11
            yield asset_id, bool(pair & 0b10), bool(pair & 0b01)
            remaining &= ~(0b11 << (asset_id * 2))

    def collateral_assets(self) -> List[int]:
        return [asset_id for asset_id, collateral, _ in self.iter_assets() if collateral]

    def borrowed_assets(self) -> List[int]:
        return [asset_id for asset_id, _, borrowing in self.iter_assets() if borrowing]

    def first_collateral_asset(self) -> Optional[int]:
        bits = self._collateral_bits
        if not bits:
            return None
        return ((bits & -bits).bit_length() - 1) // 2


_BORROWING_MASK = int("01" * MAX_RESERVES_COUNT, 2)
_COLLATERAL_MASK = _BORROWING_MASK << 1
