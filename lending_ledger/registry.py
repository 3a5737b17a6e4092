"""
registry.py - Asset registry and risk administration

Listing assigns the next sequential asset id. Ids are never reused:
dropping a reserve retires its id and hides it from enumeration, and the
symbol becomes free to list again under a new id.

Every administrative change is a pure compute_* function returning a
PendingAction, like user actions. Changes that alter interest economics
(reserve factor, rate curve) accrue the reserve first so past interest is
booked under the old parameters.

Admin input errors (inconsistent risk parameters, out-of-range values)
raise ValueError; state conflicts raise LedgerError subclasses.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional

from .configuration import (
    ReserveConfiguration, MAX_VALID_DECIMALS, MAX_VALID_BORROW_CAP,
    MAX_VALID_SUPPLY_CAP, MAX_VALID_DEBT_CEILING,
)
from .core import (
    PoolView, PendingAction, StagedView, ReserveData, EModeCategory, PERCENTAGE_FACTOR,
    AssetAlreadyListed, CapExceeded, InvalidAsset, ReserveInUse, EModeViolation,
)
from .interest_rate import InterestRateParams
from .reserve_logic import accrue_reserve, refresh_rates, to_timestamp
from .validation import validate_risk_parameters


@dataclass(frozen=True, slots=True)
class AssetListing:
    """
    Everything needed to list an asset.

    Percentages are basis points; caps are whole tokens (0 = no cap); the
    debt ceiling is in base currency with 2 decimals (0 = not isolated).
    """
    symbol: str
    decimals: int
    interest_rate_params: InterestRateParams
    ltv: int = 0
    liquidation_threshold: int = 0
    liquidation_bonus: int = 0
    reserve_factor: int = 0
    borrowing_enabled: bool = True
    supply_cap: int = 0
    borrow_cap: int = 0
    debt_ceiling: int = 0
    borrowable_in_isolation: bool = False
    liquidation_protocol_fee: int = 0
    emode_category: int = 0

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("symbol cannot be empty")
        if not 0 <= self.decimals <= MAX_VALID_DECIMALS:
            raise ValueError(f"decimals must be in [0, {MAX_VALID_DECIMALS}], got {self.decimals}")
        validate_risk_parameters(self.ltv, self.liquidation_threshold, self.liquidation_bonus)
        _check_bps("reserve_factor", self.reserve_factor)
        _check_bps("liquidation_protocol_fee", self.liquidation_protocol_fee)
        _check_range("supply_cap", self.supply_cap, MAX_VALID_SUPPLY_CAP)
        _check_range("borrow_cap", self.borrow_cap, MAX_VALID_BORROW_CAP)
        _check_range("debt_ceiling", self.debt_ceiling, MAX_VALID_DEBT_CEILING)

    def to_configuration(self) -> ReserveConfiguration:
        return (ReserveConfiguration()
                .with_ltv(self.ltv)
                .with_liquidation_threshold(self.liquidation_threshold)
                .with_liquidation_bonus(self.liquidation_bonus)
                .with_decimals(self.decimals)
                .with_active(True)
                .with_borrowing_enabled(self.borrowing_enabled)
                .with_reserve_factor(self.reserve_factor)
                .with_supply_cap(self.supply_cap)
                .with_borrow_cap(self.borrow_cap)
                .with_debt_ceiling(self.debt_ceiling)
                .with_borrowable_in_isolation(self.borrowable_in_isolation)
                .with_liquidation_protocol_fee(self.liquidation_protocol_fee)
                .with_emode_category(self.emode_category))


def _check_bps(name: str, value: int) -> None:
    if not 0 <= value <= PERCENTAGE_FACTOR:
        raise ValueError(f"{name} must be in [0, {PERCENTAGE_FACTOR}], got {value}")


def _check_range(name: str, value: int, maximum: int) -> None:
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} must be in [0, {maximum}], got {value}")


def _live_reserve(view: PoolView, asset_id: int) -> ReserveData:
    reserve = view.get_reserve(asset_id)
    if reserve.dropped:
        raise InvalidAsset(f"Asset {asset_id} ({reserve.symbol}) has been dropped")
    return reserve


def _check_category_exists(view: PoolView, category_id: int) -> None:
    if category_id != 0 and view.get_emode_category(category_id) is None:
        raise EModeViolation(f"E-mode category {category_id} does not exist")


def _reconfigure(view: PoolView, asset_id: int, action: str, accrue_first: bool = False,
                 **changes) -> PendingAction:
    """Apply ReserveConfiguration setters, e.g. _reconfigure(view, 0, "x", frozen=True)."""
    staged = StagedView(view)
    _live_reserve(staged, asset_id)
    reserve = accrue_reserve(staged, asset_id) if accrue_first else staged.get_reserve(asset_id)
    config = reserve.configuration
    for name, value in changes.items():
        config = getattr(config, f"with_{name}")(value)
    staged.put_reserve(refresh_rates(replace(reserve, configuration=config)))
    return staged.build(action, None, {"asset_id": asset_id, **changes})


# ============================================================================
# LISTING
# ============================================================================

def compute_list_asset(view: PoolView, listing: AssetListing) -> PendingAction:
    """
    Register a new asset under the next sequential id.

    Raises:
        AssetAlreadyListed: A live reserve already uses the symbol
        CapExceeded: The registry is full (cap_kind="reserves")
        EModeViolation: The listing names an unknown e-mode category
    """
    if view.find_asset_id(listing.symbol) is not None:
        raise AssetAlreadyListed(f"{listing.symbol} is already listed")
    if view.next_asset_id >= view.config.max_reserves:
        raise CapExceeded(
            f"Registry is full ({view.config.max_reserves} reserves)", cap_kind="reserves"
        )
    _check_category_exists(view, listing.emode_category)

    staged = StagedView(view)
    asset_id = staged.allocate_asset_id()
    reserve = ReserveData(
        asset_id=asset_id,
        symbol=listing.symbol,
        configuration=listing.to_configuration(),
        interest_rate_params=listing.interest_rate_params,
        last_update_timestamp=to_timestamp(view.current_time),
    )
    staged.put_reserve(refresh_rates(reserve), created=True)
    return staged.build("list_asset", None, {"asset_id": asset_id, "symbol": listing.symbol})


def compute_drop_asset(view: PoolView, asset_id: int) -> PendingAction:
    """
    Retire a reserve. It must hold no supply, no debt and no unminted
    treasury accruals.

    Raises:
        InvalidAsset, ReserveInUse
    """
    staged = StagedView(view)
    reserve = _live_reserve(staged, asset_id)
    if reserve.total_scaled_supply or reserve.total_scaled_variable_debt or reserve.accrued_to_treasury:
        raise ReserveInUse(f"Reserve {reserve.symbol} still has supply, debt or treasury accruals")
    staged.put_reserve(replace(reserve, dropped=True, configuration=reserve.configuration.with_active(False)))
    return staged.build("drop_asset", None, {"asset_id": asset_id, "symbol": reserve.symbol})


# ============================================================================
# RISK PARAMETERS
# ============================================================================

def compute_set_risk_parameters(view: PoolView, asset_id: int, ltv: int,
                                liquidation_threshold: int, liquidation_bonus: int) -> PendingAction:
    """
    Set LTV, liquidation threshold and bonus (bps).

    Raises:
        ValueError: ltv > threshold, bonus <= 100%, threshold * bonus > 100%
        InvalidAsset
    """
    validate_risk_parameters(ltv, liquidation_threshold, liquidation_bonus)
    return _reconfigure(
        view, asset_id, "set_risk_parameters",
        ltv=ltv, liquidation_threshold=liquidation_threshold, liquidation_bonus=liquidation_bonus,
    )


def compute_set_caps(view: PoolView, asset_id: int, supply_cap: Optional[int] = None,
                     borrow_cap: Optional[int] = None) -> PendingAction:
    """Set supply and/or borrow caps in whole tokens (0 removes a cap)."""
    changes = {}
    if supply_cap is not None:
        _check_range("supply_cap", supply_cap, MAX_VALID_SUPPLY_CAP)
        changes["supply_cap"] = supply_cap
    if borrow_cap is not None:
        _check_range("borrow_cap", borrow_cap, MAX_VALID_BORROW_CAP)
        changes["borrow_cap"] = borrow_cap
    return _reconfigure(view, asset_id, "set_caps", **changes)


def compute_set_debt_ceiling(view: PoolView, asset_id: int, debt_ceiling: int) -> PendingAction:
    """
    Set the isolation-mode debt ceiling (base currency, 2 decimals).

    Removing the ceiling also clears the tracked isolated debt.
    """
    _check_range("debt_ceiling", debt_ceiling, MAX_VALID_DEBT_CEILING)
    staged = StagedView(view)
    reserve = _live_reserve(staged, asset_id)
    updated = replace(reserve, configuration=reserve.configuration.with_debt_ceiling(debt_ceiling))
    if debt_ceiling == 0:
        updated = replace(updated, isolation_mode_total_debt=0)
    staged.put_reserve(updated)
    return staged.build("set_debt_ceiling", None, {"asset_id": asset_id, "debt_ceiling": debt_ceiling})


def compute_set_reserve_factor(view: PoolView, asset_id: int, reserve_factor: int) -> PendingAction:
    _check_bps("reserve_factor", reserve_factor)
    return _reconfigure(view, asset_id, "set_reserve_factor", accrue_first=True,
                        reserve_factor=reserve_factor)


def compute_set_liquidation_protocol_fee(view: PoolView, asset_id: int, fee: int) -> PendingAction:
    _check_bps("liquidation_protocol_fee", fee)
    return _reconfigure(view, asset_id, "set_liquidation_protocol_fee", liquidation_protocol_fee=fee)


def compute_set_interest_rate_params(view: PoolView, asset_id: int,
                                     params: InterestRateParams) -> PendingAction:
    """Replace the rate curve; interest up to now accrues under the old curve."""
    staged = StagedView(view)
    _live_reserve(staged, asset_id)
    reserve = accrue_reserve(staged, asset_id)
    staged.put_reserve(refresh_rates(replace(reserve, interest_rate_params=params)))
    return staged.build("set_interest_rate_params", None, {"asset_id": asset_id})


# ============================================================================
# FLAGS
# ============================================================================

def compute_set_active(view: PoolView, asset_id: int, active: bool) -> PendingAction:
    """
    Deactivating requires an empty reserve.

    Raises:
        ReserveInUse
    """
    if not active:
        reserve = _live_reserve(view, asset_id)
        if reserve.total_scaled_supply or reserve.total_scaled_variable_debt:
            raise ReserveInUse(f"Reserve {reserve.symbol} still has supply or debt")
    return _reconfigure(view, asset_id, "set_active", active=active)


def compute_set_paused(view: PoolView, asset_id: int, paused: bool) -> PendingAction:
    return _reconfigure(view, asset_id, "set_paused", paused=paused)


def compute_set_frozen(view: PoolView, asset_id: int, frozen: bool) -> PendingAction:
    return _reconfigure(view, asset_id, "set_frozen", frozen=frozen)


def compute_set_borrowing_enabled(view: PoolView, asset_id: int, enabled: bool) -> PendingAction:
    return _reconfigure(view, asset_id, "set_borrowing_enabled", borrowing_enabled=enabled)


def compute_set_borrowable_in_isolation(view: PoolView, asset_id: int, borrowable: bool) -> PendingAction:
    return _reconfigure(view, asset_id, "set_borrowable_in_isolation", borrowable_in_isolation=borrowable)


# ============================================================================
# E-MODE
# ============================================================================

def compute_set_emode_category(view: PoolView, category: EModeCategory) -> PendingAction:
    """
    Create or replace an e-mode category.

    Raises:
        ValueError: A listed member asset has a threshold above the category's
    """
    for asset_id in view.list_reserves():
        reserve = view.get_reserve(asset_id)
        if (reserve.configuration.emode_category == category.category_id
                and reserve.configuration.liquidation_threshold > category.liquidation_threshold):
            raise ValueError(
                f"Category {category.category_id} threshold {category.liquidation_threshold} is below "
                f"the threshold of member {reserve.symbol}"
            )
    staged = StagedView(view)
    staged.put_category(category)
    return staged.build("set_emode_category", None, {"category_id": category.category_id})


def compute_set_asset_emode_category(view: PoolView, asset_id: int, category_id: int) -> PendingAction:
    """
    Put an asset into an e-mode category (0 removes it).

    Raises:
        EModeViolation: Unknown category
        ValueError: The asset's threshold exceeds the category's
    """
    _check_category_exists(view, category_id)
    if category_id != 0:
        category = view.get_emode_category(category_id)
        reserve = _live_reserve(view, asset_id)
        if reserve.configuration.liquidation_threshold > category.liquidation_threshold:
            raise ValueError(
                f"{reserve.symbol} threshold exceeds e-mode category {category_id} threshold"
            )
    return _reconfigure(view, asset_id, "set_asset_emode_category", emode_category=category_id)
