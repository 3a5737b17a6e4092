"""
validation.py - Preconditions for user actions

Each validate_* function raises the matching LedgerError subclass and
returns nothing. Checks that need the post-action health factor live in
health.validate_health_factor and run against a StagedView after the
action's records have been staged.
"""

from __future__ import annotations

from .core import (
    PoolView, ReserveData, DEBT_CEILING_DECIMALS, PERCENTAGE_FACTOR,
    InvalidAsset, InvalidAmount, AssetInactive, AssetPaused, AssetFrozen,
    BorrowingNotEnabled, CapExceeded, InsufficientBalance, InsufficientLiquidity,
    CollateralNotEnabled, IsolationModeViolation, EModeViolation,
)
from .health import get_isolation_mode_state
from .reserve_logic import supply_balance, total_variable_debt


def validate_amount(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer number of smallest units, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")


def validate_reserve_active(reserve: ReserveData) -> None:
    if reserve.dropped:
        raise InvalidAsset(f"Asset {reserve.asset_id} ({reserve.symbol}) has been dropped")
    if not reserve.configuration.active:
        raise AssetInactive(f"Reserve {reserve.symbol} is not active")


def validate_not_paused(reserve: ReserveData) -> None:
    validate_reserve_active(reserve)
    if reserve.configuration.paused:
        raise AssetPaused(f"Reserve {reserve.symbol} is paused")


def isolation_debt_units(amount: int, decimals: int) -> int:
    """Convert an amount to the debt ceiling's 2-decimal base units."""
    if decimals >= DEBT_CEILING_DECIMALS:
        return amount // 10 ** (decimals - DEBT_CEILING_DECIMALS)
    return amount * 10 ** (DEBT_CEILING_DECIMALS - decimals)


# ============================================================================
# SUPPLY / WITHDRAW
# ============================================================================

def validate_supply(reserve: ReserveData, amount: int) -> None:
    """
    Raises:
        InvalidAmount, InvalidAsset, AssetInactive, AssetPaused, AssetFrozen,
        CapExceeded (cap_kind="supply")
    """
    validate_amount(amount)
    validate_not_paused(reserve)
    if reserve.configuration.frozen:
        raise AssetFrozen(f"Reserve {reserve.symbol} is frozen")
    cap = reserve.configuration.supply_cap
    if cap:
        supplied = supply_balance(
            reserve.total_scaled_supply + reserve.accrued_to_treasury, reserve.liquidity_index
        )
        if supplied + amount > cap * reserve.unit:
            raise CapExceeded(
                f"Supply cap of {reserve.symbol} exceeded: {supplied} + {amount} > {cap * reserve.unit}",
                cap_kind="supply",
            )


def validate_withdraw(reserve: ReserveData, amount: int, balance: int) -> None:
    """
    Raises:
        InvalidAmount, InvalidAsset, AssetInactive, AssetPaused,
        InsufficientBalance, InsufficientLiquidity
    """
    validate_amount(amount)
    validate_not_paused(reserve)
    if amount > balance:
        raise InsufficientBalance(
            f"Cannot withdraw {amount} {reserve.symbol}: balance is {balance}"
        )
    if amount > reserve.available_liquidity:
        raise InsufficientLiquidity(
            f"Cannot withdraw {amount} {reserve.symbol}: only {reserve.available_liquidity} available"
        )


# ============================================================================
# BORROW / REPAY
# ============================================================================

def validate_borrow(view: PoolView, account: str, reserve: ReserveData, amount: int) -> None:
    """
    Checks that do not depend on the post-borrow health factor.

    Raises:
        InvalidAmount, InvalidAsset, AssetInactive, AssetPaused, AssetFrozen,
        BorrowingNotEnabled, InsufficientLiquidity, CapExceeded,
        EModeViolation, IsolationModeViolation
    """
    validate_amount(amount)
    validate_not_paused(reserve)
    config = reserve.configuration
    if config.frozen:
        raise AssetFrozen(f"Reserve {reserve.symbol} is frozen")
    if not config.borrowing_enabled:
        raise BorrowingNotEnabled(f"Borrowing is not enabled for {reserve.symbol}")
    if amount > reserve.available_liquidity:
        raise InsufficientLiquidity(
            f"Cannot borrow {amount} {reserve.symbol}: only {reserve.available_liquidity} available"
        )

    if config.borrow_cap:
        debt = total_variable_debt(reserve)
        if debt + amount > config.borrow_cap * reserve.unit:
            raise CapExceeded(
                f"Borrow cap of {reserve.symbol} exceeded: {debt} + {amount} > "
                f"{config.borrow_cap * reserve.unit}",
                cap_kind="borrow",
            )

    emode = view.get_account(account).emode_category
    if emode != 0 and config.emode_category != emode:
        raise EModeViolation(
            f"{reserve.symbol} is not in e-mode category {emode} of {account}"
        )

    isolation = get_isolation_mode_state(view, account)
    if isolation.active:
        if not config.borrowable_in_isolation:
            raise IsolationModeViolation(
                f"{reserve.symbol} cannot be borrowed in isolation mode"
            )
        collateral_reserve = view.get_reserve(isolation.asset_id)
        new_total = collateral_reserve.isolation_mode_total_debt + isolation_debt_units(
            amount, reserve.decimals
        )
        if new_total > isolation.debt_ceiling:
            raise CapExceeded(
                f"Debt ceiling of {collateral_reserve.symbol} exceeded: {new_total} > {isolation.debt_ceiling}",
                cap_kind="debt_ceiling",
            )


def validate_repay(reserve: ReserveData, amount, debt: int) -> None:
    """
    Raises:
        InvalidAmount (also when there is no debt), InvalidAsset,
        AssetInactive, AssetPaused
    """
    if amount is not None:
        validate_amount(amount)
    validate_not_paused(reserve)
    if debt == 0:
        raise InvalidAmount(f"No {reserve.symbol} debt to repay")


# ============================================================================
# COLLATERAL
# ============================================================================

def validate_use_as_collateral(view: PoolView, account: str, reserve: ReserveData) -> None:
    """
    Whether the account may enable `reserve` as collateral.

    Raises:
        CollateralNotEnabled: The asset has LTV 0
        IsolationModeViolation: Mixing an isolated asset with other collateral
    """
    config = reserve.configuration
    if config.ltv == 0:
        raise CollateralNotEnabled(f"{reserve.symbol} cannot be used as collateral")
    user_config = view.get_account(account).user_configuration
    others = [a for a in user_config.collateral_assets() if a != reserve.asset_id]
    if not others:
        return
    if config.is_isolated:
        raise IsolationModeViolation(
            f"Isolated asset {reserve.symbol} must be the only collateral of {account}"
        )
    isolation = get_isolation_mode_state(view, account)
    if isolation.active:
        raise IsolationModeViolation(
            f"{account} is in isolation mode; {reserve.symbol} cannot be added as collateral"
        )


def can_auto_enable_collateral(view: PoolView, account: str, reserve: ReserveData) -> bool:
    """Whether a first supply should switch the asset on as collateral."""
    try:
        validate_use_as_collateral(view, account, reserve)
    except (CollateralNotEnabled, IsolationModeViolation):
        return False
    return True


# ============================================================================
# LIQUIDATION / E-MODE
# ============================================================================

def validate_liquidation_reserves(collateral: ReserveData, debt: ReserveData) -> None:
    validate_not_paused(collateral)
    validate_not_paused(debt)


def validate_set_user_emode(view: PoolView, account: str, category_id: int) -> None:
    """
    Raises:
        EModeViolation: Unknown category, or a borrowed asset outside it
    """
    if category_id == 0:
        return
    if view.get_emode_category(category_id) is None:
        raise EModeViolation(f"E-mode category {category_id} does not exist")
    user_config = view.get_account(account).user_configuration
    for asset_id in user_config.borrowed_assets():
        reserve = view.get_reserve(asset_id)
        if reserve.configuration.emode_category != category_id:
            raise EModeViolation(
                f"{account} borrows {reserve.symbol}, which is outside e-mode category {category_id}"
            )


def validate_risk_parameters(ltv: int, liquidation_threshold: int, liquidation_bonus: int) -> None:
    """
    Raises:
        ValueError: On an inconsistent parameter set
    """
    if ltv > liquidation_threshold:
        raise ValueError(f"ltv ({ltv}) cannot exceed liquidation threshold ({liquidation_threshold})")
    if liquidation_threshold > PERCENTAGE_FACTOR:
        raise ValueError(f"liquidation threshold cannot exceed {PERCENTAGE_FACTOR}")
    if liquidation_threshold != 0:
        if liquidation_bonus <= PERCENTAGE_FACTOR:
            raise ValueError(f"liquidation bonus must exceed {PERCENTAGE_FACTOR}, got {liquidation_bonus}")
        if liquidation_threshold * liquidation_bonus > PERCENTAGE_FACTOR * PERCENTAGE_FACTOR:
            raise ValueError("liquidation threshold * bonus cannot exceed 100%")
    elif liquidation_bonus != 0:
        raise ValueError("liquidation bonus must be 0 when the threshold is 0")
