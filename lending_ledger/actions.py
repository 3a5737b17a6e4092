"""
actions.py - User actions as pure functions

Each compute_* function reads a PoolView, stages the action's records on a
StagedView, validates the hypothetical result, and returns a
PendingAction. Nothing is mutated; LendingPool.execute() commits.

Every action first accrues the reserves it touches to the view's current
time, then applies the balance change, then refreshes the reserve's rates.

Scaled-balance rounding:
    supply mints     floor(amount / liquidity_index)
    withdraw burns   ceil(amount / liquidity_index)   (whole balance on full exit)
    borrow mints     ceil(amount / borrow_index)
    repay burns      floor(amount / borrow_index)     (whole debt on full repay)

Functions:
    compute_supply(view, account, asset_id, amount)
    compute_withdraw(view, account, asset_id, amount=None)
    compute_borrow(view, account, asset_id, amount)
    compute_repay(view, account, asset_id, amount=None)
    compute_set_use_as_collateral(view, account, asset_id, enabled)
    compute_set_user_emode(view, account, category_id)
    compute_accrue(view, asset_ids=None)
    compute_mint_to_treasury(view, asset_ids=None)
"""

from __future__ import annotations
from dataclasses import replace
from typing import Iterable, Optional

from .core import (
    PoolView, PendingAction, StagedView, ReserveData,
    InvalidAmount, InsufficientBalance, InsufficientCollateral, StalePrice,
)
from .fixed_point import checked_sub
from .health import (
    get_isolation_mode_state, validate_health_factor, resolve_risk_parameters, account_category,
)
from .reserve_logic import (
    accrue_reserve, update_interest_rates, supply_balance, debt_balance,
    scaled_supply_to_mint, scaled_supply_to_burn, scaled_debt_to_mint, scaled_debt_to_burn,
)
from .validation import (
    validate_supply, validate_withdraw, validate_borrow, validate_repay,
    validate_use_as_collateral, can_auto_enable_collateral, validate_not_paused,
    validate_set_user_emode, isolation_debt_units,
)


# ============================================================================
# SHARED STAGING HELPERS
# ============================================================================

def set_collateral_flag(staged: StagedView, account: str, asset_id: int, flag: bool) -> None:
    config = staged.get_account(account)
    staged.put_account(replace(
        config,
        user_configuration=config.user_configuration.with_using_as_collateral(asset_id, flag),
    ))


def set_borrowing_flag(staged: StagedView, account: str, asset_id: int, flag: bool) -> None:
    config = staged.get_account(account)
    staged.put_account(replace(
        config,
        user_configuration=config.user_configuration.with_borrowing(asset_id, flag),
    ))


def reduce_isolated_debt(staged: StagedView, account: str, debt_reserve: ReserveData, amount: int) -> None:
    """Release debt-ceiling usage after `amount` of debt is repaid."""
    isolation = get_isolation_mode_state(staged, account)
    if not isolation.active:
        return
    collateral = staged.get_reserve(isolation.asset_id)
    units = isolation_debt_units(amount, debt_reserve.decimals)
    remaining = collateral.isolation_mode_total_debt - units
    staged.put_reserve(replace(collateral, isolation_mode_total_debt=max(remaining, 0)))


def burn_debt(staged: StagedView, account: str, asset_id: int, amount: int) -> int:
    """
    Burn `amount` of an account's debt (already accrued reserve).

    Returns:
        The scaled debt burned
    """
    reserve = staged.get_reserve(asset_id)
    position = staged.get_position(account, asset_id)
    debt = debt_balance(position.scaled_variable_debt, reserve.variable_borrow_index)
    if amount == debt:
        burned = position.scaled_variable_debt
    else:
        burned = scaled_debt_to_burn(amount, reserve.variable_borrow_index)
    if burned == 0:
        raise InvalidAmount(f"Repayment of {amount} {reserve.symbol} is below one scaled unit")

    remaining = checked_sub(position.scaled_variable_debt, burned)
    staged.put_position(replace(position, scaled_variable_debt=remaining))
    reserve = replace(
        reserve,
        total_scaled_variable_debt=checked_sub(reserve.total_scaled_variable_debt, burned),
    )
    staged.put_reserve(update_interest_rates(reserve, liquidity_added=amount))
    if remaining == 0:
        set_borrowing_flag(staged, account, asset_id, False)
    reduce_isolated_debt(staged, account, reserve, amount)
    return burned


# ============================================================================
# SUPPLY / WITHDRAW
# ============================================================================

def compute_supply(view: PoolView, account: str, asset_id: int, amount: int) -> PendingAction:
    """
    Deposit `amount` of an asset.

    A first deposit switches the asset on as collateral when it has a
    nonzero LTV and isolation rules allow it.

    Raises:
        InvalidAsset, InvalidAmount, AssetInactive, AssetPaused, AssetFrozen,
        CapExceeded
    """
    staged = StagedView(view)
    reserve = accrue_reserve(staged, asset_id)
    validate_supply(reserve, amount)

    scaled = scaled_supply_to_mint(amount, reserve.liquidity_index)
    if scaled == 0:
        raise InvalidAmount(f"Supply of {amount} {reserve.symbol} is below one scaled unit")

    position = staged.get_position(account, asset_id)
    first_supply = position.scaled_supply == 0
    staged.put_position(replace(position, scaled_supply=position.scaled_supply + scaled))
    reserve = replace(reserve, total_scaled_supply=reserve.total_scaled_supply + scaled)
    staged.put_reserve(update_interest_rates(reserve, liquidity_added=amount))

    collateral_enabled = False
    if first_supply and can_auto_enable_collateral(staged, account, reserve):
        set_collateral_flag(staged, account, asset_id, True)
        collateral_enabled = True

    return staged.build("supply", account, {
        "asset_id": asset_id,
        "amount": amount,
        "scaled_amount": scaled,
        "collateral_enabled": collateral_enabled,
    })


def compute_withdraw(view: PoolView, account: str, asset_id: int,
                     amount: Optional[int] = None) -> PendingAction:
    """
    Withdraw `amount` of an asset, or the whole balance when amount is None.

    Raises:
        InvalidAsset, InvalidAmount, AssetInactive, AssetPaused,
        InsufficientBalance, InsufficientLiquidity, StalePrice,
        InsufficientHealth
    """
    staged = StagedView(view)
    reserve = accrue_reserve(staged, asset_id)
    position = staged.get_position(account, asset_id)
    balance = supply_balance(position.scaled_supply, reserve.liquidity_index)
    if amount is None:
        if balance == 0:
            raise InsufficientBalance(f"{account} has no {reserve.symbol} to withdraw")
        amount = balance
    elif (amount > balance and position.scaled_supply > 0
          and scaled_supply_to_mint(amount, reserve.liquidity_index) == position.scaled_supply):
        # the amount maps onto exactly this position, so it exits whole
        balance = amount
    validate_withdraw(reserve, amount, balance)
    if staged.get_price_quote(asset_id).stale:
        raise StalePrice(f"Cannot withdraw {reserve.symbol}: stale price")

    if amount == balance:
        burned = position.scaled_supply
    else:
        burned = scaled_supply_to_burn(amount, reserve.liquidity_index)
    remaining = checked_sub(position.scaled_supply, burned)
    staged.put_position(replace(position, scaled_supply=remaining))
    reserve = replace(reserve, total_scaled_supply=checked_sub(reserve.total_scaled_supply, burned))
    staged.put_reserve(update_interest_rates(reserve, liquidity_taken=amount))

    user_config = staged.get_account(account).user_configuration
    was_collateral = user_config.is_using_as_collateral(asset_id)
    if was_collateral and remaining == 0:
        set_collateral_flag(staged, account, asset_id, False)

    health_factor = None
    if was_collateral and user_config.is_borrowing_any():
        data = validate_health_factor(staged, account)
        params = resolve_risk_parameters(reserve, account_category(staged, account))
        if data.has_zero_ltv_collateral and params.ltv != 0:
            raise InsufficientCollateral(
                f"{account} must withdraw its zero-LTV collateral before {reserve.symbol}"
            )
        health_factor = data.health_factor

    return staged.build("withdraw", account, {
        "asset_id": asset_id,
        "amount": amount,
        "scaled_amount": burned,
        "health_factor": health_factor,
    })


# ============================================================================
# BORROW / REPAY
# ============================================================================

def compute_borrow(view: PoolView, account: str, asset_id: int, amount: int) -> PendingAction:
    """
    Borrow `amount` of an asset against the account's collateral.

    The borrow is staged first; the post-borrow account must have a health
    factor of at least 1.0 and debt within its LTV limit.

    Raises:
        InvalidAsset, InvalidAmount, AssetInactive, AssetPaused, AssetFrozen,
        BorrowingNotEnabled, InsufficientLiquidity, CapExceeded,
        EModeViolation, IsolationModeViolation, StalePrice,
        InsufficientHealth, InsufficientCollateral
    """
    staged = StagedView(view)
    reserve = accrue_reserve(staged, asset_id)
    validate_borrow(staged, account, reserve, amount)
    isolation = get_isolation_mode_state(staged, account)

    scaled = scaled_debt_to_mint(amount, reserve.variable_borrow_index)
    position = staged.get_position(account, asset_id)
    staged.put_position(replace(position, scaled_variable_debt=position.scaled_variable_debt + scaled))
    reserve = replace(reserve, total_scaled_variable_debt=reserve.total_scaled_variable_debt + scaled)
    staged.put_reserve(update_interest_rates(reserve, liquidity_taken=amount))
    set_borrowing_flag(staged, account, asset_id, True)

    if isolation.active:
        collateral = staged.get_reserve(isolation.asset_id)
        staged.put_reserve(replace(
            collateral,
            isolation_mode_total_debt=collateral.isolation_mode_total_debt
            + isolation_debt_units(amount, reserve.decimals),
        ))

    data = validate_health_factor(staged, account, check_ltv=True)

    return staged.build("borrow", account, {
        "asset_id": asset_id,
        "amount": amount,
        "scaled_amount": scaled,
        "health_factor": data.health_factor,
    })


def compute_repay(view: PoolView, account: str, asset_id: int,
                  amount: Optional[int] = None) -> PendingAction:
    """
    Repay debt. Amounts above the outstanding debt are capped; None repays
    everything.

    Raises:
        InvalidAsset, InvalidAmount, AssetInactive, AssetPaused
    """
    staged = StagedView(view)
    reserve = accrue_reserve(staged, asset_id)
    position = staged.get_position(account, asset_id)
    debt = debt_balance(position.scaled_variable_debt, reserve.variable_borrow_index)
    validate_repay(reserve, amount, debt)

    paid = debt if amount is None else min(amount, debt)
    burned = burn_debt(staged, account, asset_id, paid)

    return staged.build("repay", account, {
        "asset_id": asset_id,
        "amount": paid,
        "scaled_amount": burned,
    })


# ============================================================================
# ACCOUNT SETTINGS
# ============================================================================

def compute_set_use_as_collateral(view: PoolView, account: str, asset_id: int,
                                  enabled: bool) -> PendingAction:
    """
    Switch a supplied asset on or off as collateral.

    Raises:
        InvalidAsset, AssetInactive, AssetPaused, InsufficientBalance,
        CollateralNotEnabled, IsolationModeViolation, StalePrice,
        InsufficientHealth
    """
    staged = StagedView(view)
    reserve = accrue_reserve(staged, asset_id)
    validate_not_paused(reserve)
    if staged.get_position(account, asset_id).scaled_supply == 0:
        raise InsufficientBalance(f"{account} has no {reserve.symbol} supplied")

    user_config = staged.get_account(account).user_configuration
    if user_config.is_using_as_collateral(asset_id) != enabled:
        if enabled:
            validate_use_as_collateral(staged, account, reserve)
            set_collateral_flag(staged, account, asset_id, True)
        else:
            set_collateral_flag(staged, account, asset_id, False)
            if user_config.is_borrowing_any():
                validate_health_factor(staged, account)

    return staged.build("set_use_as_collateral", account, {
        "asset_id": asset_id,
        "enabled": enabled,
    })


def compute_set_user_emode(view: PoolView, account: str, category_id: int) -> PendingAction:
    """
    Enter, switch or leave (category_id=0) an e-mode category.

    Raises:
        EModeViolation, StalePrice, InsufficientHealth
    """
    staged = StagedView(view)
    validate_set_user_emode(staged, account, category_id)
    config = staged.get_account(account)
    staged.put_account(replace(config, emode_category=category_id))
    if config.user_configuration.is_borrowing_any():
        validate_health_factor(staged, account)
    return staged.build("set_user_emode", account, {"category_id": category_id})


# ============================================================================
# MAINTENANCE
# ============================================================================

def compute_accrue(view: PoolView, asset_ids: Optional[Iterable[int]] = None) -> PendingAction:
    """Accrue reserves (all live reserves by default) to the current time."""
    staged = StagedView(view)
    ids = list(view.list_reserves() if asset_ids is None else asset_ids)
    for asset_id in ids:
        accrue_reserve(staged, asset_id)
    return staged.build("accrue", None, {"asset_ids": tuple(ids)})


def compute_mint_to_treasury(view: PoolView, asset_ids: Optional[Iterable[int]] = None) -> PendingAction:
    """
    Turn accrued reserve-factor income into treasury supply balances.

    Inactive reserves are skipped.
    """
    staged = StagedView(view)
    treasury = view.config.treasury_account
    minted = []
    for asset_id in list(view.list_reserves() if asset_ids is None else asset_ids):
        reserve = accrue_reserve(staged, asset_id)
        if not reserve.configuration.active or reserve.accrued_to_treasury == 0:
            continue
        scaled = reserve.accrued_to_treasury
        position = staged.get_position(treasury, asset_id)
        staged.put_position(replace(position, scaled_supply=position.scaled_supply + scaled))
        staged.put_reserve(replace(
            reserve,
            accrued_to_treasury=0,
            total_scaled_supply=reserve.total_scaled_supply + scaled,
        ))
        minted.append((asset_id, supply_balance(scaled, reserve.liquidity_index)))
    return staged.build("mint_to_treasury", treasury, {"minted": tuple(minted)})
