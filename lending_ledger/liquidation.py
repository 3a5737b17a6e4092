"""
liquidation.py - Partial liquidation of unhealthy accounts

A liquidator repays part of an unhealthy account's debt in one asset and
receives the account's collateral in another asset, at a discount set by
the collateral's liquidation bonus.

Steps:
1. Accrue both reserves; reject if the account's health factor is >= 1.0
2. Cap the repayment at the close factor share of the account's debt
   (default 50%, 100% when the collateral is below the small-position threshold)
3. Convert the repayment to collateral at oracle prices, plus the bonus
4. If that exceeds the account's collateral balance, seize the whole
   balance and shrink the repayment to match
5. Split the protocol fee (a share of the bonus) off to the treasury
6. Burn the repaid debt; either burn the seized collateral and pay out the
   underlying, or transfer the receipt (scaled supply) to the liquidator

Functions:
    calculate_close_factor(collateral_base, config) -> int
    calculate_available_collateral_to_liquidate(...) -> (collateral, debt, fee)
    compute_liquidation(view, collateral_asset_id, debt_asset_id, account, debt_to_cover, ...)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .config import PoolConfig
from .core import (
    PoolView, PendingAction, StagedView, HEALTH_FACTOR_UNIT,
    InvalidAmount, NotLiquidatable, CollateralNotEnabled, InsufficientLiquidity,
)
from .fixed_point import percent_mul, percent_div, mul_div_floor, checked_sub
from .health import (
    calculate_account_data, resolve_risk_parameters, account_category,
)
from .reserve_logic import (
    accrue_reserve, update_interest_rates, supply_balance, debt_balance,
    scaled_supply_to_burn, scaled_supply_to_mint,
)
from .validation import validate_amount, validate_liquidation_reserves, can_auto_enable_collateral
from .actions import burn_debt, set_collateral_flag


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of a liquidation.

    Attributes:
        debt_repaid: Debt asset units repaid by the liquidator
        collateral_seized: Collateral units taken from the account (fee included)
        protocol_fee: Collateral units sent to the treasury
        receive_receipt: True if the liquidator took supply balance, not underlying
        health_factor_before: Wad
        health_factor_after: Wad
    """
    debt_repaid: int
    collateral_seized: int
    protocol_fee: int
    receive_receipt: bool
    health_factor_before: int
    health_factor_after: int

    @property
    def liquidator_collateral(self) -> int:
        return self.collateral_seized - self.protocol_fee

    def as_tuple(self) -> Tuple[int, int]:
        return self.debt_repaid, self.collateral_seized


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_close_factor(total_collateral_base: int, config: PoolConfig) -> int:
    """Share of the debt one liquidation may repay (bps), by the account's collateral value."""
    if total_collateral_base < config.small_position_threshold_base:
        return config.max_close_factor
    return config.default_close_factor


def calculate_available_collateral_to_liquidate(
    collateral_price: int,
    debt_price: int,
    collateral_unit: int,
    debt_unit: int,
    debt_to_cover: int,
    user_collateral_balance: int,
    liquidation_bonus: int,
    liquidation_protocol_fee: int,
) -> Tuple[int, int, int]:
    """
    Collateral to seize for a repayment, clamped to the account's balance.

    Args:
        collateral_price: Base units per whole collateral token
        debt_price: Base units per whole debt token
        collateral_unit: 10 ** collateral decimals
        debt_unit: 10 ** debt decimals
        debt_to_cover: Debt units the liquidator offers to repay
        user_collateral_balance: Collateral units the account holds
        liquidation_bonus: 10_000 + premium (bps)
        liquidation_protocol_fee: Share of the premium kept by the protocol (bps)

    Returns:
        (collateral_amount, debt_amount_needed, protocol_fee_amount). The
        collateral amount includes the protocol fee.

    Example:
        # 100 debt at 1.0 against collateral at 2.0 with a 5% bonus
        calculate_available_collateral_to_liquidate(
            2 * 10**8, 10**8, 10**18, 10**6, 100 * 10**6, 10**21, 10500, 0)
        # -> (52.5e18, 100e6, 0)
    """
    base_collateral = mul_div_floor(
        debt_price * debt_to_cover, collateral_unit, collateral_price * debt_unit
    )
    max_collateral = percent_mul(base_collateral, liquidation_bonus)

    if max_collateral > user_collateral_balance:
        collateral_amount = user_collateral_balance
        debt_amount = percent_div(
            mul_div_floor(collateral_price * collateral_amount, debt_unit, debt_price * collateral_unit),
            liquidation_bonus,
        )
        debt_amount = min(debt_amount, debt_to_cover)
    else:
        collateral_amount = max_collateral
        debt_amount = debt_to_cover

    protocol_fee = 0
    if liquidation_protocol_fee != 0:
        bonus_collateral = collateral_amount - percent_div(collateral_amount, liquidation_bonus)
        protocol_fee = percent_mul(bonus_collateral, liquidation_protocol_fee)

    return collateral_amount, debt_amount, protocol_fee


# ============================================================================
# ACTION
# ============================================================================

def compute_liquidation(
    view: PoolView,
    collateral_asset_id: int,
    debt_asset_id: int,
    account: str,
    debt_to_cover: Optional[int] = None,
    liquidator: Optional[str] = None,
    receive_receipt: bool = False,
) -> PendingAction:
    """
    Liquidate part of an unhealthy account.

    Args:
        view: Pool state
        collateral_asset_id: Asset to seize
        debt_asset_id: Asset to repay
        account: Account being liquidated
        debt_to_cover: Maximum debt to repay; None repays as much as allowed
        liquidator: Receiving account; required when receive_receipt is True
        receive_receipt: Take seized collateral as supply balance instead of underlying

    Returns:
        PendingAction whose details carry a LiquidationResult under "result"

    Raises:
        NotLiquidatable: Healthy account, no debt in the asset, or nothing to seize
        CollateralNotEnabled: The asset is not collateral for the account
        InvalidAmount, InvalidAsset, AssetInactive, AssetPaused,
        InsufficientLiquidity
    """
    if debt_to_cover is not None:
        validate_amount(debt_to_cover)
    if receive_receipt and not liquidator:
        raise ValueError("receive_receipt requires a liquidator account")
    if liquidator == account:
        raise ValueError("an account cannot liquidate itself")

    staged = StagedView(view)
    collateral_reserve = accrue_reserve(staged, collateral_asset_id)
    debt_reserve = accrue_reserve(staged, debt_asset_id)
    validate_liquidation_reserves(collateral_reserve, debt_reserve)

    data_before = calculate_account_data(staged, account)
    if data_before.health_factor >= HEALTH_FACTOR_UNIT:
        raise NotLiquidatable(
            f"{account} is healthy (health factor {data_before.health_factor})"
        )

    user_config = staged.get_account(account).user_configuration
    category = account_category(staged, account)
    params = resolve_risk_parameters(collateral_reserve, category)
    if not user_config.is_using_as_collateral(collateral_asset_id) or params.liquidation_threshold == 0:
        raise CollateralNotEnabled(
            f"{collateral_reserve.symbol} is not collateral of {account}"
        )
    if not user_config.is_borrowing(debt_asset_id):
        raise NotLiquidatable(f"{account} has no {debt_reserve.symbol} debt")

    debt_position = staged.get_position(account, debt_asset_id)
    user_debt = debt_balance(debt_position.scaled_variable_debt, debt_reserve.variable_borrow_index)
    close_factor = calculate_close_factor(data_before.total_collateral_base, staged.config)
    max_liquidatable = percent_mul(user_debt, close_factor)
    requested = max_liquidatable if debt_to_cover is None else min(debt_to_cover, max_liquidatable)

    collateral_position = staged.get_position(account, collateral_asset_id)
    user_collateral = supply_balance(collateral_position.scaled_supply, collateral_reserve.liquidity_index)
    collateral_quote = staged.get_price_quote(collateral_asset_id)
    debt_quote = staged.get_price_quote(debt_asset_id)

    collateral_amount, debt_amount, protocol_fee = calculate_available_collateral_to_liquidate(
        collateral_price=collateral_quote.price,
        debt_price=debt_quote.price,
        collateral_unit=collateral_reserve.unit,
        debt_unit=debt_reserve.unit,
        debt_to_cover=requested,
        user_collateral_balance=user_collateral,
        liquidation_bonus=params.liquidation_bonus,
        liquidation_protocol_fee=collateral_reserve.configuration.liquidation_protocol_fee,
    )
    if debt_amount == 0 or collateral_amount == 0:
        raise NotLiquidatable(
            f"Liquidation of {account} would repay {debt_amount} and seize {collateral_amount}"
        )

    # Debt side
    burn_debt(staged, account, debt_asset_id, debt_amount)

    # Collateral side: scaled amounts leave the account once, then split
    collateral_reserve = staged.get_reserve(collateral_asset_id)
    index = collateral_reserve.liquidity_index
    collateral_position = staged.get_position(account, collateral_asset_id)
    if collateral_amount == user_collateral:
        scaled_seized = collateral_position.scaled_supply
    else:
        scaled_seized = min(scaled_supply_to_burn(collateral_amount, index), collateral_position.scaled_supply)
    scaled_fee = min(scaled_supply_to_mint(protocol_fee, index), scaled_seized)
    scaled_to_liquidator = scaled_seized - scaled_fee
    liquidator_amount = collateral_amount - protocol_fee

    remaining = collateral_position.scaled_supply - scaled_seized
    staged.put_position(replace(collateral_position, scaled_supply=remaining))
    if remaining == 0:
        set_collateral_flag(staged, account, collateral_asset_id, False)

    if scaled_fee:
        treasury = staged.config.treasury_account
        treasury_position = staged.get_position(treasury, collateral_asset_id)
        staged.put_position(replace(treasury_position, scaled_supply=treasury_position.scaled_supply + scaled_fee))

    if receive_receipt:
        liquidator_position = staged.get_position(liquidator, collateral_asset_id)
        first_supply = liquidator_position.scaled_supply == 0
        staged.put_position(replace(
            liquidator_position,
            scaled_supply=liquidator_position.scaled_supply + scaled_to_liquidator,
        ))
        if first_supply and scaled_to_liquidator and can_auto_enable_collateral(
                staged, liquidator, collateral_reserve):
            set_collateral_flag(staged, liquidator, collateral_asset_id, True)
    else:
        if liquidator_amount > collateral_reserve.available_liquidity:
            raise InsufficientLiquidity(
                f"Cannot pay out {liquidator_amount} {collateral_reserve.symbol}: "
                f"only {collateral_reserve.available_liquidity} available"
            )
        collateral_reserve = replace(
            collateral_reserve,
            total_scaled_supply=checked_sub(collateral_reserve.total_scaled_supply, scaled_to_liquidator),
        )
        staged.put_reserve(update_interest_rates(collateral_reserve, liquidity_taken=liquidator_amount))

    data_after = calculate_account_data(staged, account)
    result = LiquidationResult(
        debt_repaid=debt_amount,
        collateral_seized=collateral_amount,
        protocol_fee=protocol_fee,
        receive_receipt=receive_receipt,
        health_factor_before=data_before.health_factor,
        health_factor_after=data_after.health_factor,
    )
    return staged.build("liquidate", account, {
        "collateral_asset_id": collateral_asset_id,
        "debt_asset_id": debt_asset_id,
        "liquidator": liquidator,
        "result": result,
    })
