"""
health.py - Account health engine

Values an account's collateral and debt in the base currency and derives
its health factor:

    health_factor = sum(collateral_i * threshold_i) / total_debt     (wad)

An account with no debt has health factor MAX_UINT256. An account with
health factor below 1.0 (WAD) is liquidatable.

Only reserves flagged in the account's participation bitmap are visited;
the registry is never scanned. Reserves are valued at their projected
indices for the view's current time, so balances include interest that
has not yet been committed by an accrual.

E-mode: when the account has a category and a reserve belongs to it, the
category's LTV, threshold and bonus replace the reserve's own, and the
category price cap (if any) caps that collateral's price. Reserves outside
the category keep their own parameters.

Staleness: every quote's stale flag is folded into AccountData.price_stale.
The engine never raises on a stale quote; callers decide.

Functions:
    resolve_risk_parameters(reserve, category) -> RiskParameters
    calculate_account_data(view, account) -> AccountData
    calculate_available_borrows(collateral, debt, ltv) -> int
    get_isolation_mode_state(view, account) -> IsolationState
    validate_health_factor(view, account) -> AccountData
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from .core import (
    PoolView, ReserveData, EModeCategory,
    MAX_UINT256, HEALTH_FACTOR_UNIT,
    InsufficientHealth, InsufficientCollateral, StalePrice,
)
from .fixed_point import wad_div, percent_mul, mul_div_floor, mul_div_ceil
from .reserve_logic import (
    to_timestamp, normalized_income, normalized_debt, supply_balance, debt_balance,
)


# ============================================================================
# TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class RiskParameters:
    """Effective collateral parameters for one reserve and one account."""
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    price_cap: Optional[int] = None


@dataclass(frozen=True, slots=True)
class AccountData:
    """
    Aggregate valuation of one account.

    Attributes:
        total_collateral_base: Collateral value (base units)
        total_debt_base: Debt value (base units)
        available_borrows_base: Additional debt the LTV allows (base units)
        current_liquidation_threshold: Value-weighted average threshold (bps)
        ltv: Value-weighted average LTV (bps)
        health_factor: Wad; MAX_UINT256 when there is no debt
        price_stale: True if any quote used was stale
        has_zero_ltv_collateral: True if some enabled collateral has LTV 0
    """
    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int
    price_stale: bool = False
    has_zero_ltv_collateral: bool = False

    @property
    def is_healthy(self) -> bool:
        return self.health_factor >= HEALTH_FACTOR_UNIT

    def as_tuple(self) -> Tuple[int, int, int, int, int, int]:
        return (
            self.total_collateral_base,
            self.total_debt_base,
            self.available_borrows_base,
            self.current_liquidation_threshold,
            self.ltv,
            self.health_factor,
        )


@dataclass(frozen=True, slots=True)
class IsolationState:
    """
    Whether an account is in isolation mode.

    An account is isolated when its only enabled collateral is an asset
    with a debt ceiling.
    """
    active: bool
    asset_id: Optional[int] = None
    debt_ceiling: int = 0


EMPTY_ACCOUNT_DATA = AccountData(0, 0, 0, 0, 0, MAX_UINT256)


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def resolve_risk_parameters(
    reserve: ReserveData,
    category: Optional[EModeCategory],
) -> RiskParameters:
    """
    Effective LTV, threshold, bonus and price cap for a reserve.

    Category parameters apply only when the reserve belongs to the
    account's category.
    """
    config = reserve.configuration
    if category is not None and config.emode_category == category.category_id:
        return RiskParameters(
            ltv=category.ltv,
            liquidation_threshold=category.liquidation_threshold,
            liquidation_bonus=category.liquidation_bonus,
            price_cap=category.price_cap,
        )
    return RiskParameters(
        ltv=config.ltv,
        liquidation_threshold=config.liquidation_threshold,
        liquidation_bonus=config.liquidation_bonus,
    )


def calculate_health_factor(total_collateral_base: int, total_debt_base: int,
                            liquidation_threshold: int) -> int:
    if total_debt_base == 0:
        return MAX_UINT256
    return wad_div(percent_mul(total_collateral_base, liquidation_threshold), total_debt_base)


def calculate_available_borrows(total_collateral_base: int, total_debt_base: int, ltv: int) -> int:
    """Headroom under the LTV limit (base units), never negative."""
    limit = percent_mul(total_collateral_base, ltv)
    if limit <= total_debt_base:
        return 0
    return limit - total_debt_base


def collateral_price(price: int, params: RiskParameters) -> int:
    if params.price_cap is not None and price > params.price_cap:
        return params.price_cap
    return price


# ============================================================================
# VIEW-BASED COMPUTATIONS
# ============================================================================

def account_category(view: PoolView, account: str) -> Optional[EModeCategory]:
    category_id = view.get_account(account).emode_category
    if category_id == 0:
        return None
    return view.get_emode_category(category_id)


def calculate_account_data(view: PoolView, account: str) -> AccountData:
    """
    Value an account's positions and compute its health factor.

    Args:
        view: Pool state (a StagedView gives the post-action picture)
        account: Account to value

    Returns:
        AccountData. Collateral is rounded down and debt rounded up.

    Raises:
        StalePrice: Only if a participated asset has no price at all
    """
    user_config = view.get_account(account).user_configuration
    if user_config.is_empty():
        return EMPTY_ACCOUNT_DATA

    category = account_category(view, account)
    now = to_timestamp(view.current_time)

    total_collateral = 0
    total_debt = 0
    weighted_ltv = 0
    weighted_threshold = 0
    price_stale = False
    has_zero_ltv_collateral = False

    for asset_id, is_collateral, is_borrowing in user_config.iter_assets():
        reserve = view.get_reserve(asset_id)
        params = resolve_risk_parameters(reserve, category)
        counts_as_collateral = is_collateral and params.liquidation_threshold != 0
        if not counts_as_collateral and not is_borrowing:
            continue

        quote = view.get_price_quote(asset_id)
        price_stale = price_stale or quote.stale
        position = view.get_position(account, asset_id)

        if counts_as_collateral:
            balance = supply_balance(position.scaled_supply, normalized_income(reserve, now))
            value = mul_div_floor(balance, collateral_price(quote.price, params), reserve.unit)
            total_collateral += value
            weighted_threshold += value * params.liquidation_threshold
            if params.ltv != 0:
                weighted_ltv += value * params.ltv
            elif value != 0:
                has_zero_ltv_collateral = True

        if is_borrowing:
            debt = debt_balance(position.scaled_variable_debt, normalized_debt(reserve, now))
            total_debt += mul_div_ceil(debt, quote.price, reserve.unit)

    if total_collateral:
        average_ltv = weighted_ltv // total_collateral
        average_threshold = weighted_threshold // total_collateral
    else:
        average_ltv = 0
        average_threshold = 0

    return AccountData(
        total_collateral_base=total_collateral,
        total_debt_base=total_debt,
        available_borrows_base=calculate_available_borrows(total_collateral, total_debt, average_ltv),
        current_liquidation_threshold=average_threshold,
        ltv=average_ltv,
        health_factor=calculate_health_factor(total_collateral, total_debt, average_threshold),
        price_stale=price_stale,
        has_zero_ltv_collateral=has_zero_ltv_collateral,
    )


def get_isolation_mode_state(view: PoolView, account: str) -> IsolationState:
    """Return whether the account is isolated, and by which asset."""
    user_config = view.get_account(account).user_configuration
    if not user_config.is_using_as_collateral_one():
        return IsolationState(active=False)
    asset_id = user_config.first_collateral_asset()
    ceiling = view.get_reserve(asset_id).configuration.debt_ceiling
    if ceiling == 0:
        return IsolationState(active=False)
    return IsolationState(active=True, asset_id=asset_id, debt_ceiling=ceiling)


def validate_health_factor(view: PoolView, account: str, check_ltv: bool = False) -> AccountData:
    """
    Require a healthy post-action account.

    Args:
        view: Pool state including the staged action
        account: Account to check
        check_ltv: Also require debt within the LTV-weighted collateral value

    Returns:
        The AccountData that passed

    Raises:
        StalePrice: If any price used was stale
        InsufficientHealth: If the health factor is below 1.0
        InsufficientCollateral: If check_ltv and debt exceeds the LTV limit
    """
    data = calculate_account_data(view, account)
    if data.total_debt_base == 0:
        return data
    if data.price_stale:
        raise StalePrice(f"Cannot assess health of {account}: stale price")
    if data.health_factor < HEALTH_FACTOR_UNIT:
        raise InsufficientHealth(
            f"Health factor of {account} would be {data.health_factor} (< {HEALTH_FACTOR_UNIT})"
        )
    if check_ltv and data.total_debt_base > percent_mul(data.total_collateral_base, data.ltv):
        raise InsufficientCollateral(
            f"Debt of {account} ({data.total_debt_base}) would exceed its borrowing power "
            f"({percent_mul(data.total_collateral_base, data.ltv)})"
        )
    return data
