"""
reserve_logic.py - Index accrual and rate refresh for a single reserve

Balances are stored scaled: actual = scaled * index. Accrual advances the
two indices to the current time, accrues the treasury's share of the new
interest, and then refreshes the rates from the resulting utilization.

    liquidity_index      grows by simple interest at the supply rate
    variable_borrow_index grows by compounded interest at the borrow rate

Accruing twice at the same timestamp is a no-op. Projections
(normalized_income / normalized_debt) give the index a reserve would have
if accrued now, without touching it; health computations use these for
reserves the current action does not touch.

Rounding follows the protocol-favoring rule: supply-side amounts round
down, debt-side amounts round up.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from .core import ReserveData, StagedView
from .fixed_point import (
    ray_mul_floor, ray_mul_ceil, ray_div_floor, ray_div_ceil,
    percent_mul, checked_sub, checked_add,
    calculate_linear_interest, calculate_compounded_interest,
)
from .interest_rate import calculate_utilization, calculate_interest_rates


_EPOCH = datetime(1970, 1, 1)


def to_timestamp(moment: datetime) -> int:
    """Whole seconds since the epoch. Naive datetimes are read as UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return (moment - _EPOCH) // timedelta(seconds=1)


# ============================================================================
# PROJECTIONS
# ============================================================================

def normalized_income(reserve: ReserveData, now: int) -> int:
    """Liquidity index as of `now` (ray)."""
    if now <= reserve.last_update_timestamp or reserve.current_liquidity_rate == 0:
        return reserve.liquidity_index
    cumulated = calculate_linear_interest(
        reserve.current_liquidity_rate, reserve.last_update_timestamp, now
    )
    return ray_mul_floor(cumulated, reserve.liquidity_index)


def normalized_debt(reserve: ReserveData, now: int) -> int:
    """Variable borrow index as of `now` (ray)."""
    if now <= reserve.last_update_timestamp or reserve.total_scaled_variable_debt == 0:
        return reserve.variable_borrow_index
    cumulated = calculate_compounded_interest(
        reserve.current_variable_borrow_rate, reserve.last_update_timestamp, now
    )
    return ray_mul_ceil(cumulated, reserve.variable_borrow_index)


# ============================================================================
# SCALED <-> ACTUAL
# ============================================================================

def supply_balance(scaled_supply: int, liquidity_index: int) -> int:
    return ray_mul_floor(scaled_supply, liquidity_index)


def debt_balance(scaled_debt: int, borrow_index: int) -> int:
    return ray_mul_ceil(scaled_debt, borrow_index)


def scaled_supply_to_mint(amount: int, liquidity_index: int) -> int:
    return ray_div_floor(amount, liquidity_index)


def scaled_supply_to_burn(amount: int, liquidity_index: int) -> int:
    return ray_div_ceil(amount, liquidity_index)


def scaled_debt_to_mint(amount: int, borrow_index: int) -> int:
    return ray_div_ceil(amount, borrow_index)


def scaled_debt_to_burn(amount: int, borrow_index: int) -> int:
    return ray_div_floor(amount, borrow_index)


def total_supply(reserve: ReserveData) -> int:
    """Actual supply across all accounts, excluding unminted treasury accruals."""
    return supply_balance(reserve.total_scaled_supply, reserve.liquidity_index)


def total_variable_debt(reserve: ReserveData) -> int:
    return debt_balance(reserve.total_scaled_variable_debt, reserve.variable_borrow_index)


def utilization(reserve: ReserveData) -> int:
    """Borrowed share of the reserve (ray)."""
    return calculate_utilization(total_variable_debt(reserve), reserve.available_liquidity)


# ============================================================================
# STATE TRANSITIONS
# ============================================================================

def refresh_rates(reserve: ReserveData) -> ReserveData:
    """Recompute both rates from the reserve's current utilization."""
    supply_rate, borrow_rate = calculate_interest_rates(
        utilization(reserve),
        reserve.interest_rate_params,
        reserve.configuration.reserve_factor,
    )
    if (supply_rate == reserve.current_liquidity_rate
            and borrow_rate == reserve.current_variable_borrow_rate):
        return reserve
    return replace(
        reserve,
        current_liquidity_rate=supply_rate,
        current_variable_borrow_rate=borrow_rate,
    )


def update_interest_rates(
    reserve: ReserveData,
    liquidity_added: int = 0,
    liquidity_taken: int = 0,
) -> ReserveData:
    """
    Apply an underlying cash movement and refresh rates.

    Call after the scaled totals reflect the action, so utilization sees the
    post-action debt.
    """
    available = checked_sub(checked_add(reserve.available_liquidity, liquidity_added), liquidity_taken)
    return refresh_rates(replace(reserve, available_liquidity=available))


def accrue(reserve: ReserveData, now: int) -> ReserveData:
    """
    Bring a reserve's indices up to `now`.

    Args:
        reserve: Reserve to accrue
        now: Seconds timestamp, must not precede the last update

    Returns:
        The same reserve when no time elapsed, otherwise a new record with
        advanced indices, treasury accruals and refreshed rates.

    Raises:
        ValueError: If `now` precedes the reserve's last update
    """
    last = reserve.last_update_timestamp
    if now < last:
        raise ValueError(f"cannot accrue reserve {reserve.symbol} backwards: {last} -> {now}")
    if now == last:
        return reserve

    liquidity_index = normalized_income(reserve, now)
    borrow_index = normalized_debt(reserve, now)

    accrued_to_treasury = reserve.accrued_to_treasury
    reserve_factor = reserve.configuration.reserve_factor
    if reserve_factor != 0 and borrow_index != reserve.variable_borrow_index:
        previous_debt = debt_balance(reserve.total_scaled_variable_debt, reserve.variable_borrow_index)
        current_debt = debt_balance(reserve.total_scaled_variable_debt, borrow_index)
        to_treasury = percent_mul(current_debt - previous_debt, reserve_factor)
        if to_treasury:
            accrued_to_treasury += ray_div_floor(to_treasury, liquidity_index)

    accrued = replace(
        reserve,
        liquidity_index=liquidity_index,
        variable_borrow_index=borrow_index,
        accrued_to_treasury=accrued_to_treasury,
        last_update_timestamp=now,
    )
    return refresh_rates(accrued)


def accrue_reserve(view: StagedView, asset_id: int) -> ReserveData:
    """Accrue a reserve to the view's current time and stage the result."""
    reserve = view.get_reserve(asset_id)
    accrued = accrue(reserve, to_timestamp(view.current_time))
    if accrued is not reserve:
        view.put_reserve(accrued)
    return accrued
