"""
fixed_point.py - Integer fixed-point arithmetic for the lending ledger

Three scales are used throughout:
- WAD: 18 decimals (health factor)
- RAY: 27 decimals (indices and rates)
- Basis points: PERCENTAGE_FACTOR = 10_000 (risk parameters and fees)

Rounding:
    Plain operations round half-up. The _floor and _ceil variants are used
    wherever a rounding direction must favor the protocol: scaled amounts
    credited to accounts round down, scaled amounts taken from accounts and
    debt owed round up.

Every result must stay in [0, MAX_UINT256]; anything outside raises
ArithmeticOverflow. Division by zero raises ArithmeticOverflow as well.

The module also carries the boundary converters (parse_units, format_units,
to_ray, bps, to_base_currency) that turn human decimal input into integers.
No float ever enters the accounting path.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .core import (
    WAD, HALF_WAD, RAY, HALF_RAY, WAD_RAY_RATIO,
    PERCENTAGE_FACTOR, HALF_PERCENTAGE_FACTOR, SECONDS_PER_YEAR,
    BASE_CURRENCY_DECIMALS, MAX_UINT256,
    ArithmeticOverflow,
)


Numeric = Union[int, str, Decimal]

# Enough digits to hold any uint256 exactly
_CONVERSION_PRECISION = 80


# ============================================================================
# RANGE CHECKS
# ============================================================================

def _check_operands(op: str, *values: int) -> None:
    for value in values:
        if value < 0 or value > MAX_UINT256:
            raise ArithmeticOverflow(f"{op}: operand out of range: {value}")


def _check_result(op: str, value: int) -> int:
    if value < 0 or value > MAX_UINT256:
        raise ArithmeticOverflow(f"{op}: result out of range: {value}")
    return value


def _check_divisor(op: str, divisor: int) -> None:
    if divisor == 0:
        raise ArithmeticOverflow(f"{op}: division by zero")


def checked_add(a: int, b: int) -> int:
    _check_operands("add", a, b)
    return _check_result("add", a + b)


def checked_sub(a: int, b: int) -> int:
    """Subtract, raising ArithmeticOverflow on underflow."""
    _check_operands("sub", a, b)
    return _check_result("sub", a - b)


# ============================================================================
# WAD / RAY
# ============================================================================

def wad_mul(a: int, b: int) -> int:
    _check_operands("wad_mul", a, b)
    return _check_result("wad_mul", (a * b + HALF_WAD) // WAD)


def wad_div(a: int, b: int) -> int:
    _check_operands("wad_div", a, b)
    _check_divisor("wad_div", b)
    return _check_result("wad_div", (a * WAD + b // 2) // b)


def ray_mul(a: int, b: int) -> int:
    _check_operands("ray_mul", a, b)
    return _check_result("ray_mul", (a * b + HALF_RAY) // RAY)


def ray_mul_floor(a: int, b: int) -> int:
    _check_operands("ray_mul_floor", a, b)
    return _check_result("ray_mul_floor", (a * b) // RAY)


def ray_mul_ceil(a: int, b: int) -> int:
    _check_operands("ray_mul_ceil", a, b)
    return _check_result("ray_mul_ceil", -((-a * b) // RAY))


def ray_div(a: int, b: int) -> int:
    _check_operands("ray_div", a, b)
    _check_divisor("ray_div", b)
    return _check_result("ray_div", (a * RAY + b // 2) // b)


def ray_div_floor(a: int, b: int) -> int:
    """
    Divide two rays, rounding DOWN.

    Used to mint scaled balances that are credited to an account.
    """
    _check_operands("ray_div_floor", a, b)
    _check_divisor("ray_div_floor", b)
    return _check_result("ray_div_floor", (a * RAY) // b)


def ray_div_ceil(a: int, b: int) -> int:
    """
    Divide two rays, rounding UP.

    Used to burn scaled balances taken from an account and to mint
    scaled debt.
    """
    _check_operands("ray_div_ceil", a, b)
    _check_divisor("ray_div_ceil", b)
    return _check_result("ray_div_ceil", -((-a * RAY) // b))


def wad_to_ray(a: int) -> int:
    _check_operands("wad_to_ray", a)
    return _check_result("wad_to_ray", a * WAD_RAY_RATIO)


def ray_to_wad(a: int) -> int:
    _check_operands("ray_to_wad", a)
    result, remainder = divmod(a, WAD_RAY_RATIO)
    if remainder >= WAD_RAY_RATIO // 2:
        result += 1
    return result


# ============================================================================
# PERCENTAGES
# ============================================================================

def percent_mul(value: int, percentage: int) -> int:
    """Multiply by a basis-point percentage, rounding half-up."""
    _check_operands("percent_mul", value, percentage)
    return _check_result(
        "percent_mul", (value * percentage + HALF_PERCENTAGE_FACTOR) // PERCENTAGE_FACTOR
    )


def percent_div(value: int, percentage: int) -> int:
    """Divide by a basis-point percentage, rounding half-up."""
    _check_operands("percent_div", value, percentage)
    _check_divisor("percent_div", percentage)
    return _check_result(
        "percent_div", (value * PERCENTAGE_FACTOR + percentage // 2) // percentage
    )


# ============================================================================
# GENERIC MUL-DIV
# ============================================================================

def mul_div_floor(a: int, b: int, denominator: int) -> int:
    _check_operands("mul_div", a, b, denominator)
    _check_divisor("mul_div", denominator)
    return _check_result("mul_div", (a * b) // denominator)


def mul_div_ceil(a: int, b: int, denominator: int) -> int:
    _check_operands("mul_div", a, b, denominator)
    _check_divisor("mul_div", denominator)
    return _check_result("mul_div", -((-a * b) // denominator))


# ============================================================================
# INTEREST
# ============================================================================

def calculate_linear_interest(rate: int, last_update: int, current: int) -> int:
    """
    Simple interest factor over the elapsed period.

    Args:
        rate: Annual rate (ray)
        last_update: Seconds timestamp of the previous accrual
        current: Seconds timestamp now

    Returns:
        RAY + rate * elapsed / SECONDS_PER_YEAR (ray)
    """
    elapsed = current - last_update
    if elapsed < 0:
        raise ValueError(f"time moved backwards: {last_update} -> {current}")
    _check_operands("linear_interest", rate)
    return _check_result("linear_interest", RAY + (rate * elapsed) // SECONDS_PER_YEAR)


def calculate_compounded_interest(rate: int, last_update: int, current: int) -> int:
    """
    Compound interest factor over the elapsed period, second-order approximation.

        (1 + x)^n ~= 1 + n*x + n*(n-1)/2 * x^2

    where x is the per-second rate and n the elapsed seconds. Always at
    least the linear factor for the same period.

    Args:
        rate: Annual rate (ray)
        last_update: Seconds timestamp of the previous accrual
        current: Seconds timestamp now

    Returns:
        Growth factor (ray)
    """
    exp = current - last_update
    if exp < 0:
        raise ValueError(f"time moved backwards: {last_update} -> {current}")
    if exp == 0:
        return RAY
    _check_operands("compounded_interest", rate)

    exp_minus_one = exp - 1
    base_power_two = ray_mul(rate, rate) // (SECONDS_PER_YEAR * SECONDS_PER_YEAR)

    first_term = (rate * exp) // SECONDS_PER_YEAR
    second_term = (exp * exp_minus_one * base_power_two) // 2
    return _check_result("compounded_interest", RAY + first_term + second_term)


# ============================================================================
# BOUNDARY CONVERSIONS
# ============================================================================

def _to_decimal(value: Numeric) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("booleans are not amounts")
    if isinstance(value, float):
        # Route floats through their shortest repr so 0.1 stays 0.1
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"not a decimal value: {value!r}") from exc


def _scale_exact(value: Numeric, decimals: int) -> int:
    with localcontext() as ctx:
        ctx.prec = _CONVERSION_PRECISION
        scaled = _to_decimal(value).scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{value!r} has more than {decimals} decimal places")
    return int(scaled)


def parse_units(value: Numeric, decimals: int) -> int:
    """
    Convert a human amount to the asset's smallest unit.

    Example:
        parse_units("1.5", 6)  # 1_500_000
    """
    return _scale_exact(value, decimals)


def format_units(amount: int, decimals: int) -> Decimal:
    """Convert an integer amount in smallest units back to a Decimal."""
    return Decimal(amount).scaleb(-decimals)


def to_ray(fraction: Numeric) -> int:
    """Convert a fraction (e.g. "0.04" for 4%) to ray."""
    return _scale_exact(fraction, 27)


def to_wad(fraction: Numeric) -> int:
    return _scale_exact(fraction, 18)


def bps(percent: Numeric) -> int:
    """
    Convert a percentage to basis points.

    Example:
        bps(80)      # 8000
        bps("0.05")  # 5
    """
    return _scale_exact(_to_decimal(percent) * 100, 0)


def to_base_currency(price: Numeric) -> int:
    """Convert a price in whole base currency to base units (8 decimals)."""
    return _scale_exact(price, BASE_CURRENCY_DECIMALS)
