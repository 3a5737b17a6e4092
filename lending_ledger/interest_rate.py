"""
interest_rate.py - Kinked utilization curve

Borrow rate as a piecewise-linear function of utilization:

    u <= optimal:  base + slope1 * u / optimal
    u >  optimal:  base + slope1 + slope2 * (u - optimal) / (1 - optimal)

Supply rate = borrow_rate * u * (1 - reserve_factor).

All values are rays except the reserve factor (basis points). rate_curve()
samples the curve into a numpy array for plotting and reports.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .core import RAY, PERCENTAGE_FACTOR
from .fixed_point import ray_div, percent_mul, mul_div_floor, to_ray


# Highest borrow rate a curve may reach at 100% utilization (1000% APR)
MAX_BORROW_RATE = 10 * RAY


@dataclass(frozen=True, slots=True)
class InterestRateParams:
    """
    Utilization curve parameters, all in ray.

    Non-integer inputs (str, Decimal) are read as fractions and converted,
    so InterestRateParams("0.8", 0, "0.04", "0.75") is an 80% kink with a
    4% and a 75% slope.
    """
    optimal_usage_ratio: int
    base_variable_borrow_rate: int
    variable_rate_slope1: int
    variable_rate_slope2: int

    def __post_init__(self):
        for name in ("optimal_usage_ratio", "base_variable_borrow_rate",
                     "variable_rate_slope1", "variable_rate_slope2"):
            value = getattr(self, name)
            if isinstance(value, bool):
                raise TypeError(f"{name} must be numeric, got bool")
            if not isinstance(value, int):
                object.__setattr__(self, name, to_ray(value))

        if not 0 < self.optimal_usage_ratio < RAY:
            raise ValueError(
                f"optimal_usage_ratio must be in (0, RAY), got {self.optimal_usage_ratio}"
            )
        for name in ("base_variable_borrow_rate", "variable_rate_slope1", "variable_rate_slope2"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.max_variable_borrow_rate > MAX_BORROW_RATE:
            raise ValueError(
                f"maximum borrow rate {self.max_variable_borrow_rate} exceeds {MAX_BORROW_RATE}"
            )

    @property
    def max_variable_borrow_rate(self) -> int:
        return self.base_variable_borrow_rate + self.variable_rate_slope1 + self.variable_rate_slope2


def calculate_utilization(total_debt: int, available_liquidity: int) -> int:
    """
    Share of the reserve that is lent out (ray).

    Returns 0 for an empty reserve.
    """
    if total_debt == 0:
        return 0
    return ray_div(total_debt, available_liquidity + total_debt)


def calculate_borrow_rate(utilization: int, params: InterestRateParams) -> int:
    """Variable borrow rate at a utilization (ray)."""
    utilization = min(max(utilization, 0), RAY)
    rate = params.base_variable_borrow_rate
    if utilization > params.optimal_usage_ratio:
        excess = mul_div_floor(
            params.variable_rate_slope2,
            utilization - params.optimal_usage_ratio,
            RAY - params.optimal_usage_ratio,
        )
        return rate + params.variable_rate_slope1 + excess
    return rate + mul_div_floor(params.variable_rate_slope1, utilization, params.optimal_usage_ratio)


def calculate_interest_rates(
    utilization: int,
    params: InterestRateParams,
    reserve_factor: int = 0,
) -> Tuple[int, int]:
    """
    Compute (supply_rate, borrow_rate) for a utilization.

    Args:
        utilization: Borrowed share of the reserve (ray), clamped to [0, RAY]
        params: Curve parameters
        reserve_factor: Share of interest kept by the treasury (bps)

    Returns:
        (liquidity_rate, variable_borrow_rate), both ray

    Example:
        >>> params = InterestRateParams("0.8", 0, "0.04", "0.75")
        >>> calculate_interest_rates(to_ray("0.8"), params)[1] == to_ray("0.04")
        True
    """
    if not 0 <= reserve_factor <= PERCENTAGE_FACTOR:
        raise ValueError(f"reserve_factor must be in [0, {PERCENTAGE_FACTOR}], got {reserve_factor}")
    utilization = min(max(utilization, 0), RAY)
    borrow_rate = calculate_borrow_rate(utilization, params)
    supply_rate = percent_mul(
        mul_div_floor(borrow_rate, utilization, RAY), PERCENTAGE_FACTOR - reserve_factor
    )
    return supply_rate, borrow_rate


def rate_curve(
    params: InterestRateParams,
    reserve_factor: int = 0,
    n_points: int = 101,
) -> np.ndarray:
    """
    Sample the curve for plotting.

    Returns:
        Array of shape (n_points, 3) with columns utilization, borrow_rate,
        supply_rate, as plain fractions (0.05 == 5%).
    """
    if n_points < 2:
        raise ValueError("n_points must be at least 2")
    utilizations = np.linspace(0, 1, n_points)
    curve = np.empty((n_points, 3))
    for i, u in enumerate(utilizations):
        u_ray = RAY * i // (n_points - 1)
        supply_rate, borrow_rate = calculate_interest_rates(u_ray, params, reserve_factor)
        curve[i] = (u, borrow_rate / RAY, supply_rate / RAY)
    return curve
