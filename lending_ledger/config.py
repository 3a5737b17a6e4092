"""
config.py - Pool-wide configuration

PoolConfig holds the knobs that apply to every reserve: the treasury
account, liquidation close factors and the registry capacity. It is
immutable; build it directly or from a plain mapping (e.g. parsed JSON or
TOML), which rejects unknown keys.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .core import PERCENTAGE_FACTOR, BASE_CURRENCY_UNIT
from .configuration import MAX_RESERVES_COUNT


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """
    Attributes:
        treasury_account: Account credited with reserve-factor income and liquidation fees
        default_close_factor: Share of a debt that one liquidation may repay (bps)
        max_close_factor: Close factor used for small positions (bps)
        small_position_threshold_base: Collateral value (base units) below
            which max_close_factor applies
        max_reserves: Registry capacity
    """
    treasury_account: str = "treasury"
    default_close_factor: int = 5_000
    max_close_factor: int = PERCENTAGE_FACTOR
    small_position_threshold_base: int = 2_000 * BASE_CURRENCY_UNIT
    max_reserves: int = MAX_RESERVES_COUNT

    def __post_init__(self):
        if not self.treasury_account:
            raise ValueError("treasury_account cannot be empty")
        if not 0 < self.default_close_factor <= PERCENTAGE_FACTOR:
            raise ValueError(
                f"default_close_factor must be in (0, {PERCENTAGE_FACTOR}], got {self.default_close_factor}"
            )
        if not self.default_close_factor <= self.max_close_factor <= PERCENTAGE_FACTOR:
            raise ValueError(
                f"max_close_factor must be in [default_close_factor, {PERCENTAGE_FACTOR}], "
                f"got {self.max_close_factor}"
            )
        if self.small_position_threshold_base < 0:
            raise ValueError("small_position_threshold_base cannot be negative")
        if not 0 < self.max_reserves <= MAX_RESERVES_COUNT:
            raise ValueError(f"max_reserves must be in (0, {MAX_RESERVES_COUNT}], got {self.max_reserves}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> PoolConfig:
        """
        Build a config from a mapping, e.g. {"default_close_factor": 5000}.

        Raises:
            ValueError: On keys that are not config fields
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown PoolConfig keys: {unknown}")
        return cls(**dict(values))
