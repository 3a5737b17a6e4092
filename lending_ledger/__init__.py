"""
lending_ledger - Pooled lending ledger

A deterministic ledger for an over-collateralized lending pool: accounts
supply assets to earn interest, borrow against collateral, and are
liquidated when their health factor drops below 1.0.

Usage:
    from datetime import datetime
    from lending_ledger import (
        LendingPool, StaticPricingSource, AssetListing, InterestRateParams, parse_units,
    )

    pricing = StaticPricingSource({"USDC": "1", "WETH": "2000"})
    pool = LendingPool("main", pricing, datetime(2025, 1, 1))
    params = InterestRateParams("0.8", 0, "0.04", "0.75")

    usdc = pool.list_asset(AssetListing("USDC", 6, params, ltv=7500,
                                        liquidation_threshold=8000, liquidation_bonus=10500))
    weth = pool.list_asset(AssetListing("WETH", 18, params, ltv=8000,
                                        liquidation_threshold=8250, liquidation_bonus=10500))

    pool.supply("lp", usdc, parse_units("10000", 6))
    pool.supply("alice", weth, parse_units("1", 18))
    pool.borrow("alice", usdc, parse_units("1000", 6))
    pool.account_data("alice").health_factor
"""

# Core types
from .core import (
    PoolView,
    StagedView,
    ReserveData,
    AccountPosition,
    AccountConfig,
    EModeCategory,
    RecordChange,
    PendingAction,
    ActionRecord,
    WAD,
    RAY,
    PERCENTAGE_FACTOR,
    SECONDS_PER_YEAR,
    BASE_CURRENCY_UNIT,
    MAX_UINT256,
    HEALTH_FACTOR_UNIT,
    LedgerError,
    InvalidAsset,
    AssetAlreadyListed,
    ReserveInUse,
    AssetInactive,
    AssetPaused,
    AssetFrozen,
    BorrowingNotEnabled,
    CapExceeded,
    InsufficientHealth,
    InsufficientCollateral,
    InsufficientBalance,
    InsufficientLiquidity,
    NotLiquidatable,
    StalePrice,
    ArithmeticOverflow,
    InvalidAmount,
    CollateralNotEnabled,
    IsolationModeViolation,
    EModeViolation,
    StaleState,
)

# Bitsets
from .configuration import ReserveConfiguration, UserConfiguration, MAX_RESERVES_COUNT

# Fixed-point math and boundary conversions
from .fixed_point import (
    wad_mul, wad_div,
    ray_mul, ray_div, ray_mul_floor, ray_mul_ceil, ray_div_floor, ray_div_ceil,
    percent_mul, percent_div,
    wad_to_ray, ray_to_wad,
    mul_div_floor, mul_div_ceil,
    calculate_linear_interest, calculate_compounded_interest,
    parse_units, format_units, to_ray, to_wad, bps, to_base_currency,
)

# Interest rates and accrual
from .interest_rate import InterestRateParams, calculate_interest_rates, calculate_utilization, rate_curve
from .reserve_logic import (
    accrue,
    accrue_reserve,
    update_interest_rates,
    normalized_income,
    normalized_debt,
    total_supply,
    total_variable_debt,
    supply_balance,
    debt_balance,
    utilization,
    to_timestamp,
)

# Health and liquidation
from .health import (
    AccountData,
    IsolationState,
    RiskParameters,
    calculate_account_data,
    get_isolation_mode_state,
    validate_health_factor,
    resolve_risk_parameters,
)
from .liquidation import (
    LiquidationResult,
    calculate_close_factor,
    calculate_available_collateral_to_liquidate,
    compute_liquidation,
)

# Actions and administration
from .actions import (
    compute_supply,
    compute_withdraw,
    compute_borrow,
    compute_repay,
    compute_set_use_as_collateral,
    compute_set_user_emode,
    compute_accrue,
    compute_mint_to_treasury,
)
from .registry import (
    AssetListing,
    compute_list_asset,
    compute_drop_asset,
    compute_set_risk_parameters,
    compute_set_caps,
    compute_set_debt_ceiling,
    compute_set_reserve_factor,
    compute_set_liquidation_protocol_fee,
    compute_set_interest_rate_params,
    compute_set_active,
    compute_set_paused,
    compute_set_frozen,
    compute_set_borrowing_enabled,
    compute_set_borrowable_in_isolation,
    compute_set_emode_category,
    compute_set_asset_emode_category,
)

# Pricing, configuration, store
from .pricing_source import PriceQuote, PricingSource, StaticPricingSource, TimeSeriesPricingSource
from .config import PoolConfig
from .pool import LendingPool


__all__ = [
    # Core types
    'PoolView', 'StagedView', 'ReserveData', 'AccountPosition', 'AccountConfig',
    'EModeCategory', 'RecordChange', 'PendingAction', 'ActionRecord',
    'WAD', 'RAY', 'PERCENTAGE_FACTOR', 'SECONDS_PER_YEAR', 'BASE_CURRENCY_UNIT',
    'MAX_UINT256', 'HEALTH_FACTOR_UNIT',
    # Errors
    'LedgerError', 'InvalidAsset', 'AssetAlreadyListed', 'ReserveInUse', 'AssetInactive',
    'AssetPaused', 'AssetFrozen', 'BorrowingNotEnabled', 'CapExceeded',
    'InsufficientHealth', 'InsufficientCollateral', 'InsufficientBalance',
    'InsufficientLiquidity', 'NotLiquidatable', 'StalePrice', 'ArithmeticOverflow',
    'InvalidAmount', 'CollateralNotEnabled', 'IsolationModeViolation', 'EModeViolation',
    'StaleState',
    # Bitsets
    'ReserveConfiguration', 'UserConfiguration', 'MAX_RESERVES_COUNT',
    # Fixed-point
    'wad_mul', 'wad_div', 'ray_mul', 'ray_div', 'ray_mul_floor', 'ray_mul_ceil',
    'ray_div_floor', 'ray_div_ceil', 'percent_mul', 'percent_div', 'wad_to_ray',
    'ray_to_wad', 'mul_div_floor', 'mul_div_ceil', 'calculate_linear_interest',
    'calculate_compounded_interest', 'parse_units', 'format_units', 'to_ray', 'to_wad',
    'bps', 'to_base_currency',
    # Rates and accrual
    'InterestRateParams', 'calculate_interest_rates', 'calculate_utilization', 'rate_curve',
    'accrue', 'accrue_reserve', 'update_interest_rates', 'normalized_income',
    'normalized_debt', 'total_supply', 'total_variable_debt', 'supply_balance', 'debt_balance',
    'utilization', 'to_timestamp',
    # Health and liquidation
    'AccountData', 'IsolationState', 'RiskParameters', 'calculate_account_data',
    'get_isolation_mode_state', 'validate_health_factor', 'resolve_risk_parameters',
    'LiquidationResult', 'calculate_close_factor',
    'calculate_available_collateral_to_liquidate', 'compute_liquidation',
    # Actions
    'compute_supply', 'compute_withdraw', 'compute_borrow', 'compute_repay',
    'compute_set_use_as_collateral', 'compute_set_user_emode', 'compute_accrue',
    'compute_mint_to_treasury',
    # Registry
    'AssetListing', 'compute_list_asset', 'compute_drop_asset', 'compute_set_risk_parameters',
    'compute_set_caps', 'compute_set_debt_ceiling', 'compute_set_reserve_factor',
    'compute_set_liquidation_protocol_fee', 'compute_set_interest_rate_params',
    'compute_set_active', 'compute_set_paused', 'compute_set_frozen',
    'compute_set_borrowing_enabled', 'compute_set_borrowable_in_isolation',
    'compute_set_emode_category', 'compute_set_asset_emode_category',
    # Pricing, config, store
    'PriceQuote', 'PricingSource', 'StaticPricingSource', 'TimeSeriesPricingSource',
    'PoolConfig', 'LendingPool',
]

__version__ = '1.0.0'
