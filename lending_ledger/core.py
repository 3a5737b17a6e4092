"""
Core types for the lending ledger.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scales, percentage factor, representable range
2. Exceptions: LedgerError and the rejection taxonomy (each with a code)
3. Immutable records: ReserveData, AccountPosition, AccountConfig, EModeCategory
4. Protocols: PoolView for read-only pool access
5. Change records: RecordChange, PendingAction, ActionRecord
6. StagedView: an overlay of uncommitted changes used while computing an action

Records are frozen. Engines never mutate the pool; they stage new records
on a StagedView and hand back a PendingAction for the pool to commit.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, TYPE_CHECKING,
    runtime_checkable, Mapping,
)

from .configuration import ReserveConfiguration, UserConfiguration

if TYPE_CHECKING:
    from .config import PoolConfig
    from .interest_rate import InterestRateParams
    from .pricing_source import PriceQuote


# ============================================================================
# CONSTANTS
# ============================================================================

# Wad: 18 digits of precision (health factor)
WAD = 10**18
HALF_WAD = WAD // 2

# Ray: 27 digits of precision (indices and rates)
RAY = 10**27
HALF_RAY = RAY // 2

WAD_RAY_RATIO = 10**9

# Percentages are expressed in basis points: 10_000 == 100%
PERCENTAGE_FACTOR = 10_000
HALF_PERCENTAGE_FACTOR = PERCENTAGE_FACTOR // 2

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Prices and values are expressed in a base currency with 8 decimals
BASE_CURRENCY_DECIMALS = 8
BASE_CURRENCY_UNIT = 10**BASE_CURRENCY_DECIMALS

# Upper bound of the representable range for every fixed-point quantity
MAX_UINT256 = (1 << 256) - 1

# Health factor below this value means the account is liquidatable
HEALTH_FACTOR_UNIT = WAD

# Debt ceilings are stored with 2 decimals in base currency
DEBT_CEILING_DECIMALS = 2

# Record kinds carried by RecordChange
RECORD_RESERVE = "reserve"
RECORD_POSITION = "position"
RECORD_ACCOUNT = "account"
RECORD_EMODE_CATEGORY = "emode_category"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger rejections."""
    code = "LEDGER_ERROR"


class InvalidAsset(LedgerError):
    """Raised when an asset id is unknown, dropped, or not valid for the call."""
    code = "INVALID_ASSET"


class AssetAlreadyListed(LedgerError):
    """Raised when listing a symbol that already has a live registry entry."""
    code = "ASSET_ALREADY_LISTED"


class ReserveInUse(LedgerError):
    """Raised when dropping a reserve that still holds supply, debt or treasury accruals."""
    code = "RESERVE_IN_USE"


class AssetInactive(LedgerError):
    """Raised when acting on a reserve that is not active."""
    code = "ASSET_INACTIVE"


class AssetPaused(LedgerError):
    """Raised when acting on a paused reserve."""
    code = "ASSET_PAUSED"


class AssetFrozen(LedgerError):
    """Raised when supplying to or borrowing from a frozen reserve."""
    code = "ASSET_FROZEN"


class BorrowingNotEnabled(LedgerError):
    """Raised when borrowing an asset with borrowing disabled."""
    code = "BORROWING_NOT_ENABLED"


class CapExceeded(LedgerError):
    """
    Raised when an action would exceed a supply cap, borrow cap, debt ceiling,
    or the registry capacity.

    Attributes:
        cap_kind: "supply", "borrow", "debt_ceiling" or "reserves"
    """
    code = "CAP_EXCEEDED"

    def __init__(self, message: str, cap_kind: str):
        super().__init__(message)
        self.cap_kind = cap_kind


class InsufficientHealth(LedgerError):
    """Raised when the post-action health factor would drop below 1.0."""
    code = "INSUFFICIENT_HEALTH"


class InsufficientCollateral(InsufficientHealth):
    """Raised when debt would exceed the LTV-weighted collateral value."""
    code = "INSUFFICIENT_COLLATERAL"


class InsufficientBalance(LedgerError):
    """Raised when withdrawing more than the account's supply balance."""
    code = "INSUFFICIENT_BALANCE"


class InsufficientLiquidity(LedgerError):
    """Raised when the reserve does not hold enough underlying for the action."""
    code = "INSUFFICIENT_LIQUIDITY"


class NotLiquidatable(LedgerError):
    """Raised when a liquidation target is healthy or nothing can be liquidated."""
    code = "NOT_LIQUIDATABLE"


class StalePrice(LedgerError):
    """Raised when the price sentinel signals stale or missing pricing."""
    code = "STALE_PRICE"


class ArithmeticOverflow(LedgerError):
    """Raised when a fixed-point operation leaves the representable range."""
    code = "ARITHMETIC_OVERFLOW"


class InvalidAmount(LedgerError):
    """Raised for zero, negative, non-integer, or dust amounts."""
    code = "INVALID_AMOUNT"


class CollateralNotEnabled(LedgerError):
    """Raised when an asset cannot be, or is not, used as collateral by the account."""
    code = "COLLATERAL_NOT_ENABLED"


class IsolationModeViolation(LedgerError):
    """Raised when an action breaks isolation-mode restrictions."""
    code = "ISOLATION_MODE_VIOLATION"


class EModeViolation(LedgerError):
    """Raised when an action breaks e-mode category restrictions."""
    code = "EMODE_VIOLATION"


class StaleState(LedgerError):
    """Raised when a pending action was computed against records that have since changed."""
    code = "STALE_STATE"


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ReserveData:
    """
    Registry entry and accounting record for one listed asset.

    Attributes:
        asset_id: Stable sequential id, never reused
        symbol: Asset identifier supplied at listing
        configuration: Risk parameters and flags bitset
        interest_rate_params: Utilization curve parameters
        liquidity_index: Cumulated supply income (ray), starts at RAY
        variable_borrow_index: Cumulated debt growth (ray), starts at RAY
        current_liquidity_rate: Annual supply rate (ray)
        current_variable_borrow_rate: Annual borrow rate (ray)
        last_update_timestamp: Seconds since epoch of the last accrual
        accrued_to_treasury: Scaled supply owed to the treasury, not yet minted
        total_scaled_supply: Sum of scaled supply balances
        total_scaled_variable_debt: Sum of scaled debt balances
        available_liquidity: Underlying held by the pool and free to lend
        isolation_mode_total_debt: Debt borrowed against this asset in isolation (2 decimals)
        dropped: Hidden from enumeration; id retired
    """
    asset_id: int
    symbol: str
    configuration: ReserveConfiguration
    interest_rate_params: InterestRateParams
    liquidity_index: int = RAY
    variable_borrow_index: int = RAY
    current_liquidity_rate: int = 0
    current_variable_borrow_rate: int = 0
    last_update_timestamp: int = 0
    accrued_to_treasury: int = 0
    total_scaled_supply: int = 0
    total_scaled_variable_debt: int = 0
    available_liquidity: int = 0
    isolation_mode_total_debt: int = 0
    dropped: bool = False

    @property
    def decimals(self) -> int:
        return self.configuration.decimals

    @property
    def unit(self) -> int:
        """One whole token in the asset's smallest unit."""
        return 10 ** self.configuration.decimals


@dataclass(frozen=True, slots=True)
class AccountPosition:
    """Scaled balances of one account in one reserve."""
    account: str
    asset_id: int
    scaled_supply: int = 0
    scaled_variable_debt: int = 0

    def is_empty(self) -> bool:
        return self.scaled_supply == 0 and self.scaled_variable_debt == 0


@dataclass(frozen=True, slots=True)
class AccountConfig:
    """
    Account-wide state: participation bitmap and chosen e-mode category.

    The bitmap is the only source for which reserves an account touches;
    health computations never scan the registry.
    """
    account: str
    user_configuration: UserConfiguration = field(default_factory=UserConfiguration)
    emode_category: int = 0


@dataclass(frozen=True, slots=True)
class EModeCategory:
    """
    Risk-parameter override for accounts specializing in correlated assets.

    Attributes:
        category_id: 1..255 (0 means no category)
        label: Human-readable name
        ltv: Loan-to-value in basis points
        liquidation_threshold: Basis points
        liquidation_bonus: Basis points, 10_000 + premium
        price_cap: Optional cap on collateral prices (base currency units)
    """
    category_id: int
    label: str
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    price_cap: Optional[int] = None

    def __post_init__(self):
        if not 1 <= self.category_id <= 255:
            raise ValueError(f"e-mode category id must be in [1, 255], got {self.category_id}")
        if self.ltv > self.liquidation_threshold:
            raise ValueError(
                f"e-mode ltv ({self.ltv}) cannot exceed liquidation threshold "
                f"({self.liquidation_threshold})"
            )
        if self.liquidation_threshold == 0 or self.liquidation_threshold > PERCENTAGE_FACTOR:
            raise ValueError(
                f"e-mode liquidation threshold must be in (0, {PERCENTAGE_FACTOR}], "
                f"got {self.liquidation_threshold}"
            )
        if self.liquidation_bonus <= PERCENTAGE_FACTOR:
            raise ValueError(
                f"e-mode liquidation bonus must exceed {PERCENTAGE_FACTOR}, got {self.liquidation_bonus}"
            )
        if self.liquidation_threshold * self.liquidation_bonus > PERCENTAGE_FACTOR * PERCENTAGE_FACTOR:
            raise ValueError("e-mode liquidation threshold * bonus cannot exceed 100%")
        if self.price_cap is not None and self.price_cap <= 0:
            raise ValueError(f"e-mode price cap must be positive, got {self.price_cap}")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PoolView(Protocol):
    """
    Read-only interface to pool state.

    Engines and action builders accept a PoolView and never mutate it.
    LendingPool implements this protocol; StagedView overlays uncommitted
    changes on top of any other PoolView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the pool."""
        ...

    @property
    def config(self) -> PoolConfig:
        """Return the pool configuration."""
        ...

    @property
    def next_asset_id(self) -> int:
        """Return the id the next listed asset will receive."""
        ...

    def get_reserve(self, asset_id: int) -> ReserveData:
        """
        Return the registry entry for an asset id, dropped or not.

        Raises InvalidAsset if the id was never assigned.
        """
        ...

    def find_asset_id(self, symbol: str) -> Optional[int]:
        """Return the id of the live (not dropped) reserve for a symbol."""
        ...

    def list_reserves(self) -> List[int]:
        """Return ids of all live reserves, ascending."""
        ...

    def get_position(self, account: str, asset_id: int) -> AccountPosition:
        """Return the account's position, or an empty one."""
        ...

    def get_account(self, account: str) -> AccountConfig:
        """Return the account's global state, or an empty one."""
        ...

    def get_emode_category(self, category_id: int) -> Optional[EModeCategory]:
        """Return a configured e-mode category, or None."""
        ...

    def get_price_quote(self, asset_id: int) -> PriceQuote:
        """Return the current price quote for an asset (raises StalePrice if missing)."""
        ...


# ============================================================================
# CHANGE RECORDS
# ============================================================================

def _freeze_details(details: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a details dict to a sorted tuple of pairs."""
    if not details:
        return ()
    return tuple(sorted(details.items()))


@dataclass(frozen=True, slots=True)
class RecordChange:
    """
    Before/after snapshot of one record touched by an action.

    Attributes:
        kind: RECORD_RESERVE, RECORD_POSITION, RECORD_ACCOUNT or RECORD_EMODE_CATEGORY
        key: asset_id, (account, asset_id), account, or category_id
        old: Record before the change (None if created by this action)
        new: Record after the change
    """
    kind: str
    key: Any
    old: Any
    new: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields that differ between old and new, as (old, new) pairs."""
        if self.old is None:
            return {name: (None, getattr(self.new, name)) for name in self.new.__dataclass_fields__}
        changes = {}
        for name in self.new.__dataclass_fields__:
            old_val = getattr(self.old, name)
            new_val = getattr(self.new, name)
            if old_val != new_val:
                changes[name] = (old_val, new_val)
        return changes


@dataclass(frozen=True, slots=True)
class PendingAction:
    """
    An action computed but not yet committed - represents INTENT.

    Built by compute_* functions from a StagedView. LendingPool.execute()
    verifies every old snapshot still matches and commits all changes at once.

    Attributes:
        action: Action name (e.g. "supply", "liquidate", "list_asset")
        account: Acting account, if any
        changes: Snapshots of every record the action touches
        timestamp: Pool time the action was computed at
        details: Action outputs (amounts, health factors, ...)
    """
    action: str
    account: Optional[str]
    changes: Tuple[RecordChange, ...]
    timestamp: datetime
    details: Tuple[Tuple[str, Any], ...] = ()

    @property
    def result(self) -> Dict[str, Any]:
        return dict(self.details)

    def is_empty(self) -> bool:
        return not self.changes

    def __repr__(self) -> str:
        return f"PendingAction({self.action}, account={self.account}, {len(self.changes)} changes)"


@dataclass(frozen=True, slots=True)
class ActionRecord:
    """
    A committed, immutable action - represents FACT.

    Attributes:
        action: Action name
        account: Acting account, if any
        changes: Snapshots of every record the action touched
        timestamp: When the PendingAction was computed
        exec_id: Unique execution identifier (pool + sequence + time)
        pool_name: Name of the pool that committed this
        sequence_number: Monotonic within the pool
        details: Action outputs
    """
    action: str
    account: Optional[str]
    changes: Tuple[RecordChange, ...]
    timestamp: datetime
    exec_id: str
    pool_name: str
    sequence_number: int
    details: Tuple[Tuple[str, Any], ...] = ()

    @property
    def result(self) -> Dict[str, Any]:
        return dict(self.details)

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' Action: ' + self.action + '  ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   account   : ' + str(self.account))}│",
            f"│{pad('   timestamp : ' + str(self.timestamp))}│",
            f"│{pad('   sequence  : ' + str(self.sequence_number))}│",
        ]
        for name, value in self.details:
            lines.append(f"│{pad(f'   {name} = {value!r}')}│")
        lines.append(f"├{bar}┤")
        for change in self.changes:
            lines.append(f"│{pad(f'   [{change.kind} {change.key!r}]')}│")
            for field_name, (old_val, new_val) in change.changed_fields().items():
                lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# ============================================================================
# STAGED VIEW
# ============================================================================

class StagedView:
    """
    A PoolView that overlays uncommitted records on top of a base view.

    Action builders read through the overlay, so checks made after a staged
    mutation (health factor, caps) see the hypothetical post-action state.
    Nothing reaches the base view until the resulting PendingAction is
    executed.

    Example:
        staged = StagedView(pool)
        staged.put_position(replace(staged.get_position("alice", 0), scaled_supply=10))
        pending = staged.build("supply", "alice", {"amount": 10})
        pool.execute(pending)
    """

    def __init__(self, base: PoolView):
        self._base = base
        self._reserves: Dict[int, ReserveData] = {}
        self._created_reserves: set = set()
        self._positions: Dict[Tuple[str, int], AccountPosition] = {}
        self._accounts: Dict[str, AccountConfig] = {}
        self._categories: Dict[int, EModeCategory] = {}
        self._next_asset_id: Optional[int] = None

    # PoolView --------------------------------------------------------------

    @property
    def current_time(self) -> datetime:
        return self._base.current_time

    @property
    def config(self) -> PoolConfig:
        return self._base.config

    @property
    def next_asset_id(self) -> int:
        if self._next_asset_id is not None:
            return self._next_asset_id
        return self._base.next_asset_id

    def get_reserve(self, asset_id: int) -> ReserveData:
        if asset_id in self._reserves:
            return self._reserves[asset_id]
        return self._base.get_reserve(asset_id)

    def find_asset_id(self, symbol: str) -> Optional[int]:
        for reserve in self._reserves.values():
            if reserve.symbol == symbol and not reserve.dropped:
                return reserve.asset_id
        asset_id = self._base.find_asset_id(symbol)
        if asset_id is not None and asset_id in self._reserves and self._reserves[asset_id].dropped:
            return None
        return asset_id

    def list_reserves(self) -> List[int]:
        ids = set(self._base.list_reserves())
        for asset_id, reserve in self._reserves.items():
            if reserve.dropped:
                ids.discard(asset_id)
            else:
                ids.add(asset_id)
        return sorted(ids)

    def get_position(self, account: str, asset_id: int) -> AccountPosition:
        key = (account, asset_id)
        if key in self._positions:
            return self._positions[key]
        return self._base.get_position(account, asset_id)

    def get_account(self, account: str) -> AccountConfig:
        if account in self._accounts:
            return self._accounts[account]
        return self._base.get_account(account)

    def get_emode_category(self, category_id: int) -> Optional[EModeCategory]:
        if category_id in self._categories:
            return self._categories[category_id]
        return self._base.get_emode_category(category_id)

    def get_price_quote(self, asset_id: int) -> PriceQuote:
        return self._base.get_price_quote(asset_id)

    # Staging ---------------------------------------------------------------

    def put_reserve(self, reserve: ReserveData, created: bool = False) -> None:
        self._reserves[reserve.asset_id] = reserve
        if created:
            self._created_reserves.add(reserve.asset_id)

    def put_position(self, position: AccountPosition) -> None:
        self._positions[(position.account, position.asset_id)] = position

    def put_account(self, account: AccountConfig) -> None:
        self._accounts[account.account] = account

    def put_category(self, category: EModeCategory) -> None:
        self._categories[category.category_id] = category

    def allocate_asset_id(self) -> int:
        asset_id = self.next_asset_id
        self._next_asset_id = asset_id + 1
        return asset_id

    def build(
        self,
        action: str,
        account: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> PendingAction:
        """
        Collect every staged record into a PendingAction.

        Old snapshots are read from the base view; records equal to their
        old snapshot are left out.
        """
        changes: List[RecordChange] = []
        for asset_id in sorted(self._reserves):
            new = self._reserves[asset_id]
            old = None if asset_id in self._created_reserves else self._base.get_reserve(asset_id)
            if old != new:
                changes.append(RecordChange(RECORD_RESERVE, asset_id, old, new))
        for key in sorted(self._positions):
            new = self._positions[key]
            old = self._base.get_position(*key)
            if old != new:
                changes.append(RecordChange(RECORD_POSITION, key, old, new))
        for name in sorted(self._accounts):
            new = self._accounts[name]
            old = self._base.get_account(name)
            if old != new:
                changes.append(RecordChange(RECORD_ACCOUNT, name, old, new))
        for category_id in sorted(self._categories):
            new = self._categories[category_id]
            old = self._base.get_emode_category(category_id)
            if old != new:
                changes.append(RecordChange(RECORD_EMODE_CATEGORY, category_id, old, new))
        return PendingAction(
            action=action,
            account=account,
            changes=tuple(changes),
            timestamp=self.current_time,
            details=_freeze_details(details),
        )
