"""
pool.py - The lending pool store

LendingPool is the only module that mutates state. It owns the registry,
positions, account configs and e-mode categories, and commits
PendingActions built by the pure compute_* functions.

Key responsibilities:
    - Implements PoolView for read-only access by pure functions
    - Executes actions atomically: every record change applies or none does
    - Rejects actions computed against records that have since changed (StaleState)
    - Serializes compute + commit of boundary operations under one lock
    - Keeps a forward-only logical clock and an append-only action log
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging
import threading

from .config import PoolConfig
from .core import (
    ReserveData, AccountPosition, AccountConfig, EModeCategory,
    PendingAction, ActionRecord, RecordChange,
    RECORD_RESERVE, RECORD_POSITION, RECORD_ACCOUNT, RECORD_EMODE_CATEGORY,
    LedgerError, InvalidAsset, StaleState,
)
from .pricing_source import PricingSource, PriceQuote
from .health import AccountData, calculate_account_data
from .interest_rate import InterestRateParams
from .liquidation import LiquidationResult, compute_liquidation
from .reserve_logic import (
    to_timestamp, normalized_income, normalized_debt, supply_balance, debt_balance,
)
from .actions import (
    compute_supply, compute_withdraw, compute_borrow, compute_repay,
    compute_set_use_as_collateral, compute_set_user_emode,
    compute_accrue, compute_mint_to_treasury,
)
from .registry import (
    AssetListing,
    compute_list_asset, compute_drop_asset, compute_set_risk_parameters, compute_set_caps,
    compute_set_debt_ceiling, compute_set_reserve_factor, compute_set_liquidation_protocol_fee,
    compute_set_interest_rate_params, compute_set_active, compute_set_paused, compute_set_frozen,
    compute_set_borrowing_enabled, compute_set_borrowable_in_isolation,
    compute_set_emode_category, compute_set_asset_emode_category,
)


logger = logging.getLogger(__name__)

# Actions that change pool administration rather than account balances
ADMIN_ACTIONS = frozenset({
    "list_asset", "drop_asset", "set_risk_parameters", "set_caps", "set_debt_ceiling",
    "set_reserve_factor", "set_liquidation_protocol_fee", "set_interest_rate_params",
    "set_active", "set_paused", "set_frozen", "set_borrowing_enabled",
    "set_borrowable_in_isolation", "set_emode_category", "set_asset_emode_category",
})


class LendingPool:
    """
    Pooled lending ledger with full validation and audit trail.

    Implements the PoolView protocol, so the pool itself can be passed to
    the pure compute_* functions.

    Design Principles:
        - Always validates: compute_* functions check every precondition
          against a staged copy of the affected records before anything
          is committed.
        - Always logs: every committed action is appended to action_log
          and written to the module logger.

    Thread Safety:
        Boundary methods (supply, borrow, ...) hold an RLock across compute
        and commit, so concurrent callers are linearized. A PendingAction
        built outside the lock can still be passed to execute(); it is
        rejected with StaleState if any record it touches changed since.

    Example:
        pool = LendingPool("main", StaticPricingSource({"USDC": "1", "WETH": "2000"}))
        usdc = pool.list_asset(AssetListing("USDC", 6, params, ltv=7500,
                                            liquidation_threshold=8000,
                                            liquidation_bonus=10500))
        pool.supply("alice", usdc, 1_000 * 10**6)
        pool.account_data("alice").health_factor
    """

    def __init__(
        self,
        name: str,
        pricing_source: PricingSource,
        initial_time: Optional[datetime] = None,
        config: Optional[PoolConfig] = None,
        verbose: bool = False,
    ):
        """
        Create a pool.

        Args:
            name: Pool identifier, used in execution ids
            pricing_source: Price feed for account valuation
            initial_time: Starting time (default: 1970-01-01)
            config: Pool-wide settings (default: PoolConfig())
            verbose: Log committed actions at INFO instead of DEBUG
        """
        self.name = name
        self.pricing_source = pricing_source
        self._config = config or PoolConfig()
        self.verbose = verbose
        self.reserves: Dict[int, ReserveData] = {}
        self.positions: Dict[Tuple[str, int], AccountPosition] = {}
        self.accounts: Dict[str, AccountConfig] = {}
        self.emode_categories: Dict[int, EModeCategory] = {}
        self.action_log: List[ActionRecord] = []
        self._asset_ids_by_symbol: Dict[str, int] = {}
        self._next_asset_id = 0
        self._next_sequence = 0
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._lock = threading.RLock()

    # ========================================================================
    # PoolView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the pool."""
        return self._current_time

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def next_asset_id(self) -> int:
        return self._next_asset_id

    def get_reserve(self, asset_id: int) -> ReserveData:
        """
        Registry entry for an asset id.

        Raises:
            InvalidAsset: If the id was never assigned
        """
        try:
            return self.reserves[asset_id]
        except (KeyError, TypeError):
            raise InvalidAsset(f"Unknown asset id: {asset_id!r}") from None

    def find_asset_id(self, symbol: str) -> Optional[int]:
        return self._asset_ids_by_symbol.get(symbol)

    def list_reserves(self) -> List[int]:
        return sorted(asset_id for asset_id, r in self.reserves.items() if not r.dropped)

    def get_position(self, account: str, asset_id: int) -> AccountPosition:
        position = self.positions.get((account, asset_id))
        if position is None:
            return AccountPosition(account, asset_id)
        return position

    def get_account(self, account: str) -> AccountConfig:
        config = self.accounts.get(account)
        if config is None:
            return AccountConfig(account)
        return config

    def get_emode_category(self, category_id: int) -> Optional[EModeCategory]:
        return self.emode_categories.get(category_id)

    def get_price_quote(self, asset_id: int) -> PriceQuote:
        reserve = self.get_reserve(asset_id)
        return self.pricing_source.get_quote(reserve.symbol, self._current_time)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def asset_id(self, symbol: str) -> int:
        """Id of a live asset by symbol; raises InvalidAsset if not listed."""
        asset_id = self.find_asset_id(symbol)
        if asset_id is None:
            raise InvalidAsset(f"Asset not listed: {symbol}")
        return asset_id

    def account_data(self, account: str) -> AccountData:
        """Collateral, debt, borrowing power and health factor as of now."""
        with self._lock:
            return calculate_account_data(self, account)

    def get_user_balances(self, account: str) -> Dict[int, Tuple[int, int]]:
        """
        Current (supply, debt) balances per participated asset.

        Includes interest accrued up to the current time.
        """
        now = to_timestamp(self._current_time)
        balances = {}
        with self._lock:
            for (owner, asset_id), position in self.positions.items():
                if owner != account or position.is_empty():
                    continue
                reserve = self.reserves[asset_id]
                balances[asset_id] = (
                    supply_balance(position.scaled_supply, normalized_income(reserve, now)),
                    debt_balance(position.scaled_variable_debt, normalized_debt(reserve, now)),
                )
        return dict(sorted(balances.items()))

    def supply_balance(self, account: str, asset_id: int) -> int:
        return self.get_user_balances(account).get(asset_id, (0, 0))[0]

    def debt_balance(self, account: str, asset_id: int) -> int:
        return self.get_user_balances(account).get(asset_id, (0, 0))[1]

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the pool's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        with self._lock:
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{pool_name}:{sequence:012d}:{timestamp_seconds}"""
        return f"exec:{self.name}:{sequence:012d}:{to_timestamp(self._current_time)}"

    def _current_record(self, change: RecordChange):
        if change.kind == RECORD_RESERVE:
            return self.reserves.get(change.key)
        if change.kind == RECORD_POSITION:
            return self.get_position(*change.key)
        if change.kind == RECORD_ACCOUNT:
            return self.get_account(change.key)
        if change.kind == RECORD_EMODE_CATEGORY:
            return self.emode_categories.get(change.key)
        raise ValueError(f"Unknown record kind: {change.kind}")

    def _apply(self, change: RecordChange) -> None:
        if change.kind == RECORD_RESERVE:
            reserve: ReserveData = change.new
            self.reserves[change.key] = reserve
            if reserve.dropped:
                if self._asset_ids_by_symbol.get(reserve.symbol) == reserve.asset_id:
                    del self._asset_ids_by_symbol[reserve.symbol]
            else:
                self._asset_ids_by_symbol[reserve.symbol] = reserve.asset_id
            self._next_asset_id = max(self._next_asset_id, reserve.asset_id + 1)
        elif change.kind == RECORD_POSITION:
            self.positions[change.key] = change.new
        elif change.kind == RECORD_ACCOUNT:
            self.accounts[change.key] = change.new
        elif change.kind == RECORD_EMODE_CATEGORY:
            self.emode_categories[change.key] = change.new

    def execute(self, pending: PendingAction) -> ActionRecord:
        """
        Commit a PendingAction atomically.

        Every change's old snapshot must equal the pool's current record;
        nothing is applied otherwise.

        Args:
            pending: PendingAction from a compute_* function

        Returns:
            The ActionRecord appended to action_log

        Raises:
            StaleState: If any touched record changed since the action was computed
            ValueError: If the action was computed in the pool's future
        """
        with self._lock:
            if pending.timestamp > self._current_time:
                raise ValueError(
                    f"Action timestamp {pending.timestamp} is after pool time {self._current_time}"
                )
            for change in pending.changes:
                current = self._current_record(change)
                if current != change.old:
                    logger.info(
                        "%s rejected [%s]: %s %r changed since the action was computed",
                        pending.action, StaleState.code, change.kind, change.key,
                    )
                    raise StaleState(
                        f"{change.kind} {change.key!r} changed since {pending.action} was computed"
                    )

            for change in pending.changes:
                self._apply(change)

            sequence = self._next_sequence
            self._next_sequence += 1
            record = ActionRecord(
                action=pending.action,
                account=pending.account,
                changes=pending.changes,
                timestamp=pending.timestamp,
                exec_id=self._generate_exec_id(sequence),
                pool_name=self.name,
                sequence_number=sequence,
                details=pending.details,
            )
            self.action_log.append(record)

        level = logging.INFO if self.verbose or pending.action in ADMIN_ACTIONS else logging.DEBUG
        logger.log(level, "%s applied: account=%s seq=%d %s",
                   record.action, record.account, sequence, dict(record.details))
        return record

    def _run(self, compute: Callable[..., PendingAction], *args, **kwargs) -> ActionRecord:
        """Compute and commit under the lock; log rejections."""
        with self._lock:
            try:
                pending = compute(self, *args, **kwargs)
            except LedgerError as exc:
                logger.info("%s rejected [%s]: %s", compute.__name__, exc.code, exc)
                raise
            return self.execute(pending)

    # ========================================================================
    # USER ACTIONS
    # ========================================================================

    def supply(self, account: str, asset_id: int, amount: int) -> int:
        """Deposit `amount` (smallest units). Returns the amount supplied."""
        return self._run(compute_supply, account, asset_id, amount).result["amount"]

    def withdraw(self, account: str, asset_id: int, amount: Optional[int] = None) -> int:
        """Withdraw `amount`, or everything when None. Returns the amount withdrawn."""
        return self._run(compute_withdraw, account, asset_id, amount).result["amount"]

    def borrow(self, account: str, asset_id: int, amount: int) -> int:
        """Borrow `amount`. Returns the amount borrowed."""
        return self._run(compute_borrow, account, asset_id, amount).result["amount"]

    def repay(self, account: str, asset_id: int, amount: Optional[int] = None) -> int:
        """Repay up to `amount`, or all debt when None. Returns the amount repaid."""
        return self._run(compute_repay, account, asset_id, amount).result["amount"]

    def liquidate(
        self,
        collateral_asset_id: int,
        debt_asset_id: int,
        account: str,
        debt_to_cover: Optional[int] = None,
        liquidator: Optional[str] = None,
        receive_receipt: bool = False,
    ) -> LiquidationResult:
        """
        Liquidate part of an unhealthy account.

        Returns:
            LiquidationResult; result.as_tuple() is (debt_repaid, collateral_seized)
        """
        record = self._run(
            compute_liquidation, collateral_asset_id, debt_asset_id, account,
            debt_to_cover, liquidator, receive_receipt,
        )
        return record.result["result"]

    def set_use_as_collateral(self, account: str, asset_id: int, enabled: bool) -> ActionRecord:
        return self._run(compute_set_use_as_collateral, account, asset_id, enabled)

    def set_user_emode(self, account: str, category_id: int) -> ActionRecord:
        return self._run(compute_set_user_emode, account, category_id)

    def accrue(self, asset_id: Optional[int] = None) -> ActionRecord:
        """Accrue one reserve, or all live reserves when asset_id is None."""
        return self._run(compute_accrue, None if asset_id is None else [asset_id])

    def mint_to_treasury(self, asset_ids: Optional[List[int]] = None) -> Dict[int, int]:
        """Credit accrued reserve-factor income to the treasury. Returns minted amounts per asset."""
        return dict(self._run(compute_mint_to_treasury, asset_ids).result["minted"])

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def list_asset(self, listing: AssetListing) -> int:
        """Register an asset. Returns its new id."""
        return self._run(compute_list_asset, listing).result["asset_id"]

    def drop_asset(self, asset_id: int) -> ActionRecord:
        return self._run(compute_drop_asset, asset_id)

    def set_risk_parameters(self, asset_id: int, ltv: int, liquidation_threshold: int,
                            liquidation_bonus: int) -> ActionRecord:
        return self._run(compute_set_risk_parameters, asset_id, ltv,
                         liquidation_threshold, liquidation_bonus)

    def set_caps(self, asset_id: int, supply_cap: Optional[int] = None,
                 borrow_cap: Optional[int] = None) -> ActionRecord:
        return self._run(compute_set_caps, asset_id, supply_cap, borrow_cap)

    def set_debt_ceiling(self, asset_id: int, debt_ceiling: int) -> ActionRecord:
        return self._run(compute_set_debt_ceiling, asset_id, debt_ceiling)

    def set_reserve_factor(self, asset_id: int, reserve_factor: int) -> ActionRecord:
        return self._run(compute_set_reserve_factor, asset_id, reserve_factor)

    def set_liquidation_protocol_fee(self, asset_id: int, fee: int) -> ActionRecord:
        return self._run(compute_set_liquidation_protocol_fee, asset_id, fee)

    def set_interest_rate_params(self, asset_id: int, params: InterestRateParams) -> ActionRecord:
        return self._run(compute_set_interest_rate_params, asset_id, params)

    def set_active(self, asset_id: int, active: bool) -> ActionRecord:
        return self._run(compute_set_active, asset_id, active)

    def set_paused(self, asset_id: int, paused: bool) -> ActionRecord:
        return self._run(compute_set_paused, asset_id, paused)

    def set_frozen(self, asset_id: int, frozen: bool) -> ActionRecord:
        return self._run(compute_set_frozen, asset_id, frozen)

    def set_borrowing_enabled(self, asset_id: int, enabled: bool) -> ActionRecord:
        return self._run(compute_set_borrowing_enabled, asset_id, enabled)

    def set_borrowable_in_isolation(self, asset_id: int, borrowable: bool) -> ActionRecord:
        return self._run(compute_set_borrowable_in_isolation, asset_id, borrowable)

    def set_emode_category(self, category: EModeCategory) -> ActionRecord:
        return self._run(compute_set_emode_category, category)

    def set_asset_emode_category(self, asset_id: int, category_id: int) -> ActionRecord:
        return self._run(compute_set_asset_emode_category, asset_id, category_id)

    # ========================================================================
    # COPYING
    # ========================================================================

    def clone(self) -> LendingPool:
        """
        Create an independent copy of this pool.

        Records are immutable, so copying the containers is enough. The
        pricing source is shared.

        Returns:
            A new LendingPool with identical state and its own lock
        """
        with self._lock:
            cloned = LendingPool.__new__(LendingPool)
            cloned.name = self.name
            cloned.pricing_source = self.pricing_source
            cloned._config = self._config
            cloned.verbose = self.verbose
            cloned.reserves = dict(self.reserves)
            cloned.positions = dict(self.positions)
            cloned.accounts = dict(self.accounts)
            cloned.emode_categories = dict(self.emode_categories)
            cloned.action_log = list(self.action_log)
            cloned._asset_ids_by_symbol = dict(self._asset_ids_by_symbol)
            cloned._next_asset_id = self._next_asset_id
            cloned._next_sequence = self._next_sequence
            cloned._current_time = self._current_time
            cloned._lock = threading.RLock()
            return cloned

    def __repr__(self) -> str:
        return (f"LendingPool({self.name!r}, {len(self.list_reserves())} reserves, "
                f"{len(self.action_log)} actions, t={self._current_time})")

