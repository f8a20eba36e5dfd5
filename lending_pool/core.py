"""
Core types and pure helpers for the lending pool accounting core.

This module provides the foundational data structures and protocols for the pool:
1. Constants: fixed-point denominator (BP), receipt token prefixes, defaults
2. Protocols: the collaborators the pool consumes (clock, oracle, transfers,
   receipt minting, persistent store)
3. Immutable data structures: PoolParams, GlobalState, DebtPosition,
   RepayPosition, DepositMetadata, InterestMetadata, LiquidateData
4. Exceptions: PoolError and domain-specific error types
5. Fixed-point helpers

All amounts, rates, indices and prices are Python ints scaled by BP where they
represent fractions. Python ints are arbitrary precision, so products never
overflow before the (always flooring) division.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point denominator: BP represents a multiplier of 1.0.
BP = 1_000_000_000

SECONDS_PER_YEAR = 31_536_000

# Receipt token identifiers are the pool asset prefixed with one of these.
LEND_TOKEN_PREFIX = "L"
BORROW_TOKEN_PREFIX = "B"

# Positions with a health factor strictly below this are liquidatable.
DEFAULT_HEALTH_FACTOR_THRESHOLD = BP

DEFAULT_QUOTE_CURRENCY = "USD"

# Operation kinds (strings, matching the dispatcher's event types)
OP_DEPOSIT = "DEPOSIT"
OP_WITHDRAW = "WITHDRAW"
OP_BORROW = "BORROW"
OP_REPAY = "REPAY"
OP_LIQUIDATE = "LIQUIDATE"
OP_ACCRUE = "ACCRUE"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Asset / token identifier (e.g. "EGLD", "LEGLD").
AssetId = str

# Opaque debt position identifier.
PositionId = str

# Raw persisted record.
Record = Dict[str, Any]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class PoolError(Exception):
    """Base exception for all lending pool errors."""
    pass


class InvalidParameter(PoolError, ValueError):
    """Raised for malformed input: negative round delta, bad asset id, bad amount."""
    pass


class NotFound(PoolError, LookupError):
    """Raised when a position, deposit, pool or pool configuration does not exist."""
    pass


class InsufficientFunds(PoolError):
    """Raised when a debit exceeds a balance or the pool lacks liquidity."""
    pass


class InsufficientCollateral(PoolError):
    """Raised when pledged collateral does not cover the requested borrow."""
    pass


class InvariantViolation(PoolError):
    """
    Raised on index regression or a failed conservation check.

    Fatal for the operation in progress: it is aborted, never repaired.
    """
    pass


class NotLiquidatable(PoolError):
    """Raised when liquidation is attempted on a position at or above the threshold."""
    pass


class AlreadySettled(PoolError):
    """Raised when repaying or liquidating a closed or liquidated position."""
    pass


class PriceUnavailable(PoolError):
    """Raised by a price oracle when no recent quote exists."""
    pass


# ============================================================================
# VALIDATION AND FIXED-POINT HELPERS
# ============================================================================

def require_int(name: str, value: Any, minimum: Optional[int] = 0) -> int:
    """
    Validate that value is an int (not a bool) and not below minimum.

    Raises:
        InvalidParameter: If the value has the wrong type or is out of range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an int, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        raise InvalidParameter(f"{name} must be >= {minimum}, got {value}")
    return value


def require_asset_id(name: str, value: Any) -> str:
    """Validate a non-empty asset identifier without surrounding whitespace."""
    if not isinstance(value, str) or not value or value.strip() != value:
        raise InvalidParameter(f"{name} must be a non-empty identifier, got {value!r}")
    return value


def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute a * b / denominator, flooring. All operands are non-negative."""
    if denominator == 0:
        raise InvariantViolation("division by zero in fixed-point arithmetic")
    return a * b // denominator


def lend_token_id(asset_id: AssetId) -> str:
    """Identifier of the supply-side receipt token for a pool asset."""
    return LEND_TOKEN_PREFIX + asset_id


def borrow_token_id(asset_id: AssetId) -> str:
    """Identifier of the borrow-side receipt token for a pool asset."""
    return BORROW_TOKEN_PREFIX + asset_id


# ============================================================================
# PROTOCOLS (external collaborators)
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Source of the current discrete time unit. Monotonically non-decreasing."""

    def current_round(self) -> int:
        ...


@runtime_checkable
class PriceOracle(Protocol):
    """
    External price feed.

    quote() returns the price of asset_id denominated in quote_currency as an
    int. Implementations raise PriceUnavailable when no recent quote exists.
    """

    def quote(self, asset_id: AssetId, quote_currency: str) -> int:
        ...


@runtime_checkable
class AssetTransfer(Protocol):
    """Moves assets in and out of accounts. debit() raises InsufficientFunds."""

    def credit(self, account: str, asset_id: AssetId, amount: int) -> None:
        ...

    def debit(self, account: str, asset_id: AssetId, amount: int) -> None:
        ...


@runtime_checkable
class ReceiptMinter(Protocol):
    """Mints and burns receipt tokens (lend and borrow receipts)."""

    def mint(self, token_id: str, amount: int, attributes: Optional[Any] = None) -> 'Receipt':
        ...

    def burn(self, token_id: str, amount: int, nonce: Optional[int] = None) -> None:
        ...


@runtime_checkable
class PersistentStore(Protocol):
    """Key-value storage for pool records."""

    def get(self, key: str) -> Optional[Record]:
        ...

    def set(self, key: str, value: Record) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolParams:
    """
    Immutable rate curve coefficients, BP-scaled per-round rates.

    Attributes:
        base_rate: Borrow rate at zero utilization
        slope1: Rate increase from zero up to optimal utilization
        slope2: Rate increase from optimal up to full utilization
        optimal_utilization: Kink of the curve, in [0, BP]
        reserve_factor: Protocol share of interest, in [0, BP]
    """
    base_rate: int
    slope1: int
    slope2: int
    optimal_utilization: int
    reserve_factor: int

    def __post_init__(self):
        require_int("base_rate", self.base_rate)
        require_int("slope1", self.slope1)
        require_int("slope2", self.slope2)
        require_int("optimal_utilization", self.optimal_utilization)
        require_int("reserve_factor", self.reserve_factor)
        if self.optimal_utilization > BP:
            raise InvalidParameter(
                f"optimal_utilization must be <= {BP}, got {self.optimal_utilization}"
            )
        if self.reserve_factor > BP:
            raise InvalidParameter(
                f"reserve_factor must be <= {BP}, got {self.reserve_factor}"
            )

    def to_dict(self) -> Record:
        return {
            'base_rate': self.base_rate,
            'slope1': self.slope1,
            'slope2': self.slope2,
            'optimal_utilization': self.optimal_utilization,
            'reserve_factor': self.reserve_factor,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'PoolParams':
        return cls(
            base_rate=raw['base_rate'],
            slope1=raw['slope1'],
            slope2=raw['slope2'],
            optimal_utilization=raw['optimal_utilization'],
            reserve_factor=raw['reserve_factor'],
        )


@dataclass(frozen=True, slots=True)
class GlobalState:
    """
    Immutable snapshot of a pool's global accounting state.

    Each accrual or mutation creates a NEW instance (value semantics), which
    lets a failed operation be abandoned without any rollback logic.

    Attributes:
        total_reserves: Pool asset held by the pool and available to lend
        total_borrowed: Outstanding principal across open positions
        borrow_index: Cumulative borrow index, starts at BP, never decreases
        supply_index: Cumulative supply index, starts at BP, never decreases
        rewards_reserve: Interest attributed to depositors, not yet paid out
        last_update_round: Round of the last accrual
    """
    total_reserves: int = 0
    total_borrowed: int = 0
    borrow_index: int = BP
    supply_index: int = BP
    rewards_reserve: int = 0
    last_update_round: int = 0

    def __post_init__(self):
        require_int("total_reserves", self.total_reserves)
        require_int("total_borrowed", self.total_borrowed)
        require_int("borrow_index", self.borrow_index, minimum=BP)
        require_int("supply_index", self.supply_index, minimum=BP)
        require_int("rewards_reserve", self.rewards_reserve)
        require_int("last_update_round", self.last_update_round)

    @property
    def total_supplied(self) -> int:
        """Total supplied capital: what is lent out plus what is left."""
        return self.total_reserves + self.total_borrowed

    def to_dict(self) -> Record:
        return {
            'total_reserves': self.total_reserves,
            'total_borrowed': self.total_borrowed,
            'borrow_index': self.borrow_index,
            'supply_index': self.supply_index,
            'rewards_reserve': self.rewards_reserve,
            'last_update_round': self.last_update_round,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'GlobalState':
        return cls(**{k: raw[k] for k in (
            'total_reserves', 'total_borrowed', 'borrow_index',
            'supply_index', 'rewards_reserve', 'last_update_round',
        )})


@dataclass(frozen=True, slots=True)
class DepositMetadata:
    """Attributes of a lend receipt: round and supply index at mint time."""
    round: int
    supply_index: int = BP


@dataclass(frozen=True, slots=True)
class InterestMetadata:
    """Attributes of a borrow receipt: round at which it was minted."""
    round: int


@dataclass(frozen=True, slots=True)
class Receipt:
    """A minted receipt token batch."""
    token_id: str
    nonce: int
    amount: int
    attributes: Any = None


@dataclass(frozen=True, slots=True)
class DebtPosition:
    """
    A borrower's debt against the pool.

    Interest is never written into the position. The owed amount at any later
    index is principal * current_borrow_index // open_borrow_index.

    Attributes:
        position_id: Opaque identifier
        borrower: Account that opened the position
        asset_id: Borrowed (pool) asset
        principal: Outstanding principal as of open_borrow_index
        open_borrow_index: Borrow index at open or last re-snapshot
        open_round: Round at which the position was opened
        collateral_amount: Escrowed collateral still backing the position
        collateral_asset_id: Collateral asset
        collateral_open_round: Round at which collateral was escrowed
        health_factor: Health factor snapshot (BP-scaled) at last evaluation
        liquidated: Whether the position was fully liquidated
        settled: Whether the position was fully repaid
        receipt_nonce: Nonce of the borrow receipt minted at open
        borrowed_amount: Amount borrowed at open (size of the borrow receipt)
    """
    position_id: PositionId
    borrower: str
    asset_id: AssetId
    principal: int
    open_borrow_index: int
    open_round: int
    collateral_amount: int
    collateral_asset_id: AssetId
    collateral_open_round: int
    health_factor: int = 0
    liquidated: bool = False
    settled: bool = False
    receipt_nonce: int = 0
    borrowed_amount: int = 0

    def __post_init__(self):
        require_int("principal", self.principal)
        require_int("open_borrow_index", self.open_borrow_index, minimum=BP)
        require_int("open_round", self.open_round)
        require_int("collateral_amount", self.collateral_amount)
        require_int("collateral_open_round", self.collateral_open_round)
        require_int("health_factor", self.health_factor)

    @property
    def is_open(self) -> bool:
        return not self.liquidated and not self.settled

    def to_dict(self) -> Record:
        return {
            'position_id': self.position_id,
            'borrower': self.borrower,
            'asset_id': self.asset_id,
            'principal': self.principal,
            'open_borrow_index': self.open_borrow_index,
            'open_round': self.open_round,
            'collateral_amount': self.collateral_amount,
            'collateral_asset_id': self.collateral_asset_id,
            'collateral_open_round': self.collateral_open_round,
            'health_factor': self.health_factor,
            'liquidated': self.liquidated,
            'settled': self.settled,
            'receipt_nonce': self.receipt_nonce,
            'borrowed_amount': self.borrowed_amount,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'DebtPosition':
        return cls(**raw)


@dataclass(frozen=True, slots=True)
class RepayPosition:
    """
    Snapshot taken during a repay, used to compute the collateral release.

    Lives for one repay transaction; persisted afterwards for audit.
    """
    position_id: PositionId
    asset_id: AssetId
    amount_paid: int
    nonce: int
    borrow_open_round: int
    collateral_asset_id: AssetId
    collateral_amount: int
    collateral_open_round: int
    full_repayment: bool = False
    refund: int = 0

    def to_dict(self) -> Record:
        return {
            'position_id': self.position_id,
            'asset_id': self.asset_id,
            'amount_paid': self.amount_paid,
            'nonce': self.nonce,
            'borrow_open_round': self.borrow_open_round,
            'collateral_asset_id': self.collateral_asset_id,
            'collateral_amount': self.collateral_amount,
            'collateral_open_round': self.collateral_open_round,
            'full_repayment': self.full_repayment,
            'refund': self.refund,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'RepayPosition':
        return cls(**raw)


@dataclass(frozen=True, slots=True)
class LiquidateData:
    """
    Outcome of a liquidation.

    Attributes:
        collateral_token: Collateral asset sent to the liquidator
        amount: Total collateral sent to the liquidator (includes penalty)
        penalty: Part of amount taken from the borrower's remaining collateral
    """
    collateral_token: AssetId
    amount: int
    penalty: int = 0


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Audit record of a committed pool operation.

    Attributes:
        sequence_number: Monotonic within the pool
        kind: One of the OP_* constants
        round: Round at which the operation executed
        account: Account that initiated the operation
        details: Operation-specific values (amounts, ids)
        state_before: GlobalState before accrual
        state_after: GlobalState after commit
    """
    sequence_number: int
    kind: str
    round: int
    account: str
    details: Tuple[Tuple[str, Any], ...]
    state_before: GlobalState
    state_after: GlobalState

    @property
    def detail_map(self) -> Dict[str, Any]:
        return dict(self.details)

    def __repr__(self) -> str:
        parts = ", ".join(f"{k}={v}" for k, v in self.details)
        return f"Op#{self.sequence_number}({self.kind} @{self.round} by {self.account}: {parts})"


def freeze_details(details: Dict[str, Any]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a details dict to a sorted tuple of pairs for OperationRecord."""
    return tuple(sorted(details.items()))
