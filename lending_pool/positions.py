"""
positions.py - Position Ledger

Debt positions (borrow side) and deposit entitlements (supply side) of one
pool, plus the pure functions that value them against the global indices.

Interest is never written into a position. A position stores the borrow index
at which its principal was last snapshotted; the amount owed at any later
index is computed lazily:

    owed = principal * current_borrow_index / open_borrow_index

Deposits work the same way against the supply index:

    redemption = amount * current_supply_index / mint_supply_index

PositionLedger is the mutable container. Pure functions here take and return
frozen values; only LiquidityPool writes into a PositionLedger, and it does so
on a clone that replaces the original only when an operation commits.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Tuple
import hashlib

from .core import (
    AssetId, PositionId,
    DebtPosition, RepayPosition, DepositMetadata, GlobalState, Record,
    InvalidParameter, InvariantViolation, NotFound,
    require_int, mul_div,
)


# ============================================================================
# DEPOSIT ENTITLEMENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class DepositEntitlement:
    """
    A depositor's claim on the pool, keyed by the lend receipt nonce.

    Attributes:
        nonce: Nonce of the lend receipt minted for this deposit
        depositor: Account that deposited
        amount: Deposited amount not yet withdrawn
        metadata: Round and supply index at mint time
    """
    nonce: int
    depositor: str
    amount: int
    metadata: DepositMetadata

    def __post_init__(self):
        require_int("nonce", self.nonce)
        require_int("amount", self.amount)

    def to_dict(self) -> Record:
        return {
            'nonce': self.nonce,
            'depositor': self.depositor,
            'amount': self.amount,
            'round': self.metadata.round,
            'supply_index': self.metadata.supply_index,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'DepositEntitlement':
        return cls(
            nonce=raw['nonce'],
            depositor=raw['depositor'],
            amount=raw['amount'],
            metadata=DepositMetadata(round=raw['round'], supply_index=raw['supply_index']),
        )


def redemption_amount(amount: int, mint_supply_index: int, current_supply_index: int) -> int:
    """
    Amount redeemable for a deposit minted at mint_supply_index.

    Raises:
        InvariantViolation: If the supply index regressed since mint.
    """
    if current_supply_index < mint_supply_index:
        raise InvariantViolation(
            f"supply index regressed: {current_supply_index} < {mint_supply_index}"
        )
    return mul_div(amount, current_supply_index, mint_supply_index)


def supply_interest(amount: int, mint_supply_index: int, current_supply_index: int) -> int:
    """Interest earned by a deposit: redemption amount minus the deposit."""
    return redemption_amount(amount, mint_supply_index, current_supply_index) - amount


# ============================================================================
# DEBT POSITIONS - PURE FUNCTIONS
# ============================================================================

def make_position_id(asset_id: AssetId, borrower: str, nonce: int) -> PositionId:
    """
    Deterministic position id: first 16 hex chars of a sha256 digest.

    The same pool asset, borrower and nonce always produce the same id, so
    replaying an operation sequence reproduces every identifier.
    """
    content = f"debt_position:{asset_id}|{borrower}|{nonce}"
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def open_debt_position(
    state: GlobalState,
    position_id: PositionId,
    borrower: str,
    asset_id: AssetId,
    principal: int,
    collateral_amount: int,
    collateral_asset_id: AssetId,
    current_round: int,
    receipt_nonce: int = 0,
    health_factor: int = 0,
) -> Tuple[DebtPosition, GlobalState]:
    """
    Open a debt position against an already-accrued global state.

    PURE FUNCTION - returns the new position and the new global state.

    The position snapshots the current borrow index and round. The borrowed
    amount moves from total_reserves to total_borrowed, so total supplied
    capital is unchanged by a borrow.

    Raises:
        InvalidParameter: If principal is not positive or the state was not
            accrued to current_round.
        InvariantViolation: If reserves cannot cover the principal.
    """
    require_int("principal", principal, minimum=1)
    require_int("collateral_amount", collateral_amount)
    if state.last_update_round != current_round:
        raise InvalidParameter(
            f"state accrued to round {state.last_update_round}, not {current_round}"
        )
    if principal > state.total_reserves:
        raise InvariantViolation(
            f"borrow of {principal} exceeds reserves {state.total_reserves}"
        )

    position = DebtPosition(
        position_id=position_id,
        borrower=borrower,
        asset_id=asset_id,
        principal=principal,
        open_borrow_index=state.borrow_index,
        open_round=current_round,
        collateral_amount=collateral_amount,
        collateral_asset_id=collateral_asset_id,
        collateral_open_round=current_round,
        health_factor=health_factor,
        receipt_nonce=receipt_nonce,
        borrowed_amount=principal,
    )
    new_state = replace(
        state,
        total_reserves=state.total_reserves - principal,
        total_borrowed=state.total_borrowed + principal,
    )
    return position, new_state


def owed_amount(position: DebtPosition, current_borrow_index: int) -> int:
    """
    Amount owed on a position at current_borrow_index.

    Closed positions owe nothing.

    Raises:
        InvariantViolation: If current_borrow_index < position.open_borrow_index
            (a clock or index regression).
    """
    if current_borrow_index < position.open_borrow_index:
        raise InvariantViolation(
            f"borrow index regressed for {position.position_id}: "
            f"{current_borrow_index} < {position.open_borrow_index}"
        )
    return mul_div(position.principal, current_borrow_index, position.open_borrow_index)


def accrued_interest(position: DebtPosition, current_borrow_index: int) -> int:
    """Interest accrued since the position's last index snapshot."""
    return owed_amount(position, current_borrow_index) - position.principal


def close_position(position: DebtPosition) -> DebtPosition:
    """Return the position fully settled: principal and collateral zeroed."""
    return replace(position, principal=0, collateral_amount=0, settled=True)


def reduce_position(
    position: DebtPosition,
    amount_paid: int,
    current_borrow_index: int,
    collateral_released: int,
) -> DebtPosition:
    """
    Apply a partial payment to a position.

    The remaining principal is what is still owed after the payment, and the
    open borrow index is re-snapshotted to current_borrow_index, so interest
    already paid is not charged again.

    Raises:
        InvalidParameter: If amount_paid does not leave a positive balance or
            more collateral is released than is escrowed.
    """
    require_int("amount_paid", amount_paid, minimum=1)
    require_int("collateral_released", collateral_released)
    owed = owed_amount(position, current_borrow_index)
    if amount_paid >= owed:
        raise InvalidParameter(
            f"payment {amount_paid} settles the full balance {owed}; close the position"
        )
    if collateral_released > position.collateral_amount:
        raise InvalidParameter(
            f"cannot release {collateral_released} of {position.collateral_amount} collateral"
        )
    return replace(
        position,
        principal=owed - amount_paid,
        open_borrow_index=current_borrow_index,
        collateral_amount=position.collateral_amount - collateral_released,
    )


# ============================================================================
# POSITION LEDGER (mutable container)
# ============================================================================

class PositionLedger:
    """
    Ordered-by-creation store of a pool's positions and deposit entitlements.

    Attributes:
        asset_id: Pool asset, part of every generated position id
        debt_positions: position_id -> DebtPosition, in creation order
        repay_positions: (position_id, nonce) -> RepayPosition audit records
        deposits: lend receipt nonce -> DepositEntitlement
        position_nonce: Counter feeding make_position_id
    """

    def __init__(self, asset_id: AssetId):
        self.asset_id = asset_id
        self.debt_positions: Dict[PositionId, DebtPosition] = {}
        self.repay_positions: Dict[Tuple[PositionId, int], RepayPosition] = {}
        self.deposits: Dict[int, DepositEntitlement] = {}
        self.position_nonce = 0

    def next_position_id(self, borrower: str) -> PositionId:
        self.position_nonce += 1
        return make_position_id(self.asset_id, borrower, self.position_nonce)

    def put_position(self, position: DebtPosition) -> None:
        self.debt_positions[position.position_id] = position

    def get_position(self, position_id: PositionId) -> DebtPosition:
        try:
            return self.debt_positions[position_id]
        except KeyError:
            raise NotFound(f"no debt position {position_id!r}") from None

    def open_positions(self) -> List[DebtPosition]:
        """Positions neither settled nor liquidated, in creation order."""
        return [p for p in self.debt_positions.values() if p.is_open]

    def record_repayment(self, repay_position: RepayPosition) -> None:
        key = (repay_position.position_id, repay_position.nonce)
        self.repay_positions[key] = repay_position

    def repay_sort_key(self, repay_position: RepayPosition) -> Tuple[int, int]:
        """Creation order of the repaid position, then repayment nonce."""
        order = list(self.debt_positions)
        try:
            position_order = order.index(repay_position.position_id)
        except ValueError:
            position_order = len(order)
        return position_order, repay_position.nonce

    def repay_position_ids(self) -> List[Tuple[PositionId, int]]:
        records = sorted(self.repay_positions.values(), key=self.repay_sort_key)
        return [(r.position_id, r.nonce) for r in records]

    def get_repay_position(self, position_id: PositionId, nonce: int) -> RepayPosition:
        try:
            return self.repay_positions[(position_id, nonce)]
        except KeyError:
            raise NotFound(f"no repay position {position_id!r}#{nonce}") from None

    def put_deposit(self, entitlement: DepositEntitlement) -> None:
        self.deposits[entitlement.nonce] = entitlement

    def get_deposit(self, nonce: int) -> DepositEntitlement:
        try:
            return self.deposits[nonce]
        except KeyError:
            raise NotFound(f"no deposit with lend receipt nonce {nonce}") from None

    def remove_deposit(self, nonce: int) -> None:
        self.get_deposit(nonce)
        del self.deposits[nonce]

    def clone(self) -> 'PositionLedger':
        """
        Independent copy. Entries are frozen, so copying the dicts suffices.
        """
        cloned = PositionLedger.__new__(PositionLedger)
        cloned.asset_id = self.asset_id
        cloned.debt_positions = dict(self.debt_positions)
        cloned.repay_positions = dict(self.repay_positions)
        cloned.deposits = dict(self.deposits)
        cloned.position_nonce = self.position_nonce
        return cloned

    def __len__(self) -> int:
        return len(self.debt_positions)
