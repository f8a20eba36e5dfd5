"""
settlement.py - Repay/Settlement

Reconciles an incoming repayment against an open debt position.

    owed = principal * current_borrow_index / open_borrow_index

    amount_paid >= owed  -> FULL: position closed, all collateral released,
                            overpayment (amount_paid - owed) refunded
    amount_paid <  owed  -> PARTIAL: collateral * amount_paid / owed released,
                            principal becomes owed - amount_paid and the
                            borrow index is re-snapshotted

The RepayPosition snapshot captures what the position looked like when the
payment arrived; the pool persists it for audit.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import (
    AssetId, DebtPosition, RepayPosition,
    InvalidParameter, AlreadySettled,
    require_int, require_asset_id, mul_div,
)
from .positions import owed_amount, close_position, reduce_position


@dataclass(frozen=True, slots=True)
class RepaymentResult:
    """
    Immutable result of a repayment calculation.

    Attributes:
        repay_position: Snapshot of the repayment, for audit
        position: Position after the payment
        owed: Amount owed when the payment arrived
        applied: Part of the payment applied to the debt
        refund: Overpayment returned to the payer
        collateral_released: Collateral returned to the borrower
    """
    repay_position: RepayPosition
    position: DebtPosition
    owed: int
    applied: int
    refund: int
    collateral_released: int

    @property
    def full_repayment(self) -> bool:
        return self.repay_position.full_repayment


def calculate_repayment(
    position: DebtPosition,
    asset_paid: AssetId,
    amount_paid: int,
    current_borrow_index: int,
    nonce: int,
) -> RepaymentResult:
    """
    Compute a full or partial repayment of a position.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        position: Open debt position
        asset_paid: Asset the payer sent; must be the borrowed asset
        amount_paid: Amount sent (must be positive)
        current_borrow_index: Accrued borrow index
        nonce: Repayment sequence number, unique per position

    Returns:
        RepaymentResult.

    Raises:
        AlreadySettled: If the position is settled or liquidated.
        InvalidParameter: If the asset does not match or the amount is not positive.

    Example:
        # principal 1000 at index BP, now 1.05 BP: paying 1050 closes it
        result = calculate_repayment(position, "EGLD", 1050, 1_050_000_000, 1)
        assert result.full_repayment
    """
    require_asset_id("asset_paid", asset_paid)
    require_int("amount_paid", amount_paid, minimum=1)
    if not position.is_open:
        raise AlreadySettled(f"position {position.position_id} is already closed")
    if asset_paid != position.asset_id:
        raise InvalidParameter(
            f"paid {asset_paid}, but position {position.position_id} "
            f"borrowed {position.asset_id}"
        )

    owed = owed_amount(position, current_borrow_index)
    full = amount_paid >= owed

    if full:
        applied = owed
        refund = amount_paid - owed
        released = position.collateral_amount
        new_position = close_position(position)
    else:
        applied = amount_paid
        refund = 0
        released = mul_div(position.collateral_amount, amount_paid, owed)
        new_position = reduce_position(position, amount_paid, current_borrow_index, released)

    repay_position = RepayPosition(
        position_id=position.position_id,
        asset_id=asset_paid,
        amount_paid=amount_paid,
        nonce=nonce,
        borrow_open_round=position.open_round,
        collateral_asset_id=position.collateral_asset_id,
        collateral_amount=released,
        collateral_open_round=position.collateral_open_round,
        full_repayment=full,
        refund=refund,
    )
    return RepaymentResult(
        repay_position=repay_position,
        position=new_position,
        owed=owed,
        applied=applied,
        refund=refund,
        collateral_released=released,
    )
