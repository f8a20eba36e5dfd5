"""
solvency.py - Solvency & Liquidation Engine

Pure functions deciding whether a debt position is healthy, how much a new
borrow may be, and what a liquidation releases.

Key Formulas (BP-scaled, every division floors):
    health_factor     = collateral * collateral_price * BP / (owed * debt_price)
    max_borrow        = collateral * collateral_price * ltv / BP / debt_price
    released          = collateral * repayment / owed
    penalty           = min(released * liquidation_bonus / BP, collateral - released)

A position is liquidatable iff its health factor is strictly below the
threshold and it is still open. The decision depends only on the position,
the two prices and the borrow index, never on who asks or in which order.

Prices are passed in. The pool fetches them from the oracle once per
decision; nothing here caches a quote.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import (
    BP, DebtPosition, LiquidateData,
    InvalidParameter, NotLiquidatable, AlreadySettled,
    require_int, mul_div,
)
from .positions import owed_amount


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Immutable result of a liquidation calculation.

    Attributes:
        position: Position after liquidation
        liquidate_data: Collateral sent to the liquidator (released + penalty)
        repayment: Debt repaid by the liquidator
        owed: Amount owed before the liquidation
        collateral_released: Collateral released proportionally to repayment
        fully_liquidated: True when the repayment covered the whole debt
    """
    position: DebtPosition
    liquidate_data: LiquidateData
    repayment: int
    owed: int
    collateral_released: int
    fully_liquidated: bool


def health_factor(
    position: DebtPosition,
    collateral_price: int,
    debt_price: int,
    current_borrow_index: int,
) -> int:
    """
    BP-scaled health factor of a position.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        position: Debt position to evaluate
        collateral_price: Price of one unit of collateral in the quote currency
        debt_price: Price of one unit of the borrowed asset in the quote currency
        current_borrow_index: Accrued borrow index

    Returns:
        collateral_amount * collateral_price * BP // (owed * debt_price)

    Raises:
        InvalidParameter: If a price is not positive or nothing is owed.

    Example:
        # 150 collateral at 2, owing 200 at 1 -> 1.5
        health_factor(position, 2, 1, BP) == 3 * BP // 2
    """
    require_int("collateral_price", collateral_price, minimum=1)
    require_int("debt_price", debt_price, minimum=1)
    owed = owed_amount(position, current_borrow_index)
    if owed == 0:
        raise InvalidParameter(
            f"position {position.position_id} owes nothing; health factor undefined"
        )
    return mul_div(position.collateral_amount * collateral_price, BP, owed * debt_price)


def is_liquidatable(position: DebtPosition, health: int, threshold: int) -> bool:
    """True iff the position is open and its health is strictly below threshold."""
    return position.is_open and health < threshold


def calculate_liquidation(
    position: DebtPosition,
    repayment_amount: int,
    current_borrow_index: int,
    health: int,
    threshold: int,
    liquidation_bonus: int = 0,
) -> LiquidationResult:
    """
    Compute the outcome of a liquidator repaying part or all of a position.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Collateral is released in proportion to the debt repaid. On a partial
    liquidation the liquidator also receives a bonus, taken from the
    collateral left behind and never more than what is left. A repayment of
    the whole debt releases all collateral and marks the position liquidated.

    Args:
        position: Position being liquidated
        repayment_amount: Debt the liquidator repays, in the pool asset
        current_borrow_index: Accrued borrow index
        health: Health factor evaluated for this decision
        threshold: Health factor threshold of the pool
        liquidation_bonus: BP-scaled bonus on released collateral

    Returns:
        LiquidationResult with the updated position.

    Raises:
        AlreadySettled: If the position is liquidated or settled.
        NotLiquidatable: If health >= threshold.
        InvalidParameter: If repayment_amount is not in (0, owed].
    """
    if not position.is_open:
        raise AlreadySettled(f"position {position.position_id} is already closed")
    if not is_liquidatable(position, health, threshold):
        raise NotLiquidatable(
            f"position {position.position_id} health {health} >= threshold {threshold}"
        )
    require_int("liquidation_bonus", liquidation_bonus)
    require_int("repayment_amount", repayment_amount, minimum=1)

    owed = owed_amount(position, current_borrow_index)
    if repayment_amount > owed:
        raise InvalidParameter(
            f"repayment {repayment_amount} exceeds owed amount {owed}"
        )

    collateral = position.collateral_amount
    released = mul_div(collateral, repayment_amount, owed)
    remaining = collateral - released
    penalty = min(mul_div(released, liquidation_bonus, BP), remaining)

    fully_liquidated = repayment_amount == owed
    if fully_liquidated:
        new_position = replace(
            position,
            principal=0,
            collateral_amount=0,
            health_factor=health,
            liquidated=True,
        )
    else:
        new_position = replace(
            position,
            principal=owed - repayment_amount,
            open_borrow_index=current_borrow_index,
            collateral_amount=remaining - penalty,
            health_factor=health,
        )

    return LiquidationResult(
        position=new_position,
        liquidate_data=LiquidateData(
            collateral_token=position.collateral_asset_id,
            amount=released + penalty,
            penalty=penalty,
        ),
        repayment=repayment_amount,
        owed=owed,
        collateral_released=released,
        fully_liquidated=fully_liquidated,
    )


def calculate_max_borrow(
    collateral_amount: int,
    collateral_price: int,
    debt_price: int,
    loan_to_value: int,
) -> int:
    """
    Largest borrow the collateral supports at the given loan-to-value.

    A borrow of amount is allowed iff
        collateral_amount * collateral_price * loan_to_value // BP >= amount * debt_price
    which is the same as amount <= the value returned here.
    """
    require_int("collateral_amount", collateral_amount)
    require_int("collateral_price", collateral_price, minimum=1)
    require_int("debt_price", debt_price, minimum=1)
    require_int("loan_to_value", loan_to_value)
    return mul_div(collateral_amount * collateral_price, loan_to_value, BP) // debt_price
