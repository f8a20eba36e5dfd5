"""
accrual.py - Index Accrual Engine

Advances a pool's global borrow and supply indices to the current round.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. calculate_accrual(): PURE - takes GlobalState, PoolParams and a round,
   returns an AccrualResult holding every intermediate quantity.
2. accrue(): thin wrapper returning only the new GlobalState.

Both run as the first step of every mutating pool operation, so positions
always see indices that are current as of the operation's round.

Key Formulas (per accrual, delta = current_round - last_update_round):
    borrow_rate       = rate curve at the PRE-accrual utilization
    borrow_index     += borrow_rate * delta
    rewards_increase  = borrow_rate * total_borrowed * delta / BP
    rewards_reserve  += rewards_increase
    supply_index     += rewards_increase * BP / total_supplied   (skipped if 0)

Accrual is idempotent per round: a second call in the same round returns the
same GlobalState object, unchanged.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import (
    BP, GlobalState, PoolParams, InvalidParameter, require_int, mul_div,
)
from .rates import compute_utilization, compute_borrow_rate


@dataclass(frozen=True, slots=True)
class AccrualResult:
    """
    Immutable result of one accrual step.

    Attributes:
        state: GlobalState after accrual (the input object itself on a no-op)
        delta_rounds: Rounds elapsed since the last accrual
        utilization: Utilization used to price the period
        borrow_rate: Per-round borrow rate applied to the period
        rewards_increase: Interest attributed to depositors this period
    """
    state: GlobalState
    delta_rounds: int
    utilization: int
    borrow_rate: int
    rewards_increase: int

    @property
    def is_noop(self) -> bool:
        return self.delta_rounds == 0


def calculate_accrual(
    state: GlobalState,
    params: PoolParams,
    current_round: int,
) -> AccrualResult:
    """
    Compute the accrued global state for current_round.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        state: Global state as of its last_update_round
        params: Rate curve coefficients
        current_round: Round to accrue to

    Returns:
        AccrualResult. When no rounds elapsed, result.state is state.

    Raises:
        InvalidParameter: If current_round precedes last_update_round.
    """
    require_int("current_round", current_round)
    delta = current_round - state.last_update_round
    if delta < 0:
        raise InvalidParameter(
            f"current_round {current_round} precedes last_update_round "
            f"{state.last_update_round}"
        )

    utilization = compute_utilization(state.total_borrowed, state.total_supplied)
    borrow_rate = compute_borrow_rate(
        params.base_rate,
        params.slope1,
        params.slope2,
        params.optimal_utilization,
        utilization,
    )

    if delta == 0:
        return AccrualResult(state, 0, utilization, borrow_rate, 0)

    rewards_increase = mul_div(borrow_rate * state.total_borrowed, delta, BP)

    supply_index = state.supply_index
    total_supplied = state.total_supplied
    if total_supplied > 0:
        supply_index += mul_div(rewards_increase, BP, total_supplied)

    new_state = replace(
        state,
        borrow_index=state.borrow_index + borrow_rate * delta,
        supply_index=supply_index,
        rewards_reserve=state.rewards_reserve + rewards_increase,
        last_update_round=current_round,
    )
    return AccrualResult(new_state, delta, utilization, borrow_rate, rewards_increase)


def accrue(state: GlobalState, params: PoolParams, current_round: int) -> GlobalState:
    """
    Return the global state accrued to current_round.

    Returns the same object when current_round == state.last_update_round.
    """
    return calculate_accrual(state, params, current_round).state
