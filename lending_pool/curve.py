"""
curve.py - Rate Curve Tabulation

Evaluates a pool's rate curve across a utilization grid, for inspection,
plotting and sanity checks of new parameters before a pool is created.

Every point is computed with the exact integer functions in rates.py; numpy
only holds and compares the results.
"""

from dataclasses import dataclass

import numpy as np

from .core import BP, PoolParams, InvalidParameter, require_int
from .rates import compute_borrow_rate, compute_deposit_rate


@dataclass(frozen=True)
class RateCurve:
    """
    Tabulated rate curve.

    Attributes:
        params: Curve coefficients
        utilization: BP-scaled utilization grid, ascending, from 0 to BP
        borrow_rate: Borrow rate at each grid point
        deposit_rate: Deposit rate at each grid point
    """
    params: PoolParams
    utilization: np.ndarray
    borrow_rate: np.ndarray
    deposit_rate: np.ndarray

    def __len__(self) -> int:
        return len(self.utilization)


def utilization_grid(points: int = 101) -> np.ndarray:
    """points evenly spaced BP-scaled utilizations, 0 and BP included."""
    require_int("points", points, minimum=2)
    return np.arange(points, dtype=np.int64) * BP // (points - 1)


def tabulate_rate_curve(params: PoolParams, points: int = 101) -> RateCurve:
    """
    Borrow and deposit rates of params across utilization_grid(points).

    Example:
        curve = tabulate_rate_curve(params, points=11)
        curve.borrow_rate[kink_index(curve)]  # base + slope1
    """
    grid = utilization_grid(points)
    borrow = []
    deposit = []
    for u in grid.tolist():
        rate = compute_borrow_rate(
            params.base_rate, params.slope1, params.slope2, params.optimal_utilization, u
        )
        borrow.append(rate)
        deposit.append(compute_deposit_rate(u, rate, params.reserve_factor))
    return RateCurve(
        params=params,
        utilization=grid,
        borrow_rate=np.array(borrow, dtype=np.int64),
        deposit_rate=np.array(deposit, dtype=np.int64),
    )


def kink_index(curve: RateCurve) -> int:
    """Index of the first grid point at or above the optimal utilization."""
    idx = int(np.searchsorted(curve.utilization, curve.params.optimal_utilization, side='left'))
    if idx >= len(curve):
        raise InvalidParameter("optimal utilization lies beyond the tabulated grid")
    return idx


def is_monotonic(curve: RateCurve) -> bool:
    """True if both borrow and deposit rates never decrease along the grid."""
    return bool(
        np.all(np.diff(curve.borrow_rate) >= 0)
        and np.all(np.diff(curve.deposit_rate) >= 0)
    )


def as_fractions(curve: RateCurve) -> np.ndarray:
    """
    Curve as a (points, 3) float array of utilization, borrow and deposit
    rate, each divided by BP.
    """
    table = np.column_stack([curve.utilization, curve.borrow_rate, curve.deposit_rate])
    return table.astype(np.float64) / BP
