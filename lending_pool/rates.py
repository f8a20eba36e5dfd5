"""
rates.py - Utilization-Sensitive Rate Model

Pure functions mapping utilization to a borrow rate, and a borrow rate to a
deposit rate. No state.

Key Formulas (all values BP-scaled, every division floors):
    utilization  = borrowed * BP / total_supplied            (0 if nothing supplied)
    borrow_rate  = base + slope1 * U / optimal                          if U < optimal
                 = base + slope1 + slope2 * (U - optimal) / (BP - optimal)  otherwise
    deposit_rate = borrow_rate * U * (BP - reserve_factor) / BP^2

The curve is kinked at the optimal utilization; past it slope2 applies.
Truncation happens at each step, not once at the end.
"""

from __future__ import annotations

from .core import (
    BP, SECONDS_PER_YEAR,
    PoolParams, InvalidParameter,
    require_int, mul_div,
)


def compute_utilization(borrowed: int, total_supplied: int) -> int:
    """
    Compute capital utilization as a BP-scaled fraction in [0, BP].

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        borrowed: Outstanding borrowed amount
        total_supplied: Total supplied capital (reserves + borrowed)

    Returns:
        borrowed * BP // total_supplied, clamped to BP.
        0 when total_supplied is 0 (no capital, nothing utilized).
    """
    require_int("borrowed", borrowed)
    require_int("total_supplied", total_supplied)
    if total_supplied == 0:
        return 0
    return min(mul_div(borrowed, BP, total_supplied), BP)


def compute_borrow_rate(
    base: int,
    slope1: int,
    slope2: int,
    optimal: int,
    utilization: int,
) -> int:
    """
    Compute the per-round borrow rate from the kinked piecewise-linear curve.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        base: Base rate at zero utilization
        slope1: Rate added between zero and optimal utilization
        slope2: Rate added between optimal and full utilization
        optimal: Kink utilization in [0, BP]
        utilization: Current utilization in [0, BP]

    Returns:
        BP-scaled borrow rate. Non-decreasing in utilization and continuous at
        the kink (both branches give base + slope1 there).

    Raises:
        InvalidParameter: If optimal or utilization lie outside [0, BP].

    Example:
        # base=0, slope1=0.1, slope2=1.0, optimal=0.8, U=0.4 -> 0.05
        compute_borrow_rate(0, BP // 10, BP, 8 * BP // 10, 4 * BP // 10)
    """
    require_int("base", base)
    require_int("slope1", slope1)
    require_int("slope2", slope2)
    require_int("optimal", optimal)
    require_int("utilization", utilization)
    if optimal > BP:
        raise InvalidParameter(f"optimal must be <= {BP}, got {optimal}")
    if utilization > BP:
        raise InvalidParameter(f"utilization must be <= {BP}, got {utilization}")

    if utilization < optimal:
        return base + mul_div(slope1, utilization, optimal)

    # At or above the kink. optimal == BP only reaches here with U == BP.
    if optimal == BP:
        return base + slope1
    return base + slope1 + mul_div(slope2, utilization - optimal, BP - optimal)


def compute_deposit_rate(utilization: int, borrow_rate: int, reserve_factor: int) -> int:
    """
    Compute the per-round deposit rate.

    PURE FUNCTION - All inputs explicit, no hidden state.

    The reserve factor is the protocol's cut of interest, so depositors earn
    the borrow rate scaled by utilization and by (1 - reserve_factor).

    Returns:
        borrow_rate * utilization * (BP - reserve_factor) // BP**2
    """
    require_int("utilization", utilization)
    require_int("borrow_rate", borrow_rate)
    require_int("reserve_factor", reserve_factor)
    if reserve_factor > BP:
        raise InvalidParameter(f"reserve_factor must be <= {BP}, got {reserve_factor}")
    return mul_div(borrow_rate * utilization, BP - reserve_factor, BP * BP)


def borrow_rate_for(params: PoolParams, borrowed: int, total_supplied: int) -> int:
    """Borrow rate of a pool with the given params and capital."""
    utilization = compute_utilization(borrowed, total_supplied)
    return compute_borrow_rate(
        params.base_rate,
        params.slope1,
        params.slope2,
        params.optimal_utilization,
        utilization,
    )


def deposit_rate_for(params: PoolParams, borrowed: int, total_supplied: int) -> int:
    """Deposit rate of a pool with the given params and capital."""
    utilization = compute_utilization(borrowed, total_supplied)
    borrow_rate = compute_borrow_rate(
        params.base_rate,
        params.slope1,
        params.slope2,
        params.optimal_utilization,
        utilization,
    )
    return compute_deposit_rate(utilization, borrow_rate, params.reserve_factor)


def rate_per_round(annual_rate: int, seconds_per_round: int) -> int:
    """
    Convert a BP-scaled annual rate to a BP-scaled per-round rate.

    Args:
        annual_rate: Annual rate (e.g. BP // 10 for 10% a year)
        seconds_per_round: Duration of one round in seconds (must be positive)

    Returns:
        annual_rate * seconds_per_round // SECONDS_PER_YEAR
    """
    require_int("annual_rate", annual_rate)
    require_int("seconds_per_round", seconds_per_round, minimum=1)
    return mul_div(annual_rate, seconds_per_round, SECONDS_PER_YEAR)


def per_round_params(annual: PoolParams, seconds_per_round: int) -> PoolParams:
    """
    Convert curve coefficients quoted per year into per-round coefficients.

    base_rate, slope1 and slope2 go through rate_per_round; the kink and
    the reserve factor are ratios and carry over unchanged.
    """
    return PoolParams(
        base_rate=rate_per_round(annual.base_rate, seconds_per_round),
        slope1=rate_per_round(annual.slope1, seconds_per_round),
        slope2=rate_per_round(annual.slope2, seconds_per_round),
        optimal_utilization=annual.optimal_utilization,
        reserve_factor=annual.reserve_factor,
    )


def validate_pool_params(params: PoolParams) -> PoolParams:
    """
    Re-check curve coefficients of params that may come from an untrusted dict.

    optimal == 0 is accepted: the lower branch is then empty and every
    utilization uses the upper branch.

    Raises:
        InvalidParameter: If any coefficient is out of range.
    """
    if not isinstance(params, PoolParams):
        raise InvalidParameter(f"params must be PoolParams, got {type(params).__name__}")
    # Round-trip through the constructor to rerun __post_init__ checks.
    return PoolParams.from_dict(params.to_dict())
