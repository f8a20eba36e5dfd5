"""
Random operation sequences for the conformance suite.

An operation is a plain tuple drawn by operations(); run_operation() maps it
onto a pool, resolving indices against whatever deposits and positions exist
at that moment. Rejections are part of the sequence, never test failures;
an InvariantViolation is never a rejection and propagates.
"""

from hypothesis import strategies as st

from lending_pool import InvariantViolation, PoolError
from tests.fakes import POOL_ASSET, COLLATERAL_ASSET


def operation():
    return st.one_of(
        st.tuples(st.just("deposit"), st.sampled_from(["alice", "carol"]),
                  st.integers(min_value=1, max_value=20_000)),
        st.tuples(st.just("withdraw"), st.integers(min_value=0, max_value=7),
                  st.integers(min_value=1, max_value=20_000)),
        st.tuples(st.just("borrow"), st.integers(min_value=1, max_value=8_000),
                  st.integers(min_value=1, max_value=400_000)),
        st.tuples(st.just("repay"), st.integers(min_value=0, max_value=7),
                  st.integers(min_value=1, max_value=10_000)),
        st.tuples(st.just("liquidate"), st.integers(min_value=0, max_value=7),
                  st.integers(min_value=1, max_value=10_000)),
        st.tuples(st.just("advance"), st.integers(min_value=0, max_value=3)),
        st.tuples(st.just("price"), st.integers(min_value=20, max_value=120)),
        st.tuples(st.just("accrue")),
    )


def operations(max_size=25):
    return st.lists(operation(), max_size=max_size)


def _pick(items, index):
    return items[index % len(items)] if items else None


def run_operation(harness, op):
    """
    Apply op to the harness.

    Returns:
        True if the pool committed an operation, False if it was rejected,
        None if op does not touch the pool (clock or price moves, or nothing
        to act on).

    Raises:
        InvariantViolation: Propagated so the property fails.
    """
    pool = harness.pool
    kind = op[0]

    if kind == "advance":
        harness.clock.advance(op[1])
        return None
    if kind == "price":
        harness.oracle.update_price(POOL_ASSET, op[1])
        return None

    try:
        if kind == "deposit":
            pool.deposit(op[1], op[2])
        elif kind == "withdraw":
            entitlement = _pick(list(pool.positions.deposits.values()), op[1])
            if entitlement is None:
                return None
            pool.withdraw(entitlement.depositor, entitlement.nonce,
                          min(op[2], entitlement.amount))
        elif kind == "borrow":
            pool.borrow("bob", op[1], COLLATERAL_ASSET, op[2])
        elif kind == "repay":
            position = _pick(pool.positions.open_positions(), op[1])
            if position is None:
                return None
            pool.repay("bob", position.position_id, POOL_ASSET, op[2])
        elif kind == "liquidate":
            position = _pick(pool.positions.open_positions(), op[1])
            if position is None:
                return None
            pool.liquidate("carol", position.position_id, op[2])
        elif kind == "accrue":
            pool.accrue_interest()
    except InvariantViolation:
        raise
    except PoolError:
        return False
    return True
