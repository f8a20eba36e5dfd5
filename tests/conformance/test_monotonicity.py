"""
Monotonicity Conformance Tests

INVARIANT: Indices and rounds only move forward.

    ∀ operations: borrow_index(after) >= borrow_index(before)
                  supply_index(after) >= supply_index(before)
                  last_update_round(after) >= last_update_round(before)

    owed(position) never decreases while the position is untouched.
    The borrow rate never decreases as utilization rises.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lending_pool import BP, PoolParams, owed_amount, tabulate_rate_curve, is_monotonic
from tests.fakes import COLLATERAL_ASSET, make_pool
from .scenarios import operations, run_operation


@st.composite
def pool_params(draw):
    return PoolParams(
        base_rate=draw(st.integers(min_value=0, max_value=BP // 10)),
        slope1=draw(st.integers(min_value=0, max_value=BP)),
        slope2=draw(st.integers(min_value=0, max_value=10 * BP)),
        optimal_utilization=draw(st.integers(min_value=0, max_value=BP)),
        reserve_factor=draw(st.integers(min_value=0, max_value=BP)),
    )


class TestMonotonicityProperties:

    @given(operations())
    @settings(max_examples=100, deadline=None)
    def test_indices_never_regress(self, ops):
        harness = make_pool()
        previous = harness.pool.state
        for op in ops:
            run_operation(harness, op)
            state = harness.pool.state
            assert state.borrow_index >= previous.borrow_index
            assert state.supply_index >= previous.supply_index
            assert state.last_update_round >= previous.last_update_round
            previous = state

    @given(operations(), st.lists(st.integers(min_value=0, max_value=5), max_size=5))
    @settings(max_examples=50, deadline=None)
    def test_owed_never_decreases_with_time(self, ops, waits):
        harness = make_pool()
        for op in ops:
            run_operation(harness, op)
        owed = {p.position_id: harness.pool.position_owed(p.position_id)
                for p in harness.pool.positions.open_positions()}
        for wait in waits:
            harness.clock.advance(wait)
            for position_id, before in owed.items():
                now = harness.pool.position_owed(position_id)
                assert now >= before
                owed[position_id] = now

    @given(pool_params())
    @settings(max_examples=100, deadline=None)
    def test_rate_curve_monotonic(self, params):
        assert is_monotonic(tabulate_rate_curve(params, points=21))


class TestMonotonicityExamples:

    def test_borrow_index_strictly_grows_with_positive_rate(self):
        params = PoolParams(base_rate=1_000, slope1=BP // 10, slope2=BP,
                            optimal_utilization=8 * BP // 10, reserve_factor=0)
        harness = make_pool(params=params)
        harness.pool.deposit("alice", 10_000)
        harness.pool.borrow("bob", 1_000, COLLATERAL_ASSET, 100_000)
        indices = []
        for _ in range(5):
            harness.clock.advance()
            indices.append(harness.pool.accrue_interest().borrow_index)
        assert indices == sorted(set(indices))

    def test_repayment_does_not_lower_index(self):
        harness = make_pool()
        harness.pool.deposit("alice", 10_000)
        position = harness.pool.borrow("bob", 4_000, COLLATERAL_ASSET, 320_000)
        harness.clock.advance()
        before = harness.pool.preview_state()
        harness.pool.repay("bob", position.position_id, "EGLD", 4_200)
        assert harness.pool.state.borrow_index == before.borrow_index
        assert owed_amount(position, harness.pool.state.borrow_index) == 4_200
