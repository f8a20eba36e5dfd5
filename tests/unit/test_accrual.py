"""
test_accrual.py - Unit tests for index accrual

Tests:
- Borrow index, supply index and rewards reserve after one and several rounds
- Same-round accrual is a no-op returning the same object
- Round regression is rejected
- Empty pool: indices grow by the base rate only
"""

import pytest

from lending_pool import (
    BP, GlobalState, PoolParams, InvalidParameter,
    accrue, calculate_accrual,
)
from tests.fakes import STANDARD_PARAMS


@pytest.fixture
def forty_percent_state():
    """10,000 supplied, 4,000 borrowed, last accrued at round 0."""
    return GlobalState(total_reserves=6_000, total_borrowed=4_000, last_update_round=0)


class TestAccrue:

    def test_one_round(self, forty_percent_state):
        state = accrue(forty_percent_state, STANDARD_PARAMS, 1)

        # rate 5% per round
        assert state.borrow_index == 1_050_000_000
        # 5% of 4,000 borrowed
        assert state.rewards_reserve == 200
        # 200 spread over 10,000 supplied
        assert state.supply_index == 1_020_000_000
        assert state.last_update_round == 1

    def test_capital_untouched(self, forty_percent_state):
        state = accrue(forty_percent_state, STANDARD_PARAMS, 5)
        assert state.total_reserves == 6_000
        assert state.total_borrowed == 4_000

    def test_several_rounds_use_pre_accrual_rate(self, forty_percent_state):
        state = accrue(forty_percent_state, STANDARD_PARAMS, 3)
        assert state.borrow_index == BP + 3 * 50_000_000
        assert state.rewards_reserve == 600
        assert state.supply_index == BP + 60_000_000

    def test_same_round_is_noop(self, forty_percent_state):
        once = accrue(forty_percent_state, STANDARD_PARAMS, 4)
        twice = accrue(once, STANDARD_PARAMS, 4)
        assert twice is once

    def test_round_regression_rejected(self, forty_percent_state):
        later = accrue(forty_percent_state, STANDARD_PARAMS, 4)
        with pytest.raises(InvalidParameter):
            accrue(later, STANDARD_PARAMS, 3)

    def test_empty_pool_grows_borrow_index_by_base_rate(self):
        params = PoolParams(base_rate=7, slope1=BP // 10, slope2=BP,
                            optimal_utilization=8 * BP // 10, reserve_factor=0)
        state = accrue(GlobalState(), params, 10)
        assert state.borrow_index == BP + 70
        assert state.supply_index == BP
        assert state.rewards_reserve == 0

    def test_input_state_not_mutated(self, forty_percent_state):
        accrue(forty_percent_state, STANDARD_PARAMS, 2)
        assert forty_percent_state.borrow_index == BP
        assert forty_percent_state.last_update_round == 0


class TestCalculateAccrual:

    def test_exposes_intermediates(self, forty_percent_state):
        result = calculate_accrual(forty_percent_state, STANDARD_PARAMS, 2)
        assert result.delta_rounds == 2
        assert result.utilization == 4 * BP // 10
        assert result.borrow_rate == BP // 20
        assert result.rewards_increase == 400
        assert not result.is_noop

    def test_noop_result(self, forty_percent_state):
        result = calculate_accrual(forty_percent_state, STANDARD_PARAMS, 0)
        assert result.is_noop
        assert result.state is forty_percent_state
        assert result.rewards_increase == 0

    def test_supply_index_floors(self):
        # rewards 1 over 3 supplied: BP // 3
        state = GlobalState(total_reserves=2, total_borrowed=1, last_update_round=0)
        params = PoolParams(base_rate=BP, slope1=0, slope2=0,
                            optimal_utilization=BP, reserve_factor=0)
        result = calculate_accrual(state, params, 1)
        assert result.rewards_increase == 1
        assert result.state.supply_index == BP + BP // 3
