"""
test_solvency.py - Unit tests for the solvency and liquidation engine

Tests:
- Health factor from prices and the borrow index
- Liquidatable iff strictly below threshold and open
- Partial and full liquidation, with and without a bonus
- Bonus capped at the collateral left behind
- Borrow limit from loan-to-value
"""

import pytest

from lending_pool import (
    BP, InvalidParameter, NotLiquidatable, AlreadySettled,
    health_factor, is_liquidatable, calculate_liquidation, calculate_max_borrow,
    close_position,
)
from tests.fakes import make_position


@pytest.fixture
def underwater():
    """Owes 4,000 EGLD at 100 against 320,000 USDC at 1: health 0.8."""
    return make_position(principal=4_000, collateral_amount=320_000)


class TestHealthFactor:

    def test_one_and_a_half(self):
        position = make_position(principal=200, collateral_amount=150)
        assert health_factor(position, 2, 1, BP) == 3 * BP // 2

    def test_interest_lowers_health(self):
        position = make_position(principal=200, collateral_amount=150)
        assert health_factor(position, 2, 1, 2 * BP) == 3 * BP // 4

    def test_underwater(self, underwater):
        assert health_factor(underwater, 1, 100, BP) == 8 * BP // 10

    def test_nothing_owed_rejected(self):
        with pytest.raises(InvalidParameter):
            health_factor(close_position(make_position()), 1, 1, BP)

    def test_zero_price_rejected(self):
        with pytest.raises(InvalidParameter):
            health_factor(make_position(), 0, 1, BP)


class TestIsLiquidatable:

    def test_below_threshold(self, underwater):
        assert is_liquidatable(underwater, BP - 1, BP)

    def test_at_threshold_is_safe(self, underwater):
        assert not is_liquidatable(underwater, BP, BP)

    def test_closed_never_liquidatable(self, underwater):
        assert not is_liquidatable(close_position(underwater), 0, BP)


class TestCalculateLiquidation:

    def test_partial_without_bonus(self, underwater):
        result = calculate_liquidation(underwater, 2_000, BP, 8 * BP // 10, BP)
        assert result.collateral_released == 160_000
        assert result.liquidate_data.amount == 160_000
        assert result.liquidate_data.penalty == 0
        assert result.liquidate_data.collateral_token == "USDC"
        assert result.position.principal == 2_000
        assert result.position.collateral_amount == 160_000
        assert not result.fully_liquidated
        assert result.position.is_open

    def test_partial_with_bonus(self, underwater):
        result = calculate_liquidation(underwater, 2_000, BP, 8 * BP // 10, BP, BP // 20)
        assert result.liquidate_data.penalty == 8_000
        assert result.liquidate_data.amount == 168_000
        assert result.position.collateral_amount == 152_000

    def test_bonus_capped_at_remaining_collateral(self, underwater):
        result = calculate_liquidation(underwater, 3_000, BP, 8 * BP // 10, BP, BP)
        assert result.collateral_released == 240_000
        assert result.liquidate_data.penalty == 80_000
        assert result.position.collateral_amount == 0
        assert result.position.principal == 1_000

    def test_full_liquidation(self, underwater):
        result = calculate_liquidation(underwater, 4_000, BP, 8 * BP // 10, BP, BP // 20)
        assert result.fully_liquidated
        assert result.position.liquidated
        assert result.position.principal == 0
        assert result.liquidate_data.amount == 320_000
        assert result.liquidate_data.penalty == 0

    def test_full_liquidation_includes_interest(self, underwater):
        result = calculate_liquidation(underwater, 4_200, 1_050_000_000, BP // 2, BP)
        assert result.owed == 4_200
        assert result.fully_liquidated

    def test_partial_resnapshots_index(self, underwater):
        result = calculate_liquidation(underwater, 2_100, 1_050_000_000, BP // 2, BP)
        assert result.position.principal == 2_100
        assert result.position.open_borrow_index == 1_050_000_000

    def test_records_health_snapshot(self, underwater):
        result = calculate_liquidation(underwater, 1_000, BP, 123, BP)
        assert result.position.health_factor == 123

    def test_refused_at_threshold(self, underwater):
        with pytest.raises(NotLiquidatable):
            calculate_liquidation(underwater, 1_000, BP, BP, BP)

    def test_refused_above_threshold(self, underwater):
        with pytest.raises(NotLiquidatable):
            calculate_liquidation(underwater, 1_000, BP, 2 * BP, BP)

    def test_refused_when_already_liquidated(self, underwater):
        done = calculate_liquidation(underwater, 4_000, BP, BP // 2, BP).position
        with pytest.raises(AlreadySettled):
            calculate_liquidation(done, 1, BP, 0, BP)

    def test_refused_when_settled(self, underwater):
        with pytest.raises(AlreadySettled):
            calculate_liquidation(close_position(underwater), 1, BP, 0, BP)

    def test_repayment_above_owed_rejected(self, underwater):
        with pytest.raises(InvalidParameter):
            calculate_liquidation(underwater, 4_001, BP, BP // 2, BP)

    def test_zero_repayment_rejected(self, underwater):
        with pytest.raises(InvalidParameter):
            calculate_liquidation(underwater, 0, BP, BP // 2, BP)


class TestCalculateMaxBorrow:

    def test_seventy_five_percent_ltv(self):
        assert calculate_max_borrow(320_000, 1, 40, 75 * BP // 100) == 6_000

    def test_floors(self):
        assert calculate_max_borrow(100, 1, 3, BP) == 33

    def test_zero_debt_price_rejected(self):
        with pytest.raises(InvalidParameter):
            calculate_max_borrow(100, 1, 0, BP)
