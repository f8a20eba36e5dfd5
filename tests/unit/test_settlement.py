"""
test_settlement.py - Unit tests for repayment

Tests:
- Exact full repayment closes the position and releases all collateral
- Overpayment is refunded
- Half repayment releases half the collateral
- Snapshot fields of the RepayPosition
- Rejections: asset mismatch, non-positive amount, closed position
"""

import pytest

from lending_pool import (
    BP, InvalidParameter, AlreadySettled,
    calculate_repayment, close_position, owed_amount,
)
from tests.fakes import make_position


INDEX_105 = 1_050_000_000


@pytest.fixture
def position():
    """Principal 1,000 opened at index 1.0 with 500 collateral; owes 1,050 at 1.05."""
    return make_position(principal=1_000, collateral_amount=500, open_round=3,
                         collateral_open_round=3)


class TestFullRepayment:

    def test_exact_owed_closes_and_releases_everything(self, position):
        result = calculate_repayment(position, "EGLD", 1_050, INDEX_105, 1)
        assert result.full_repayment
        assert result.collateral_released == 500
        assert result.position.settled
        assert result.position.principal == 0
        assert result.applied == 1_050
        assert result.refund == 0

    def test_overpayment_refunded(self, position):
        result = calculate_repayment(position, "EGLD", 1_100, INDEX_105, 1)
        assert result.full_repayment
        assert result.applied == 1_050
        assert result.refund == 50
        assert result.repay_position.refund == 50


class TestPartialRepayment:

    def test_half_releases_half(self, position):
        result = calculate_repayment(position, "EGLD", 525, INDEX_105, 1)
        assert not result.full_repayment
        assert result.collateral_released == 250
        assert result.position.collateral_amount == 250
        assert result.position.principal == 525
        assert result.position.open_borrow_index == INDEX_105
        assert owed_amount(result.position, INDEX_105) == 525

    def test_release_floors(self, position):
        result = calculate_repayment(position, "EGLD", 1, INDEX_105, 1)
        assert result.collateral_released == 0
        assert result.position.collateral_amount == 500

    def test_one_short_of_owed_is_partial(self, position):
        result = calculate_repayment(position, "EGLD", 1_049, INDEX_105, 1)
        assert not result.full_repayment
        assert result.position.principal == 1


class TestRepayPositionSnapshot:

    def test_fields(self, position):
        snapshot = calculate_repayment(position, "EGLD", 525, INDEX_105, 2).repay_position
        assert snapshot.position_id == position.position_id
        assert snapshot.asset_id == "EGLD"
        assert snapshot.amount_paid == 525
        assert snapshot.nonce == 2
        assert snapshot.borrow_open_round == 3
        assert snapshot.collateral_asset_id == "USDC"
        assert snapshot.collateral_amount == 250
        assert snapshot.collateral_open_round == 3
        assert not snapshot.full_repayment


class TestRepaymentRejections:

    def test_asset_mismatch(self, position):
        with pytest.raises(InvalidParameter):
            calculate_repayment(position, "USDC", 1_050, INDEX_105, 1)

    def test_zero_amount(self, position):
        with pytest.raises(InvalidParameter):
            calculate_repayment(position, "EGLD", 0, INDEX_105, 1)

    def test_closed_position(self, position):
        with pytest.raises(AlreadySettled):
            calculate_repayment(close_position(position), "EGLD", 1, INDEX_105, 1)

    def test_liquidated_position(self, position):
        from dataclasses import replace
        liquidated = replace(position, liquidated=True)
        with pytest.raises(AlreadySettled):
            calculate_repayment(liquidated, "EGLD", 1, BP, 1)
