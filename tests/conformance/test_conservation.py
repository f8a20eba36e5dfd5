"""
Conservation Conformance Tests

INVARIANT: Pool capital changes only by what crosses its boundary.

    total_reserves + total_borrowed
        = Σ deposits - Σ withdrawal payouts + Σ interest repaid

where interest repaid is owed - principal at each repay or liquidation.

Alongside it, the pool's books agree with the outside world:
    balance(pool account, pool asset)       = total_reserves
    balance(pool account, collateral)       = Σ position collateral
    supply(lend receipt)                    = Σ deposit entitlements
    supply(borrow receipt)                  = Σ borrowed amount of open positions
    total_borrowed                          = Σ principal of open positions
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lending_pool import BP
from tests.fakes import POOL_ASSET, COLLATERAL_ASSET, make_pool
from .scenarios import operations, run_operation


def expected_capital(pool):
    total = 0
    for record in pool.operation_log:
        details = record.detail_map
        if record.kind == "DEPOSIT":
            total += details['amount']
        elif record.kind == "WITHDRAW":
            total -= details['payout']
        elif record.kind in ("REPAY", "LIQUIDATE"):
            total += details['interest']
    return total


def assert_books_balance(harness):
    pool, bank, minter = harness.pool, harness.bank, harness.minter
    state = pool.state
    positions = list(pool.positions.debt_positions.values())
    open_positions = pool.positions.open_positions()

    assert state.total_reserves + state.total_borrowed == expected_capital(pool)
    assert bank.balance(pool.pool_account, POOL_ASSET) == state.total_reserves
    assert bank.balance(pool.pool_account, COLLATERAL_ASSET) == sum(
        p.collateral_amount for p in positions
    )
    assert minter.supply("LEGLD") == sum(d.amount for d in pool.positions.deposits.values())
    assert minter.supply("BEGLD") == sum(p.borrowed_amount for p in open_positions)
    assert state.total_borrowed == sum(p.principal for p in open_positions)


class TestConservationProperties:

    @given(operations())
    @settings(max_examples=100, deadline=None)
    def test_books_balance_after_every_operation(self, ops):
        harness = make_pool()
        for op in ops:
            run_operation(harness, op)
            assert_books_balance(harness)

    @given(operations(), st.integers(min_value=0, max_value=BP // 10))
    @settings(max_examples=50, deadline=None)
    def test_books_balance_with_liquidation_bonus(self, ops, bonus):
        harness = make_pool(liquidation_bonus=bonus)
        for op in ops:
            run_operation(harness, op)
        assert_books_balance(harness)

    @given(operations())
    @settings(max_examples=50, deadline=None)
    def test_assets_are_never_created(self, ops):
        """Every unit of the pool asset and collateral is accounted for somewhere."""
        harness = make_pool()
        egld = harness.bank.total_supply(POOL_ASSET)
        usdc = harness.bank.total_supply(COLLATERAL_ASSET)
        for op in ops:
            run_operation(harness, op)
        assert harness.bank.total_supply(POOL_ASSET) == egld
        assert harness.bank.total_supply(COLLATERAL_ASSET) == usdc


class TestConservationExamples:

    def test_interest_reaches_depositor(self):
        harness = make_pool()
        pool = harness.pool
        receipt = pool.deposit("alice", 10_000)
        position = pool.borrow("bob", 4_000, COLLATERAL_ASSET, 320_000)
        harness.clock.advance()
        pool.repay("bob", position.position_id, POOL_ASSET, 4_200)
        pool.withdraw("alice", receipt.nonce)

        assert pool.state.total_reserves == 0
        assert pool.state.total_borrowed == 0
        assert harness.bank.balance("alice", POOL_ASSET) == 100_200
        assert harness.bank.balance("bob", POOL_ASSET) == 9_800
        assert_books_balance(harness)

    def test_withdrawal_after_early_interest_claim(self):
        """
        carol claims interest before bob pays any, so later rewards are spread
        over less supply than alice's index implies. Her withdrawal still
        commits, paid from what the rewards reserve actually holds.
        """
        harness = make_pool()
        ops = [
            ("deposit", "alice", 10_000),
            ("deposit", "carol", 10_000),
            ("borrow", 7_500, 400_000),
            ("advance", 1),
            ("withdraw", 1, 10_000),
            ("advance", 1),
            ("deposit", "carol", 20_000),
            ("withdraw", 0, 10_000),
        ]
        outcomes = [run_operation(harness, op) for op in ops]
        assert outcomes == [True, True, True, None, True, None, True, True]

        withdrawals = [r.detail_map for r in harness.pool.operation_log if r.kind == "WITHDRAW"]
        assert [w['interest'] for w in withdrawals] == [175, 891]
        assert harness.pool.state.rewards_reserve == 0
        assert harness.pool.state.total_reserves == 11_434
        assert_books_balance(harness)
