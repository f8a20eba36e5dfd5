"""
conftest.py - Shared pytest fixtures for lending pool tests

Provides common fixtures used across unit and functional tests:
- Collaborators (clock, oracle, bank, minter, store)
- Pools (empty, funded, with an open borrow, with a liquidation bonus)
"""

import pytest

from lending_pool import BP
from tests.fakes import (
    COLLATERAL_ASSET, STANDARD_PARAMS, make_pool,
)


# =============================================================================
# HARNESS FIXTURES
# =============================================================================

@pytest.fixture
def params():
    return STANDARD_PARAMS


@pytest.fixture
def harness():
    """Empty EGLD pool with funded alice (lender), bob (borrower), carol (liquidator)."""
    return make_pool()


@pytest.fixture
def bonus_harness():
    """Empty pool paying liquidators a 5% bonus."""
    return make_pool(liquidation_bonus=BP // 20)


@pytest.fixture
def pool(harness):
    return harness.pool


# =============================================================================
# SCENARIO FIXTURES
# =============================================================================

@pytest.fixture
def funded(harness):
    """alice has deposited 10,000 EGLD at round 0."""
    receipt = harness.pool.deposit("alice", 10_000)
    return harness, receipt


@pytest.fixture
def borrowed(funded):
    """
    bob borrowed 4,000 EGLD against 320,000 USDC at round 0.

    Utilization 40%, borrow rate 5% per round, health factor 2.0.
    """
    harness, receipt = funded
    position = harness.pool.borrow("bob", 4_000, COLLATERAL_ASSET, 320_000)
    return harness, receipt, position


@pytest.fixture
def bonus_borrowed(bonus_harness):
    """Same borrow as `borrowed`, in the pool with a liquidation bonus."""
    receipt = bonus_harness.pool.deposit("alice", 10_000)
    position = bonus_harness.pool.borrow("bob", 4_000, COLLATERAL_ASSET, 320_000)
    return bonus_harness, receipt, position
