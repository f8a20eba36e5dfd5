"""
lending_pool - Collateralized Lending Pool Accounting Core

Tracks supplied and borrowed capital, accrues interest per round with a
kinked utilization rate curve, and decides when a borrow position may be
liquidated. All arithmetic is BP-scaled integer math with flooring division.

Usage:
    from lending_pool import (
        BP, PoolParams, PoolConfig, LiquidityPool,
        ManualClock, StaticPriceOracle, InMemoryAssetBank, InMemoryReceiptMinter,
    )

    clock = ManualClock()
    oracle = StaticPriceOracle({'EGLD': 40, 'USDC': 1})
    bank = InMemoryAssetBank()
    bank.credit("alice", "EGLD", 10_000)
    bank.credit("bob", "USDC", 10_000)

    params = PoolParams(base_rate=0, slope1=BP // 10_000, slope2=BP // 1_000,
                        optimal_utilization=8 * BP // 10, reserve_factor=BP // 10)
    config = PoolConfig("EGLD", params, loan_to_value={'USDC': 75 * BP // 100})
    pool = LiquidityPool(config, clock, oracle, bank, InMemoryReceiptMinter())

    receipt = pool.deposit("alice", 1_000)
    position = pool.borrow("bob", 100, "USDC", 8_000)

    clock.advance(100)
    pool.repay("bob", position.position_id, "EGLD", pool.position_owed(position.position_id))
    pool.withdraw("alice", receipt.nonce)
"""

# Core types
from .core import (
    BP,
    SECONDS_PER_YEAR,
    LEND_TOKEN_PREFIX,
    BORROW_TOKEN_PREFIX,
    DEFAULT_HEALTH_FACTOR_THRESHOLD,
    DEFAULT_QUOTE_CURRENCY,
    OP_DEPOSIT,
    OP_WITHDRAW,
    OP_BORROW,
    OP_REPAY,
    OP_LIQUIDATE,
    OP_ACCRUE,
    AssetId,
    PositionId,
    PoolParams,
    GlobalState,
    DebtPosition,
    RepayPosition,
    DepositMetadata,
    InterestMetadata,
    Receipt,
    LiquidateData,
    OperationRecord,
    Clock,
    PriceOracle,
    AssetTransfer,
    ReceiptMinter,
    PersistentStore,
    PoolError,
    InvalidParameter,
    NotFound,
    InsufficientFunds,
    InsufficientCollateral,
    InvariantViolation,
    NotLiquidatable,
    AlreadySettled,
    PriceUnavailable,
    lend_token_id,
    borrow_token_id,
    mul_div,
)

# Rate model
from .rates import (
    compute_utilization,
    compute_borrow_rate,
    compute_deposit_rate,
    borrow_rate_for,
    deposit_rate_for,
    rate_per_round,
    per_round_params,
    validate_pool_params,
)

# Index accrual
from .accrual import AccrualResult, calculate_accrual, accrue

# Position ledger
from .positions import (
    DepositEntitlement,
    PositionLedger,
    make_position_id,
    open_debt_position,
    owed_amount,
    accrued_interest,
    close_position,
    reduce_position,
    redemption_amount,
    supply_interest,
)

# Solvency and liquidation
from .solvency import (
    LiquidationResult,
    health_factor,
    is_liquidatable,
    calculate_liquidation,
    calculate_max_borrow,
)

# Repay/settlement
from .settlement import RepaymentResult, calculate_repayment

# Configuration
from .config import PoolConfig, default_pool_account

# In-memory collaborators
from .collaborators import (
    ManualClock,
    StaticPriceOracle,
    RoundSeriesPriceOracle,
    InMemoryAssetBank,
    InMemoryReceiptMinter,
    InMemoryStore,
)

# Pool and router
from .pool import LiquidityPool
from .router import LendingRouter, NamespacedStore

# Rate curve tabulation
from .curve import RateCurve, utilization_grid, tabulate_rate_curve, kink_index, is_monotonic, as_fractions


__all__ = [
    # Core
    'BP', 'SECONDS_PER_YEAR', 'LEND_TOKEN_PREFIX', 'BORROW_TOKEN_PREFIX',
    'DEFAULT_HEALTH_FACTOR_THRESHOLD', 'DEFAULT_QUOTE_CURRENCY',
    'OP_DEPOSIT', 'OP_WITHDRAW', 'OP_BORROW', 'OP_REPAY', 'OP_LIQUIDATE', 'OP_ACCRUE',
    'AssetId', 'PositionId',
    'PoolParams', 'GlobalState', 'DebtPosition', 'RepayPosition',
    'DepositMetadata', 'InterestMetadata', 'Receipt', 'LiquidateData', 'OperationRecord',
    'Clock', 'PriceOracle', 'AssetTransfer', 'ReceiptMinter', 'PersistentStore',
    'PoolError', 'InvalidParameter', 'NotFound', 'InsufficientFunds',
    'InsufficientCollateral', 'InvariantViolation', 'NotLiquidatable',
    'AlreadySettled', 'PriceUnavailable',
    'lend_token_id', 'borrow_token_id', 'mul_div',
    # Rates
    'compute_utilization', 'compute_borrow_rate', 'compute_deposit_rate',
    'borrow_rate_for', 'deposit_rate_for', 'rate_per_round', 'per_round_params',
    'validate_pool_params',
    # Accrual
    'AccrualResult', 'calculate_accrual', 'accrue',
    # Positions
    'DepositEntitlement', 'PositionLedger', 'make_position_id', 'open_debt_position',
    'owed_amount', 'accrued_interest', 'close_position', 'reduce_position',
    'redemption_amount', 'supply_interest',
    # Solvency
    'LiquidationResult', 'health_factor', 'is_liquidatable',
    'calculate_liquidation', 'calculate_max_borrow',
    # Settlement
    'RepaymentResult', 'calculate_repayment',
    # Config
    'PoolConfig', 'default_pool_account',
    # Collaborators
    'ManualClock', 'StaticPriceOracle', 'RoundSeriesPriceOracle',
    'InMemoryAssetBank', 'InMemoryReceiptMinter', 'InMemoryStore',
    # Pool and router
    'LiquidityPool', 'LendingRouter', 'NamespacedStore',
    # Curve
    'RateCurve', 'utilization_grid', 'tabulate_rate_curve', 'kink_index',
    'is_monotonic', 'as_fractions',
]
