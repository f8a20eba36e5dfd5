"""
router.py - Registry of lending pools by asset

LendingRouter owns one LiquidityPool per lendable asset and the
loan-to-value table shared by all of them. Operations are delegated to the
pool of the named asset; the router adds no accounting of its own.

All pools share the router's collaborators. Each pool gets its own key
namespace in the store ("<asset>/...") when a store is given.
"""

from __future__ import annotations
from typing import Dict, List, Mapping, Optional

from .core import (
    AssetId, PositionId, PoolParams, DebtPosition, RepayPosition,
    LiquidateData, Receipt, Record,
    Clock, PriceOracle, AssetTransfer, ReceiptMinter, PersistentStore,
    InvalidParameter, NotFound,
    DEFAULT_HEALTH_FACTOR_THRESHOLD,
    require_int, require_asset_id,
)
from .config import PoolConfig
from .pool import LiquidityPool


class NamespacedStore:
    """View of a PersistentStore with every key prefixed by namespace + "/"."""

    def __init__(self, store: PersistentStore, namespace: str):
        self.store = store
        self.prefix = namespace + "/"

    def get(self, key: str) -> Optional[Record]:
        return self.store.get(self.prefix + key)

    def set(self, key: str, value: Record) -> None:
        self.store.set(self.prefix + key, value)

    def delete(self, key: str) -> None:
        self.store.delete(self.prefix + key)

    def keys(self, prefix: str = "") -> List[str]:
        n = len(self.prefix)
        return [k[n:] for k in self.store.keys(self.prefix + prefix)]


class LendingRouter:
    """
    Pool registry keyed by asset.

    Example:
        router = LendingRouter(clock, oracle, bank, minter, verbose=False)
        router.set_asset_loan_to_value("USDC", 750_000_000)
        router.create_pool("EGLD", PoolParams(0, BP // 10, BP, 8 * BP // 10, BP // 10))
        router.deposit("EGLD", "alice", 1_000)
    """

    def __init__(
        self,
        clock: Clock,
        oracle: PriceOracle,
        bank: AssetTransfer,
        minter: ReceiptMinter,
        store: Optional[PersistentStore] = None,
        verbose: bool = True,
    ):
        self.clock = clock
        self.oracle = oracle
        self.bank = bank
        self.minter = minter
        self.store = store
        self.verbose = verbose
        self.pools: Dict[AssetId, LiquidityPool] = {}
        self.loan_to_value: Dict[AssetId, int] = {}

    def create_pool(
        self,
        asset_id: AssetId,
        params: PoolParams,
        health_factor_threshold: int = DEFAULT_HEALTH_FACTOR_THRESHOLD,
        liquidation_bonus: int = 0,
        **config_kwargs,
    ) -> LiquidityPool:
        """
        Create and register the pool for asset_id.

        The pool starts with the router's current loan-to-value table.

        Raises:
            InvalidParameter: If a pool for asset_id already exists or the
                configuration is invalid.
        """
        require_asset_id("asset_id", asset_id)
        if asset_id in self.pools:
            raise InvalidParameter(f"asset already supported: {asset_id}")

        config = PoolConfig(
            asset_id=asset_id,
            params=params,
            health_factor_threshold=health_factor_threshold,
            liquidation_bonus=liquidation_bonus,
            loan_to_value=dict(self.loan_to_value),
            **config_kwargs,
        )
        store = NamespacedStore(self.store, asset_id) if self.store is not None else None
        pool = LiquidityPool(
            config, self.clock, self.oracle, self.bank, self.minter,
            store=store, verbose=self.verbose,
        )
        self.pools[asset_id] = pool
        return pool

    def get_pool(self, asset_id: AssetId) -> LiquidityPool:
        try:
            return self.pools[asset_id]
        except KeyError:
            raise NotFound(f"no pool for asset {asset_id!r}") from None

    def list_pools(self) -> List[AssetId]:
        return list(self.pools)

    def set_asset_loan_to_value(self, collateral_asset_id: AssetId, ltv: int) -> None:
        """
        Set the loan-to-value for a collateral asset on every pool.

        Raises:
            InvalidParameter: If ltv is not positive.
        """
        require_asset_id("collateral_asset_id", collateral_asset_id)
        require_int("ltv", ltv, minimum=1)
        self.loan_to_value[collateral_asset_id] = ltv
        for pool in self.pools.values():
            pool.set_loan_to_value(collateral_asset_id, ltv)

    def get_asset_loan_to_value(self, collateral_asset_id: AssetId) -> int:
        try:
            return self.loan_to_value[collateral_asset_id]
        except KeyError:
            raise NotFound(
                f"no loan-to-value set for collateral {collateral_asset_id!r}"
            ) from None

    # Delegating operations

    def deposit(self, asset_id: AssetId, account: str, amount: int) -> Receipt:
        return self.get_pool(asset_id).deposit(account, amount)

    def withdraw(
        self, asset_id: AssetId, account: str, nonce: int, amount: Optional[int] = None
    ) -> int:
        return self.get_pool(asset_id).withdraw(account, nonce, amount)

    def borrow(
        self,
        asset_id: AssetId,
        account: str,
        amount: int,
        collateral_asset_id: AssetId,
        collateral_amount: int,
    ) -> DebtPosition:
        return self.get_pool(asset_id).borrow(
            account, amount, collateral_asset_id, collateral_amount
        )

    def repay(
        self, asset_id: AssetId, account: str, position_id: PositionId, amount_paid: int
    ) -> RepayPosition:
        return self.get_pool(asset_id).repay(account, position_id, asset_id, amount_paid)

    def liquidate(
        self, asset_id: AssetId, liquidator: str, position_id: PositionId, repayment_amount: int
    ) -> LiquidateData:
        return self.get_pool(asset_id).liquidate(liquidator, position_id, repayment_amount)

    def accrue_all(self) -> Mapping[AssetId, int]:
        """Commit accrual on every pool; returns each pool's borrow index."""
        return {
            asset_id: pool.accrue_interest().borrow_index
            for asset_id, pool in self.pools.items()
        }

    def __repr__(self):
        return f"LendingRouter({len(self.pools)} pools: {', '.join(self.pools)})"
