"""
pool.py - Stateful Lending Pool

LiquidityPool is the only object that mutates a pool's GlobalState and
PositionLedger. Every other module is pure.

Key responsibilities:
    - Accrues global indices as the first step of every mutating operation
    - Executes deposit, withdraw, borrow, repay and liquidate atomically:
      the operation either fully commits or leaves nothing changed
    - Drives the collaborators (asset transfer, receipt minting, oracle,
      persistent store) through their protocols
    - Always logs: every committed operation is appended to operation_log

Execution of one operation:
    1. Read the round once from the clock
    2. Accrue a copy of GlobalState to that round
    3. Compute the new state and positions on copies, queue effects
    4. Check invariants
    5. Apply effects: debits and burns first (rolled back on failure),
       then credits and mints
    6. Commit state, positions, audit record and store writes
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .core import (
    AssetId, PositionId, BP,
    GlobalState, DebtPosition, RepayPosition, DepositMetadata, InterestMetadata,
    LiquidateData, OperationRecord, Receipt,
    Clock, PriceOracle, AssetTransfer, ReceiptMinter, PersistentStore,
    PoolError, InvalidParameter, NotFound, InsufficientFunds,
    InsufficientCollateral, InvariantViolation, AlreadySettled,
    OP_DEPOSIT, OP_WITHDRAW, OP_BORROW, OP_REPAY, OP_LIQUIDATE, OP_ACCRUE,
    require_int, require_asset_id, mul_div, lend_token_id, borrow_token_id, freeze_details,
)
from .config import PoolConfig
from .accrual import AccrualResult, calculate_accrual, accrue
from .rates import compute_utilization, borrow_rate_for, deposit_rate_for
from .positions import (
    PositionLedger, DepositEntitlement,
    open_debt_position, owed_amount, accrued_interest, supply_interest,
)
from .solvency import health_factor, calculate_liquidation, calculate_max_borrow
from .settlement import calculate_repayment


# Persistent store keys
KEY_POOL_CONFIG = "pool_config"
KEY_GLOBAL_STATE = "global_state"
KEY_POSITION_NONCE = "position_nonce"
DEBT_POSITION_PREFIX = "debt_position:"
REPAY_POSITION_PREFIX = "repay_position:"
DEPOSIT_PREFIX = "deposit:"


class _Plan:
    """
    Working copy of one operation: new state and positions, queued effects,
    and the details recorded in the audit log.
    """

    def __init__(self, state: GlobalState, positions: PositionLedger):
        self.state = state
        self.positions = positions
        self.debits: List[Tuple[str, AssetId, int]] = []
        self.burns: List[Tuple[str, int, Optional[int]]] = []
        self.credits: List[Tuple[str, AssetId, int]] = []
        self.mints: List[Tuple[str, int, Any]] = []
        self.details: Dict[str, Any] = {}
        self.result: Any = None
        # Called with the minted receipts, before commit
        self.on_minted: Optional[Callable[[List[Receipt]], None]] = None
        self.touched_positions: List[PositionId] = []
        self.touched_deposits: List[int] = []
        self.new_repay_positions: List[RepayPosition] = []

    def transfer(self, source: str, dest: str, asset_id: AssetId, amount: int) -> None:
        if amount > 0:
            self.debits.append((source, asset_id, amount))
            self.credits.append((dest, asset_id, amount))


class LiquidityPool:
    """
    One lending pool: a single lendable asset, its global indices, its debt
    positions and deposit entitlements.

    Collaborators are injected. The pool reads the round from the clock once
    per operation and quotes each price from the oracle once per decision.

    Thread Safety:
        Not thread-safe. Operations must be serialized by the caller.

    Example:
        pool = LiquidityPool(config, clock, oracle, bank, minter)
        receipt = pool.deposit("alice", 1_000)
        position = pool.borrow("bob", 400, "USDC", 1_000)
        clock.advance(10)
        pool.repay("bob", position.position_id, "EGLD", pool.position_owed(position.position_id))
    """

    def __init__(
        self,
        config: PoolConfig,
        clock: Clock,
        oracle: PriceOracle,
        bank: AssetTransfer,
        minter: ReceiptMinter,
        store: Optional[PersistentStore] = None,
        verbose: bool = True,
        state: Optional[GlobalState] = None,
        positions: Optional[PositionLedger] = None,
    ):
        """
        Create a pool.

        Args:
            config: Pool configuration
            clock: Source of the current round
            oracle: Price feed for health factor and borrow limit decisions
            bank: Moves assets between accounts
            minter: Mints and burns lend/borrow receipts
            store: Optional persistent store; committed state is written to it
            verbose: Print one line per operation outcome (default: True)
            state: Initial global state (default: fresh, at the current round)
            positions: Initial position ledger (default: empty)
        """
        self.config = config
        self.clock = clock
        self.oracle = oracle
        self.bank = bank
        self.minter = minter
        self.store = store
        self.verbose = verbose
        self.state = state if state is not None else GlobalState(
            last_update_round=clock.current_round()
        )
        self.positions = positions if positions is not None else PositionLedger(config.asset_id)
        self.operation_log: List[OperationRecord] = []
        self._next_sequence = 0

        if state is None and store is not None:
            store.set(KEY_POOL_CONFIG, config.to_dict())
            store.set(KEY_GLOBAL_STATE, self.state.to_dict())
            store.set(KEY_POSITION_NONCE, {'value': self.positions.position_nonce})
        if self.verbose:
            p = config.params
            print(f"📝 Registered pool: {config.asset_id} "
                  f"[base={p.base_rate}, slope1={p.slope1}, slope2={p.slope2}, "
                  f"optimal={p.optimal_utilization}, reserve_factor={p.reserve_factor}]")

    @classmethod
    def from_store(
        cls,
        store: PersistentStore,
        clock: Clock,
        oracle: PriceOracle,
        bank: AssetTransfer,
        minter: ReceiptMinter,
        verbose: bool = True,
    ) -> 'LiquidityPool':
        """
        Restore a pool from its persisted records.

        Raises:
            NotFound: If no pool configuration has been persisted.
        """
        raw_config = store.get(KEY_POOL_CONFIG)
        if raw_config is None:
            raise NotFound("no pool configuration in store")
        config = PoolConfig.from_dict(raw_config)

        raw_state = store.get(KEY_GLOBAL_STATE)
        state = GlobalState.from_dict(raw_state) if raw_state is not None else None

        positions = PositionLedger(config.asset_id)
        for key in store.keys(DEBT_POSITION_PREFIX):
            positions.put_position(DebtPosition.from_dict(store.get(key)))
        # Keys sort lexicographically; restore creation order from the nonce
        positions.debt_positions = dict(sorted(
            positions.debt_positions.items(), key=lambda kv: kv[1].receipt_nonce
        ))
        repayments = [RepayPosition.from_dict(store.get(key))
                      for key in store.keys(REPAY_POSITION_PREFIX)]
        for repay_position in sorted(repayments, key=positions.repay_sort_key):
            positions.record_repayment(repay_position)
        deposits = [DepositEntitlement.from_dict(store.get(key))
                    for key in store.keys(DEPOSIT_PREFIX)]
        for entitlement in sorted(deposits, key=lambda d: d.nonce):
            positions.put_deposit(entitlement)
        raw_nonce = store.get(KEY_POSITION_NONCE)
        if raw_nonce is not None:
            positions.position_nonce = raw_nonce['value']

        return cls(
            config, clock, oracle, bank, minter,
            store=store, verbose=verbose, state=state, positions=positions,
        )

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    @property
    def asset_id(self) -> AssetId:
        return self.config.asset_id

    @property
    def pool_account(self) -> str:
        return self.config.pool_account

    def set_health_factor_threshold(self, threshold: int) -> None:
        """Replace the liquidation threshold. Affects later decisions only."""
        self.config = self.config.with_threshold(threshold)
        self._persist_config()
        if self.verbose:
            print(f"⚙ {self.asset_id}: health factor threshold = {threshold}")

    def set_loan_to_value(self, collateral_asset_id: AssetId, ltv: int) -> None:
        """Set the BP-scaled loan-to-value for a collateral asset."""
        require_asset_id("collateral_asset_id", collateral_asset_id)
        self.config = self.config.with_loan_to_value(collateral_asset_id, ltv)
        self._persist_config()
        if self.verbose:
            print(f"⚙ {self.asset_id}: loan-to-value[{collateral_asset_id}] = {ltv}")

    def _persist_config(self) -> None:
        if self.store is not None:
            self.store.set(KEY_POOL_CONFIG, self.config.to_dict())

    # ========================================================================
    # VIEWS (read-only, as of the current round)
    # ========================================================================

    def preview_state(self) -> GlobalState:
        """GlobalState accrued to the current round, without committing it."""
        return accrue(self.state, self.config.params, self.clock.current_round())

    def total_supplied_capital(self) -> int:
        return self.preview_state().total_supplied

    def capital_utilization(self) -> int:
        state = self.preview_state()
        return compute_utilization(state.total_borrowed, state.total_supplied)

    def borrow_rate(self) -> int:
        state = self.preview_state()
        return borrow_rate_for(self.config.params, state.total_borrowed, state.total_supplied)

    def deposit_rate(self) -> int:
        state = self.preview_state()
        return deposit_rate_for(self.config.params, state.total_borrowed, state.total_supplied)

    def get_debt_position(self, position_id: PositionId) -> DebtPosition:
        return self.positions.get_position(position_id)

    def position_owed(self, position_id: PositionId) -> int:
        position = self.positions.get_position(position_id)
        return owed_amount(position, self.preview_state().borrow_index)

    def debt_interest(self, position_id: PositionId) -> int:
        position = self.positions.get_position(position_id)
        return accrued_interest(position, self.preview_state().borrow_index)

    def position_health(self, position_id: PositionId) -> int:
        """
        Health factor of an open position at current prices.

        Raises:
            NotFound: Unknown position.
            AlreadySettled: Position is closed.
            PriceUnavailable: Oracle has no quote.
        """
        position = self.positions.get_position(position_id)
        if not position.is_open:
            raise AlreadySettled(f"position {position_id} is already closed")
        collateral_price, debt_price = self._quote_pair(position.collateral_asset_id)
        return health_factor(
            position, collateral_price, debt_price, self.preview_state().borrow_index
        )

    def repay_position_ids(self) -> List[Tuple[PositionId, int]]:
        """(position_id, nonce) of every recorded repayment, by position then nonce."""
        return self.positions.repay_position_ids()

    def get_repay_position(self, position_id: PositionId, nonce: int) -> RepayPosition:
        return self.positions.get_repay_position(position_id, nonce)

    def get_deposit(self, nonce: int) -> DepositEntitlement:
        return self.positions.get_deposit(nonce)

    def _quote_pair(self, collateral_asset_id: AssetId) -> Tuple[int, int]:
        quote = self.config.quote_currency
        collateral_price = self.oracle.quote(collateral_asset_id, quote)
        debt_price = self.oracle.quote(self.asset_id, quote)
        return collateral_price, debt_price

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def deposit(self, account: str, amount: int) -> Receipt:
        """
        Supply amount of the pool asset; mints a lend receipt.

        Returns:
            The lend receipt. Its nonce identifies the deposit for withdraw().
        """
        def build(plan: _Plan, current_round: int) -> None:
            require_int("amount", amount, minimum=1)
            plan.state = replace(plan.state, total_reserves=plan.state.total_reserves + amount)
            plan.transfer(account, self.pool_account, self.asset_id, amount)
            metadata = DepositMetadata(round=current_round, supply_index=plan.state.supply_index)
            plan.mints.append((lend_token_id(self.asset_id), amount, metadata))
            plan.details.update(amount=amount, supply_index=metadata.supply_index)

            def on_minted(receipts: List[Receipt]) -> None:
                receipt = receipts[0]
                plan.positions.put_deposit(
                    DepositEntitlement(receipt.nonce, account, amount, metadata)
                )
                plan.touched_deposits.append(receipt.nonce)
                plan.details['nonce'] = receipt.nonce
                plan.result = receipt

            plan.on_minted = on_minted

        return self._execute(OP_DEPOSIT, account, build)

    def withdraw(self, account: str, nonce: int, amount: Optional[int] = None) -> int:
        """
        Redeem (part of) a deposit with its accrued supply interest.

        Args:
            account: Depositor
            nonce: Lend receipt nonce returned by deposit()
            amount: Deposit amount to redeem (default: all of it)

        Returns:
            Amount paid out: amount plus interest.

        Raises:
            NotFound: Unknown deposit.
            InvalidParameter: Not the depositor, or amount out of range.
            InsufficientFunds: Reserves cannot cover the payout.
        """
        def build(plan: _Plan, current_round: int) -> None:
            entitlement = plan.positions.get_deposit(nonce)
            if entitlement.depositor != account:
                raise InvalidParameter(
                    f"deposit {nonce} belongs to {entitlement.depositor}, not {account}"
                )
            redeem = entitlement.amount if amount is None else amount
            require_int("amount", redeem, minimum=1)
            if redeem > entitlement.amount:
                raise InvalidParameter(
                    f"cannot withdraw {redeem}, deposit {nonce} holds {entitlement.amount}"
                )

            state = plan.state
            # Capped at the rewards reserve; any excess is forfeited by the lender
            interest = min(
                supply_interest(redeem, entitlement.metadata.supply_index, state.supply_index),
                state.rewards_reserve,
            )
            payout = redeem + interest
            if payout > state.total_reserves:
                raise InsufficientFunds(
                    f"pool {self.asset_id} holds {state.total_reserves}, withdrawal needs {payout}"
                )

            plan.state = replace(
                state,
                total_reserves=state.total_reserves - payout,
                rewards_reserve=state.rewards_reserve - interest,
            )
            remaining = entitlement.amount - redeem
            if remaining:
                plan.positions.put_deposit(replace(entitlement, amount=remaining))
            else:
                plan.positions.remove_deposit(nonce)
            plan.touched_deposits.append(nonce)

            plan.burns.append((lend_token_id(self.asset_id), redeem, nonce))
            plan.transfer(self.pool_account, account, self.asset_id, payout)
            plan.details.update(nonce=nonce, amount=redeem, interest=interest, payout=payout)
            plan.result = payout

        return self._execute(OP_WITHDRAW, account, build)

    def borrow(
        self,
        account: str,
        amount: int,
        collateral_asset_id: AssetId,
        collateral_amount: int,
    ) -> DebtPosition:
        """
        Borrow amount of the pool asset against escrowed collateral.

        Returns:
            The new DebtPosition.

        Raises:
            NotFound: No loan-to-value configured for the collateral.
            InsufficientCollateral: Collateral does not cover the borrow.
            InsufficientFunds: Reserves (or the borrower's collateral balance)
                are insufficient.
            PriceUnavailable: Oracle has no quote.
        """
        def build(plan: _Plan, current_round: int) -> None:
            require_int("amount", amount, minimum=1)
            require_int("collateral_amount", collateral_amount, minimum=1)
            require_asset_id("collateral_asset_id", collateral_asset_id)
            ltv = self.config.get_loan_to_value(collateral_asset_id)

            collateral_price, debt_price = self._quote_pair(collateral_asset_id)
            limit = calculate_max_borrow(collateral_amount, collateral_price, debt_price, ltv)
            if amount > limit:
                raise InsufficientCollateral(
                    f"{collateral_amount} {collateral_asset_id} supports at most "
                    f"{limit} {self.asset_id}, requested {amount}"
                )
            if amount > plan.state.total_reserves:
                raise InsufficientFunds(
                    f"pool {self.asset_id} holds {plan.state.total_reserves}, "
                    f"borrow needs {amount}"
                )

            health = mul_div(collateral_amount * collateral_price, BP, amount * debt_price)
            position_id = plan.positions.next_position_id(account)
            position, plan.state = open_debt_position(
                plan.state, position_id, account, self.asset_id, amount,
                collateral_amount, collateral_asset_id, current_round,
                health_factor=health,
            )
            plan.positions.put_position(position)
            plan.touched_positions.append(position_id)

            plan.transfer(account, self.pool_account, collateral_asset_id, collateral_amount)
            plan.transfer(self.pool_account, account, self.asset_id, amount)
            plan.mints.append(
                (borrow_token_id(self.asset_id), amount, InterestMetadata(round=current_round))
            )
            plan.details.update(
                position_id=position_id, amount=amount,
                collateral=f"{collateral_amount} {collateral_asset_id}", health=health,
            )

            def on_minted(receipts: List[Receipt]) -> None:
                opened = replace(position, receipt_nonce=receipts[0].nonce)
                plan.positions.put_position(opened)
                plan.result = opened

            plan.on_minted = on_minted

        return self._execute(OP_BORROW, account, build)

    def repay(
        self,
        account: str,
        position_id: PositionId,
        asset_paid: AssetId,
        amount_paid: int,
    ) -> RepayPosition:
        """
        Repay (part of) a debt position.

        Collateral is released to the borrower in proportion to the debt
        repaid; a full repayment releases all of it and refunds any excess.

        Returns:
            RepayPosition snapshot of the repayment.

        Raises:
            NotFound: Unknown position.
            AlreadySettled: Position already closed or liquidated.
            InvalidParameter: Asset mismatch or non-positive amount.
            InsufficientFunds: Payer balance too low.
        """
        def build(plan: _Plan, current_round: int) -> None:
            position = plan.positions.get_position(position_id)
            nonce = 1 + sum(1 for pid, _ in plan.positions.repay_positions if pid == position_id)
            result = calculate_repayment(
                position, asset_paid, amount_paid, plan.state.borrow_index, nonce
            )

            state = plan.state
            plan.state = replace(
                state,
                total_reserves=state.total_reserves + result.applied,
                total_borrowed=state.total_borrowed - position.principal + result.position.principal,
            )
            plan.positions.put_position(result.position)
            plan.positions.record_repayment(result.repay_position)
            plan.touched_positions.append(position_id)
            plan.new_repay_positions.append(result.repay_position)

            plan.debits.append((account, asset_paid, amount_paid))
            plan.credits.append((self.pool_account, self.asset_id, result.applied))
            if result.refund:
                plan.credits.append((account, asset_paid, result.refund))
            plan.transfer(
                self.pool_account, position.borrower,
                position.collateral_asset_id, result.collateral_released,
            )
            if result.full_repayment and position.borrowed_amount:
                plan.burns.append(
                    (borrow_token_id(self.asset_id), position.borrowed_amount, position.receipt_nonce)
                )
            plan.details.update(
                position_id=position_id, nonce=nonce, paid=amount_paid, owed=result.owed,
                interest=result.owed - position.principal,
                refund=result.refund, collateral_released=result.collateral_released,
                full=result.full_repayment,
            )
            plan.result = result.repay_position

        return self._execute(OP_REPAY, account, build)

    def liquidate(
        self,
        liquidator: str,
        position_id: PositionId,
        repayment_amount: int,
    ) -> LiquidateData:
        """
        Repay part or all of an unhealthy position in exchange for collateral.

        Returns:
            LiquidateData: collateral sent to the liquidator.

        Raises:
            NotFound: Unknown position.
            AlreadySettled: Position already closed or liquidated.
            NotLiquidatable: Health factor at or above the threshold.
            InvalidParameter: Repayment not in (0, owed].
            PriceUnavailable: Oracle has no quote.
        """
        def build(plan: _Plan, current_round: int) -> None:
            position = plan.positions.get_position(position_id)
            if not position.is_open:
                raise AlreadySettled(f"position {position_id} is already closed")
            require_int("repayment_amount", repayment_amount, minimum=1)

            borrow_index = plan.state.borrow_index
            collateral_price, debt_price = self._quote_pair(position.collateral_asset_id)
            health = health_factor(position, collateral_price, debt_price, borrow_index)
            result = calculate_liquidation(
                position, repayment_amount, borrow_index, health,
                self.config.health_factor_threshold, self.config.liquidation_bonus,
            )

            state = plan.state
            plan.state = replace(
                state,
                total_reserves=state.total_reserves + repayment_amount,
                total_borrowed=state.total_borrowed - position.principal + result.position.principal,
            )
            plan.positions.put_position(result.position)
            plan.touched_positions.append(position_id)

            data = result.liquidate_data
            plan.transfer(liquidator, self.pool_account, self.asset_id, repayment_amount)
            plan.transfer(self.pool_account, liquidator, data.collateral_token, data.amount)
            if result.fully_liquidated and position.borrowed_amount:
                plan.burns.append(
                    (borrow_token_id(self.asset_id), position.borrowed_amount, position.receipt_nonce)
                )
            plan.details.update(
                position_id=position_id, health=health, repaid=repayment_amount,
                owed=result.owed, collateral_out=data.amount, penalty=data.penalty,
                interest=result.owed - position.principal,
                full=result.fully_liquidated,
            )
            plan.result = data

        return self._execute(OP_LIQUIDATE, liquidator, build)

    def accrue_interest(self, account: str = "system") -> GlobalState:
        """Commit accrual to the current round with no other change."""
        def build(plan: _Plan, current_round: int) -> None:
            plan.result = plan.state

        return self._execute(OP_ACCRUE, account, build)

    def transact(self, event_type: str, **kwargs) -> Any:
        """
        Route an operation by event type.

        This is the unified entry point mirroring the individual methods:
            - DEPOSIT: account, amount
            - WITHDRAW: account, nonce, amount (optional)
            - BORROW: account, amount, collateral_asset_id, collateral_amount
            - REPAY: account, position_id, asset_paid, amount_paid
            - LIQUIDATE: liquidator, position_id, repayment_amount
            - ACCRUE: account (optional)

        Raises:
            InvalidParameter: Unknown event type or missing parameter.

        Example:
            pool.transact("DEPOSIT", account="alice", amount=1_000)
        """
        handlers = {
            OP_DEPOSIT: self.deposit,
            OP_WITHDRAW: self.withdraw,
            OP_BORROW: self.borrow,
            OP_REPAY: self.repay,
            OP_LIQUIDATE: self.liquidate,
            OP_ACCRUE: self.accrue_interest,
        }
        handler = handlers.get(event_type)
        if handler is None:
            raise InvalidParameter(f"Unknown event type {event_type!r} for pool {self.asset_id}")
        try:
            return handler(**kwargs)
        except TypeError as e:
            raise InvalidParameter(f"Bad parameters for {event_type}: {e}") from None

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _execute(self, kind: str, account: str, build: Callable[[_Plan, int], None]) -> Any:
        """
        Run one operation atomically.

        build() fills a _Plan from an accrued copy of the state. Nothing is
        visible outside the plan until every check and every fallible effect
        has succeeded.
        """
        current_round = self.clock.current_round()
        state_before = self.state
        try:
            accrual = calculate_accrual(self.state, self.config.params, current_round)
            plan = _Plan(accrual.state, self.positions.clone())
            build(plan, current_round)
            self._check_invariants(state_before, plan)
            receipts = self._apply_effects(plan)
            if plan.on_minted is not None:
                plan.on_minted(receipts)
        except PoolError as e:
            if self.verbose:
                print(f"✗ REJECTED: {kind} by {account} @{current_round}: {e}")
            raise

        self._commit(kind, account, current_round, state_before, accrual, plan)
        return plan.result

    def _check_invariants(self, state_before: GlobalState, plan: _Plan) -> None:
        state = plan.state
        if state.borrow_index < state_before.borrow_index:
            raise InvariantViolation(
                f"borrow index regressed: {state.borrow_index} < {state_before.borrow_index}"
            )
        if state.supply_index < state_before.supply_index:
            raise InvariantViolation(
                f"supply index regressed: {state.supply_index} < {state_before.supply_index}"
            )
        outstanding = sum(p.principal for p in plan.positions.open_positions())
        if outstanding != state.total_borrowed:
            raise InvariantViolation(
                f"total borrowed {state.total_borrowed} != open principal {outstanding}"
            )

    def _apply_effects(self, plan: _Plan) -> List[Receipt]:
        """
        Debits and burns first; if one fails, the debits already made are
        credited back and the error propagates. Credits and mints cannot fail.
        """
        applied: List[Tuple[str, AssetId, int]] = []
        try:
            for account, asset_id, amount in plan.debits:
                self.bank.debit(account, asset_id, amount)
                applied.append((account, asset_id, amount))
            for token_id, amount, nonce in plan.burns:
                self.minter.burn(token_id, amount, nonce)
        except PoolError:
            for account, asset_id, amount in reversed(applied):
                self.bank.credit(account, asset_id, amount)
            raise

        for account, asset_id, amount in plan.credits:
            if amount > 0:
                self.bank.credit(account, asset_id, amount)
        return [self.minter.mint(token_id, amount, attributes)
                for token_id, amount, attributes in plan.mints]

    def _commit(
        self,
        kind: str,
        account: str,
        current_round: int,
        state_before: GlobalState,
        accrual: AccrualResult,
        plan: _Plan,
    ) -> None:
        self.state = plan.state
        self.positions = plan.positions

        record = OperationRecord(
            sequence_number=self._next_sequence,
            kind=kind,
            round=current_round,
            account=account,
            details=freeze_details(plan.details),
            state_before=state_before,
            state_after=plan.state,
        )
        self._next_sequence += 1
        self.operation_log.append(record)
        self._persist(plan)

        if self.verbose:
            if not accrual.is_noop:
                print(f"  ↻ ACCRUED {self.asset_id}: {accrual.delta_rounds} rounds "
                      f"@ rate {accrual.borrow_rate}, rewards +{accrual.rewards_increase}")
            print(f"✓ APPLIED: {record!r}")

    def _persist(self, plan: _Plan) -> None:
        if self.store is None:
            return
        store = self.store
        store.set(KEY_GLOBAL_STATE, self.state.to_dict())
        store.set(KEY_POSITION_NONCE, {'value': self.positions.position_nonce})
        for position_id in plan.touched_positions:
            position = self.positions.get_position(position_id)
            store.set(DEBT_POSITION_PREFIX + position_id, position.to_dict())
        for repay_position in plan.new_repay_positions:
            key = f"{REPAY_POSITION_PREFIX}{repay_position.position_id}:{repay_position.nonce}"
            store.set(key, repay_position.to_dict())
        for nonce in plan.touched_deposits:
            key = f"{DEPOSIT_PREFIX}{nonce}"
            entitlement = self.positions.deposits.get(nonce)
            if entitlement is None:
                store.delete(key)
            else:
                store.set(key, entitlement.to_dict())

    def __repr__(self):
        s = self.state
        return (f"LiquidityPool({self.asset_id}: reserves={s.total_reserves}, "
                f"borrowed={s.total_borrowed}, round={s.last_update_round})")
