"""
collaborators.py - In-memory implementations of the pool's collaborators

The pool only talks to the protocols in core.py. These implementations back
tests, simulations and single-process use:

- ManualClock: round counter moved by hand, never backwards
- StaticPriceOracle: round-independent prices
- RoundSeriesPriceOracle: price history by round, with a staleness window
- InMemoryAssetBank: account balances per asset
- InMemoryReceiptMinter: receipt token batches keyed by (token_id, nonce)
- InMemoryStore: dict-backed key-value store

All prices are ints in the oracle's base currency.
"""

from __future__ import annotations
from bisect import bisect_right
from collections import defaultdict
from typing import Dict, List, Optional, Tuple, Any
import copy

from .core import (
    AssetId, Receipt, Record,
    InvalidParameter, InsufficientFunds, PriceUnavailable,
    DEFAULT_QUOTE_CURRENCY,
    require_int,
)


# ============================================================================
# CLOCK
# ============================================================================

class ManualClock:
    """
    Round counter advanced explicitly.

    Time can only move forward, never backward.
    """

    def __init__(self, start_round: int = 0):
        self._round = require_int("start_round", start_round)

    def current_round(self) -> int:
        return self._round

    def advance(self, rounds: int = 1) -> int:
        """Move forward by rounds and return the new round."""
        require_int("rounds", rounds)
        self._round += rounds
        return self._round

    def set_round(self, new_round: int) -> None:
        """
        Jump to new_round.

        Raises:
            InvalidParameter: If new_round is before the current round.
        """
        require_int("new_round", new_round)
        if new_round < self._round:
            raise InvalidParameter(
                f"Cannot move rounds backwards: {new_round} < {self._round}"
            )
        self._round = new_round

    def __repr__(self):
        return f"ManualClock(round={self._round})"


# ============================================================================
# PRICE ORACLES
# ============================================================================

class StaticPriceOracle:
    """
    Price oracle with static prices (round-independent).

    The base currency always prices at unit_price.
    """

    def __init__(
        self,
        prices: Dict[AssetId, int],
        base_currency: str = DEFAULT_QUOTE_CURRENCY,
        unit_price: int = 1,
    ):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping asset ids to int prices in base currency
            base_currency: The currency in which prices are quoted
            unit_price: Price of the base currency itself (the price scale)
        """
        self.base_currency = base_currency
        self.prices = dict(prices)
        self.prices[base_currency] = unit_price
        self.quote_count = 0

    def quote(self, asset_id: AssetId, quote_currency: str) -> int:
        """
        Current price of asset_id.

        Raises:
            PriceUnavailable: If the asset has no price, the price is not
                positive, or quote_currency is not the base currency.
        """
        self.quote_count += 1
        if quote_currency != self.base_currency:
            raise PriceUnavailable(
                f"prices are quoted in {self.base_currency}, not {quote_currency}"
            )
        price = self.prices.get(asset_id)
        if price is None or price <= 0:
            raise PriceUnavailable(f"no price for {asset_id} in {quote_currency}")
        return price

    def update_price(self, asset_id: AssetId, price: int):
        """Update the price of an asset."""
        self.prices[asset_id] = price

    def update_prices(self, prices: Dict[AssetId, int]):
        """Update multiple prices at once."""
        self.prices.update(prices)

    def remove_price(self, asset_id: AssetId):
        """Drop an asset's price, making it unavailable."""
        self.prices.pop(asset_id, None)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices, base={self.base_currency})"


class RoundSeriesPriceOracle:
    """
    Price oracle with round-varying prices.

    Uses the most recent price at or before the clock's current round. A
    quote older than max_age rounds is stale and treated as unavailable.
    """

    def __init__(
        self,
        clock,
        price_paths: Optional[Dict[AssetId, List[Tuple[int, int]]]] = None,
        base_currency: str = DEFAULT_QUOTE_CURRENCY,
        max_age: Optional[int] = None,
        unit_price: int = 1,
    ):
        """
        Initialize the oracle.

        Args:
            clock: Clock whose current round selects the quote
            price_paths: Optional dict mapping asset ids to (round, price) lists
            base_currency: Base currency for prices
            max_age: Rounds after which a quote is stale (None: never stale)
            unit_price: Price of the base currency itself

        Example:
            oracle = RoundSeriesPriceOracle(clock, {
                'EGLD': [(0, 40), (10, 38)],
            }, max_age=20)
        """
        self.clock = clock
        self.base_currency = base_currency
        self.max_age = max_age
        self.unit_price = unit_price
        self.price_history: Dict[AssetId, List[Tuple[int, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset_id: AssetId, round_: int, price: int):
        """Add a price observation for an asset at a round."""
        if asset_id not in self.price_history:
            self.price_history[asset_id] = []
        self.price_history[asset_id].append((round_, price))
        self.price_history[asset_id].sort(key=lambda x: x[0])

    def price_at(self, asset_id: AssetId, round_: int) -> Optional[Tuple[int, int]]:
        """Latest (round, price) at or before round_, or None."""
        history = self.price_history.get(asset_id)
        if not history:
            return None
        rounds = [r for r, _ in history]
        idx = bisect_right(rounds, round_)
        if idx == 0:
            return None
        return history[idx - 1]

    def quote(self, asset_id: AssetId, quote_currency: str) -> int:
        """
        Price of asset_id as of the clock's current round.

        Raises:
            PriceUnavailable: If there is no observation yet, it is stale, it
                is not positive, or quote_currency is not the base currency.
        """
        if quote_currency != self.base_currency:
            raise PriceUnavailable(
                f"prices are quoted in {self.base_currency}, not {quote_currency}"
            )
        if asset_id == self.base_currency:
            return self.unit_price

        now = self.clock.current_round()
        observation = self.price_at(asset_id, now)
        if observation is None:
            raise PriceUnavailable(f"no price for {asset_id} at round {now}")
        observed_round, price = observation
        if self.max_age is not None and now - observed_round > self.max_age:
            raise PriceUnavailable(
                f"price for {asset_id} is stale: observed at round {observed_round}, "
                f"now {now}, max age {self.max_age}"
            )
        if price <= 0:
            raise PriceUnavailable(f"non-positive price for {asset_id}: {price}")
        return price

    def __repr__(self):
        total_observations = sum(len(h) for h in self.price_history.values())
        return (f"RoundSeriesPriceOracle({len(self.price_history)} assets, "
                f"{total_observations} observations, base={self.base_currency})")


# ============================================================================
# ASSET TRANSFER
# ============================================================================

class InMemoryAssetBank:
    """Account balances per asset. Balances never go negative."""

    def __init__(self):
        self.balances: Dict[str, Dict[AssetId, int]] = defaultdict(lambda: defaultdict(int))

    def credit(self, account: str, asset_id: AssetId, amount: int) -> None:
        require_int("amount", amount)
        self.balances[account][asset_id] += amount

    def debit(self, account: str, asset_id: AssetId, amount: int) -> None:
        """
        Raises:
            InsufficientFunds: If the account holds less than amount.
        """
        require_int("amount", amount)
        available = self.balance(account, asset_id)
        if amount > available:
            raise InsufficientFunds(
                f"{account} has {available} {asset_id}, needs {amount}"
            )
        self.balances[account][asset_id] = available - amount

    def balance(self, account: str, asset_id: AssetId) -> int:
        if account not in self.balances:
            return 0
        return self.balances[account].get(asset_id, 0)

    def total_supply(self, asset_id: AssetId) -> int:
        return sum(bals.get(asset_id, 0) for bals in self.balances.values())

    def __repr__(self):
        return f"InMemoryAssetBank({len(self.balances)} accounts)"


# ============================================================================
# RECEIPT TOKENS
# ============================================================================

class InMemoryReceiptMinter:
    """
    Receipt token batches. Each mint of a token id gets the next nonce,
    starting at 1.
    """

    def __init__(self):
        self.batches: Dict[Tuple[str, int], Receipt] = {}
        self._last_nonce: Dict[str, int] = defaultdict(int)

    def mint(self, token_id: str, amount: int, attributes: Optional[Any] = None) -> Receipt:
        require_int("amount", amount, minimum=1)
        self._last_nonce[token_id] += 1
        receipt = Receipt(token_id, self._last_nonce[token_id], amount, attributes)
        self.batches[(token_id, receipt.nonce)] = receipt
        return receipt

    def burn(self, token_id: str, amount: int, nonce: Optional[int] = None) -> None:
        """
        Burn amount of a batch (nonce given) or of the token's oldest batches.

        Raises:
            InsufficientFunds: If less than amount is outstanding.
        """
        require_int("amount", amount)
        if nonce is not None:
            keys = [(token_id, nonce)] if (token_id, nonce) in self.batches else []
        else:
            keys = sorted(k for k in self.batches if k[0] == token_id)
        outstanding = sum(self.batches[k].amount for k in keys)
        if amount > outstanding:
            raise InsufficientFunds(
                f"cannot burn {amount} {token_id}: {outstanding} outstanding"
            )

        remaining = amount
        for key in keys:
            if remaining == 0:
                break
            receipt = self.batches[key]
            take = min(receipt.amount, remaining)
            remaining -= take
            if take == receipt.amount:
                del self.batches[key]
            else:
                self.batches[key] = Receipt(
                    receipt.token_id, receipt.nonce, receipt.amount - take, receipt.attributes
                )

    def get(self, token_id: str, nonce: int) -> Optional[Receipt]:
        return self.batches.get((token_id, nonce))

    def supply(self, token_id: str) -> int:
        return sum(r.amount for (tid, _), r in self.batches.items() if tid == token_id)

    def __repr__(self):
        return f"InMemoryReceiptMinter({len(self.batches)} batches)"


# ============================================================================
# PERSISTENT STORE
# ============================================================================

class InMemoryStore:
    """Dict-backed key-value store. Values are deep-copied in and out."""

    def __init__(self):
        self.data: Dict[str, Record] = {}

    def get(self, key: str) -> Optional[Record]:
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Record) -> None:
        self.data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self.data if k.startswith(prefix))

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self):
        return f"InMemoryStore({len(self.data)} keys)"
