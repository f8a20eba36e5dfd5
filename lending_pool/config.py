"""
config.py - Pool Configuration

PoolConfig is the immutable configuration of one pool. It is validated on
construction and serialized with to_dict / from_dict for the persistent store.

Adjustable settings (threshold, loan-to-value entries) are changed by creating
a new PoolConfig with with_threshold() / with_loan_to_value(); the pool swaps
its reference.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

from .core import (
    AssetId, BP, DEFAULT_HEALTH_FACTOR_THRESHOLD, DEFAULT_QUOTE_CURRENCY,
    PoolParams, Record, InvalidParameter, NotFound,
    require_int, require_asset_id,
)
from .rates import per_round_params, validate_pool_params


def default_pool_account(asset_id: AssetId) -> str:
    """Account holding a pool's reserves and escrowed collateral."""
    return f"pool:{asset_id}"


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """
    Immutable configuration of a lending pool.

    Attributes:
        asset_id: Asset lent and borrowed through the pool
        params: Rate curve coefficients
        health_factor_threshold: Positions strictly below are liquidatable
        liquidation_bonus: BP-scaled bonus paid to liquidators from the
            borrower's remaining collateral (0 disables it)
        loan_to_value: collateral asset -> BP-scaled borrow limit
        quote_currency: Currency prices are quoted in
        pool_account: Account holding reserves and escrowed collateral
    """
    asset_id: AssetId
    params: PoolParams
    health_factor_threshold: int = DEFAULT_HEALTH_FACTOR_THRESHOLD
    liquidation_bonus: int = 0
    loan_to_value: Mapping[AssetId, int] = field(default_factory=dict)
    quote_currency: str = DEFAULT_QUOTE_CURRENCY
    pool_account: Optional[str] = None

    def __post_init__(self):
        require_asset_id("asset_id", self.asset_id)
        object.__setattr__(self, 'params', validate_pool_params(self.params))
        require_int("health_factor_threshold", self.health_factor_threshold, minimum=1)
        require_int("liquidation_bonus", self.liquidation_bonus)
        if self.liquidation_bonus > BP:
            raise InvalidParameter(
                f"liquidation_bonus must be <= {BP}, got {self.liquidation_bonus}"
            )
        require_asset_id("quote_currency", self.quote_currency)

        ltv_converted: Dict[AssetId, int] = {}
        for asset, ltv in self.loan_to_value.items():
            require_asset_id("loan_to_value asset", asset)
            require_int(f"loan_to_value[{asset}]", ltv, minimum=1)
            ltv_converted[asset] = ltv
        object.__setattr__(self, 'loan_to_value', ltv_converted)

        if self.pool_account is None:
            object.__setattr__(self, 'pool_account', default_pool_account(self.asset_id))
        else:
            require_asset_id("pool_account", self.pool_account)

    def get_loan_to_value(self, collateral_asset_id: AssetId) -> int:
        try:
            return self.loan_to_value[collateral_asset_id]
        except KeyError:
            raise NotFound(
                f"no loan-to-value set for collateral {collateral_asset_id!r} "
                f"in pool {self.asset_id}"
            ) from None

    def with_threshold(self, threshold: int) -> 'PoolConfig':
        return replace(self, health_factor_threshold=threshold)

    def with_loan_to_value(self, collateral_asset_id: AssetId, ltv: int) -> 'PoolConfig':
        return replace(
            self, loan_to_value={**self.loan_to_value, collateral_asset_id: ltv}
        )

    def to_dict(self) -> Record:
        return {
            'asset_id': self.asset_id,
            'params': self.params.to_dict(),
            'health_factor_threshold': self.health_factor_threshold,
            'liquidation_bonus': self.liquidation_bonus,
            'loan_to_value': dict(self.loan_to_value),
            'quote_currency': self.quote_currency,
            'pool_account': self.pool_account,
        }

    @classmethod
    def from_dict(cls, raw: Record) -> 'PoolConfig':
        """
        Build a PoolConfig from a plain dict.

        Only asset_id and params are required; everything else defaults.
        When seconds_per_round is given, params hold annual rates and are
        converted to per-round rates.

        Raises:
            InvalidParameter: If a required key is missing or a value is invalid.
        """
        try:
            asset_id = raw['asset_id']
            params = PoolParams.from_dict(raw['params'])
        except KeyError as e:
            raise InvalidParameter(f"pool config missing key {e}") from None
        seconds_per_round = raw.get('seconds_per_round')
        if seconds_per_round is not None:
            params = per_round_params(params, seconds_per_round)
        return cls(
            asset_id=asset_id,
            params=params,
            health_factor_threshold=raw.get(
                'health_factor_threshold', DEFAULT_HEALTH_FACTOR_THRESHOLD
            ),
            liquidation_bonus=raw.get('liquidation_bonus', 0),
            loan_to_value=dict(raw.get('loan_to_value', {})),
            quote_currency=raw.get('quote_currency', DEFAULT_QUOTE_CURRENCY),
            pool_account=raw.get('pool_account'),
        )
