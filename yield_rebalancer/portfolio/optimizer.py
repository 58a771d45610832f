"""Risk-adjusted allocation optimizer.

Turns a market snapshot into a target Strategy.

Algorithm:
1. Risk-adjust each quoted yield: yield * (1 - risk / 100)
2. Sort protocols by risk-adjusted return, best first
3. Scale each protocol's base allocation by a tolerance-dependent risk
   multiplier and a saturating performance multiplier
4. Clamp to what is still unallocated and to the protocol cap
5. Derive expected yield, risk score and the fee-price ceiling
"""

from typing import Dict, Mapping, Optional

import numpy as np

from yield_rebalancer.portfolio.base import RiskTolerance, Strategy
from yield_rebalancer.protocols.base import PROTOCOL_TABLE, MarketSnapshot, ProtocolId
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class AllocationOptimizer:
    """Builds target strategies from market snapshots.

    Configuration Parameters:
        base_fee_price: Reference fee-price ceiling in gwei (default 50)
        performance_baseline: Risk-adjusted return treated as neutral (default 7.0)
        performance_scale: tanh input scale (default 5.0)
        performance_weight: Max +/- performance adjustment (default 0.3)
        base_allocations: Override {protocol name: base %}
        max_allocations: Override {protocol name: cap %}

    Example:
        >>> optimizer = AllocationOptimizer({"base_fee_price": 50})
        >>> snapshot = MarketSnapshot.from_names(
        ...     fee_price=42, reference_asset_price=2340,
        ...     yields={"lido": 8.1, "morpho": 9.2},
        ...     risks={"lido": 1.0, "morpho": 3.0},
        ... )
        >>> strategy = optimizer.optimize(snapshot, RiskTolerance.MODERATE)
        >>> strategy.total_allocation <= 100
        True
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}

        self.base_fee_price = config.get("base_fee_price", 50.0)
        self.performance_baseline = config.get("performance_baseline", 7.0)
        self.performance_scale = config.get("performance_scale", 5.0)
        self.performance_weight = config.get("performance_weight", 0.3)

        self.base_allocations: Dict[ProtocolId, float] = {
            p: profile.base_allocation for p, profile in PROTOCOL_TABLE.items()
        }
        self.max_allocations: Dict[ProtocolId, float] = {
            p: profile.max_allocation for p, profile in PROTOCOL_TABLE.items()
        }
        self.base_allocations.update(
            _parse_table(config.get("base_allocations", {}))
        )
        self.max_allocations.update(
            _parse_table(config.get("max_allocations", {}))
        )

        self._validate_config()

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if self.base_fee_price <= 0:
            raise ValueError(f"base_fee_price must be positive, got {self.base_fee_price}")
        if self.performance_scale <= 0:
            raise ValueError(
                f"performance_scale must be positive, got {self.performance_scale}"
            )
        if not 0 <= self.performance_weight < 1:
            raise ValueError(
                f"performance_weight must be in [0, 1), got {self.performance_weight}"
            )
        for protocol_id, cap in self.max_allocations.items():
            if not 0 <= cap <= 100:
                raise ValueError(
                    f"max allocation for {protocol_id.value} must be in [0, 100], got {cap}"
                )
        for protocol_id, base in self.base_allocations.items():
            if base < 0:
                raise ValueError(
                    f"base allocation for {protocol_id.value} must be >= 0, got {base}"
                )

    def optimize(
        self,
        snapshot: MarketSnapshot,
        risk_tolerance: RiskTolerance = RiskTolerance.MODERATE,
        rebalance_threshold: float = 0.05,
    ) -> Strategy:
        """Calculate a target strategy for the given market snapshot.

        Only protocols with a yield quote in the snapshot receive an
        allocation. Missing risk quotes default to 1. Never raises on a
        partial or empty snapshot.

        Args:
            snapshot: Market inputs
            risk_tolerance: Policy used for the risk multiplier
            rebalance_threshold: Carried into the strategy unchanged

        Returns:
            Strategy with allocations in risk-adjusted order
        """
        risk_adjusted = self.risk_adjusted_returns(snapshot)
        allocations = self.calculate_allocations(risk_adjusted, snapshot, risk_tolerance)

        expected_yield = sum(
            (allocation / 100) * snapshot.yield_for(protocol_id)
            for protocol_id, allocation in allocations.items()
        )

        strategy = Strategy(
            allocations=allocations,
            expected_yield=expected_yield,
            risk_score=self.strategy_risk_score(snapshot),
            rebalance_threshold=rebalance_threshold,
            max_fee_price=self.adjust_fee_threshold(snapshot.fee_price),
            risk_tolerance=risk_tolerance,
        )

        logger.info(
            "New strategy calculated: expected yield %.2f%%, risk %.2f, %d protocols",
            strategy.expected_yield,
            strategy.risk_score,
            len(allocations),
        )

        return strategy

    def risk_adjusted_returns(self, snapshot: MarketSnapshot) -> Dict[ProtocolId, float]:
        """Risk-adjusted return per quoted protocol."""
        return {
            protocol_id: snapshot.yield_for(protocol_id)
            * (1 - snapshot.risk_for(protocol_id) / 100)
            for protocol_id in snapshot.protocols
        }

    def calculate_allocations(
        self,
        risk_adjusted: Dict[ProtocolId, float],
        snapshot: MarketSnapshot,
        risk_tolerance: RiskTolerance,
    ) -> Dict[ProtocolId, float]:
        """Walk protocols best-first and hand out the remaining 100%.

        Returns:
            {protocol: target %}, summing to at most 100
        """
        ranked = sorted(risk_adjusted.items(), key=lambda x: x[1], reverse=True)

        allocations: Dict[ProtocolId, float] = {}
        remaining = 100.0

        for protocol_id, return_ in ranked:
            allocation = (
                self.base_allocations[protocol_id]
                * self.risk_multiplier(snapshot.risk_for(protocol_id), risk_tolerance)
                * self.performance_multiplier(return_)
            )
            allocation = max(0.0, min(allocation, remaining, self.max_allocations[protocol_id]))
            remaining -= allocation

            allocations[protocol_id] = allocation

        return allocations

    @staticmethod
    def risk_multiplier(risk: float, risk_tolerance: RiskTolerance) -> float:
        if risk_tolerance == RiskTolerance.CONSERVATIVE:
            return max(0.5, 1 - risk / 50)
        if risk_tolerance == RiskTolerance.AGGRESSIVE:
            return min(1.5, 1 + risk / 100)
        return max(0.7, 1 - risk / 100)

    def performance_multiplier(self, risk_adjusted_return: float) -> float:
        """Saturating multiplier in (1 - weight, 1 + weight)."""
        excess = risk_adjusted_return - self.performance_baseline
        return 1 + float(np.tanh(excess / self.performance_scale)) * self.performance_weight

    @staticmethod
    def strategy_risk_score(snapshot: MarketSnapshot) -> float:
        """Plain mean of the snapshot's risk quotes.

        Not weighted by the chosen allocations.
        """
        if not snapshot.risks:
            return 0.0
        return float(np.mean(list(snapshot.risks.values())))

    def adjust_fee_threshold(self, current_fee_price: float) -> float:
        """Fee-price ceiling for the new strategy.

        Raised by 20% while fees sit below half the base ceiling, lowered
        by 20% while they sit above 1.5x, otherwise the base ceiling.
        """
        if current_fee_price < self.base_fee_price * 0.5:
            return self.base_fee_price * 1.2
        if current_fee_price > self.base_fee_price * 1.5:
            return self.base_fee_price * 0.8
        return self.base_fee_price


def _parse_table(table: Mapping) -> Dict[ProtocolId, float]:
    return {ProtocolId.parse(name): float(value) for name, value in table.items()}
