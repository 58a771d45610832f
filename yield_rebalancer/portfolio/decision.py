"""Rebalance decision gate.

Decides whether a candidate strategy is worth executing given current
positions and the live network fee price. Pure: no state, no side effects.
"""

from dataclasses import dataclass
from typing import Mapping

from yield_rebalancer.portfolio.base import Position, Strategy
from yield_rebalancer.protocols.base import ProtocolId
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RebalanceDecision:
    """Outcome of the decision gate.

    Attributes:
        need: Total drift as a fraction of portfolio value
        threshold: Drift the strategy requires before acting
        fee_ok: Live fee price is within the strategy's ceiling
        risk_ok: Strategy risk is within the tolerance cap
        should_rebalance: All three conditions hold
    """

    need: float
    threshold: float
    fee_ok: bool
    risk_ok: bool
    should_rebalance: bool

    @property
    def reason(self) -> str:
        """Human-readable summary of why the gate opened or stayed shut."""
        if self.should_rebalance:
            return f"drift {self.need:.3f} exceeds threshold {self.threshold:.3f}"
        reasons = []
        if self.need <= self.threshold:
            reasons.append(f"drift {self.need:.3f} within threshold {self.threshold:.3f}")
        if not self.fee_ok:
            reasons.append("fee price above ceiling")
        if not self.risk_ok:
            reasons.append("strategy risk above tolerance")
        return "; ".join(reasons)


class RebalanceGate:
    """Checks drift, fee conditions and risk acceptance.

    Example:
        >>> gate = RebalanceGate()
        >>> decision = gate.evaluate(strategy, store.get_positions(), live_fee_price=30)
        >>> if decision.should_rebalance:
        ...     movements = planner.plan(strategy, store.get_positions())
    """

    def calculate_need(
        self,
        strategy: Strategy,
        positions: Mapping[ProtocolId, Position],
    ) -> float:
        """Sum of |target% - current%| over the strategy's protocols, / 100.

        Protocols held but absent from the strategy do not contribute.
        """
        total_difference = 0.0

        for protocol_id, target_percentage in strategy.allocations.items():
            position = positions.get(protocol_id)
            current_percentage = position.current_percentage if position else 0.0
            total_difference += abs(target_percentage - current_percentage)

        return total_difference / 100

    def evaluate(
        self,
        strategy: Strategy,
        positions: Mapping[ProtocolId, Position],
        live_fee_price: float,
    ) -> RebalanceDecision:
        """Evaluate all gate conditions.

        Args:
            strategy: Candidate strategy
            positions: Current positions by protocol
            live_fee_price: Current network fee price

        Returns:
            RebalanceDecision with each condition and the combined result
        """
        need = self.calculate_need(strategy, positions)
        fee_ok = live_fee_price <= strategy.max_fee_price
        risk_ok = strategy.risk_score <= strategy.risk_tolerance.max_risk_score

        decision = RebalanceDecision(
            need=need,
            threshold=strategy.rebalance_threshold,
            fee_ok=fee_ok,
            risk_ok=risk_ok,
            should_rebalance=need > strategy.rebalance_threshold and fee_ok and risk_ok,
        )

        logger.info(
            "Rebalance analysis - Need: %.3f, Fee OK: %s, Risk OK: %s",
            need,
            fee_ok,
            risk_ok,
        )

        return decision

    def should_rebalance(
        self,
        strategy: Strategy,
        positions: Mapping[ProtocolId, Position],
        live_fee_price: float,
    ) -> bool:
        """Convenience method: evaluate and return only the verdict."""
        return self.evaluate(strategy, positions, live_fee_price).should_rebalance

