"""Protocol and portfolio risk analyzer.

Scores risk on a 0-10 scale from four components:
- Protocol risk: base score plus withdrawal-delay and efficiency penalties
- Concentration risk: Herfindahl-Hirschman Index of value shares x 10
- Liquidity risk: value-weighted withdrawal delay (hours) / 3
- Smart-contract risk: value-weighted contract maturity constant

Overall risk = 0.4 x mean protocol risk + 0.2 x each other component.
"""

from typing import Dict, List, Mapping, Optional, Sequence

from yield_rebalancer.protocols.base import PROTOCOL_TABLE, Protocol, ProtocolId
from yield_rebalancer.risk.base import RiskAssessment, clamp_risk
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

RISK_WEIGHTS = {
    "protocol": 0.4,
    "concentration": 0.2,
    "liquidity": 0.2,
    "smart_contract": 0.2,
}


class RiskAnalyzer:
    """Scores protocols, portfolios and target allocations.

    Configuration Parameters:
        delay_penalty: Risk added per hour of withdrawal delay (default 0.1)
        efficiency_penalty: Risk added per point of efficiency below 100 (default 0.02)
        liquidity_divisor: Weighted delay hours per risk point (default 3)

    Example:
        >>> analyzer = RiskAnalyzer()
        >>> assessment = analyzer.assess_portfolio(store.get_protocols())
        >>> assessment.concentration_risk
        5.0
        >>> assessment.recommendations
        []
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}

        self.delay_penalty = config.get("delay_penalty", 0.1)
        self.efficiency_penalty = config.get("efficiency_penalty", 0.02)
        self.liquidity_divisor = config.get("liquidity_divisor", 3.0)

        self._validate_config()

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if self.delay_penalty < 0:
            raise ValueError(f"delay_penalty must be >= 0, got {self.delay_penalty}")
        if self.efficiency_penalty < 0:
            raise ValueError(
                f"efficiency_penalty must be >= 0, got {self.efficiency_penalty}"
            )
        if self.liquidity_divisor <= 0:
            raise ValueError(
                f"liquidity_divisor must be positive, got {self.liquidity_divisor}"
            )

    def assess_portfolio(self, protocols: Sequence[Protocol]) -> RiskAssessment:
        """Assess risk of protocols weighted by their total staked amounts.

        Args:
            protocols: Protocols with live totals

        Returns:
            RiskAssessment with every score in [0, 10]
        """
        logger.info("Assessing portfolio risk for %d protocols", len(protocols))
        weights = {p.protocol_id: float(p.total_staked) for p in protocols}
        return self._assess(protocols, weights)

    def assess_allocation(
        self,
        allocations: Mapping[ProtocolId, float],
        protocols: Optional[Sequence[Protocol]] = None,
    ) -> RiskAssessment:
        """Assess risk of a target allocation map.

        Args:
            allocations: Target percentage per protocol
            protocols: Protocol attributes to use. Protocols not supplied
                fall back to their lookup-table defaults.

        Returns:
            RiskAssessment weighted by the target percentages
        """
        logger.info("Assessing allocation risk for %d protocols", len(allocations))

        known = {p.protocol_id: p for p in protocols or []}
        selected = [
            known.get(protocol_id) or Protocol.from_profile(protocol_id)
            for protocol_id in allocations
        ]
        weights = {protocol_id: float(pct) for protocol_id, pct in allocations.items()}
        return self._assess(selected, weights)

    def protocol_risk(self, protocol: Protocol) -> float:
        """Risk score of a single protocol, clamped to [0, 10]."""
        risk = protocol.risk_score
        risk += protocol.withdrawal_delay_hours * self.delay_penalty
        risk += (100 - protocol.efficiency_score) * self.efficiency_penalty
        return clamp_risk(risk)

    def concentration_risk(self, weights: Mapping[ProtocolId, float]) -> float:
        """HHI of value shares x 10. One holder scores 10, N equal holders 10/N."""
        shares = _shares(weights)
        if not shares:
            return 0.0
        hhi = sum(share * share for share in shares.values())
        return clamp_risk(hhi * 10)

    def liquidity_risk(
        self,
        protocols: Sequence[Protocol],
        weights: Mapping[ProtocolId, float],
    ) -> float:
        shares = _shares(weights)
        if not shares:
            return 0.0
        weighted_delay = sum(
            p.withdrawal_delay_hours * shares.get(p.protocol_id, 0.0) for p in protocols
        )
        return clamp_risk(weighted_delay / self.liquidity_divisor)

    def smart_contract_risk(
        self,
        protocols: Sequence[Protocol],
        weights: Mapping[ProtocolId, float],
    ) -> float:
        shares = _shares(weights)
        if not shares:
            return 0.0
        weighted = sum(
            PROTOCOL_TABLE[p.protocol_id].contract_risk * shares.get(p.protocol_id, 0.0)
            for p in protocols
        )
        return clamp_risk(weighted)

    def _assess(
        self,
        protocols: Sequence[Protocol],
        weights: Mapping[ProtocolId, float],
    ) -> RiskAssessment:
        protocol_risks = {p.protocol_id: self.protocol_risk(p) for p in protocols}
        average_risk = (
            sum(protocol_risks.values()) / len(protocol_risks) if protocol_risks else 0.0
        )

        concentration = self.concentration_risk(weights)
        liquidity = self.liquidity_risk(protocols, weights)
        smart_contract = self.smart_contract_risk(protocols, weights)

        overall = clamp_risk(
            average_risk * RISK_WEIGHTS["protocol"]
            + concentration * RISK_WEIGHTS["concentration"]
            + liquidity * RISK_WEIGHTS["liquidity"]
            + smart_contract * RISK_WEIGHTS["smart_contract"]
        )

        recommendations = self.generate_recommendations(
            overall, concentration, liquidity, smart_contract, protocols, protocol_risks, weights
        )

        return RiskAssessment(
            overall_risk=overall,
            protocol_risks=protocol_risks,
            concentration_risk=concentration,
            liquidity_risk=liquidity,
            smart_contract_risk=smart_contract,
            recommendations=recommendations,
        )

    def generate_recommendations(
        self,
        overall: float,
        concentration: float,
        liquidity: float,
        smart_contract: float,
        protocols: Sequence[Protocol],
        protocol_risks: Mapping[ProtocolId, float],
        weights: Mapping[ProtocolId, float],
    ) -> List[str]:
        recommendations: List[str] = []

        if overall > 7:
            recommendations.append("High risk detected - consider reducing position sizes")
        elif overall > 5:
            recommendations.append("Moderate risk - monitor positions closely")
        elif overall < 2:
            recommendations.append(
                "Very low risk - consider taking on more yield opportunities"
            )

        if concentration > 6:
            recommendations.append(
                "Portfolio too concentrated - diversify across more protocols"
            )

        if liquidity > 5:
            recommendations.append(
                "High liquidity risk - increase allocation to protocols with "
                "shorter withdrawal delays"
            )

        if smart_contract > 6:
            recommendations.append(
                "High smart contract risk - reduce exposure to newer protocols"
            )

        high_risk = [p.name for p in protocols if protocol_risks[p.protocol_id] > 7]
        if high_risk:
            recommendations.append(
                f"Consider reducing exposure to high-risk protocols: {', '.join(high_risk)}"
            )

        shares = _shares(weights)
        for protocol in protocols:
            share = shares.get(protocol.protocol_id, 0.0)
            if share > protocol.max_allocation / 100:
                recommendations.append(
                    f"{protocol.name} allocation ({share * 100:.1f}%) exceeds "
                    f"recommended maximum ({protocol.max_allocation:g}%)"
                )

        return recommendations


def _shares(weights: Mapping[ProtocolId, float]) -> Dict[ProtocolId, float]:
    """Normalize weights to fractions of their total; empty when the total is 0."""
    total = sum(weights.values())
    if total <= 0:
        return {}
    return {protocol_id: weight / total for protocol_id, weight in weights.items()}
