"""Risk data structures.

The Risk Layer scores protocols and allocations on a 0-10 scale. It reads
portfolio state but never changes it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from yield_rebalancer.protocols.base import ProtocolId

MIN_RISK = 0.0
MAX_RISK = 10.0


def clamp_risk(value: float) -> float:
    """Clamp a score to the [0, 10] risk scale."""
    return max(MIN_RISK, min(value, MAX_RISK))


@dataclass
class RiskAssessment:
    """Result of a portfolio or allocation risk assessment.

    Attributes:
        overall_risk: Weighted combination of the sub-scores
        protocol_risks: Per-protocol risk score
        concentration_risk: HHI of value shares, scaled to 0-10
        liquidity_risk: Value-weighted withdrawal delay, scaled to 0-10
        smart_contract_risk: Value-weighted contract maturity constant
        recommendations: Threshold-driven advice strings
        timestamp: When the assessment was made
    """

    overall_risk: float
    protocol_risks: Dict[ProtocolId, float]
    concentration_risk: float
    liquidity_risk: float
    smart_contract_risk: float
    recommendations: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        """Plain-dict view for reporting."""
        return {
            "overall_risk": self.overall_risk,
            "protocol_risks": {p.value: r for p, r in self.protocol_risks.items()},
            "concentration_risk": self.concentration_risk,
            "liquidity_risk": self.liquidity_risk,
            "smart_contract_risk": self.smart_contract_risk,
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp.isoformat(),
        }
