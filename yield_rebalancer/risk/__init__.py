"""Risk Layer.

Scores protocol, concentration, liquidity and smart-contract risk for
portfolios and target allocations, plus VaR and stress testing.

Components:
- RiskAnalyzer: 0-10 risk scoring and recommendations
- RiskAssessment: Assessment result
- calculate_var / stress_test: Portfolio risk metrics
"""

from yield_rebalancer.risk.analyzer import RiskAnalyzer
from yield_rebalancer.risk.base import RiskAssessment, clamp_risk
from yield_rebalancer.risk.metrics import (
    StressScenario,
    calculate_var,
    default_scenarios,
    stress_test,
)

__all__ = [
    "RiskAnalyzer",
    "RiskAssessment",
    "StressScenario",
    "calculate_var",
    "stress_test",
    "default_scenarios",
    "clamp_risk",
]
