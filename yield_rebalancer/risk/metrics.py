"""Risk metric utilities.

Parametric Value at Risk and scenario stress testing for staked portfolios.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

import numpy as np

from yield_rebalancer.protocols.base import Protocol, ProtocolId

# One-sided z-scores for supported confidence levels
Z_SCORES = {
    0.90: 1.28,
    0.95: 1.65,
    0.99: 2.33,
}
DEFAULT_Z_SCORE = 1.65
DAYS_PER_YEAR = 365


@dataclass
class StressScenario:
    """A named shock applied per protocol.

    Attributes:
        name: Scenario label
        impacts: Fractional value change per protocol (e.g. -0.3 for -30%)
    """

    name: str
    impacts: Mapping[ProtocolId, float] = field(default_factory=dict)


def calculate_var(
    portfolio_value: float,
    time_horizon_days: float = 1,
    confidence_level: float = 0.95,
    annual_volatility: float = 0.15,
) -> float:
    """Calculate parametric Value at Risk.

    Scales annual volatility to the horizon with the square-root-of-time
    rule. Unsupported confidence levels use the 95% z-score.

    Args:
        portfolio_value: Value to assess (any unit; result is in the same unit)
        time_horizon_days: Holding period in days
        confidence_level: 0.90, 0.95 or 0.99
        annual_volatility: Annualized volatility as a decimal

    Returns:
        Maximum expected loss at the confidence level

    Raises:
        ValueError: If horizon or volatility is negative
    """
    if time_horizon_days < 0:
        raise ValueError(f"time_horizon_days must be >= 0, got {time_horizon_days}")
    if annual_volatility < 0:
        raise ValueError(f"annual_volatility must be >= 0, got {annual_volatility}")

    daily_volatility = annual_volatility / np.sqrt(DAYS_PER_YEAR)
    scaled_volatility = daily_volatility * np.sqrt(time_horizon_days)
    z_score = Z_SCORES.get(confidence_level, DEFAULT_Z_SCORE)

    return float(portfolio_value * scaled_volatility * z_score)


def stress_test(
    protocols: Sequence[Protocol],
    scenarios: Sequence[StressScenario],
) -> Dict[str, float]:
    """Value-weighted impact of each scenario on the portfolio.

    Args:
        protocols: Protocols with live totals
        scenarios: Shocks to apply

    Returns:
        {scenario name: weighted fractional impact}. A portfolio with no
        value scores 0.0 for every scenario.
    """
    total = sum(p.total_staked for p in protocols)
    results: Dict[str, float] = {}

    for scenario in scenarios:
        if total == 0:
            results[scenario.name] = 0.0
            continue

        results[scenario.name] = sum(
            (p.total_staked / total) * scenario.impacts.get(p.protocol_id, 0.0)
            for p in protocols
        )

    return results


def default_scenarios() -> List[StressScenario]:
    """Standard shock set used by the reporting API."""
    return [
        StressScenario(
            name="slashing_event",
            impacts={p: -0.05 for p in ProtocolId},
        ),
        StressScenario(
            name="lending_market_exploit",
            impacts={ProtocolId.MORPHO: -0.5},
        ),
        StressScenario(
            name="liquid_staking_depeg",
            impacts={
                ProtocolId.LIDO: -0.1,
                ProtocolId.ETHERFI: -0.15,
                ProtocolId.ROCKETPOOL: -0.1,
            },
        ),
    ]
