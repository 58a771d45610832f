"""Orchestration Layer - Rebalance cycles and scheduling.

Components:
- RebalanceCycle: One optimize → decide → plan → execute pass
- RebalanceScheduler: APScheduler-based periodic cycles with circuit breaker
"""

from yield_rebalancer.orchestration.cycle import (
    CycleResult,
    RebalanceCycle,
    strategy_from_config,
)
from yield_rebalancer.orchestration.scheduler import RebalanceScheduler

__all__ = [
    "RebalanceCycle",
    "CycleResult",
    "RebalanceScheduler",
    "strategy_from_config",
]
