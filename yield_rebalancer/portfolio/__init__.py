"""Portfolio Management Layer.

This layer turns market snapshots into target strategies, decides whether
a rebalance is worthwhile and plans the transfers that reach the target.

Components:
- AllocationOptimizer: Risk-adjusted target allocation
- RebalanceGate: Drift / fee / risk decision
- MovementPlanner: Surplus-to-deficit transfer planning
- PositionStore: Current positions, active strategy, transaction history
- Position, Strategy, Movement, RiskTolerance: Shared data structures
"""

from yield_rebalancer.portfolio.base import Movement, Position, RiskTolerance, Strategy
from yield_rebalancer.portfolio.decision import RebalanceDecision, RebalanceGate
from yield_rebalancer.portfolio.optimizer import AllocationOptimizer
from yield_rebalancer.portfolio.planner import MovementPlanner, to_basis_points
from yield_rebalancer.portfolio.store import PositionStore

__all__ = [
    "AllocationOptimizer",
    "RebalanceGate",
    "RebalanceDecision",
    "MovementPlanner",
    "PositionStore",
    "Position",
    "Strategy",
    "Movement",
    "RiskTolerance",
    "to_basis_points",
]
