"""Yield Rebalancer - multi-protocol yield portfolio rebalancing.

Layers:
- protocols: Protocol identifiers, lookup table and market snapshots
- data: Market data sources
- risk: Risk scoring and metrics
- portfolio: Optimizer, decision gate, movement planner and position store
- execution: Settlement contract and movement executor
- orchestration: Rebalance cycle and scheduler
- api: Reporting API
"""

__version__ = "0.1.0"
