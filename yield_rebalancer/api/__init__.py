"""User-friendly API layer.

Components:
- RebalanceAPI: Run cycles and report positions, transactions, risk and performance
"""

from yield_rebalancer.api.rebalance_api import RebalanceAPI

__all__ = ["RebalanceAPI"]
