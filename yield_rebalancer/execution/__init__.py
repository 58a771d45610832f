"""Execution Layer - Settlement and movement execution.

Components:
- SettlementClient: Abstract settlement contract
- SimulatedSettlement: In-memory settlement for dry runs and tests
- RebalanceExecutor: Sequential two-leg movement execution
- RebalanceTransaction: Per-movement record with status state machine
"""

from yield_rebalancer.execution.base import (
    FailureReason,
    RebalanceTransaction,
    SettlementClient,
    TransactionStatus,
)
from yield_rebalancer.execution.executor import RebalanceExecutor
from yield_rebalancer.execution.simulated import SimulatedSettlement

__all__ = [
    # Abstract interface
    "SettlementClient",
    # Concrete implementations
    "SimulatedSettlement",
    "RebalanceExecutor",
    # Data classes
    "RebalanceTransaction",
    # Enums
    "TransactionStatus",
    "FailureReason",
]
