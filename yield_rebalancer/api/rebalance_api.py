"""User-friendly Rebalance API for running cycles and reporting.

This module provides a simple, high-level interface over a RebalanceCycle:
run a cycle, inspect positions and transactions as DataFrames, and get
strategy, risk and performance summaries as plain dictionaries.
"""

from typing import Dict, Optional

import pandas as pd

from yield_rebalancer.execution.base import TransactionStatus
from yield_rebalancer.orchestration.cycle import RebalanceCycle
from yield_rebalancer.risk.metrics import calculate_var, default_scenarios, stress_test
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

POSITION_COLUMNS = [
    "protocol",
    "current_amount",
    "target_amount",
    "current_percentage",
    "target_percentage",
    "yield_rate",
    "risk_score",
]

TRANSACTION_COLUMNS = [
    "transaction_id",
    "source",
    "destination",
    "amount",
    "fee_price",
    "estimated_cost",
    "status",
    "withdrawal_reference",
    "settlement_reference",
    "failure_reason",
    "funds_in_transit",
    "error",
    "timestamp",
]


class RebalanceAPI:
    """High-level API for the rebalancer.

    Example:
        >>> from yield_rebalancer.api import RebalanceAPI
        >>>
        >>> api = RebalanceAPI(cycle)
        >>> summary = api.run_cycle()
        >>> if summary['executed']:
        ...     print(api.get_transactions()[['source', 'destination', 'status']])
    """

    def __init__(self, cycle: RebalanceCycle, config: Optional[Dict] = None):
        """Initialize RebalanceAPI.

        Args:
            cycle: Rebalance cycle to drive and report on
            config: Reporting settings
                - annual_volatility: Volatility used for VaR (default: 0.15)
                - var_confidence: VaR confidence level (default: 0.95)
        """
        config = config or {}

        self.cycle = cycle
        self.store = cycle.store
        self.annual_volatility = config.get("annual_volatility", 0.15)
        self.var_confidence = config.get("var_confidence", 0.95)

        logger.debug("RebalanceAPI initialized")

    def run_cycle(self) -> Dict:
        """Run one rebalance cycle and summarize it.

        Returns:
            Dictionary with:
                - executed: Whether movements were planned and executed
                - need / threshold / fee_ok / risk_ok: Gate inputs
                - reason: Human-readable gate outcome
                - strategy: Candidate strategy
                - risk: Candidate risk assessment
                - movements: Planned movements
                - transactions: Transaction records
                - funds_in_transit: Whether any movement stranded funds
                - error: Rejection message, if the strategy was rejected

        Raises:
            ConcurrentCycleError: If a cycle is already running
        """
        result = self.cycle.run()
        decision = result.decision

        return {
            "executed": result.executed,
            "need": decision.need if decision else None,
            "threshold": decision.threshold if decision else None,
            "fee_ok": decision.fee_ok if decision else None,
            "risk_ok": decision.risk_ok if decision else None,
            "reason": result.error or (decision.reason if decision else ""),
            "strategy": result.candidate.to_dict() if result.candidate else None,
            "risk": result.risk_assessment.to_dict() if result.risk_assessment else None,
            "movements": [
                {
                    "source": m.source.value,
                    "destination": m.destination.value,
                    "amount": m.amount,
                }
                for m in result.movements
            ],
            "transactions": [tx.to_dict() for tx in result.transactions],
            "funds_in_transit": result.funds_in_transit,
            "error": result.error,
        }

    def get_strategy(self) -> Dict:
        """Currently active strategy."""
        return self.store.get_active_strategy().to_dict()

    def assess_risk(self) -> Dict:
        """Assess the portfolio as currently held.

        Returns:
            RiskAssessment fields plus ``stress_tests``: the value-weighted
            impact of each standard shock scenario
        """
        protocols = self.store.get_protocols()
        assessment = self.cycle.analyzer.assess_portfolio(protocols)

        report = assessment.to_dict()
        report["stress_tests"] = stress_test(protocols, default_scenarios())
        return report

    def get_positions(self) -> pd.DataFrame:
        """Current positions, one row per protocol.

        Example:
            >>> api.get_positions()[['current_percentage', 'target_percentage']]
                       current_percentage  target_percentage
            protocol
            lido                     40.0               35.0
        """
        rows = [
            {
                "protocol": protocol_id.value,
                "current_amount": position.current_amount,
                "target_amount": position.target_amount,
                "current_percentage": position.current_percentage,
                "target_percentage": position.target_percentage,
                "yield_rate": position.protocol.yield_rate,
                "risk_score": position.protocol.risk_score,
            }
            for protocol_id, position in self.store.get_positions().items()
        ]
        return pd.DataFrame(rows, columns=POSITION_COLUMNS).set_index("protocol")

    def get_transactions(self) -> pd.DataFrame:
        """Every recorded transaction, oldest first."""
        rows = [tx.to_dict() for tx in self.store.get_transactions()]
        df = pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)
        if not df.empty:
            df["timestamp"] = pd.to_datetime(df["timestamp"])
        return df

    def get_performance_metrics(self) -> Dict:
        """Portfolio and execution summary.

        Returns:
            Dictionary with:
                - total_value: Sum of position amounts
                - current_yield: Yield of the portfolio as held (%)
                - expected_yield: Active strategy's expected yield (%)
                - rebalance_count: Cycles that executed movements
                - completed_movements / failed_movements: Transaction counts
                - funds_in_transit: Transactions that stranded funds
                - estimated_cost_spent: Sum of estimated network costs
                - value_at_risk: One-day VaR of the total value
        """
        transactions = self.store.get_transactions()
        total_value = self.store.total_value()

        return {
            "total_value": total_value,
            "current_yield": self.store.current_yield(),
            "expected_yield": self.store.get_active_strategy().expected_yield,
            "rebalance_count": self.cycle.rebalance_count,
            "completed_movements": sum(
                1 for tx in transactions if tx.status == TransactionStatus.COMPLETED
            ),
            "failed_movements": sum(
                1 for tx in transactions if tx.status == TransactionStatus.FAILED
            ),
            "funds_in_transit": sum(1 for tx in transactions if tx.funds_in_transit),
            "estimated_cost_spent": sum(tx.estimated_cost for tx in transactions),
            "value_at_risk": calculate_var(
                float(total_value),
                time_horizon_days=1,
                confidence_level=self.var_confidence,
                annual_volatility=self.annual_volatility,
            ),
        }
