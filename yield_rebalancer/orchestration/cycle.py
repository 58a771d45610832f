"""Rebalance Cycle - Orchestrates one optimize-to-execute pass.

Cycle Chain:
Market Snapshot → Allocation Optimizer → Risk Assessment → Decision Gate
→ Movement Planner → Rebalance Executor → Position Store

Cycles are serialized: a second run() while one is in progress raises
ConcurrentCycleError instead of interleaving with the first.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from yield_rebalancer.data.base import MarketDataSource
from yield_rebalancer.execution.base import (
    RebalanceTransaction,
    SettlementClient,
    TransactionStatus,
)
from yield_rebalancer.execution.executor import RebalanceExecutor
from yield_rebalancer.portfolio.base import Movement, Position, RiskTolerance, Strategy
from yield_rebalancer.portfolio.decision import RebalanceDecision, RebalanceGate
from yield_rebalancer.portfolio.optimizer import AllocationOptimizer
from yield_rebalancer.portfolio.planner import MovementPlanner
from yield_rebalancer.portfolio.store import PositionStore
from yield_rebalancer.protocols.base import MarketSnapshot, ProtocolId
from yield_rebalancer.risk.analyzer import RiskAnalyzer
from yield_rebalancer.risk.base import RiskAssessment
from yield_rebalancer.utils.event_log import RebalanceEventLogger, RebalanceEventType
from yield_rebalancer.utils.exceptions import (
    ConcurrentCycleError,
    ConfigurationError,
    DataQualityError,
    InvalidStrategyError,
)
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CycleResult:
    """Everything one cycle produced.

    Attributes:
        snapshot: Market inputs the cycle ran on
        candidate: Strategy produced by the optimizer
        decision: Gate outcome (None if the cycle stopped earlier)
        movements: Planned movements (empty unless the gate opened)
        transactions: Executed transactions, one per movement
        risk_assessment: Risk of the candidate allocation
        error: Why the candidate was rejected, if it was
        started_at: Cycle start time
        finished_at: Cycle end time
    """

    snapshot: Optional[MarketSnapshot] = None
    candidate: Optional[Strategy] = None
    decision: Optional[RebalanceDecision] = None
    movements: List[Movement] = field(default_factory=list)
    transactions: List[RebalanceTransaction] = field(default_factory=list)
    risk_assessment: Optional[RiskAssessment] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def executed(self) -> bool:
        """True if the gate opened and planning succeeded."""
        return (
            self.decision is not None
            and self.decision.should_rebalance
            and self.error is None
        )

    @property
    def funds_in_transit(self) -> bool:
        return any(tx.funds_in_transit for tx in self.transactions)

    def count(self, status: TransactionStatus) -> int:
        return sum(1 for tx in self.transactions if tx.status == status)


def strategy_from_config(config: Mapping) -> Strategy:
    """Build the initial active strategy from the ``strategy`` section.

    Raises:
        ConfigurationError: If an allocation names an unknown protocol or
            the risk tolerance is not recognized
    """
    try:
        allocations = {
            ProtocolId.parse(name): float(pct)
            for name, pct in (config.get("initial_allocations") or {}).items()
        }
    except DataQualityError as e:
        raise ConfigurationError(f"strategy.initial_allocations: {e}") from e

    return Strategy(
        allocations=allocations,
        expected_yield=config.get("initial_expected_yield", 0.0),
        risk_score=config.get("initial_risk_score", 0.0),
        rebalance_threshold=config.get("rebalance_threshold", 0.05),
        max_fee_price=config.get("max_fee_price", 50.0),
        risk_tolerance=RiskTolerance.parse(config.get("risk_tolerance", "moderate")),
    )


class RebalanceCycle:
    """Runs the rebalance pipeline against a data source and settlement layer.

    Coordinates all layers for one rebalance:
    - Data Layer: Fetch the market snapshot
    - Portfolio Layer: Optimize, gate and plan
    - Risk Layer: Assess the candidate allocation
    - Execution Layer: Run movements against the settlement layer

    Example:
        >>> cycle = RebalanceCycle(source, settlement, config.to_dict())
        >>> cycle.initialize_positions()
        >>> result = cycle.run()
        >>> result.decision.should_rebalance
        True
    """

    def __init__(
        self,
        data_source: MarketDataSource,
        settlement: SettlementClient,
        config: Optional[Dict] = None,
        store: Optional[PositionStore] = None,
        event_logger: Optional[RebalanceEventLogger] = None,
    ):
        """Initialize the rebalance cycle.

        Args:
            data_source: Market data source
            settlement: Settlement layer client
            config: Full configuration dict; reads the strategy, optimizer,
                risk and execution sections
            store: Position store to use (default: new store holding the
                configured initial strategy)
            event_logger: Structured event sink (optional)
        """
        config = config or {}
        strategy_config = config.get("strategy") or {}

        self.data_source = data_source
        self.settlement = settlement
        self.event_logger = event_logger

        self.risk_tolerance = RiskTolerance.parse(
            strategy_config.get("risk_tolerance", "moderate")
        )
        self.rebalance_threshold = strategy_config.get("rebalance_threshold", 0.05)

        optimizer_config = dict(config.get("optimizer") or {})
        if "max_fee_price" in strategy_config:
            optimizer_config.setdefault("base_fee_price", strategy_config["max_fee_price"])

        self.store = store or PositionStore(strategy_from_config(strategy_config))
        self.analyzer = RiskAnalyzer(config.get("risk"))
        self.optimizer = AllocationOptimizer(optimizer_config)
        self.gate = RebalanceGate()
        self.planner = MovementPlanner()
        self.executor = RebalanceExecutor(
            settlement, self.store, config.get("execution"), event_logger
        )

        self._lock = threading.Lock()
        self.cycle_count = 0
        self.rebalance_count = 0

        logger.info(
            "RebalanceCycle initialized (risk tolerance: %s, threshold: %.3f)",
            self.risk_tolerance.value,
            self.rebalance_threshold,
        )

    def initialize_positions(self) -> Dict[ProtocolId, Position]:
        """Create positions from available protocols and settled holdings.

        Holdings come from the settlement layer where it reports them;
        otherwise the data source's total staked is used.

        Returns:
            The initialized positions
        """
        protocols = self.data_source.get_available_protocols()

        for protocol in protocols:
            staked = self.settlement.get_staked_amount(protocol.protocol_id)
            if staked is not None:
                protocol.total_staked = int(staked)

        self.store.initialize(protocols)

        logger.info(
            "Positions rehydrated: %d protocols, total value %d",
            len(protocols),
            self.store.total_value(),
        )
        return self.store.get_positions()

    def run(self) -> CycleResult:
        """Run one full cycle.

        Returns:
            CycleResult describing each stage's output

        Raises:
            ConcurrentCycleError: If another cycle is still running
            MarketDataError: If the data source cannot produce a snapshot
        """
        if not self._lock.acquire(blocking=False):
            raise ConcurrentCycleError("A rebalance cycle is already in progress")

        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> CycleResult:
        self.cycle_count += 1
        result = CycleResult()

        logger.info("=" * 60)
        logger.info(
            "REBALANCE CYCLE #%d - %s",
            self.cycle_count,
            result.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
        logger.info("=" * 60)
        self._system_event(RebalanceEventType.CYCLE_STARTED, f"cycle {self.cycle_count} started")

        # 1. Fetch market data
        logger.info("Step 1/5: Fetching market snapshot...")
        result.snapshot = self.data_source.get_snapshot()

        # 2. Optimize
        logger.info("Step 2/5: Calculating optimal strategy...")
        result.candidate = self.optimizer.optimize(
            result.snapshot, self.risk_tolerance, self.rebalance_threshold
        )
        self._system_event(
            RebalanceEventType.STRATEGY_CALCULATED,
            "candidate strategy calculated",
            strategy=result.candidate.to_dict(),
        )

        # 3. Assess candidate risk
        logger.info("Step 3/5: Assessing candidate risk...")
        result.risk_assessment = self.analyzer.assess_allocation(
            result.candidate.allocations, self.store.get_protocols()
        )
        logger.info("  Overall risk: %.2f", result.risk_assessment.overall_risk)
        for recommendation in result.risk_assessment.recommendations:
            logger.info("  %s", recommendation)
        self._risk_event(
            RebalanceEventType.RISK_ASSESSED,
            f"overall risk {result.risk_assessment.overall_risk:.2f}",
            recommendations=result.risk_assessment.recommendations,
        )

        # 4. Decide
        logger.info("Step 4/5: Evaluating rebalance need...")
        positions = self.store.get_positions()
        result.decision = self.gate.evaluate(
            result.candidate, positions, self.settlement.current_fee_price()
        )

        if not result.decision.should_rebalance:
            logger.info("  Rebalance skipped: %s", result.decision.reason)
            self._risk_event(RebalanceEventType.REBALANCE_SKIPPED, result.decision.reason)
            return self._finish(result)

        # 5. Plan and execute
        logger.info("Step 5/5: Planning and executing movements...")
        try:
            result.movements = self.planner.plan(result.candidate, positions)
        except InvalidStrategyError as e:
            logger.error("  Strategy rejected: %s", e)
            result.error = str(e)
            self._risk_event(RebalanceEventType.STRATEGY_REJECTED, str(e))
            return self._finish(result)

        result.transactions = self.executor.execute(result.candidate, result.movements)
        self.rebalance_count += 1

        return self._finish(result)

    def _finish(self, result: CycleResult) -> CycleResult:
        result.finished_at = datetime.now()

        completed = result.count(TransactionStatus.COMPLETED)
        failed = result.count(TransactionStatus.FAILED)

        logger.info(
            "✓ Cycle #%d finished: %d movements, %d completed, %d failed",
            self.cycle_count,
            len(result.movements),
            completed,
            failed,
        )
        if result.funds_in_transit:
            logger.critical(
                "Cycle #%d left funds in transit; operator action required",
                self.cycle_count,
            )

        self._system_event(
            RebalanceEventType.CYCLE_FINISHED,
            f"cycle {self.cycle_count} finished",
            movements=len(result.movements),
            completed=completed,
            failed=failed,
            funds_in_transit=result.funds_in_transit,
            error=result.error,
        )
        return result

    def _system_event(self, event_type: RebalanceEventType, message: str, **extra) -> None:
        if self.event_logger is not None:
            self.event_logger.log_system_event(event_type, message, **extra)

    def _risk_event(self, event_type: RebalanceEventType, reason: str, **extra) -> None:
        if self.event_logger is not None:
            self.event_logger.log_risk_event(event_type, reason, **extra)
