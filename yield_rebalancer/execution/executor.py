"""Rebalance executor.

Runs each planned movement as two dependent legs against the settlement
layer: withdraw from the source, confirm, deposit into the destination,
confirm. Movements run one at a time in plan order; they share one signing
identity, so they are never parallelized or reordered.

A failed movement does not stop later movements. Nothing is retried here.
A movement whose withdrawal settled but whose deposit did not leaves funds
in transit: the transaction is flagged and an operational alert is logged
at CRITICAL. There is no automatic unwind.
"""

from typing import Dict, List, Optional, Sequence

from yield_rebalancer.execution.base import (
    FailureReason,
    RebalanceTransaction,
    SettlementClient,
    TransactionStatus,
)
from yield_rebalancer.portfolio.base import Movement, Strategy
from yield_rebalancer.portfolio.store import PositionStore
from yield_rebalancer.utils.event_log import RebalanceEventLogger, RebalanceEventType
from yield_rebalancer.utils.exceptions import ConfirmationTimeoutError, PortfolioError
from yield_rebalancer.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)

GWEI_PER_NATIVE = 1_000_000_000


class RebalanceExecutor:
    """Executes movements and applies settled results to the position store.

    Configuration:
        confirmation_timeout_ms: Bound on each confirmation wait (default 300000)
        gas_per_leg: Gas units estimated per withdrawal or deposit (default 200000)

    Example:
        >>> executor = RebalanceExecutor(settlement, store, {"confirmation_timeout_ms": 60_000})
        >>> transactions = executor.execute(strategy, movements)
        >>> [tx.status.value for tx in transactions]
        ['completed', 'failed']
    """

    def __init__(
        self,
        settlement: SettlementClient,
        store: PositionStore,
        config: Optional[Dict] = None,
        event_logger: Optional[RebalanceEventLogger] = None,
    ):
        config = config or {}

        self.settlement = settlement
        self.store = store
        self.event_logger = event_logger

        self.confirmation_timeout_ms = config.get("confirmation_timeout_ms", 300_000)
        self.gas_per_leg = config.get("gas_per_leg", 200_000)

        self._validate_config()

        logger.debug(
            "RebalanceExecutor initialized: timeout=%dms, gas_per_leg=%d",
            self.confirmation_timeout_ms,
            self.gas_per_leg,
        )

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if self.confirmation_timeout_ms <= 0:
            raise ValueError(
                f"confirmation_timeout_ms must be positive, got {self.confirmation_timeout_ms}"
            )
        if self.gas_per_leg < 0:
            raise ValueError(f"gas_per_leg must be non-negative, got {self.gas_per_leg}")

    def execute(
        self,
        strategy: Strategy,
        movements: Sequence[Movement],
    ) -> List[RebalanceTransaction]:
        """Execute movements in order, then activate the strategy.

        The strategy becomes the store's active strategy once every
        movement has been attempted, whatever the individual outcomes.

        Args:
            strategy: Strategy the movements implement
            movements: Planned movements, in execution order

        Returns:
            One transaction per movement, each in a terminal state
        """
        logger.info("Executing portfolio rebalance: %d movements", len(movements))
        transactions: List[RebalanceTransaction] = []

        try:
            for index, movement in enumerate(movements, start=1):
                logger.info(
                    "Movement %d/%d: %s -> %s (%d)",
                    index,
                    len(movements),
                    movement.source.value,
                    movement.destination.value,
                    movement.amount,
                )
                transaction = self._new_transaction(movement)
                try:
                    self.execute_movement(movement, transaction)
                finally:
                    transactions.append(transaction)
                    self.store.record_transaction(transaction)
        finally:
            self.store.replace_strategy(strategy)

        completed = sum(1 for tx in transactions if tx.status == TransactionStatus.COMPLETED)
        logger.info(
            "Rebalance executed: %d/%d movements completed", completed, len(transactions)
        )
        return transactions

    def estimate_cost(self, fee_price: float) -> float:
        """Estimated network cost of both legs, in native units."""
        return fee_price * self.gas_per_leg * 2 / GWEI_PER_NATIVE

    def execute_movement(
        self,
        movement: Movement,
        transaction: RebalanceTransaction,
    ) -> None:
        """Drive one transaction through pending -> executing -> terminal."""
        transaction.transition(TransactionStatus.EXECUTING)
        self._event(RebalanceEventType.MOVEMENT_STARTED, transaction)

        # Leg 1: withdraw from source
        reference = self._submit(transaction, withdraw=True)
        if reference is None:
            return
        transaction.withdrawal_reference = reference
        self._event(RebalanceEventType.WITHDRAWAL_SUBMITTED, transaction, reference)

        if not self._confirm(transaction, reference):
            return
        self._event(RebalanceEventType.WITHDRAWAL_CONFIRMED, transaction, reference)

        # Leg 2: deposit into destination. From here on a failure strands funds.
        reference = self._submit(transaction, withdraw=False)
        if reference is None:
            self._flag_in_transit(transaction)
            return
        transaction.settlement_reference = reference
        self._event(RebalanceEventType.DEPOSIT_SUBMITTED, transaction, reference)

        if not self._confirm(transaction, reference):
            self._flag_in_transit(transaction)
            return

        # Both legs settled; a store mismatch is alerted, not failed
        transaction.transition(TransactionStatus.COMPLETED)
        self._event(RebalanceEventType.MOVEMENT_COMPLETED, transaction, reference)

        try:
            self.store.apply_movement(movement.source, movement.destination, movement.amount)
        except PortfolioError as e:
            log_with_context(
                logger,
                "critical",
                "OPERATIONAL ALERT: settled movement not reflected in positions",
                transaction_id=transaction.transaction_id,
                source=movement.source.value,
                destination=movement.destination.value,
                amount=movement.amount,
                error=str(e),
            )
            return

        logger.info(
            "Movement completed: %d from %s to %s",
            movement.amount,
            movement.source.value,
            movement.destination.value,
        )

    def _new_transaction(self, movement: Movement) -> RebalanceTransaction:
        try:
            fee_price = self.settlement.current_fee_price()
        except Exception as e:
            logger.warning("Fee price unavailable, recording 0.0: %s", e)
            fee_price = 0.0
        return RebalanceTransaction.from_movement(
            movement,
            fee_price=fee_price,
            estimated_cost=self.estimate_cost(fee_price),
        )

    def _submit(self, transaction: RebalanceTransaction, withdraw: bool) -> Optional[str]:
        """Submit one leg; on failure mark the transaction and return None."""
        if withdraw:
            leg, protocol_id = "withdrawal", transaction.source
            submit = self.settlement.submit_withdrawal
        else:
            leg, protocol_id = "deposit", transaction.destination
            submit = self.settlement.submit_deposit

        try:
            reference = submit(protocol_id, transaction.amount)
        except Exception as e:
            self._fail(transaction, FailureReason.SUBMISSION_FAILED, f"{leg} submission error: {e}")
            return None

        if not reference:
            self._fail(
                transaction,
                FailureReason.SUBMISSION_FAILED,
                f"{leg} to {protocol_id.value} returned no reference",
            )
            return None

        return reference

    def _confirm(self, transaction: RebalanceTransaction, reference: str) -> bool:
        """Wait for one leg; on failure mark the transaction and return False."""
        try:
            confirmed = self.settlement.await_confirmation(reference, self.confirmation_timeout_ms)
        except ConfirmationTimeoutError as e:
            self._fail(transaction, FailureReason.CONFIRMATION_TIMEOUT, str(e))
            return False
        except Exception as e:
            self._fail(transaction, FailureReason.CONFIRMATION_FAILED, f"confirmation error: {e}")
            return False

        if not confirmed:
            self._fail(
                transaction,
                FailureReason.CONFIRMATION_FAILED,
                f"settlement reported failure for {reference}",
            )
            return False

        return True

    def _fail(self, transaction: RebalanceTransaction, reason: FailureReason, error: str) -> None:
        transaction.mark_failed(reason, error)
        log_with_context(
            logger,
            "error",
            "Movement failed",
            transaction_id=transaction.transaction_id,
            source=transaction.source.value,
            destination=transaction.destination.value,
            reason=reason.value,
            error=error,
        )
        self._event(
            RebalanceEventType.MOVEMENT_FAILED,
            transaction,
            reason=reason.value,
            error=error,
        )

    def _flag_in_transit(self, transaction: RebalanceTransaction) -> None:
        transaction.funds_in_transit = True
        log_with_context(
            logger,
            "critical",
            "OPERATIONAL ALERT: funds withdrawn but not redeposited",
            transaction_id=transaction.transaction_id,
            source=transaction.source.value,
            destination=transaction.destination.value,
            amount=transaction.amount,
            withdrawal_reference=transaction.withdrawal_reference,
        )
        self._event(RebalanceEventType.FUNDS_IN_TRANSIT, transaction)

    def _event(
        self,
        event_type: RebalanceEventType,
        transaction: RebalanceTransaction,
        reference: Optional[str] = None,
        **extra,
    ) -> None:
        if self.event_logger is None:
            return
        self.event_logger.log_movement_event(
            event_type,
            transaction_id=transaction.transaction_id,
            source=transaction.source.value,
            destination=transaction.destination.value,
            amount=transaction.amount,
            reference=reference,
            **extra,
        )
