"""Settlement contract and rebalance transaction records.

This module defines the contract the executor uses to reach the external
settlement layer, and the per-movement transaction record with its
status state machine:

    pending -> executing -> completed
                         -> failed

completed and failed are terminal. Signing, broadcasting and chain
mechanics belong to SettlementClient implementations.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from yield_rebalancer.portfolio.base import Movement
from yield_rebalancer.protocols.base import ProtocolId
from yield_rebalancer.utils.exceptions import InvalidTransitionError


class TransactionStatus(Enum):
    """Rebalance transaction lifecycle states."""

    PENDING = "pending"  # Created, nothing submitted yet
    EXECUTING = "executing"  # Withdrawal/deposit legs in flight
    COMPLETED = "completed"  # Both legs confirmed
    FAILED = "failed"  # A leg was not accepted or not confirmed


class FailureReason(Enum):
    """Why a transaction failed."""

    SUBMISSION_FAILED = "submission_failed"  # No reference returned
    CONFIRMATION_FAILED = "confirmation_failed"  # Settlement reported failure
    CONFIRMATION_TIMEOUT = "confirmation_timeout"  # Wait elapsed


ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.EXECUTING},
    TransactionStatus.EXECUTING: {TransactionStatus.COMPLETED, TransactionStatus.FAILED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.FAILED: set(),
}


@dataclass
class RebalanceTransaction:
    """Executable record of one movement.

    Attributes:
        source: Protocol withdrawn from
        destination: Protocol deposited into
        amount: Amount moved (smallest unit)
        fee_price: Network fee price at submission (gwei)
        estimated_cost: Estimated network cost of both legs (native units)
        transaction_id: Unique identifier
        status: Current lifecycle state
        withdrawal_reference: Settlement reference of the withdrawal leg
        settlement_reference: Settlement reference of the deposit leg
        failure_reason: Set when status is FAILED
        funds_in_transit: Withdrawal confirmed but deposit not confirmed;
            the amount is outside every position and needs operator action
        error: Error detail from the settlement layer
        timestamp: When the record was created
    """

    source: ProtocolId
    destination: ProtocolId
    amount: int
    fee_price: float = 0.0
    estimated_cost: float = 0.0
    transaction_id: str = field(default_factory=lambda: f"rebalance_{uuid.uuid4().hex[:12]}")
    status: TransactionStatus = TransactionStatus.PENDING
    withdrawal_reference: Optional[str] = None
    settlement_reference: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    funds_in_transit: bool = False
    error: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_movement(
        cls,
        movement: Movement,
        fee_price: float = 0.0,
        estimated_cost: float = 0.0,
    ) -> "RebalanceTransaction":
        return cls(
            source=movement.source,
            destination=movement.destination,
            amount=movement.amount,
            fee_price=fee_price,
            estimated_cost=estimated_cost,
        )

    @property
    def is_complete(self) -> bool:
        """Check if the transaction is in a terminal state."""
        return self.status in (TransactionStatus.COMPLETED, TransactionStatus.FAILED)

    def transition(self, new_status: TransactionStatus) -> None:
        """Move to a new status.

        Raises:
            InvalidTransitionError: If the change is not allowed from the
                current status (terminal states allow none)
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Transaction {self.transaction_id}: cannot move from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_failed(self, reason: FailureReason, error: str = "") -> None:
        self.transition(TransactionStatus.FAILED)
        self.failure_reason = reason
        self.error = error

    def to_dict(self) -> Dict:
        """Plain-dict view for reporting."""
        return {
            "transaction_id": self.transaction_id,
            "source": self.source.value,
            "destination": self.destination.value,
            "amount": self.amount,
            "fee_price": self.fee_price,
            "estimated_cost": self.estimated_cost,
            "status": self.status.value,
            "withdrawal_reference": self.withdrawal_reference,
            "settlement_reference": self.settlement_reference,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "funds_in_transit": self.funds_in_transit,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


class SettlementClient(ABC):
    """Abstract interface to the external settlement layer.

    All operations are blocking. Submissions return a settlement reference,
    or None when the instruction was not accepted.

    Example:
        >>> settlement = SimulatedSettlement({"balances": {"lido": 10**18}})
        >>> ref = settlement.submit_withdrawal(ProtocolId.LIDO, 10**17)
        >>> settlement.await_confirmation(ref, timeout_ms=300_000)
        True
    """

    @abstractmethod
    def submit_withdrawal(self, protocol_id: ProtocolId, amount: int) -> Optional[str]:
        """Submit a withdrawal of ``amount`` from a protocol.

        Returns:
            Settlement reference, or None if not accepted
        """
        pass

    @abstractmethod
    def submit_deposit(self, protocol_id: ProtocolId, amount: int) -> Optional[str]:
        """Submit a deposit of ``amount`` into a protocol.

        Returns:
            Settlement reference, or None if not accepted
        """
        pass

    @abstractmethod
    def await_confirmation(self, reference: str, timeout_ms: int) -> bool:
        """Wait for a submitted instruction to settle.

        Returns:
            True if settled successfully, False if settlement failed

        Raises:
            ConfirmationTimeoutError: If the wait exceeds ``timeout_ms``
        """
        pass

    @abstractmethod
    def current_fee_price(self) -> float:
        """Current network fee price (gwei)."""
        pass

    def get_staked_amount(self, protocol_id: ProtocolId) -> Optional[int]:
        """Amount currently held in a protocol, if the layer can report it.

        Used to rehydrate positions at startup. Default: unknown.
        """
        return None
