"""In-memory settlement layer for dry runs and tests.

Instructions settle instantly against simulated balances. Failures can be
injected per protocol and per leg to exercise the executor's failure paths.
"""

import uuid
from typing import Dict, Optional, Set

from yield_rebalancer.execution.base import SettlementClient
from yield_rebalancer.protocols.base import ProtocolId
from yield_rebalancer.utils.exceptions import ConfirmationTimeoutError
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class SimulatedSettlement(SettlementClient):
    """Settlement simulator with injectable failures.

    Configuration:
        balances: {protocol name: amount} starting balances
        fee_price: Fee price reported by current_fee_price() (default 42)
        confirmation_delay_ms: Simulated time to settle (default 0). A wait
            shorter than this raises ConfirmationTimeoutError.
        fail_withdrawals: Protocol names whose withdrawals are not accepted
        fail_deposits: Protocol names whose deposits are not accepted
        reject_withdrawals: Protocol names whose withdrawals settle as failed
        reject_deposits: Protocol names whose deposits settle as failed

    Example:
        >>> settlement = SimulatedSettlement({
        ...     "balances": {"lido": 70, "morpho": 30},
        ...     "fail_deposits": ["morpho"],
        ... })
        >>> settlement.submit_deposit(ProtocolId.MORPHO, 10) is None
        True
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}

        self.fee_price = config.get("fee_price", 42.0)
        self.confirmation_delay_ms = config.get("confirmation_delay_ms", 0)

        self.fail_withdrawals: Set[ProtocolId] = _protocol_set(config.get("fail_withdrawals"))
        self.fail_deposits: Set[ProtocolId] = _protocol_set(config.get("fail_deposits"))
        self.reject_withdrawals: Set[ProtocolId] = _protocol_set(config.get("reject_withdrawals"))
        self.reject_deposits: Set[ProtocolId] = _protocol_set(config.get("reject_deposits"))

        self._balances: Dict[ProtocolId, int] = {
            ProtocolId.parse(name): int(amount)
            for name, amount in (config.get("balances") or {}).items()
        }
        # Native funds withdrawn and not yet redeposited
        self.unallocated: int = 0
        self._pending: Dict[str, Dict] = {}
        self.submissions: list = []

        self._validate_config()

        logger.debug(
            "SimulatedSettlement initialized: fee_price=%.1f, %d balances",
            self.fee_price,
            len(self._balances),
        )

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if self.fee_price < 0:
            raise ValueError(f"fee_price must be non-negative, got {self.fee_price}")
        if self.confirmation_delay_ms < 0:
            raise ValueError(
                f"confirmation_delay_ms must be non-negative, got {self.confirmation_delay_ms}"
            )
        for protocol_id, amount in self._balances.items():
            if amount < 0:
                raise ValueError(
                    f"balance for {protocol_id.value} must be non-negative, got {amount}"
                )

    def set_fee_price(self, fee_price: float) -> None:
        self.fee_price = fee_price

    def submit_withdrawal(self, protocol_id: ProtocolId, amount: int) -> Optional[str]:
        self.submissions.append(("withdraw", protocol_id, amount))

        if protocol_id in self.fail_withdrawals:
            logger.warning("Simulated withdrawal rejected: %s", protocol_id.value)
            return None
        if self._balances.get(protocol_id, 0) < amount:
            logger.warning(
                "Simulated withdrawal of %d exceeds %s balance", amount, protocol_id.value
            )
            return None

        return self._register("withdraw", protocol_id, amount)

    def submit_deposit(self, protocol_id: ProtocolId, amount: int) -> Optional[str]:
        self.submissions.append(("deposit", protocol_id, amount))

        if protocol_id in self.fail_deposits:
            logger.warning("Simulated deposit rejected: %s", protocol_id.value)
            return None

        return self._register("deposit", protocol_id, amount)

    def await_confirmation(self, reference: str, timeout_ms: int) -> bool:
        instruction = self._pending.pop(reference, None)
        if instruction is None:
            logger.error("Unknown settlement reference: %s", reference)
            return False

        if self.confirmation_delay_ms > timeout_ms:
            raise ConfirmationTimeoutError(
                f"Confirmation of {reference} not received within {timeout_ms} ms"
            )

        protocol_id = instruction["protocol"]
        amount = instruction["amount"]

        if instruction["kind"] == "withdraw":
            if protocol_id in self.reject_withdrawals:
                return False
            self._balances[protocol_id] = self._balances.get(protocol_id, 0) - amount
            self.unallocated += amount
        else:
            if protocol_id in self.reject_deposits:
                return False
            self._balances[protocol_id] = self._balances.get(protocol_id, 0) + amount
            self.unallocated -= amount

        return True

    def current_fee_price(self) -> float:
        return self.fee_price

    def get_staked_amount(self, protocol_id: ProtocolId) -> Optional[int]:
        return self._balances.get(protocol_id, 0)

    def _register(self, kind: str, protocol_id: ProtocolId, amount: int) -> str:
        reference = f"0x{uuid.uuid4().hex}"
        self._pending[reference] = {"kind": kind, "protocol": protocol_id, "amount": amount}
        return reference


def _protocol_set(names) -> Set[ProtocolId]:
    return {ProtocolId.parse(name) for name in names or []}
