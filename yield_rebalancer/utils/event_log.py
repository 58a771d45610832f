"""Structured event logging for rebalance activity.

Movement, risk and system events are written as JSON lines to rotating
files so a run can be audited after the fact.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class RebalanceEventType(Enum):
    """Types of rebalance events to log."""

    # Movement events
    MOVEMENT_STARTED = "movement_started"
    WITHDRAWAL_SUBMITTED = "withdrawal_submitted"
    WITHDRAWAL_CONFIRMED = "withdrawal_confirmed"
    DEPOSIT_SUBMITTED = "deposit_submitted"
    MOVEMENT_COMPLETED = "movement_completed"
    MOVEMENT_FAILED = "movement_failed"
    FUNDS_IN_TRANSIT = "funds_in_transit"

    # Decision and risk events
    STRATEGY_CALCULATED = "strategy_calculated"
    REBALANCE_SKIPPED = "rebalance_skipped"
    STRATEGY_REJECTED = "strategy_rejected"
    RISK_ASSESSED = "risk_assessed"
    CIRCUIT_BREAKER_TRIGGERED = "circuit_breaker_triggered"

    # System events
    CYCLE_STARTED = "cycle_started"
    CYCLE_FINISHED = "cycle_finished"


class RebalanceEventLogger:
    """Writes rebalance events as JSON to rotating log files.

    One file per event family: ``movements.log``, ``risk.log`` and
    ``system.log``.

    Example:
        >>> events = RebalanceEventLogger(log_dir="logs")
        >>> events.log_movement_event(
        ...     RebalanceEventType.MOVEMENT_COMPLETED,
        ...     transaction_id="rebalance_ab12",
        ...     source="lido",
        ...     destination="morpho",
        ...     amount=10**18,
        ... )
    """

    def __init__(
        self,
        log_dir: str | Path = "logs",
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 30,
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.max_bytes = max_bytes
        self.backup_count = backup_count

        self.movement_logger = self._create_rotating_logger("movements")
        self.risk_logger = self._create_rotating_logger("risk")
        self.system_logger = self._create_rotating_logger("system")

    def _create_rotating_logger(self, name: str) -> logging.Logger:
        logger = logging.getLogger(f"rebalance_events.{self.log_dir.name}.{name}")
        logger.setLevel(logging.INFO)
        logger.propagate = False
        for old_handler in list(logger.handlers):
            logger.removeHandler(old_handler)
            old_handler.close()

        handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / f"{name}.log",
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

        return logger

    def _log_structured_event(
        self,
        logger: logging.Logger,
        event_type: RebalanceEventType,
        level: str = "info",
        **data: Any,
    ) -> None:
        event = {
            "event_type": event_type.value,
            "timestamp": datetime.now().isoformat(),
            **data,
        }
        # Amounts are arbitrary-precision ints; default=str keeps them exact
        getattr(logger, level)(json.dumps(event, default=str))

    def log_movement_event(
        self,
        event_type: RebalanceEventType,
        transaction_id: str,
        source: str,
        destination: str,
        amount: int,
        reference: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Log a movement-related event.

        Args:
            event_type: Type of movement event
            transaction_id: RebalanceTransaction id
            source: Source protocol name
            destination: Destination protocol name
            amount: Amount moved, smallest unit
            reference: Settlement reference (optional)
            **extra: Additional event data
        """
        data = {
            "transaction_id": transaction_id,
            "source": source,
            "destination": destination,
            "amount": str(amount),
        }
        if reference is not None:
            data["reference"] = reference
        data.update(extra)

        level = "error" if event_type in (
            RebalanceEventType.MOVEMENT_FAILED,
            RebalanceEventType.FUNDS_IN_TRANSIT,
        ) else "info"
        self._log_structured_event(self.movement_logger, event_type, level=level, **data)

    def log_risk_event(
        self,
        event_type: RebalanceEventType,
        reason: str,
        **extra: Any,
    ) -> None:
        """Log a decision or risk event."""
        self._log_structured_event(self.risk_logger, event_type, reason=reason, **extra)

    def log_system_event(
        self,
        event_type: RebalanceEventType,
        message: str,
        **extra: Any,
    ) -> None:
        """Log a system event."""
        self._log_structured_event(self.system_logger, event_type, message=message, **extra)
