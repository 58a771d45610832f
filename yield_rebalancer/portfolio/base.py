"""Portfolio data structures.

This module defines the types shared by the optimizer, the decision gate,
the movement planner and the position store.

Monetary amounts (position amounts, movement amounts) are Python ints in
the smallest unit of the underlying asset. Floats are only used for
percentages, yields and risk scores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict

from yield_rebalancer.protocols.base import Protocol, ProtocolId
from yield_rebalancer.utils.exceptions import ConfigurationError


class RiskTolerance(Enum):
    """Named risk policy."""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"

    @property
    def max_risk_score(self) -> float:
        """Highest strategy risk score this policy accepts."""
        return {
            RiskTolerance.CONSERVATIVE: 4.0,
            RiskTolerance.MODERATE: 6.0,
            RiskTolerance.AGGRESSIVE: 8.0,
        }[self]

    @classmethod
    def parse(cls, value: "str | RiskTolerance") -> "RiskTolerance":
        """Resolve a tolerance name.

        Raises:
            ConfigurationError: If the name is not a known tolerance
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown risk tolerance '{value}'. "
                f"Expected one of: {', '.join(t.value for t in cls)}"
            ) from None


@dataclass
class Position:
    """This portfolio's holding in one protocol.

    Attributes:
        protocol: The protocol held
        current_amount: Amount currently staked (smallest unit)
        target_amount: Amount the active strategy aims for
        current_percentage: Share of total portfolio value, 0-100
        target_percentage: Share the active strategy aims for, 0-100
    """

    protocol: Protocol
    current_amount: int = 0
    target_amount: int = 0
    current_percentage: float = 0.0
    target_percentage: float = 0.0

    def __post_init__(self):
        """Validate position fields."""
        if self.current_amount < 0:
            raise ValueError(
                f"current_amount must be non-negative, got {self.current_amount}"
            )

    @property
    def protocol_id(self) -> ProtocolId:
        return self.protocol.protocol_id


@dataclass
class Strategy:
    """A target allocation plan.

    Attributes:
        allocations: Target percentage per protocol, in optimizer order
        expected_yield: Allocation-weighted yield percentage
        risk_score: Strategy risk score on a 0-10 scale
        rebalance_threshold: Minimum drift (fraction of total value) that
            justifies a rebalance
        max_fee_price: Highest network fee price at which to rebalance
        risk_tolerance: Risk policy the strategy was built under
        timestamp: When the strategy was produced
    """

    allocations: Dict[ProtocolId, float]
    expected_yield: float = 0.0
    risk_score: float = 0.0
    rebalance_threshold: float = 0.05
    max_fee_price: float = 50.0
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate strategy parameters."""
        if self.rebalance_threshold < 0:
            raise ValueError(
                f"rebalance_threshold must be non-negative, got {self.rebalance_threshold}"
            )
        if self.max_fee_price < 0:
            raise ValueError(
                f"max_fee_price must be non-negative, got {self.max_fee_price}"
            )

    @property
    def total_allocation(self) -> float:
        """Sum of target percentages."""
        return sum(self.allocations.values())

    def target_for(self, protocol_id: ProtocolId) -> float:
        return self.allocations.get(protocol_id, 0.0)

    def to_dict(self) -> Dict:
        """Plain-dict view for reporting."""
        return {
            "allocations": {p.value: pct for p, pct in self.allocations.items()},
            "expected_yield": self.expected_yield,
            "risk_score": self.risk_score,
            "rebalance_threshold": self.rebalance_threshold,
            "max_fee_price": self.max_fee_price,
            "risk_tolerance": self.risk_tolerance.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Movement:
    """A planned one-way transfer between two protocol positions.

    Attributes:
        source: Protocol to withdraw from
        destination: Protocol to deposit into
        amount: Amount to move (smallest unit), always positive
    """

    source: ProtocolId
    destination: ProtocolId
    amount: int

    def __post_init__(self):
        """Validate movement fields."""
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")
        if self.source == self.destination:
            raise ValueError(
                f"source and destination must differ, got {self.source.value} for both"
            )
