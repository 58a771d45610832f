"""Protocol identifiers, lookup table and market snapshot.

The set of yield sources is closed: every protocol the rebalancer can hold
is a ProtocolId member, and PROTOCOL_TABLE carries one ProtocolProfile per
member. Code that needs per-protocol constants (base allocation, cap,
contract maturity) reads them from the table instead of matching names.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from yield_rebalancer.utils.exceptions import DataQualityError

DEFAULT_YIELD = 0.0
DEFAULT_RISK = 1.0


class ProtocolId(Enum):
    """Supported yield sources."""

    LIDO = "lido"
    ETHERFI = "etherfi"
    ROCKETPOOL = "rocketpool"
    MORPHO = "morpho"

    @classmethod
    def parse(cls, name: "str | ProtocolId") -> "ProtocolId":
        """Resolve a protocol name (case-insensitive) to its identifier.

        Raises:
            DataQualityError: If the name is not a supported protocol
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise DataQualityError(
                f"Unknown protocol '{name}'. Supported: {supported}"
            ) from None


@dataclass(frozen=True)
class ProtocolProfile:
    """Static per-protocol constants.

    Attributes:
        base_allocation: Starting allocation percentage used by the optimizer
        max_allocation: Allocation cap percentage
        contract_risk: Smart-contract maturity constant (lower = more mature)
        yield_rate: Reference yield percentage
        exchange_rate: Reference exchange rate of the staked token
        risk_score: Base risk score on a 0-10 scale
        efficiency_score: Operational efficiency 0-100
        withdrawal_delay_hours: Typical time to exit the protocol
    """

    base_allocation: float
    max_allocation: float
    contract_risk: float
    yield_rate: float
    exchange_rate: float
    risk_score: float
    efficiency_score: float
    withdrawal_delay_hours: float


PROTOCOL_TABLE: Mapping[ProtocolId, ProtocolProfile] = MappingProxyType(
    {
        ProtocolId.LIDO: ProtocolProfile(
            base_allocation=30.0,
            max_allocation=40.0,
            contract_risk=1.0,
            yield_rate=8.1,
            exchange_rate=1.0,
            risk_score=1.0,
            efficiency_score=85.0,
            withdrawal_delay_hours=1.0,
        ),
        ProtocolId.ETHERFI: ProtocolProfile(
            base_allocation=25.0,
            max_allocation=30.0,
            contract_risk=2.5,
            yield_rate=8.4,
            exchange_rate=1.0,
            risk_score=2.0,
            efficiency_score=80.0,
            withdrawal_delay_hours=7.0,
        ),
        ProtocolId.ROCKETPOOL: ProtocolProfile(
            base_allocation=25.0,
            max_allocation=35.0,
            contract_risk=1.5,
            yield_rate=7.9,
            exchange_rate=1.1,
            risk_score=1.5,
            efficiency_score=75.0,
            withdrawal_delay_hours=1.0,
        ),
        ProtocolId.MORPHO: ProtocolProfile(
            base_allocation=20.0,
            max_allocation=25.0,
            contract_risk=3.0,
            yield_rate=9.2,
            exchange_rate=1.05,
            risk_score=3.0,
            efficiency_score=70.0,
            withdrawal_delay_hours=0.0,
        ),
    }
)


@dataclass
class Protocol:
    """A yield source with its live attributes.

    Attributes:
        protocol_id: Identifier in the closed protocol set
        yield_rate: Current yield percentage
        exchange_rate: Staked token to underlying exchange rate
        total_staked: Amount held, in the smallest unit of the underlying
        risk_score: Base risk score in [0, 10]
        efficiency_score: Operational efficiency score, 100 is best
        withdrawal_delay_hours: Time to exit the protocol
        max_allocation: Allocation cap percentage in [0, 100]
    """

    protocol_id: ProtocolId
    yield_rate: float
    exchange_rate: float = 1.0
    total_staked: int = 0
    risk_score: float = 0.0
    efficiency_score: float = 100.0
    withdrawal_delay_hours: float = 0.0
    max_allocation: float = 100.0

    def __post_init__(self):
        """Validate protocol fields."""
        if not 0 <= self.risk_score <= 10:
            raise ValueError(f"risk_score must be in [0, 10], got {self.risk_score}")
        if not 0 <= self.max_allocation <= 100:
            raise ValueError(
                f"max_allocation must be in [0, 100], got {self.max_allocation}"
            )
        if self.total_staked < 0:
            raise ValueError(f"total_staked must be non-negative, got {self.total_staked}")
        if self.withdrawal_delay_hours < 0:
            raise ValueError(
                f"withdrawal_delay_hours must be non-negative, got {self.withdrawal_delay_hours}"
            )

    @property
    def name(self) -> str:
        return self.protocol_id.value

    @property
    def profile(self) -> ProtocolProfile:
        return PROTOCOL_TABLE[self.protocol_id]

    @classmethod
    def from_profile(cls, protocol_id: ProtocolId, total_staked: int = 0) -> "Protocol":
        """Build a Protocol from its PROTOCOL_TABLE defaults."""
        profile = PROTOCOL_TABLE[protocol_id]
        return cls(
            protocol_id=protocol_id,
            yield_rate=profile.yield_rate,
            exchange_rate=profile.exchange_rate,
            total_staked=total_staked,
            risk_score=profile.risk_score,
            efficiency_score=profile.efficiency_score,
            withdrawal_delay_hours=profile.withdrawal_delay_hours,
            max_allocation=profile.max_allocation,
        )


def default_protocols() -> List[Protocol]:
    """All supported protocols with table defaults and nothing staked."""
    return [Protocol.from_profile(protocol_id) for protocol_id in ProtocolId]


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market inputs.

    Immutable once built: the yield and risk maps are stored as read-only
    mapping proxies. Protocols missing from a map fall back to
    DEFAULT_YIELD / DEFAULT_RISK through yield_for() and risk_for().

    Attributes:
        fee_price: Network fee price (gwei)
        reference_asset_price: Price of the underlying asset in USD
        yields: Yield percentage per protocol
        risks: Risk score per protocol
        timestamp: When the snapshot was taken
    """

    fee_price: float
    reference_asset_price: float
    yields: Mapping[ProtocolId, float] = field(default_factory=dict)
    risks: Mapping[ProtocolId, float] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.fee_price < 0:
            raise DataQualityError(f"fee_price must be non-negative, got {self.fee_price}")
        # frozen dataclass: bypass __setattr__ to store read-only copies
        object.__setattr__(self, "yields", MappingProxyType(dict(self.yields)))
        object.__setattr__(self, "risks", MappingProxyType(dict(self.risks)))

    @classmethod
    def from_names(
        cls,
        fee_price: float,
        reference_asset_price: float,
        yields: Dict[str, float],
        risks: Dict[str, float],
        timestamp: Optional[datetime] = None,
    ) -> "MarketSnapshot":
        """Build a snapshot from protocol-name keyed maps.

        Raises:
            DataQualityError: If a key is not a supported protocol
        """
        return cls(
            fee_price=fee_price,
            reference_asset_price=reference_asset_price,
            yields={ProtocolId.parse(k): float(v) for k, v in yields.items()},
            risks={ProtocolId.parse(k): float(v) for k, v in risks.items()},
            timestamp=timestamp or datetime.now(),
        )

    @property
    def protocols(self) -> List[ProtocolId]:
        """Protocols with a yield quote, in quote order."""
        return list(self.yields.keys())

    def yield_for(self, protocol_id: ProtocolId) -> float:
        return self.yields.get(protocol_id, DEFAULT_YIELD)

    def risk_for(self, protocol_id: ProtocolId) -> float:
        return self.risks.get(protocol_id, DEFAULT_RISK)
