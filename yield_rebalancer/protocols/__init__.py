"""Protocol Layer.

Closed set of supported yield sources, their static lookup table and the
market snapshot type consumed by the optimizer.
"""

from yield_rebalancer.protocols.base import (
    DEFAULT_RISK,
    DEFAULT_YIELD,
    PROTOCOL_TABLE,
    MarketSnapshot,
    Protocol,
    ProtocolId,
    ProtocolProfile,
    default_protocols,
)

__all__ = [
    "ProtocolId",
    "ProtocolProfile",
    "PROTOCOL_TABLE",
    "Protocol",
    "MarketSnapshot",
    "default_protocols",
    "DEFAULT_YIELD",
    "DEFAULT_RISK",
]
