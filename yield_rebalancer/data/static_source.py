"""Configuration-backed market data source.

Serves a fixed snapshot from the ``market_data`` configuration section.
Used for dry runs and tests, and as a stand-in until a live source is wired.
"""

from datetime import datetime
from typing import Dict, List, Mapping, Optional

from yield_rebalancer.data.base import MarketDataSource
from yield_rebalancer.protocols.base import (
    PROTOCOL_TABLE,
    MarketSnapshot,
    Protocol,
    ProtocolId,
)
from yield_rebalancer.utils.exceptions import DataQualityError, MarketDataError
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)


class StaticMarketDataSource(MarketDataSource):
    """Market data source that reads its quotes from configuration.

    Configuration:
        fee_price: Network fee price in gwei (required)
        reference_asset_price: Underlying asset price in USD (default 0)
        yields: {protocol name: yield percentage} (required)
        risks: {protocol name: risk score}; protocols left out fall back to
            their table risk score

    Example:
        >>> source = StaticMarketDataSource({
        ...     "fee_price": 42,
        ...     "reference_asset_price": 2340,
        ...     "yields": {"lido": 8.1, "morpho": 9.2},
        ... })
        >>> [p.name for p in source.get_available_protocols()]
        ['lido', 'morpho']
    """

    def __init__(self, config: Mapping):
        if config is None:
            raise MarketDataError("market_data configuration is missing")

        self.fee_price = _number(config, "fee_price")
        self.reference_asset_price = _number(config, "reference_asset_price", default=0.0)

        self.yields = _protocol_map(config.get("yields"), "yields")
        if not self.yields:
            raise MarketDataError("market_data.yields must quote at least one protocol")

        self.risks = _protocol_map(config.get("risks") or {}, "risks")
        for protocol_id in self.yields:
            self.risks.setdefault(protocol_id, PROTOCOL_TABLE[protocol_id].risk_score)

        logger.debug(
            "StaticMarketDataSource initialized: %d protocols, fee_price=%.1f",
            len(self.yields),
            self.fee_price,
        )

    def get_snapshot(self) -> MarketSnapshot:
        try:
            snapshot = MarketSnapshot(
                fee_price=self.fee_price,
                reference_asset_price=self.reference_asset_price,
                yields=self.yields,
                risks=self.risks,
                timestamp=datetime.now(),
            )
        except DataQualityError as e:
            raise MarketDataError(f"Invalid market data: {e}") from e

        logger.info(
            "Market snapshot: %d protocols, fee_price=%.1f gwei, asset_price=$%.2f",
            len(snapshot.yields),
            snapshot.fee_price,
            snapshot.reference_asset_price,
        )
        return snapshot

    def get_available_protocols(self) -> List[Protocol]:
        protocols = []
        for protocol_id, yield_rate in self.yields.items():
            protocol = Protocol.from_profile(protocol_id)
            protocol.yield_rate = yield_rate
            protocol.risk_score = self.risks[protocol_id]
            protocols.append(protocol)
        return protocols


def _number(config: Mapping, key: str, default: Optional[float] = None) -> float:
    value = config.get(key, default)
    if value is None:
        raise MarketDataError(f"market_data.{key} is required")
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise MarketDataError(f"market_data.{key} must be a number, got {value!r}") from e
    if value < 0:
        raise MarketDataError(f"market_data.{key} must be non-negative, got {value}")
    return value


def _protocol_map(table: Optional[Mapping], key: str) -> Dict[ProtocolId, float]:
    if table is None:
        raise MarketDataError(f"market_data.{key} is required")
    if not isinstance(table, Mapping):
        raise MarketDataError(f"market_data.{key} must be a mapping of protocol to value")

    result: Dict[ProtocolId, float] = {}
    for name, value in table.items():
        try:
            protocol_id = ProtocolId.parse(name)
            result[protocol_id] = float(value)
        except (DataQualityError, TypeError, ValueError) as e:
            raise MarketDataError(f"market_data.{key}.{name}: {e}") from e
        if key == "risks" and not 0 <= result[protocol_id] <= 10:
            raise MarketDataError(
                f"market_data.risks.{name} must be in [0, 10], got {result[protocol_id]}"
            )
    return result
