"""Abstract base class for market data sources.

This module defines the MarketDataSource interface that every concrete
source of yields, risk scores and network fees must implement.
"""

from abc import ABC, abstractmethod
from typing import List

from yield_rebalancer.protocols.base import MarketSnapshot, Protocol


class MarketDataSource(ABC):
    """Abstract interface for market data sources.

    The rebalance cycle reads one snapshot per run and the protocol list at
    startup, so implementations may be backed by fixed configuration, an
    indexer, or on-chain reads.

    Example:
        >>> class MySource(MarketDataSource):
        ...     def get_snapshot(self):
        ...         # Implementation here
        ...         pass
    """

    @abstractmethod
    def get_snapshot(self) -> MarketSnapshot:
        """Fetch current yields, risk scores and fee price.

        Returns:
            Immutable MarketSnapshot for one optimization run

        Raises:
            MarketDataError: If the source cannot produce a snapshot
            DataQualityError: If the data fails validation

        Example:
            >>> snapshot = source.get_snapshot()
            >>> snapshot.yield_for(ProtocolId.LIDO)
            8.1
        """
        pass

    @abstractmethod
    def get_available_protocols(self) -> List[Protocol]:
        """List the protocols this source quotes, with live attributes.

        Returns:
            Protocols with yield, exchange rate, risk and efficiency set.
            total_staked is left at 0; holdings come from the settlement layer.
        """
        pass
