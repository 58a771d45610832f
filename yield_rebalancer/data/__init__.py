"""Data Layer - Market data sources.

Components:
- MarketDataSource: Abstract market data interface
- StaticMarketDataSource: Configuration-backed source
"""

from yield_rebalancer.data.base import MarketDataSource
from yield_rebalancer.data.static_source import StaticMarketDataSource

__all__ = [
    "MarketDataSource",
    "StaticMarketDataSource",
]
