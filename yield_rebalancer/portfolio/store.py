"""Process-wide position and strategy state.

The store holds one Position per protocol, the active Strategy and the
history of rebalance transactions. Readers get copies; the only writers
are initialize() and the executor's apply_movement() / replace_strategy()
/ record_transaction() calls.
"""

import copy
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from yield_rebalancer.portfolio.base import Position, Strategy
from yield_rebalancer.portfolio.planner import BASIS_POINTS, to_basis_points
from yield_rebalancer.protocols.base import Protocol, ProtocolId
from yield_rebalancer.utils.exceptions import PortfolioError
from yield_rebalancer.utils.logging import get_logger

if TYPE_CHECKING:
    from yield_rebalancer.execution.base import RebalanceTransaction

logger = get_logger(__name__)


class PositionStore:
    """Holds current positions, the active strategy and transaction history.

    Example:
        >>> store = PositionStore(initial_strategy)
        >>> store.initialize(data_source.get_available_protocols())
        >>> store.total_value()
        32000000000000000000
        >>> store.get_position(ProtocolId.LIDO).current_percentage
        40.0
    """

    def __init__(self, strategy: Strategy):
        self._positions: Dict[ProtocolId, Position] = {}
        self._strategy = strategy
        self._transactions: List["RebalanceTransaction"] = []

    def initialize(self, protocols: Iterable[Protocol]) -> None:
        """Create one position per protocol from its observed total staked.

        Replaces any existing positions. Target fields come from the
        active strategy.
        """
        self._positions = {}
        for protocol in protocols:
            self._positions[protocol.protocol_id] = Position(
                protocol=copy.deepcopy(protocol),
                current_amount=protocol.total_staked,
            )

        self._refresh_targets()
        self._refresh_percentages()

        logger.info("Initialized %d protocol positions", len(self._positions))

    # Read access

    def get_positions(self) -> Dict[ProtocolId, Position]:
        """Copies of all positions, keyed by protocol."""
        return copy.deepcopy(self._positions)

    def get_position(self, protocol_id: ProtocolId) -> Optional[Position]:
        position = self._positions.get(protocol_id)
        return copy.deepcopy(position) if position else None

    def get_active_strategy(self) -> Strategy:
        return copy.deepcopy(self._strategy)

    def get_transactions(self) -> List["RebalanceTransaction"]:
        """Copies of every recorded transaction, oldest first."""
        return copy.deepcopy(self._transactions)

    def get_protocols(self) -> List[Protocol]:
        """Protocols with their current amounts as total staked."""
        protocols = []
        for position in self._positions.values():
            protocol = copy.deepcopy(position.protocol)
            protocol.total_staked = position.current_amount
            protocols.append(protocol)
        return protocols

    def total_value(self) -> int:
        return sum(position.current_amount for position in self._positions.values())

    def current_percentages(self) -> Dict[ProtocolId, float]:
        return {p: position.current_percentage for p, position in self._positions.items()}

    def current_yield(self) -> float:
        """Yield of the portfolio as currently held, in percent."""
        return sum(
            position.current_percentage * position.protocol.yield_rate / 100
            for position in self._positions.values()
        )

    # Mutation (executor only)

    def apply_movement(self, source: ProtocolId, destination: ProtocolId, amount: int) -> None:
        """Move a settled amount between positions and recompute percentages.

        Raises:
            PortfolioError: If either protocol has no position, or the
                source holds less than the amount
        """
        if source not in self._positions or destination not in self._positions:
            raise PortfolioError(
                f"Cannot apply movement {source.value} -> {destination.value}: unknown position"
            )

        source_position = self._positions[source]
        if source_position.current_amount < amount:
            raise PortfolioError(
                f"Cannot move {amount} from {source.value}: "
                f"only {source_position.current_amount} held"
            )

        source_position.current_amount -= amount
        self._positions[destination].current_amount += amount

        self._refresh_percentages()

        logger.debug(
            "Applied movement %s -> %s: %d", source.value, destination.value, amount
        )

    def replace_strategy(self, strategy: Strategy) -> None:
        """Swap the active strategy and refresh target fields."""
        self._strategy = copy.deepcopy(strategy)
        self._refresh_targets()
        logger.info(
            "Active strategy replaced: expected yield %.2f%%", strategy.expected_yield
        )

    def record_transaction(self, transaction: "RebalanceTransaction") -> None:
        self._transactions.append(copy.deepcopy(transaction))

    # Internal

    def _refresh_percentages(self) -> None:
        total = self.total_value()
        if total == 0:
            return

        for position in self._positions.values():
            position.current_percentage = (
                position.current_amount * BASIS_POINTS // total
            ) / 100

    def _refresh_targets(self) -> None:
        total = self.total_value()
        for protocol_id, position in self._positions.items():
            target = self._strategy.target_for(protocol_id)
            position.target_percentage = target
            position.target_amount = total * to_basis_points(target) // BASIS_POINTS
