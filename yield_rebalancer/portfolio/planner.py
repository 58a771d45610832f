"""Surplus/deficit movement planner.

Converts a target strategy and current position amounts into pairwise
transfers between protocols.

Algorithm:
1. Target amount per protocol from integer basis points of total value
2. Split protocols into surpluses (over target) and deficits (under target)
3. First-fit match: each surplus, in strategy order, fills deficits in
   strategy order until it is exhausted

The result conserves value (total moved == min(total surplus, total
deficit)) and is deterministic, but it is not the minimum number of
transfers. For a handful of protocols that is acceptable.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping

from yield_rebalancer.portfolio.base import Movement, Position, Strategy
from yield_rebalancer.protocols.base import ProtocolId
from yield_rebalancer.utils.exceptions import InvalidStrategyError
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

BASIS_POINTS = 10_000
ALLOCATION_EPSILON = 1e-6


def to_basis_points(percentage: float) -> int:
    """Convert a percentage to whole basis points, rounding half up.

    Example:
        >>> to_basis_points(33.335)
        3334
    """
    return int(
        (Decimal(str(percentage)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


class MovementPlanner:
    """Plans the transfers that take current positions to a strategy.

    Example:
        >>> planner = MovementPlanner()
        >>> movements = planner.plan(strategy, store.get_positions())
        >>> for m in movements:
        ...     print(f"{m.source.value} -> {m.destination.value}: {m.amount}")
    """

    def validate_strategy(
        self,
        strategy: Strategy,
        positions: Mapping[ProtocolId, Position],
    ) -> None:
        """Reject strategies that cannot be planned.

        Raises:
            InvalidStrategyError: If targets sum above 100%, a target is
                negative, or a target references a protocol with no position
        """
        total = strategy.total_allocation
        if total > 100 + ALLOCATION_EPSILON:
            raise InvalidStrategyError(
                f"Target allocations sum to {total:.4f}%, exceeding 100%"
            )

        negative = [p.value for p, pct in strategy.allocations.items() if pct < 0]
        if negative:
            raise InvalidStrategyError(
                f"Negative target allocation for: {', '.join(negative)}"
            )

        unknown = [p.value for p in strategy.allocations if p not in positions]
        if unknown:
            raise InvalidStrategyError(
                f"Strategy references protocols without a position: {', '.join(unknown)}"
            )

    def target_amounts(
        self,
        strategy: Strategy,
        total_value: int,
    ) -> Dict[ProtocolId, int]:
        """Target amount per strategy protocol, in integer arithmetic."""
        return {
            protocol_id: total_value * to_basis_points(percentage) // BASIS_POINTS
            for protocol_id, percentage in strategy.allocations.items()
        }

    def plan(
        self,
        strategy: Strategy,
        positions: Mapping[ProtocolId, Position],
    ) -> List[Movement]:
        """Validate the strategy and plan movements.

        Args:
            strategy: Target strategy
            positions: Current positions by protocol

        Returns:
            Ordered list of movements (may be empty)

        Raises:
            InvalidStrategyError: If the strategy fails validation
        """
        self.validate_strategy(strategy, positions)

        total_value = sum(position.current_amount for position in positions.values())
        targets = self.target_amounts(strategy, total_value)

        surpluses: Dict[ProtocolId, int] = {}
        deficits: Dict[ProtocolId, int] = {}

        for protocol_id, target_amount in targets.items():
            difference = target_amount - positions[protocol_id].current_amount
            if difference > 0:
                deficits[protocol_id] = difference
            elif difference < 0:
                surpluses[protocol_id] = -difference

        movements = self.match(surpluses, deficits)

        logger.info(
            "Planned %d movements moving %d of %d total value",
            len(movements),
            sum(m.amount for m in movements),
            total_value,
        )

        return movements

    @staticmethod
    def match(
        surpluses: Dict[ProtocolId, int],
        deficits: Dict[ProtocolId, int],
    ) -> List[Movement]:
        """First-fit match surpluses against deficits, both in insertion order."""
        open_deficits = dict(deficits)
        movements: List[Movement] = []

        for source, surplus in surpluses.items():
            remaining = surplus

            for destination in list(open_deficits):
                if remaining == 0:
                    break

                amount = min(remaining, open_deficits[destination])
                movements.append(Movement(source=source, destination=destination, amount=amount))

                remaining -= amount
                open_deficits[destination] -= amount
                if open_deficits[destination] == 0:
                    del open_deficits[destination]

            if not open_deficits:
                break

        return movements
