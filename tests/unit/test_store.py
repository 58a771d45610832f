"""Unit tests for PositionStore."""

import pytest

from yield_rebalancer.execution.base import RebalanceTransaction, TransactionStatus
from yield_rebalancer.portfolio.base import Movement, Strategy
from yield_rebalancer.portfolio.store import PositionStore
from yield_rebalancer.protocols.base import Protocol, ProtocolId
from yield_rebalancer.utils.exceptions import PortfolioError

LIDO = ProtocolId.LIDO
MORPHO = ProtocolId.MORPHO
ETHERFI = ProtocolId.ETHERFI


@pytest.fixture
def strategy() -> Strategy:
    return Strategy(allocations={LIDO: 50.0, MORPHO: 50.0}, expected_yield=8.5)


@pytest.fixture
def store(strategy: Strategy) -> PositionStore:
    """Store holding 70 lido / 30 morpho."""
    store = PositionStore(strategy)
    store.initialize(
        [
            Protocol.from_profile(LIDO, total_staked=70),
            Protocol.from_profile(MORPHO, total_staked=30),
        ]
    )
    return store


class TestInitialize:
    """Test cases for initialize()."""

    def test_positions_created(self, store: PositionStore) -> None:
        """Test one position per protocol with amounts and percentages."""
        positions = store.get_positions()

        assert set(positions) == {LIDO, MORPHO}
        assert positions[LIDO].current_amount == 70
        assert positions[LIDO].current_percentage == 70.0
        assert positions[MORPHO].current_percentage == 30.0

    def test_targets_from_strategy(self, store: PositionStore) -> None:
        """Test target fields come from the active strategy."""
        position = store.get_position(LIDO)

        assert position.target_percentage == 50.0
        assert position.target_amount == 50

    def test_percentages_sum_to_100(self) -> None:
        """Test current percentages sum to about 100."""
        store = PositionStore(Strategy(allocations={}))
        store.initialize(
            [
                Protocol.from_profile(LIDO, total_staked=1),
                Protocol.from_profile(MORPHO, total_staked=1),
                Protocol.from_profile(ETHERFI, total_staked=1),
            ]
        )

        assert sum(store.current_percentages().values()) == pytest.approx(100, abs=0.05)

    def test_empty_portfolio(self) -> None:
        """Test zero total value leaves percentages at 0."""
        store = PositionStore(Strategy(allocations={LIDO: 100.0}))
        store.initialize([Protocol.from_profile(LIDO)])

        assert store.total_value() == 0
        assert store.get_position(LIDO).current_percentage == 0.0


class TestReadAccess:
    """Test cases for copy-returning readers."""

    def test_positions_are_copies(self, store: PositionStore) -> None:
        """Test mutating a returned position does not change the store."""
        positions = store.get_positions()
        positions[LIDO].current_amount = 0

        assert store.get_position(LIDO).current_amount == 70

    def test_strategy_is_copy(self, store: PositionStore) -> None:
        """Test mutating the returned strategy does not change the store."""
        strategy = store.get_active_strategy()
        strategy.allocations[LIDO] = 0.0

        assert store.get_active_strategy().allocations[LIDO] == 50.0

    def test_unknown_position(self, store: PositionStore) -> None:
        """Test an unknown protocol has no position."""
        assert store.get_position(ETHERFI) is None

    def test_get_protocols_reflect_amounts(self, store: PositionStore) -> None:
        """Test protocols report current amounts as total staked."""
        protocols = {p.protocol_id: p for p in store.get_protocols()}

        assert protocols[LIDO].total_staked == 70
        assert protocols[MORPHO].total_staked == 30

    def test_current_yield(self, store: PositionStore) -> None:
        """Test yield of the portfolio as held."""
        expected = 0.7 * store.get_position(LIDO).protocol.yield_rate + 0.3 * (
            store.get_position(MORPHO).protocol.yield_rate
        )

        assert store.current_yield() == pytest.approx(expected)


class TestMutation:
    """Test cases for executor-side mutation."""

    def test_apply_movement(self, store: PositionStore) -> None:
        """Test a settled movement updates amounts and percentages."""
        store.apply_movement(LIDO, MORPHO, 20)

        assert store.get_position(LIDO).current_amount == 50
        assert store.get_position(MORPHO).current_amount == 50
        assert store.get_position(MORPHO).current_percentage == 50.0
        assert store.total_value() == 100

    def test_apply_movement_insufficient(self, store: PositionStore) -> None:
        """Test moving more than the source holds raises PortfolioError."""
        with pytest.raises(PortfolioError, match="only 30 held"):
            store.apply_movement(MORPHO, LIDO, 31)

    def test_apply_movement_unknown_protocol(self, store: PositionStore) -> None:
        """Test an unknown protocol raises PortfolioError."""
        with pytest.raises(PortfolioError, match="unknown position"):
            store.apply_movement(LIDO, ETHERFI, 1)

    def test_replace_strategy(self, store: PositionStore) -> None:
        """Test replacing the strategy refreshes targets."""
        store.replace_strategy(Strategy(allocations={LIDO: 80.0, MORPHO: 20.0}))

        assert store.get_active_strategy().allocations[LIDO] == 80.0
        assert store.get_position(LIDO).target_amount == 80
        assert store.get_position(MORPHO).target_percentage == 20.0

    def test_record_transaction(self, store: PositionStore) -> None:
        """Test transactions are recorded in order as copies."""
        first = RebalanceTransaction.from_movement(Movement(LIDO, MORPHO, 10))
        second = RebalanceTransaction.from_movement(Movement(MORPHO, LIDO, 5))
        store.record_transaction(first)
        store.record_transaction(second)
        first.transition(TransactionStatus.EXECUTING)

        recorded = store.get_transactions()

        assert [tx.transaction_id for tx in recorded] == [
            first.transaction_id,
            second.transaction_id,
        ]
        assert recorded[0].status == TransactionStatus.PENDING
        assert recorded[0] is not first
