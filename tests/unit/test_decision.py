"""Unit tests for RebalanceGate."""

from typing import Dict

import pytest

from yield_rebalancer.portfolio.base import Position, RiskTolerance, Strategy
from yield_rebalancer.portfolio.decision import RebalanceDecision, RebalanceGate
from yield_rebalancer.protocols.base import Protocol, ProtocolId


def make_positions(percentages: Dict[ProtocolId, float]) -> Dict[ProtocolId, Position]:
    return {
        protocol_id: Position(
            protocol=Protocol.from_profile(protocol_id),
            current_amount=int(pct * 100),
            current_percentage=pct,
        )
        for protocol_id, pct in percentages.items()
    }


@pytest.fixture
def gate() -> RebalanceGate:
    return RebalanceGate()


@pytest.fixture
def positions() -> Dict[ProtocolId, Position]:
    """Positions at 70/30."""
    return make_positions({ProtocolId.LIDO: 70.0, ProtocolId.MORPHO: 30.0})


@pytest.fixture
def strategy() -> Strategy:
    """Target strategy at 50/50."""
    return Strategy(
        allocations={ProtocolId.LIDO: 50.0, ProtocolId.MORPHO: 50.0},
        risk_score=3.0,
        rebalance_threshold=0.05,
        max_fee_price=50.0,
        risk_tolerance=RiskTolerance.MODERATE,
    )


class TestCalculateNeed:
    """Test cases for drift calculation."""

    def test_drift_between_targets(
        self, gate: RebalanceGate, strategy: Strategy, positions: Dict
    ) -> None:
        """Test 70/30 against 50/50 drifts by 0.4."""
        assert gate.calculate_need(strategy, positions) == pytest.approx(0.4)

    def test_missing_position_counts_as_zero(self, gate: RebalanceGate) -> None:
        """Test a target without a position drifts by its full target."""
        strategy = Strategy(allocations={ProtocolId.ETHERFI: 20.0})

        assert gate.calculate_need(strategy, {}) == pytest.approx(0.2)

    def test_protocols_outside_strategy_ignored(self, gate: RebalanceGate) -> None:
        """Test held protocols dropped from the strategy do not add drift."""
        positions = make_positions({ProtocolId.LIDO: 50.0, ProtocolId.MORPHO: 50.0})
        strategy = Strategy(allocations={ProtocolId.LIDO: 50.0})

        assert gate.calculate_need(strategy, positions) == 0.0


class TestEvaluate:
    """Test cases for the combined gate."""

    def test_rebalance_when_all_conditions_hold(
        self, gate: RebalanceGate, strategy: Strategy, positions: Dict
    ) -> None:
        """Test drift above threshold with fee and risk OK opens the gate."""
        decision = gate.evaluate(strategy, positions, live_fee_price=30)

        assert decision.need == pytest.approx(0.4)
        assert decision.fee_ok is True
        assert decision.risk_ok is True
        assert decision.should_rebalance is True
        assert "exceeds threshold" in decision.reason

    def test_strategy_against_itself(self, gate: RebalanceGate, strategy: Strategy) -> None:
        """Test positions already at target never trigger a rebalance."""
        positions = make_positions(dict(strategy.allocations))

        decision = gate.evaluate(strategy, positions, live_fee_price=1)

        assert decision.need == 0.0
        assert decision.should_rebalance is False

    def test_fee_above_ceiling(
        self, gate: RebalanceGate, strategy: Strategy, positions: Dict
    ) -> None:
        """Test a live fee above the ceiling keeps the gate shut."""
        decision = gate.evaluate(strategy, positions, live_fee_price=51)

        assert decision.fee_ok is False
        assert decision.should_rebalance is False
        assert "fee price above ceiling" in decision.reason

    def test_fee_at_ceiling_is_ok(
        self, gate: RebalanceGate, strategy: Strategy, positions: Dict
    ) -> None:
        """Test a live fee equal to the ceiling is accepted."""
        assert gate.evaluate(strategy, positions, live_fee_price=50).fee_ok is True

    @pytest.mark.parametrize(
        "tolerance,risk_score,expected",
        [
            (RiskTolerance.CONSERVATIVE, 4.0, True),
            (RiskTolerance.CONSERVATIVE, 4.1, False),
            (RiskTolerance.MODERATE, 6.0, True),
            (RiskTolerance.MODERATE, 6.5, False),
            (RiskTolerance.AGGRESSIVE, 8.0, True),
            (RiskTolerance.AGGRESSIVE, 8.1, False),
        ],
    )
    def test_risk_caps(
        self,
        gate: RebalanceGate,
        positions: Dict,
        tolerance: RiskTolerance,
        risk_score: float,
        expected: bool,
    ) -> None:
        """Test the risk cap for each tolerance."""
        strategy = Strategy(
            allocations={ProtocolId.LIDO: 50.0, ProtocolId.MORPHO: 50.0},
            risk_score=risk_score,
            risk_tolerance=tolerance,
        )

        decision = gate.evaluate(strategy, positions, live_fee_price=10)

        assert decision.risk_ok is expected
        assert decision.should_rebalance is expected

    def test_drift_equal_to_threshold_does_not_trigger(self, gate: RebalanceGate) -> None:
        """Test the threshold comparison is strict."""
        positions = make_positions({ProtocolId.LIDO: 52.5, ProtocolId.MORPHO: 47.5})
        strategy = Strategy(
            allocations={ProtocolId.LIDO: 50.0, ProtocolId.MORPHO: 50.0},
            rebalance_threshold=0.05,
        )

        assert gate.should_rebalance(strategy, positions, live_fee_price=10) is False

    def test_decision_is_immutable(self) -> None:
        """Test decisions cannot be modified."""
        decision = RebalanceDecision(0.1, 0.05, True, True, True)

        with pytest.raises(AttributeError):
            decision.should_rebalance = False
