"""Unit tests for RebalanceAPI."""

import pandas as pd
import pytest

from yield_rebalancer.api.rebalance_api import (
    POSITION_COLUMNS,
    TRANSACTION_COLUMNS,
    RebalanceAPI,
)
from yield_rebalancer.data.static_source import StaticMarketDataSource
from yield_rebalancer.execution.simulated import SimulatedSettlement
from yield_rebalancer.orchestration.cycle import RebalanceCycle

ONE_ETH = 10**18


def make_api(balances: dict, fee_price: float = 42.0, **settlement_extra) -> RebalanceAPI:
    source = StaticMarketDataSource(
        {
            "fee_price": fee_price,
            "reference_asset_price": 2340,
            "yields": {"lido": 8.1, "etherfi": 8.4, "rocketpool": 7.9, "morpho": 9.2},
        }
    )
    settlement = SimulatedSettlement(
        {"balances": balances, "fee_price": fee_price, **settlement_extra}
    )
    cycle = RebalanceCycle(
        source,
        settlement,
        {"strategy": {"max_fee_price": 50, "initial_allocations": {"lido": 100}}},
    )
    cycle.initialize_positions()
    return RebalanceAPI(cycle)


@pytest.fixture
def api() -> RebalanceAPI:
    return make_api({"lido": 10 * ONE_ETH})


class TestRunCycle:
    """Test cases for run_cycle()."""

    def test_executed_summary(self, api: RebalanceAPI) -> None:
        """Test an executed cycle is summarized with plain values."""
        summary = api.run_cycle()

        assert summary["executed"] is True
        assert summary["need"] > summary["threshold"]
        assert summary["fee_ok"] is True
        assert summary["risk_ok"] is True
        assert summary["error"] is None
        assert summary["funds_in_transit"] is False
        assert summary["movements"][0]["source"] == "lido"
        assert len(summary["transactions"]) == len(summary["movements"])
        assert {tx["status"] for tx in summary["transactions"]} == {"completed"}
        assert "lido" in summary["strategy"]["allocations"]
        assert 0 <= summary["risk"]["overall_risk"] <= 10

    def test_skipped_summary(self) -> None:
        """Test a skipped cycle reports why."""
        api = make_api({"lido": 10 * ONE_ETH}, fee_price=1000.0)

        summary = api.run_cycle()

        assert summary["executed"] is False
        assert summary["fee_ok"] is False
        assert "fee price above ceiling" in summary["reason"]
        assert summary["movements"] == []


class TestReporting:
    """Test cases for positions, transactions and metrics."""

    def test_get_positions(self, api: RebalanceAPI) -> None:
        df = api.get_positions()

        assert isinstance(df, pd.DataFrame)
        assert df.index.name == "protocol"
        assert list(df.columns) == POSITION_COLUMNS[1:]
        assert df.loc["lido", "current_percentage"] == 100.0

    def test_get_transactions_empty(self, api: RebalanceAPI) -> None:
        df = api.get_transactions()

        assert df.empty
        assert list(df.columns) == TRANSACTION_COLUMNS

    def test_get_transactions_after_cycle(self, api: RebalanceAPI) -> None:
        api.run_cycle()

        df = api.get_transactions()

        assert not df.empty
        assert (df["status"] == "completed").all()
        assert pd.api.types.is_datetime64_any_dtype(df["timestamp"])

    def test_get_strategy(self, api: RebalanceAPI) -> None:
        """Test the active strategy changes once a cycle executes."""
        assert api.get_strategy()["allocations"] == {"lido": 100.0}

        api.run_cycle()

        assert len(api.get_strategy()["allocations"]) == 4

    def test_assess_risk(self, api: RebalanceAPI) -> None:
        """Test a single-protocol portfolio is flagged as concentrated."""
        report = api.assess_risk()

        assert report["concentration_risk"] == pytest.approx(10.0)
        assert set(report["stress_tests"]) == {
            "slashing_event",
            "lending_market_exploit",
            "liquid_staking_depeg",
        }

    def test_performance_metrics(self, api: RebalanceAPI) -> None:
        api.run_cycle()

        metrics = api.get_performance_metrics()

        assert metrics["total_value"] == 10 * ONE_ETH
        assert metrics["rebalance_count"] == 1
        assert metrics["completed_movements"] > 0
        assert metrics["failed_movements"] == 0
        assert metrics["funds_in_transit"] == 0
        assert metrics["estimated_cost_spent"] == pytest.approx(
            metrics["completed_movements"] * 42 * 200_000 * 2 / 1e9
        )
        assert metrics["value_at_risk"] > 0

    def test_failed_movements_counted(self) -> None:
        """Test failed and stranded movements show up in the metrics."""
        api = make_api({"lido": 10 * ONE_ETH}, fail_deposits=["morpho"])

        api.run_cycle()
        metrics = api.get_performance_metrics()

        assert metrics["failed_movements"] == 1
        assert metrics["funds_in_transit"] == 1
