"""Unit tests for RebalanceScheduler.

The scheduler is never started here; scheduled cycles are run in the
test thread through run_now().
"""

from unittest.mock import Mock

import pytest

from yield_rebalancer.orchestration.cycle import CycleResult
from yield_rebalancer.orchestration.scheduler import DEFAULT_JOB_ID, RebalanceScheduler
from yield_rebalancer.utils.event_log import RebalanceEventType
from yield_rebalancer.utils.exceptions import MarketDataError, SettlementConnectionError


def make_cycle(result=None, error: Exception | None = None) -> Mock:
    cycle = Mock()
    if error is not None:
        cycle.run.side_effect = error
    else:
        cycle.run.return_value = result or CycleResult()
    return cycle


def in_transit_result() -> CycleResult:
    transaction = Mock()
    transaction.funds_in_transit = True
    return CycleResult(transactions=[transaction])


@pytest.fixture
def scheduler() -> RebalanceScheduler:
    return RebalanceScheduler({"interval_hours": 6})


class TestSchedulerInit:
    """Test cases for scheduler setup."""

    def test_defaults(self) -> None:
        scheduler = RebalanceScheduler()

        assert scheduler.timezone == "UTC"
        assert scheduler.interval_hours == 6
        assert scheduler.enable_emergency_stop is True
        assert scheduler.circuit_breaker_active is False
        assert scheduler.is_running() is False

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError, match="interval_hours must be positive"):
            RebalanceScheduler({"interval_hours": 0})


class TestScheduleCycle:
    """Test cases for schedule_cycle()."""

    def test_job_registered(self, scheduler: RebalanceScheduler) -> None:
        """Test the cycle is added as an interval job."""
        cycle = make_cycle()

        scheduler.schedule_cycle(cycle)

        assert [job.id for job in scheduler.get_jobs()] == [DEFAULT_JOB_ID]
        assert scheduler.tasks[DEFAULT_JOB_ID]["cycle"] is cycle
        assert scheduler.tasks[DEFAULT_JOB_ID]["interval_hours"] == 6

    def test_interval_override(self, scheduler: RebalanceScheduler) -> None:
        scheduler.schedule_cycle(make_cycle(), interval_hours=1.5)

        assert scheduler.tasks[DEFAULT_JOB_ID]["interval_hours"] == 1.5

    def test_replacing_job(self, scheduler: RebalanceScheduler) -> None:
        """Test scheduling the same job id twice keeps a single job."""
        scheduler.schedule_cycle(make_cycle())
        scheduler.schedule_cycle(make_cycle(), interval_hours=12)

        assert len(scheduler.get_jobs()) == 1
        assert scheduler.tasks[DEFAULT_JOB_ID]["interval_hours"] == 12

    def test_invalid_interval(self, scheduler: RebalanceScheduler) -> None:
        with pytest.raises(ValueError):
            scheduler.schedule_cycle(make_cycle(), interval_hours=-1)

    def test_remove_job(self, scheduler: RebalanceScheduler) -> None:
        scheduler.schedule_cycle(make_cycle())

        scheduler.remove_job(DEFAULT_JOB_ID)

        assert scheduler.get_jobs() == []
        assert DEFAULT_JOB_ID not in scheduler.tasks


class TestRunNow:
    """Test cases for running a scheduled cycle."""

    def test_result_recorded(self, scheduler: RebalanceScheduler) -> None:
        result = CycleResult()
        scheduler.schedule_cycle(make_cycle(result))

        assert scheduler.run_now() is result
        assert scheduler.last_results[DEFAULT_JOB_ID] is result

    def test_unknown_job(self, scheduler: RebalanceScheduler) -> None:
        with pytest.raises(KeyError):
            scheduler.run_now("missing")

    def test_non_critical_error_reraised(self, scheduler: RebalanceScheduler) -> None:
        """Test ordinary failures propagate without tripping the breaker."""
        scheduler.schedule_cycle(make_cycle(error=MarketDataError("feed down")))

        with pytest.raises(MarketDataError):
            scheduler.run_now()

        assert scheduler.circuit_breaker_active is False


class TestCircuitBreaker:
    """Test cases for circuit breaker behavior."""

    def test_critical_error_trips_breaker(self, scheduler: RebalanceScheduler) -> None:
        """Test a settlement connection failure stops scheduled cycles."""
        scheduler.schedule_cycle(make_cycle(error=SettlementConnectionError("rpc down")))

        with pytest.raises(SettlementConnectionError):
            scheduler.run_now()

        assert scheduler.circuit_breaker_active is True
        assert "rpc down" in scheduler.circuit_breaker_reason

    def test_funds_in_transit_trips_breaker(self, scheduler: RebalanceScheduler) -> None:
        scheduler.schedule_cycle(make_cycle(in_transit_result()))

        scheduler.run_now()

        assert scheduler.circuit_breaker_active is True
        assert "funds in transit" in scheduler.circuit_breaker_reason

    def test_emergency_stop_disabled(self) -> None:
        """Test stranded funds leave the breaker alone when emergency stop is off."""
        scheduler = RebalanceScheduler({"enable_emergency_stop": False})
        scheduler.schedule_cycle(make_cycle(in_transit_result()))

        scheduler.run_now()

        assert scheduler.circuit_breaker_active is False

    def test_active_breaker_skips_cycle(self, scheduler: RebalanceScheduler) -> None:
        """Test no cycle runs while the breaker is active."""
        cycle = make_cycle()
        scheduler.schedule_cycle(cycle)
        scheduler.activate_circuit_breaker("manual stop")

        assert scheduler.run_now() is None
        cycle.run.assert_not_called()

    def test_breaker_pauses_and_resumes_jobs(self, scheduler: RebalanceScheduler) -> None:
        """Test activation pauses jobs and deactivation resumes them."""
        cycle = make_cycle()
        scheduler.schedule_cycle(cycle)

        scheduler.activate_circuit_breaker("manual stop")
        assert scheduler.circuit_breaker_reason == "manual stop"

        scheduler.deactivate_circuit_breaker()

        assert scheduler.circuit_breaker_active is False
        assert scheduler.circuit_breaker_reason is None
        scheduler.run_now()
        cycle.run.assert_called_once()

    def test_breaker_emits_event(self) -> None:
        """Test tripping the breaker writes a circuit breaker risk event."""
        event_logger = Mock()
        scheduler = RebalanceScheduler({"interval_hours": 6}, event_logger=event_logger)
        scheduler.schedule_cycle(make_cycle(in_transit_result()))

        scheduler.run_now()

        event_logger.log_risk_event.assert_called_once_with(
            RebalanceEventType.CIRCUIT_BREAKER_TRIGGERED,
            scheduler.circuit_breaker_reason,
        )

    def test_manual_breaker_emits_event(self) -> None:
        """Test manual activation is recorded in the event log too."""
        event_logger = Mock()
        scheduler = RebalanceScheduler(event_logger=event_logger)

        scheduler.activate_circuit_breaker("manual stop")

        event_logger.log_risk_event.assert_called_once_with(
            RebalanceEventType.CIRCUIT_BREAKER_TRIGGERED, "manual stop"
        )
