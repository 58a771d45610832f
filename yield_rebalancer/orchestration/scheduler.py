"""Rebalance Scheduler - APScheduler integration for periodic rebalancing.

This module provides scheduling infrastructure for the rebalance agent with:
- Interval-based cycle scheduling (UTC)
- One cycle at a time (max_instances=1, missed runs coalesced)
- Circuit breaker on critical errors and stranded funds
"""

from typing import Any, Callable, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from yield_rebalancer.orchestration.cycle import CycleResult, RebalanceCycle
from yield_rebalancer.utils.event_log import RebalanceEventLogger, RebalanceEventType
from yield_rebalancer.utils.exceptions import (
    CircuitBreakerError,
    SettlementConnectionError,
)
from yield_rebalancer.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_JOB_ID = "rebalance_cycle"


class RebalanceScheduler:
    """APScheduler wrapper for rebalance cycles.

    Example:
        >>> scheduler = RebalanceScheduler(config.section("scheduler"))
        >>> scheduler.schedule_cycle(cycle, interval_hours=6)
        >>> scheduler.start()
    """

    def __init__(
        self,
        config: Optional[Dict] = None,
        event_logger: Optional[RebalanceEventLogger] = None,
    ):
        """Initialize rebalance scheduler.

        Args:
            config: Scheduler settings
                - timezone: Scheduling timezone (default: UTC)
                - interval_hours: Default hours between cycles (default: 6)
                - enable_emergency_stop: Trip the circuit breaker when a
                  cycle leaves funds in transit (default: True)
                - max_instances: Max concurrent job instances (default: 1)
                - coalesce: Combine missed runs (default: True)
                - misfire_grace_time: Seconds a late run may start (default: 300)
            event_logger: Structured event sink for circuit breaker trips (optional)
        """
        self.config = config or {}
        self.event_logger = event_logger
        self.timezone = self.config.get("timezone", "UTC")
        self.interval_hours = self.config.get("interval_hours", 6)
        self.enable_emergency_stop = self.config.get("enable_emergency_stop", True)

        if self.interval_hours <= 0:
            raise ValueError(f"interval_hours must be positive, got {self.interval_hours}")

        self.scheduler = BackgroundScheduler(
            timezone=self.timezone,
            job_defaults={
                "coalesce": self.config.get("coalesce", True),
                "max_instances": self.config.get("max_instances", 1),
                "misfire_grace_time": self.config.get("misfire_grace_time", 300),
            },
        )

        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.last_results: Dict[str, CycleResult] = {}
        self.circuit_breaker_active = False
        self.circuit_breaker_reason: Optional[str] = None

        self.scheduler.add_listener(
            self._on_job_executed, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR
        )

        logger.info("RebalanceScheduler initialized (timezone: %s)", self.timezone)

    def schedule_cycle(
        self,
        cycle: RebalanceCycle,
        interval_hours: Optional[float] = None,
        job_id: str = DEFAULT_JOB_ID,
    ) -> None:
        """Run a rebalance cycle every ``interval_hours``.

        Args:
            cycle: Cycle to run
            interval_hours: Hours between runs (default: configured value)
            job_id: Scheduler job identifier
        """
        hours = interval_hours if interval_hours is not None else self.interval_hours
        if hours <= 0:
            raise ValueError(f"interval_hours must be positive, got {hours}")

        if job_id in self.tasks:
            logger.warning("Job '%s' already scheduled, replacing", job_id)
            self.scheduler.remove_job(job_id)

        wrapped = self._wrap_cycle(job_id, cycle)
        self.tasks[job_id] = {
            "cycle": cycle,
            "interval_hours": hours,
            "func": wrapped,
        }

        self.scheduler.add_job(
            func=wrapped,
            trigger=IntervalTrigger(hours=hours, timezone=self.timezone),
            id=job_id,
            name=job_id,
            replace_existing=True,
        )

        logger.info("Scheduled '%s' every %s hours", job_id, hours)

    def _wrap_cycle(self, job_id: str, cycle: RebalanceCycle) -> Callable[[], Optional[CycleResult]]:
        """Wrap a cycle with circuit breaker checks."""

        def wrapped() -> Optional[CycleResult]:
            if self.circuit_breaker_active:
                logger.warning("Circuit breaker active, skipping '%s'", job_id)
                return None

            try:
                result = cycle.run()
            except Exception as e:
                logger.error("Cycle '%s' failed: %s", job_id, e, exc_info=True)
                if self._is_critical_error(e):
                    self.activate_circuit_breaker(f"{type(e).__name__}: {e}")
                raise

            self.last_results[job_id] = result

            if result.funds_in_transit and self.enable_emergency_stop:
                self.activate_circuit_breaker(
                    f"cycle '{job_id}' left funds in transit"
                )

            return result

        return wrapped

    def _is_critical_error(self, error: Exception) -> bool:
        """Check if an error should trip the circuit breaker."""
        return isinstance(error, (SettlementConnectionError, CircuitBreakerError))

    def activate_circuit_breaker(self, reason: str = "") -> None:
        """Stop all scheduled rebalancing until deactivated."""
        logger.error("CIRCUIT BREAKER ACTIVATED - Stopping rebalance jobs: %s", reason)
        self.circuit_breaker_active = True
        self.circuit_breaker_reason = reason

        if self.event_logger is not None:
            self.event_logger.log_risk_event(
                RebalanceEventType.CIRCUIT_BREAKER_TRIGGERED, reason
            )

        for job in self.scheduler.get_jobs():
            job.pause()
            logger.info("Paused job '%s'", job.id)

    def deactivate_circuit_breaker(self) -> None:
        """Clear the circuit breaker and resume paused jobs."""
        logger.info("Circuit breaker deactivated - Resuming rebalance jobs")
        self.circuit_breaker_active = False
        self.circuit_breaker_reason = None

        for job in self.scheduler.get_jobs():
            job.resume()
            logger.info("Resumed job '%s'", job.id)

    def run_now(self, job_id: str = DEFAULT_JOB_ID) -> Optional[CycleResult]:
        """Run a scheduled cycle immediately in the calling thread.

        Raises:
            KeyError: If no job with this id was scheduled
        """
        return self.tasks[job_id]["func"]()

    def _on_job_executed(self, event) -> None:
        if event.exception:
            logger.error(
                "Job '%s' raised exception: %s",
                event.job_id,
                event.exception,
            )
        else:
            logger.debug("Job '%s' executed successfully", event.job_id)

    def start(self) -> None:
        """Start the scheduler (non-blocking)."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        logger.info("Scheduler started successfully")

        for job in self.scheduler.get_jobs():
            logger.info("  - %s: next run at %s", job.id, job.next_run_time)

    def stop(self) -> None:
        """Stop the scheduler, waiting for a running cycle to finish."""
        if not self.scheduler.running:
            logger.warning("Scheduler not running")
            return

        logger.info("Shutting down scheduler...")
        self.scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_jobs(self) -> list:
        return self.scheduler.get_jobs()

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        self.tasks.pop(job_id, None)
        logger.info("Removed job '%s'", job_id)
