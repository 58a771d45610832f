"""Unit tests for custom exceptions."""

import pytest

from yield_rebalancer.utils.exceptions import (
    CircuitBreakerError,
    ConcurrentCycleError,
    ConfigurationError,
    ConfirmationTimeoutError,
    DataError,
    DataQualityError,
    ExecutionError,
    InvalidStrategyError,
    InvalidTransitionError,
    MarketDataError,
    PortfolioError,
    RebalancerError,
    RiskError,
    SettlementConnectionError,
    SettlementError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    def test_configuration_error_inherits_from_rebalancer_error(self) -> None:
        """Test ConfigurationError is a subclass of RebalancerError."""
        assert issubclass(ConfigurationError, RebalancerError)

    def test_data_errors(self) -> None:
        """Test data errors share DataError."""
        assert issubclass(MarketDataError, DataError)
        assert issubclass(DataQualityError, DataError)
        assert issubclass(DataError, RebalancerError)

    def test_portfolio_errors(self) -> None:
        """Test portfolio errors share PortfolioError."""
        assert issubclass(InvalidStrategyError, PortfolioError)
        assert issubclass(PortfolioError, RebalancerError)

    def test_circuit_breaker_error_is_risk_error(self) -> None:
        """Test CircuitBreakerError is a RiskError."""
        assert issubclass(CircuitBreakerError, RiskError)
        assert issubclass(RiskError, RebalancerError)

    def test_settlement_errors(self) -> None:
        """Test settlement errors share SettlementError and ExecutionError."""
        for error in (
            ConfirmationTimeoutError,
            SettlementConnectionError,
        ):
            assert issubclass(error, SettlementError)
            assert issubclass(error, ExecutionError)

    def test_invalid_transition_is_execution_error(self) -> None:
        """Test InvalidTransitionError is an ExecutionError, not a SettlementError."""
        assert issubclass(InvalidTransitionError, ExecutionError)
        assert not issubclass(InvalidTransitionError, SettlementError)

    def test_concurrent_cycle_error(self) -> None:
        """Test ConcurrentCycleError is a RebalancerError."""
        assert issubclass(ConcurrentCycleError, RebalancerError)


class TestExceptionRaising:
    """Test raising and catching exceptions."""

    def test_raise_rebalancer_error(self) -> None:
        """Test raising and catching RebalancerError."""
        with pytest.raises(RebalancerError, match="Base error"):
            raise RebalancerError("Base error")

    def test_catch_timeout_as_settlement_error(self) -> None:
        """Test a timeout can be caught as SettlementError."""
        with pytest.raises(SettlementError, match="not confirmed"):
            raise ConfirmationTimeoutError("not confirmed")

    def test_catch_invalid_strategy_as_base(self) -> None:
        """Test InvalidStrategyError can be caught as RebalancerError."""
        with pytest.raises(RebalancerError, match="exceeding 100%"):
            raise InvalidStrategyError("Target allocations sum to 120%, exceeding 100%")
