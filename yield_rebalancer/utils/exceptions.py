"""Custom exceptions for Yield Rebalancer.

This module defines the exception hierarchy for the application.
"""


class RebalancerError(Exception):
    """Base exception for all Yield Rebalancer errors.

    All custom exceptions in the application should inherit from this class.
    """

    pass


class ConfigurationError(RebalancerError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing required configuration keys
        - Unknown risk tolerance name
        - Configuration file not found
    """

    pass


class DataError(RebalancerError):
    """Base exception for market data errors."""

    pass


class MarketDataError(DataError):
    """Raised when the market data source cannot produce a snapshot.

    Examples:
        - Protocol table entry missing required fields
        - Upstream source unreachable
    """

    pass


class DataQualityError(DataError):
    """Raised when market data fails validation.

    Examples:
        - Unknown protocol identifier
        - Negative yield or fee price
    """

    pass


class PortfolioError(RebalancerError):
    """Base exception for portfolio layer errors.

    Examples:
        - Movement references a protocol without a position
        - Source position would go negative
    """

    pass


class InvalidStrategyError(PortfolioError):
    """Raised when a strategy is rejected before planning.

    Examples:
        - Target allocations sum to more than 100%
        - Target references a protocol with no position
    """

    pass


class RiskError(RebalancerError):
    """Base exception for risk layer errors."""

    pass


class CircuitBreakerError(RiskError):
    """Raised when the circuit breaker blocks a rebalance cycle.

    Examples:
        - A previous cycle left funds withdrawn but not redeposited
        - Repeated settlement connection failures
    """

    pass


class ExecutionError(RebalancerError):
    """Base exception for execution layer errors."""

    pass


class SettlementError(ExecutionError):
    """Base exception for settlement collaborator errors."""

    pass


class ConfirmationTimeoutError(SettlementError):
    """Raised when a confirmation wait elapses without a result."""

    pass


class SettlementConnectionError(SettlementError):
    """Raised when the settlement layer is unreachable.

    Treated as critical by the scheduler's circuit breaker.
    """

    pass


class InvalidTransitionError(ExecutionError):
    """Raised when a transaction status change would leave a terminal state
    or skip a step of the state machine."""

    pass


class ConcurrentCycleError(RebalancerError):
    """Raised when a rebalance cycle starts while another is still running."""

    pass
