"""Custom exception hierarchy for the ledger metrics application.

This module defines a base exception and several specific exception types to
enable precise and predictable error handling across the codebase.
"""


class LedgerMetricsError(Exception):
    """Base exception for all application-specific errors."""

    pass


class APIError(LedgerMetricsError):
    """Errors related to ledger API interactions (HTTP, GraphQL, circuit open)."""

    pass


class RateLimitedError(APIError):
    """The remote endpoint answered with HTTP 429."""

    pass


class DatabaseError(LedgerMetricsError):
    """Errors related to database operations."""

    pass


class MetricCalculationError(LedgerMetricsError):
    """Errors occurring while computing a metric."""

    pass


class PriceUnavailableError(MetricCalculationError):
    """A required token price could not be resolved."""

    pass
