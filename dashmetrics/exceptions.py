"""
Metrics Engine Exception Classes

Custom exception hierarchy for metric calculation and caching.
Provides specific error types so callers can tell configuration
problems apart from data access and cache backend failures.
"""

from typing import Any, Optional


class MetricsEngineError(Exception):
    """Base exception for all metrics engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """
        Initialize metrics engine error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(MetricsEngineError):
    """Raised when a metric or request is misconfigured."""


class InvalidRangeError(ConfigurationError):
    """Raised when a range token cannot be coerced to a known range."""

    def __init__(self, value: Any, message: Optional[str] = None):
        if message is None:
            message = f"Invalid range token: {value!r} (expected positive day count or TODAY/MTD/QTD/YTD/ALL)"
        super().__init__(message, details={"range": str(value)})
        self.value = value


class InvalidTimezoneError(ConfigurationError):
    """Raised when a timezone name is not a known IANA zone."""

    def __init__(self, timezone: str):
        super().__init__(f"Unknown timezone: {timezone!r}", details={"timezone": timezone})
        self.timezone = timezone


class UnboundedRangeError(ConfigurationError):
    """Raised when the ALL token reaches code that needs a concrete window."""

    def __init__(self, message: str = "Range ALL has no window; skip windowing instead of resolving it"):
        super().__init__(message, details={"range": "ALL"})


class QuerySourceError(MetricsEngineError):
    """Raised when a query source fails to produce an aggregate."""


class QuerySourceUnavailableError(QuerySourceError):
    """Raised when the table, collection or column a source points at is absent."""


class CacheStoreError(MetricsEngineError):
    """Raised when a cache backend operation fails."""


class ResultFrozenError(MetricsEngineError):
    """Raised when a fluent mutator is called on a frozen result."""

    def __init__(self, result_type: str):
        super().__init__(
            f"{result_type} is frozen; results are immutable once returned",
            details={"result_type": result_type},
        )


class UnsupportedOperationError(MetricsEngineError):
    """Raised when a metric is asked for an operation its strategy cannot serve."""
