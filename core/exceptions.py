"""
Custom exceptions for the export pipeline with structured error context.

Every exception carries a context dictionary so failures can be logged
with the batch, table or field that caused them.

Exception Hierarchy:
    ExportException (base)
    ├── ConfigurationError
    ├── NormalizationError
    │   └── MissingTimestampError
    ├── DatabaseError
    │   ├── QueryExecutionError
    │   ├── ConnectivityError
    │   └── DeliveryError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ExportException(Exception):
    """
    Base exception for all export-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (batch id, table, field...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ExportException):
    """
    Mixin for errors that are recovered by re-scheduling the work.

    Attributes:
        attempt: Zero-based attempt number that failed
        retry_delay_ms: Delay before the next attempt, None when abandoned
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        attempt: int = 0,
        retry_delay_ms: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.attempt = attempt
        self.retry_delay_ms = retry_delay_ms
        self.context["attempt"] = attempt
        if retry_delay_ms is not None:
            self.context["retry_delay_ms"] = retry_delay_ms


class NonRetryableError(ExportException):
    """
    Mixin for errors that must stop the current operation for good.

    Used for:
    - Missing or invalid configuration
    - Unreachable warehouse at startup
    - Events that cannot be normalized
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Raised when a required option is missing or invalid.

    Context should include:
        - fields: Mapping of option name to validation message
    """
    pass


# ============================================================================
# Normalization Errors
# ============================================================================

class NormalizationError(ExportException):
    """Base exception for event normalization failures."""
    pass


class MissingTimestampError(NonRetryableError, NormalizationError):
    """
    Raised when no usable event time can be determined.

    Context should include:
        - uuid: Identifier of the offending event
        - event: Event name
        - candidates: The timestamp fields that were inspected
    """
    pass


class InvalidEventError(NonRetryableError, NormalizationError):
    """Raised when an incoming event does not match the event schema."""
    pass


# ============================================================================
# Database Errors
# ============================================================================

class DatabaseError(ExportException):
    """Base exception for warehouse failures."""
    pass


class QueryExecutionError(DatabaseError):
    """
    Raised by the query executor when a statement fails.

    Context should include:
        - operation: First keyword of the statement (INSERT, CREATE)
        - parameter_count: Number of bound values
    """
    pass


class ConnectivityError(NonRetryableError, DatabaseError):
    """Warehouse unusable at startup (bootstrap failed)."""
    pass


class DeliveryError(RetryableError, DatabaseError):
    """
    A flush failed to reach the warehouse.

    Context should include:
        - batch_id: Identifier of the batch
        - batch_size: Number of events in the batch
    """
    pass
