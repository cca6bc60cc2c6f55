"""
Core utilities and configuration for the Redshift event export.

Modules:
    config: Settings loaded from environment variables / .env
    database: Async SQLAlchemy engine for the warehouse
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import load_settings
    from core.database import create_warehouse_engine
    from core.exceptions import ConfigurationError, DeliveryError
    from core.logging import setup_logging

Example:
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)
    engine = create_warehouse_engine(settings)
"""

__all__ = [
    "Settings",
    "load_settings",
    "create_warehouse_engine",
    "setup_logging",
    # Exceptions
    "ExportException",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "NormalizationError",
    "MissingTimestampError",
    "InvalidEventError",
    "DatabaseError",
    "QueryExecutionError",
    "ConnectivityError",
    "DeliveryError",
]
