"""
Structured logging for dispatch core.

Example:
    >>> from dispatch_core.core.logging import DispatchLogger, LoggingConfig
    >>>
    >>> logger = DispatchLogger(LoggingConfig.create(level="DEBUG", format="json"))
    >>> logger.info("Request started", method="GET", url="https://ec2.example.com/")
"""

from .config import LoggingConfig, LogLevel, LogFormat
from .logger import DispatchLogger, NullLogger
from .formatters import JSONFormatter, TextFormatter, get_formatter
from .filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
)
from .handlers import create_console_handler, create_file_handler

__all__ = [
    # Config
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    # Logger
    "DispatchLogger",
    "NullLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    "get_formatter",
    # Filters
    "CorrelationIdFilter",
    "ExtraFieldsFilter",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    # Handlers
    "create_console_handler",
    "create_file_handler",
]
