"""
Structured logger injected into the dispatcher and signers.

DispatchLogger wraps a stdlib logger with keyword fields; every field
passes through mask_sensitive_data before it reaches a handler.
NullLogger is the default: same interface, no output.
"""

import logging
from typing import Any, Optional

from .config import LoggingConfig, LogLevel
from .formatters import get_formatter
from .filters import CorrelationIdFilter, ExtraFieldsFilter
from .handlers import create_console_handler, create_file_handler
from ...utils.sanitizer import mask_sensitive_data


class DispatchLogger:
    """
    Logger with structured keyword fields.

    Example:
        >>> logger = DispatchLogger(LoggingConfig.create(level="DEBUG", format="json"))
        >>> logger.info("Request completed", method="GET", status_code=200, attempt=1)
    """

    def __init__(self, config: Optional[LoggingConfig] = None, name: str = "dispatch_core"):
        """
        Args:
            config: Logging configuration (defaults if None)
            name: Logger name; one logger per name, handlers are replaced on re-init
        """
        self.config = config or LoggingConfig()
        self.name = name
        self._closed = False

        level = self._get_level(self.config.level)
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)
        self._logger.propagate = False
        self._logger.handlers.clear()

        filters = []
        if self.config.enable_correlation_id:
            filters.append(CorrelationIdFilter())
        if self.config.extra_fields:
            filters.append(ExtraFieldsFilter(self.config.extra_fields))

        formatter = get_formatter(self.config.format.value)

        if self.config.enable_console:
            self._logger.addHandler(
                create_console_handler(level=level, formatter=formatter, filters=filters)
            )

        if self.config.enable_file and self.config.file_path:
            self._logger.addHandler(
                create_file_handler(
                    file_path=self.config.file_path,
                    level=level,
                    formatter=formatter,
                    max_bytes=self.config.max_bytes,
                    backup_count=self.config.backup_count,
                    filters=filters,
                )
            )

    @staticmethod
    def _get_level(level: LogLevel) -> int:
        return getattr(logging, level.value)

    @property
    def log_string_to_sign(self) -> bool:
        return self.config.log_string_to_sign and self.is_enabled_for(logging.DEBUG)

    def is_enabled_for(self, level: int) -> bool:
        return not self._closed and self._logger.isEnabledFor(level)

    def _log(self, level: int, message: str, fields: dict, exc_info: bool = False) -> None:
        if self._closed:
            return
        self._logger.log(level, message, extra=mask_sensitive_data(fields), exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR with the active traceback."""
        self._log(logging.ERROR, message, kwargs, exc_info=True)

    def close(self) -> None:
        """
        Flush and close handlers. Idempotent.
        """
        if self._closed:
            return

        for handler in self._logger.handlers[:]:
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)

        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class NullLogger:
    """No-op logger used when no logging is configured."""

    name = "null"
    log_string_to_sign = False

    def is_enabled_for(self, level: int) -> bool:
        return False

    def debug(self, message: str, **kwargs: Any) -> None:
        pass

    def info(self, message: str, **kwargs: Any) -> None:
        pass

    def warning(self, message: str, **kwargs: Any) -> None:
        pass

    def error(self, message: str, **kwargs: Any) -> None:
        pass

    def critical(self, message: str, **kwargs: Any) -> None:
        pass

    def exception(self, message: str, **kwargs: Any) -> None:
        pass

    def close(self) -> None:
        pass
