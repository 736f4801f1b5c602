"""Structured logging with optional JSON output.

Handlers always write to stderr: stdout is reserved for protocol frames.
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Any, Dict, Optional
from pathlib import Path

from context_server.core.tracing import get_operation_id

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Formats log records as JSON with standard fields for easy parsing and aggregation.
    Supports both standard logging and structured logging with context data.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            str: JSON-formatted log string.
        """
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        op_id = get_operation_id()
        if op_id:
            log_data["operation_id"] = op_id

        # Add context if provided via 'extra' parameter
        if hasattr(record, "context") and record.context:
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StructuredLogger(logging.Logger):
    """
    Extended logger with convenience methods for structured logging.

    Provides methods like info_ctx(), error_ctx() that accept context as kwargs.
    """

    def _log_with_context(
        self,
        level: int,
        msg: str,
        context: Optional[Dict[str, Any]] = None,
        exc_info: Any = None,
        **kwargs
    ) -> None:
        final_context = {}
        if context:
            final_context.update(context)
        if kwargs:
            final_context.update(kwargs)

        extra = {"context": final_context} if final_context else {}
        self.log(level, msg, exc_info=exc_info, extra=extra)

    def debug_ctx(self, msg: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """Log debug message with context."""
        self._log_with_context(logging.DEBUG, msg, context, **kwargs)

    def info_ctx(self, msg: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """
        Log info message with context.

        Example:
            logger.info_ctx("Patterns loaded", count=27, files=3)
        """
        self._log_with_context(logging.INFO, msg, context, **kwargs)

    def warning_ctx(self, msg: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """Log warning message with context."""
        self._log_with_context(logging.WARNING, msg, context, **kwargs)

    def error_ctx(
        self,
        msg: str,
        context: Optional[Dict[str, Any]] = None,
        exc_info: Any = None,
        **kwargs
    ) -> None:
        """Log error message with context."""
        self._log_with_context(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


_configured = False
_use_json_format = False


def configure_logging(
    use_json: bool = False,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """
    Configure logging globally.

    Args:
        use_json: Whether to use JSON formatting (default: False)
        level: Root log level (default: INFO)
        log_file: Optional file path to also write logs to
    """
    global _configured, _use_json_format

    logging.setLoggerClass(StructuredLogger)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if use_json:
        formatter = JSONFormatter()
        _use_json_format = True
    else:
        formatter = logging.Formatter(TEXT_FORMAT)
        _use_json_format = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Backward compatible with logging.getLogger() but returns a
    StructuredLogger with the *_ctx convenience methods.
    """
    if not _configured:
        logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    if not isinstance(logger, StructuredLogger):
        # Logger was created before the class was installed
        logger.__class__ = StructuredLogger
    return logger


def is_json_logging() -> bool:
    """Check whether JSON logging is active."""
    return _use_json_format
