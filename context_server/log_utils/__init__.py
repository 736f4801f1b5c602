"""Structured logging module for JSON-formatted logs."""

from context_server.log_utils.structured_logger import (
    configure_logging,
    get_logger,
    is_json_logging,
    JSONFormatter,
    StructuredLogger,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "is_json_logging",
    "JSONFormatter",
    "StructuredLogger",
]
