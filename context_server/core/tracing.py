"""Per-request operation IDs using context variables."""

import uuid
from contextvars import ContextVar
import logging

# Context variable for operation ID (propagates automatically through async/await)
operation_id: ContextVar[str] = ContextVar('operation_id', default='')


def get_operation_id() -> str:
    """
    Get the current operation ID.

    Returns:
        Current operation ID (8 chars) or empty string if not set.
    """
    return operation_id.get()


def new_operation() -> str:
    """
    Start a new operation with fresh ID.

    Returns:
        Generated operation ID (8 chars).
    """
    op_id = str(uuid.uuid4())[:8]
    operation_id.set(op_id)
    return op_id


def clear_operation_id() -> None:
    """Clear operation ID from current context."""
    operation_id.set('')


class ContextAwareLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that includes operation_id in log records.

    Automatically prepends [operation_id] to all log messages when
    an operation ID is set in the current context.
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        op_id = operation_id.get()
        if op_id:
            msg = f"[{op_id}] {msg}"
        return msg, kwargs


def get_logger(name: str) -> logging.LoggerAdapter:
    """
    Get a context-aware logger for the given module.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger adapter that includes operation IDs in all log messages.
    """
    return ContextAwareLoggerAdapter(logging.getLogger(name), {})
