"""Context building from project facts and stored patterns."""

from context_server.context.builder import ContextBuilder

__all__ = ["ContextBuilder"]
