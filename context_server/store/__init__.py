"""Pattern storage."""

from context_server.store.pattern_store import PatternStore

__all__ = ["PatternStore"]
