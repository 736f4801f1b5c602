"""MCP context server: project analysis and curated code patterns for AI assistants."""

__version__ = "0.1.0"
