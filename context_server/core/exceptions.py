"""Custom exceptions for the MCP context server with actionable solutions."""


class ContextServerError(Exception):
    """Base exception for all context server errors with actionable solutions."""

    error_code = "E000"  # Default error code, overridden by subclasses

    def __init__(self, message: str, solution: str = None):
        """
        Initialize error with actionable guidance.

        Args:
            message: Error description
            solution: Suggested solution or next steps
        """
        self.message = message
        self.solution = solution

        full_message = f"[{self.error_code}] {message}"
        if solution:
            full_message += f"\n\nSolution: {solution}"

        super().__init__(full_message)


class StorageError(ContextServerError):
    """Raised when pattern persistence fails."""

    error_code = "E001"


class ValidationError(ContextServerError):
    """Raised when input validation fails."""

    error_code = "E002"


class PathTraversalError(ValidationError):
    """Raised when a derived storage path escapes the storage directory."""

    error_code = "E003"

    def __init__(self, path: str, base_dir: str):
        self.path = path
        self.base_dir = base_dir
        super().__init__(
            f"Refusing to write '{path}': resolved path is outside '{base_dir}'",
            "Use a framework name without path separators or '..' segments",
        )


class PatternNotFoundError(ContextServerError):
    """Raised when a pattern with the given ID does not exist."""

    error_code = "E004"

    def __init__(self, pattern_id: str):
        self.pattern_id = pattern_id
        super().__init__(f"Pattern not found: {pattern_id}")


class DuplicatePatternError(ValidationError):
    """Raised when adding a pattern whose ID is already stored."""

    error_code = "E005"

    def __init__(self, pattern_id: str):
        self.pattern_id = pattern_id
        super().__init__(
            f"Pattern with ID '{pattern_id}' already exists",
            "Choose a different ID for the new pattern",
        )


class AnalysisError(ContextServerError):
    """Raised when a project cannot be analyzed."""

    error_code = "E006"


class ConfigurationError(ContextServerError):
    """Raised when configuration is invalid."""

    error_code = "E007"


class FramingError(ContextServerError):
    """Raised when an inbound message frame is malformed or truncated."""

    error_code = "E008"


class ToolNotFoundError(ContextServerError):
    """Raised when tools/call names a tool that does not exist."""

    error_code = "E009"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")
