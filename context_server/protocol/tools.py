"""Static tool catalogue returned by ``tools/list``."""

from enum import Enum
from typing import Any, Dict, List, Optional


class ToolName(str, Enum):
    """The five operations reachable through ``tools/call``."""

    ANALYZE_PROJECT = "analyze-project"
    GET_PATTERNS = "get-patterns"
    SEARCH_PATTERNS = "search-patterns"
    TRAIN_PATTERN = "train-pattern"
    GET_STATISTICS = "get-statistics"

    @classmethod
    def lookup(cls, name: Any) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


_STRING_LIST = {"type": "array", "items": {"type": "string"}}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": ToolName.ANALYZE_PROJECT.value,
        "description": (
            "Analyze a project (Rust, Node, Python, .NET, Go, Java, PHP) and get context "
            "about its structure, dependencies, relevant patterns and suggestions"
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "project_path": {
                    "type": "string",
                    "description": (
                        "Absolute path to the project directory (containing Cargo.toml, "
                        "package.json, .csproj, pyproject.toml, go.mod, pom.xml or composer.json)"
                    ),
                },
                "category": {
                    "type": "string",
                    "description": "Optional pattern category to focus on (e.g. 'lifecycle')",
                },
            },
            "required": ["project_path"],
        },
    },
    {
        "name": ToolName.GET_PATTERNS.value,
        "description": "Get code patterns for a specific framework and category",
        "inputSchema": {
            "type": "object",
            "properties": {
                "framework": {
                    "type": "string",
                    "description": "Framework name (e.g. 'blazor-server', 'aspnet-core')",
                },
                "category": {
                    "type": "string",
                    "description": "Pattern category (e.g. 'lifecycle', 'dependency-injection')",
                },
            },
            "required": ["framework"],
        },
    },
    {
        "name": ToolName.SEARCH_PATTERNS.value,
        "description": (
            "Search for patterns with query text, framework, category, tags and a minimum score"
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search text (matched in title, description and code)",
                },
                "framework": {"type": "string", "description": "Filter by framework"},
                "category": {"type": "string", "description": "Filter by category"},
                "tags": {**_STRING_LIST, "description": "Tags to boost by"},
                "min_score": {
                    "type": "number",
                    "minimum": 0.0,
                    "maximum": 1.0,
                    "description": "Minimum score (0.0 - 1.0)",
                },
            },
        },
    },
    {
        "name": ToolName.TRAIN_PATTERN.value,
        "description": "Add a new code pattern to the pattern store",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Unique identifier for the pattern"},
                "category": {"type": "string", "description": "Pattern category"},
                "framework": {"type": "string", "description": "Target framework"},
                "version": {"type": "string", "description": "Framework version"},
                "title": {"type": "string", "description": "Pattern title"},
                "description": {"type": "string", "description": "Pattern description"},
                "code": {"type": "string", "description": "Code example"},
                "tags": {**_STRING_LIST, "description": "Pattern tags"},
                "relevance_score": {
                    "type": "number",
                    "minimum": 0.0,
                    "maximum": 1.0,
                    "description": "Base quality score (default 0.8)",
                },
            },
            "required": ["id", "category", "framework", "title", "description", "code"],
        },
    },
    {
        "name": ToolName.GET_STATISTICS.value,
        "description": "Get statistics about the pattern database",
        "inputSchema": {"type": "object", "properties": {}},
    },
]
