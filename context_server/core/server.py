"""Tool operations over the pattern store, context builder and project analyzer."""

import asyncio
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from context_server.analyzer import ProjectAnalyzer
from context_server.config import ServerConfig, get_config
from context_server.context.builder import ContextBuilder, code_fence_language
from context_server.core.exceptions import ToolNotFoundError, ValidationError
from context_server.core.models import CodePattern, SearchCriteria
from context_server.core.tracing import get_logger
from context_server.core.validation import (
    optional_score,
    optional_string,
    optional_string_list,
    require_string,
)
from context_server.protocol.tools import TOOL_DEFINITIONS, ToolName
from context_server.store import PatternStore

logger = get_logger(__name__)

STATISTICS_PRECISION = 2


def text_result(text: str, structured: Optional[Any] = None) -> Dict[str, Any]:
    """Wrap text (and optional structured data) as a tool-call result."""
    result: Dict[str, Any] = {
        "content": [{"type": "text", "text": text}],
        "isError": False,
    }
    if structured is not None:
        result["structuredContent"] = structured
    return result


class ContextServer:
    """
    The five tool operations of the context server.

    Features:
    - Project analysis with framework detection, relevant patterns and suggestions
    - Pattern retrieval by framework and category
    - Scored pattern search
    - Pattern training with validated, atomic persistence
    - Pattern store statistics
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[PatternStore] = None,
        analyzer: Optional[ProjectAnalyzer] = None,
    ):
        """
        Initialize the server.

        Args:
            config: Server configuration. If None, uses global config.
            store: Pattern store; created from ``config.patterns_path`` if None
            analyzer: Project analyzer; created from ``config.analyzer`` if None
        """
        if config is None:
            config = get_config()

        self.config = config
        self.store = store if store is not None else PatternStore(config.patterns_path_expanded)
        self.analyzer = analyzer if analyzer is not None else ProjectAnalyzer(config.analyzer)
        self.builder = ContextBuilder(self.store, max_patterns=config.max_context_patterns)

        logger.info(f"Pattern storage: {self.store.storage_path}")

    async def initialize(self) -> int:
        """Load patterns from disk. Returns the number loaded."""
        count = await asyncio.to_thread(self.store.load)
        logger.info(f"Server ready with {count} patterns")
        return count

    def server_info(self) -> Dict[str, Any]:
        """Handshake object returned for ``initialize``."""
        return {
            "protocolVersion": self.config.protocol_version,
            "serverInfo": {
                "name": self.config.server_name,
                "version": self.config.server_version,
            },
            "capabilities": {"tools": {}},
        }

    def list_tools(self) -> Dict[str, Any]:
        return {"tools": TOOL_DEFINITIONS}

    async def call_tool(self, name: Any, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Dispatch a ``tools/call`` to its operation.

        Raises:
            ToolNotFoundError: If ``name`` is not one of the five tools
            ValidationError: If an argument is missing or malformed
        """
        tool = ToolName.lookup(name)
        if tool is None:
            raise ToolNotFoundError(str(name))

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError("Tool arguments must be an object")

        logger.info(f"Calling tool: {tool.value}")

        if tool is ToolName.ANALYZE_PROJECT:
            return await self.analyze_project(
                require_string(arguments, "project_path", "path"),
                category=optional_string(arguments, "category"),
            )
        if tool is ToolName.GET_PATTERNS:
            return await self.get_patterns(
                require_string(arguments, "framework"),
                category=optional_string(arguments, "category"),
            )
        if tool is ToolName.SEARCH_PATTERNS:
            return await self.search_patterns(
                query=optional_string(arguments, "query"),
                framework=optional_string(arguments, "framework"),
                category=optional_string(arguments, "category"),
                tags=optional_string_list(arguments, "tags"),
                min_score=optional_score(arguments, "min_score", 0.0),
            )
        if tool is ToolName.TRAIN_PATTERN:
            return await self.train_pattern(
                pattern_id=require_string(arguments, "id"),
                category=require_string(arguments, "category"),
                framework=require_string(arguments, "framework"),
                title=require_string(arguments, "title"),
                description=require_string(arguments, "description", allow_blank=True),
                code=require_string(arguments, "code"),
                version=optional_string(arguments, "version"),
                tags=optional_string_list(arguments, "tags"),
                relevance_score=optional_score(
                    arguments, "relevance_score", self.config.training.default_relevance
                ),
            )
        return await self.get_statistics()

    # ========================================================================
    # Operations
    # ========================================================================

    async def analyze_project(self, project_path: str, category: Optional[str] = None) -> Dict[str, Any]:
        """
        Analyze a project directory and return its context briefing.

        The analyzer walks the file system, so it runs in a worker thread.

        Raises:
            AnalysisError: If the path is missing or not a directory
        """
        logger.info(f"Analyzing project: {project_path}")

        project = await asyncio.to_thread(self.analyzer.analyze, project_path)
        analysis = self.builder.build_analysis(project, category=category)

        return text_result(analysis.context)

    async def get_patterns(self, framework: str, category: Optional[str] = None) -> Dict[str, Any]:
        """List every pattern for a framework (optionally one category), best first."""
        if category:
            patterns = self.store.search_by_framework_and_category(framework, category)
        else:
            criteria = SearchCriteria(framework=framework)
            patterns = [pattern for pattern, _score in self.store.search_patterns(criteria)]

        fence = code_fence_language(framework)
        lines = [f"# Patterns for {framework}", ""]

        if not patterns:
            lines.append("No patterns found.")
        for pattern in patterns:
            lines.extend([
                f"## {pattern.title}",
                "",
                f"**Category:** {pattern.category}",
                f"**ID:** {pattern.id}",
                pattern.description,
                "",
                f"```{fence}",
                pattern.code,
                "```",
                "",
                f"**Tags:** {', '.join(pattern.tags)}",
                f"**Usage Count:** {pattern.usage_count}",
                f"**Relevance:** {pattern.relevance_score:.2f}",
                "",
                "---",
                "",
            ])

        return text_result("\n".join(lines) + "\n")

    async def search_patterns(
        self,
        query: Optional[str] = None,
        framework: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        min_score: float = 0.0,
    ) -> Dict[str, Any]:
        """Scored search; text lists results best first, structuredContent carries the scores."""
        try:
            criteria = SearchCriteria(
                query=query,
                framework=framework,
                category=category,
                tags=tags or [],
                min_score=min_score,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid search criteria: {e}") from e

        results = self.store.search_patterns(criteria)
        logger.info(f"Search returned {len(results)} patterns")

        lines = ["# Pattern Search Results", "", f"Found {len(results)} patterns", ""]
        for pattern, score in results:
            lines.extend([
                f"## {pattern.title} (Score: {score:.2f})",
                "",
                f"**Framework:** {pattern.framework} | **Category:** {pattern.category}",
                pattern.description,
                "",
                f"```{code_fence_language(pattern.framework)}",
                pattern.code,
                "```",
                "",
                "---",
                "",
            ])

        structured = {
            "results": [
                {
                    "id": pattern.id,
                    "title": pattern.title,
                    "framework": pattern.framework,
                    "category": pattern.category,
                    "score": round(score, 4),
                }
                for pattern, score in results
            ]
        }
        return text_result("\n".join(lines) + "\n", structured)

    async def train_pattern(
        self,
        pattern_id: str,
        category: str,
        framework: str,
        title: str,
        description: str,
        code: str,
        version: Optional[str] = None,
        tags: Optional[List[str]] = None,
        relevance_score: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Add a pattern and, with auto_save enabled, persist the store.

        Raises:
            ValidationError: If framework or id is unsafe, or the id exists
            StorageError: If persisting fails
        """
        training = self.config.training
        try:
            pattern = CodePattern(
                id=pattern_id,
                category=category,
                framework=framework,
                version=version or training.default_version,
                title=title,
                description=description,
                code=code,
                tags=tags or [],
                relevance_score=(
                    training.default_relevance if relevance_score is None else relevance_score
                ),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid pattern: {e}") from e

        stored = self.store.add_pattern(pattern)

        if training.auto_save:
            await asyncio.to_thread(self.store.save)

        output = (
            f"✅ Pattern '{stored.title}' added successfully!\n\n"
            f"**ID:** {stored.id}\n"
            f"**Category:** {stored.category}\n"
            f"**Framework:** {stored.framework}"
        )
        return text_result(output)

    async def get_statistics(self) -> Dict[str, Any]:
        """Aggregate statistics; average relevance is rounded to two decimals."""
        stats = self.store.get_statistics()
        stats["average_relevance"] = round(stats["average_relevance"], STATISTICS_PRECISION)

        categories = "\n".join(f"- {c}" for c in stats["categories"]) or "- (none)"
        frameworks = "\n".join(f"- {f}" for f in stats["frameworks"]) or "- (none)"
        output = (
            "# Pattern Database Statistics\n\n"
            f"**Total Patterns:** {stats['total_patterns']}\n"
            f"**Total Usage:** {stats['total_usage']}\n"
            f"**Average Relevance:** {stats['average_relevance']:.2f}\n\n"
            f"## Categories\n{categories}\n\n"
            f"## Frameworks\n{frameworks}\n"
        )
        return text_result(output, stats)
