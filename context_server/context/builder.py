"""Builds a ranked, human-readable briefing from project facts and patterns.

The builder detects the project's framework from its dependencies, pulls
the best matching patterns from the store, runs independent rule checks
over the extracted symbols and renders everything into one markdown block.
"""

import logging
from typing import Callable, List, Optional, Tuple

from context_server.core.models import (
    AnalysisResult,
    Project,
    ProjectStatistics,
    ProjectType,
    ScoredPattern,
    SearchCriteria,
    SeverityLevel,
    Suggestion,
    SymbolKind,
)
from context_server.store.pattern_store import PatternStore

logger = logging.getLogger(__name__)

UNKNOWN_FRAMEWORK = "unknown"
DEFAULT_MAX_PATTERNS = 10

# Ordered (signature, framework) table. A dependency matches a signature when
# its name equals it or starts with it; the first matching row wins.
FRAMEWORK_SIGNATURES: List[Tuple[str, str]] = [
    # .NET
    ("Microsoft.AspNetCore.Components", "blazor-server"),
    ("Microsoft.AspNetCore", "aspnet-core"),
    ("Microsoft.EntityFrameworkCore", "entity-framework"),
    # PHP
    ("laravel/framework", "laravel"),
    ("symfony/framework-bundle", "symfony"),
    ("codeigniter4/framework", "codeigniter"),
    ("cakephp/cakephp", "cakephp"),
    ("slim/slim", "slim"),
    ("drupal/core", "drupal"),
    ("yiisoft/", "yii"),
    # JavaScript / TypeScript
    ("next", "nextjs"),
    ("nuxt", "nuxt"),
    ("@angular/core", "angular"),
    ("@nestjs/core", "nestjs"),
    ("react", "react"),
    ("vue", "vue"),
    ("svelte", "svelte"),
    ("express", "express"),
    # Python
    ("django", "django"),
    ("fastapi", "fastapi"),
    ("flask", "flask"),
    # Rust
    ("actix-web", "actix-web"),
    ("axum", "axum"),
    ("rocket", "rocket"),
    ("tokio", "tokio"),
    # Go
    ("github.com/gin-gonic/gin", "gin"),
    ("github.com/gofiber/fiber", "fiber"),
    ("github.com/labstack/echo", "echo"),
    # Java
    ("org.springframework", "spring"),
]

# Base types that mark a class as a UI component
COMPONENT_BASE_TYPES = ("ComponentBase", "OwningComponentBase", "LayoutComponentBase")

# (synchronous, asynchronous) lifecycle method pairs
LIFECYCLE_METHOD_PAIRS = [
    ("OnInitialized", "OnInitializedAsync"),
    ("OnParametersSet", "OnParametersSetAsync"),
    ("OnAfterRender", "OnAfterRenderAsync"),
]

VOID_RETURN_TYPES = {"void"}

# Frameworks whose conventions expect a service-registration entry point
DI_FRAMEWORKS = {"blazor-server", "aspnet-core", "entity-framework", "angular", "nestjs", "spring"}

SERVICE_REGISTRATION_METHODS = {"ConfigureServices", "AddServices", "RegisterServices"}

CODE_FENCE_LANGUAGES = {
    ProjectType.DOTNET: "csharp",
    ProjectType.RUST: "rust",
    ProjectType.NODE: "javascript",
    ProjectType.PYTHON: "python",
    ProjectType.GO: "go",
    ProjectType.JAVA: "java",
    ProjectType.PHP: "php",
}

FRAMEWORK_LANGUAGES = {
    "blazor-server": "csharp",
    "aspnet-core": "csharp",
    "entity-framework": "csharp",
    "laravel": "php",
    "symfony": "php",
    "codeigniter": "php",
    "cakephp": "php",
    "slim": "php",
    "drupal": "php",
    "yii": "php",
    "wordpress": "php",
    "nextjs": "tsx",
    "react": "jsx",
    "vue": "vue",
    "angular": "typescript",
    "nestjs": "typescript",
    "express": "javascript",
    "django": "python",
    "fastapi": "python",
    "flask": "python",
    "actix-web": "rust",
    "axum": "rust",
    "rocket": "rust",
    "tokio": "rust",
    "gin": "go",
    "fiber": "go",
    "echo": "go",
    "spring": "java",
}

SEVERITY_LABELS = {
    SeverityLevel.ERROR: "ERROR",
    SeverityLevel.WARNING: "WARNING",
    SeverityLevel.INFO: "INFO",
}


def code_fence_language(framework: str, project_type: Optional[ProjectType] = None) -> str:
    """Markdown code-fence language for a framework, falling back to the ecosystem."""
    if framework in FRAMEWORK_LANGUAGES:
        return FRAMEWORK_LANGUAGES[framework]
    return CODE_FENCE_LANGUAGES.get(project_type, "")


def _matches_signature(dependency_name: str, signature: str) -> bool:
    if dependency_name == signature:
        return True
    # Prefix families end in a separator ("yiisoft/") or continue with one
    # ("Microsoft.AspNetCore.Components.Web", "next-auth" does not count)
    if signature.endswith(("/", ".")):
        return dependency_name.startswith(signature)
    return dependency_name.startswith(signature + ".") or dependency_name.startswith(signature + "/")


class ContextBuilder:
    """Builds analysis results and context strings for AI assistants."""

    def __init__(self, store: Optional[PatternStore] = None, max_patterns: int = DEFAULT_MAX_PATTERNS):
        """
        Initialize the context builder.

        Args:
            store: Pattern store to pull relevant patterns from
            max_patterns: Cap on the number of relevant patterns returned
        """
        self.store = store
        self.max_patterns = max_patterns

        # Rules run in this order and their output is kept in this order
        self.rules: List[Callable[[Project, str], List[Suggestion]]] = [
            self.check_lifecycle_methods,
            self.check_async_signatures,
            self.check_dependency_injection,
        ]

    def build_analysis(self, project: Project, category: Optional[str] = None) -> AnalysisResult:
        """
        Build a complete analysis with patterns, suggestions and the briefing.

        Args:
            project: Project facts from the analyzer
            category: Optional category hint narrowing pattern retrieval
        """
        framework = self.detect_framework(project)
        patterns = self.get_relevant_patterns(framework, category)
        suggestions = self.generate_suggestions(project, framework)

        statistics = ProjectStatistics(
            total_files=project.total_files,
            total_classes=project.total_classes,
            total_methods=project.total_methods,
            package_count=len(project.dependencies),
            framework=framework,
            framework_version=project.metadata.target_framework or project.version,
        )

        analysis = AnalysisResult(
            project=project,
            framework=framework,
            patterns=patterns,
            suggestions=suggestions,
            statistics=statistics,
        )
        analysis.context = self.build_context_string(analysis)

        logger.info(
            f"Built analysis for '{project.name}': framework={framework}, "
            f"patterns={len(patterns)}, suggestions={len(suggestions)}"
        )
        return analysis

    def detect_framework(self, project: Project) -> str:
        """
        Detect the project's framework from its dependency list.

        Signatures are tried in table order; the first one matched by any
        dependency wins. Falls back to a framework the manifest reader found
        from the directory layout, then to "unknown".
        """
        names = [dependency.name for dependency in project.dependencies]
        for signature, framework in FRAMEWORK_SIGNATURES:
            if any(_matches_signature(name, signature) for name in names):
                return framework
        return project.metadata.extra.get("framework", UNKNOWN_FRAMEWORK)

    def get_relevant_patterns(
        self, framework: str, category: Optional[str] = None
    ) -> List[ScoredPattern]:
        """Top-scoring patterns for a framework, optionally narrowed by category."""
        if self.store is None:
            return []

        criteria = SearchCriteria(framework=framework, category=category)
        results = self.store.search_patterns(criteria)[: self.max_patterns]
        return [ScoredPattern(pattern=pattern, score=score) for pattern, score in results]

    def generate_suggestions(self, project: Project, framework: str) -> List[Suggestion]:
        """Run every rule and collect suggestions in rule order."""
        suggestions: List[Suggestion] = []
        for rule in self.rules:
            suggestions.extend(rule(project, framework))
        return suggestions

    # ========================================================================
    # Rules
    # ========================================================================

    def check_lifecycle_methods(self, project: Project, framework: str) -> List[Suggestion]:
        """Flag components that override a sync lifecycle method without its async twin."""
        suggestions = []

        for source_file in project.files:
            for symbol in source_file.walk_symbols():
                if symbol.kind not in (SymbolKind.CLASS, SymbolKind.COMPONENT):
                    continue
                if not any(
                    base.split("<")[0].split(".")[-1] in COMPONENT_BASE_TYPES
                    for base in symbol.base_types
                ):
                    continue

                method_names = {
                    child.name for child in symbol.children if child.kind == SymbolKind.METHOD
                }
                for sync_name, async_name in LIFECYCLE_METHOD_PAIRS:
                    if sync_name in method_names and async_name not in method_names:
                        suggestions.append(
                            Suggestion(
                                severity=SeverityLevel.WARNING,
                                category="blazor-lifecycle",
                                message=(
                                    f"Component '{symbol.name}' uses synchronous {sync_name}(). "
                                    f"Consider using {async_name}() for better performance."
                                ),
                                file=source_file.path,
                                line=symbol.line,
                            )
                        )

        return suggestions

    def check_async_signatures(self, project: Project, framework: str) -> List[Suggestion]:
        """Flag async methods declared with a void return type."""
        suggestions = []

        for source_file in project.files:
            for owner, symbol in source_file.walk_members():
                if symbol.kind not in (SymbolKind.METHOD, SymbolKind.FUNCTION):
                    continue
                if symbol.is_async and (symbol.return_type or "").strip() in VOID_RETURN_TYPES:
                    location = f" in class '{owner.name}'" if owner is not None else ""
                    suggestions.append(
                        Suggestion(
                            severity=SeverityLevel.WARNING,
                            category="async-patterns",
                            message=(
                                f"Method '{symbol.name}'{location} is async void. "
                                f"Use async Task instead for proper exception handling."
                            ),
                            file=source_file.path,
                            line=symbol.line,
                        )
                    )

        return suggestions

    def check_dependency_injection(self, project: Project, framework: str) -> List[Suggestion]:
        """Suggest DI when the framework expects it and no registration is found."""
        expects_di = framework in DI_FRAMEWORKS or project.project_type == ProjectType.DOTNET
        if not expects_di or self._has_service_registration(project):
            return []

        return [
            Suggestion(
                severity=SeverityLevel.INFO,
                category="dependency-injection",
                message=(
                    "No service registration found. Consider using dependency injection "
                    "for data access and external services."
                ),
            )
        ]

    @staticmethod
    def _has_service_registration(project: Project) -> bool:
        for symbol in project.walk_symbols():
            if symbol.kind not in (SymbolKind.METHOD, SymbolKind.FUNCTION):
                continue
            if symbol.name in SERVICE_REGISTRATION_METHODS:
                return True
            # Extension-method convention: AddApplicationServices(...)
            if symbol.name.startswith("Add") and symbol.name.endswith("Services"):
                return True
        return False

    # ========================================================================
    # Rendering
    # ========================================================================

    def build_context_string(self, analysis: AnalysisResult) -> str:
        """
        Render the analysis as markdown.

        Sections, in order: header, dependencies, statistics, patterns
        (search order), suggestions (rule order).
        """
        project = analysis.project
        stats = analysis.statistics
        lines: List[str] = []

        lines.append(f"# Project Analysis: {project.name}")
        lines.append("")
        lines.append(f"**Path:** {project.path}")
        lines.append(f"**Ecosystem:** {project.project_type.value}")
        lines.append(f"**Framework:** {analysis.framework}")
        if project.version:
            lines.append(f"**Version:** {project.version}")
        if project.metadata.target_framework:
            lines.append(f"**Target Framework:** {project.metadata.target_framework}")
        if project.metadata.build_command:
            lines.append(f"**Build:** `{project.metadata.build_command}`")
        lines.append("")

        lines.append(f"## Dependencies ({len(project.dependencies)})")
        lines.append("")
        if project.dependencies:
            for dependency in project.dependencies:
                dev = " [dev]" if dependency.dev_only else ""
                lines.append(f"- {dependency.name} ({dependency.version}){dev}")
        else:
            lines.append("No dependencies detected.")
        lines.append("")

        lines.append("## Project Statistics")
        lines.append("")
        lines.append(f"- Total Files: {stats.total_files}")
        lines.append(f"- Total Classes: {stats.total_classes}")
        lines.append(f"- Total Methods: {stats.total_methods}")
        lines.append(f"- Packages: {stats.package_count}")
        lines.append("")

        lines.append(f"## Relevant Patterns ({len(analysis.patterns)})")
        lines.append("")
        if analysis.patterns:
            for scored in analysis.patterns:
                pattern = scored.pattern
                lines.append(f"### {pattern.title}")
                lines.append(f"**Category:** {pattern.category} | **Score:** {scored.score:.2f}")
                if pattern.description:
                    lines.append(pattern.description)
                lines.append("")
                lines.append(f"```{code_fence_language(pattern.framework, project.project_type)}")
                lines.append(pattern.code)
                lines.append("```")
                if pattern.tags:
                    lines.append(f"**Tags:** {', '.join(pattern.tags)}")
                lines.append("")
        else:
            lines.append(f"No patterns found for framework '{analysis.framework}'.")
            lines.append("")

        lines.append(f"## Suggestions ({len(analysis.suggestions)})")
        lines.append("")
        if analysis.suggestions:
            for suggestion in analysis.suggestions:
                location = f" ({suggestion.file})" if suggestion.file else ""
                lines.append(
                    f"- [{SEVERITY_LABELS[suggestion.severity]}] **{suggestion.category}**: "
                    f"{suggestion.message}{location}"
                )
        else:
            lines.append("No suggestions.")

        return "\n".join(lines) + "\n"
